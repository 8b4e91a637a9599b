"""Polygon extraction collaborator used by the conversion pipeline.

Any object with ``extractSurface``, ``contourToMask`` and ``extractContours``
can be injected; each method may be a plain function (run in a worker
thread) or a coroutine function. SkimagePolygonExtractor is the default.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Protocol

import numpy as np
from skimage import draw, measure

from .Geometry import ImageGeometry
from .SegmentationState import Contour, SurfaceMesh

logger = logging.getLogger(__name__)


class PolygonExtractor(Protocol):
    def extractSurface(self, mask: np.ndarray, spacing, origin, direction) -> SurfaceMesh: ...

    def contourToMask(self, contours: list[Contour], geometry: ImageGeometry) -> np.ndarray: ...

    def extractContours(self, mask: np.ndarray) -> list[np.ndarray]: ...


def emptyMesh() -> SurfaceMesh:
    return SurfaceMesh(np.empty((0, 3), dtype=np.float64), np.empty((0, 3), dtype=np.int64))


class SkimagePolygonExtractor:
    """Marching cubes surfaces, even-odd polygon rasterization, marching squares contours."""

    def __init__(self, level: float = 0.5, stepSize: int = 1, contourLevel: float = 0.5):
        self.level = level
        self.stepSize = stepSize
        self.contourLevel = contourLevel

    def extractSurface(self, mask: np.ndarray, spacing, origin, direction) -> SurfaceMesh:
        """Triangle mesh in world coordinates of a (k, j, i) binary mask."""
        mask = np.asarray(mask)
        if not mask.any():
            return emptyMesh()

        # Pad so that regions touching the grid border still close
        padded = np.pad(mask.astype(np.float32), 1)
        verts, faces, _normals, _values = measure.marching_cubes(
            padded, level=self.level, step_size=self.stepSize
        )
        ijk = (verts - 1.0)[:, ::-1]
        geometry = ImageGeometry(
            dimensions=mask.shape[::-1], spacing=spacing, origin=origin, direction=direction
        )
        return SurfaceMesh(vertices=geometry.indexToWorld(ijk), triangles=faces.astype(np.int64))

    def contourToMask(self, contours: list[Contour], geometry: ImageGeometry) -> np.ndarray:
        """Rasterize closed world-space contours into a (k, j, i) boolean mask.

        Each contour fills the slice nearest to its points; nested contours
        cut holes (even-odd rule).
        """
        mask = np.zeros(geometry.shape, dtype=bool)
        dimI, dimJ, dimK = geometry.dimensions
        for contour in contours:
            if len(contour.points) < 3:
                continue
            ijk = geometry.worldToIndex(contour.points)
            k = int(np.rint(np.median(ijk[:, 2])))
            if not 0 <= k < dimK:
                logger.debug(f"Contour on {contour.sliceId} lies outside the target grid")
                continue
            rr, cc = draw.polygon(ijk[:, 1], ijk[:, 0], shape=(dimJ, dimI))
            mask[k, rr, cc] ^= True
        return mask

    def extractContours(self, mask: np.ndarray) -> list[np.ndarray]:
        """Closed (row, column) polylines around a 2D binary mask, without repeated end points."""
        mask = np.asarray(mask)
        if not mask.any():
            return []
        padded = np.pad(mask.astype(np.float32), 1)
        polylines = []
        for polyline in measure.find_contours(padded, self.contourLevel):
            polyline = polyline - 1.0
            if len(polyline) > 1 and np.allclose(polyline[0], polyline[-1]):
                polyline = polyline[:-1]
            if len(polyline) >= 3:
                polylines.append(polyline)
        return polylines


async def runCollaborator(func, *args):
    """Await ``func(*args)``; synchronous callables run in a worker thread."""
    if inspect.iscoroutinefunction(func):
        return await func(*args)
    return await asyncio.to_thread(func, *args)
