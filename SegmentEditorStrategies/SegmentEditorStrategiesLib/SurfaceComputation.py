"""Labelmap/Contour -> Surface conversion.

Segments are converted concurrently; the first failure fails the whole
conversion and nothing partial is returned.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import numpy as np

from .Errors import NoConvertiblePath, NoSourceRepresentation
from .Geometry import ImageGeometry, geometryFromSlices
from .ImageCache import ImageCache
from .PolygonExtraction import PolygonExtractor, SkimagePolygonExtractor, runCollaborator
from .SegmentationState import (
    ContourSegmentationData,
    LabelmapStackData,
    LabelmapVolumeData,
    RepresentationType,
    Segmentation,
    SegmentationStore,
    SurfaceMesh,
    SurfaceSegmentationData,
)
from .VoxelValue import StackVoxelValue

logger = logging.getLogger(__name__)

# In order of preference when neither is authoritative
SURFACE_SOURCES = (RepresentationType.CONTOUR, RepresentationType.LABELMAP)


def _resolveSegmentIndices(store: SegmentationStore, segmentationId: str, segmentIndices) -> list[int]:
    if segmentIndices:
        return list(segmentIndices)
    return store.getUniqueSegmentIndices(segmentationId)


def _surfaceSource(segmentation: Segmentation) -> Optional[RepresentationType]:
    if segmentation.authoritativeRepresentation in SURFACE_SOURCES:
        return segmentation.authoritativeRepresentation
    for kind in SURFACE_SOURCES:
        if segmentation.hasRepresentation(kind):
            return kind
    return None


async def computeSurfaceData(
    segmentationId: str,
    store: SegmentationStore,
    extractor: Optional[PolygonExtractor] = None,
    segmentIndices: Optional[list[int]] = None,
) -> SurfaceSegmentationData:
    """Compute the surface representation from contour or labelmap data.

    The authoritative representation is converted when it is one of the two;
    otherwise contour data is preferred over labelmap data.

    Raises:
        NoConvertiblePath: If the segmentation has neither.
    """
    extractor = extractor or SkimagePolygonExtractor()
    segmentation = store.getSegmentation(segmentationId)
    segmentIndices = _resolveSegmentIndices(store, segmentationId, segmentIndices)

    try:
        source = _surfaceSource(segmentation)
        if source == RepresentationType.CONTOUR:
            surfaces = await computeSurfaceFromContourSegmentation(
                segmentationId, store, extractor, segmentIndices
            )
        elif source == RepresentationType.LABELMAP:
            surfaces = await computeSurfaceFromLabelmapSegmentation(
                segmentationId, store, extractor, segmentIndices
            )
        else:
            raise NoConvertiblePath(
                f"Segmentation {segmentationId} has no contour or labelmap data to convert to a surface"
            )
    except Exception as e:
        logger.error(f"Surface conversion of {segmentationId} failed: {e}")
        raise

    logger.info(f"Computed {len(surfaces.surfaces)} surface(s) for {segmentationId}")
    return surfaces


async def computeSurfaceFromLabelmapSegmentation(
    segmentationId: str,
    store: SegmentationStore,
    extractor: PolygonExtractor,
    segmentIndices: Optional[list[int]] = None,
) -> SurfaceSegmentationData:
    segmentation = store.getSegmentation(segmentationId)
    labelmap = segmentation.getRepresentation(RepresentationType.LABELMAP)
    if labelmap is None:
        raise NoSourceRepresentation(f"No labelmap data found for segmentation {segmentationId}")

    segmentIndices = _resolveSegmentIndices(store, segmentationId, segmentIndices)
    if isinstance(labelmap, LabelmapVolumeData):
        convert = convertVolumeLabelmapToSurface
    else:
        convert = convertStackLabelmapToSurface

    meshes = await asyncio.gather(
        *(convert(labelmap, index, store.cache, extractor) for index in segmentIndices)
    )
    return SurfaceSegmentationData(surfaces=dict(zip(segmentIndices, meshes)))


async def computeSurfaceFromContourSegmentation(
    segmentationId: str,
    store: SegmentationStore,
    extractor: PolygonExtractor,
    segmentIndices: Optional[list[int]] = None,
) -> SurfaceSegmentationData:
    segmentation = store.getSegmentation(segmentationId)
    contourData = segmentation.getRepresentation(RepresentationType.CONTOUR)
    if contourData is None:
        raise NoSourceRepresentation(f"No contour data found for segmentation {segmentationId}")

    segmentIndices = _resolveSegmentIndices(store, segmentationId, segmentIndices)
    geometry = contourData.referenceGeometry or inferContourGeometry(contourData)

    meshes = await asyncio.gather(
        *(convertContourToSurface(contourData, index, geometry, extractor) for index in segmentIndices)
    )
    return SurfaceSegmentationData(surfaces=dict(zip(segmentIndices, meshes)))


def _warnIfEmpty(mask: np.ndarray, segmentIndex: int) -> None:
    if not mask.any():
        logger.warning(f"Segment {segmentIndex} has no voxels, its surface is empty")


async def convertVolumeLabelmapToSurface(
    labelmap: LabelmapVolumeData,
    segmentIndex: int,
    cache: ImageCache,
    extractor: PolygonExtractor,
) -> SurfaceMesh:
    volume = cache.getVolume(labelmap.volumeId)
    mask = volume.getScalarDataArray() == segmentIndex
    _warnIfEmpty(mask, segmentIndex)
    geometry = volume.geometry
    return await runCollaborator(
        extractor.extractSurface, mask, geometry.spacing, geometry.origin, geometry.direction
    )


async def convertStackLabelmapToSurface(
    labelmap: LabelmapStackData,
    segmentIndex: int,
    cache: ImageCache,
    extractor: PolygonExtractor,
) -> SurfaceMesh:
    images = [cache.getImage(imageId) for imageId in labelmap.imageIdReferenceMap.values()]
    voxelValue = StackVoxelValue.fromImages(images)
    dimI, dimJ, dimK = voxelValue.dimensions
    mask = voxelValue.getRegion(((0, dimI - 1), (0, dimJ - 1), (0, dimK - 1))) == segmentIndex
    _warnIfEmpty(mask, segmentIndex)
    geometry = geometryFromSlices([image.geometry for image in images])
    return await runCollaborator(
        extractor.extractSurface, mask, geometry.spacing, geometry.origin, geometry.direction
    )


async def convertContourToSurface(
    contourData: ContourSegmentationData,
    segmentIndex: int,
    geometry: ImageGeometry,
    extractor: PolygonExtractor,
) -> SurfaceMesh:
    contours = contourData.contours.get(segmentIndex, [])
    mask = await runCollaborator(extractor.contourToMask, contours, geometry)
    _warnIfEmpty(mask, segmentIndex)
    return await runCollaborator(
        extractor.extractSurface, mask, geometry.spacing, geometry.origin, geometry.direction
    )


def inferContourGeometry(contourData: ContourSegmentationData, inPlaneSpacing: float = 1.0) -> ImageGeometry:
    """Axis-aligned grid enclosing every contour, with one slice per contour plane.

    The slice spacing is the smallest distance between contour planes.
    """
    points = [contour.points for contours in contourData.contours.values() for contour in contours]
    if not points:
        raise NoSourceRepresentation("Contour data holds no points")
    allPoints = np.concatenate(points)

    planes = np.unique(np.round(allPoints[:, 2], 3))
    gaps = np.diff(planes)
    sliceSpacing = float(gaps[gaps > 0].min()) if np.any(gaps > 0) else inPlaneSpacing
    spacing = np.array([inPlaneSpacing, inPlaneSpacing, sliceSpacing])

    # One voxel of margin on every side
    origin = allPoints.min(axis=0) - spacing
    extent = allPoints.max(axis=0) - origin
    dimensions = np.ceil(extent / spacing).astype(int) + 2
    return ImageGeometry(dimensions=dimensions, spacing=spacing, origin=origin)
