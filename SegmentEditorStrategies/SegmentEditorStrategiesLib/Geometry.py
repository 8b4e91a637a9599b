"""Grid geometry for volumes and slice images.

Index coordinates are (i, j, k) = (x, y, z); numpy buffers are laid out
(k, j, i) so that a flat index is ``i + j * dimI + k * dimI * dimJ``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


@dataclass
class ImageGeometry:
    """Placement of a voxel grid in world (patient) coordinates.

    Attributes:
        dimensions: Number of voxels along (i, j, k).
        spacing: Voxel size in mm along (i, j, k).
        origin: World position of voxel (0, 0, 0).
        direction: 3x3 matrix; row ``a`` is the world direction of index axis ``a``.
    """

    dimensions: tuple[int, int, int]
    spacing: tuple[float, float, float] = (1.0, 1.0, 1.0)
    origin: tuple[float, float, float] = (0.0, 0.0, 0.0)
    direction: np.ndarray = field(default_factory=lambda: np.eye(3))

    def __post_init__(self):
        self.dimensions = tuple(int(d) for d in self.dimensions)
        self.spacing = tuple(float(s) for s in self.spacing)
        self.origin = tuple(float(o) for o in self.origin)
        self.direction = np.asarray(self.direction, dtype=np.float64).reshape(3, 3)
        if len(self.dimensions) != 3 or len(self.spacing) != 3 or len(self.origin) != 3:
            raise ValueError("dimensions, spacing and origin must have 3 components")

    @property
    def numVoxels(self) -> int:
        return int(np.prod(self.dimensions))

    @property
    def shape(self) -> tuple[int, int, int]:
        """Numpy shape of the grid, (k, j, i)."""
        return (self.dimensions[2], self.dimensions[1], self.dimensions[0])

    def _indexToWorldMatrix(self) -> np.ndarray:
        return np.diag(self.spacing) @ self.direction

    def indexToWorld(self, ijk) -> np.ndarray:
        """Map (continuous) index coordinates to world; accepts (..., 3) arrays."""
        ijk = np.asarray(ijk, dtype=np.float64)
        return np.asarray(self.origin) + ijk @ self._indexToWorldMatrix()

    def worldToIndex(self, world) -> np.ndarray:
        """Map world coordinates to continuous index coordinates."""
        world = np.asarray(world, dtype=np.float64)
        inverse = np.linalg.inv(self._indexToWorldMatrix())
        return (world - np.asarray(self.origin)) @ inverse

    def worldToNearestIndex(self, world) -> tuple[int, int, int]:
        ijk = np.rint(self.worldToIndex(world)).astype(int)
        return (int(ijk[0]), int(ijk[1]), int(ijk[2]))

    def containsIndex(self, ijk) -> bool:
        return all(0 <= int(ijk[a]) < self.dimensions[a] for a in range(3))

    def hasSameDimensionsAndDirection(self, other: ImageGeometry, tolerance: float = 1e-5) -> bool:
        return self.dimensions == other.dimensions and np.allclose(
            self.direction, other.direction, atol=tolerance
        )

    def viewAxis(self, viewPlaneNormal) -> int:
        """Return the index axis most aligned with a world-space view-plane normal."""
        if viewPlaneNormal is None:
            return 2
        normal = np.asarray(viewPlaneNormal, dtype=np.float64)
        return int(np.argmax(np.abs(self.direction @ normal)))

    def copy(self) -> ImageGeometry:
        return ImageGeometry(
            dimensions=self.dimensions,
            spacing=self.spacing,
            origin=self.origin,
            direction=self.direction.copy(),
        )


def geometryFromSlices(sliceGeometries: list[ImageGeometry]) -> ImageGeometry:
    """Stack per-slice geometries (dimensions (columns, rows, 1)) into one grid.

    The slice spacing is the distance between the first two slice origins
    along the slice normal; a single slice keeps its own k spacing.
    """
    if not sliceGeometries:
        raise ValueError("At least one slice geometry is required")
    first = sliceGeometries[0]
    sliceSpacing = first.spacing[2]
    if len(sliceGeometries) > 1:
        offset = np.asarray(sliceGeometries[1].origin) - np.asarray(first.origin)
        distance = float(abs(offset @ first.direction[2]))
        if distance > 1e-6:
            sliceSpacing = distance
    return ImageGeometry(
        dimensions=(first.dimensions[0], first.dimensions[1], len(sliceGeometries)),
        spacing=(first.spacing[0], first.spacing[1], sliceSpacing),
        origin=first.origin,
        direction=first.direction.copy(),
    )
