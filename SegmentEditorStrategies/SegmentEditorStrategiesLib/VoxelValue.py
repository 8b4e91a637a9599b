"""Uniform voxel access over volume and stack labelmap buffers.

A VoxelValue addresses voxels by (i, j, k) index, or by the equivalent
absolute position ``i + j * dimI + k * dimI * dimJ``. Every write records the
slice index ``k`` it touched so callers can scope change notifications to the
modified slices.

Two storage forms are supported:
- VolumeVoxelValue: one flat buffer holding the whole grid.
- StackVoxelValue: one 2D buffer per slice, looked up by slice image id.

HistoryVoxelValue composes a base VoxelValue with a sparse record of the
value each position held before its first overwrite. ``acceptHistory`` and
``rejectHistory`` are the two ways of resolving that record.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from .Errors import OutOfBounds

logger = logging.getLogger(__name__)

LABELMAP_VALUE_RANGE = (0, 255)


class VoxelValue:
    """Base class: position arithmetic, bounds checks and slice tracking."""

    def __init__(
        self,
        dimensions: Sequence[int],
        valueRange: Optional[tuple[float, float]] = None,
    ):
        self.dimensions = tuple(int(d) for d in dimensions)
        self.frameSize = self.dimensions[0] * self.dimensions[1]
        self.size = self.frameSize * self.dimensions[2]
        self.valueRange = valueRange
        self.modifiedSlices: set[int] = set()

    def toIndex(self, ijk) -> int:
        """Absolute position of an (i, j, k) index.

        Raises:
            OutOfBounds: If any component lies outside the grid.
        """
        i, j, k = (int(c) for c in ijk)
        dimI, dimJ, dimK = self.dimensions
        if not (0 <= i < dimI and 0 <= j < dimJ and 0 <= k < dimK):
            raise OutOfBounds(f"Voxel {(i, j, k)} outside grid {self.dimensions}")
        return i + j * dimI + k * self.frameSize

    def toIJK(self, index: int) -> tuple[int, int, int]:
        self._checkIndex(index)
        k, rest = divmod(int(index), self.frameSize)
        j, i = divmod(rest, self.dimensions[0])
        return (i, j, k)

    def isInBounds(self, ijk) -> bool:
        return all(0 <= int(ijk[a]) < self.dimensions[a] for a in range(3))

    def get(self, ijk):
        return self.getIndex(self.toIndex(ijk))

    def set(self, ijk, value) -> None:
        self.setIndex(self.toIndex(ijk), value)

    def getIndex(self, index: int):
        self._checkIndex(index)
        return self._read(int(index))

    def setIndex(self, index: int, value) -> None:
        self._checkIndex(index)
        self._checkValue(value)
        self._write(int(index), value)
        self.modifiedSlices.add(int(index) // self.frameSize)

    def getRegion(self, boundsIJK) -> np.ndarray:
        """Values inside inclusive ((i0, i1), (j0, j1), (k0, k1)) bounds, as a (k, j, i) array."""
        (i0, i1), (j0, j1), (k0, k1) = boundsIJK
        region = np.empty((k1 - k0 + 1, j1 - j0 + 1, i1 - i0 + 1))
        for k in range(k0, k1 + 1):
            for j in range(j0, j1 + 1):
                for i in range(i0, i1 + 1):
                    region[k - k0, j - j0, i - i0] = self.get((i, j, k))
        return region

    def getArrayOfSlices(self) -> list[int]:
        """Sorted slice indices written since creation (or the last clear)."""
        return sorted(self.modifiedSlices)

    def clearModifiedSlices(self) -> None:
        self.modifiedSlices.clear()

    def _checkIndex(self, index: int) -> None:
        if not 0 <= int(index) < self.size:
            raise OutOfBounds(f"Position {index} outside buffer of size {self.size}")

    def _checkValue(self, value) -> None:
        if self.valueRange is None:
            return
        low, high = self.valueRange
        if not low <= value <= high:
            raise ValueError(f"Value {value} outside range [{low}, {high}]")

    def _read(self, index: int):
        raise NotImplementedError

    def _write(self, index: int, value) -> None:
        raise NotImplementedError


class VolumeVoxelValue(VoxelValue):
    """VoxelValue over a single flat buffer."""

    def __init__(self, scalarData: np.ndarray, dimensions: Sequence[int], valueRange=None):
        super().__init__(dimensions, valueRange)
        flat = np.asarray(scalarData).reshape(-1)
        if flat.size != self.size:
            raise ValueError(f"Buffer of size {flat.size} does not match dimensions {dimensions}")
        self.scalarData = flat

    @classmethod
    def fromVolume(cls, volume, valueRange=None) -> VolumeVoxelValue:
        return cls(volume.scalarData, volume.dimensions, valueRange)

    def getRegion(self, boundsIJK) -> np.ndarray:
        (i0, i1), (j0, j1), (k0, k1) = boundsIJK
        grid = self.scalarData.reshape(self.dimensions[2], self.dimensions[1], self.dimensions[0])
        return grid[k0 : k1 + 1, j0 : j1 + 1, i0 : i1 + 1].copy()

    def _read(self, index: int):
        return self.scalarData[index].item()

    def _write(self, index: int, value) -> None:
        self.scalarData[index] = value


class StackVoxelValue(VoxelValue):
    """VoxelValue over per-slice 2D buffers.

    Slice ``k`` is the ``k``-th entry of ``imageIds``; each buffer has shape
    (rows, columns) = (dimJ, dimI).
    """

    def __init__(self, sliceBuffers: Sequence[np.ndarray], imageIds: Sequence[str], valueRange=None):
        if len(sliceBuffers) != len(imageIds):
            raise ValueError("One image id is required per slice buffer")
        if not sliceBuffers:
            raise ValueError("A stack needs at least one slice")
        rows, columns = np.asarray(sliceBuffers[0]).shape
        super().__init__((columns, rows, len(sliceBuffers)), valueRange)
        self.sliceBuffers = []
        for imageId, buffer in zip(imageIds, sliceBuffers):
            buffer = np.asarray(buffer)
            if buffer.shape != (rows, columns):
                raise ValueError(f"Slice {imageId} has shape {buffer.shape}, expected {(rows, columns)}")
            self.sliceBuffers.append(buffer)
        self.imageIds = list(imageIds)
        self._sliceIndexById = {imageId: k for k, imageId in enumerate(self.imageIds)}

    @classmethod
    def fromImages(cls, images, valueRange=None) -> StackVoxelValue:
        return cls([image.pixelData for image in images], [image.imageId for image in images], valueRange)

    def getSliceIndex(self, imageId: str) -> int:
        try:
            return self._sliceIndexById[imageId]
        except KeyError:
            raise OutOfBounds(f"Image {imageId!r} is not part of this stack") from None

    def getImageId(self, sliceIndex: int) -> str:
        return self.imageIds[sliceIndex]

    def getArrayOfImageIds(self) -> list[str]:
        """Image ids of the modified slices, in slice order."""
        return [self.imageIds[k] for k in self.getArrayOfSlices()]

    def getRegion(self, boundsIJK) -> np.ndarray:
        (i0, i1), (j0, j1), (k0, k1) = boundsIJK
        return np.stack([self.sliceBuffers[k][j0 : j1 + 1, i0 : i1 + 1] for k in range(k0, k1 + 1)])

    def _read(self, index: int):
        k, offset = divmod(index, self.frameSize)
        return self.sliceBuffers[k].flat[offset].item()

    def _write(self, index: int, value) -> None:
        k, offset = divmod(index, self.frameSize)
        self.sliceBuffers[k].flat[offset] = value


class HistoryVoxelValue(VoxelValue):
    """A base VoxelValue plus the original value of every overwritten position."""

    def __init__(self, sourceVoxelValue: VoxelValue):
        super().__init__(sourceVoxelValue.dimensions, sourceVoxelValue.valueRange)
        self.sourceVoxelValue = sourceVoxelValue
        self.history: dict[int, object] = {}

    def getIndex(self, index: int):
        return self.sourceVoxelValue.getIndex(index)

    def setIndex(self, index: int, value) -> None:
        index = int(index)
        if index not in self.history:
            self.history[index] = self.sourceVoxelValue.getIndex(index)
        self.sourceVoxelValue.setIndex(index, value)
        self.modifiedSlices.add(index // self.frameSize)

    def getOriginal(self, index: int):
        """Value before the first overwrite, or None if never written."""
        return self.history.get(int(index))

    def __len__(self):
        return len(self.history)


def historyVoxelValue(sourceVoxelValue: VoxelValue) -> HistoryVoxelValue:
    return HistoryVoxelValue(sourceVoxelValue)


def acceptHistory(
    historyValue: HistoryVoxelValue,
    previewValue=None,
    finalValue=None,
) -> int:
    """Commit a history record.

    If ``previewValue`` is given, every recorded position currently holding it
    is rewritten to ``finalValue`` first. The record is then discarded.

    Returns:
        Number of positions rewritten.
    """
    rewritten = 0
    if previewValue is not None:
        source = historyValue.sourceVoxelValue
        for index in historyValue.history:
            if source.getIndex(index) == previewValue:
                source.setIndex(index, finalValue)
                rewritten += 1
    historyValue.history.clear()
    historyValue.clearModifiedSlices()
    return rewritten


def rejectHistory(historyValue: HistoryVoxelValue) -> int:
    """Restore every recorded position to its original value and clear the record.

    Returns:
        Number of positions restored. An empty record is a no-op.
    """
    source = historyValue.sourceVoxelValue
    for index, original in historyValue.history.items():
        source.setIndex(index, original)
    restored = len(historyValue.history)
    historyValue.history.clear()
    historyValue.clearModifiedSlices()
    return restored
