"""Edit descriptors passed through the strategy pipeline.

OperationData is what the tool layer supplies for one edit. It is
representation agnostic except for the explicit ``labelmapType`` tag.
InitializedOperationData is derived from it once per edit by
``BrushStrategy.createInitialized`` and handed to every stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable, Optional

import numpy as np

from .Geometry import ImageGeometry
from .ImageCache import ImageCache
from .VoxelValue import HistoryVoxelValue, VoxelValue


class LabelmapType(str, Enum):
    VOLUME = "volume"
    STACK = "stack"


class ViewportType(str, Enum):
    STACK = "stack"
    ORTHOGRAPHIC = "orthographic"
    VOLUME_3D = "volume3d"


@dataclass
class Viewport:
    """The parts of a rendering viewport the engine needs.

    A stack viewport shows ``imageIds[currentImageIdIndex]``; volume viewports
    show ``volumeId``. ``viewPlaneNormal`` is a world-space vector.
    """

    viewportId: str
    type: ViewportType
    viewPlaneNormal: tuple[float, float, float] = (0.0, 0.0, 1.0)
    volumeId: Optional[str] = None
    imageIds: list[str] = field(default_factory=list)
    currentImageIdIndex: int = 0

    def __post_init__(self):
        self.type = ViewportType(self.type)

    @property
    def isStack(self) -> bool:
        return self.type == ViewportType.STACK

    def getCurrentImageId(self) -> Optional[str]:
        if not self.imageIds:
            return None
        return self.imageIds[self.currentImageIdIndex]

    def getDefaultVolumeId(self) -> Optional[str]:
        return self.volumeId


@dataclass
class EditContext:
    """Collaborators available to a stage: the viewport being edited on, the
    image cache and the event bus used for change notification."""

    viewport: Optional[Viewport] = None
    cache: Optional[ImageCache] = None
    events: Any = None


@dataclass
class OperationData:
    segmentationId: str
    segmentIndex: int
    labelmapType: LabelmapType
    centerWorld: tuple[float, float, float] = (0.0, 0.0, 0.0)
    radius: float = 1.0
    # Volume form
    volumeId: Optional[str] = None
    referencedVolumeId: Optional[str] = None
    # Stack form: source image id -> derived segmentation image id
    imageIdReferenceMap: dict[str, str] = field(default_factory=dict)
    previewColors: Optional[dict[int, tuple]] = None
    segmentsLocked: list[int] = field(default_factory=list)
    strategySpecificConfiguration: dict[str, Any] = field(default_factory=dict)
    preview: Optional[InitializedOperationData] = None

    def __post_init__(self):
        self.labelmapType = LabelmapType(self.labelmapType)


@dataclass
class InitializedOperationData(OperationData):
    """The resolved working set for one edit.

    ``isInObject`` takes broadcastable (ii, jj, kk) index arrays and returns a
    boolean array; ``isInObjectBoundsIJK`` is the inclusive
    ((iMin, iMax), (jMin, jMax), (kMin, kMax)) box it can be true inside.
    """

    editContext: Optional[EditContext] = None
    viewport: Optional[Viewport] = None
    imageVoxelValue: Optional[VoxelValue] = None
    segmentationVoxelValue: Optional[VoxelValue] = None
    previewVoxelValue: Optional[HistoryVoxelValue] = None
    previewSegmentIndex: Optional[int] = None
    segmentationGeometry: Optional[ImageGeometry] = None
    centerIJK: Optional[tuple[int, int, int]] = None
    isInObject: Optional[Callable[..., np.ndarray]] = None
    isInObjectBoundsIJK: Optional[tuple[tuple[int, int], ...]] = None
    brushStrategy: Any = None
    previewTracker: Any = None

    @classmethod
    def fromOperationData(cls, operationData: OperationData, **resolved) -> InitializedOperationData:
        values = {f.name: getattr(operationData, f.name) for f in fields(OperationData)}
        values.update(resolved)
        return cls(**values)

    @property
    def isPreviewing(self) -> bool:
        return self.previewSegmentIndex is not None
