"""Segmentations and their representation payloads.

A Segmentation holds at most one payload per RepresentationType. The first
representation added is authoritative (PolySeg hands that role to the
labelmap once it is edited); the others are derived projections computed on
demand by the conversion pipeline.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

import numpy as np

from .Errors import NotFound
from .Geometry import ImageGeometry
from .ImageCache import ImageCache
from .ImageCache import cache as defaultImageCache
from .OperationData import LabelmapType
from .PreviewState import PREVIEW_SEGMENT_INDEX
from .SegmentationEvents import SegmentationEventBus, triggerSegmentationRemoved

logger = logging.getLogger(__name__)


class RepresentationType(str, Enum):
    LABELMAP = "Labelmap"
    CONTOUR = "Contour"
    SURFACE = "Surface"


@dataclass
class LabelmapVolumeData:
    volumeId: str
    referencedVolumeId: Optional[str] = None
    labelmapType: LabelmapType = field(default=LabelmapType.VOLUME, init=False)


@dataclass
class LabelmapStackData:
    # source image id -> derived segmentation image id, in slice order
    imageIdReferenceMap: dict[str, str]
    labelmapType: LabelmapType = field(default=LabelmapType.STACK, init=False)


LabelmapData = Union[LabelmapVolumeData, LabelmapStackData]


@dataclass
class Contour:
    """One closed polyline in world coordinates; the last point joins the first."""

    sliceId: str
    points: np.ndarray

    def __post_init__(self):
        self.points = np.asarray(self.points, dtype=np.float64).reshape(-1, 3)


@dataclass
class ContourSegmentationData:
    contours: dict[int, list[Contour]] = field(default_factory=dict)
    referenceGeometry: Optional[ImageGeometry] = None


@dataclass
class SurfaceMesh:
    vertices: np.ndarray
    triangles: np.ndarray

    @property
    def isEmpty(self) -> bool:
        return len(self.vertices) == 0 or len(self.triangles) == 0


@dataclass
class SurfaceSegmentationData:
    surfaces: dict[int, SurfaceMesh] = field(default_factory=dict)


@dataclass
class Segmentation:
    segmentationId: str
    representationData: dict[RepresentationType, object] = field(default_factory=dict)
    authoritativeRepresentation: Optional[RepresentationType] = None

    def hasRepresentation(self, kind: RepresentationType) -> bool:
        return RepresentationType(kind) in self.representationData

    def getRepresentation(self, kind: RepresentationType):
        return self.representationData.get(RepresentationType(kind))


class SegmentationStore:
    """Segmentations by id, plus the index scan used by conversions."""

    def __init__(self, cache: Optional[ImageCache] = None, events: Optional[SegmentationEventBus] = None):
        self.cache = cache if cache is not None else defaultImageCache
        self.events = events
        self._segmentations: dict[str, Segmentation] = {}

    def addSegmentation(
        self,
        segmentationId: str,
        kind: Optional[RepresentationType] = None,
        data=None,
    ) -> Segmentation:
        segmentation = Segmentation(segmentationId)
        self._segmentations[segmentationId] = segmentation
        if kind is not None:
            self.addRepresentationData(segmentationId, kind, data)
        return segmentation

    def getSegmentation(self, segmentationId: str) -> Segmentation:
        try:
            return self._segmentations[segmentationId]
        except KeyError:
            raise NotFound(f"Segmentation {segmentationId!r} not found") from None

    def hasSegmentation(self, segmentationId: str) -> bool:
        return segmentationId in self._segmentations

    def removeSegmentation(self, segmentationId: str) -> None:
        if self._segmentations.pop(segmentationId, None) is not None:
            triggerSegmentationRemoved(segmentationId, bus=self.events)

    def removeDerivedRepresentations(self, segmentationId: str) -> list[RepresentationType]:
        """Drop every representation except the authoritative one; returns the kinds dropped."""
        segmentation = self.getSegmentation(segmentationId)
        derived = [
            kind for kind in segmentation.representationData if kind != segmentation.authoritativeRepresentation
        ]
        for kind in derived:
            del segmentation.representationData[kind]
        if derived:
            logger.debug(f"Segmentation {segmentationId}: dropped derived {[kind.value for kind in derived]}")
        return derived

    def addRepresentationData(self, segmentationId: str, kind: RepresentationType, data) -> None:
        segmentation = self.getSegmentation(segmentationId)
        kind = RepresentationType(kind)
        segmentation.representationData[kind] = data
        if segmentation.authoritativeRepresentation is None:
            segmentation.authoritativeRepresentation = kind
        logger.debug(f"Segmentation {segmentationId}: added {kind.value} representation")

    def getLabelmapArrays(self, segmentationId: str) -> list[np.ndarray]:
        """Labelmap buffers of a segmentation, one (k, j, i) or (rows, cols) array each."""
        labelmap = self.getSegmentation(segmentationId).getRepresentation(RepresentationType.LABELMAP)
        if labelmap is None:
            return []
        if isinstance(labelmap, LabelmapVolumeData):
            return [self.cache.getVolume(labelmap.volumeId).getScalarDataArray()]
        return [self.cache.getImage(imageId).pixelData for imageId in labelmap.imageIdReferenceMap.values()]

    def getUniqueSegmentIndices(self, segmentationId: str) -> list[int]:
        """Sorted segment indices present in the committed data.

        The authoritative representation is scanned when present, otherwise
        labelmap, contour and surface data in that order. Background (0) and
        the preview index (255) are excluded.
        """
        segmentation = self.getSegmentation(segmentationId)
        kinds = [RepresentationType.LABELMAP, RepresentationType.CONTOUR, RepresentationType.SURFACE]
        if segmentation.authoritativeRepresentation is not None:
            kinds.insert(0, segmentation.authoritativeRepresentation)
        for kind in kinds:
            if segmentation.hasRepresentation(kind):
                return self._segmentIndicesOf(segmentationId, kind)
        return []

    def _segmentIndicesOf(self, segmentationId: str, kind: RepresentationType) -> list[int]:
        data = self.getSegmentation(segmentationId).getRepresentation(kind)
        if kind == RepresentationType.CONTOUR:
            return sorted(index for index, contours in data.contours.items() if contours)
        if kind == RepresentationType.SURFACE:
            return sorted(data.surfaces)
        present: set[int] = set()
        for array in self.getLabelmapArrays(segmentationId):
            present.update(int(v) for v in np.unique(array))
        present.discard(0)
        present.discard(PREVIEW_SEGMENT_INDEX)
        return sorted(present)
