"""On-demand representation conversion for segmentations.

PolySeg answers "give me representation X of segmentation S": the
authoritative representation is returned as is, a previously converted one
comes from the cache, anything else is converted, cached and added to the
segmentation. When the segmentation's data is modified, cached conversions
and derived representations are dropped, and a conversion still running is
not stored.
"""

from __future__ import annotations

import logging
from typing import Optional

from .ContourComputation import computeContourData
from .ImageCache import ImageCache
from .LabelmapComputation import computeLabelmapData
from .OperationData import Viewport
from .PolygonExtraction import PolygonExtractor, SkimagePolygonExtractor
from .RepresentationCache import RepresentationCache, Stopwatch
from .SegmentationEvents import (
    Events,
    SegmentationEventBus,
    eventBus,
    triggerSegmentationRepresentationAdded,
)
from .SegmentationState import RepresentationType, SegmentationStore
from .StrategyConfig import StrategyConfig, create_default_config
from .SurfaceComputation import computeSurfaceData

logger = logging.getLogger(__name__)

# Representation kinds each kind can be computed from
CONVERTIBLE_FROM = {
    RepresentationType.SURFACE: (RepresentationType.CONTOUR, RepresentationType.LABELMAP),
    RepresentationType.LABELMAP: (RepresentationType.CONTOUR,),
    RepresentationType.CONTOUR: (RepresentationType.LABELMAP,),
}


class PolySeg:
    def __init__(
        self,
        store: Optional[SegmentationStore] = None,
        cache: Optional[ImageCache] = None,
        extractor: Optional[PolygonExtractor] = None,
        config: Optional[StrategyConfig] = None,
        events: Optional[SegmentationEventBus] = None,
    ):
        self.config = config or create_default_config()
        self.events = events if events is not None else eventBus
        self.store = store if store is not None else SegmentationStore(cache, self.events)
        self.extractor = extractor or SkimagePolygonExtractor(
            level=self.config.surface_level,
            stepSize=self.config.surface_step_size,
            contourLevel=self.config.contour_level,
        )
        self.representationCache = RepresentationCache()
        self._unsubscribers = [
            self.events.subscribe(Events.SEGMENTATION_DATA_MODIFIED, self._onSegmentationDataModified),
            self.events.subscribe(Events.SEGMENTATION_REMOVED, self.representationCache.onSegmentationRemoved),
        ]

    def close(self) -> None:
        """Stop listening for segmentation changes."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self.representationCache.stats.log_summary()

    def _onSegmentationDataModified(self, segmentationId: str, modifiedSlices=None, **kwargs) -> None:
        self.representationCache.onSegmentationDataModified(segmentationId, modifiedSlices)
        if not self.store.hasSegmentation(segmentationId):
            return
        segmentation = self.store.getSegmentation(segmentationId)
        # Edits write labelmap data
        if segmentation.hasRepresentation(RepresentationType.LABELMAP):
            segmentation.authoritativeRepresentation = RepresentationType.LABELMAP
        self.store.removeDerivedRepresentations(segmentationId)

    def canComputeRequestedRepresentation(self, segmentationId: str, kind: RepresentationType) -> bool:
        segmentation = self.store.getSegmentation(segmentationId)
        kind = RepresentationType(kind)
        if segmentation.hasRepresentation(kind):
            return True
        return any(segmentation.hasRepresentation(source) for source in CONVERTIBLE_FROM[kind])

    async def computeAndAddSurfaceRepresentation(
        self, segmentationId: str, segmentIndices: Optional[list[int]] = None
    ):
        return await self._computeAndAdd(
            segmentationId,
            RepresentationType.SURFACE,
            lambda: computeSurfaceData(segmentationId, self.store, self.extractor, segmentIndices),
        )

    async def computeAndAddLabelmapRepresentation(
        self,
        segmentationId: str,
        segmentIndices: Optional[list[int]] = None,
        viewport: Optional[Viewport] = None,
    ):
        return await self._computeAndAdd(
            segmentationId,
            RepresentationType.LABELMAP,
            lambda: computeLabelmapData(segmentationId, self.store, self.extractor, segmentIndices, viewport),
        )

    async def computeAndAddContourRepresentation(
        self, segmentationId: str, segmentIndices: Optional[list[int]] = None
    ):
        return await self._computeAndAdd(
            segmentationId,
            RepresentationType.CONTOUR,
            lambda: computeContourData(segmentationId, self.store, self.extractor, segmentIndices),
        )

    async def _computeAndAdd(self, segmentationId: str, kind: RepresentationType, compute):
        segmentation = self.store.getSegmentation(segmentationId)
        if segmentation.authoritativeRepresentation == kind:
            return segmentation.getRepresentation(kind)

        cached = self.representationCache.get(segmentationId, kind)
        if cached is not None:
            return cached

        version = self.representationCache.version(segmentationId)
        stopwatch = Stopwatch()
        data = await compute()
        if self.representationCache.version(segmentationId) != version:
            logger.debug(f"{segmentationId} was modified during {kind.value} conversion, result not stored")
            return data

        self.representationCache.put(segmentationId, kind, data, stopwatch.elapsedMs)
        self.store.addRepresentationData(segmentationId, kind, data)
        triggerSegmentationRepresentationAdded(segmentationId, kind, bus=self.events)
        logger.debug(f"{kind.value} representation of {segmentationId} took {stopwatch.elapsedMs:.1f}ms")
        return data
