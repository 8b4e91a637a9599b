"""Composition of independently written stage functions into one strategy.

An initializer is either a mapping ``{stage: function}`` or a zero-argument
callable returning one. List stages collect every contribution and run them
in registration order; singleton stages accept at most one contribution and
return a value (a predicate, a preview) instead of acting by side effect.

List stage functions are called as ``func(editContext, data)``, where
``data`` is the InitializedOperationData for the edit; the strategy itself is
available as ``data.brushStrategy``. The preview singleton has no working set
yet and is called as ``func(strategy, editContext, operationData)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from .Errors import DuplicateStrategyStage, GeometryMismatch, SegmentationStrategyError, UnknownStrategyStage
from .ImageCache import cache as defaultImageCache
from .OperationData import EditContext, InitializedOperationData, LabelmapType, OperationData
from .PreviewState import PREVIEW_SEGMENT_INDEX, PreviewTracker
from .SegmentationEvents import triggerSegmentationDataModified
from .StrategyData import getStrategyData
from .VoxelValue import historyVoxelValue

logger = logging.getLogger(__name__)


class StrategyStage(str, Enum):
    INIT_DOWN = "initDown"
    COMPLETE_UP = "completeUp"
    FILL = "fill"
    CREATE_INITIALIZED = "createInitialized"
    ACCEPT_PREVIEW = "acceptPreview"
    REJECT_PREVIEW = "rejectPreview"
    CREATE_IS_IN_THRESHOLD = "createIsInThreshold"
    SET_VALUE = "setValue"
    PREVIEW = "preview"


LIST_STAGES = (
    StrategyStage.INIT_DOWN,
    StrategyStage.COMPLETE_UP,
    StrategyStage.FILL,
    StrategyStage.CREATE_INITIALIZED,
    StrategyStage.ACCEPT_PREVIEW,
    StrategyStage.REJECT_PREVIEW,
)
SINGLETON_STAGES = (
    StrategyStage.CREATE_IS_IN_THRESHOLD,
    StrategyStage.SET_VALUE,
    StrategyStage.PREVIEW,
)


def toStrategyStage(key) -> StrategyStage:
    """Resolve a stage given as a StrategyStage or its string value."""
    if isinstance(key, StrategyStage):
        return key
    try:
        return StrategyStage(key)
    except ValueError:
        raise UnknownStrategyStage(key) from None


@dataclass(frozen=True)
class StrategyPipeline:
    """Immutable stage table of one strategy."""

    name: str
    listStages: Mapping[StrategyStage, tuple[Callable, ...]]
    singletonStages: Mapping[StrategyStage, Optional[Callable]]

    @classmethod
    def build(cls, name: str, initializers) -> StrategyPipeline:
        lists: dict[StrategyStage, list[Callable]] = {stage: [] for stage in LIST_STAGES}
        singletons: dict[StrategyStage, Callable] = {}

        for initializer in initializers:
            contribution = initializer if isinstance(initializer, Mapping) else initializer()
            for key, func in contribution.items():
                stage = toStrategyStage(key)
                if stage in lists:
                    lists[stage].append(func)
                elif stage in singletons:
                    raise DuplicateStrategyStage(stage.value, name)
                else:
                    singletons[stage] = func

        return cls(
            name=name,
            listStages=MappingProxyType({stage: tuple(funcs) for stage, funcs in lists.items()}),
            singletonStages=MappingProxyType({stage: singletons.get(stage) for stage in SINGLETON_STAGES}),
        )

    def functions(self, stage: StrategyStage) -> tuple[Callable, ...]:
        return self.listStages[toStrategyStage(stage)]

    def singleton(self, stage: StrategyStage) -> Optional[Callable]:
        return self.singletonStages[toStrategyStage(stage)]

    def defines(self, stage: StrategyStage) -> bool:
        stage = toStrategyStage(stage)
        if stage in self.listStages:
            return bool(self.listStages[stage])
        return self.singletonStages[stage] is not None


class BrushStrategy:
    """A named, composed brush behavior.

    Example:
        strategy = BrushStrategy("FillCircle", initializeCircle, initializeRegionFill, initializeSetValue)
        strategy.initDown(editContext, operationData)
        strategy.fill(editContext, operationData)
        strategy.completeUp(editContext, operationData)
    """

    def __init__(self, name: str, *initializers):
        self.name = name
        self.pipeline = StrategyPipeline.build(name, initializers)

    def __repr__(self):
        return f"BrushStrategy({self.name!r})"

    def __call__(self, editContext: EditContext, operationData: OperationData):
        return self.fill(editContext, operationData)

    def createInitialized(
        self, editContext: EditContext, operationData: OperationData
    ) -> Optional[InitializedOperationData]:
        """Resolve the working set for one edit.

        Raises:
            GeometryMismatch: If a volume edit's image and segmentation grids
                differ in dimensions or direction. Checked before any write.
        """
        cache = editContext.cache if editContext.cache is not None else defaultImageCache
        viewport = editContext.viewport
        strategyData = getStrategyData(operationData, viewport, cache)
        if strategyData is None:
            logger.warning(f"{self.name}: no image data found for {operationData.segmentationId}")
            return None

        if operationData.labelmapType == LabelmapType.VOLUME and not (
            strategyData.imageGeometry.hasSameDimensionsAndDirection(strategyData.segmentationGeometry)
        ):
            raise GeometryMismatch(
                f"Image grid {strategyData.imageGeometry.dimensions} and segmentation grid "
                f"{strategyData.segmentationGeometry.dimensions} are not voxel aligned"
            )

        segmentationVoxelValue = strategyData.segmentationVoxelValue
        previous = operationData.preview
        if previous is not None and previous.previewVoxelValue is not None:
            previewVoxelValue = previous.previewVoxelValue
            previewVoxelValue.sourceVoxelValue = segmentationVoxelValue
            previewTracker = previous.previewTracker or PreviewTracker()
        else:
            previewVoxelValue = historyVoxelValue(segmentationVoxelValue)
            previewTracker = PreviewTracker()

        geometry = strategyData.segmentationGeometry
        centerIJK = geometry.worldToNearestIndex(operationData.centerWorld)
        if (
            operationData.labelmapType == LabelmapType.STACK
            and viewport is not None
            and viewport.isStack
            and viewport.getCurrentImageId() is not None
        ):
            sliceIndex = segmentationVoxelValue.getSliceIndex(viewport.getCurrentImageId())
            centerIJK = (centerIJK[0], centerIJK[1], sliceIndex)

        data = InitializedOperationData.fromOperationData(
            operationData,
            editContext=editContext,
            viewport=viewport,
            imageVoxelValue=strategyData.imageVoxelValue,
            segmentationVoxelValue=segmentationVoxelValue,
            previewVoxelValue=previewVoxelValue,
            previewSegmentIndex=PREVIEW_SEGMENT_INDEX if operationData.previewColors is not None else None,
            segmentationGeometry=geometry,
            centerIJK=centerIJK,
            brushStrategy=self,
            previewTracker=previewTracker,
        )
        for func in self.pipeline.functions(StrategyStage.CREATE_INITIALIZED):
            func(editContext, data)
        return data

    def fill(self, editContext: EditContext, operationData: OperationData):
        """Run the fill stages for one pointer position.

        Returns:
            The initialized working set when a preview was staged, the
            previous preview when the center did not move, otherwise None.
        """
        data = self.createInitialized(editContext, operationData)
        if data is None:
            return operationData.preview

        configuration = data.strategySpecificConfiguration
        if configuration.get("centerIJK") == data.centerIJK:
            logger.debug(f"{self.name}: center {data.centerIJK} unchanged, skipping fill")
            return operationData.preview
        configuration["centerIJK"] = data.centerIJK

        for func in self.pipeline.functions(StrategyStage.FILL):
            func(editContext, data)

        modifiedSlices = data.segmentationVoxelValue.getArrayOfSlices()
        logger.debug(f"{self.name}: fill at {data.centerIJK} modified slices {modifiedSlices}")
        triggerSegmentationDataModified(data.segmentationId, modifiedSlices, bus=editContext.events)

        if data.previewSegmentIndex is None or not modifiedSlices:
            return None
        data.previewTracker.begin()
        return data

    def initDown(self, editContext: EditContext, operationData: OperationData):
        return self._runListStage(StrategyStage.INIT_DOWN, editContext, operationData)

    def completeUp(self, editContext: EditContext, operationData: OperationData):
        return self._runListStage(StrategyStage.COMPLETE_UP, editContext, operationData)

    def acceptPreview(self, editContext: EditContext, operationData: OperationData):
        return self._runListStage(StrategyStage.ACCEPT_PREVIEW, editContext, operationData)

    def rejectPreview(self, editContext: EditContext, operationData: OperationData):
        return self._runListStage(StrategyStage.REJECT_PREVIEW, editContext, operationData)

    def createIsInThreshold(self, data: InitializedOperationData):
        """Return the threshold predicate for ``data``, or None when unthresholded."""
        func = self.pipeline.singleton(StrategyStage.CREATE_IS_IN_THRESHOLD)
        if func is None:
            return None
        return func(data)

    def setValue(self, data: InitializedOperationData, index: int) -> None:
        func = self.pipeline.singleton(StrategyStage.SET_VALUE)
        if func is None:
            raise SegmentationStrategyError(f"Strategy {self.name!r} has no setValue stage")
        func(data, index)

    def preview(self, editContext: EditContext, operationData: OperationData):
        func = self.pipeline.singleton(StrategyStage.PREVIEW)
        if func is None:
            raise SegmentationStrategyError(f"Strategy {self.name!r} has no preview stage")
        return func(self, editContext, operationData)

    def _runListStage(self, stage: StrategyStage, editContext: EditContext, operationData: OperationData):
        # Every list stage runs on a freshly derived working set
        data = self.createInitialized(editContext, operationData)
        if data is None:
            return None
        for func in self.pipeline.functions(stage):
            func(editContext, data)
        return data
