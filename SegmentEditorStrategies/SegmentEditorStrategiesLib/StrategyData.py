"""Resolve the image and segmentation buffers an edit works on."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .Geometry import ImageGeometry, geometryFromSlices
from .ImageCache import ImageCache
from .OperationData import LabelmapType, OperationData, Viewport
from .VoxelValue import LABELMAP_VALUE_RANGE, StackVoxelValue, VolumeVoxelValue, VoxelValue

logger = logging.getLogger(__name__)


@dataclass
class StrategyData:
    imageVoxelValue: VoxelValue
    segmentationVoxelValue: VoxelValue
    imageGeometry: ImageGeometry
    segmentationGeometry: ImageGeometry


def getStrategyData(
    operationData: OperationData,
    viewport: Optional[Viewport],
    cache: ImageCache,
) -> Optional[StrategyData]:
    """Build VoxelValues for the source image and the segmentation.

    Returns None when the buffers cannot be resolved, e.g. a stack edit whose
    images are not mapped to segmentation images.
    """
    if operationData.labelmapType == LabelmapType.VOLUME:
        return _getVolumeStrategyData(operationData, cache)
    return _getStackStrategyData(operationData, viewport, cache)


def _getVolumeStrategyData(operationData: OperationData, cache: ImageCache) -> Optional[StrategyData]:
    if not operationData.volumeId or not operationData.referencedVolumeId:
        logger.warning(f"Volume edit on {operationData.segmentationId} without volume ids")
        return None
    segmentationVolume = cache.getVolume(operationData.volumeId)
    imageVolume = cache.getVolume(operationData.referencedVolumeId)
    return StrategyData(
        imageVoxelValue=VolumeVoxelValue.fromVolume(imageVolume),
        segmentationVoxelValue=VolumeVoxelValue.fromVolume(segmentationVolume, LABELMAP_VALUE_RANGE),
        imageGeometry=imageVolume.geometry,
        segmentationGeometry=segmentationVolume.geometry,
    )


def _getStackStrategyData(
    operationData: OperationData, viewport: Optional[Viewport], cache: ImageCache
) -> Optional[StrategyData]:
    referenceMap = operationData.imageIdReferenceMap
    imageIds = list(viewport.imageIds) if viewport is not None and viewport.imageIds else list(referenceMap)
    imageIds = [imageId for imageId in imageIds if imageId in referenceMap]
    if not imageIds:
        logger.warning(f"Stack edit on {operationData.segmentationId} has no mapped images")
        return None

    images = [cache.getImage(imageId) for imageId in imageIds]
    segmentationImages = [cache.getImage(referenceMap[imageId]) for imageId in imageIds]

    # Slices are addressed by source image id on both sides
    imageVoxelValue = StackVoxelValue([image.pixelData for image in images], imageIds)
    segmentationVoxelValue = StackVoxelValue(
        [image.pixelData for image in segmentationImages], imageIds, LABELMAP_VALUE_RANGE
    )
    return StrategyData(
        imageVoxelValue=imageVoxelValue,
        segmentationVoxelValue=segmentationVoxelValue,
        imageGeometry=geometryFromSlices([image.geometry for image in images]),
        segmentationGeometry=geometryFromSlices([image.geometry for image in segmentationImages]),
    )
