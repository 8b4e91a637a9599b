"""Contour -> Labelmap conversion.

The target grid comes from the viewport: a volume viewport yields a derived
segmentation volume on the grid of its volume, a stack viewport yields one
derived segmentation image per displayed image.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import numpy as np

from .Errors import MissingViewportContext, NoConvertiblePath, NoSourceRepresentation
from .Geometry import geometryFromSlices
from .OperationData import Viewport
from .PolygonExtraction import PolygonExtractor, SkimagePolygonExtractor, runCollaborator
from .SegmentationState import (
    ContourSegmentationData,
    LabelmapStackData,
    LabelmapVolumeData,
    RepresentationType,
    SegmentationStore,
)

logger = logging.getLogger(__name__)


async def computeLabelmapData(
    segmentationId: str,
    store: SegmentationStore,
    extractor: Optional[PolygonExtractor] = None,
    segmentIndices: Optional[list[int]] = None,
    viewport: Optional[Viewport] = None,
):
    """Compute the labelmap representation from contour data.

    Raises:
        NoConvertiblePath: If the segmentation has no contour data.
        MissingViewportContext: If no viewport is given.
    """
    extractor = extractor or SkimagePolygonExtractor()
    segmentation = store.getSegmentation(segmentationId)
    segmentIndices = list(segmentIndices) if segmentIndices else store.getUniqueSegmentIndices(segmentationId)

    try:
        if not segmentation.hasRepresentation(RepresentationType.CONTOUR):
            raise NoConvertiblePath(
                f"Segmentation {segmentationId} has no contour data to convert to a labelmap"
            )
        labelmap = await computeLabelmapFromContourSegmentation(
            segmentationId, store, extractor, segmentIndices, viewport
        )
    except Exception as e:
        logger.error(f"Labelmap conversion of {segmentationId} failed: {e}")
        raise

    logger.info(f"Computed {labelmap.labelmapType.value} labelmap for {segmentationId}")
    return labelmap


async def computeLabelmapFromContourSegmentation(
    segmentationId: str,
    store: SegmentationStore,
    extractor: PolygonExtractor,
    segmentIndices: Optional[list[int]] = None,
    viewport: Optional[Viewport] = None,
):
    if viewport is None:
        raise MissingViewportContext(
            f"Cannot compute a labelmap for {segmentationId} from contours without a viewport"
        )
    contourData = store.getSegmentation(segmentationId).getRepresentation(RepresentationType.CONTOUR)
    if contourData is None:
        raise NoSourceRepresentation(f"No contour data found for segmentation {segmentationId}")
    segmentIndices = list(segmentIndices) if segmentIndices else store.getUniqueSegmentIndices(segmentationId)

    if viewport.isStack:
        return await convertContourToStackLabelmap(contourData, viewport, store, extractor, segmentIndices)
    return await convertContourToVolumeLabelmap(contourData, viewport, store, extractor, segmentIndices)


async def _segmentMasks(contourData: ContourSegmentationData, geometry, extractor, segmentIndices):
    return await asyncio.gather(
        *(
            runCollaborator(extractor.contourToMask, contourData.contours.get(index, []), geometry)
            for index in segmentIndices
        )
    )


def _paint(target: np.ndarray, masks, segmentIndices) -> None:
    # Later indices win where segments overlap
    for index, mask in zip(segmentIndices, masks):
        target[np.asarray(mask, dtype=bool)] = index


async def convertContourToVolumeLabelmap(
    contourData: ContourSegmentationData,
    viewport: Viewport,
    store: SegmentationStore,
    extractor: PolygonExtractor,
    segmentIndices: list[int],
) -> LabelmapVolumeData:
    volumeId = viewport.getDefaultVolumeId()
    if volumeId is None:
        raise MissingViewportContext(f"Viewport {viewport.viewportId} shows no volume")

    cache = store.cache
    segmentationVolume = cache.createAndCacheDerivedSegmentationVolume(volumeId)
    masks = await _segmentMasks(contourData, segmentationVolume.geometry, extractor, segmentIndices)
    _paint(segmentationVolume.getScalarDataArray(), masks, segmentIndices)
    return LabelmapVolumeData(volumeId=segmentationVolume.volumeId, referencedVolumeId=volumeId)


async def convertContourToStackLabelmap(
    contourData: ContourSegmentationData,
    viewport: Viewport,
    store: SegmentationStore,
    extractor: PolygonExtractor,
    segmentIndices: list[int],
) -> LabelmapStackData:
    if not viewport.imageIds:
        raise MissingViewportContext(f"Viewport {viewport.viewportId} shows no images")

    cache = store.cache
    derivedImages = cache.createAndCacheDerivedSegmentationImages(list(viewport.imageIds))
    geometry = geometryFromSlices([image.geometry for image in derivedImages])
    masks = await _segmentMasks(contourData, geometry, extractor, segmentIndices)

    labelmap = np.stack([image.pixelData for image in derivedImages])
    _paint(labelmap, masks, segmentIndices)
    for k, image in enumerate(derivedImages):
        image.pixelData[...] = labelmap[k]

    return LabelmapStackData(
        imageIdReferenceMap={image.referencedImageId: image.imageId for image in derivedImages}
    )
