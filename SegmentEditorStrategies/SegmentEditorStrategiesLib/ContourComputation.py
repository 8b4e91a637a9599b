"""Labelmap -> Contour conversion.

Every slice of the labelmap is traced separately; each polyline is stored
in world coordinates under the id of the slice it was traced on.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import numpy as np

from .Errors import NoConvertiblePath, NoSourceRepresentation
from .Geometry import ImageGeometry, geometryFromSlices
from .PolygonExtraction import PolygonExtractor, SkimagePolygonExtractor, runCollaborator
from .SegmentationState import (
    Contour,
    ContourSegmentationData,
    LabelmapVolumeData,
    RepresentationType,
    SegmentationStore,
)

logger = logging.getLogger(__name__)


async def computeContourData(
    segmentationId: str,
    store: SegmentationStore,
    extractor: Optional[PolygonExtractor] = None,
    segmentIndices: Optional[list[int]] = None,
) -> ContourSegmentationData:
    """Compute the contour representation from labelmap data.

    Raises:
        NoConvertiblePath: If the segmentation has no labelmap data.
    """
    extractor = extractor or SkimagePolygonExtractor()
    segmentation = store.getSegmentation(segmentationId)
    try:
        if not segmentation.hasRepresentation(RepresentationType.LABELMAP):
            raise NoConvertiblePath(
                f"Segmentation {segmentationId} has no labelmap data to convert to contours"
            )
        contourData = await computeContourFromLabelmapSegmentation(
            segmentationId, store, extractor, segmentIndices
        )
    except Exception as e:
        logger.error(f"Contour conversion of {segmentationId} failed: {e}")
        raise

    logger.info(f"Computed contours of {len(contourData.contours)} segment(s) for {segmentationId}")
    return contourData


def _labelmapSlices(store: SegmentationStore, labelmap):
    """(k, j, i) labelmap array, slice ids and grid geometry of a labelmap payload."""
    cache = store.cache
    if isinstance(labelmap, LabelmapVolumeData):
        volume = cache.getVolume(labelmap.volumeId)
        sliceIds = [f"{volume.volumeId}:{k}" for k in range(volume.dimensions[2])]
        return volume.getScalarDataArray(), sliceIds, volume.geometry

    images = [cache.getImage(imageId) for imageId in labelmap.imageIdReferenceMap.values()]
    array = np.stack([image.pixelData for image in images])
    return array, list(labelmap.imageIdReferenceMap), geometryFromSlices([image.geometry for image in images])


async def computeContourFromLabelmapSegmentation(
    segmentationId: str,
    store: SegmentationStore,
    extractor: PolygonExtractor,
    segmentIndices: Optional[list[int]] = None,
) -> ContourSegmentationData:
    labelmap = store.getSegmentation(segmentationId).getRepresentation(RepresentationType.LABELMAP)
    if labelmap is None:
        raise NoSourceRepresentation(f"No labelmap data found for segmentation {segmentationId}")
    segmentIndices = list(segmentIndices) if segmentIndices else store.getUniqueSegmentIndices(segmentationId)

    array, sliceIds, geometry = _labelmapSlices(store, labelmap)
    results = await asyncio.gather(
        *(convertLabelmapToContours(array, index, sliceIds, geometry, extractor) for index in segmentIndices)
    )
    return ContourSegmentationData(contours=dict(zip(segmentIndices, results)), referenceGeometry=geometry)


async def convertLabelmapToContours(
    array: np.ndarray,
    segmentIndex: int,
    sliceIds: list[str],
    geometry: ImageGeometry,
    extractor: PolygonExtractor,
) -> list[Contour]:
    contours = []
    for k, sliceId in enumerate(sliceIds):
        mask = array[k] == segmentIndex
        if not mask.any():
            continue
        polylines = await runCollaborator(extractor.extractContours, mask)
        for polyline in polylines:
            rows, columns = polyline[:, 0], polyline[:, 1]
            ijk = np.column_stack([columns, rows, np.full(len(polyline), k, dtype=np.float64)])
            contours.append(Contour(sliceId=sliceId, points=geometry.indexToWorld(ijk)))
    if not contours:
        logger.warning(f"Segment {segmentIndex} has no voxels, no contours traced")
    return contours
