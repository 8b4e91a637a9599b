"""Stage contributions that brush strategies are composed from.

Each ``initializeX`` returns a mapping from StrategyStage to a stage
function. Shapes (circle, sphere) set ``isInObject`` and
``isInObjectBoundsIJK`` on the working set; ``initializeRegionFill`` walks
that box and writes every voxel inside the shape and threshold through the
strategy's ``setValue``.
"""

from __future__ import annotations

import logging

import numpy as np
import SimpleITK as sitk

from .BrushStrategy import StrategyStage
from .IntensityAnalyzer import IntensityAnalyzer
from .OperationData import LabelmapType
from .PreviewState import PREVIEW_SEGMENT_INDEX
from .SegmentationEvents import triggerSegmentationDataModified
from .VoxelValue import acceptHistory, rejectHistory

logger = logging.getLogger(__name__)


def _viewAxis(data) -> int:
    if data.labelmapType == LabelmapType.STACK or data.viewport is None:
        return 2
    return data.segmentationGeometry.viewAxis(data.viewport.viewPlaneNormal)


def _radiusIJK(data) -> np.ndarray:
    spacing = np.asarray(data.segmentationGeometry.spacing, dtype=np.float64)
    # Keep at least the center voxel for sub-voxel radii
    return np.maximum(float(data.radius) / spacing, 0.5)


def _ellipsoid(data, axes):
    """isInObject and bounds for an ellipsoid over ``axes``, flat on the others."""
    center = np.asarray(data.centerIJK, dtype=np.float64)
    radius = _radiusIJK(data)

    def isInObject(ii, jj, kk):
        index = (ii, jj, kk)
        distance = sum(((np.asarray(index[a]) - center[a]) / radius[a]) ** 2 for a in axes)
        inside = distance <= 1.0
        for a in range(3):
            if a not in axes:
                inside = inside & (np.asarray(index[a]) == int(center[a]))
        return inside

    bounds = []
    for a in range(3):
        c = int(center[a])
        extent = int(np.floor(radius[a])) if a in axes else 0
        bounds.append((c - extent, c + extent))
    return isInObject, tuple(bounds)


def _initializeCircleShape(editContext, data):
    viewAxis = _viewAxis(data)
    inPlane = tuple(a for a in range(3) if a != viewAxis)
    data.isInObject, data.isInObjectBoundsIJK = _ellipsoid(data, inPlane)


def _initializeSphereShape(editContext, data):
    data.isInObject, data.isInObjectBoundsIJK = _ellipsoid(data, (0, 1, 2))


def initializeCircle():
    """Circle of ``radius`` mm in the slice plane through the center."""
    return {StrategyStage.CREATE_INITIALIZED: _initializeCircleShape}


def initializeSphere():
    """Sphere of ``radius`` mm around the center."""
    return {StrategyStage.CREATE_INITIALIZED: _initializeSphereShape}


def clipBounds(boundsIJK, dimensions):
    """Clip inclusive bounds to a grid; None if nothing is left."""
    if boundsIJK is None:
        return None
    clipped = []
    for (low, high), size in zip(boundsIJK, dimensions):
        low, high = max(int(low), 0), min(int(high), int(size) - 1)
        if low > high:
            return None
        clipped.append((low, high))
    return tuple(clipped)


def _keepConnectedToCenter(mask: np.ndarray, centerIJK, bounds) -> np.ndarray:
    (i0, _), (j0, _), (k0, _) = bounds
    seed = (int(centerIJK[0]) - i0, int(centerIJK[1]) - j0, int(centerIJK[2]) - k0)
    size = (mask.shape[2], mask.shape[1], mask.shape[0])
    if not all(0 <= s < n for s, n in zip(seed, size)) or not mask[seed[2], seed[1], seed[0]]:
        return np.zeros_like(mask)

    sitkMask = sitk.GetImageFromArray(mask.astype(np.uint8))
    connected = sitk.ConnectedThreshold(sitkMask, seedList=[seed], lower=1, upper=1, replaceValue=1)
    return sitk.GetArrayFromImage(connected).astype(bool)


def _regionFill(editContext, data):
    if data.isInObject is None:
        logger.warning(f"{data.brushStrategy}: no shape stage, nothing to fill")
        return
    segmentationVoxelValue = data.segmentationVoxelValue
    bounds = clipBounds(data.isInObjectBoundsIJK, segmentationVoxelValue.dimensions)
    if bounds is None:
        return
    (i0, i1), (j0, j1), (k0, k1) = bounds

    kk, jj, ii = np.ogrid[k0 : k1 + 1, j0 : j1 + 1, i0 : i1 + 1]
    shape = (k1 - k0 + 1, j1 - j0 + 1, i1 - i0 + 1)
    mask = np.broadcast_to(np.asarray(data.isInObject(ii, jj, kk), dtype=bool), shape)

    isInThreshold = data.brushStrategy.createIsInThreshold(data)
    if isInThreshold is not None:
        imageValues = data.imageVoxelValue.getRegion(bounds)
        mask = mask & np.asarray(isInThreshold(imageValues), dtype=bool)
        settings = data.strategySpecificConfiguration.get("THRESHOLD") or {}
        if settings.get("connected"):
            mask = _keepConnectedToCenter(mask, data.centerIJK, bounds)

    for k, j, i in np.argwhere(mask):
        index = segmentationVoxelValue.toIndex((i0 + i, j0 + j, k0 + k))
        data.brushStrategy.setValue(data, index)


def _forgetCenter(editContext, data):
    data.strategySpecificConfiguration.pop("centerIJK", None)


def initializeRegionFill():
    return {
        StrategyStage.INIT_DOWN: _forgetCenter,
        StrategyStage.COMPLETE_UP: _forgetCenter,
        StrategyStage.FILL: _regionFill,
    }


def _setValue(data, index):
    existing = data.segmentationVoxelValue.getIndex(index)
    if existing in data.segmentsLocked:
        return
    if existing == data.segmentIndex:
        return
    value = data.previewSegmentIndex if data.isPreviewing else data.segmentIndex
    if existing == value:
        return
    data.previewVoxelValue.setIndex(index, value)


def _commitWithoutPreview(editContext, data):
    if not data.isPreviewing:
        acceptHistory(data.previewVoxelValue)


def initializeSetValue():
    """Write the segment index, or the preview index while previewing.

    Voxels holding a locked segment are never overwritten.
    """
    return {
        StrategyStage.SET_VALUE: _setValue,
        StrategyStage.COMPLETE_UP: _commitWithoutPreview,
    }


def _createIsInThreshold(data):
    settings = data.strategySpecificConfiguration.get("THRESHOLD") or {}
    threshold = settings.get("threshold")
    if threshold is None:
        return None
    lower, upper = (float(v) for v in threshold)

    def isInThreshold(values):
        values = np.asarray(values)
        return (values >= lower) & (values <= upper)

    return isInThreshold


def initializeThreshold():
    """Restrict fills to image values inside THRESHOLD.threshold = (lower, upper)."""
    return {StrategyStage.CREATE_IS_IN_THRESHOLD: _createIsInThreshold}


def _clearDynamicThreshold(editContext, data):
    data.strategySpecificConfiguration.setdefault("THRESHOLD", {}).pop("threshold", None)


def _computeDynamicThreshold(editContext, data):
    settings = data.strategySpecificConfiguration.setdefault("THRESHOLD", {})
    if settings.get("threshold") is not None:
        return
    imageVoxelValue = data.imageVoxelValue
    if not imageVoxelValue.isInBounds(data.centerIJK):
        return

    neighbourhood = int(settings.get("dynamicRadius", 2))
    center = data.centerIJK
    bounds = clipBounds(
        [(center[a] - neighbourhood, center[a] + neighbourhood) for a in range(3)],
        imageVoxelValue.dimensions,
    )
    samples = imageVoxelValue.getRegion(bounds)
    analyzer = IntensityAnalyzer(use_gmm=bool(settings.get("useGmm", False)))
    result = analyzer.analyze(
        samples,
        seed_intensity=float(imageVoxelValue.get(center)),
        edge_sensitivity=float(settings.get("edgeSensitivity", 0.5)),
    )
    settings["threshold"] = (result["lower"], result["upper"])
    logger.debug(f"Dynamic threshold at {center}: [{result['lower']:.1f}, {result['upper']:.1f}]")


def initializeDynamicThreshold():
    """Derive THRESHOLD.threshold from the image around the first fill of a stroke."""
    return {
        StrategyStage.INIT_DOWN: _clearDynamicThreshold,
        StrategyStage.CREATE_INITIALIZED: _computeDynamicThreshold,
    }


def _eraseSegment(editContext, data):
    data.segmentIndex = 0


def initializeErase():
    return {StrategyStage.CREATE_INITIALIZED: _eraseSegment}


def _preview(strategy, editContext, operationData):
    """Stage a fresh preview at the operation center, replacing any unresolved one."""
    if operationData.previewColors is None:
        return None
    existing = operationData.preview
    if existing is not None and existing.previewTracker is not None and existing.previewTracker.isPreviewing:
        strategy.rejectPreview(editContext, operationData)
    operationData.preview = None
    operationData.strategySpecificConfiguration.pop("centerIJK", None)
    operationData.preview = strategy.fill(editContext, operationData)
    return operationData.preview


def _acceptPreview(editContext, data):
    if data.previewTracker is None or not data.previewTracker.accept():
        return
    previewSegmentIndex = data.previewSegmentIndex or PREVIEW_SEGMENT_INDEX
    rewritten = acceptHistory(data.previewVoxelValue, previewSegmentIndex, data.segmentIndex)
    data.strategySpecificConfiguration.pop("centerIJK", None)
    logger.debug(f"Accepted preview of segment {data.segmentIndex}: {rewritten} voxels")
    triggerSegmentationDataModified(
        data.segmentationId, data.segmentationVoxelValue.getArrayOfSlices(), bus=editContext.events
    )


def _rejectPreview(editContext, data):
    if data.previewTracker is None or not data.previewTracker.reject():
        return
    restored = rejectHistory(data.previewVoxelValue)
    data.strategySpecificConfiguration.pop("centerIJK", None)
    logger.debug(f"Rejected preview: {restored} voxels restored")
    triggerSegmentationDataModified(
        data.segmentationId, data.segmentationVoxelValue.getArrayOfSlices(), bus=editContext.events
    )


def initializePreview():
    return {
        StrategyStage.PREVIEW: _preview,
        StrategyStage.ACCEPT_PREVIEW: _acceptPreview,
        StrategyStage.REJECT_PREVIEW: _rejectPreview,
    }
