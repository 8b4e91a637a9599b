"""SegmentEditorStrategies library.

Composable brush strategies over labelmap voxel buffers, with a reversible
preview, and conversion between labelmap, contour and surface
representations of a segmentation.
"""

from .BrushStrategies import (
    DYNAMIC_THRESHOLD_INSIDE_CIRCLE,
    ERASE_INSIDE_CIRCLE,
    ERASE_INSIDE_SPHERE,
    FILL_INSIDE_CIRCLE,
    FILL_INSIDE_SPHERE,
    STRATEGIES,
    THRESHOLD_INSIDE_CIRCLE,
    THRESHOLD_INSIDE_SPHERE,
    createStrategyForTool,
)
from .BrushStrategy import BrushStrategy, StrategyPipeline, StrategyStage
from .ContourComputation import computeContourData
from .Errors import (
    DuplicateStrategyStage,
    GeometryMismatch,
    MissingViewportContext,
    NoConvertiblePath,
    NoSourceRepresentation,
    NotFound,
    OutOfBounds,
    SegmentationStrategyError,
    UnknownStrategyStage,
)
from .Geometry import ImageGeometry, geometryFromSlices
from .ImageCache import CachedImage, ImageCache, ImageVolume
from .ImageIO import readVolume, sitkImageFromVolume, volumeFromSitkImage, writeVolume
from .Initializers import (
    initializeCircle,
    initializeDynamicThreshold,
    initializeErase,
    initializePreview,
    initializeRegionFill,
    initializeSetValue,
    initializeSphere,
    initializeThreshold,
)
from .IntensityAnalyzer import IntensityAnalyzer
from .LabelmapComputation import computeLabelmapData
from .OperationData import (
    EditContext,
    InitializedOperationData,
    LabelmapType,
    OperationData,
    Viewport,
    ViewportType,
)
from .PolySeg import PolySeg
from .PolygonExtraction import PolygonExtractor, SkimagePolygonExtractor
from .PreviewState import PREVIEW_SEGMENT_INDEX, PreviewState, PreviewTracker
from .RepresentationCache import CacheStats, RepresentationCache
from .SegmentationEvents import (
    Events,
    SegmentationEventBus,
    triggerSegmentationDataModified,
    triggerSegmentationRemoved,
)
from .SegmentationState import (
    Contour,
    ContourSegmentationData,
    LabelmapStackData,
    LabelmapVolumeData,
    RepresentationType,
    Segmentation,
    SegmentationStore,
    SurfaceMesh,
    SurfaceSegmentationData,
)
from .StrategyConfig import StrategyConfig, create_default_config
from .SurfaceComputation import computeSurfaceData
from .VoxelValue import (
    HistoryVoxelValue,
    StackVoxelValue,
    VolumeVoxelValue,
    VoxelValue,
    acceptHistory,
    historyVoxelValue,
    rejectHistory,
)

__all__ = [
    # Strategies
    "BrushStrategy",
    "StrategyPipeline",
    "StrategyStage",
    "STRATEGIES",
    "FILL_INSIDE_CIRCLE",
    "ERASE_INSIDE_CIRCLE",
    "THRESHOLD_INSIDE_CIRCLE",
    "DYNAMIC_THRESHOLD_INSIDE_CIRCLE",
    "FILL_INSIDE_SPHERE",
    "ERASE_INSIDE_SPHERE",
    "THRESHOLD_INSIDE_SPHERE",
    "createStrategyForTool",
    # Initializers
    "initializeCircle",
    "initializeSphere",
    "initializeRegionFill",
    "initializeSetValue",
    "initializeThreshold",
    "initializeDynamicThreshold",
    "initializeErase",
    "initializePreview",
    "IntensityAnalyzer",
    # Edit data
    "OperationData",
    "InitializedOperationData",
    "EditContext",
    "Viewport",
    "ViewportType",
    "LabelmapType",
    # Voxel access
    "VoxelValue",
    "VolumeVoxelValue",
    "StackVoxelValue",
    "HistoryVoxelValue",
    "historyVoxelValue",
    "acceptHistory",
    "rejectHistory",
    # Preview
    "PREVIEW_SEGMENT_INDEX",
    "PreviewState",
    "PreviewTracker",
    # Images
    "ImageGeometry",
    "geometryFromSlices",
    "ImageCache",
    "ImageVolume",
    "CachedImage",
    "readVolume",
    "writeVolume",
    "volumeFromSitkImage",
    "sitkImageFromVolume",
    # Segmentations
    "RepresentationType",
    "Segmentation",
    "SegmentationStore",
    "LabelmapVolumeData",
    "LabelmapStackData",
    "Contour",
    "ContourSegmentationData",
    "SurfaceMesh",
    "SurfaceSegmentationData",
    "Events",
    "SegmentationEventBus",
    "triggerSegmentationDataModified",
    "triggerSegmentationRemoved",
    # Conversion
    "PolySeg",
    "PolygonExtractor",
    "SkimagePolygonExtractor",
    "RepresentationCache",
    "CacheStats",
    "computeSurfaceData",
    "computeLabelmapData",
    "computeContourData",
    # Configuration
    "StrategyConfig",
    "create_default_config",
    # Errors
    "SegmentationStrategyError",
    "UnknownStrategyStage",
    "DuplicateStrategyStage",
    "GeometryMismatch",
    "OutOfBounds",
    "NotFound",
    "NoSourceRepresentation",
    "MissingViewportContext",
    "NoConvertiblePath",
]
