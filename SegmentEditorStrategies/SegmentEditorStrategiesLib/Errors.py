"""Error types raised by the segmentation strategy and conversion engine.

Construction-time errors (UnknownStrategyStage, DuplicateStrategyStage) are
raised while composing a BrushStrategy. Edit-time errors (GeometryMismatch,
OutOfBounds) abort a single edit. Conversion-time errors
(NoSourceRepresentation, MissingViewportContext, NoConvertiblePath) reject a
representation request without caching anything.
"""


class SegmentationStrategyError(Exception):
    """Base class for all errors raised by this library."""


class UnknownStrategyStage(SegmentationStrategyError):
    """An initializer contributed a stage name that is not recognized."""

    def __init__(self, stageName):
        super().__init__(f"Didn't find {stageName!r} as a brush strategy stage")
        self.stageName = stageName


class DuplicateStrategyStage(SegmentationStrategyError):
    """Two initializers contributed the same singleton stage."""

    def __init__(self, stageName, strategyName=None):
        where = f" in strategy {strategyName!r}" if strategyName else ""
        super().__init__(f"The singleton stage {stageName!r} already exists{where}")
        self.stageName = stageName


class GeometryMismatch(SegmentationStrategyError):
    """Source image and segmentation volumes are not voxel aligned."""


class OutOfBounds(SegmentationStrategyError, IndexError):
    """A voxel position falls outside the buffer it addresses."""


class NotFound(SegmentationStrategyError, KeyError):
    """A volume, image or segmentation id could not be resolved."""

    def __str__(self):
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class NoSourceRepresentation(SegmentationStrategyError):
    """The representation a conversion starts from is missing."""


class MissingViewportContext(SegmentationStrategyError):
    """A conversion needs a viewport to resolve its target geometry."""


class NoConvertiblePath(SegmentationStrategyError):
    """No representation is available that converts to the requested one."""
