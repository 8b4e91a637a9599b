"""Test fixtures and synthetic data generators for SegmentEditorStrategies tests."""

from .synthetic_segmentation import (
    create_cube_labelmap,
    create_split_volume,
    create_square_contour,
    create_stack,
    create_volume,
    create_volume_segmentation,
)

__all__ = [
    "create_volume",
    "create_split_volume",
    "create_volume_segmentation",
    "create_stack",
    "create_cube_labelmap",
    "create_square_contour",
]
