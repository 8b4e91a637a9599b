"""Named brush strategies and the tool -> strategy lookup."""

from __future__ import annotations

import logging
from typing import Optional

from .BrushStrategy import BrushStrategy
from .Errors import NotFound
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
from .StrategyConfig import StrategyConfig, create_default_config

logger = logging.getLogger(__name__)

FILL_INSIDE_CIRCLE = BrushStrategy(
    "FillInsideCircle",
    initializeRegionFill,
    initializeSetValue,
    initializeCircle,
    initializePreview,
)

ERASE_INSIDE_CIRCLE = BrushStrategy(
    "EraseInsideCircle",
    initializeRegionFill,
    initializeSetValue,
    initializeCircle,
    initializeErase,
)

THRESHOLD_INSIDE_CIRCLE = BrushStrategy(
    "ThresholdInsideCircle",
    initializeRegionFill,
    initializeSetValue,
    initializeCircle,
    initializeThreshold,
    initializePreview,
)

DYNAMIC_THRESHOLD_INSIDE_CIRCLE = BrushStrategy(
    "DynamicThresholdInsideCircle",
    initializeRegionFill,
    initializeSetValue,
    initializeCircle,
    initializeDynamicThreshold,
    initializeThreshold,
    initializePreview,
)

FILL_INSIDE_SPHERE = BrushStrategy(
    "FillInsideSphere",
    initializeRegionFill,
    initializeSetValue,
    initializeSphere,
    initializePreview,
)

ERASE_INSIDE_SPHERE = BrushStrategy(
    "EraseInsideSphere",
    initializeRegionFill,
    initializeSetValue,
    initializeSphere,
    initializeErase,
)

THRESHOLD_INSIDE_SPHERE = BrushStrategy(
    "ThresholdInsideSphere",
    initializeRegionFill,
    initializeSetValue,
    initializeSphere,
    initializeThreshold,
    initializePreview,
)

STRATEGIES = {
    "FILL_INSIDE_CIRCLE": FILL_INSIDE_CIRCLE,
    "ERASE_INSIDE_CIRCLE": ERASE_INSIDE_CIRCLE,
    "THRESHOLD_INSIDE_CIRCLE": THRESHOLD_INSIDE_CIRCLE,
    "DYNAMIC_THRESHOLD_INSIDE_CIRCLE": DYNAMIC_THRESHOLD_INSIDE_CIRCLE,
    "FILL_INSIDE_SPHERE": FILL_INSIDE_SPHERE,
    "ERASE_INSIDE_SPHERE": ERASE_INSIDE_SPHERE,
    "THRESHOLD_INSIDE_SPHERE": THRESHOLD_INSIDE_SPHERE,
}


def createStrategyForTool(toolName: str, config: Optional[StrategyConfig] = None) -> BrushStrategy:
    """Return the strategy configured for ``toolName``.

    Raises:
        NotFound: If the tool is not configured or names an unknown strategy.
    """
    config = config or create_default_config()
    strategyName = config.tools.get(toolName)
    if strategyName is None:
        raise NotFound(f"No strategy configured for tool {toolName!r}")
    try:
        strategy = STRATEGIES[strategyName]
    except KeyError:
        raise NotFound(f"Tool {toolName!r} names unknown strategy {strategyName!r}") from None
    logger.debug(f"Tool {toolName} uses {strategy}")
    return strategy
