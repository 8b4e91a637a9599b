"""YAML configuration for brush strategies and representation conversion.

Example YAML:
    version: "1.0"
    name: "Default strategies"
    preview:
      color: [255, 255, 0, 128]
    threshold:
      range: [-100, 300]
      connected: false
    dynamic_threshold:
      radius: 2
      edge_sensitivity: 0.5
      use_gmm: false
    surface:
      level: 0.5
      step_size: 1
    contour:
      level: 0.5
    tools:
      CircularBrush: FILL_INSIDE_CIRCLE
      CircularEraser: ERASE_INSIDE_CIRCLE
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_TOOLS = {
    "CircularBrush": "FILL_INSIDE_CIRCLE",
    "CircularEraser": "ERASE_INSIDE_CIRCLE",
    "ThresholdCircle": "THRESHOLD_INSIDE_CIRCLE",
    "DynamicThresholdCircle": "DYNAMIC_THRESHOLD_INSIDE_CIRCLE",
    "SphereBrush": "FILL_INSIDE_SPHERE",
    "SphereEraser": "ERASE_INSIDE_SPHERE",
    "ThresholdSphere": "THRESHOLD_INSIDE_SPHERE",
}


@dataclass
class StrategyConfig:
    """Settings shared by all strategies and conversions."""

    # Metadata
    version: str = "1.0"
    name: str = "Strategies"
    description: str = ""

    # Preview
    preview_color: tuple[int, int, int, int] = (255, 255, 0, 128)

    # Thresholding
    threshold_range: tuple[float, float] = (-100.0, 300.0)
    threshold_connected: bool = False
    dynamic_radius: int = 2
    edge_sensitivity: float = 0.5
    use_gmm: bool = False

    # Conversion
    surface_level: float = 0.5
    surface_step_size: int = 1
    contour_level: float = 0.5

    # Tool name -> named strategy
    tools: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TOOLS))

    # Source path (set when loading)
    source_path: Path | None = None

    @classmethod
    def load(cls, config_path: Path | str) -> StrategyConfig:
        """Load configuration from a YAML file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        config = cls.from_dict(data)
        config.source_path = config_path
        logger.info(f"Loaded strategy config '{config.name}' from {config_path}")
        return config

    @classmethod
    def from_dict(cls, data: dict) -> StrategyConfig:
        config = cls()

        config.version = str(data.get("version", "1.0"))
        config.name = data.get("name", "Strategies")
        config.description = data.get("description", "")

        preview = data.get("preview", {})
        config.preview_color = tuple(preview.get("color", (255, 255, 0, 128)))

        threshold = data.get("threshold", {})
        config.threshold_range = tuple(threshold.get("range", (-100.0, 300.0)))
        config.threshold_connected = threshold.get("connected", False)

        dynamic = data.get("dynamic_threshold", {})
        config.dynamic_radius = dynamic.get("radius", 2)
        config.edge_sensitivity = dynamic.get("edge_sensitivity", 0.5)
        config.use_gmm = dynamic.get("use_gmm", False)

        surface = data.get("surface", {})
        config.surface_level = surface.get("level", 0.5)
        config.surface_step_size = surface.get("step_size", 1)

        contour = data.get("contour", {})
        config.contour_level = contour.get("level", 0.5)

        if "tools" in data:
            config.tools = dict(data["tools"])

        return config

    def validate(self) -> list[str]:
        """Return validation error messages (empty if valid)."""
        errors = []

        if len(self.preview_color) != 4 or not all(0 <= c <= 255 for c in self.preview_color):
            errors.append("preview color must be 4 values in [0, 255]")

        if len(self.threshold_range) != 2 or self.threshold_range[0] > self.threshold_range[1]:
            errors.append(f"Invalid threshold range: {self.threshold_range}")

        if self.dynamic_radius < 1:
            errors.append("dynamic_threshold radius must be at least 1")

        if not 0.0 <= self.edge_sensitivity <= 1.0:
            errors.append("edge_sensitivity must be in [0, 1]")

        if not 0.0 < self.surface_level < 1.0:
            errors.append("surface level must be in (0, 1)")

        if self.surface_step_size < 1:
            errors.append("surface step_size must be at least 1")

        if not 0.0 < self.contour_level < 1.0:
            errors.append("contour level must be in (0, 1)")

        # BrushStrategies imports this module
        from .BrushStrategies import STRATEGIES

        for tool, strategy in self.tools.items():
            if strategy not in STRATEGIES:
                errors.append(f"Unknown strategy for tool {tool}: {strategy}")

        return errors

    def thresholdConfiguration(self) -> dict[str, Any]:
        """THRESHOLD entry of a strategySpecificConfiguration built from these settings."""
        return {
            "threshold": tuple(self.threshold_range),
            "connected": self.threshold_connected,
            "dynamicRadius": self.dynamic_radius,
            "edgeSensitivity": self.edge_sensitivity,
            "useGmm": self.use_gmm,
        }

    def previewColors(self, segmentIndex: int) -> dict[int, tuple]:
        """``OperationData.previewColors`` that previews ``segmentIndex`` in the configured color."""
        return {segmentIndex: tuple(self.preview_color)}

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "name": self.name,
            "description": self.description,
            "preview": {
                "color": list(self.preview_color),
            },
            "threshold": {
                "range": list(self.threshold_range),
                "connected": self.threshold_connected,
            },
            "dynamic_threshold": {
                "radius": self.dynamic_radius,
                "edge_sensitivity": self.edge_sensitivity,
                "use_gmm": self.use_gmm,
            },
            "surface": {
                "level": self.surface_level,
                "step_size": self.surface_step_size,
            },
            "contour": {
                "level": self.contour_level,
            },
            "tools": dict(self.tools),
        }

    def save(self, output_path: Path | str) -> None:
        output_path = Path(output_path)
        with open(output_path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
        logger.info(f"Saved strategy config to {output_path}")


def create_default_config() -> StrategyConfig:
    """Create the default strategy configuration."""
    return StrategyConfig(
        name="Default strategies",
        description="Circle and sphere brushes with preview and thresholding",
    )
