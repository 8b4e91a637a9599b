"""Pytest configuration and fixtures for SegmentEditorStrategies tests."""

import logging
import os
import sys

import pytest

# Add module path so that SegmentEditorStrategiesLib is importable without installation
_THIS_DIR = os.path.dirname(os.path.abspath(__file__))
_MODULE_DIR = os.path.dirname(os.path.dirname(_THIS_DIR))
if _MODULE_DIR not in sys.path:
    sys.path.insert(0, _MODULE_DIR)

from SegmentEditorStrategiesLib import (  # noqa: E402
    EditContext,
    Events,
    ImageCache,
    SegmentationEventBus,
    Viewport,
    ViewportType,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "conversion: representation conversion tests")
    config.addinivalue_line("markers", "slow: tests that run marching cubes on larger grids")


@pytest.fixture(autouse=True)
def _debug_logging(caplog):
    caplog.set_level(logging.DEBUG, logger="SegmentEditorStrategiesLib")


@pytest.fixture
def cache():
    """Empty image cache, isolated from the module-level one."""
    return ImageCache()


@pytest.fixture
def event_bus():
    return SegmentationEventBus()


@pytest.fixture
def modified_events(event_bus):
    """List collecting (segmentationId, modifiedSlices) of every data-modified event."""
    received = []
    event_bus.subscribe(
        Events.SEGMENTATION_DATA_MODIFIED,
        lambda segmentationId, modifiedSlices: received.append((segmentationId, modifiedSlices)),
    )
    return received


@pytest.fixture
def volume_viewport():
    return Viewport(viewportId="axial", type=ViewportType.ORTHOGRAPHIC, volumeId="ct")


@pytest.fixture
def volume_context(cache, event_bus, volume_viewport):
    return EditContext(viewport=volume_viewport, cache=cache, events=event_bus)
