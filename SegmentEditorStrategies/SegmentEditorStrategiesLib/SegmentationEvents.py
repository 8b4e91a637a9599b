"""Segmentation change notifications.

Edits emit SEGMENTATION_DATA_MODIFIED once per completed fill, carrying the
segmentation id and the modified slice indices. Renderers and caches
subscribe to it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Events(str, Enum):
    SEGMENTATION_DATA_MODIFIED = "SEGMENTATION_DATA_MODIFIED"
    SEGMENTATION_REPRESENTATION_ADDED = "SEGMENTATION_REPRESENTATION_ADDED"
    SEGMENTATION_REMOVED = "SEGMENTATION_REMOVED"


class SegmentationEventBus:
    """Synchronous publish/subscribe dispatcher."""

    def __init__(self):
        self._listeners: dict[Events, list[Callable[..., None]]] = {}

    def subscribe(self, event: Events, callback: Callable[..., None]) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._listeners.setdefault(Events(event), []).append(callback)

        def unsubscribe():
            listeners = self._listeners.get(Events(event), [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def emit(self, event: Events, **payload) -> None:
        for callback in list(self._listeners.get(Events(event), [])):
            callback(**payload)

    def listenerCount(self, event: Events) -> int:
        return len(self._listeners.get(Events(event), []))


eventBus = SegmentationEventBus()


def triggerSegmentationDataModified(
    segmentationId: str,
    modifiedSlices: Optional[list[int]] = None,
    bus: Optional[SegmentationEventBus] = None,
) -> None:
    modifiedSlices = list(modifiedSlices or [])
    logger.debug(f"Segmentation {segmentationId} modified on slices {modifiedSlices}")
    (bus or eventBus).emit(
        Events.SEGMENTATION_DATA_MODIFIED,
        segmentationId=segmentationId,
        modifiedSlices=modifiedSlices,
    )


def triggerSegmentationRepresentationAdded(
    segmentationId: str,
    representationType,
    bus: Optional[SegmentationEventBus] = None,
) -> None:
    (bus or eventBus).emit(
        Events.SEGMENTATION_REPRESENTATION_ADDED,
        segmentationId=segmentationId,
        representationType=representationType,
    )


def triggerSegmentationRemoved(segmentationId: str, bus: Optional[SegmentationEventBus] = None) -> None:
    logger.debug(f"Segmentation {segmentationId} removed")
    (bus or eventBus).emit(Events.SEGMENTATION_REMOVED, segmentationId=segmentationId)
