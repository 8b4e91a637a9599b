"""Cache of computed representations.

Entries are keyed by (segmentationId, representation kind) and stay valid
until the segmentation's data is modified. Nothing is stored for a
conversion that failed or was abandoned, or whose segmentation was modified
while it ran.
"""

import logging
import time
from typing import Any, Optional

logger = logging.getLogger(__name__)


class RepresentationCache:
    """Converted representations keyed by (segmentationId, kind)."""

    def __init__(self):
        self._entries: dict[tuple[str, str], Any] = {}
        # Bumped on every modification of a segmentation
        self._versions: dict[str, int] = {}
        self.stats = CacheStats()

    @staticmethod
    def _key(segmentationId: str, kind) -> tuple[str, str]:
        return (segmentationId, getattr(kind, "value", kind))

    def get(self, segmentationId: str, kind) -> Optional[Any]:
        key = self._key(segmentationId, kind)
        if key in self._entries:
            self.stats.hits += 1
            logger.debug(f"Representation cache hit for {key}")
            return self._entries[key]
        self.stats.misses += 1
        logger.debug(f"Representation cache miss for {key}")
        return None

    def contains(self, segmentationId: str, kind) -> bool:
        return self._key(segmentationId, kind) in self._entries

    def put(self, segmentationId: str, kind, value: Any, computeTimeMs: float = 0.0) -> None:
        self._entries[self._key(segmentationId, kind)] = value
        self.stats.total_compute_time_ms += computeTimeMs

    def invalidate(self, segmentationId: str) -> int:
        """Drop every entry of a segmentation; returns how many were dropped."""
        stale = [key for key in self._entries if key[0] == segmentationId]
        for key in stale:
            del self._entries[key]
        if stale:
            self.stats.invalidations += 1
            logger.debug(f"Invalidated {len(stale)} cached representation(s) of {segmentationId}")
        return len(stale)

    def version(self, segmentationId: str) -> int:
        return self._versions.get(segmentationId, 0)

    def onSegmentationDataModified(self, segmentationId: str, modifiedSlices=None, **kwargs) -> None:
        self._versions[segmentationId] = self.version(segmentationId) + 1
        self.invalidate(segmentationId)

    def onSegmentationRemoved(self, segmentationId: str, **kwargs) -> None:
        self.onSegmentationDataModified(segmentationId)

    def clear(self) -> None:
        self._entries.clear()
        self.stats.reset()

    def __len__(self):
        return len(self._entries)


class Stopwatch:
    """Elapsed wall time in milliseconds."""

    def __init__(self):
        self.start = time.perf_counter()

    @property
    def elapsedMs(self) -> float:
        return (time.perf_counter() - self.start) * 1000


class CacheStats:
    """Statistics for cache performance monitoring."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.hits = 0
        self.misses = 0
        self.invalidations = 0
        self.total_compute_time_ms = 0.0

    @property
    def hitRate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def log_summary(self):
        total = self.hits + self.misses
        if total > 0:
            logger.debug(f"Representation cache hit rate: {self.hitRate:.1%} ({self.hits}/{total})")
        if self.invalidations:
            logger.debug(f"Representation cache invalidations: {self.invalidations}")
        if self.total_compute_time_ms > 0:
            logger.debug(f"Total conversion time: {self.total_compute_time_ms:.1f}ms")
