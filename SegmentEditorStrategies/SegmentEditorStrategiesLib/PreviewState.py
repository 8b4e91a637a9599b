"""Preview/commit state of one edit.

Idle -> Previewing when a preview fill modifies at least one slice, then
Accepted or Rejected, then back to Idle on the next stroke. Accepting or
rejecting an edit that is not Previewing does nothing.
"""

import logging
from enum import Enum

logger = logging.getLogger(__name__)

PREVIEW_SEGMENT_INDEX = 255


class PreviewState(Enum):
    IDLE = "idle"
    PREVIEWING = "previewing"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class PreviewTracker:
    """Tracks where an edit is in the preview lifecycle."""

    def __init__(self):
        self.state = PreviewState.IDLE

    @property
    def isPreviewing(self) -> bool:
        return self.state == PreviewState.PREVIEWING

    def begin(self) -> None:
        if self.state != PreviewState.PREVIEWING:
            logger.debug(f"Preview {self.state.value} -> previewing")
        self.state = PreviewState.PREVIEWING

    def accept(self) -> bool:
        """Move to Accepted; returns False if there was nothing to accept."""
        return self._resolve(PreviewState.ACCEPTED)

    def reject(self) -> bool:
        """Move to Rejected; returns False if there was nothing to reject."""
        return self._resolve(PreviewState.REJECTED)

    def reset(self) -> None:
        self.state = PreviewState.IDLE

    def _resolve(self, target: PreviewState) -> bool:
        if self.state != PreviewState.PREVIEWING:
            logger.debug(f"Ignoring {target.value} in state {self.state.value}")
            return False
        self.state = target
        logger.debug(f"Preview {target.value}")
        return True
