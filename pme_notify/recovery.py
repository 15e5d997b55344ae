# =============================================================================
# PME Notify -- Recovery Coordinator
# =============================================================================
#
# Tracks the server-driven replay window that follows every subscribe:
#   recovery_start -> buffered events -> recovery_complete
# =============================================================================

from __future__ import annotations

from ._logging import logger
from .types import BufferInfo, RecoveryComplete, RecoveryStart, RecoveryState


class RecoveryCoordinator:
    """IDLE -> RECOVERING -> IDLE state machine with an event counter."""

    def __init__(self) -> None:
        self._state = RecoveryState.IDLE
        self._count = 0
        self._windows_completed = 0
        self._last_buffer_info: BufferInfo | None = None

    @property
    def state(self) -> RecoveryState:
        return self._state

    @property
    def is_recovering(self) -> bool:
        return self._state == RecoveryState.RECOVERING

    @property
    def count(self) -> int:
        return self._count

    @property
    def last_buffer_info(self) -> BufferInfo | None:
        return self._last_buffer_info

    def start(self, message: RecoveryStart) -> None:
        """Open a fresh recovery window, restarting the counter if one is open."""
        if self.is_recovering:
            logger.debug("Recovery restarted after %d events", self._count)
        self._state = RecoveryState.RECOVERING
        self._count = 0
        if message.all_available is False:
            logger.warning(
                "Requested seq %s no longer buffered (oldest available %s), gap likely",
                message.requested_seq,
                message.oldest_seq,
            )
        logger.info(
            "Recovery started (requested=%s, latest=%s, announced=%s)",
            message.requested_seq,
            message.latest_seq,
            message.count,
        )

    def record_event(self) -> None:
        if self.is_recovering:
            self._count += 1

    def complete(self, message: RecoveryComplete) -> int:
        """Close the window and return the number of events observed in it."""
        observed = self._count
        if message.count is not None and message.count != observed:
            logger.warning(
                "Recovery count mismatch: server sent %d, received %d",
                message.count,
                observed,
            )
        logger.info("Recovery complete: %d events replayed", observed)
        self._state = RecoveryState.IDLE
        self._count = 0
        self._windows_completed += 1
        return observed

    def buffer_info(self, message: BufferInfo) -> None:
        self._last_buffer_info = message
        logger.debug(
            "Buffer info: size=%s capacity=%s oldest=%s latest=%s",
            message.size,
            message.capacity,
            message.oldest_seq,
            message.latest_seq,
        )

    def get_stats(self) -> dict:
        return {
            "state": self._state.value,
            "count": self._count,
            "windows_completed": self._windows_completed,
        }

    def reset(self) -> None:
        self._state = RecoveryState.IDLE
        self._count = 0
