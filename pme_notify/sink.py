# =============================================================================
# PME Notify -- Notification Sink
# =============================================================================
#
# The display side of the session.  The session never renders; it calls
# these three methods and the UI decides what to do with them.
# =============================================================================

from __future__ import annotations

from collections import deque
from typing import Any, Protocol, runtime_checkable

from .constants import MAX_DISPLAYED_EVENTS
from .formatting import format_event
from .types import ConnectionStatus, ControlMessage, SequencedEvent


@runtime_checkable
class NotificationSink(Protocol):
    """Observer contract for status changes, events and control messages."""

    def on_status_change(self, status: ConnectionStatus) -> Any: ...

    def on_event(self, event: SequencedEvent) -> Any: ...

    def on_control(self, message: ControlMessage) -> Any: ...


class NotificationLog:
    """Bounded, oldest-first record of what the operator would see.

    Keeps the newest *max_events* entries; older ones fall off the top.

    Args:
        max_events: Retained entry count (default 100).
    """

    def __init__(self, max_events: int = MAX_DISPLAYED_EVENTS) -> None:
        if max_events < 1:
            raise ValueError(f"max_events must be >= 1, got {max_events}")
        self._entries: deque[SequencedEvent] = deque(maxlen=max_events)
        self._controls: list[ControlMessage] = []
        self.status = ConnectionStatus.DISCONNECTED
        self.total_events = 0

    # -- NotificationSink -----------------------------------------------------

    def on_status_change(self, status: ConnectionStatus) -> None:
        self.status = status

    def on_event(self, event: SequencedEvent) -> None:
        self.total_events += 1
        self._entries.append(event)

    def on_control(self, message: ControlMessage) -> None:
        self._controls.append(message)

    # -- Display ----------------------------------------------------------------

    @property
    def entries(self) -> list[SequencedEvent]:
        return list(self._entries)

    @property
    def controls(self) -> list[ControlMessage]:
        return list(self._controls)

    @property
    def max_events(self) -> int:
        return self._entries.maxlen or MAX_DISPLAYED_EVENTS

    def set_max_events(self, max_events: int) -> None:
        """Change the retention limit, trimming the oldest entries if needed."""
        if max_events < 1:
            raise ValueError(f"max_events must be >= 1, got {max_events}")
        self._entries = deque(self._entries, maxlen=max_events)

    def lines(self) -> list[str]:
        return [format_event(e) for e in self._entries]

    def system(self, message: str, kind: str = "info") -> None:
        """Add a local notice (not from the server) to the log."""
        self._entries.append(
            SequencedEvent(seq=0, event_type="system", data={"message": message, "type": kind})
        )

    def clear(self) -> None:
        self._entries.clear()
        self._controls.clear()
        self.total_events = 0
