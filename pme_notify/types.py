# =============================================================================
# PME Notify -- Type Definitions
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from .constants import (
    CONNECTION_TIMEOUT,
    CURSOR_STORAGE_KEY,
    DEFAULT_HOST,
    EVENT_QUEUE_SIZE,
    NOTIFICATIONS_PATH,
    RECONNECT_FACTOR,
    RECONNECT_INITIAL_DELAY,
    RECONNECT_MAX_DELAY,
)


class ConnectionState(str, Enum):
    """Lifecycle state of one connection attempt.

    Flow: DISCONNECTED -> CONNECTING -> OPEN -> (CLOSING) -> DISCONNECTED.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


class ConnectionStatus(str, Enum):
    """Status reported to observers (the dashboard's status indicator)."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECOVERING = "recovering"
    LIVE = "live"
    ERROR = "error"
    DISCONNECTED = "disconnected"


class RecoveryState(str, Enum):
    """Whether the server is currently replaying buffered events."""

    IDLE = "idle"
    RECOVERING = "recovering"


class ResumeMode(str, Enum):
    """Which ``from_seq`` the subscribe request carries.

    REPLAY_ALL -- always ``0``, the server replays its whole buffer.
    FROM_CURSOR -- the persisted cursor value.
    """

    REPLAY_ALL = "replay-all"
    FROM_CURSOR = "from-cursor"


@dataclass(frozen=True, slots=True)
class SequencedEvent:
    """One server-emitted occurrence.

    Attributes:
        seq: Server-assigned sequence number.
        event_type: Event name, e.g. ``"order_ack"``, ``"trade"``.
        data: Event fields as sent by the backend.
    """

    seq: int
    event_type: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RecoveryStart:
    """Server is about to replay buffered events."""

    requested_seq: int | None = None
    oldest_seq: int | None = None
    latest_seq: int | None = None
    count: int | None = None
    all_available: bool | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    type = "recovery_start"


@dataclass(frozen=True, slots=True)
class RecoveryComplete:
    """Server finished replaying; ``count`` is the number it sent."""

    count: int | None = None
    latest_seq: int | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    type = "recovery_complete"


@dataclass(frozen=True, slots=True)
class BufferInfo:
    """Server-side notification buffer statistics."""

    size: int | None = None
    capacity: int | None = None
    oldest_seq: int | None = None
    latest_seq: int | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    type = "buffer_info"


ControlMessage = RecoveryStart | RecoveryComplete | BufferInfo


@dataclass
class ReconnectConfig:
    """Configuration for automatic reconnection.

    Attributes:
        initial_delay: Delay in seconds before the first retry.
        max_delay: Maximum delay cap in seconds.
        factor: Multiplier applied after every scheduled retry.
    """

    initial_delay: float = RECONNECT_INITIAL_DELAY
    max_delay: float = RECONNECT_MAX_DELAY
    factor: float = RECONNECT_FACTOR


@dataclass
class SessionConfig:
    """Configuration for a :class:`~pme_notify.client.NotificationSession`.

    Attributes:
        host: ``host[:port]`` of the backend serving the dashboard.
        secure: Use ``wss://`` instead of ``ws://``.
        path: Notification endpoint path.
        storage_key: Key under which the cursor is persisted.
        resume_mode: What the subscribe request asks the server to replay.
        deduplicate: Drop sequenced events at or below the cursor.
        queue_size: Max events buffered for async iteration.
        connection_timeout: Seconds allowed for the opening handshake.
        extra_headers: Additional HTTP headers for the handshake.
        reconnect: Backoff settings.
    """

    host: str = DEFAULT_HOST
    secure: bool = False
    path: str = NOTIFICATIONS_PATH
    storage_key: str = CURSOR_STORAGE_KEY
    resume_mode: ResumeMode = ResumeMode.REPLAY_ALL
    deduplicate: bool = False
    queue_size: int = EVENT_QUEUE_SIZE
    connection_timeout: float = CONNECTION_TIMEOUT
    extra_headers: dict[str, str] = field(default_factory=dict)
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)

    @property
    def url(self) -> str:
        scheme = "wss" if self.secure else "ws"
        return f"{scheme}://{self.host}{self.path}"

    @classmethod
    def from_page_url(cls, page_url: str, **kwargs: Any) -> SessionConfig:
        """Derive host and transport security from the dashboard page URL.

        ``https://pme.example.com/`` gives ``wss://pme.example.com/ws/notifications``.
        """
        parts = urlsplit(page_url)
        if not parts.netloc:
            raise ValueError(f"Page URL has no host: {page_url!r}")
        return cls(
            host=parts.netloc,
            secure=parts.scheme in ("https", "wss"),
            **kwargs,
        )
