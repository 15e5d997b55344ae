"""Live notification feed client for the PME securities-lending backend.

Usage::

    from pme_notify import FileStore, SessionConfig, connect

    config = SessionConfig.from_page_url("https://pme.example.com/")
    async with connect(config, store=FileStore("cursor.json")) as session:
        async for event in session:
            print(event.seq, event.event_type, event.data)

Callbacks::

    session = NotificationSession(config)

    @session.on("trade")
    def on_trade(event):
        print(event.data)

    session.on_activate("notifications")  # connects
"""

from ._version import __version__
from .client import NOTIFICATIONS_VIEW, NotificationSession
from .connection import ConnectionManager, Session
from .cursor import FileStore, KeyValueStore, MemoryStore, SequenceCursor
from .errors import (
    NotifyConnectionError,
    NotifyError,
    NotifyProtocolError,
    NotifyStorageError,
    NotifyTimeoutError,
)
from .formatting import describe_state, format_event
from .protocol import FrameParser, encode_subscribe
from .reconnect import ReconnectPolicy
from .recovery import RecoveryCoordinator
from .sink import NotificationLog, NotificationSink
from .types import (
    BufferInfo,
    ConnectionState,
    ConnectionStatus,
    ControlMessage,
    ReconnectConfig,
    RecoveryComplete,
    RecoveryStart,
    RecoveryState,
    ResumeMode,
    SequencedEvent,
    SessionConfig,
)


def connect(
    config: SessionConfig | None = None,
    **kwargs,
) -> NotificationSession:
    """Create a notification session.

    Use as an async context manager. Keyword arguments are forwarded
    to :class:`NotificationSession` -- ``store``, ``sinks``,
    ``connect_factory``.
    """
    return NotificationSession(config, **kwargs)


__all__ = [
    "__version__",
    "connect",
    "NOTIFICATIONS_VIEW",
    "NotificationSession",
    "ConnectionManager",
    "Session",
    "FrameParser",
    "encode_subscribe",
    "ReconnectPolicy",
    "RecoveryCoordinator",
    "SequenceCursor",
    "KeyValueStore",
    "MemoryStore",
    "FileStore",
    "NotificationSink",
    "NotificationLog",
    "describe_state",
    "format_event",
    "SequencedEvent",
    "RecoveryStart",
    "RecoveryComplete",
    "BufferInfo",
    "ControlMessage",
    "ConnectionState",
    "ConnectionStatus",
    "RecoveryState",
    "ResumeMode",
    "ReconnectConfig",
    "SessionConfig",
    "NotifyError",
    "NotifyConnectionError",
    "NotifyProtocolError",
    "NotifyStorageError",
    "NotifyTimeoutError",
]
