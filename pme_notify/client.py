# =============================================================================
# PME Notify -- Notification Session
# =============================================================================
#
# Primary public API.  Wires frame parsing, recovery tracking and the
# durable cursor to the observers (sinks, callbacks, async iterator).
# =============================================================================

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Awaitable, Callable

from ._logging import logger
from .connection import ConnectFactory, ConnectionManager
from .cursor import KeyValueStore, SequenceCursor
from .errors import NotifyConnectionError, NotifyTimeoutError
from .protocol import FrameParser
from .recovery import RecoveryCoordinator
from .sink import NotificationSink
from .types import (
    BufferInfo,
    ConnectionState,
    ConnectionStatus,
    ControlMessage,
    RecoveryComplete,
    RecoveryStart,
    RecoveryState,
    ResumeMode,
    SequencedEvent,
    SessionConfig,
)

EventHandler = Callable[[SequencedEvent], Any]
AsyncEventHandler = Callable[[SequencedEvent], Awaitable[Any]]
StatusHandler = Callable[[ConnectionStatus], Any]
ControlHandler = Callable[[ControlMessage], Any]

NOTIFICATIONS_VIEW = "notifications"


class NotificationSession:
    """Live notification feed with reconnect, recovery and a durable cursor.

    Args:
        config: Endpoint, resume and dedup settings. Defaults to
            ``ws://localhost:8080/ws/notifications``.
        store: Cursor persistence. Defaults to an in-memory store.
        sinks: Observers implementing :class:`NotificationSink`.
        connect_factory: Websocket factory, for tests or custom transports.

    Example::

        store = FileStore("~/.pme/cursor.json")
        async with NotificationSession(SessionConfig(host="pme:8080"), store=store) as s:
            async for event in s:
                print(event.seq, event.event_type, event.data)
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        *,
        store: KeyValueStore | None = None,
        sinks: list[NotificationSink] | None = None,
        connect_factory: ConnectFactory | None = None,
    ) -> None:
        self._config = config or SessionConfig()

        # Services
        self._parser = FrameParser()
        self._recovery = RecoveryCoordinator()
        self._cursor = SequenceCursor(store, key=self._config.storage_key)
        self._cursor.load()

        # Observers
        self._sinks: list[NotificationSink] = list(sinks or [])
        self._handlers: dict[str, list[EventHandler | AsyncEventHandler]] = defaultdict(
            list
        )
        self._wildcard_handlers: list[EventHandler | AsyncEventHandler] = []
        self._status_handlers: list[StatusHandler] = []
        self._control_handlers: list[ControlHandler] = []

        # Event queue for async iteration
        self._event_queue: asyncio.Queue[SequencedEvent | None] = asyncio.Queue(
            maxsize=self._config.queue_size
        )
        self._background_tasks: set[asyncio.Task[Any]] = set()

        # Stats
        self._status = ConnectionStatus.DISCONNECTED
        self._events_delivered = 0
        self._duplicates_dropped = 0
        self._last_recovery_count: int | None = None

        self._connection = ConnectionManager(
            self._config.url,
            resume_point=self._resume_point,
            on_message=self._on_raw_message,
            on_status_change=self._on_status_change,
            reconnect=self._config.reconnect,
            extra_headers=self._config.extra_headers,
            connection_timeout=self._config.connection_timeout,
            connect_factory=connect_factory,
        )

        self._control_handlers_by_type: dict[type, Callable[[Any], None]] = {
            RecoveryStart: self._handle_recovery_start,
            RecoveryComplete: self._handle_recovery_complete,
            BufferInfo: self._handle_buffer_info,
        }

    # -- Context manager ------------------------------------------------------

    async def __aenter__(self) -> NotificationSession:
        self.connect()
        try:
            await self._connection.wait_until_open(self._config.connection_timeout)
        except NotifyTimeoutError:
            logger.warning(
                "Socket not open within %.0fs, retrying in background",
                self._config.connection_timeout,
            )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()

    # -- Async iterator -------------------------------------------------------

    def __aiter__(self) -> NotificationSession:
        return self

    async def __anext__(self) -> SequencedEvent:
        event = await self._event_queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    # -- Connect / Disconnect -------------------------------------------------

    def connect(self) -> None:
        """Open the feed. No-op while a session is connecting or open."""
        self._connection.connect()

    async def disconnect(self) -> None:
        """Close with code 1000 and stop iteration. No auto-reconnect follows."""
        for task in self._background_tasks:
            task.cancel()
        self._background_tasks.clear()

        try:
            await self._connection.disconnect()
        finally:
            self._enqueue(None)

    async def close(self) -> None:
        """Alias for disconnect."""
        await self.disconnect()

    def on_activate(self, view: str) -> None:
        """Entry point for the UI when a dashboard view becomes active.

        Activating the notifications view connects if nothing is live.
        """
        if view != NOTIFICATIONS_VIEW:
            return
        if self._connection.state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            return
        logger.debug("Notifications view activated, connecting")
        self.connect()

    async def force_reconnect(self) -> None:
        """Drop the socket and reconnect through the backoff path."""
        await self._connection.force_reconnect()

    async def recv(self, timeout: float | None = None) -> SequencedEvent:
        """Receive a single event (alternative to async iteration).

        Raises:
            NotifyConnectionError: If the session was disconnected.
            asyncio.TimeoutError: If *timeout* expires.
        """
        if timeout is not None:
            event = await asyncio.wait_for(self._event_queue.get(), timeout=timeout)
        else:
            event = await self._event_queue.get()

        if event is None:
            # Re-queue sentinel so other callers also see the close signal
            self._enqueue(None)
            raise NotifyConnectionError("Session disconnected")
        return event

    # -- Properties -----------------------------------------------------------

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def is_connected(self) -> bool:
        return self._connection.is_open

    @property
    def cursor(self) -> int:
        """Last accepted sequence number."""
        return self._cursor.value

    @property
    def recovery_state(self) -> RecoveryState:
        return self._recovery.state

    @property
    def last_recovery_count(self) -> int | None:
        """Events replayed in the last completed recovery window."""
        return self._last_recovery_count

    @property
    def queue_size(self) -> int:
        return self._event_queue.qsize()

    # -- Observer registration ------------------------------------------------

    def add_sink(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    def remove_sink(self, sink: NotificationSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    def on(
        self, event_type: str
    ) -> Callable[[EventHandler | AsyncEventHandler], EventHandler | AsyncEventHandler]:
        """Decorator to register a handler for one event type.

        Example::

            @session.on("trade")
            def handle(event: SequencedEvent):
                print(event.data["trade_nid"])
        """

        def decorator(
            fn: EventHandler | AsyncEventHandler,
        ) -> EventHandler | AsyncEventHandler:
            self._handlers[event_type].append(fn)
            return fn

        return decorator

    def on_any(
        self, fn: EventHandler | AsyncEventHandler
    ) -> EventHandler | AsyncEventHandler:
        """Register a wildcard handler that receives all events."""
        self._wildcard_handlers.append(fn)
        return fn

    def on_status(self, fn: StatusHandler) -> StatusHandler:
        self._status_handlers.append(fn)
        return fn

    def on_control(self, fn: ControlHandler) -> ControlHandler:
        self._control_handlers.append(fn)
        return fn

    def off(self, event_type: str, fn: EventHandler | AsyncEventHandler) -> None:
        """Remove a specific handler."""
        handlers = self._handlers.get(event_type, [])
        if fn in handlers:
            handlers.remove(fn)

    # -- Stats ----------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        return {
            "status": self._status.value,
            "state": self._connection.state.value,
            "url": self._connection.url,
            "cursor": self._cursor.value,
            "resume_mode": self._config.resume_mode.value,
            "recovery": self._recovery.get_stats(),
            "last_recovery_count": self._last_recovery_count,
            "parser": self._parser.get_stats(),
            "events_delivered": self._events_delivered,
            "duplicates_dropped": self._duplicates_dropped,
            "reconnect_count": self._connection.reconnect_count,
            "queue_size": self._event_queue.qsize(),
        }

    # -- Internal: message handling -------------------------------------------

    def _resume_point(self) -> int:
        if self._config.resume_mode == ResumeMode.FROM_CURSOR:
            return self._cursor.value
        return 0

    def _on_raw_message(self, data: str | bytes) -> None:
        """Decode one raw frame and dispatch its units in order."""
        for unit in self._parser.parse(data):
            if isinstance(unit, SequencedEvent):
                self._handle_sequenced_event(unit)
            else:
                self._handle_control(unit)

    def _handle_sequenced_event(self, event: SequencedEvent) -> None:
        if self._config.deduplicate and 0 < event.seq <= self._cursor.value:
            self._duplicates_dropped += 1
            logger.debug("Dropping already seen seq %d", event.seq)
            return

        self._cursor.advance(event.seq)
        self._recovery.record_event()
        self._dispatch_event(event)

    def _dispatch_event(self, event: SequencedEvent) -> None:
        self._events_delivered += 1
        for sink in self._sinks:
            self._invoke(sink.on_event, event, event.event_type)

        handlers = self._handlers.get(event.event_type, []) + self._wildcard_handlers
        for handler in handlers:
            self._invoke(handler, event, event.event_type)

        self._enqueue(event)

    def _handle_control(self, message: ControlMessage) -> None:
        handler = self._control_handlers_by_type.get(type(message))
        if handler is not None:
            handler(message)

        for sink in self._sinks:
            self._invoke(sink.on_control, message, message.type)
        for fn in self._control_handlers:
            self._invoke(fn, message, message.type)

    def _handle_recovery_start(self, message: RecoveryStart) -> None:
        self._recovery.start(message)
        self._emit_status(ConnectionStatus.RECOVERING)

    def _handle_recovery_complete(self, message: RecoveryComplete) -> None:
        self._last_recovery_count = self._recovery.complete(message)
        self._emit_status(ConnectionStatus.LIVE)

    def _handle_buffer_info(self, message: BufferInfo) -> None:
        self._recovery.buffer_info(message)

    def _on_status_change(self, status: ConnectionStatus) -> None:
        self._emit_status(status)

    def _emit_status(self, status: ConnectionStatus) -> None:
        self._status = status
        for sink in self._sinks:
            self._invoke(sink.on_status_change, status, "status")
        for fn in self._status_handlers:
            self._invoke(fn, status, "status")

    def _invoke(self, fn: Callable[[Any], Any], arg: Any, label: str) -> None:
        """Call an observer; its failures are logged, never propagated."""
        try:
            result = fn(arg)
            if asyncio.iscoroutine(result):
                self._fire_task(result)
        except Exception as exc:
            logger.error("Handler error for '%s': %s", label, exc)

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _enqueue(self, event: SequencedEvent | None) -> None:
        """Put on the iterator queue, dropping the oldest entry when full."""
        try:
            self._event_queue.put_nowait(event)
        except asyncio.QueueFull:
            try:
                self._event_queue.get_nowait()
                self._event_queue.put_nowait(event)
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                pass
