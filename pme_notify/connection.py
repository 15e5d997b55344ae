# =============================================================================
# PME Notify -- Connection Manager
# =============================================================================
#
# WebSocket lifecycle management: connect, subscribe, receive, reconnect.
# One Session object per connection attempt; nothing lives at module level.
# =============================================================================

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable
from uuid import uuid4

import websockets.asyncio.client
from websockets.exceptions import ConnectionClosedError

from ._logging import logger
from .constants import (
    CLOSE_TIMEOUT,
    CONNECTION_TIMEOUT,
    MAX_FRAME_SIZE,
    RECONNECT_REASON,
    USER_DISCONNECT_REASON,
    WS_CLOSE_ABNORMAL,
    WS_CLOSE_GOING_AWAY,
    WS_CLOSE_NORMAL,
    WS_CLOSE_SERVER_ERROR,
)
from .errors import NotifyTimeoutError
from .protocol import encode_subscribe
from .reconnect import ReconnectPolicy
from .types import ConnectionState, ConnectionStatus, ReconnectConfig

ConnectFactory = Callable[..., Awaitable[Any]]


@dataclass(eq=False)
class Session:
    """State of one connection attempt, discarded once it closes."""

    url: str
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    state: ConnectionState = ConnectionState.CONNECTING
    ws: Any | None = None
    task: asyncio.Task[None] | None = None
    user_initiated: bool = False
    close_code: int | None = None
    close_reason: str = ""
    opened_at: float | None = None

    @property
    def is_live(self) -> bool:
        return self.state in (ConnectionState.CONNECTING, ConnectionState.OPEN)


class ConnectionManager:
    """Owns the notification socket: open, subscribe, receive, reconnect.

    ``connect()`` only schedules work on the running loop and returns;
    open/message/close handling each run later on the session's task.
    Frames are passed to *on_message* one at a time, in delivery order.

    Args:
        url: ``ws://`` or ``wss://`` endpoint.
        resume_point: Returns the ``from_seq`` for the subscribe request.
        on_message: Called with every raw inbound frame.
        on_status_change: Called with every :class:`ConnectionStatus`.
        reconnect: Backoff settings (ignored when *policy* is given).
        policy: Pre-built backoff calculator.
        extra_headers: Additional HTTP headers for the handshake.
        connection_timeout: Seconds allowed for the opening handshake.
        connect_factory: Coroutine factory returning an open websocket;
            defaults to :func:`websockets.asyncio.client.connect`.
    """

    def __init__(
        self,
        url: str,
        *,
        resume_point: Callable[[], int] | None = None,
        on_message: Callable[[str | bytes], Any] | None = None,
        on_status_change: Callable[[ConnectionStatus], Any] | None = None,
        reconnect: ReconnectConfig | None = None,
        policy: ReconnectPolicy | None = None,
        extra_headers: dict[str, str] | None = None,
        connection_timeout: float = CONNECTION_TIMEOUT,
        connect_factory: ConnectFactory | None = None,
    ) -> None:
        self._url = url
        self._resume_point = resume_point or (lambda: 0)
        self._on_message = on_message
        self._on_status_change = on_status_change
        self._policy = policy or ReconnectPolicy(reconnect)
        self._extra_headers = extra_headers or {}
        self._connection_timeout = connection_timeout
        self._connect_factory = connect_factory or websockets.asyncio.client.connect

        self._session: Session | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._reconnect_delay: float | None = None
        self._reconnect_count = 0
        self._open_event = asyncio.Event()
        self._destroyed = False

    # -- Properties -----------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def state(self) -> ConnectionState:
        if self._session is None:
            return ConnectionState.DISCONNECTED
        return self._session.state

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    @property
    def policy(self) -> ReconnectPolicy:
        return self._policy

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def reconnect_delay(self) -> float | None:
        """Delay of the pending reconnect timer, ``None`` when idle."""
        return self._reconnect_delay

    @property
    def reconnect_count(self) -> int:
        return self._reconnect_count

    # -- Connect / Disconnect -------------------------------------------------

    def connect(self) -> None:
        """Start a connection attempt unless one is already live."""
        if self._destroyed:
            logger.debug("connect() ignored: manager destroyed")
            return
        if self._session is not None and self._session.is_live:
            logger.debug("Already connected or connecting")
            return

        loop = asyncio.get_running_loop()
        session = Session(url=self._url)
        self._session = session
        logger.debug("Session %s connecting to %s", session.id, session.url)
        self._set_status(ConnectionStatus.CONNECTING)
        session.task = loop.create_task(self._run_session(session))

    async def disconnect(self) -> None:
        """Close with code 1000. Never followed by an automatic reconnect."""
        self._cancel_reconnect()
        session = self._session
        if session is None:
            return

        session.user_initiated = True
        if session.state == ConnectionState.OPEN and session.ws is not None:
            session.state = ConnectionState.CLOSING
            await self._close_ws(session.ws, WS_CLOSE_NORMAL, USER_DISCONNECT_REASON)
        elif session.state == ConnectionState.CONNECTING:
            # Handshake still in flight: _run_session closes it once open.
            session.state = ConnectionState.CLOSING

        task = session.task
        if task is None or task is asyncio.current_task() or task.done():
            return
        _, pending = await asyncio.wait(
            {task}, timeout=self._connection_timeout + CLOSE_TIMEOUT
        )
        if pending:
            logger.warning("Session %s did not close in time, cancelling", session.id)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def destroy(self) -> None:
        """Disconnect and refuse any further connect()."""
        self._destroyed = True
        await self.disconnect()

    async def force_reconnect(self) -> None:
        """Drop the current socket and go through the regular retry path."""
        session = self._session
        if session is None:
            self._cancel_reconnect()
            self.connect()
            return
        if session.state == ConnectionState.OPEN and session.ws is not None:
            await self._close_ws(session.ws, WS_CLOSE_GOING_AWAY, RECONNECT_REASON)

    async def wait_until_open(self, timeout: float | None = None) -> None:
        """Block until a session is open.

        Raises:
            NotifyTimeoutError: If *timeout* expires first.
        """
        try:
            await asyncio.wait_for(self._open_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            raise NotifyTimeoutError(
                f"Notification socket not open after {timeout}s"
            ) from None

    # -- Internal: session lifecycle ------------------------------------------

    async def _run_session(self, session: Session) -> None:
        try:
            ws = await asyncio.wait_for(
                self._connect_factory(
                    session.url,
                    additional_headers=self._extra_headers,
                    max_size=MAX_FRAME_SIZE,
                    open_timeout=None,  # asyncio.wait_for handles timeout
                ),
                timeout=self._connection_timeout,
            )
        except asyncio.CancelledError:
            self._finish_session(session, WS_CLOSE_ABNORMAL, "cancelled")
            raise
        except asyncio.TimeoutError:
            logger.warning(
                "Connection to %s timed out after %.1fs",
                session.url,
                self._connection_timeout,
            )
            self._set_status(ConnectionStatus.ERROR)
            self._finish_session(session, WS_CLOSE_ABNORMAL, "timeout")
            return
        except Exception as exc:
            logger.warning("Failed to connect to %s: %s", session.url, exc)
            self._set_status(ConnectionStatus.ERROR)
            self._finish_session(session, WS_CLOSE_ABNORMAL, str(exc))
            return

        session.ws = ws
        if session.user_initiated:
            await self._close_ws(ws, WS_CLOSE_NORMAL, USER_DISCONNECT_REASON)
            self._finish_session(session, WS_CLOSE_NORMAL, USER_DISCONNECT_REASON)
            return

        session.state = ConnectionState.OPEN
        session.opened_at = time.monotonic()
        self._policy.reset()
        self._cancel_reconnect()
        self._open_event.set()

        from_seq = self._resume_point()
        try:
            await ws.send(encode_subscribe(from_seq))
            logger.info("Connected to %s, subscribed from seq %d", session.url, from_seq)
        except Exception as exc:
            # The receive loop below observes the closure.
            logger.warning("Subscribe send failed: %s", exc)
        self._set_status(ConnectionStatus.CONNECTED)

        try:
            await self._recv_loop(session, ws)
        except asyncio.CancelledError:
            await self._close_ws(ws, WS_CLOSE_NORMAL, USER_DISCONNECT_REASON)
            self._finish_session(session, WS_CLOSE_ABNORMAL, "cancelled")
            raise

    async def _recv_loop(self, session: Session, ws: Any) -> None:
        """Read frames until the socket closes, then run close handling."""
        try:
            async for message in ws:
                if self._on_message:
                    self._on_message(message)
        except ConnectionClosedError as exc:
            logger.debug("Connection closed with error: %s", exc)
            self._set_status(ConnectionStatus.ERROR)
        except Exception as exc:
            logger.warning("Receive loop error: %s", exc)
            self._set_status(ConnectionStatus.ERROR)
            await self._close_ws(ws, WS_CLOSE_SERVER_ERROR, "Client error")

        code = getattr(ws, "close_code", None) or WS_CLOSE_ABNORMAL
        reason = getattr(ws, "close_reason", None) or ""
        self._finish_session(session, code, reason)

    def _finish_session(self, session: Session, code: int, reason: str) -> None:
        session.state = ConnectionState.DISCONNECTED
        session.close_code = code
        session.close_reason = reason
        session.ws = None
        logger.info("Notification socket closed: code=%d reason=%s", code, reason)

        # A newer session may already own the manager (connect() after
        # disconnect()); an old one closing must not touch it.
        if self._session is not session:
            return
        self._session = None
        self._open_event.clear()
        self._set_status(ConnectionStatus.DISCONNECTED)

        if session.user_initiated:
            return
        self._schedule_reconnect()

    async def _close_ws(self, ws: Any, code: int, reason: str) -> None:
        try:
            await asyncio.wait_for(ws.close(code, reason), timeout=CLOSE_TIMEOUT)
        except Exception as exc:
            logger.debug("Close failed: %s", exc)

    # -- Internal: reconnection -----------------------------------------------

    def _schedule_reconnect(self) -> None:
        """Arm the single reconnect timer, replacing any pending one."""
        if self._destroyed:
            return
        self._cancel_reconnect()

        delay = self._policy.next_delay()
        self._reconnect_count += 1
        logger.info(
            "Reconnecting in %.1fs (attempt %d)", delay, self._reconnect_count
        )
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._on_reconnect_timer)
        self._reconnect_delay = delay

    def _on_reconnect_timer(self) -> None:
        self._reconnect_handle = None
        self._reconnect_delay = None
        self.connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        self._reconnect_delay = None

    # -- Status ---------------------------------------------------------------

    def _set_status(self, status: ConnectionStatus) -> None:
        logger.debug("Status: %s", status.value)
        if self._on_status_change:
            self._on_status_change(status)
