# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Real-time WebSocket transport for Kahla pusher events.

``connect()`` blocks for the lifetime of one connection.  Frames are
parsed into typed events and published on ``events`` for the dispatcher
thread; connection state changes are reported to registered listeners.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

from websocket import (
    WebSocket,
    WebSocketException,
    WebSocketTimeoutException,
    create_connection,
)

from kahla_notify.kahla.events import Event, EventParseError, parse_event


logger = logging.getLogger(__name__)


class TransportState(Enum):
    """Connection state of the real-time transport.

    Attributes:
        DISCONNECTED: Not connected, or the connection dropped unexpectedly.
        CONNECTING: Handshake in progress.
        CONNECTED: Receiving events.
        CLOSED: Closed on request (interrupt).
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class TransportError(Exception):
    """Raised when the connection fails or drops unexpectedly."""


StateListener = Callable[[TransportState], None]


class RealtimeTransport(Protocol):
    """Interface of the real-time event channel."""

    events: queue.Queue[Event]

    @property
    def state(self) -> TransportState: ...

    def add_state_listener(self, listener: StateListener) -> None: ...

    def connect(self, address: str, interrupt: threading.Event) -> None:
        """Connect and receive events until closed.

        Returns normally only when ``interrupt`` is set.

        Raises:
            TransportError: If the connection fails or drops.
        """
        ...


class KahlaWebSocket:
    """``RealtimeTransport`` over a ``websocket-client`` connection.

    Args:
        read_timeout: Seconds each ``recv()`` may block before the
            interrupt event is checked again.
        connect_timeout: Handshake timeout in seconds.
        connection_factory: Callable creating the socket (for testing).
    """

    def __init__(
        self,
        read_timeout: float = 1.0,
        connect_timeout: float = 30.0,
        connection_factory: Callable[..., WebSocket] = create_connection,
    ) -> None:
        self.events: queue.Queue[Event] = queue.Queue()
        self._read_timeout = read_timeout
        self._connect_timeout = connect_timeout
        self._connection_factory = connection_factory
        self._state = TransportState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> TransportState:
        with self._state_lock:
            return self._state

    def add_state_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: TransportState) -> None:
        with self._state_lock:
            if self._state == state:
                return
            self._state = state
        logger.debug("Transport state: %s", state.value)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Transport state listener failed")

    def connect(self, address: str, interrupt: threading.Event) -> None:
        if interrupt.is_set():
            self._set_state(TransportState.CLOSED)
            return

        self._set_state(TransportState.CONNECTING)
        try:
            ws = self._connection_factory(address, timeout=self._connect_timeout)
        except (WebSocketException, OSError) as e:
            self._set_state(TransportState.DISCONNECTED)
            raise TransportError(f"connect failed: {e}") from e

        try:
            ws.settimeout(self._read_timeout)
            self._set_state(TransportState.CONNECTED)
            self._read_loop(ws, interrupt)
            self._set_state(TransportState.CLOSED)
        finally:
            try:
                ws.close()
            except (WebSocketException, OSError) as e:
                logger.debug("Error closing WebSocket: %s", e)

    def _read_loop(self, ws: WebSocket, interrupt: threading.Event) -> None:
        while not interrupt.is_set():
            try:
                frame = ws.recv()
            except WebSocketTimeoutException:
                continue
            except (WebSocketException, OSError) as e:
                self._set_state(TransportState.DISCONNECTED)
                raise TransportError(f"disconnected: {e}") from e

            if not frame:
                self._set_state(TransportState.DISCONNECTED)
                raise TransportError("connection closed by server")
            self._handle_frame(frame)

    def _handle_frame(self, frame: str | bytes) -> None:
        """Parse one frame and publish the event; bad frames are dropped."""
        try:
            data: Any = json.loads(frame)
            event = parse_event(data)
        except (json.JSONDecodeError, UnicodeDecodeError, EventParseError) as e:
            logger.warning("Dropping bad frame: %s", e)
            return
        self.events.put(event)
