# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the WebSocket pusher transport."""

import json
import threading
from unittest.mock import MagicMock

import pytest
from websocket import (
    WebSocketBadStatusException,
    WebSocketConnectionClosedException,
    WebSocketTimeoutException,
)

from kahla_notify.kahla.events import NewFriendRequestEvent, WereDeletedEvent
from kahla_notify.kahla.transport import (
    KahlaWebSocket,
    TransportError,
    TransportState,
)


class FakeSocket:
    """Scripted WebSocket connection.

    ``recv()`` returns (or raises) the scripted items in order.  Once the
    script is exhausted it sets the interrupt event and times out, which
    ends the read loop the same way a real shutdown does.
    """

    def __init__(
        self, frames: list[object], interrupt: threading.Event
    ) -> None:
        self.frames = list(frames)
        self.interrupt = interrupt
        self.timeout: float | None = None
        self.closed = False

    def settimeout(self, timeout: float) -> None:
        self.timeout = timeout

    def recv(self) -> object:
        if not self.frames:
            self.interrupt.set()
            raise WebSocketTimeoutException("idle")
        item = self.frames.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


def _frame(**data: object) -> str:
    return json.dumps(data)


def _transport(
    frames: list[object], interrupt: threading.Event
) -> tuple[KahlaWebSocket, FakeSocket, MagicMock]:
    socket = FakeSocket(frames, interrupt)
    factory = MagicMock(return_value=socket)
    transport = KahlaWebSocket(
        read_timeout=0.5, connect_timeout=5.0, connection_factory=factory
    )
    return transport, socket, factory


def _drain(transport: KahlaWebSocket) -> list[object]:
    events = []
    while not transport.events.empty():
        events.append(transport.events.get_nowait())
    return events


class TestKahlaWebSocket:
    """Tests for KahlaWebSocket.connect."""

    def test_initial_state(self) -> None:
        transport = KahlaWebSocket(connection_factory=MagicMock())
        assert transport.state == TransportState.DISCONNECTED

    def test_interrupt_before_connect(self) -> None:
        """An already-set interrupt closes without dialing."""
        interrupt = threading.Event()
        interrupt.set()
        transport, _socket, factory = _transport([], interrupt)

        transport.connect("wss://p", interrupt)

        factory.assert_not_called()
        assert transport.state == TransportState.CLOSED

    def test_publishes_events_until_interrupt(self) -> None:
        interrupt = threading.Event()
        transport, socket, factory = _transport(
            [
                _frame(type=1, requester={"id": "r", "nickName": "R"}),
                WebSocketTimeoutException("quiet"),
                _frame(type=2, trigger={"id": "t", "nickName": "T"}),
            ],
            interrupt,
        )
        states: list[TransportState] = []
        transport.add_state_listener(states.append)

        transport.connect("wss://p/abc", interrupt)

        factory.assert_called_once_with("wss://p/abc", timeout=5.0)
        assert socket.timeout == 0.5
        assert socket.closed
        assert states == [
            TransportState.CONNECTING,
            TransportState.CONNECTED,
            TransportState.CLOSED,
        ]
        events = _drain(transport)
        assert [type(e) for e in events] == [
            NewFriendRequestEvent,
            WereDeletedEvent,
        ]

    def test_bad_frames_are_dropped(self) -> None:
        """Unparseable frames are logged and skipped."""
        interrupt = threading.Event()
        transport, _socket, _factory = _transport(
            [
                "{not json",
                "[1, 2]",
                _frame(type=0, content="x"),
                _frame(type=2, trigger={"id": "t"}),
            ],
            interrupt,
        )

        transport.connect("wss://p", interrupt)

        events = _drain(transport)
        assert len(events) == 1
        assert isinstance(events[0], WereDeletedEvent)

    def test_connect_failure(self) -> None:
        interrupt = threading.Event()
        error = WebSocketBadStatusException("Handshake status 403", 403)
        factory = MagicMock(side_effect=error)
        transport = KahlaWebSocket(connection_factory=factory)

        with pytest.raises(TransportError, match="connect failed"):
            transport.connect("wss://p", interrupt)

        assert transport.state == TransportState.DISCONNECTED

    def test_connect_os_error(self) -> None:
        interrupt = threading.Event()
        factory = MagicMock(side_effect=ConnectionRefusedError("refused"))
        transport = KahlaWebSocket(connection_factory=factory)

        with pytest.raises(TransportError, match="refused"):
            transport.connect("wss://p", interrupt)

    def test_dropped_connection(self) -> None:
        """A receive error ends the connection as DISCONNECTED."""
        interrupt = threading.Event()
        transport, socket, _factory = _transport(
            [WebSocketConnectionClosedException("gone")], interrupt
        )

        with pytest.raises(TransportError, match="disconnected"):
            transport.connect("wss://p", interrupt)

        assert transport.state == TransportState.DISCONNECTED
        assert socket.closed
        assert not interrupt.is_set()

    def test_empty_frame_means_closed_by_server(self) -> None:
        interrupt = threading.Event()
        transport, _socket, _factory = _transport([""], interrupt)

        with pytest.raises(TransportError, match="closed by server"):
            transport.connect("wss://p", interrupt)

        assert transport.state == TransportState.DISCONNECTED

    def test_failing_listener_does_not_break_transport(self) -> None:
        interrupt = threading.Event()
        transport, _socket, _factory = _transport([], interrupt)
        transport.add_state_listener(MagicMock(side_effect=RuntimeError("x")))
        seen: list[TransportState] = []
        transport.add_state_listener(seen.append)

        transport.connect("wss://p", interrupt)

        assert seen[-1] == TransportState.CLOSED
