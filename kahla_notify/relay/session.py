# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Session manager keeping one authenticated real-time session alive.

The session cycles through three stages: login, pusher initialization
and transport connection.  Each stage has a bounded retry budget with
exponential backoff.  What happens on success and on exhaustion is
defined in one transition table:

    stage        success       exhausted
    LOGIN        INIT_PUSHER   LOGIN
    INIT_PUSHER  CONNECT       LOGIN
    CONNECT      (stop)        LOGIN

The connect stage blocks for the lifetime of a connection and returns
normally only when the shutdown event is set.  Non-interrupt failures
never end the loop.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum

from kahla_notify.kahla.client import ChatServiceClient, KahlaError
from kahla_notify.kahla.transport import (
    RealtimeTransport,
    TransportError,
    TransportState,
)
from kahla_notify.relay.errors import (
    AuthenticationFailure,
    PusherInitFailure,
    SessionStageError,
    TransportConnectFailure,
)
from kahla_notify.relay.retry import RetryPolicy


logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    LOGGING_IN = "logging_in"
    AUTHENTICATED = "authenticated"
    INITIALIZING_PUSHER = "initializing_pusher"
    CONNECTING_TRANSPORT = "connecting_transport"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    INTERRUPTED = "interrupted"


class Stage(Enum):
    LOGIN = "login"
    INIT_PUSHER = "init-pusher"
    CONNECT = "connect"


#: Stage that follows a successful stage; None ends the loop.
NEXT_STAGE: dict[Stage, Stage | None] = {
    Stage.LOGIN: Stage.INIT_PUSHER,
    Stage.INIT_PUSHER: Stage.CONNECT,
    Stage.CONNECT: None,
}

#: Stage the cycle restarts from when a stage exhausts its retries.
RESTART_STAGE: dict[Stage, Stage] = {
    Stage.LOGIN: Stage.LOGIN,
    Stage.INIT_PUSHER: Stage.LOGIN,
    Stage.CONNECT: Stage.LOGIN,
}

#: Floor for the default uptime that marks a connection as healthy.
MIN_STABLE_SECONDS = 1.0

_FAILURES: dict[Stage, type[SessionStageError]] = {
    Stage.LOGIN: AuthenticationFailure,
    Stage.INIT_PUSHER: PusherInitFailure,
    Stage.CONNECT: TransportConnectFailure,
}


class SessionManager:
    """Drive the login → init → connect cycle until shutdown.

    Args:
        client: Chat service client.
        transport: Real-time transport.
        email: Account email.
        password: Account password.
        retry: Per-stage retry policy.
        on_authenticated: Called after every successful login (the
            service uses it to refresh the registry in the background).
        stable_after_seconds: Uptime after which a dropped connection
            gets a fresh connect budget. Defaults to the policy's
            ``max_delay_seconds``, at least ``MIN_STABLE_SECONDS``;
            shorter-lived connections count as failed connect attempts.
    """

    def __init__(
        self,
        client: ChatServiceClient,
        transport: RealtimeTransport,
        email: str,
        password: str,
        retry: RetryPolicy | None = None,
        on_authenticated: Callable[[], object] | None = None,
        stable_after_seconds: float | None = None,
    ) -> None:
        self._client = client
        self._transport = transport
        self._email = email
        self._password = password
        self.retry = retry or RetryPolicy()
        self._on_authenticated = on_authenticated
        self._state = SessionState.IDLE
        self._state_lock = threading.Lock()
        self._address: str | None = None
        if stable_after_seconds is None:
            stable_after_seconds = max(
                self.retry.max_delay_seconds, MIN_STABLE_SECONDS
            )
        self._stable_after = stable_after_seconds
        self._connected_at: float | None = None
        transport.add_state_listener(self._on_transport_state)

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: SessionState) -> None:
        with self._state_lock:
            self._state = state

    def _on_transport_state(self, state: TransportState) -> None:
        if state == TransportState.CONNECTED:
            self._connected_at = time.monotonic()
            self._set_state(SessionState.CONNECTED)
            logger.info("Connected to pusher OK.")

    def _was_stable(self) -> bool:
        """Whether the last connection outlived the stability threshold."""
        if self._connected_at is None:
            return False
        return time.monotonic() - self._connected_at >= self._stable_after

    def run(self, shutdown: threading.Event) -> None:
        """Keep the session alive until ``shutdown`` is set."""
        stage = Stage.LOGIN
        attempt = 0
        steps = {
            Stage.LOGIN: self._login,
            Stage.INIT_PUSHER: self._init_pusher,
            Stage.CONNECT: self._connect,
        }

        while not shutdown.is_set():
            attempt += 1
            try:
                steps[stage](shutdown, attempt)
            except SessionStageError as e:
                failure: SessionStageError = e
            except Exception as e:
                logger.exception("Unexpected error in %s stage", stage.value)
                failure = _FAILURES[stage](stage.value, attempt, e)
            else:
                next_stage = NEXT_STAGE[stage]
                if next_stage is None:
                    break
                stage, attempt = next_stage, 0
                continue

            if shutdown.is_set():
                break
            if stage is Stage.CONNECT and self._was_stable():
                attempt = 1
            if attempt >= self.retry.attempts:
                restart = RESTART_STAGE[stage]
                logger.error(
                    "%s failed too many times (%d attempts): %s. "
                    "Restarting from %s.",
                    stage.value,
                    attempt,
                    failure,
                    restart.value,
                )
                stage, attempt = restart, 0
                continue

            delay = self.retry.backoff(attempt)
            logger.warning(
                "%s (attempt %d/%d). Retry in %.1fs.",
                failure,
                attempt,
                self.retry.attempts,
                delay,
            )
            if shutdown.wait(delay):
                break

        self._set_state(SessionState.INTERRUPTED)
        logger.info("Session manager stopped.")

    def _login(self, shutdown: threading.Event, attempt: int) -> None:
        self._set_state(SessionState.LOGGING_IN)
        logger.info("Login as user: %s", self._email)
        try:
            self._client.login(self._email, self._password)
        except KahlaError as e:
            raise AuthenticationFailure(Stage.LOGIN.value, attempt, e) from e
        self._set_state(SessionState.AUTHENTICATED)
        logger.info("Login OK.")
        if self._on_authenticated is not None:
            try:
                self._on_authenticated()
            except Exception:
                logger.exception("Post-login callback failed")

    def _init_pusher(self, shutdown: threading.Event, attempt: int) -> None:
        self._set_state(SessionState.INITIALIZING_PUSHER)
        logger.info("Initializing pusher.")
        try:
            self._address = self._client.init_pusher()
        except KahlaError as e:
            raise PusherInitFailure(Stage.INIT_PUSHER.value, attempt, e) from e
        logger.info("Initialize pusher OK.")

    def _connect(self, shutdown: threading.Event, attempt: int) -> None:
        assert self._address is not None
        self._set_state(SessionState.CONNECTING_TRANSPORT)
        self._connected_at = None
        logger.info("Connecting to pusher.")
        try:
            self._transport.connect(self._address, shutdown)
        except TransportError as e:
            self._set_state(SessionState.DISCONNECTED)
            raise TransportConnectFailure(Stage.CONNECT.value, attempt, e) from e
        if not shutdown.is_set():
            self._set_state(SessionState.DISCONNECTED)
            raise TransportConnectFailure(
                Stage.CONNECT.value, attempt, "connection ended without interrupt"
            )
        logger.info("Pusher connection closed on interrupt.")
