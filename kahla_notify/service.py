# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Notify service orchestrator.

This module contains:
- NotifyService: runs the session manager, event dispatcher and relay
  server as three threads sharing one shutdown event
- main: CLI entry point
"""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from collections.abc import Callable
from pathlib import Path

from kahla_notify.config import (
    ConfigError,
    ConfigNotFoundError,
    ServerConfig,
    write_config_template,
)
from kahla_notify.kahla.client import ChatServiceClient, KahlaClient
from kahla_notify.kahla.cryptojs import CryptoJsCipher, MessageCipher
from kahla_notify.kahla.transport import KahlaWebSocket, RealtimeTransport
from kahla_notify.logging import configure_logging
from kahla_notify.relay.conversations import ConversationService
from kahla_notify.relay.dispatcher import EventDispatcher
from kahla_notify.relay.errors import ProtocolViolation
from kahla_notify.relay.server import RelayServer
from kahla_notify.relay.session import SessionManager


logger = logging.getLogger(__name__)


class NotifyService:
    """Wire the relay components together and run them.

    Args:
        config: Complete server configuration.
        client: Chat service client.  Built from config if None.
        transport: Real-time transport.  A WebSocket transport if None.
        cipher: Message cipher.  CryptoJS-compatible AES if None.
    """

    def __init__(
        self,
        config: ServerConfig,
        client: ChatServiceClient | None = None,
        transport: RealtimeTransport | None = None,
        cipher: MessageCipher | None = None,
    ) -> None:
        self.config = config
        self.client = client or KahlaClient(
            config.server, timeout=config.request_timeout_seconds
        )
        self.transport = transport or KahlaWebSocket()
        self.cipher = cipher or CryptoJsCipher()

        self.conversations = ConversationService(
            self.client, self.cipher, send_retry=config.send_retry
        )
        self.session = SessionManager(
            self.client,
            self.transport,
            config.email,
            config.password,
            retry=config.retry,
            on_authenticated=self.conversations.trigger_refresh,
        )
        self.dispatcher = EventDispatcher(
            self.transport.events, self.conversations, self.cipher
        )
        self.server = RelayServer(
            self.conversations,
            host=config.host,
            port=config.port,
            docs_url=config.docs_url,
            session_state=lambda: self.session.state.value,
        )

        self._shutdown = threading.Event()
        self._fatal: BaseException | None = None

    @property
    def shutdown_event(self) -> threading.Event:
        return self._shutdown

    def stop(self) -> None:
        """Broadcast the shutdown signal to all activities."""
        if not self._shutdown.is_set():
            logger.info("Stopping notify service...")
        self._shutdown.set()

    def run(self) -> bool:
        """Run all activities until shutdown and wait for them to finish.

        Returns:
            True on a clean shutdown, False if an activity failed fatally.
        """
        logger.info("Starting notify service for %s", self.config.email)
        threads = [
            self._spawn("SessionManager", self.session.run),
            self._spawn("EventDispatcher", self.dispatcher.run),
            self._spawn("RelayServer", self.server.run),
        ]
        for thread in threads:
            thread.join()
        logger.info("Kahla client stopped.")
        return self._fatal is None

    def _spawn(
        self, name: str, activity: Callable[[threading.Event], None]
    ) -> threading.Thread:
        thread = threading.Thread(
            target=self._run_activity,
            args=(name, activity),
            name=name,
        )
        thread.start()
        return thread

    def _run_activity(
        self, name: str, activity: Callable[[threading.Event], None]
    ) -> None:
        """Thread entry point; a crashing activity stops the others."""
        try:
            activity(self._shutdown)
        except ProtocolViolation as e:
            logger.critical("%s halted on protocol violation: %s", name, e)
            self._fatal = e
            self.stop()
        except Exception as e:
            logger.exception("%s crashed", name)
            self._fatal = e
            self.stop()


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:].

    Returns:
        Exit code (0=success, 1=config error, 2=startup, 3=runtime error).
    """
    parser = argparse.ArgumentParser(
        description="Kahla notify server",
        epilog="Relays HTTP-triggered notifications into Kahla conversations.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help=(
            "Path to kahla-notify.yaml config file"
            " (default: ~/.config/kahla-notify/kahla-notify.yaml)"
        ),
    )
    args = parser.parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        add_secret_filter=True,
    )

    try:
        config = ServerConfig.from_yaml(config_path=args.config)
    except ConfigNotFoundError as e:
        try:
            write_config_template(e.path)
        except OSError as write_error:
            logger.critical("Cannot write config template: %s", write_error)
            return 1
        logger.info("Please input your email and password in: %s", e.path)
        return 1
    except ConfigError as e:
        logger.critical("Configuration error: %s", e)
        return 1

    try:
        service = NotifyService(config)
    except Exception as e:
        logger.exception("Failed to initialize service: %s", e)
        return 2

    def shutdown_handler(signum: int, frame: object) -> None:
        """Handle shutdown signals."""
        logger.info("Receive interrupt signal %d.", signum)
        service.stop()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    try:
        return 0 if service.run() else 3
    finally:
        if isinstance(service.client, KahlaClient):
            service.client.close()
