# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures used across multiple test packages."""

from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from kahla_notify.kahla.client import ChatServiceClient
from kahla_notify.kahla.cryptojs import CipherError
from kahla_notify.logging import SecretFilter
from kahla_notify.relay.conversations import ConversationService
from kahla_notify.relay.registry import Conversation, ConversationRegistry
from kahla_notify.relay.retry import RetryPolicy


class FakeCipher:
    """Reversible stand-in for the AES cipher.

    ``encrypt("hi", "k")`` yields ``"k:hi"``; decrypting with any other
    key fails.
    """

    def encrypt(self, plaintext: str, key: str) -> str:
        if not key:
            raise CipherError("empty encryption key")
        return f"{key}:{plaintext}"

    def decrypt(self, ciphertext: str, key: str) -> str:
        prefix = f"{key}:"
        if not key or not ciphertext.startswith(prefix):
            raise CipherError("wrong key")
        return ciphertext[len(prefix) :]


class RecordingGate:
    """TaskGate stand-in that records triggers.

    With ``run_inline=True`` the operation runs synchronously in the
    caller, which keeps chained triggers deterministic.
    """

    def __init__(self, run_inline: bool = False) -> None:
        self.run_inline = run_inline
        self.calls: list[str] = []

    def try_run(self, key: str, fn: Callable[[], object]) -> bool:
        self.calls.append(key)
        if self.run_inline:
            fn()
        return True

    def is_running(self, key: str) -> bool:
        return False


@pytest.fixture(autouse=True)
def _clear_secrets():
    """Keep registered secrets from leaking between tests."""
    SecretFilter.clear_secrets()
    yield
    SecretFilter.clear_secrets()


@pytest.fixture
def cipher() -> FakeCipher:
    return FakeCipher()


@pytest.fixture
def client() -> MagicMock:
    """Mock chat service client with an empty friend list."""
    mock = MagicMock(spec=ChatServiceClient)
    mock.my_friends.return_value = []
    mock.my_requests.return_value = []
    mock.init_pusher.return_value = "wss://pusher.example/channel"
    return mock


@pytest.fixture
def gate() -> RecordingGate:
    return RecordingGate()


@pytest.fixture
def registry() -> ConversationRegistry:
    """Registry with one tokened and one untokened conversation."""
    return ConversationRegistry(
        [
            Conversation(
                conversation_id=1,
                user_id="alice",
                aes_key="key-1",
                token="T" * 32,
                display_name="Alice",
            ),
            Conversation(conversation_id=2, user_id="bob", aes_key="key-2"),
        ]
    )


@pytest.fixture
def conversations(
    client: MagicMock,
    cipher: FakeCipher,
    registry: ConversationRegistry,
    gate: RecordingGate,
) -> ConversationService:
    """ConversationService with zero-delay send retries."""
    return ConversationService(
        client,
        cipher,
        registry=registry,
        gate=gate,  # type: ignore[arg-type]
        send_retry=RetryPolicy(attempts=3, delay_seconds=0.0),
    )

