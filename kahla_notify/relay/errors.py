# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exception hierarchy for the relay core.

Session stage errors are recoverable: the session manager logs them and
retries.  The client-facing errors map onto HTTP responses in the relay
server.  ``ProtocolViolation`` is the only fatal condition.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for relay errors."""


class SessionStageError(RelayError):
    """A session stage failed.

    Attributes:
        stage: Name of the failing stage (e.g. ``"login"``).
        attempt: 1-based attempt number within the stage's retry budget.
    """

    def __init__(self, stage: str, attempt: int, cause: object) -> None:
        self.stage = stage
        self.attempt = attempt
        super().__init__(f"{stage} failed: {cause}")


class AuthenticationFailure(SessionStageError):
    """Login with the configured credentials failed."""


class PusherInitFailure(SessionStageError):
    """Requesting a real-time transport address failed."""


class TransportConnectFailure(SessionStageError):
    """The real-time transport failed to connect or disconnected."""


class TokenNotFound(RelayError):
    """No conversation is authorized by the given token."""

    def __init__(self) -> None:
        super().__init__("token not exists")


class ContentMissing(RelayError):
    """A relay request carried no message content."""

    def __init__(self) -> None:
        super().__init__("content is required")


class MessageSendFailure(RelayError):
    """Encrypting or sending a relayed message failed.

    Attributes:
        conversation_id: Target conversation.
    """

    def __init__(self, conversation_id: int, cause: object) -> None:
        self.conversation_id = conversation_id
        super().__init__(str(cause))


class ProtocolViolation(RelayError):
    """The transport delivered an event outside the declared event set.

    This is a contract breach with the transport, not a runtime error to
    retry.  The event dispatcher stops when it sees one.
    """
