# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Relay core.

Session orchestration and the token-authorized relay engine:
- Single-flight background tasks (TaskGate)
- Token-to-conversation registry (ConversationRegistry)
- Registry maintenance and sending (ConversationService)
- Login/connect state machine (SessionManager)
- Event handling (EventDispatcher)
- HTTP surface (RelayServer)
"""

from kahla_notify.relay.conversations import (
    ConversationService,
    generate_token,
)
from kahla_notify.relay.dispatcher import REFRESH_TOKEN_COMMAND, EventDispatcher
from kahla_notify.relay.errors import (
    AuthenticationFailure,
    ContentMissing,
    MessageSendFailure,
    ProtocolViolation,
    PusherInitFailure,
    RelayError,
    SessionStageError,
    TokenNotFound,
    TransportConnectFailure,
)
from kahla_notify.relay.registry import Conversation, ConversationRegistry
from kahla_notify.relay.retry import RetryPolicy
from kahla_notify.relay.server import RelayServer, ResponseCode
from kahla_notify.relay.session import SessionManager, SessionState
from kahla_notify.relay.task_gate import TaskGate


__all__ = [
    "REFRESH_TOKEN_COMMAND",
    "AuthenticationFailure",
    "ContentMissing",
    "Conversation",
    "ConversationRegistry",
    "ConversationService",
    "EventDispatcher",
    "MessageSendFailure",
    "ProtocolViolation",
    "PusherInitFailure",
    "RelayError",
    "RelayServer",
    "ResponseCode",
    "RetryPolicy",
    "SessionManager",
    "SessionStageError",
    "SessionState",
    "TaskGate",
    "TokenNotFound",
    "TransportConnectFailure",
    "generate_token",
]
