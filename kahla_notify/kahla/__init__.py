# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Kahla messenger adapters.

Thin collaborators consumed by the relay core:
- REST client (KahlaClient)
- Real-time WebSocket transport and its event types
- CryptoJS-compatible message cipher
"""

from kahla_notify.kahla.client import (
    DEFAULT_SERVER,
    ChatServiceClient,
    Friend,
    FriendRequest,
    KahlaClient,
    KahlaError,
)
from kahla_notify.kahla.cryptojs import (
    CipherError,
    CryptoJsCipher,
    MessageCipher,
)
from kahla_notify.kahla.events import (
    Event,
    FriendAcceptedEvent,
    KahlaUser,
    NewFriendRequestEvent,
    NewMessageEvent,
    TimerUpdatedEvent,
    UnknownEvent,
    WereDeletedEvent,
    parse_event,
)
from kahla_notify.kahla.transport import (
    KahlaWebSocket,
    RealtimeTransport,
    TransportError,
    TransportState,
)


__all__ = [
    # client
    "DEFAULT_SERVER",
    "ChatServiceClient",
    "Friend",
    "FriendRequest",
    "KahlaClient",
    "KahlaError",
    # cipher
    "CipherError",
    "CryptoJsCipher",
    "MessageCipher",
    # events
    "Event",
    "FriendAcceptedEvent",
    "KahlaUser",
    "NewFriendRequestEvent",
    "NewMessageEvent",
    "TimerUpdatedEvent",
    "UnknownEvent",
    "WereDeletedEvent",
    "parse_event",
    # transport
    "KahlaWebSocket",
    "RealtimeTransport",
    "TransportError",
    "TransportState",
]
