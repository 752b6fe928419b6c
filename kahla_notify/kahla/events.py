# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Real-time events pushed by the Kahla server.

Every WebSocket frame is a JSON object with an integer ``type`` tag.  The
five tags the relay understands become frozen dataclasses; anything else
becomes ``UnknownEvent`` so the dispatcher can reject it explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


#: Event type tags as sent in the ``type`` field.
NEW_MESSAGE = 0
NEW_FRIEND_REQUEST = 1
WERE_DELETED = 2
FRIEND_ACCEPTED = 3
TIMER_UPDATED = 4


class EventParseError(ValueError):
    """Raised when a frame is not a well-formed event object."""


@dataclass(frozen=True)
class KahlaUser:
    """The subset of a Kahla user profile carried in events."""

    id: str
    nick_name: str

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> KahlaUser:
        data = data or {}
        return cls(
            id=str(data.get("id", "")),
            nick_name=str(data.get("nickName", "")),
        )


@dataclass(frozen=True)
class NewMessageEvent:
    """A message arrived in one of our conversations.

    ``content`` is ciphertext; the sender supplies the key inline in
    ``aes_key``.
    """

    conversation_id: int
    sender: KahlaUser
    content: str
    aes_key: str


@dataclass(frozen=True)
class NewFriendRequestEvent:
    requester: KahlaUser


@dataclass(frozen=True)
class WereDeletedEvent:
    trigger: KahlaUser


@dataclass(frozen=True)
class FriendAcceptedEvent:
    target: KahlaUser


@dataclass(frozen=True)
class TimerUpdatedEvent:
    conversation_id: int
    new_timer: int


@dataclass(frozen=True)
class UnknownEvent:
    """An event whose tag is outside the declared set."""

    type: object
    payload: dict[str, Any] = field(default_factory=dict)


Event = (
    NewMessageEvent
    | NewFriendRequestEvent
    | WereDeletedEvent
    | FriendAcceptedEvent
    | TimerUpdatedEvent
    | UnknownEvent
)


def _int(data: dict[str, Any], key: str) -> int:
    try:
        return int(data[key])
    except (KeyError, TypeError, ValueError) as e:
        raise EventParseError(f"event field {key!r} missing or invalid") from e


def parse_event(data: object) -> Event:
    """Build an event from a decoded JSON frame.

    Args:
        data: The decoded frame.

    Returns:
        The typed event, or ``UnknownEvent`` for unrecognized tags.

    Raises:
        EventParseError: If the frame is not an object or a known event
            is missing required fields.
    """
    if not isinstance(data, dict):
        raise EventParseError(f"event frame is not an object: {data!r}")

    event_type = data.get("type")
    if event_type == NEW_MESSAGE:
        return NewMessageEvent(
            conversation_id=_int(data, "conversationId"),
            sender=KahlaUser.from_dict(data.get("sender")),
            content=str(data.get("content", "")),
            aes_key=str(data.get("aesKey", "")),
        )
    if event_type == NEW_FRIEND_REQUEST:
        return NewFriendRequestEvent(
            requester=KahlaUser.from_dict(data.get("requester"))
        )
    if event_type == WERE_DELETED:
        return WereDeletedEvent(trigger=KahlaUser.from_dict(data.get("trigger")))
    if event_type == FRIEND_ACCEPTED:
        return FriendAcceptedEvent(target=KahlaUser.from_dict(data.get("target")))
    if event_type == TIMER_UPDATED:
        return TimerUpdatedEvent(
            conversation_id=_int(data, "conversationId"),
            new_timer=_int(data, "newTimer"),
        )
    return UnknownEvent(type=event_type, payload=data)
