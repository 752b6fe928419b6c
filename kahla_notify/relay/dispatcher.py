# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Event dispatcher reacting to real-time session events.

Reads one event at a time from the transport's queue and reacts.  Work
that talks to the chat service is handed to ``TaskGate``-guarded
background operations so the loop itself never blocks on the network.
"""

from __future__ import annotations

import logging
import queue
import threading

from kahla_notify.kahla.cryptojs import CipherError, MessageCipher
from kahla_notify.kahla.events import (
    Event,
    FriendAcceptedEvent,
    NewFriendRequestEvent,
    NewMessageEvent,
    TimerUpdatedEvent,
    WereDeletedEvent,
)
from kahla_notify.relay.conversations import ConversationService
from kahla_notify.relay.errors import ProtocolViolation


logger = logging.getLogger(__name__)

#: Message body a peer sends to revoke its token and get a new one.
REFRESH_TOKEN_COMMAND = "refresh token"


class EventDispatcher:
    """Single-threaded consumer of transport events.

    Args:
        events: Queue the transport publishes events on.
        conversations: Registry operations to trigger.
        cipher: Cipher for decrypting incoming messages.
        poll_interval: Seconds to wait for an event before re-checking
            the shutdown event.
    """

    def __init__(
        self,
        events: queue.Queue[Event],
        conversations: ConversationService,
        cipher: MessageCipher,
        poll_interval: float = 0.5,
    ) -> None:
        self._events = events
        self._conversations = conversations
        self._cipher = cipher
        self._poll_interval = poll_interval

    def run(self, shutdown: threading.Event) -> None:
        """Dispatch events until ``shutdown`` is set.

        Remaining queued events are not drained on shutdown.

        Raises:
            ProtocolViolation: On an event outside the declared set.
        """
        while not shutdown.is_set():
            try:
                event = self._events.get(timeout=self._poll_interval)
            except queue.Empty:
                continue
            if shutdown.is_set():
                break
            self.dispatch(event)
        logger.info("Event listener stopped.")

    def dispatch(self, event: Event) -> None:
        match event:
            case NewMessageEvent():
                self._on_new_message(event)
            case NewFriendRequestEvent(requester=requester):
                logger.info(
                    "Friend request: you have got a new friend request! "
                    "nick name: %s id: %s",
                    requester.nick_name,
                    requester.id,
                )
                self._conversations.trigger_accept_friend_requests()
            case WereDeletedEvent(trigger=trigger):
                logger.info(
                    "Were deleted: you were deleted by one of your friends. "
                    "nick name: %s id: %s",
                    trigger.nick_name,
                    trigger.id,
                )
                self._conversations.trigger_refresh()
            case FriendAcceptedEvent(target=target):
                logger.info(
                    "Friend request: your friend request was accepted! "
                    "nick name: %s id: %s",
                    target.nick_name,
                    target.id,
                )
            case TimerUpdatedEvent(
                conversation_id=conversation_id, new_timer=new_timer
            ):
                logger.info(
                    "Self-destruct timer updated: message life time is %d "
                    "(conversation %d)",
                    new_timer,
                    conversation_id,
                )
            case _:
                raise ProtocolViolation(f"invalid event type: {event!r}")

    def _on_new_message(self, event: NewMessageEvent) -> None:
        # The sender supplies the key inline; the registry may not know
        # this conversation yet.
        try:
            content = self._cipher.decrypt(event.content, event.aes_key)
        except CipherError as e:
            logger.warning(
                "Cannot decrypt message in conversation %d: %s",
                event.conversation_id,
                e,
            )
            return

        logger.info("New message: %s: %s", event.sender.nick_name, content)
        if content == REFRESH_TOKEN_COMMAND:
            self._conversations.revoke_token(event.conversation_id)
