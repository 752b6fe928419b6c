# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""In-memory token-to-conversation registry.

The registry is a copy-on-write snapshot: a tuple of frozen
``Conversation`` values.  Every write builds a new tuple under a short
writer lock and swaps it in, so readers (HTTP requests, the event
dispatcher) always see either the old or the new complete registry and
never block on network calls.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace

from kahla_notify.kahla.client import Friend
from kahla_notify.relay.errors import TokenNotFound


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Conversation:
    """One private conversation reachable through the session.

    Attributes:
        conversation_id: Identifier assigned by the chat service.
        user_id: Remote participant.
        aes_key: Symmetric key for message bodies.
        token: Relay access token; empty means none issued.
        display_name: Friend's display name, for logs only.
    """

    conversation_id: int
    user_id: str
    aes_key: str
    token: str = ""
    display_name: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.user_id


class ConversationRegistry:
    """Ordered registry keyed by conversation ID and by token.

    Invariants: at most one entry per ``conversation_id`` and at most one
    entry per non-empty ``token``.
    """

    def __init__(self, conversations: Iterable[Conversation] = ()) -> None:
        self._lock = threading.Lock()
        self._snapshot: tuple[Conversation, ...] = ()
        self._swap(tuple(conversations))

    def _swap(self, conversations: tuple[Conversation, ...]) -> None:
        """Install a new snapshot after checking invariants.

        Caller must hold ``_lock`` (or be the constructor).
        """
        ids = [c.conversation_id for c in conversations]
        if len(ids) != len(set(ids)):
            raise ValueError("duplicate conversation_id in registry")
        tokens = [c.token for c in conversations if c.token]
        if len(tokens) != len(set(tokens)):
            raise ValueError("duplicate token in registry")
        self._snapshot = conversations

    def snapshot(self) -> tuple[Conversation, ...]:
        """Return the current complete registry."""
        with self._lock:
            return self._snapshot

    def __len__(self) -> int:
        return len(self.snapshot())

    def get(self, conversation_id: int) -> Conversation | None:
        for conversation in self.snapshot():
            if conversation.conversation_id == conversation_id:
                return conversation
        return None

    def resolve(self, token: str) -> Conversation:
        """Find the conversation authorized by ``token``.

        Raises:
            TokenNotFound: If the token is empty, unknown, or belongs to a
                conversation without a cipher key.
        """
        if token:
            for conversation in self.snapshot():
                if conversation.token == token and conversation.aes_key:
                    return conversation
        raise TokenNotFound()

    def missing_tokens(self) -> list[Conversation]:
        """Return the conversations that have no token issued."""
        return [c for c in self.snapshot() if not c.token]

    def merge(self, friends: Iterable[Friend]) -> list[Conversation]:
        """Replace the registry with the given friend list.

        Known conversations are reused as-is, keeping their token and key.
        Conversations absent from ``friends`` are dropped.

        Args:
            friends: Authoritative friend list from the chat service.

        Returns:
            The conversations that were not previously known.
        """
        with self._lock:
            known = {c.conversation_id: c for c in self._snapshot}
            merged: dict[int, Conversation] = {}
            added: list[Conversation] = []
            for friend in friends:
                if friend.conversation_id in merged:
                    continue
                existing = known.get(friend.conversation_id)
                if existing is None:
                    existing = Conversation(
                        conversation_id=friend.conversation_id,
                        user_id=friend.user_id,
                        aes_key=friend.aes_key,
                        display_name=friend.display_name,
                    )
                    added.append(existing)
                merged[friend.conversation_id] = existing
            dropped = len(known.keys() - merged.keys())
            self._swap(tuple(merged.values()))

        logger.info(
            "Registry replaced: %d conversation(s), %d new, %d dropped",
            len(merged),
            len(added),
            dropped,
        )
        return added

    def assign_token(self, conversation_id: int, token: str) -> bool:
        """Set the token of a conversation that has none.

        Returns:
            False if the conversation is gone, already has a token, or
            the token is in use elsewhere.
        """
        if not token:
            raise ValueError("token must not be empty")
        with self._lock:
            if any(c.token == token for c in self._snapshot):
                return False
            return self._update_token(conversation_id, "", token)

    def clear_token(self, conversation_id: int, expected: str | None = None) -> bool:
        """Reset a conversation's token to empty.

        Args:
            conversation_id: Conversation to update.
            expected: If given, clear only while the token still equals it.

        Returns:
            True if a token was cleared.
        """
        with self._lock:
            current = next(
                (
                    c
                    for c in self._snapshot
                    if c.conversation_id == conversation_id
                ),
                None,
            )
            if current is None or not current.token:
                return False
            if expected is not None and current.token != expected:
                return False
            return self._update_token(conversation_id, current.token, "")

    def _update_token(self, conversation_id: int, old: str, new: str) -> bool:
        """Swap in a snapshot with one token changed.  Caller holds _lock."""
        updated = []
        changed = False
        for c in self._snapshot:
            if c.conversation_id == conversation_id and c.token == old:
                c = replace(c, token=new)
                changed = True
            updated.append(c)
        if changed:
            self._swap(tuple(updated))
        return changed
