# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Registry maintenance and token-authorized sending.

``ConversationService`` binds the registry to the chat client and the
cipher.  The three maintenance operations (friend list refresh, token
issuance, friend request acceptance) are best-effort: failures are
logged and reported as a boolean, never raised.  Each has a gated
``trigger_*`` variant that runs it in the background through
``TaskGate``.
"""

from __future__ import annotations

import logging
import secrets
import string
import time

from kahla_notify.kahla.client import ChatServiceClient, KahlaError
from kahla_notify.kahla.cryptojs import CipherError, MessageCipher
from kahla_notify.logging import SecretFilter
from kahla_notify.relay.errors import ContentMissing, MessageSendFailure
from kahla_notify.relay.registry import Conversation, ConversationRegistry
from kahla_notify.relay.retry import RetryPolicy
from kahla_notify.relay.task_gate import TaskGate


logger = logging.getLogger(__name__)

ACCEPT_FRIEND_REQUESTS = "accept-friend-requests"
REFRESH_CONVERSATIONS = "refresh-conversations"
ISSUE_TOKENS = "issue-tokens"

TOKEN_LENGTH = 32
TOKEN_ALPHABET = string.ascii_letters + string.digits


def generate_token(length: int = TOKEN_LENGTH) -> str:
    """Generate an unguessable alphanumeric token."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


class ConversationService:
    """Registry operations bound to the chat service.

    Args:
        client: Chat service client.
        cipher: Message cipher.
        registry: Registry to maintain.  A fresh one is created if None.
        gate: Single-flight gate for background triggers.
        send_retry: Retry policy for outgoing messages.
    """

    def __init__(
        self,
        client: ChatServiceClient,
        cipher: MessageCipher,
        registry: ConversationRegistry | None = None,
        gate: TaskGate | None = None,
        send_retry: RetryPolicy | None = None,
    ) -> None:
        self.client = client
        self.cipher = cipher
        self.registry = registry if registry is not None else ConversationRegistry()
        self.gate = gate if gate is not None else TaskGate()
        self.send_retry = send_retry or RetryPolicy(attempts=3)

    # -- gated triggers -----------------------------------------------------

    def trigger_refresh(self) -> bool:
        return self.gate.try_run(
            REFRESH_CONVERSATIONS, self.refresh_from_friend_list
        )

    def trigger_issue_tokens(self) -> bool:
        return self.gate.try_run(ISSUE_TOKENS, self.issue_missing_tokens)

    def trigger_accept_friend_requests(self) -> bool:
        return self.gate.try_run(
            ACCEPT_FRIEND_REQUESTS, self.accept_pending_friend_requests
        )

    # -- operations ---------------------------------------------------------

    def refresh_from_friend_list(self) -> bool:
        """Rebuild the registry from the authoritative friend list.

        New conversations start without a token and trigger issuance.

        Returns:
            False if the friend list could not be fetched (the registry is
            left untouched).
        """
        try:
            friends = self.client.my_friends()
        except KahlaError as e:
            logger.error("Update conversations failed: %s", e)
            return False

        before = {c.token for c in self.registry.snapshot() if c.token}
        added = self.registry.merge(friends)
        after = {c.token for c in self.registry.snapshot()}
        for token in before - after:
            SecretFilter.unregister_secret(token)
        for conversation in added:
            logger.info(
                "New conversation %d with %s",
                conversation.conversation_id,
                conversation.label,
            )
        if added:
            self.trigger_issue_tokens()
        return True

    def issue_missing_tokens(self) -> bool:
        """Issue a token to every conversation that has none.

        The token is assigned before it is sent so it is valid by the time
        the peer reads it.  If the send fails the assignment is rolled back
        so the next issuance retries.

        The registry is re-read after each pass: a revocation or a new
        conversation that arrives while a pass is sending finds its own
        trigger dropped by the gate, so this run picks it up instead.
        Conversations that failed in this run are not retried by it.

        Returns:
            True if every token was delivered.
        """
        ok = True
        failed: set[int] = set()
        while True:
            pending = [
                c
                for c in self.registry.missing_tokens()
                if c.conversation_id not in failed
            ]
            if not pending:
                return ok
            for conversation in pending:
                if not self._issue_token(conversation):
                    failed.add(conversation.conversation_id)
                    ok = False

    def _issue_token(self, conversation: Conversation) -> bool:
        if not conversation.aes_key:
            logger.warning(
                "Conversation %d has no key, cannot issue token",
                conversation.conversation_id,
            )
            return False

        token = generate_token()
        if not self.registry.assign_token(conversation.conversation_id, token):
            current = self.registry.get(conversation.conversation_id)
            logger.debug(
                "Conversation %d changed meanwhile, skipping",
                conversation.conversation_id,
            )
            # Gone, or already holding a token: nothing left to issue.
            return current is None or bool(current.token)
        SecretFilter.register_secret(token)

        try:
            self._send(conversation, token)
        except (KahlaError, CipherError) as e:
            logger.error(
                "Send new token failed: %s (user %s)",
                e,
                conversation.user_id,
            )
            if self.registry.clear_token(
                conversation.conversation_id, expected=token
            ):
                SecretFilter.unregister_secret(token)
            return False
        logger.info(
            "Send new token OK (conversation %d)",
            conversation.conversation_id,
        )
        return True

    def accept_pending_friend_requests(self) -> bool:
        """Accept every incoming friend request that is still open.

        Returns:
            True if the requests were fetched and all were accepted.
        """
        try:
            requests = self.client.my_requests()
        except KahlaError as e:
            logger.error("Get my friend requests failed: %s", e)
            return False

        ok = True
        for request in requests:
            if request.completed:
                continue
            try:
                self.client.complete_request(request.id, accept=True)
            except KahlaError as e:
                logger.error(
                    "Complete friend request %d failed: %s", request.id, e
                )
                ok = False
                continue
            logger.info("Complete friend request: %s", request.creator_name)
            self.trigger_refresh()
        return ok

    def revoke_token(self, conversation_id: int) -> bool:
        """Clear a conversation's token and schedule a new one.

        Returns:
            False if the conversation is not in the registry.
        """
        current = self.registry.get(conversation_id)
        if current is None:
            logger.warning(
                "Cannot refresh token: conversation %d not found",
                conversation_id,
            )
            return False
        if self.registry.clear_token(conversation_id, expected=current.token):
            SecretFilter.unregister_secret(current.token)
        logger.info("Token revoked for conversation %d", conversation_id)
        self.trigger_issue_tokens()
        return True

    def send_message_by_token(self, token: str, content: str) -> Conversation:
        """Relay ``content`` into the conversation ``token`` authorizes.

        Returns:
            The conversation the message was sent to.

        Raises:
            ContentMissing: If ``content`` is empty.
            TokenNotFound: If no conversation holds ``token``.
            MessageSendFailure: If encryption or sending fails.
        """
        if not content:
            raise ContentMissing()
        conversation = self.registry.resolve(token)
        try:
            self._send(conversation, content)
        except (KahlaError, CipherError) as e:
            raise MessageSendFailure(conversation.conversation_id, e) from e
        return conversation

    def _send(self, conversation: Conversation, plaintext: str) -> None:
        """Encrypt and send with bounded retry.

        Raises:
            CipherError: If encryption fails (not retried).
            KahlaError: If every send attempt fails.
        """
        ciphertext = self.cipher.encrypt(plaintext, conversation.aes_key)
        policy = self.send_retry
        for attempt in range(1, policy.attempts + 1):
            try:
                self.client.send_message(conversation.conversation_id, ciphertext)
                return
            except KahlaError as e:
                if attempt >= policy.attempts:
                    raise
                logger.warning(
                    "Send message to %d failed (attempt %d/%d): %s",
                    conversation.conversation_id,
                    attempt,
                    policy.attempts,
                    e,
                )
                time.sleep(policy.backoff(attempt))
