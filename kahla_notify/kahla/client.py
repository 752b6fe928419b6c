# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""HTTP client for the Kahla server API.

Only the handful of calls the relay needs are implemented.  Kahla keeps
the session in a cookie, so one ``httpx.Client`` (with its cookie jar)
is reused for the lifetime of the process.  Every API response is a JSON
object with an integer ``code`` (0 on success) and a ``message``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx


logger = logging.getLogger(__name__)

DEFAULT_SERVER = "https://server.kahla.app"


class KahlaError(Exception):
    """Raised when a Kahla API call fails.

    Attributes:
        code: API result code, or None for transport-level failures.
    """

    def __init__(self, message: str, code: int | None = None) -> None:
        self.code = code
        super().__init__(message)


@dataclass(frozen=True)
class Friend:
    """One entry of the friend list (one private conversation)."""

    conversation_id: int
    user_id: str
    aes_key: str
    display_name: str = ""


@dataclass(frozen=True)
class FriendRequest:
    """An incoming friend request."""

    id: int
    completed: bool
    creator_id: str = ""
    creator_name: str = ""


class ChatServiceClient(Protocol):
    """Chat service operations used by the relay core."""

    def login(self, email: str, password: str) -> None: ...

    def init_pusher(self) -> str: ...

    def my_friends(self) -> list[Friend]: ...

    def my_requests(self) -> list[FriendRequest]: ...

    def complete_request(self, request_id: int, accept: bool) -> None: ...

    def send_message(self, conversation_id: int, content: str) -> None: ...


class KahlaClient:
    """``ChatServiceClient`` backed by the Kahla REST API.

    Args:
        server: Base URL of the Kahla server.
        timeout: Per-request timeout in seconds.
        http_client: Optional pre-built ``httpx.Client`` (for testing).
    """

    def __init__(
        self,
        server: str = DEFAULT_SERVER,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.server = server.rstrip("/")
        self._http = http_client or httpx.Client(
            base_url=self.server,
            timeout=timeout,
            follow_redirects=True,
        )

    def close(self) -> None:
        self._http.close()

    def _call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Issue an API request and unwrap the result envelope.

        Raises:
            KahlaError: On transport errors, non-2xx statuses, malformed
                JSON, or a non-zero API code.
        """
        try:
            response = self._http.request(method, path, params=params, data=data)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise KahlaError(f"{method} {path}: {e}") from e
        except ValueError as e:
            raise KahlaError(f"{method} {path}: invalid JSON response") from e

        if not isinstance(body, dict):
            raise KahlaError(f"{method} {path}: unexpected response {body!r}")
        code = body.get("code")
        if code != 0:
            raise KahlaError(
                f"{method} {path}: {body.get('message', 'unknown error')}",
                code=code if isinstance(code, int) else None,
            )
        return body

    def login(self, email: str, password: str) -> None:
        self._call(
            "POST",
            "/Auth/AuthByPassword",
            data={"Email": email, "Password": password},
        )

    def init_pusher(self) -> str:
        """Request a WebSocket address for this session.

        Returns:
            The pusher server path (a ``wss://`` URL).
        """
        body = self._call("GET", "/Auth/InitPusher")
        server_path = body.get("serverPath")
        if not server_path:
            raise KahlaError("InitPusher response has no serverPath")
        return str(server_path)

    def my_friends(self) -> list[Friend]:
        body = self._call(
            "GET", "/Friendship/MyFriends", params={"orderByName": "false"}
        )
        try:
            return [
                Friend(
                    conversation_id=int(item["conversationId"]),
                    user_id=str(item.get("userId", "")),
                    aes_key=str(item.get("aesKey", "")),
                    display_name=str(item.get("displayName", "")),
                )
                for item in body.get("items") or []
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise KahlaError(f"malformed friend list: {e}") from e

    def my_requests(self) -> list[FriendRequest]:
        body = self._call("GET", "/Friendship/MyRequests")
        requests = []
        try:
            for item in body.get("items") or []:
                creator = item.get("creator") or {}
                requests.append(
                    FriendRequest(
                        id=int(item["id"]),
                        completed=bool(item.get("completed", False)),
                        creator_id=str(item.get("creatorId", "")),
                        creator_name=str(creator.get("nickName", "")),
                    )
                )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise KahlaError(f"malformed friend request list: {e}") from e
        return requests

    def complete_request(self, request_id: int, accept: bool) -> None:
        self._call(
            "POST",
            f"/Friendship/CompleteRequest/{request_id}",
            data={"accept": "true" if accept else "false"},
        )

    def send_message(self, conversation_id: int, content: str) -> None:
        self._call(
            "POST",
            f"/Conversation/SendMessage/{conversation_id}",
            data={"content": content},
        )
