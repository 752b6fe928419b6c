# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the Kahla REST client."""

from collections.abc import Callable
from urllib.parse import parse_qs

import httpx
import pytest

from kahla_notify.kahla.client import (
    Friend,
    FriendRequest,
    KahlaClient,
    KahlaError,
)


Handler = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler) -> KahlaClient:
    http = httpx.Client(
        base_url="https://kahla.test",
        transport=httpx.MockTransport(handler),
    )
    return KahlaClient("https://kahla.test", http_client=http)


def _ok(**body: object) -> httpx.Response:
    return httpx.Response(200, json={"code": 0, "message": "ok", **body})


def _form(request: httpx.Request) -> dict[str, list[str]]:
    return parse_qs(request.content.decode())


class TestCall:
    """Tests for the result envelope handling."""

    def test_nonzero_code_raises(self) -> None:
        """A non-zero API code becomes KahlaError with the code."""
        client = _client(
            lambda r: httpx.Response(
                200, json={"code": -5, "message": "Wrong password"}
            )
        )
        with pytest.raises(KahlaError, match="Wrong password") as exc_info:
            client.login("a@b.c", "pw")
        assert exc_info.value.code == -5

    def test_http_status_error_raises(self) -> None:
        client = _client(lambda r: httpx.Response(503, text="down"))
        with pytest.raises(KahlaError) as exc_info:
            client.init_pusher()
        assert exc_info.value.code is None

    def test_invalid_json_raises(self) -> None:
        client = _client(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(KahlaError, match="invalid JSON"):
            client.my_friends()

    def test_non_object_body_raises(self) -> None:
        client = _client(lambda r: httpx.Response(200, json=[1, 2]))
        with pytest.raises(KahlaError, match="unexpected response"):
            client.my_friends()

    def test_transport_error_raises(self) -> None:
        """Connection failures are wrapped, not leaked as httpx errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)
        with pytest.raises(KahlaError, match="refused"):
            client.send_message(1, "x")

    def test_strips_trailing_slash(self) -> None:
        client = KahlaClient("https://kahla.test/", http_client=httpx.Client())
        assert client.server == "https://kahla.test"


class TestEndpoints:
    """Tests for the individual API calls."""

    def test_login_posts_credentials(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _ok()

        _client(handler).login("bot@example.com", "secret")

        assert seen[0].method == "POST"
        assert seen[0].url.path == "/Auth/AuthByPassword"
        assert _form(seen[0]) == {
            "Email": ["bot@example.com"],
            "Password": ["secret"],
        }

    def test_init_pusher_returns_server_path(self) -> None:
        client = _client(lambda r: _ok(serverPath="wss://pusher/abc"))
        assert client.init_pusher() == "wss://pusher/abc"

    def test_init_pusher_without_path_raises(self) -> None:
        client = _client(lambda r: _ok())
        with pytest.raises(KahlaError, match="serverPath"):
            client.init_pusher()

    def test_my_friends_parses_items(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _ok(
                items=[
                    {
                        "conversationId": 7,
                        "userId": "u7",
                        "aesKey": "k7",
                        "displayName": "Seven",
                    },
                    {"conversationId": "8"},
                ]
            )

        friends = _client(handler).my_friends()

        assert seen[0].url.params["orderByName"] == "false"
        assert friends == [
            Friend(7, "u7", "k7", "Seven"),
            Friend(8, "", "", ""),
        ]

    def test_my_friends_missing_items(self) -> None:
        assert _client(lambda r: _ok()).my_friends() == []

    def test_my_friends_malformed_raises(self) -> None:
        client = _client(lambda r: _ok(items=[{"userId": "no-id"}]))
        with pytest.raises(KahlaError, match="malformed friend list"):
            client.my_friends()

    def test_my_requests_parses_items(self) -> None:
        client = _client(
            lambda r: _ok(
                items=[
                    {
                        "id": 3,
                        "completed": False,
                        "creatorId": "c3",
                        "creator": {"nickName": "Carol"},
                    },
                    {"id": 4, "completed": True},
                ]
            )
        )
        assert client.my_requests() == [
            FriendRequest(3, False, "c3", "Carol"),
            FriendRequest(4, True, "", ""),
        ]

    def test_my_requests_malformed_raises(self) -> None:
        client = _client(lambda r: _ok(items=["nope"]))
        with pytest.raises(KahlaError, match="malformed friend request"):
            client.my_requests()

    @pytest.mark.parametrize(
        ("accept", "expected"), [(True, "true"), (False, "false")]
    )
    def test_complete_request(self, accept: bool, expected: str) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _ok()

        _client(handler).complete_request(12, accept=accept)

        assert seen[0].url.path == "/Friendship/CompleteRequest/12"
        assert _form(seen[0]) == {"accept": [expected]}

    def test_send_message(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _ok()

        _client(handler).send_message(42, "U2FsdGVkX1+abc=")

        assert seen[0].method == "POST"
        assert seen[0].url.path == "/Conversation/SendMessage/42"
        assert _form(seen[0]) == {"content": ["U2FsdGVkX1+abc="]}

    def test_session_cookie_is_reused(self) -> None:
        """The cookie set at login is sent on later calls."""
        cookies: list[str | None] = []

        def handler(request: httpx.Request) -> httpx.Response:
            cookies.append(request.headers.get("cookie"))
            if request.url.path == "/Auth/AuthByPassword":
                return httpx.Response(
                    200,
                    json={"code": 0, "message": "ok"},
                    headers={"set-cookie": "session=abc; Path=/"},
                )
            return _ok(serverPath="wss://p")

        client = _client(handler)
        client.login("a@b.c", "pw")
        client.init_pusher()

        assert cookies == [None, "session=abc"]
