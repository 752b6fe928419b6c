# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""HTTP relay server.

A small WSGI application: ``GET /send?token=...&content=...`` resolves
the token to a conversation and sends the content into it.  Every JSON
response carries a numeric ``code`` and a human-readable ``message``.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable
from enum import IntEnum
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from werkzeug.wrappers.response import StartResponse

from werkzeug.exceptions import HTTPException
from werkzeug.routing import Map, Rule
from werkzeug.serving import BaseWSGIServer, make_server
from werkzeug.utils import redirect
from werkzeug.wrappers import Request, Response

from kahla_notify.relay.conversations import ConversationService
from kahla_notify.relay.errors import (
    ContentMissing,
    MessageSendFailure,
    TokenNotFound,
)


logger = logging.getLogger(__name__)

DEFAULT_DOCS_URL = "https://github.com/ganlvtech/go-kahla-notify-server"


class ResponseCode(IntEnum):
    OK = 0
    NO_ACCESS_TOKEN = 1
    NO_CONTENT = 2
    INVALID_ACCESS_TOKEN = 3
    SEND_MESSAGE_FAILED = 4


def _json(status: int, code: int, message: str, **extra: Any) -> Response:
    body = {"code": code, "message": message, **extra}
    return Response(json.dumps(body), status=status, mimetype="application/json")


class RelayServer:
    """WSGI relay server.

    Args:
        conversations: Registry operations used to authorize and send.
        host: Host to bind to.
        port: Port to bind to.
        docs_url: Where ``GET /`` redirects.
        session_state: Optional callable returning the session state name
            for the health endpoint.
    """

    def __init__(
        self,
        conversations: ConversationService,
        host: str = "0.0.0.0",
        port: int = 8080,
        docs_url: str = DEFAULT_DOCS_URL,
        session_state: Callable[[], str] | None = None,
    ) -> None:
        self.conversations = conversations
        self.host = host
        self.port = port
        self.docs_url = docs_url
        self._session_state = session_state
        self._server: BaseWSGIServer | None = None

        self._url_map = Map(
            [
                Rule("/", endpoint="index", methods=["GET"]),
                Rule("/send", endpoint="send", methods=["GET"]),
                Rule("/health", endpoint="health", methods=["GET"]),
            ]
        )
        self._endpoint_handlers: dict[str, Callable[[Request], Response]] = {
            "index": self.handle_index,
            "send": self.handle_send,
            "health": self.handle_health,
        }

    def run(self, shutdown: threading.Event) -> None:
        """Serve requests until ``shutdown`` is set.

        Blocks the calling thread.  A watcher thread closes the server
        once the shutdown event fires.
        """
        self._server = make_server(
            self.host,
            self.port,
            self._wsgi_app,
            threaded=True,
        )
        watcher = threading.Thread(
            target=self._stop_on,
            args=(shutdown,),
            daemon=True,
            name="RelayServerShutdown",
        )
        watcher.start()
        logger.info("Relay server listening on http://%s:%d/", self.host, self.port)
        try:
            self._server.serve_forever()
        finally:
            self._server.server_close()
        logger.info("Server closed under request.")

    def _stop_on(self, shutdown: threading.Event) -> None:
        shutdown.wait()
        if self._server is not None:
            self._server.shutdown()

    def _wsgi_app(
        self,
        environ: dict[str, Any],
        start_response: "StartResponse",
    ) -> Iterable[bytes]:
        request = Request(environ)
        response = self._dispatch(request)
        return response(environ, start_response)

    def _dispatch(self, request: Request) -> Response:
        adapter = self._url_map.bind_to_environ(request.environ)
        try:
            endpoint, _values = adapter.match()
            return self._endpoint_handlers[endpoint](request)
        except HTTPException as e:
            return _json(e.code or 500, e.code or 500, e.name)
        except Exception:
            logger.exception("Error handling request %s", request.path)
            return _json(500, 500, "Internal Server Error")

    def handle_index(self, request: Request) -> Response:
        return redirect(self.docs_url, code=302)

    def handle_send(self, request: Request) -> Response:
        token = request.args.get("token", "")
        if not token:
            return _json(
                401, ResponseCode.NO_ACCESS_TOKEN, "No access token provided."
            )
        content = request.args.get("content", "")
        if not content:
            return _json(400, ResponseCode.NO_CONTENT, "Content is required.")

        try:
            conversation = self.conversations.send_message_by_token(
                token, content
            )
        except TokenNotFound:
            return _json(
                401, ResponseCode.INVALID_ACCESS_TOKEN, "Invalid access token."
            )
        except ContentMissing:
            return _json(400, ResponseCode.NO_CONTENT, "Content is required.")
        except MessageSendFailure as e:
            logger.error(
                "Relay to conversation %d failed: %s", e.conversation_id, e
            )
            return _json(
                500,
                ResponseCode.SEND_MESSAGE_FAILED,
                f"Send message failed. {e}",
            )

        logger.info("Relayed message to conversation %d", conversation.conversation_id)
        return _json(200, ResponseCode.OK, "OK")

    def handle_health(self, request: Request) -> Response:
        snapshot = self.conversations.registry.snapshot()
        session = self._session_state() if self._session_state else "unknown"
        return _json(
            200,
            ResponseCode.OK,
            "OK",
            session=session,
            conversations=len(snapshot),
            tokens_issued=sum(1 for c in snapshot if c.token),
        )
