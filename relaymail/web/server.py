# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""HTTP retrieval server for stored messages.

Routes:
    GET /view-email/<email_id>?token=<token>
        200 rendered message | 401 token required | 401 invalid token |
        404 not found | 500 internal error
    GET /health
        200 {"status": "ok"}

A missing token is answered before the store is consulted, so it never
reveals whether the id exists.  A wrong token for an existing id is
reported as such.
"""

import json
import logging
import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from werkzeug.wrappers.response import StartResponse

from werkzeug.exceptions import MethodNotAllowed, NotFound
from werkzeug.routing import Map, Rule
from werkzeug.serving import make_server
from werkzeug.wrappers import Request, Response

from relaymail.storage import EmailStore, NotFoundError, UnauthorizedError
from relaymail.web.views import render_email


logger = logging.getLogger(__name__)


def json_response(data: dict[str, Any], status: int = 200) -> Response:
    """Build a JSON response."""
    return Response(
        json.dumps(data),
        status=status,
        content_type="application/json",
        headers={"Cache-Control": "no-store"},
    )


class RetrievalServer:
    """WSGI server exposing stored messages to token holders.

    Runs in a background thread.
    """

    def __init__(
        self,
        store: EmailStore,
        host: str = "0.0.0.0",
        port: int = 3000,
    ) -> None:
        """Initialize retrieval server.

        Args:
            store: Store to read messages from.
            host: Host to bind to.
            port: Port to bind to.
        """
        self.store = store
        self.host = host
        self.port = port
        self._server: Any = None
        self._thread: threading.Thread | None = None

        self._url_map = Map(
            [
                Rule(
                    "/view-email/<email_id>",
                    endpoint="view_email",
                    methods=["GET"],
                ),
                Rule("/health", endpoint="health", methods=["GET"]),
            ]
        )
        self._endpoint_handlers = {
            "view_email": self.handle_view_email,
            "health": self.handle_health,
        }

    def start(self) -> None:
        """Start serving in a background thread."""
        self._server = make_server(
            self.host,
            self.port,
            self._wsgi_app,
            threaded=True,
        )
        # Port 0 binds an ephemeral port
        self.port = self._server.server_port
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="RetrievalServer",
        )
        self._thread.start()
        logger.info(
            "Retrieval server started at http://%s:%d/", self.host, self.port
        )

    def stop(self) -> None:
        """Stop the server and wait for its thread."""
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            if self._thread:
                self._thread.join(timeout=5)
            logger.info("Retrieval server stopped")

    def _wsgi_app(
        self,
        environ: dict[str, Any],
        start_response: "StartResponse",
    ) -> Iterable[bytes]:
        """WSGI application entry point."""
        request = Request(environ)
        response = self._dispatch(request)
        return response(environ, start_response)

    def _dispatch(self, request: Request) -> Response:
        """Route request to the matching handler."""
        adapter = self._url_map.bind_to_environ(request.environ)
        try:
            endpoint, values = adapter.match()
            handler = self._endpoint_handlers[endpoint]
            return handler(request, **values)
        except NotFound:
            return json_response({"error": "Not found"}, status=404)
        except MethodNotAllowed:
            return json_response({"error": "Method not allowed"}, status=405)
        except Exception:
            logger.exception("Error handling request %s", request.path)
            return json_response({"error": "Internal server error"}, 500)

    def handle_view_email(self, request: Request, email_id: str) -> Response:
        """Render a stored message for the holder of its token.

        Args:
            request: Incoming request with a ``token`` query parameter.
            email_id: Record identifier from the path.

        Returns:
            HTML view, or a JSON error response.
        """
        token = request.args.get("token")
        if not token:
            return json_response(
                {"error": "Authentication token required"}, status=401
            )

        try:
            record = self.store.retrieve(email_id, token)
        except NotFoundError:
            return json_response({"error": "Email not found"}, status=404)
        except UnauthorizedError:
            return json_response(
                {"error": "Invalid authentication token"}, status=401
            )
        except Exception:
            logger.exception("Error retrieving email %s", email_id)
            return json_response({"error": "Internal server error"}, 500)

        return Response(
            render_email(record),
            content_type="text/html; charset=utf-8",
            headers={
                "Cache-Control": "no-store",
                "Referrer-Policy": "no-referrer",
            },
        )

    def handle_health(self, request: Request) -> Response:
        """Handle health check endpoint."""
        return json_response({"status": "ok"})
