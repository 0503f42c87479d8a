"""HTTP API server for the live-status snapshot and the roster admin surface."""

from __future__ import annotations

import asyncio
import json
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from services.status_api.routes import ApiResponse, StatusApiRoutes
from shared.config.system import ApiSettings
from shared.logging.logger import get_logger

log = get_logger("services.status_api")

# Upper bound on how long a request thread waits for the event loop.
REQUEST_TIMEOUT_SECONDS = 120.0


class StatusApiServer:
    """
    Threaded HTTP shell around StatusApiRoutes.

    Request threads never run resolver code themselves: every route is
    scheduled onto the runtime event loop, so the single-flight slot and
    the snapshot cache are only touched from one loop.
    """

    def __init__(
        self,
        config: ApiSettings,
        routes: StatusApiRoutes,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._config = config
        self._routes = routes
        self._loop = loop
        self._thread: Optional[threading.Thread] = None
        self._server: Optional[ThreadingHTTPServer] = None

    def start(self) -> None:
        if not self._config.enabled:
            log.info("Status API server disabled via config")
            return
        if self._thread and self._thread.is_alive():
            return

        handler = self._build_handler()
        self._server = ThreadingHTTPServer(
            (self._config.host, int(self._config.port)),
            handler,
        )
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        log.info(
            "Status API server running on %s:%s",
            self._config.host,
            self._config.port,
        )

    def stop(self) -> None:
        if not self._server:
            return
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        log.info("Status API server stopped")

    def _build_handler(self):
        config = self._config
        routes = self._routes
        loop = self._loop

        class Handler(BaseHTTPRequestHandler):
            def _send(self, response: ApiResponse) -> None:
                if response.is_json:
                    body = json.dumps(response.payload).encode("utf-8")
                    content_type = "application/json"
                else:
                    body = str(response.payload).encode("utf-8")
                    content_type = "text/plain; charset=utf-8"
                self.send_response(response.status)
                self.send_header("Content-Type", content_type)
                self.send_header("Content-Length", str(len(body)))
                self.send_header("Cache-Control", "no-store")
                self._apply_cors()
                self.end_headers()
                self.wfile.write(body)

            def _apply_cors(self) -> None:
                origins = config.allow_origins
                if not origins:
                    return
                origin = self.headers.get("Origin")
                if "*" in origins:
                    self.send_header("Access-Control-Allow-Origin", "*")
                elif origin and origin in origins:
                    self.send_header("Access-Control-Allow-Origin", origin)
                self.send_header(
                    "Access-Control-Allow-Headers",
                    "Authorization, Content-Type",
                )
                self.send_header(
                    "Access-Control-Allow-Methods",
                    "GET, POST, PUT, DELETE, OPTIONS",
                )

            def _read_body(self) -> bytes:
                length = int(self.headers.get("Content-Length", 0) or 0)
                if length <= 0:
                    return b""
                return self.rfile.read(length)

            def _handle(self, method: str) -> None:
                parsed = urlparse(self.path)
                if not parsed.path.startswith("/api/"):
                    self.send_error(HTTPStatus.NOT_FOUND, "Not Found")
                    return

                body = self._read_body() if method in {"POST", "PUT", "DELETE"} else b""
                coro = routes.dispatch(
                    method,
                    parsed.path,
                    query=parse_qs(parsed.query),
                    headers={"Authorization": self.headers.get("Authorization") or ""},
                    body=body,
                )

                try:
                    future = asyncio.run_coroutine_threadsafe(coro, loop)
                    response = future.result(timeout=REQUEST_TIMEOUT_SECONDS)
                except Exception as e:
                    log.error(f"{method} {parsed.path} failed: {e}")
                    response = ApiResponse(
                        int(HTTPStatus.INTERNAL_SERVER_ERROR),
                        {"error": "internal error"},
                    )

                self._send(response)

            def do_OPTIONS(self) -> None:  # noqa: N802 - stdlib signature
                self.send_response(HTTPStatus.NO_CONTENT)
                self._apply_cors()
                self.end_headers()

            def do_GET(self) -> None:  # noqa: N802 - stdlib signature
                self._handle("GET")

            def do_POST(self) -> None:  # noqa: N802 - stdlib signature
                self._handle("POST")

            def do_PUT(self) -> None:  # noqa: N802 - stdlib signature
                self._handle("PUT")

            def do_DELETE(self) -> None:  # noqa: N802 - stdlib signature
                self._handle("DELETE")

            def log_message(self, format: str, *args: Any) -> None:
                log.info("%s - %s", self.address_string(), format % args)

        return Handler


__all__ = ["StatusApiServer"]
