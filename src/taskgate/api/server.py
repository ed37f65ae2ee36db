"""HTTP server exposing the taskgate API."""

from __future__ import annotations

import json
import logging
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlparse

from taskgate.api import handlers
from taskgate.auth.identity import ResolvedPrincipal, resolve_credential
from taskgate.core.errors import InvariantViolation, TaskgateError

logger = logging.getLogger(__name__)

# Maximum allowed request body size (1 MiB).
MAX_REQUEST_BODY_BYTES = 1_048_576

# ---------------------------------------------------------------------------
# JSON envelope helpers
# ---------------------------------------------------------------------------


def _ok(data: Any) -> str:
    return json.dumps({"ok": True, "data": data}, sort_keys=True, indent=2) + "\n"


def _err(error: dict) -> str:
    return json.dumps({"ok": False, "error": error}, sort_keys=True, indent=2) + "\n"


class _BadRequest(Exception):
    def __init__(self, status: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message


# ---------------------------------------------------------------------------
# Request handler
# ---------------------------------------------------------------------------


def _make_handler_class(store_dir: Path, config: dict) -> type:
    """Create a handler class bound to a specific .taskgate/ directory."""

    class TaskgateHandler(BaseHTTPRequestHandler):
        _store_dir: Path = store_dir
        _config: dict = config

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            logger.info("%s - %s", self.address_string(), format % args)

        def do_GET(self) -> None:  # noqa: N802
            self._dispatch("GET")

        def do_POST(self) -> None:  # noqa: N802
            self._dispatch("POST")

        def do_PUT(self) -> None:  # noqa: N802
            self._dispatch("PUT")

        def do_DELETE(self) -> None:  # noqa: N802
            self._dispatch("DELETE")

        # ---------------------------------------------------------------
        # Dispatch and error mapping
        # ---------------------------------------------------------------

        def _dispatch(self, method: str) -> None:
            parsed = urlparse(self.path)
            path = parsed.path.rstrip("/") or "/"
            query = {k: v[-1] for k, v in parse_qs(parsed.query).items()}
            try:
                status, data = self._route(method, path, query)
            except _BadRequest as exc:
                self._send_json(exc.status, _err({"code": exc.code, "message": exc.message}))
                return
            except InvariantViolation as exc:
                logger.error("Invariant violation on %s %s: %s", method, path, exc.message)
                self._send_json(exc.http_status, _err(exc.to_error_obj()))
                return
            except TaskgateError as exc:
                self._send_json(exc.http_status, _err(exc.to_error_obj()))
                return
            except Exception:
                logger.exception("Unhandled error on %s %s", method, path)
                self._send_json(
                    500, _err({"code": "INTERNAL_ERROR", "message": "Internal server error"})
                )
                return
            self._send_json(status, _ok(data))

        def _caller(self) -> ResolvedPrincipal:
            return resolve_credential(
                self._store_dir, self._config, self.headers.get("Authorization")
            )

        # ---------------------------------------------------------------
        # API routing
        # ---------------------------------------------------------------

        def _route(self, method: str, path: str, query: dict[str, str]) -> tuple[int, Any]:
            sd, cfg = self._store_dir, self._config

            # Public routes
            if path == "/auth/login" and method == "POST":
                return 200, handlers.login(sd, cfg, self._read_request_body())
            if path == "/auth/create-admin" and method == "POST":
                return 201, handlers.create_initial_admin(sd, cfg, self._read_request_body())

            if path == "/auth/me" and method == "GET":
                return 200, handlers.me(self._caller())

            if path == "/tasks":
                if method == "GET":
                    return 200, handlers.list_tasks(sd, cfg, self._caller(), query)
                if method == "POST":
                    caller = self._caller()
                    return 201, handlers.create_task(sd, cfg, caller, self._read_request_body())
            elif path == "/tasks/stats" and method == "GET":
                return 200, handlers.task_stats(sd, cfg, self._caller())
            elif path.startswith("/tasks/"):
                task_id = path[len("/tasks/") :]
                if "/" not in task_id:
                    if method == "GET":
                        return 200, handlers.get_task(sd, cfg, self._caller(), task_id)
                    if method == "PUT":
                        caller = self._caller()
                        body = self._read_request_body()
                        return 200, handlers.update_task(sd, cfg, caller, task_id, body)
                    if method == "DELETE":
                        return 200, handlers.delete_task(sd, cfg, self._caller(), task_id)

            elif path == "/users/managers":
                if method == "GET":
                    return 200, handlers.list_managers(sd, cfg, self._caller())
                if method == "POST":
                    caller = self._caller()
                    return 201, handlers.create_manager(sd, cfg, caller, self._read_request_body())
            elif path == "/users/regular-users":
                if method == "GET":
                    return 200, handlers.list_regular_users(sd, cfg, self._caller())
                if method == "POST":
                    caller = self._caller()
                    body = self._read_request_body()
                    return 201, handlers.create_regular_user(sd, cfg, caller, body)
            elif path == "/users/assign-manager" and method == "PUT":
                caller = self._caller()
                return 200, handlers.assign_manager(sd, cfg, caller, self._read_request_body())
            elif path.startswith("/users/") and method == "DELETE":
                principal_id = path[len("/users/") :]
                if "/" not in principal_id:
                    return 200, handlers.delete_principal(sd, cfg, self._caller(), principal_id)

            raise _BadRequest(404, "NOT_FOUND", f"Not found: {method} {path}")

        # ---------------------------------------------------------------
        # Request / response helpers
        # ---------------------------------------------------------------

        def _read_request_body(self) -> dict:
            """Read and parse a JSON object request body."""
            try:
                content_length = int(self.headers.get("Content-Length", 0))
            except (TypeError, ValueError):
                raise _BadRequest(400, "BAD_REQUEST", "Missing or invalid Content-Length") from None

            if content_length == 0:
                raise _BadRequest(400, "BAD_REQUEST", "Empty request body")

            if content_length > MAX_REQUEST_BODY_BYTES:
                raise _BadRequest(
                    413,
                    "PAYLOAD_TOO_LARGE",
                    f"Request body exceeds {MAX_REQUEST_BODY_BYTES} bytes",
                )

            raw = self.rfile.read(content_length)
            try:
                body = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError):
                raise _BadRequest(400, "BAD_REQUEST", "Invalid JSON in request body") from None
            if not isinstance(body, dict):
                raise _BadRequest(400, "BAD_REQUEST", "Request body must be a JSON object")
            return body

        def _send_json(self, status: int, body: str) -> None:
            data = body.encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json; charset=utf-8")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

    return TaskgateHandler


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------


def create_server(store_dir: Path, config: dict, host: str, port: int) -> HTTPServer:
    """Create an HTTP server bound to *host*:*port* serving the taskgate API.

    Parameters
    ----------
    store_dir:
        Path to the ``.taskgate/`` directory (not the project root).
    config:
        Loaded and validated configuration.
    host:
        Bind address (e.g. ``"127.0.0.1"``).
    port:
        TCP port to listen on (``0`` picks a free port).
    """
    handler_cls = _make_handler_class(store_dir, config)
    return HTTPServer((host, port), handler_cls)
