"""HTTP server exposing the board and relationship JSON API."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse

from trellis.core.config import TrellisConfig
from trellis.core.errors import DomainError, NotFoundError, ValidationError
from trellis.core.hierarchy import build_hierarchy_report
from trellis.core.linking import (
    create_relationship,
    delete_relationships,
    list_relationships,
    update_relationship,
)
from trellis.core.relationships import DEFAULT_RELATIONSHIP_TYPE
from trellis.core.stats import build_board_snapshot, build_board_status
from trellis.core.timestamps import format_timestamp
from trellis.storage.locks import LockTimeout
from trellis.storage.runtime import (
    Runtime,
    RuntimeOpenError,
    open_runtime,
    prepare_database,
    read_config,
)

logger = logging.getLogger(__name__)

# Maximum allowed request body size (1 MiB).
MAX_REQUEST_BODY_BYTES = 1_048_576

# ---------------------------------------------------------------------------
# JSON envelope helpers
# ---------------------------------------------------------------------------


def _json_default(value: object) -> object:
    if isinstance(value, datetime):
        return format_timestamp(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _ok(data: Any) -> str:
    return (
        json.dumps({"success": True, "data": data}, sort_keys=True, indent=2, default=_json_default)
        + "\n"
    )


def _err(code: str, message: str, context: dict | None = None) -> str:
    return (
        json.dumps(
            {
                "success": False,
                "error": {"code": code, "message": message, "context": context or {}},
            },
            sort_keys=True,
            indent=2,
            default=_json_default,
        )
        + "\n"
    )


def _status_for(exc: DomainError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    return 500


def _query_int(params: dict[str, list[str]], key: str) -> int | None:
    values = params.get(key)
    if not values:
        return None
    try:
        return int(values[-1])
    except ValueError:
        raise ValidationError(
            f"{key} must be an integer", {"field": key, "value": values[-1]}
        ) from None


def _query_str(params: dict[str, list[str]], key: str) -> str | None:
    values = params.get(key)
    return values[-1] if values else None


# ---------------------------------------------------------------------------
# Request handler
# ---------------------------------------------------------------------------


def _make_handler_class(trellis_dir: Path, config: TrellisConfig) -> type:
    """Create a handler class bound to one .trellis/ directory."""

    class TrellisHandler(BaseHTTPRequestHandler):
        _trellis_dir: Path = trellis_dir
        _config: TrellisConfig = config

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            logger.debug(
                "request",
                extra={"context": {"client": self.address_string(), "line": format % args}},
            )

        def do_GET(self) -> None:  # noqa: N802
            parsed = urlparse(self.path)
            path = parsed.path.rstrip("/") or "/"
            if path.startswith("/api/"):
                self._route_api(path, parse_qs(parsed.query))
            else:
                self._send_json(404, _err("NOT_FOUND", f"Not found: {path}"))

        def do_POST(self) -> None:  # noqa: N802
            parsed = urlparse(self.path)
            path = parsed.path.rstrip("/") or "/"
            if path.startswith("/api/"):
                self._route_api_post(path)
            else:
                self._send_json(404, _err("NOT_FOUND", f"Not found: {path}"))

        # ---------------------------------------------------------------
        # API routing
        # ---------------------------------------------------------------

        def _route_api(self, path: str, params: dict[str, list[str]]) -> None:
            if path == "/api/board":
                self._handle_board()
            elif path == "/api/status":
                self._handle_status()
            elif path == "/api/hierarchy":
                self._handle_hierarchy()
            elif path == "/api/relationships":
                self._handle_list_relationships(params)
            else:
                self._send_json(404, _err("NOT_FOUND", f"Unknown API endpoint: {path}"))

        def _route_api_post(self, path: str) -> None:
            if path == "/api/relationships":
                self._handle_post_create_relationship()
            elif path == "/api/relationships/delete":
                self._handle_post_delete_relationships()
            elif path.startswith("/api/relationships/"):
                remainder = path[len("/api/relationships/") :]
                rel_id, _, sub = remainder.rpartition("/")
                if rel_id and sub == "update":
                    self._handle_post_update_relationship(unquote(rel_id))
                else:
                    self._send_json(404, _err("NOT_FOUND", f"Not found: {path}"))
            else:
                self._send_json(404, _err("NOT_FOUND", f"Unknown API endpoint: {path}"))

        # ---------------------------------------------------------------
        # Workflow execution and responses
        # ---------------------------------------------------------------

        def _run(
            self,
            work: Callable[[Runtime], Awaitable[Any]],
            render: Callable[[Any], Any] = lambda result: result,
            status: int = 200,
        ) -> None:
            """Open a runtime, run *work* against it, and send the envelope.

            Each request gets its own event loop and database connection.
            """

            async def _call() -> Any:
                async with open_runtime(self._trellis_dir, self._config) as rt:
                    return await work(rt)

            try:
                result = asyncio.run(_call())
            except RuntimeOpenError as exc:
                logger.error("cannot open database: %s", exc)
                self._send_json(500, _err("CONFIG_ERROR", str(exc)))
                return
            except DomainError as exc:
                self._send_json(_status_for(exc), _err(exc.code, exc.message, exc.context))
                return
            except LockTimeout as exc:
                self._send_json(503, _err("LOCK_TIMEOUT", str(exc)))
                return
            except Exception as exc:
                logger.exception("unexpected error handling %s", self.path)
                self._send_json(500, _err("UNKNOWN_ERROR", str(exc) or type(exc).__name__))
                return
            self._send_json(status, _ok(render(result)))

        def _send_json(self, status: int, body: str) -> None:
            data = body.encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json; charset=utf-8")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def _read_request_body(self) -> dict | None:
            """Read and parse a JSON object body. Sends 400/413 and returns None on failure."""
            try:
                content_length = int(self.headers.get("Content-Length", 0))
            except (TypeError, ValueError):
                self._send_json(400, _err("BAD_REQUEST", "Missing or invalid Content-Length"))
                return None

            if content_length == 0:
                self._send_json(400, _err("BAD_REQUEST", "Empty request body"))
                return None

            if content_length > MAX_REQUEST_BODY_BYTES:
                self._send_json(
                    413,
                    _err(
                        "PAYLOAD_TOO_LARGE", f"Request body exceeds {MAX_REQUEST_BODY_BYTES} bytes"
                    ),
                )
                return None

            try:
                body = json.loads(self.rfile.read(content_length))
            except json.JSONDecodeError:
                self._send_json(400, _err("BAD_REQUEST", "Invalid JSON in request body"))
                return None
            if not isinstance(body, dict):
                self._send_json(400, _err("BAD_REQUEST", "Request body must be a JSON object"))
                return None
            return body

        # ---------------------------------------------------------------
        # Endpoint handlers
        # ---------------------------------------------------------------

        def _handle_board(self) -> None:
            """GET /api/board: every todo and relationship for rendering."""
            self._run(
                lambda rt: build_board_snapshot(
                    rt.todos, rt.relationships, batch_size=rt.batch_size
                )
            )

        def _handle_status(self) -> None:
            """GET /api/status: roll-ups plus dependency health."""
            self._run(
                lambda rt: build_board_status(rt.todos, rt.relationships, batch_size=rt.batch_size)
            )

        def _handle_hierarchy(self) -> None:
            """GET /api/hierarchy: parent/child forest from parent_of edges."""
            self._run(
                lambda rt: build_hierarchy_report(
                    rt.todos, rt.relationships, batch_size=rt.batch_size
                )
            )

        def _handle_list_relationships(self, params: dict[str, list[str]]) -> None:
            async def _work(rt: Runtime):
                default_limit, max_limit = rt.list_limits
                return await list_relationships(
                    rt.relationships,
                    from_id=_query_str(params, "from"),
                    to_id=_query_str(params, "to"),
                    involving=_query_str(params, "involving"),
                    rel_type=params.get("type") or None,
                    limit=_query_int(params, "limit"),
                    offset=_query_int(params, "offset"),
                    default_limit=default_limit,
                    max_limit=max_limit,
                )

            self._run(
                _work,
                lambda result: {
                    "relationships": [rel.to_dict() for rel in result[0]],
                    "filters": result[1],
                },
            )

        def _handle_post_create_relationship(self) -> None:
            body = self._read_request_body()
            if body is None:
                return

            async def _work(rt: Runtime):
                return await create_relationship(
                    rt.relationships,
                    rt.todos,
                    from_id=body.get("from_id"),
                    to_id=body.get("to_id"),
                    rel_type=body.get("type") or DEFAULT_RELATIONSHIP_TYPE,
                    description=body.get("description"),
                    graph_lock=rt.graph_lock,
                    **rt.traversal,
                )

            self._run(_work, lambda rel: rel.to_dict(), status=201)

        def _handle_post_delete_relationships(self) -> None:
            body = self._read_request_body()
            if body is None:
                return
            ids = body.get("ids", body.get("id"))

            async def _work(rt: Runtime):
                return await delete_relationships(rt.relationships, ids)

            self._run(_work, lambda deleted: {"deleted_count": len(deleted), "ids": deleted})

        def _handle_post_update_relationship(self, rel_id: str) -> None:
            body = self._read_request_body()
            if body is None:
                return

            async def _work(rt: Runtime):
                return await update_relationship(
                    rt.relationships,
                    rel_id,
                    rel_type=body.get("type"),
                    description=body.get("description"),
                    graph_lock=rt.graph_lock,
                    **rt.traversal,
                )

            self._run(_work, lambda rel: rel.to_dict())

    return TrellisHandler


class TrellisServer(HTTPServer):
    """HTTPServer whose handlers serve one .trellis/ directory."""

    def __init__(
        self, address: tuple[str, int], trellis_dir: Path, config: TrellisConfig
    ) -> None:
        self.trellis_dir = trellis_dir
        self.config = config
        super().__init__(address, _make_handler_class(trellis_dir, config))


def create_server(trellis_dir: Path, host: str, port: int) -> TrellisServer:
    """Create an HTTP server bound to *host*:*port* serving the board API.

    The config is read and the database opened once up front so a broken
    project fails here rather than on the first request.

    Parameters
    ----------
    trellis_dir:
        Path to the ``.trellis/`` directory (not the project root).
    host:
        Bind address (e.g. ``"127.0.0.1"``).
    port:
        TCP port to listen on.
    """
    config = read_config(trellis_dir)
    asyncio.run(prepare_database(trellis_dir, config))
    return TrellisServer((host, port), trellis_dir, config)
