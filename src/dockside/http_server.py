"""HTTP server — service discovery API and WebSocket log/shell sessions.

Routes:
    GET /health
    GET /api/containers/info?ref=<container-ref>
    GET /api/containers/{attempt_id}/services
    GET /api/containers/{container}/logs/ws     (WebSocket)
    GET /api/containers/{container}/shell/ws    (WebSocket)

JSON responses use one envelope::

    {"success": true, "data": ..., "error_code": null, "message": null}

Errors raised as :class:`ContainerApiError` are rendered by
``error_middleware`` with the error's status and code. No authentication;
bind to a trusted interface.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol
from uuid import UUID

from aiohttp import web

from dockside import db
from dockside.discovery import fetch_compose_services
from dockside.errors import (
    ContainerApiError,
    InvalidIdentifierError,
    NotFoundError,
    NotProvisionedError,
    StreamError,
)
from dockside.identifiers import resolve_compose_project, sanitize_identifier
from dockside.logger import logger
from dockside.relay import LogRelay, RelaySession, ShellRelay
from dockside.types import ContainerInfo, ServiceRecord, TaskAttempt

_start_time = time.monotonic()


class HttpDeps(Protocol):
    """Collaborators the handlers need; swapped for fakes in tests."""

    async def resolve_container_ref(self, container_ref: str) -> ContainerInfo: ...

    async def find_attempt(self, attempt_id: UUID) -> TaskAttempt | None: ...

    async def list_services(self, project: str) -> list[ServiceRecord]: ...

    def log_session(self, container: str) -> RelaySession: ...

    def shell_session(self, container: str) -> RelaySession: ...


class DefaultDeps:
    """Production wiring: SQLite store, runtime CLI, real relays."""

    async def resolve_container_ref(self, container_ref: str) -> ContainerInfo:
        return await db.resolve_container_ref(container_ref)

    async def find_attempt(self, attempt_id: UUID) -> TaskAttempt | None:
        return await db.find_attempt_by_id(attempt_id)

    async def list_services(self, project: str) -> list[ServiceRecord]:
        return await fetch_compose_services(project)

    def log_session(self, container: str) -> RelaySession:
        return LogRelay(container)

    def shell_session(self, container: str) -> RelaySession:
        return ShellRelay(container)


deps_key: web.AppKey[HttpDeps] = web.AppKey("deps", t=HttpDeps)


# ------------------------------------------------------------------
# Envelope + errors
# ------------------------------------------------------------------


def _success(data: Any) -> web.Response:
    return web.json_response({"success": True, "data": data, "error_code": None, "message": None})


def _failure(exc: ContainerApiError) -> web.Response:
    return web.json_response(
        {"success": False, "data": None, "error_code": exc.code, "message": exc.message},
        status=exc.status,
    )


@web.middleware
async def error_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    try:
        return await handler(request)
    except ContainerApiError as exc:
        logger.info(
            "Request rejected",
            path=request.path,
            error_code=exc.code,
            message=exc.message,
        )
        return _failure(exc)


def _parse_uuid(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError:
        raise InvalidIdentifierError(raw, f"'{raw}' is not a valid attempt id.") from None


# ------------------------------------------------------------------
# Discovery endpoints
# ------------------------------------------------------------------


async def _handle_health(request: web.Request) -> web.Response:
    return web.json_response(
        {
            "status": "ok",
            "uptime_seconds": round(time.monotonic() - _start_time),
        }
    )


async def _handle_container_info(request: web.Request) -> web.Response:
    """Map an opaque container reference to its attempt/task/project ids."""
    deps = request.app[deps_key]
    container_ref = request.query.get("ref", "")
    if not container_ref:
        raise InvalidIdentifierError(container_ref, "ref parameter required")
    info = await deps.resolve_container_ref(container_ref)
    return _success(info.to_dict())


async def _handle_container_services(request: web.Request) -> web.Response:
    """List the running compose services behind a task attempt."""
    deps = request.app[deps_key]
    attempt_id = _parse_uuid(request.match_info["attempt_id"])

    attempt = await deps.find_attempt(attempt_id)
    if attempt is None:
        raise NotFoundError("Task attempt not found.")
    if attempt.container_ref is None:
        raise NotProvisionedError("This attempt does not have a container reference yet.")

    project = resolve_compose_project(attempt.container_ref)
    services = await deps.list_services(project)
    return _success([s.to_dict() for s in services])


# ------------------------------------------------------------------
# WebSocket sessions
# ------------------------------------------------------------------


async def _run_session(request: web.Request, session: RelaySession) -> web.WebSocketResponse:
    # autoping off: the relays answer pings themselves so pongs go through
    # the same single-writer path as every other outbound frame
    ws = web.WebSocketResponse(autoping=False)
    await ws.prepare(request)
    try:
        await session.run(ws)
    except StreamError as exc:
        logger.warning("Container session closed with error", session=session.label, err=str(exc))
    return ws


async def _handle_logs_ws(request: web.Request) -> web.StreamResponse:
    container = sanitize_identifier(request.match_info["container"])
    return await _run_session(request, request.app[deps_key].log_session(container))


async def _handle_shell_ws(request: web.Request) -> web.StreamResponse:
    container = sanitize_identifier(request.match_info["container"])
    return await _run_session(request, request.app[deps_key].shell_session(container))


# ------------------------------------------------------------------
# Server setup
# ------------------------------------------------------------------


def create_app(deps: HttpDeps) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app[deps_key] = deps
    app.router.add_get("/health", _handle_health)
    app.router.add_get("/api/containers/info", _handle_container_info)
    app.router.add_get("/api/containers/{attempt_id}/services", _handle_container_services)
    app.router.add_get("/api/containers/{container}/logs/ws", _handle_logs_ws)
    app.router.add_get("/api/containers/{container}/shell/ws", _handle_shell_ws)
    return app


async def start_http_server(deps: HttpDeps, host: str, port: int) -> web.AppRunner:
    """Create, start, and return the HTTP server runner."""
    runner = web.AppRunner(create_app(deps))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("HTTP server listening", host=host, port=port)
    return runner
