"""aiohttp dispatch layer.

Endpoints:
    GET  /            -- agent name and version (no auth)
    GET  /health      -- liveness probe (no auth)
    GET  /action      -- ?name=<action>&k=v...; query params become the payload
    POST /action      -- JSON {"action": <name>, ...payload}
    GET  /docker      -- ?name=<container>&action=<restart|update>
    POST /docker      -- JSON {"name": ..., "action": ...}

Every other request must carry ``Authorization: Bearer <token>`` when the
current config sets a token.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web

from tada import __version__
from tada.action import run_action
from tada.auth import validate_bearer
from tada.docker.client import DockerClient
from tada.docker.orchestrator import ContainerOrchestrator
from tada.docker.permissions import check_permission, find_container
from tada.logging import get_logger
from tada.store import ConfigStore

log = get_logger("tada.server")

DockerFactory = Callable[[str], DockerClient]

STORE_KEY = web.AppKey("store", ConfigStore)
ORCHESTRATOR_KEY = web.AppKey("orchestrator", ContainerOrchestrator)
DOCKER_FACTORY_KEY: web.AppKey[DockerFactory] = web.AppKey("docker_factory")

_PUBLIC_PATHS = frozenset({"/", "/health"})

DOCKER_OPERATIONS = ("restart", "update")


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"ok": False, "error": message}, status=status)


def _result_status(ok: bool) -> int:
    return 200 if ok else 500


async def _json_body(request: web.Request) -> dict[str, Any]:
    """Parse a JSON object body; raise 400 on anything else."""
    try:
        body = await request.json()
    except ValueError:
        raise web.HTTPBadRequest(
            text='{"ok": false, "error": "Invalid JSON body"}',
            content_type="application/json",
        ) from None
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(
            text='{"ok": false, "error": "JSON body must be an object"}',
            content_type="application/json",
        )
    return body


@web.middleware
async def auth_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    if request.path in _PUBLIC_PATHS:
        return await handler(request)

    config = request.app[STORE_KEY].current
    if not validate_bearer(config.token, request.headers.get("Authorization")):
        log.warning("request_unauthorized", path=request.path, remote=request.remote)
        return _error("Unauthorized", 401)
    return await handler(request)


# ----------------------------------------------------------------------
# Handlers
# ----------------------------------------------------------------------


async def handle_root(request: web.Request) -> web.Response:
    return web.json_response({"name": "tada", "version": __version__})


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def _dispatch_action(
    request: web.Request, name: str | None, payload: dict[str, Any]
) -> web.Response:
    if not name:
        return _error("Missing name", 400)

    config = request.app[STORE_KEY].current
    result = await run_action(config.actions, name, payload)
    log.info("action_request", action=name, ok=result.ok, exit_code=result.exit_code)
    return web.json_response(result.to_dict(), status=_result_status(result.ok))


async def handle_action_get(request: web.Request) -> web.Response:
    payload = {k: v for k, v in request.query.items() if k != "name"}
    return await _dispatch_action(request, request.query.get("name"), payload)


async def handle_action_post(request: web.Request) -> web.Response:
    body = await _json_body(request)
    key = "action" if "action" in body else "name"
    name = body.pop(key, None)
    return await _dispatch_action(request, str(name) if name else None, body)


async def _dispatch_docker(
    request: web.Request, name: str | None, operation: str | None
) -> web.Response:
    config = request.app[STORE_KEY].current
    if config.docker is None:
        return _error("Docker not configured", 501)
    if not name or not operation:
        return _error("Missing name or action", 400)

    denied = check_permission(config.docker.containers, name, operation)
    if denied:
        log.warning("docker_request_denied", container=name, action=operation)
        return _error(denied, 403)
    if operation not in DOCKER_OPERATIONS:
        return _error(f"Unknown action: {operation}", 400)

    orchestrator = request.app[ORCHESTRATOR_KEY]
    if orchestrator.is_busy(name):
        return _error(f'An operation on container "{name}" is already in progress', 409)

    docker = request.app[DOCKER_FACTORY_KEY](config.docker.sock)
    if operation == "restart":
        result = await orchestrator.restart(docker, name)
    else:
        container = find_container(config.docker.containers, name)
        if container is None:
            return _error(f'Container "{name}" is not in the allowed list', 403)
        result = await orchestrator.update(docker, container)

    log.info("docker_request", container=name, action=operation, ok=result.ok)
    return web.json_response(result.to_dict(), status=_result_status(result.ok))


async def handle_docker_get(request: web.Request) -> web.Response:
    return await _dispatch_docker(request, request.query.get("name"), request.query.get("action"))


async def handle_docker_post(request: web.Request) -> web.Response:
    body = await _json_body(request)
    name = body.get("name")
    operation = body.get("action")
    return await _dispatch_docker(
        request,
        str(name) if name else None,
        str(operation) if operation else None,
    )


def create_app(
    store: ConfigStore,
    orchestrator: ContainerOrchestrator | None = None,
    docker_factory: DockerFactory = DockerClient,
) -> web.Application:
    """Build the aiohttp application around a started config store."""
    app = web.Application(middlewares=[auth_middleware])
    app[STORE_KEY] = store
    app[ORCHESTRATOR_KEY] = orchestrator or ContainerOrchestrator()
    app[DOCKER_FACTORY_KEY] = docker_factory

    app.router.add_get("/", handle_root)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/action", handle_action_get)
    app.router.add_post("/action", handle_action_post)
    app.router.add_get("/docker", handle_docker_get)
    app.router.add_post("/docker", handle_docker_post)
    return app
