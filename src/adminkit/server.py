"""
HTTP server for adminkit.

aiohttp routes for the session lifecycle and the request audit log. Blocking
store work runs on the default thread pool, one worker per request.
"""

import argparse
import asyncio
import functools
import math
import sys

from aiohttp import web
from loguru import logger

from .auth import ALL_ROLES, Role, from_aiohttp, get_session_token
from .config import load_config
from .errors import AdminKitError, InvalidParameter, KeyNotFound, MalformedPayload
from .log import configure_logging
from .service import Service

SERVICE_KEY = web.AppKey("service", Service)


async def run_blocking(func, *args):
    """Run a blocking call on the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args))


async def authorize(request: web.Request, allowed_roles) -> str:
    """
    Validate a request against its session.

    Returns:
        The session token

    Raises:
        AdminKitError: If access is not granted
    """
    service = request.app[SERVICE_KEY]
    info = await from_aiohttp(request)
    granted, error = await run_blocking(service.sessions.validate_request, allowed_roles, info)
    if not granted:
        raise error
    if error is not None:
        logger.warning(f"Serving {request.method} {request.path} without audit record")
    return get_session_token(info.headers)


async def read_payload(request: web.Request) -> dict:
    try:
        payload = await request.json()
    except ValueError as e:
        raise MalformedPayload() from e
    if not isinstance(payload, dict):
        raise MalformedPayload()
    return payload


def _field(payload: dict, key: str, kind):
    value = payload.get(key)
    if value is None:
        raise KeyNotFound(key)
    if not isinstance(value, kind) or isinstance(value, bool):
        raise InvalidParameter(key)
    return value


# ============================================================================
# Handlers
# ============================================================================

async def handle_create_session(request: web.Request) -> web.Response:
    """
    POST /sessions
    Body: {"email": "...", "password": "..."}
    Returns: the new session
    """
    payload = await read_payload(request)
    email = _field(payload, "email", str)
    password = _field(payload, "password", str)

    service = request.app[SERVICE_KEY]
    session = await run_blocking(service.sessions.login, email, password)
    return web.json_response(session.to_dict(), status=201)


async def handle_get_session(request: web.Request) -> web.Response:
    """GET /sessions/{id}"""
    service = request.app[SERVICE_KEY]
    session = service.sessions.get_session(request.match_info["id"])
    return web.json_response(session.to_dict())


async def handle_logout(request: web.Request) -> web.Response:
    """
    DELETE /sessions
    Headers: Authorization: Token <token>
    """
    token = await authorize(request, ALL_ROLES)
    request.app[SERVICE_KEY].sessions.logout(token)
    return web.json_response({"success": True})


async def handle_list_logs(request: web.Request) -> web.Response:
    """
    POST /logs/list (admin only)
    Body: {"date": "YYYY-MM-DD hh:mm:ss", "token": "...", "requestType": "GET", "offset": 0}
    """
    await authorize(request, [Role.ADMIN.value])

    payload = await read_payload(request)
    date = _field(payload, "date", str)
    token = _field(payload, "token", str)
    request_type = payload.get("requestType", "")
    if not isinstance(request_type, str):
        raise InvalidParameter("requestType")
    offset = _field(payload, "offset", (int, float))
    if isinstance(offset, float) and not math.isfinite(offset):
        raise InvalidParameter("offset")
    offset = int(offset)

    service = request.app[SERVICE_KEY]
    page_limit = service.config.page_limit
    records = await run_blocking(
        service.audit.list, date, token, request_type, offset, page_limit
    )

    return web.json_response({
        "meta": {
            "count": len(records),
            "offset": offset,
            "pagesize": page_limit,
        },
        "results": [record.to_dict() for record in records],
    })


# ============================================================================
# Application
# ============================================================================

@web.middleware
async def error_middleware(request, handler):
    """Turn adminkit errors into JSON error bodies."""
    try:
        return await handler(request)
    except AdminKitError as e:
        return web.json_response({"error": e.message}, status=e.status)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return web.json_response({"error": "internal server error"}, status=500)


async def _shutdown(app: web.Application) -> None:
    app[SERVICE_KEY].shutdown()


def create_app(service: Service) -> web.Application:
    """Build the web application around a started service."""
    app = web.Application(middlewares=[error_middleware])
    app[SERVICE_KEY] = service
    app.add_routes([
        web.post("/sessions", handle_create_session),
        web.get("/sessions/{id}", handle_get_session),
        web.delete("/sessions", handle_logout),
        web.post("/logs/list", handle_list_logs),
    ])
    app.on_cleanup.append(_shutdown)
    return app


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="adminkit server")
    parser.add_argument("--config", default="config.json", help="Path to the JSON config file")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except AdminKitError as e:
        logger.error(e.message)
        return 1

    configure_logging(config.log_file, config.debug)

    service = Service(config)
    try:
        service.start()
    except AdminKitError as e:
        logger.error(f"Startup failed: {e.message}")
        service.shutdown()
        return 1

    logger.info(f"Starting {config.server} on {config.host}:{config.port}")
    # run_app handles SIGINT/SIGTERM; on_cleanup checkpoints sessions
    web.run_app(create_app(service), host=config.host, port=config.port, print=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
