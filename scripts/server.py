#!/usr/bin/env python3
"""
HTTP server for browser-relay.

Keeps one browser session alive between requests and exposes the
browser tools to an orchestrator.

Usage:
    browser-relay [--host 127.0.0.1] [--port 8500] [--profile headless|headed]

Tool calls: POST / with JSON body {"name": "<tool>", "arguments": {...}}.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import logging
import secrets
from http import HTTPStatus

from aiohttp import web

import actions
from browser_engine import BrowserSession
from config import Config, get_launch_profile
from errors import LaunchFailure
from models import BrowserState

log = logging.getLogger(__name__)

SESSION_KEY = web.AppKey("session", BrowserSession)
STATE_KEY = web.AppKey("state", BrowserState)
LOCK_KEY = web.AppKey("lock", asyncio.Lock)


# ---------------------------------------------------------------------------
# Auth middleware
# ---------------------------------------------------------------------------

@web.middleware
async def auth_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Bearer token auth middleware.

    Skips auth for /health endpoint and when no token is configured.
    """
    if request.path == "/health":
        return await handler(request)

    token = Config.AUTH_TOKEN
    if not token:
        # No token configured, auth disabled (dev mode)
        return await handler(request)

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return web.json_response(
            {"isError": True, "error": "Missing or malformed Authorization header"},
            status=HTTPStatus.UNAUTHORIZED,
        )

    provided = auth_header[7:]  # strip "Bearer "
    if not secrets.compare_digest(provided, token):
        return web.json_response(
            {"isError": True, "error": "Invalid token"},
            status=HTTPStatus.FORBIDDEN,
        )

    return await handler(request)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def handle_call(request: web.Request) -> web.Response:
    """Tool call handler."""
    try:
        body = await request.json()
    except ValueError as e:  # bad JSON or undecodable bytes
        return web.json_response(
            {"isError": True, "error": f"Invalid JSON: {e}"},
            status=HTTPStatus.BAD_REQUEST,
        )

    if not isinstance(body, dict) or not isinstance(body.get("name"), str):
        return web.json_response(
            {"isError": True, "error": "Body must be an object with a 'name' string"},
            status=HTTPStatus.BAD_REQUEST,
        )
    arguments = body.get("arguments") or {}
    if not isinstance(arguments, dict):
        return web.json_response(
            {"isError": True, "error": "'arguments' must be an object"},
            status=HTTPStatus.BAD_REQUEST,
        )

    app = request.app
    # Tool calls share one browser and one current page
    async with app[LOCK_KEY]:
        try:
            result = await actions.execute_tool(
                body["name"], arguments, app[SESSION_KEY], app[STATE_KEY],
            )
        except LaunchFailure as e:
            log.error("Browser launch failed: %s", e.message)
            return web.json_response(
                {"isError": True, "error": e.to_agent_message(), **e.to_dict()},
                status=HTTPStatus.INTERNAL_SERVER_ERROR,
            )
        except Exception as e:
            log.exception("Unhandled error in tool %s", body["name"])
            return web.json_response(
                {"isError": True, "error": f"Unhandled error: {e}"},
                status=HTTPStatus.INTERNAL_SERVER_ERROR,
            )

    return web.json_response(result.to_wire())


async def handle_tools(request: web.Request) -> web.Response:
    return web.json_response({"tools": actions.tool_definitions()})


async def handle_health(request: web.Request) -> web.Response:
    """Health check endpoint."""
    session = request.app[SESSION_KEY]
    return web.json_response({
        "status": "ok",
        "browser_connected": session.is_connected,
        "attached": session.is_attached,
    })


async def handle_console(request: web.Request) -> web.Response:
    return web.json_response({"logs": request.app[STATE_KEY].console_logs})


async def handle_screenshot_list(request: web.Request) -> web.Response:
    return web.json_response({"screenshots": sorted(request.app[STATE_KEY].screenshots)})


async def handle_screenshot(request: web.Request) -> web.Response:
    name = request.match_info["name"]
    data = request.app[STATE_KEY].screenshots.get(name)
    if data is None:
        return web.json_response(
            {"isError": True, "error": f"Screenshot not found: {name}"},
            status=HTTPStatus.NOT_FOUND,
        )
    return web.Response(body=base64.b64decode(data), content_type="image/png")


async def cleanup(app: web.Application) -> None:
    """Close the browser on shutdown."""
    await app[SESSION_KEY].close_browser()


def create_app(
    session: BrowserSession | None = None,
    state: BrowserState | None = None,
) -> web.Application:
    app = web.Application(middlewares=[auth_middleware])
    app[SESSION_KEY] = session if session is not None else BrowserSession()
    app[STATE_KEY] = state if state is not None else BrowserState()
    app[LOCK_KEY] = asyncio.Lock()
    app.router.add_post("/", handle_call)
    app.router.add_get("/tools", handle_tools)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/console", handle_console)
    app.router.add_get("/screenshots", handle_screenshot_list)
    app.router.add_get("/screenshots/{name}", handle_screenshot)
    app.on_cleanup.append(cleanup)
    return app


def main():
    parser = argparse.ArgumentParser(description="browser-relay HTTP server")
    parser.add_argument("--port", type=int, default=Config.DEFAULT_PORT,
                        help=f"Port (default: {Config.DEFAULT_PORT})")
    parser.add_argument("--host", default=Config.DEFAULT_HOST,
                        help=f"Host (default: {Config.DEFAULT_HOST})")
    parser.add_argument("--profile", default=None,
                        help="Launch profile: headless or headed (default: auto)")
    args = parser.parse_args()

    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    session = BrowserSession(launch_options=get_launch_profile(args.profile))
    app = create_app(session)

    auth_status = "enabled (token set)" if Config.AUTH_TOKEN else "disabled (no BROWSER_RELAY_TOKEN)"
    log.info("browser-relay server starting on %s:%d [auth: %s]", args.host, args.port, auth_status)
    web.run_app(app, host=args.host, port=args.port, print=None)


if __name__ == "__main__":
    main()
