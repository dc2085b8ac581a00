"""Attach to a Chrome that is already running with --remote-debugging-port.

discover_debug_endpoint() asks the DevTools HTTP endpoint for the browser's
websocket URL; attach() connects to it and binds one of its pages into the
session in place of a launched browser.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import aiohttp

from browser_engine import BrowserSession, live_pages
from config import Config
from errors import DebugConnectionError, TargetNotFound

log = logging.getLogger(__name__)


async def _get_json(session: aiohttp.ClientSession, url: str) -> Any:
    async with session.get(url) as resp:
        if resp.status != 200:
            raise DebugConnectionError(f"{url} returned HTTP {resp.status}")
        # DevTools serves JSON with a text/plain content type on some builds
        return await resp.json(content_type=None)


async def discover_debug_endpoint(
    port: int = Config.DEFAULT_DEBUG_PORT,
    host: str | None = None,
) -> str:
    """Return the browser-level webSocketDebuggerUrl for a debugging port."""
    host = host or Config.DEBUG_HOST
    base = f"http://{host}:{port}"
    timeout = aiohttp.ClientTimeout(total=Config.DEBUG_DISCOVERY_TIMEOUT)
    try:
        async with aiohttp.ClientSession(timeout=timeout) as http:
            version = await _get_json(http, f"{base}/json/version")
            targets = await _get_json(http, f"{base}/json/list")
    except DebugConnectionError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
        raise DebugConnectionError(
            f"Failed to connect to Chrome debugging port {port}: {exc or type(exc).__name__}",
            cause=exc,
        ) from exc

    endpoint = version.get("webSocketDebuggerUrl") if isinstance(version, dict) else None
    if not endpoint:
        raise DebugConnectionError(
            f"Failed to connect to Chrome debugging port {port}: no webSocketDebuggerUrl reported"
        )
    if not targets:
        raise DebugConnectionError(
            f"Failed to connect to Chrome debugging port {port}: no debuggable targets"
        )
    log.debug("Debug endpoint on port %d: %s (%d targets)", port, endpoint, len(targets))
    return endpoint


def pick_page(pages: list[Any], target_url: str | None) -> Any:
    """First page whose URL contains target_url (case-insensitive), else the first page."""
    if not pages:
        raise TargetNotFound("No open pages in the connected browser")
    if not target_url:
        return pages[0]
    needle = target_url.lower()
    for page in pages:
        if needle in page.url.lower():
            return page
    open_urls = ", ".join(p.url for p in pages)
    raise TargetNotFound(f"No tab matching '{target_url}'. Open tabs: {open_urls}")


async def attach(
    session: BrowserSession,
    endpoint: str,
    target_url: str | None = None,
    on_console_line: Callable[[str], None] | None = None,
) -> Any:
    """Connect to a running browser and make the chosen page current.

    Any browser the session already holds is closed first. Console messages
    of the chosen page are forwarded as "<type>: <text>" lines.
    """
    await session.close_browser()

    log.info("Connecting to existing browser at %s", endpoint)
    try:
        handle, browser = await session.launcher.connect(endpoint)
    except Exception as exc:
        raise DebugConnectionError(
            f"Failed to connect to Chrome debugging endpoint {endpoint}: {exc}",
            cause=exc,
        ) from exc

    try:
        page = pick_page(live_pages(browser), target_url)
    except TargetNotFound:
        await session.launcher.teardown(handle, browser)
        raise

    forward_console = None
    if on_console_line is not None:
        def forward_console(msg) -> None:
            on_console_line(f"{msg.type}: {msg.text}")

    session.bind_attached(handle, browser, page, console_observer=forward_console)
    log.info("Attached to tab %s", page.url)
    return page
