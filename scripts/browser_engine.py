"""
Browser session and tab lifecycle.

One BrowserSession owns at most one browser handle and one current page.
Pages are launched lazily, revalidated on every use, and relaunched after
a disconnect. Tab indexes are positions in a fresh enumeration of the
browser's pages and are never cached between calls.

Launching goes through a BrowserLauncher (launch() → connect() → teardown()).
"""

from __future__ import annotations

import abc
import logging
from typing import Any

from config import Config, get_launch_profile
from errors import (
    CannotCloseLastTab,
    LaunchFailure,
    NavigationFailure,
    NotInitialized,
    TabOutOfRange,
    classify_error,
)
from models import TabInfo

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Launchers
# ---------------------------------------------------------------------------

class BrowserLauncher(abc.ABC):
    """Starts or connects to a browser.

    Each launcher implements the lifecycle:
      launch()   → start a new browser process
      connect()  → attach to an already-running browser
      teardown() → clean shutdown
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        ...

    @abc.abstractmethod
    async def launch(self, options: dict[str, Any]) -> tuple[Any, Any]:
        """Launch a browser. Returns (driver_handle, browser)."""
        ...

    @abc.abstractmethod
    async def connect(self, endpoint: str) -> tuple[Any, Any]:
        """Connect to a running browser. Returns (driver_handle, browser)."""
        ...

    @abc.abstractmethod
    async def teardown(self, handle: Any, browser: Any) -> None:
        """Clean shutdown of browser resources."""
        ...


class PlaywrightLauncher(BrowserLauncher):
    """Playwright Chromium, launched locally or attached over CDP."""

    @property
    def name(self) -> str:
        return "playwright"

    async def launch(self, options: dict[str, Any]) -> tuple[Any, Any]:
        from playwright.async_api import async_playwright

        pw = await async_playwright().start()
        try:
            browser = await pw.chromium.launch(**options)
        except Exception:
            await pw.stop()
            raise
        return pw, browser

    async def connect(self, endpoint: str) -> tuple[Any, Any]:
        from playwright.async_api import async_playwright

        pw = await async_playwright().start()
        try:
            browser = await pw.chromium.connect_over_cdp(endpoint)
        except Exception:
            await pw.stop()
            raise
        return pw, browser

    async def teardown(self, handle: Any, browser: Any) -> None:
        try:
            await browser.close()
        except Exception as exc:
            log.debug("browser.close() during teardown failed: %s", exc)
        if handle is not None:
            try:
                await handle.stop()
            except Exception as exc:
                log.debug("playwright.stop() during teardown failed: %s", exc)


# ---------------------------------------------------------------------------
# Page helpers
# ---------------------------------------------------------------------------

def live_pages(browser: Any) -> list[Any]:
    """All pages of all contexts, in the order the engine reports them."""
    return [page for context in browser.contexts for page in context.pages]


async def configure_page(page: Any, viewport: dict | None = None) -> None:
    """Apply the default timeout and identification string to a page.

    Script execution is a context setting in Playwright; contexts this
    module creates enable it explicitly.
    """
    page.set_default_navigation_timeout(Config.DEFAULT_NAVIGATION_TIMEOUT)
    await page.set_extra_http_headers({"User-Agent": Config.USER_AGENT})
    if viewport:
        await page.set_viewport_size(viewport)


def check_response(response: Any, url: str) -> int:
    """Return the HTTP status of a navigation, raising NavigationFailure on a bad one."""
    if response is None:
        raise NavigationFailure(f"Navigation to {url} failed - no response received")
    status = response.status
    if status >= 400:
        raise NavigationFailure(f"HTTP error: {status} {response.status_text}")
    return status


def repoint_index(index: int, count: int) -> int:
    """Index of the tab that becomes current when tab ``index`` of ``count`` closes.

    Prefers the next tab; closing the last one falls back to the previous.
    If the pick still equals ``index`` it steps back once more.
    """
    candidate = index + 1 if index < count - 1 else index - 1
    if candidate == index:
        candidate -= 1
    return candidate


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class BrowserSession:
    """The single browser + current page shared by every tool call.

    ``epoch`` is the invalidation token: it increments whenever the browser
    is torn down (explicit close or disconnect). Operations that suspend
    re-check it and fail with NotInitialized if it moved underneath them.
    """

    def __init__(
        self,
        launcher: BrowserLauncher | None = None,
        launch_options: dict[str, Any] | None = None,
    ):
        self.launcher = launcher or PlaywrightLauncher()
        self._launch_options = launch_options
        self._handle: Any = None
        self._browser: Any = None
        self._page: Any = None
        self._attached = False
        self._watched: Any = None
        self._console_observer: tuple[Any, Any] | None = None
        self._epoch = 0

    # -----------------------------------------------------------------------
    # State
    # -----------------------------------------------------------------------

    @property
    def browser(self) -> Any:
        return self._browser

    @property
    def current_page(self) -> Any:
        return self._page

    @property
    def is_attached(self) -> bool:
        return self._attached

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def is_connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    def _reset(self) -> None:
        self._detach_console()
        self._epoch += 1
        self._handle = None
        self._browser = None
        self._page = None
        self._attached = False

    def _detach_console(self) -> None:
        if self._console_observer is None:
            return
        page, callback = self._console_observer
        self._console_observer = None
        page.remove_listener("console", callback)

    def _watch(self, browser: Any) -> None:
        """Attach the disconnect observer once per browser handle."""
        if self._watched is browser:
            return
        browser.on("disconnected", self._on_disconnected)
        self._watched = browser

    def _on_disconnected(self, browser: Any) -> None:
        if browser is not self._browser:
            return  # stale handle, already torn down
        log.warning("Browser disconnected")
        self._reset()

    def _require_browser(self) -> tuple[Any, int]:
        if self._browser is None:
            raise NotInitialized("Browser not initialized")
        if not self._browser.is_connected():
            raise NotInitialized("Browser is disconnected")
        return self._browser, self._epoch

    def _check_epoch(self, epoch: int) -> None:
        if epoch != self._epoch:
            raise NotInitialized("Browser disconnected during the operation")

    # -----------------------------------------------------------------------
    # Session manager
    # -----------------------------------------------------------------------

    async def ensure_page(self) -> Any:
        """Return a usable current page, launching a browser if needed."""
        if self.is_connected and self._page is not None and not self._page.is_closed():
            return self._page

        if self._browser is not None:
            log.info("Discarding stale browser before relaunch")
            await self.close_browser()

        try:
            options = self._launch_options
            if options is None:
                options = get_launch_profile()
            log.info("Launching new browser instance (headless=%s)", options.get("headless"))
            handle, browser = await self.launcher.launch(options)
        except Exception as exc:
            raise LaunchFailure(f"Browser launch failed: {exc}", cause=exc) from exc

        self._epoch += 1
        self._handle = handle
        self._browser = browser
        self._attached = False
        self._watch(browser)
        epoch = self._epoch

        try:
            pages = live_pages(browser)
            if pages:
                page = pages[0]
            else:
                context = await self._default_context(browser)
                page = await context.new_page()
            await configure_page(page)
        except Exception as exc:
            if epoch == self._epoch:
                await self.close_browser()
            raise LaunchFailure(f"Browser started but no page is usable: {exc}", cause=exc) from exc
        if epoch != self._epoch:
            raise LaunchFailure("Browser disconnected while starting")

        self._page = page
        log.info("Browser launched successfully")
        return page

    def bind_attached(
        self, handle: Any, browser: Any, page: Any, console_observer: Any = None,
    ) -> None:
        """Make an externally started browser and one of its pages current.

        ensure_page() returns this page for as long as it stays open and
        the connection stays up. A console_observer is registered on the
        page and removed again when the browser is torn down.
        """
        self._epoch += 1
        self._handle = handle
        self._browser = browser
        self._page = page
        self._attached = True
        if console_observer is not None:
            page.on("console", console_observer)
            self._console_observer = (page, console_observer)
        self._watch(browser)

    async def close_browser(self) -> None:
        """Close the browser and clear state. No-op when nothing is open."""
        if self._browser is None:
            return
        handle, browser = self._handle, self._browser
        log.info("Closing browser")
        self._reset()
        await self.launcher.teardown(handle, browser)
        log.info("Browser closed")

    async def _default_context(self, browser: Any) -> Any:
        if browser.contexts:
            return browser.contexts[0]
        return await browser.new_context(
            user_agent=Config.USER_AGENT,
            java_script_enabled=True,
            no_viewport=True,
        )

    # -----------------------------------------------------------------------
    # Tab registry
    # -----------------------------------------------------------------------

    async def list_tabs(self) -> list[TabInfo]:
        """Enumerate live tabs. Tabs whose URL/title cannot be read are skipped."""
        browser, epoch = self._require_browser()
        tabs: list[TabInfo] = []
        for index, page in enumerate(live_pages(browser)):
            try:
                url = page.url
                title = await page.title()
            except Exception as exc:
                log.warning("Failed to get info for tab %d: %s", index, exc)
                continue
            tabs.append(TabInfo(index=index, url=url, title=title, current=page is self._page))
        self._check_epoch(epoch)
        return tabs

    @staticmethod
    def _page_at(pages: list[Any], index: int) -> Any:
        if index < 0 or index >= len(pages):
            raise TabOutOfRange(
                f"Tab index {index} is out of range. Available tabs: 0-{len(pages) - 1}"
            )
        return pages[index]

    async def select_tab(self, index: int) -> Any:
        browser, _ = self._require_browser()
        page = self._page_at(live_pages(browser), index)
        self._page = page
        log.info("Switched to tab %d", index)
        return page

    async def create_tab(self, url: str | None = None) -> Any:
        """Open a configured tab and make it current.

        A failed navigation raises NavigationFailure; the tab still exists
        and stays current.
        """
        browser, epoch = self._require_browser()
        context = await self._default_context(browser)
        page = await context.new_page()
        self._check_epoch(epoch)
        await configure_page(page, viewport=Config.TAB_VIEWPORT)
        self._check_epoch(epoch)
        self._page = page

        if url:
            try:
                response = await page.goto(
                    url,
                    wait_until="networkidle",
                    timeout=Config.DEFAULT_NAVIGATION_TIMEOUT,
                )
            except Exception as exc:
                self._check_epoch(epoch)
                err = classify_error(exc)
                raise NavigationFailure(f"New tab opened but navigation failed: {err.message}",
                                        cause=exc) from exc
            self._check_epoch(epoch)
            check_response(response, url)

        log.info("Created new tab%s", f" and navigated to {url}" if url else "")
        return page

    async def close_tab(self, index: int) -> None:
        browser, epoch = self._require_browser()
        pages = live_pages(browser)
        if len(pages) <= 1:
            raise CannotCloseLastTab("Cannot close the last remaining tab")
        target = self._page_at(pages, index)

        if target is self._page:
            self._page = pages[repoint_index(index, len(pages))]

        await target.close()
        self._check_epoch(epoch)
        log.info("Closed tab %d", index)
