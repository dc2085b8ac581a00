"""Shared fakes for browser-relay tests.

The fakes stand in for the Playwright objects the session core touches
(Browser, BrowserContext, Page, ElementHandle, ConsoleMessage) so the
lifecycle and tool logic run without a real browser.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from browser_engine import BrowserLauncher, BrowserSession  # noqa: E402
from models import BrowserState  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


class FakeResponse:
    def __init__(self, status: int = 200, status_text: str = "OK"):
        self.status = status
        self.status_text = status_text


class FakeConsoleMessage:
    def __init__(self, type: str, text: str):
        self.type = type
        self.text = text


class FakeElementHandle:
    async def screenshot(self, **kwargs):
        return PNG_BYTES


class FakeLocator:
    def __init__(self, page, selector):
        self._page = page
        self._selector = selector

    @property
    def first(self):
        return self

    async def press_sequentially(self, text, **kwargs):
        self._page.calls.append(("type", self._selector, text))


class FakePage:
    def __init__(self, context=None, url="about:blank", title=""):
        self.context = context
        self.url = url
        self._title = title
        self.closed = False
        self.listeners: dict[str, list] = {}
        self.viewport_size = None
        self.extra_headers: dict = {}
        self.default_navigation_timeout = None
        self.calls: list[tuple] = []
        # Behaviour knobs
        self.responses: dict[str, FakeResponse | None] = {}
        self.goto_errors: dict[str, Exception] = {}
        self.selectors: set[str] = set()
        self.evaluate_handler = None
        self.title_error: Exception | None = None
        self.on_close = None

    # -- state ---------------------------------------------------------------

    def is_closed(self):
        return self.closed

    async def title(self):
        if self.title_error is not None:
            raise self.title_error
        return self._title

    async def close(self):
        self.closed = True
        if self.context is not None and self in self.context.pages:
            self.context.pages.remove(self)
        if self.on_close is not None:
            self.on_close()

    # -- configuration -------------------------------------------------------

    def set_default_navigation_timeout(self, timeout):
        self.default_navigation_timeout = timeout

    async def set_extra_http_headers(self, headers):
        self.extra_headers.update(headers)

    async def set_viewport_size(self, size):
        self.viewport_size = dict(size)

    # -- events --------------------------------------------------------------

    def on(self, event, callback):
        self.listeners.setdefault(event, []).append(callback)

    def remove_listener(self, event, callback):
        self.listeners.get(event, []).remove(callback)

    def emit(self, event, payload):
        for callback in list(self.listeners.get(event, [])):
            callback(payload)

    def console(self, type, text):
        self.emit("console", FakeConsoleMessage(type, text))

    # -- navigation and scripts ---------------------------------------------

    async def goto(self, url, wait_until=None, timeout=None):
        self.calls.append(("goto", url, wait_until, timeout))
        if url in self.goto_errors:
            raise self.goto_errors[url]
        self.url = url
        return self.responses.get(url, FakeResponse())

    async def evaluate(self, expression, arg=None):
        self.calls.append(("evaluate", expression, arg))
        if self.evaluate_handler is None:
            return None
        return self.evaluate_handler(expression, arg)

    # -- element actions -----------------------------------------------------

    def _require(self, selector):
        if selector not in self.selectors:
            raise TimeoutError(f"Timeout 30000ms exceeded waiting for selector \"{selector}\"")

    async def query_selector(self, selector):
        return FakeElementHandle() if selector in self.selectors else None

    async def screenshot(self, **kwargs):
        self.calls.append(("screenshot", kwargs))
        return PNG_BYTES

    async def click(self, selector):
        self._require(selector)
        self.calls.append(("click", selector))

    async def wait_for_selector(self, selector):
        self._require(selector)

    def locator(self, selector):
        return FakeLocator(self, selector)

    async def select_option(self, selector, value):
        self.calls.append(("select", selector, value))

    async def hover(self, selector):
        self.calls.append(("hover", selector))


class FakeContext:
    def __init__(self, browser, pages: int = 0):
        self.browser = browser
        self.pages: list[FakePage] = [FakePage(self) for _ in range(pages)]

    async def new_page(self):
        page = FakePage(self)
        self.pages.append(page)
        return page


class FakeBrowser:
    def __init__(self, pages: int = 1, contexts: int = 1):
        self.contexts: list[FakeContext] = [FakeContext(self, pages) for _ in range(contexts)]
        self.connected = True
        self.listeners: dict[str, list] = {}
        self.new_context_kwargs: list[dict] = []

    def is_connected(self):
        return self.connected

    def on(self, event, callback):
        self.listeners.setdefault(event, []).append(callback)

    async def new_context(self, **kwargs):
        self.new_context_kwargs.append(kwargs)
        context = FakeContext(self)
        self.contexts.append(context)
        return context

    def disconnect(self):
        """Simulate the browser going away underneath the session."""
        self.connected = False
        for callback in list(self.listeners.get("disconnected", [])):
            callback(self)

    async def close(self):
        if self.connected:
            self.disconnect()

    @property
    def pages(self) -> list[FakePage]:
        return [p for c in self.contexts for p in c.pages]


class FakeLauncher(BrowserLauncher):
    """Hands out FakeBrowsers and records the lifecycle calls."""

    def __init__(self, pages: int = 1):
        self.pages = pages
        self.launched: list[FakeBrowser] = []
        self.launch_options: list[dict] = []
        self.connected_to: list[str] = []
        self.torn_down: list[FakeBrowser] = []
        self.launch_error: Exception | None = None
        self.connect_error: Exception | None = None
        self.remote: FakeBrowser | None = None

    @property
    def name(self):
        return "fake"

    async def launch(self, options):
        self.launch_options.append(options)
        if self.launch_error is not None:
            raise self.launch_error
        browser = FakeBrowser(pages=self.pages)
        self.launched.append(browser)
        return "handle", browser

    async def connect(self, endpoint):
        self.connected_to.append(endpoint)
        if self.connect_error is not None:
            raise self.connect_error
        return "remote-handle", self.remote

    async def teardown(self, handle, browser):
        self.torn_down.append(browser)
        await browser.close()


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def session(launcher):
    return BrowserSession(launcher=launcher, launch_options={"headless": True, "args": []})


@pytest.fixture
def state():
    return BrowserState()
