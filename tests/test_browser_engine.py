"""
Unit tests - browser session and tab lifecycle

Covers:
1. Lazy launch and page reuse
2. Relaunch after disconnect or a closed page
3. Tab listing, selection, creation
4. Tab closing and current-page re-pointing
5. Invalidation when the browser goes away mid-operation
"""

import pytest

from browser_engine import BrowserSession, check_response, repoint_index
from config import Config
from conftest import FakeBrowser, FakeResponse
from errors import (
    CannotCloseLastTab,
    LaunchFailure,
    NavigationFailure,
    NotInitialized,
    TabOutOfRange,
)


async def _with_tabs(session, launcher, count):
    """Launch and return the browser holding ``count`` pages; page 0 is current."""
    await session.ensure_page()
    browser = launcher.launched[-1]
    context = browser.contexts[0]
    for _ in range(count - 1):
        await context.new_page()
    return browser


# ─────────────────────────────────────────────
# 1. Launch
# ─────────────────────────────────────────────


class TestEnsurePage:

    @pytest.mark.asyncio
    async def test_launches_lazily_and_reuses(self, session, launcher):
        assert session.browser is None
        first = await session.ensure_page()
        second = await session.ensure_page()
        assert first is second
        assert len(launcher.launched) == 1
        assert session.is_connected
        assert not session.is_attached

    @pytest.mark.asyncio
    async def test_configures_page(self, session):
        page = await session.ensure_page()
        assert page.default_navigation_timeout == Config.DEFAULT_NAVIGATION_TIMEOUT
        assert page.extra_headers["User-Agent"] == Config.USER_AGENT

    @pytest.mark.asyncio
    async def test_passes_launch_options(self, session, launcher):
        await session.ensure_page()
        assert launcher.launch_options == [{"headless": True, "args": []}]

    @pytest.mark.asyncio
    async def test_creates_context_when_browser_has_no_pages(self, session, launcher):
        launcher.pages = 0
        page = await session.ensure_page()
        browser = launcher.launched[0]
        assert page in browser.pages
        # The launched browser already had a default context
        assert browser.new_context_kwargs == []

    @pytest.mark.asyncio
    async def test_new_context_enables_scripts_and_user_agent(self, session, launcher):
        launcher.pages = 0
        original_launch = launcher.launch

        async def launch_without_contexts(options):
            handle, browser = await original_launch(options)
            browser.contexts.clear()
            return handle, browser

        launcher.launch = launch_without_contexts
        await session.ensure_page()
        kwargs = launcher.launched[0].new_context_kwargs[0]
        assert kwargs["java_script_enabled"] is True
        assert kwargs["user_agent"] == Config.USER_AGENT

    @pytest.mark.asyncio
    async def test_relaunches_after_disconnect(self, session, launcher):
        await session.ensure_page()
        epoch = session.epoch
        launcher.launched[0].disconnect()
        assert session.browser is None
        assert session.epoch > epoch

        page = await session.ensure_page()
        assert len(launcher.launched) == 2
        assert page in launcher.launched[1].pages

    @pytest.mark.asyncio
    async def test_relaunches_after_page_closed(self, session, launcher):
        page = await session.ensure_page()
        page.closed = True
        new_page = await session.ensure_page()
        assert new_page is not page
        assert launcher.torn_down == [launcher.launched[0]]
        assert len(launcher.launched) == 2

    @pytest.mark.asyncio
    async def test_launch_failure(self, session, launcher):
        launcher.launch_error = RuntimeError("Executable doesn't exist")
        with pytest.raises(LaunchFailure) as exc_info:
            await session.ensure_page()
        assert "Executable doesn't exist" in exc_info.value.message
        assert session.browser is None
        assert session.current_page is None

    @pytest.mark.asyncio
    async def test_unknown_profile_is_launch_failure(self, launcher, monkeypatch):
        monkeypatch.setattr(Config, "LAUNCH_PROFILE", "turbo")
        session = BrowserSession(launcher=launcher)
        with pytest.raises(LaunchFailure) as exc_info:
            await session.ensure_page()
        assert "Unknown launch profile" in exc_info.value.message
        assert launcher.launched == []
        assert session.browser is None

    @pytest.mark.asyncio
    async def test_attached_page_is_reused(self, session, launcher):
        remote = FakeBrowser(pages=1)
        page = remote.pages[0]
        session.bind_attached("remote-handle", remote, page)
        assert await session.ensure_page() is page
        assert session.is_attached
        assert launcher.launched == []


# ─────────────────────────────────────────────
# 2. Close
# ─────────────────────────────────────────────


class TestCloseBrowser:

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, session, launcher):
        await session.close_browser()
        assert launcher.torn_down == []

        await session.ensure_page()
        await session.close_browser()
        await session.close_browser()
        assert len(launcher.torn_down) == 1
        assert session.browser is None

    @pytest.mark.asyncio
    async def test_disconnect_event_after_close_is_ignored(self, session, launcher):
        await session.ensure_page()
        epoch = session.epoch
        await session.close_browser()
        # FakeBrowser.close() fires "disconnected"; only the explicit close counts
        assert session.epoch == epoch + 1

    @pytest.mark.asyncio
    async def test_observer_registered_once_per_browser(self, session, launcher):
        await session.ensure_page()
        browser = launcher.launched[0]
        session.bind_attached("handle", browser, browser.pages[0])
        assert len(browser.listeners["disconnected"]) == 1


# ─────────────────────────────────────────────
# 3. Tab registry
# ─────────────────────────────────────────────


class TestTabs:

    @pytest.mark.asyncio
    async def test_list_requires_browser(self, session):
        with pytest.raises(NotInitialized):
            await session.list_tabs()

    @pytest.mark.asyncio
    async def test_list_tabs_marks_current(self, session, launcher):
        browser = await _with_tabs(session, launcher, 3)
        browser.pages[1].url = "https://example.com/"
        browser.pages[1]._title = "Example"
        tabs = await session.list_tabs()
        assert [t.index for t in tabs] == [0, 1, 2]
        assert [t.current for t in tabs] == [True, False, False]
        assert tabs[1].url == "https://example.com/"
        assert tabs[1].title == "Example"

    @pytest.mark.asyncio
    async def test_list_tabs_skips_unreadable_tab(self, session, launcher):
        browser = await _with_tabs(session, launcher, 3)
        browser.pages[1].title_error = RuntimeError("Target closed")
        tabs = await session.list_tabs()
        assert [t.index for t in tabs] == [0, 2]

    @pytest.mark.asyncio
    async def test_list_tabs_spans_contexts(self, session, launcher):
        browser = await _with_tabs(session, launcher, 1)
        extra = await browser.new_context()
        await extra.new_page()
        tabs = await session.list_tabs()
        assert len(tabs) == 2

    @pytest.mark.asyncio
    async def test_select_tab(self, session, launcher):
        browser = await _with_tabs(session, launcher, 2)
        page = await session.select_tab(1)
        assert page is browser.pages[1]
        assert session.current_page is page
        assert await session.ensure_page() is page

    @pytest.mark.asyncio
    async def test_select_tab_out_of_range(self, session, launcher):
        await _with_tabs(session, launcher, 2)
        with pytest.raises(TabOutOfRange) as exc_info:
            await session.select_tab(5)
        assert str(exc_info.value) == "Tab index 5 is out of range. Available tabs: 0-1"

    @pytest.mark.asyncio
    async def test_select_tab_negative(self, session, launcher):
        await _with_tabs(session, launcher, 2)
        with pytest.raises(IndexError):
            await session.select_tab(-1)

    @pytest.mark.asyncio
    async def test_create_tab_without_url(self, session, launcher):
        await session.ensure_page()
        page = await session.create_tab()
        assert session.current_page is page
        assert page.viewport_size == Config.TAB_VIEWPORT
        assert page.extra_headers["User-Agent"] == Config.USER_AGENT
        assert not [c for c in page.calls if c[0] == "goto"]

    @pytest.mark.asyncio
    async def test_create_tab_navigates(self, session):
        await session.ensure_page()
        page = await session.create_tab("https://example.com")
        assert page.calls[-1] == (
            "goto", "https://example.com", "networkidle", Config.DEFAULT_NAVIGATION_TIMEOUT,
        )
        tabs = await session.list_tabs()
        assert tabs[-1].current

    @pytest.mark.asyncio
    async def test_create_tab_navigation_failure_keeps_tab(self, session, launcher):
        await session.ensure_page()
        original_new_page = launcher.launched[0].contexts[0].new_page

        async def failing_new_page():
            page = await original_new_page()
            page.goto_errors["https://down.invalid"] = RuntimeError(
                "net::ERR_NAME_NOT_RESOLVED at https://down.invalid"
            )
            return page

        launcher.launched[0].contexts[0].new_page = failing_new_page
        with pytest.raises(NavigationFailure) as exc_info:
            await session.create_tab("https://down.invalid")
        assert "New tab opened but navigation failed" in exc_info.value.message
        assert "ERR_NAME_NOT_RESOLVED" in exc_info.value.message
        assert len(await session.list_tabs()) == 2
        assert session.current_page is launcher.launched[0].pages[1]

    @pytest.mark.asyncio
    async def test_create_tab_requires_browser(self, session):
        with pytest.raises(NotInitialized):
            await session.create_tab("https://example.com")


# ─────────────────────────────────────────────
# 4. Closing tabs
# ─────────────────────────────────────────────


class TestCloseTab:

    @pytest.mark.asyncio
    async def test_cannot_close_last_tab(self, session, launcher):
        browser = await _with_tabs(session, launcher, 1)
        with pytest.raises(CannotCloseLastTab):
            await session.close_tab(0)
        assert len(browser.pages) == 1

    @pytest.mark.asyncio
    async def test_close_first_current_tab_moves_to_next(self, session, launcher):
        browser = await _with_tabs(session, launcher, 2)
        survivor = browser.pages[1]
        await session.close_tab(0)
        assert session.current_page is survivor
        tabs = await session.list_tabs()
        assert len(tabs) == 1 and tabs[0].current

    @pytest.mark.asyncio
    async def test_close_last_current_tab_moves_to_previous(self, session, launcher):
        browser = await _with_tabs(session, launcher, 3)
        await session.select_tab(2)
        previous = browser.pages[1]
        await session.close_tab(2)
        assert session.current_page is previous

    @pytest.mark.asyncio
    async def test_close_middle_current_tab_moves_to_next(self, session, launcher):
        browser = await _with_tabs(session, launcher, 3)
        await session.select_tab(1)
        following = browser.pages[2]
        await session.close_tab(1)
        assert session.current_page is following

    @pytest.mark.asyncio
    async def test_close_other_tab_keeps_current(self, session, launcher):
        browser = await _with_tabs(session, launcher, 3)
        current = browser.pages[0]
        await session.close_tab(2)
        assert session.current_page is current
        assert len(browser.pages) == 2

    @pytest.mark.asyncio
    async def test_close_tab_out_of_range(self, session, launcher):
        await _with_tabs(session, launcher, 2)
        with pytest.raises(TabOutOfRange):
            await session.close_tab(2)

    @pytest.mark.asyncio
    async def test_disconnect_during_close(self, session, launcher):
        browser = await _with_tabs(session, launcher, 2)
        browser.pages[1].on_close = browser.disconnect
        with pytest.raises(NotInitialized):
            await session.close_tab(1)
        assert session.browser is None


# ─────────────────────────────────────────────
# 5. Helpers
# ─────────────────────────────────────────────


class TestHelpers:

    @pytest.mark.parametrize("index,count,expected", [
        (0, 2, 1),
        (1, 2, 0),
        (0, 3, 1),
        (1, 3, 2),
        (2, 3, 1),
    ])
    def test_repoint_index(self, index, count, expected):
        assert repoint_index(index, count) == expected

    def test_check_response_ok(self):
        assert check_response(FakeResponse(204, "No Content"), "https://a") == 204

    def test_check_response_http_error(self):
        with pytest.raises(NavigationFailure) as exc_info:
            check_response(FakeResponse(404, "Not Found"), "https://a")
        assert exc_info.value.message == "HTTP error: 404 Not Found"

    def test_check_response_missing(self):
        with pytest.raises(NavigationFailure) as exc_info:
            check_response(None, "https://a")
        assert "no response received" in exc_info.value.message

    def test_default_launcher(self):
        assert BrowserSession().launcher.name == "playwright"
