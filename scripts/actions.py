"""
Tool implementations for browser-relay.

Each tool validates its arguments against a pydantic model, resolves the
page it works on through the BrowserSession, and returns a ToolResult.
Failures are caught per tool and rendered as text with likely causes;
only a failed browser launch escapes execute_tool().
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

import cdp_attach
import elements
from browser_engine import BrowserSession, check_response
from config import Config
from errors import (
    DebugConnectionError,
    ElementNotFound,
    ScriptFailure,
    causes_for,
    classify_error,
    to_ai_friendly_error,
)
from models import (
    BrowserState,
    ConnectActiveTabArgs,
    EvaluateArgs,
    InteractableElementsArgs,
    NavigateArgs,
    NewTabArgs,
    NoArgs,
    ScreenshotArgs,
    SelectorArgs,
    SelectorValueArgs,
    TabIndexArgs,
    ToolResult,
)

log = logging.getLogger(__name__)

# Handler signature: (session, page_or_None, args, state) -> ToolResult
ToolHandler = Callable[[BrowserSession, Any, Any, BrowserState], Awaitable[ToolResult]]


# ---------------------------------------------------------------------------
# Remote attach
# ---------------------------------------------------------------------------

async def tool_connect_active_tab(
    session: BrowserSession, page, args: ConnectActiveTabArgs, state: BrowserState,
) -> ToolResult:
    try:
        endpoint = await cdp_attach.discover_debug_endpoint(args.debug_port)
        connected = await cdp_attach.attach(
            session,
            endpoint,
            args.target_url,
            on_console_line=state.console_logs.append,
        )
        title = await connected.title()
        return ToolResult.ok(
            f"Successfully connected to browser\nActive webpage: {title} ({connected.url})"
        )
    except Exception as e:
        err = classify_error(e)
        log.error("Connect to active tab failed: %s", err.message)
        if isinstance(err, DebugConnectionError) or err.code == "TARGET_CLOSED":
            guidance = causes_for("DEBUG_CONNECTION_FAILED")
        else:
            guidance = causes_for("TARGET_NOT_FOUND")
        return ToolResult.failure(f"Failed to connect to browser: {err.message}\n\n{guidance}")


# ---------------------------------------------------------------------------
# Page actions
# ---------------------------------------------------------------------------

async def tool_navigate(
    session: BrowserSession, page, args: NavigateArgs, state: BrowserState,
) -> ToolResult:
    try:
        log.info("Navigating to %s", args.url)
        response = await page.goto(
            args.url, wait_until="networkidle", timeout=Config.NAVIGATE_TIMEOUT,
        )
        status = check_response(response, args.url)
        log.info("Navigation successful: %s (status %d)", args.url, status)
        return ToolResult.ok(f"Successfully navigated to {args.url} (Status: {status})")
    except Exception as e:
        err = classify_error(e)
        log.error("Navigation to %s failed: %s", args.url, err.message)
        return ToolResult.failure(
            f"Navigation failed: {err.message}\n{causes_for('NAVIGATION_FAILED')}"
        )


async def tool_interactable_elements(
    session: BrowserSession, page, args: InteractableElementsArgs, state: BrowserState,
) -> ToolResult:
    try:
        records = await elements.extract(
            page, include_hidden=args.include_hidden, max_elements=args.max_elements,
        )
        return ToolResult.ok(elements.format_elements(records))
    except Exception as e:
        return ToolResult.failure(
            f"Failed to find interactable elements: {to_ai_friendly_error(e)}"
        )


async def tool_screenshot(
    session: BrowserSession, page, args: ScreenshotArgs, state: BrowserState,
) -> ToolResult:
    try:
        if args.width or args.height:
            current = page.viewport_size or Config.TAB_VIEWPORT
            await page.set_viewport_size({
                "width": args.width or current["width"],
                "height": args.height or current["height"],
            })

        if args.selector:
            handle = await page.query_selector(args.selector)
            if handle is None:
                raise ElementNotFound(f"Element not found: {args.selector}")
            data = await handle.screenshot(type="png")
        else:
            data = await page.screenshot(type="png", full_page=False)
    except Exception as e:
        return ToolResult.failure(f"Screenshot failed: {to_ai_friendly_error(e)}")

    b64 = base64.b64encode(data).decode("ascii")
    state.screenshots[args.name] = b64

    size = page.viewport_size
    where = f" at {size['width']}x{size['height']}" if size else ""
    return ToolResult.ok(f"Screenshot '{args.name}' taken{where}", image=b64)


async def tool_click(
    session: BrowserSession, page, args: SelectorArgs, state: BrowserState,
) -> ToolResult:
    try:
        await page.click(args.selector)
        return ToolResult.ok(f"Clicked: {args.selector}")
    except Exception as e:
        return ToolResult.failure(f"Failed to click {args.selector}: {to_ai_friendly_error(e)}")


async def tool_fill(
    session: BrowserSession, page, args: SelectorValueArgs, state: BrowserState,
) -> ToolResult:
    try:
        await page.wait_for_selector(args.selector)
        await page.locator(args.selector).first.press_sequentially(args.value)
        return ToolResult.ok(f"Filled {args.selector} with: {args.value}")
    except Exception as e:
        return ToolResult.failure(f"Failed to fill {args.selector}: {to_ai_friendly_error(e)}")


async def tool_select(
    session: BrowserSession, page, args: SelectorValueArgs, state: BrowserState,
) -> ToolResult:
    try:
        await page.wait_for_selector(args.selector)
        await page.select_option(args.selector, args.value)
        return ToolResult.ok(f"Selected {args.selector} with: {args.value}")
    except Exception as e:
        return ToolResult.failure(f"Failed to select {args.selector}: {to_ai_friendly_error(e)}")


async def tool_hover(
    session: BrowserSession, page, args: SelectorArgs, state: BrowserState,
) -> ToolResult:
    try:
        await page.wait_for_selector(args.selector)
        await page.hover(args.selector)
        return ToolResult.ok(f"Hovered {args.selector}")
    except Exception as e:
        return ToolResult.failure(f"Failed to hover {args.selector}: {to_ai_friendly_error(e)}")


# Wraps user script so a thrown error comes back as a value instead of
# rejecting the evaluation
_EVALUATE_WRAPPER = """(async () => {
  try {
    return (function() { %s })();
  } catch (e) {
    console.error('Script execution error:', e && e.message);
    return { __scriptError: String(e && e.message ? e.message : e) };
  }
})()"""


def _render_result(result: Any) -> str:
    if result is None:
        content = "null"
    else:
        content = json.dumps(result, indent=2, default=str)
    if len(content) > Config.MAX_RESPONSE_BYTES:
        content = content[:Config.MAX_RESPONSE_BYTES] + "\n... [truncated]"
    return content


async def tool_evaluate(
    session: BrowserSession, page, args: EvaluateArgs, state: BrowserState,
) -> ToolResult:
    """Run a script in the page, returning its result and console output."""
    if not Config.EVALUATE_ENABLED:
        return ToolResult.failure(
            "evaluate is disabled. Set BROWSER_RELAY_EVALUATE=1 to enable."
        )

    logs: list[str] = []

    def _on_console(msg) -> None:
        logs.append(f"{msg.type}: {msg.text}")

    page.on("console", _on_console)
    try:
        log.debug("Executing script in browser (%d chars)", len(args.script))
        result = await page.evaluate(_EVALUATE_WRAPPER % args.script)
        if isinstance(result, dict) and set(result) == {"__scriptError"}:
            raise ScriptFailure(f"Script raised: {result['__scriptError']}")
    except Exception as e:
        err = classify_error(e)
        if not isinstance(err, ScriptFailure):
            err = ScriptFailure(err.message, cause=e)
        log.error("Script evaluation failed: %s", err.message)
        return ToolResult.failure(f"Script execution failed: {err.to_agent_message()}")
    finally:
        page.remove_listener("console", _on_console)

    log.debug("Script result type %s, %d console lines", type(result).__name__, len(logs))
    return ToolResult.ok(
        f"Execution result:\n{_render_result(result)}\n\nConsole output:\n" + "\n".join(logs)
    )


# ---------------------------------------------------------------------------
# Tab actions
# ---------------------------------------------------------------------------

async def tool_list_tabs(
    session: BrowserSession, page, args: NoArgs, state: BrowserState,
) -> ToolResult:
    try:
        tabs = await session.list_tabs()
    except Exception as e:
        return ToolResult.failure(f"Failed to list tabs: {to_ai_friendly_error(e)}")
    lines = [
        f"[{t.index}] {t.title or '(untitled)'} ({t.url})" + (" *current" if t.current else "")
        for t in tabs
    ]
    return ToolResult.ok(f"Open tabs ({len(tabs)}):\n" + "\n".join(lines))


async def tool_select_tab(
    session: BrowserSession, page, args: TabIndexArgs, state: BrowserState,
) -> ToolResult:
    try:
        selected = await session.select_tab(args.tab_index)
        title = await selected.title()
    except Exception as e:
        return ToolResult.failure(f"Failed to switch tab: {to_ai_friendly_error(e)}")
    return ToolResult.ok(f"Switched to tab {args.tab_index}: {title} ({selected.url})")


async def tool_new_tab(
    session: BrowserSession, page, args: NewTabArgs, state: BrowserState,
) -> ToolResult:
    try:
        await session.create_tab(args.url)
    except Exception as e:
        return ToolResult.failure(f"Failed to open tab: {to_ai_friendly_error(e)}")
    suffix = f" and navigated to {args.url}" if args.url else ""
    return ToolResult.ok(f"Created new tab{suffix}")


async def tool_close_tab(
    session: BrowserSession, page, args: TabIndexArgs, state: BrowserState,
) -> ToolResult:
    try:
        await session.close_tab(args.tab_index)
    except Exception as e:
        return ToolResult.failure(f"Failed to close tab: {to_ai_friendly_error(e)}")
    return ToolResult.ok(f"Closed tab {args.tab_index}")


async def tool_close_browser(
    session: BrowserSession, page, args: NoArgs, state: BrowserState,
) -> ToolResult:
    was_open = session.browser is not None
    await session.close_browser()
    return ToolResult.ok("Browser closed" if was_open else "No browser was open")


# ---------------------------------------------------------------------------
# Tool registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: ToolHandler
    needs_page: bool = True


TOOLS: dict[str, Tool] = {t.name: t for t in [
    Tool("browser_connect_active_tab",
         "Connect to an existing Chrome instance with remote debugging enabled",
         ConnectActiveTabArgs, tool_connect_active_tab, needs_page=False),
    Tool("browser_navigate", "Navigate to a URL",
         NavigateArgs, tool_navigate),
    Tool("browser_interactable_elements",
         "Get all interactable elements on the page with their selectors and "
         "descriptions to use page elements for interaction",
         InteractableElementsArgs, tool_interactable_elements),
    Tool("browser_screenshot", "Take a screenshot of the current page or a specific element",
         ScreenshotArgs, tool_screenshot),
    Tool("browser_click", "Click an element on the page",
         SelectorArgs, tool_click),
    Tool("browser_fill", "Fill out an input field",
         SelectorValueArgs, tool_fill),
    Tool("browser_select", "Select an element on the page with Select tag",
         SelectorValueArgs, tool_select),
    Tool("browser_hover", "Hover an element on the page",
         SelectorArgs, tool_hover),
    Tool("browser_evaluate", "Execute JavaScript in the browser console",
         EvaluateArgs, tool_evaluate),
    Tool("browser_list_tabs", "List open tabs with their index, URL and title",
         NoArgs, tool_list_tabs, needs_page=False),
    Tool("browser_select_tab", "Make the tab at an index the current tab",
         TabIndexArgs, tool_select_tab, needs_page=False),
    Tool("browser_new_tab", "Open a new tab, optionally navigating it to a URL",
         NewTabArgs, tool_new_tab, needs_page=False),
    Tool("browser_close_tab", "Close the tab at an index (the last tab cannot be closed)",
         TabIndexArgs, tool_close_tab, needs_page=False),
    Tool("browser_close", "Close the browser",
         NoArgs, tool_close_browser, needs_page=False),
]}


def tool_definitions() -> list[dict[str, Any]]:
    """Name, description and JSON input schema of every tool."""
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "inputSchema": tool.args_model.model_json_schema(by_alias=True),
        }
        for tool in TOOLS.values()
    ]


async def execute_tool(
    name: str,
    arguments: dict | None,
    session: BrowserSession,
    state: BrowserState,
) -> ToolResult:
    """Execute a tool by name.

    Raises LaunchFailure when a page is needed and the browser cannot start.
    """
    log.debug("Tool call received: %s %s", name, arguments)
    tool = TOOLS.get(name)
    if tool is None:
        return ToolResult.failure(
            f"Unknown tool: {name}. Available: {', '.join(sorted(TOOLS))}"
        )

    try:
        args = tool.args_model.model_validate(arguments or {})
    except ValidationError as e:
        return ToolResult.failure(f"Invalid arguments for {name}: {e}")

    page = await session.ensure_page() if tool.needs_page else None
    return await tool.handler(session, page, args, state)
