"""Error types and AI-friendly error transformation for browser-relay.

Every failure the session core raises is a BrowserError subclass with a
stable code. The catalog attaches recoverability and the likely causes
that tool handlers append to failure results.
"""

from __future__ import annotations

import re
from typing import Any

from config import Config
from models import Recoverability


# ---------------------------------------------------------------------------
# Error catalog: stable codes with default recoverability + guidance
# ---------------------------------------------------------------------------

_CATALOG: dict[str, dict[str, Any]] = {
    "NOT_INITIALIZED": {
        "recoverability": Recoverability.ESCALATABLE,
        "causes": "Run any page action (e.g. navigate) to launch the browser, "
                  "or connect to a running Chrome first.",
    },
    "TAB_OUT_OF_RANGE": {
        "recoverability": Recoverability.RECOVERABLE,
        "causes": "Tabs may have opened or closed since they were listed. "
                  "List tabs again and use a current index.",
    },
    "CANNOT_CLOSE_LAST_TAB": {
        "recoverability": Recoverability.NON_RECOVERABLE,
        "causes": "Open another tab first, or close the browser instead.",
    },
    "LAUNCH_FAILED": {
        "recoverability": Recoverability.NON_RECOVERABLE,
        "causes": "Possible causes:\n"
                  "- Chromium is not installed (run: playwright install chromium)\n"
                  "- No display available for a headed launch\n"
                  "- Missing system libraries in the container",
    },
    "NAVIGATION_FAILED": {
        "recoverability": Recoverability.RECOVERABLE,
        "causes": "This could be due to:\n"
                  "- Network connectivity issues\n"
                  "- Site blocking automated access\n"
                  "- Page requiring authentication\n"
                  "- Navigation timeout\n\n"
                  "Try using a different URL or checking network connectivity.",
    },
    "ELEMENT_NOT_FOUND": {
        "recoverability": Recoverability.RECOVERABLE,
        "causes": "List interactable elements again. The selector may be stale.",
    },
    "DEBUG_CONNECTION_FAILED": {
        "recoverability": Recoverability.ESCALATABLE,
        "causes": "To connect to Chrome:\n"
                  "1. Close Chrome completely\n"
                  "2. Reopen Chrome with remote debugging enabled:\n"
                  "   Windows: chrome.exe --remote-debugging-port=9222\n"
                  "   Mac: /Applications/Google\\ Chrome.app/Contents/MacOS/Google\\ Chrome "
                  "--remote-debugging-port=9222\n"
                  "3. Navigate to your desired webpage\n"
                  "4. Try the operation again",
    },
    "TARGET_NOT_FOUND": {
        "recoverability": Recoverability.RECOVERABLE,
        "causes": "Please check if Chrome is running and the tab is open, then try again.",
    },
    "SCRIPT_FAILED": {
        "recoverability": Recoverability.RECOVERABLE,
        "causes": "Possible causes:\n"
                  "- Syntax error in script\n"
                  "- Execution timeout\n"
                  "- Browser security restrictions\n"
                  "- Serialization issues with complex objects",
    },
    # Engine-level
    "TIMEOUT": {
        "recoverability": Recoverability.RECOVERABLE,
        "causes": "The page may be slow. Retry, or check the selector matches a visible element.",
    },
    "TARGET_CLOSED": {
        "recoverability": Recoverability.ESCALATABLE,
        "causes": "The tab or browser was closed. The next page action relaunches the browser.",
    },
    "NETWORK_ERROR": {
        "recoverability": Recoverability.ESCALATABLE,
        "causes": "Check the URL and network connectivity. The site may be blocking access.",
    },
    "CONTEXT_DESTROYED": {
        "recoverability": Recoverability.RECOVERABLE,
        "causes": "The page navigated during the action. Retry on the new page.",
    },
    "UNKNOWN": {
        "recoverability": Recoverability.NON_RECOVERABLE,
        "causes": "",
    },
}


def causes_for(code: str) -> str:
    """Likely-causes text for a catalog code."""
    return _CATALOG.get(code, _CATALOG["UNKNOWN"]).get("causes", "")


# ---------------------------------------------------------------------------
# Typed errors
# ---------------------------------------------------------------------------

class BrowserError(Exception):
    """Base failure with a stable code and catalog guidance."""

    code = "UNKNOWN"

    def __init__(self, message: str, *, code: str | None = None, cause: Any = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.cause = cause

    @property
    def recoverability(self) -> Recoverability:
        return _CATALOG.get(self.code, _CATALOG["UNKNOWN"])["recoverability"]

    @property
    def causes(self) -> str:
        return causes_for(self.code)

    def to_agent_message(self) -> str:
        """Message followed by the likely causes, for failure results."""
        if self.causes:
            return f"{self.message}\n\n{self.causes}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "recoverability": self.recoverability.value,
        }


class NotInitialized(BrowserError):
    code = "NOT_INITIALIZED"


class TabOutOfRange(BrowserError, IndexError):
    code = "TAB_OUT_OF_RANGE"


class CannotCloseLastTab(BrowserError):
    code = "CANNOT_CLOSE_LAST_TAB"


class LaunchFailure(BrowserError):
    code = "LAUNCH_FAILED"


class NavigationFailure(BrowserError):
    code = "NAVIGATION_FAILED"


class ElementNotFound(BrowserError):
    code = "ELEMENT_NOT_FOUND"


class DebugConnectionError(BrowserError, ConnectionError):
    code = "DEBUG_CONNECTION_FAILED"


class TargetNotFound(BrowserError):
    code = "TARGET_NOT_FOUND"


class ScriptFailure(BrowserError):
    code = "SCRIPT_FAILED"


# ---------------------------------------------------------------------------
# Engine exception classification
# ---------------------------------------------------------------------------

def _extract_timeout(msg: str) -> str:
    m = re.search(r"(\d+)ms", msg)
    return m.group(1) if m else str(Config.DEFAULT_NAVIGATION_TIMEOUT)


def _extract_net_error(msg: str) -> str:
    m = re.search(r"net::(ERR_\w+)", msg)
    return m.group(1) if m else "unknown network error"


_PATTERN_MAP: list[tuple[str, str, object]] = [
    (
        "Timeout",
        "TIMEOUT",
        lambda e: f"Action timed out after {_extract_timeout(str(e))}ms.",
    ),
    (
        "Target closed",
        "TARGET_CLOSED",
        lambda e: "Browser tab or context was closed.",
    ),
    (
        "has been closed",
        "TARGET_CLOSED",
        lambda e: "Browser tab or context was closed.",
    ),
    (
        "net::ERR_",
        "NETWORK_ERROR",
        lambda e: f"Network error: {_extract_net_error(str(e))}.",
    ),
    (
        "Execution context was destroyed",
        "CONTEXT_DESTROYED",
        lambda e: "Page navigated during the action.",
    ),
    (
        "frame was detached",
        "CONTEXT_DESTROYED",
        lambda e: "The frame navigated away during the action.",
    ),
]


def classify_error(error: Exception) -> BrowserError:
    """Classify an engine exception into a BrowserError.

    BrowserError instances are returned unchanged.
    """
    if isinstance(error, BrowserError):
        return error
    msg = str(error)
    # Playwright's TimeoutError message does not always say "Timeout"
    haystack = f"{type(error).__name__}: {msg}"
    for pattern, code, msg_fn in _PATTERN_MAP:
        if pattern.lower() in haystack.lower():
            return BrowserError(msg_fn(error), code=code, cause=error)
    return BrowserError(msg or type(error).__name__, cause=error)


def to_ai_friendly_error(error: Exception) -> str:
    """Plain-string rendering: message plus likely causes."""
    return classify_error(error).to_agent_message()
