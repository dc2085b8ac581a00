"""Data models for browser-relay.

Enums, page/tab records, tool results, and the argument models that
double as the declared input schema of each tool.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from config import Config


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Recoverability(str, Enum):
    """3-level error recoverability."""
    RECOVERABLE = "recoverable"          # retry same action
    ESCALATABLE = "escalatable"          # change strategy (relaunch, reconnect)
    NON_RECOVERABLE = "non_recoverable"  # give up


# ---------------------------------------------------------------------------
# Tabs and elements
# ---------------------------------------------------------------------------

class TabInfo(BaseModel):
    index: int
    url: str
    title: str
    current: bool = False


class ElementNode(BaseModel):
    """One DOM element as serialized by the in-page snapshot script."""
    tag: str
    attributes: dict[str, str] = Field(default_factory=dict)
    class_name: str | None = Field(default=None, alias="className")
    text: str = ""
    display: str = ""
    visibility: str = ""
    opacity: str = "1"
    cursor: str = ""
    same_tag_index: int = Field(default=0, alias="sameTagIndex")

    model_config = {"populate_by_name": True}


class InteractiveElement(BaseModel):
    """Read-only record for one interactable element."""
    tag: str
    type: str | None = None
    selector: str
    alternatives: list[str] = Field(default_factory=list)
    fallback: str
    description: str
    attributes: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# State the tools write into (console lines, screenshots)
# ---------------------------------------------------------------------------

class BrowserState(BaseModel):
    console_logs: list[str] = Field(default_factory=list)
    screenshots: dict[str, str] = Field(default_factory=dict)  # name -> base64 PNG


# ---------------------------------------------------------------------------
# Tool results
# ---------------------------------------------------------------------------

class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageContent(BaseModel):
    type: Literal["image"] = "image"
    data: str
    mime_type: str = Field(default="image/png", alias="mimeType")

    model_config = {"populate_by_name": True}


class ToolResult(BaseModel):
    content: list[TextContent | ImageContent] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    model_config = {"populate_by_name": True}

    @classmethod
    def ok(cls, text: str, image: str | None = None) -> ToolResult:
        content: list[TextContent | ImageContent] = [TextContent(text=text)]
        if image is not None:
            content.append(ImageContent(data=image))
        return cls(content=content, is_error=False)

    @classmethod
    def failure(cls, text: str) -> ToolResult:
        return cls(content=[TextContent(text=text)], is_error=True)

    @property
    def text(self) -> str:
        return "\n".join(c.text for c in self.content if isinstance(c, TextContent))

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Tool arguments
# ---------------------------------------------------------------------------

class _Args(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}


class NoArgs(_Args):
    pass


class ConnectActiveTabArgs(_Args):
    target_url: str | None = Field(
        default=None,
        alias="targetUrl",
        description="Optional URL of the target tab to connect to. "
                    "If not provided, connects to the first available tab.",
    )
    debug_port: int = Field(
        default=Config.DEFAULT_DEBUG_PORT,
        alias="debugPort",
        ge=1,
        le=65535,
        description=f"Optional Chrome debugging port (default: {Config.DEFAULT_DEBUG_PORT})",
    )


class NavigateArgs(_Args):
    url: str


class InteractableElementsArgs(_Args):
    include_hidden: bool = Field(
        default=False,
        alias="includeHidden",
        description="Include hidden elements (default: false)",
    )
    max_elements: int = Field(
        default=Config.DEFAULT_MAX_ELEMENTS,
        alias="maxElements",
        ge=0,
        description=f"Maximum number of elements to return (default: {Config.DEFAULT_MAX_ELEMENTS})",
    )


class ScreenshotArgs(_Args):
    name: str = Field(description="Name for the screenshot")
    selector: str | None = Field(default=None, description="CSS selector for element to screenshot")
    width: int | None = Field(default=None, ge=1, description="Viewport width to set before capturing")
    height: int | None = Field(default=None, ge=1, description="Viewport height to set before capturing")


class SelectorArgs(_Args):
    selector: str = Field(description="CSS selector for the target element")


class SelectorValueArgs(_Args):
    selector: str = Field(description="CSS selector for the target element")
    value: str = Field(description="Value to fill or select")


class EvaluateArgs(_Args):
    script: str = Field(description="JavaScript code to execute")


class TabIndexArgs(_Args):
    tab_index: int = Field(alias="tabIndex", description="0-based index from browser_list_tabs")


class NewTabArgs(_Args):
    url: str | None = Field(default=None, description="Optional URL to open in the new tab")
