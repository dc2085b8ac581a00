"""
Interactive element extraction.

The page walks the DOM in document order, keeps elements that pass the
hidden and interactable checks, and stops after maxElements matches. Each
kept element is serialized (tag, the attributes the heuristic reads,
computed style, trimmed text, same-tag sibling position). Selector ranking
and descriptions run here in Python on that snapshot, so the heuristic is
testable without a browser.

Selector priority:
  #id → [name] → first [data-*] → .firstClass → tag[type]
  → tag:has-text("...") (buttons/links) → tag:nth-of-type(n)
"""

from __future__ import annotations

from typing import Any, Iterable

from config import Config
from models import ElementNode, InteractiveElement

# ---------------------------------------------------------------------------
# Classification tables
# ---------------------------------------------------------------------------

INTERACTIVE_TAGS = frozenset({
    "A", "BUTTON", "INPUT", "SELECT", "TEXTAREA", "DETAILS", "SUMMARY", "LABEL",
})

HANDLER_ATTRIBUTES = ("onclick", "onmousedown", "ondblclick", "onchange", "oninput")

INTERACTIVE_ROLES = frozenset({
    "button", "link", "menuitem", "tab", "checkbox", "radio",
    "slider", "spinbutton", "textbox",
})

TEXT_SELECTOR_TAGS = frozenset({"BUTTON", "A"})

# Copied into each record when present
CAPTURED_ATTRIBUTES = ("href", "value", "src", "action", "target", "type", "name")

DESCRIPTION_ATTRIBUTES = ("aria-label", "title", "placeholder", "alt", "href", "value")

# Everything the Python side reads; the page sends only these plus the first data-*
SNAPSHOT_ATTRIBUTES = sorted({
    "id", "name", "type", "role", "tabindex", "contenteditable",
    *HANDLER_ATTRIBUTES, *CAPTURED_ATTRIBUTES, *DESCRIPTION_ATTRIBUTES,
})


SNAPSHOT_JS = """
({ wanted, textLimit, tags, handlers, roles, includeHidden, maxElements }) => {
    const keep = new Set(wanted);
    const tagSet = new Set(tags);
    const roleSet = new Set(roles);
    const nodes = [];
    if (maxElements <= 0) return nodes;
    for (const el of document.querySelectorAll('*')) {
        const style = window.getComputedStyle(el);
        const hidden = style.display === 'none' || style.visibility === 'hidden'
            || style.opacity === '0';
        if (hidden && !includeHidden) continue;
        const interactable = tagSet.has(el.tagName)
            || el.hasAttribute('contenteditable')
            || handlers.some(name => el.hasAttribute(name))
            || roleSet.has(el.getAttribute('role'))
            || el.hasAttribute('tabindex')
            || style.cursor === 'pointer';
        if (!interactable) continue;

        const attributes = {};
        let dataTaken = false;
        for (const attr of el.attributes) {
            if (keep.has(attr.name)) {
                attributes[attr.name] = attr.value;
            } else if (!dataTaken && attr.name.startsWith('data-') && attr.value) {
                attributes[attr.name] = attr.value;
                dataTaken = true;
            }
        }
        const parent = el.parentNode;
        const siblings = parent && parent.children ? Array.from(parent.children) : [];
        const sameTag = siblings.filter(child => child.tagName === el.tagName);
        nodes.push({
            tag: el.tagName,
            attributes: attributes,
            className: typeof el.className === 'string' ? el.className : null,
            text: (el.textContent || '').trim().slice(0, textLimit),
            display: style.display,
            visibility: style.visibility,
            opacity: style.opacity,
            cursor: style.cursor,
            sameTagIndex: sameTag.indexOf(el) + 1,
        });
        if (nodes.length >= maxElements) break;
    }
    return nodes;
}
"""


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def is_hidden(node: ElementNode) -> bool:
    return node.display == "none" or node.visibility == "hidden" or node.opacity == "0"


def is_interactable(node: ElementNode) -> bool:
    attrs = node.attributes
    return (
        node.tag in INTERACTIVE_TAGS
        or "contenteditable" in attrs
        or any(name in attrs for name in HANDLER_ATTRIBUTES)
        or attrs.get("role") in INTERACTIVE_ROLES
        or "tabindex" in attrs
        or node.cursor == "pointer"
    )


# ---------------------------------------------------------------------------
# Selectors and descriptions
# ---------------------------------------------------------------------------

def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def first_data_attribute(node: ElementNode) -> tuple[str, str] | None:
    for name, value in node.attributes.items():
        if name.startswith("data-") and value:
            return name, value
    return None


def nth_of_type(node: ElementNode) -> str:
    return f"{node.tag.lower()}:nth-of-type({node.same_tag_index})"


def rank_selectors(node: ElementNode) -> list[str]:
    """Candidate selectors, best first. Always ends with the nth-of-type fallback."""
    attrs = node.attributes
    tag = node.tag.lower()
    selectors: list[str] = []

    if attrs.get("id"):
        selectors.append(f"#{attrs['id']}")

    if attrs.get("name"):
        selectors.append(f'[name="{_quote(attrs["name"])}"]')

    data = first_data_attribute(node)
    if data:
        selectors.append(f'[{data[0]}="{_quote(data[1])}"]')

    if node.class_name:
        tokens = node.class_name.split()
        if tokens:
            selectors.append(f".{tokens[0]}")

    if attrs.get("type"):
        selectors.append(f'{tag}[type="{_quote(attrs["type"])}"]')

    if node.tag in TEXT_SELECTOR_TAGS and node.text:
        snippet = " ".join(node.text.split())[:Config.TEXT_SELECTOR_MAX_CHARS]
        selectors.append(f'{tag}:has-text("{_quote(snippet)}")')

    selectors.append(nth_of_type(node))
    return selectors


def describe(node: ElementNode) -> str:
    """Human description: text, then labelling attributes, then TAG[type][role]."""
    text = node.text[:Config.DESCRIPTION_MAX_CHARS]
    if text:
        return text
    for name in DESCRIPTION_ATTRIBUTES:
        value = node.attributes.get(name)
        if value:
            return value
    type_attr = node.attributes.get("type")
    role = node.attributes.get("role")
    synthesized = (
        node.tag
        + (f"[{type_attr}]" if type_attr else "")
        + (f"[{role}]" if role else "")
    )
    return synthesized or "No description"


def capture_attributes(node: ElementNode) -> dict[str, str]:
    return {
        name: node.attributes[name]
        for name in CAPTURED_ATTRIBUTES
        if name in node.attributes
    }


def build_record(node: ElementNode) -> InteractiveElement:
    selectors = rank_selectors(node)
    return InteractiveElement(
        tag=node.tag,
        type=node.attributes.get("type") or None,
        selector=selectors[0],
        alternatives=selectors[1:3],
        fallback=selectors[-1],
        description=describe(node),
        attributes=capture_attributes(node),
    )


def extract_from_nodes(
    nodes: Iterable[ElementNode],
    include_hidden: bool = False,
    max_elements: int = Config.DEFAULT_MAX_ELEMENTS,
) -> list[InteractiveElement]:
    """Records for interactable nodes in document order.

    Stops after max_elements matches; non-matching nodes do not count.
    """
    records: list[InteractiveElement] = []
    if max_elements <= 0:
        return records
    for node in nodes:
        if not include_hidden and is_hidden(node):
            continue
        if not is_interactable(node):
            continue
        records.append(build_record(node))
        if len(records) >= max_elements:
            break
    return records


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def snapshot_nodes(
    page: Any,
    include_hidden: bool = False,
    max_elements: int = Config.DEFAULT_MAX_ELEMENTS,
) -> list[ElementNode]:
    """Serialized candidates from the page, at most max_elements of them."""
    raw = await page.evaluate(SNAPSHOT_JS, {
        "wanted": SNAPSHOT_ATTRIBUTES,
        "textLimit": Config.SNAPSHOT_TEXT_CHARS,
        "tags": sorted(INTERACTIVE_TAGS),
        "handlers": list(HANDLER_ATTRIBUTES),
        "roles": sorted(INTERACTIVE_ROLES),
        "includeHidden": include_hidden,
        "maxElements": max_elements,
    })
    return [ElementNode.model_validate(item) for item in raw or []]


async def extract(
    page: Any,
    include_hidden: bool = False,
    max_elements: int = Config.DEFAULT_MAX_ELEMENTS,
) -> list[InteractiveElement]:
    """Interactable elements of a live page, ranked selectors included."""
    nodes = await snapshot_nodes(page, include_hidden=include_hidden, max_elements=max_elements)
    return extract_from_nodes(nodes, include_hidden=include_hidden, max_elements=max_elements)


def format_elements(records: list[InteractiveElement]) -> str:
    lines = []
    for i, el in enumerate(records, start=1):
        line = f"{i}. {el.selector} - {el.description}"
        if el.alternatives:
            line += f"\n   Alt: {', '.join(el.alternatives)}"
        lines.append(line)
    return f"Found {len(records)} interactable elements:\n\n" + "\n\n".join(lines)
