"""screen_mapper.py - Parse `uiautomator dump` XML into a tree of UiNode objects.

Accepts raw output from `adb shell uiautomator dump` (or the same XML with
leading noise) and builds a read-only node tree with parent back-references,
plus the role/type heuristics shared by the serializer and the resolver.
"""

import re
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field


_PREFIX = "[mapper]"


def _log(msg: str) -> None:
    print(f"{_PREFIX} {msg}", file=sys.stderr)


LIST_ROLES = ("RecyclerView", "ListView", "GridView")
SCROLL_ROLES = ("RecyclerView", "ListView", "GridView", "ScrollView")

_DURATION_RE = re.compile(r"\b\d{1,2}:\d{2}(?::\d{2})?\b")


# ---------------------------------------------------------------------------
# Node model
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class UiNode:
    """A read-only view of one element in a captured UI snapshot."""

    role: str = ""
    text: str = ""
    desc: str = ""
    resource_id: str = ""
    hint: str = ""
    bounds: tuple[int, int, int, int] = (0, 0, 0, 0)
    clickable: bool = False
    editable: bool = False
    scrollable: bool = False
    visible: bool = True
    children: list["UiNode"] = field(default_factory=list)
    parent: "UiNode | None" = field(default=None, repr=False)

    def __post_init__(self) -> None:
        for child in self.children:
            child.parent = self

    def add_child(self, child: "UiNode") -> "UiNode":
        child.parent = self
        self.children.append(child)
        return child

    def ancestors(self):
        """Yield parent, grandparent, ... up to the root."""
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    @property
    def center(self) -> tuple[int, int]:
        left, top, right, bottom = self.bounds
        return ((left + right) // 2, (top + bottom) // 2)

    @property
    def short_id(self) -> str:
        return self.resource_id.rsplit("/", 1)[-1]

    def is_visible(self) -> bool:
        left, top, right, bottom = self.bounds
        return self.visible and right > left and bottom > top

    def is_list_container(self) -> bool:
        return any(role in self.role for role in LIST_ROLES)

    def is_interesting(self) -> bool:
        """Worth a record in the serialized tree."""
        return bool(
            self.text.strip()
            or self.desc.strip()
            or self.resource_id
            or self.clickable
            or self.editable
            or self.scrollable
            or self.is_list_container()
        )


def iter_nodes(root: UiNode | None):
    """Depth-first, document-order walk over a snapshot."""
    if root is None:
        return
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


# ---------------------------------------------------------------------------
# Type heuristics (priority ordered)
# ---------------------------------------------------------------------------


def looks_like_duration(desc: str) -> bool:
    lowered = desc.lower()
    if "minute" in lowered and "second" in lowered:
        return True
    return bool(_DURATION_RE.search(desc))


def detect_element_type(node: UiNode) -> str | None:
    """Semantic category: video, search_field, button, input, list, or None."""
    rid = node.resource_id.lower()
    if looks_like_duration(node.desc):
        return "video"
    if "thumbnail" in rid:
        return "video"
    if node.editable and ("search" in rid or "search" in node.text.lower()):
        return "search_field"
    if "Button" in node.role:
        return "button"
    if node.editable:
        return "input"
    if node.is_list_container():
        return "list"
    return None


ELEMENT_TYPES = ("video", "search_field", "button", "input", "list")


def matches_category(node: UiNode, category: str) -> bool:
    """Whether ``node`` counts as a ``category`` item. Unknown categories match anything."""
    category = (category or "").strip().lower()
    if category in ELEMENT_TYPES:
        return detect_element_type(node) == category
    return True


def list_items(container: UiNode):
    """Yield the nodes that hold a position inside ``container``.

    Walks visible descendants through uninteresting wrappers. The first
    interesting node on each path is an item and ends the walk there; a
    nested list container is neither an item nor descended into.
    """
    for child in container.children:
        if not child.is_visible():
            continue
        if not child.is_interesting():
            yield from list_items(child)
        elif not child.is_list_container():
            yield child


# ---------------------------------------------------------------------------
# uiautomator XML parsing
# ---------------------------------------------------------------------------

_BOUNDS_RE = re.compile(r"\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]")


def _parse_bounds(raw: str) -> tuple[int, int, int, int]:
    m = _BOUNDS_RE.search(raw or "")
    if not m:
        return (0, 0, 0, 0)
    return (int(m.group(1)), int(m.group(2)), int(m.group(3)), int(m.group(4)))


def _flag(element: ET.Element, name: str, default: str = "false") -> bool:
    return element.get(name, default).lower() == "true"


def _node_from_element(element: ET.Element) -> UiNode:
    role = element.get("class", "")
    node = UiNode(
        role=role,
        text=element.get("text", ""),
        desc=element.get("content-desc", ""),
        resource_id=element.get("resource-id", ""),
        hint=element.get("hint", ""),
        bounds=_parse_bounds(element.get("bounds", "")),
        clickable=_flag(element, "clickable"),
        # Older dumps have no "editable" attribute; EditText is the reliable tell.
        editable=_flag(element, "editable") or "EditText" in role,
        scrollable=_flag(element, "scrollable"),
        visible=_flag(element, "visible-to-user", default="true"),
    )
    for child in element:
        if child.tag == "node":
            node.add_child(_node_from_element(child))
    return node


def parse_tree(raw_text: str) -> UiNode | None:
    """Parse a uiautomator dump into a UiNode tree.

    Multiple top-level windows are wrapped in a synthetic root.
    Returns None for empty or unparseable input.
    """
    if not raw_text or not raw_text.strip():
        _log("empty input")
        return None

    text = raw_text.strip()
    start = text.find("<hierarchy")
    if start == -1:
        _log("no <hierarchy> element found")
        return None
    end = text.rfind("</hierarchy>")
    text = text[start:end + len("</hierarchy>")] if end != -1 else text[start:]

    try:
        hierarchy = ET.fromstring(text)
    except ET.ParseError as exc:
        _log(f"XML parse failed: {exc}")
        return None

    roots = [_node_from_element(el) for el in hierarchy if el.tag == "node"]
    if not roots:
        return None
    if len(roots) == 1:
        return roots[0]

    right = max(r.bounds[2] for r in roots)
    bottom = max(r.bounds[3] for r in roots)
    _log(f"wrapping {len(roots)} windows in a synthetic root")
    return UiNode(role="hierarchy", bounds=(0, 0, right, bottom), children=roots)
