"""tree_serializer.py - Compress a UI snapshot into compact JSON for the model.

Only "interesting" nodes get a record; wrapper nodes are elided and their
children re-parented onto the nearest interesting ancestor. Items inside a
list container carry an ``index`` so the model can say "the 3rd video"
instead of guessing at text.

Record keys (all optional): type, index, text, desc, id, pos, click,
scroll, edit, children.
"""

import hashlib
import json

from agent_runner.screen_mapper import UiNode, detect_element_type

DEFAULT_SCREEN_HEIGHT = 2280
MAX_TEXT = 80
ELLIPSIS = "..."
ALL_ITEMS = "*"


def _clip(value: str, limit: int) -> str:
    if len(value) > limit:
        return value[:limit] + ELLIPSIS
    return value


def _position(node: UiNode, screen_height: int) -> str:
    top = node.bounds[1]
    if top < screen_height / 3:
        return "top"
    if top < 2 * screen_height / 3:
        return "mid"
    return "bot"


def _visible_children(node: UiNode):
    return [child for child in node.children if child.is_visible()]


def _visit(
    node: UiNode,
    out: list[dict],
    scope: dict | None,
    screen_height: int,
    max_text: int,
) -> None:
    # scope is the per-type index counter of the enclosing list, or None
    # once an interesting node has consumed list membership.
    is_list = node.is_list_container()

    if not node.is_interesting():
        for child in _visible_children(node):
            _visit(child, out, scope, screen_height, max_text)
        return

    record: dict = {}
    element_type = detect_element_type(node)
    if element_type:
        record["type"] = element_type

    if scope is not None and not is_list:
        # Typed items count per type; untyped ones by position among all items.
        position = scope.get(ALL_ITEMS, 0)
        if element_type:
            record["index"] = scope.get(element_type, 0)
            scope[element_type] = record["index"] + 1
        else:
            record["index"] = position
        scope[ALL_ITEMS] = position + 1

    if node.text.strip():
        record["text"] = _clip(node.text, max_text)
    if node.desc.strip():
        record["desc"] = _clip(node.desc, max_text)
    if node.resource_id:
        record["id"] = node.short_id
    record["pos"] = _position(node, screen_height)
    if node.clickable:
        record["click"] = True
    if node.scrollable:
        record["scroll"] = True
    if node.editable:
        record["edit"] = True

    children: list[dict] = []
    child_scope = {} if is_list else None
    for child in _visible_children(node):
        _visit(child, children, child_scope, screen_height, max_text)
    if children:
        record["children"] = children

    out.append(record)


def build_records(
    root: UiNode | None,
    screen_height: int = DEFAULT_SCREEN_HEIGHT,
    max_text: int = MAX_TEXT,
) -> list[dict]:
    """Return the serialized tree as Python records (before JSON encoding)."""
    records: list[dict] = []
    if root is not None:
        _visit(root, records, None, screen_height, max_text)
    return records


def serialize(
    root: UiNode | None,
    screen_height: int = DEFAULT_SCREEN_HEIGHT,
    max_text: int = MAX_TEXT,
) -> str:
    """Serialize a snapshot to compact JSON text. Pure and deterministic."""
    records = build_records(root, screen_height, max_text)
    return json.dumps(records, separators=(",", ":"), ensure_ascii=False)


def tree_signature(serialized: str) -> str:
    """Hash a serialized tree into a compact signature for change detection."""
    return hashlib.md5(serialized.encode("utf-8")).hexdigest()
