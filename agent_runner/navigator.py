"""Element resolution over a captured snapshot: by text, editable hint, list index.

Only nodes with on-screen bounds are candidates; a tap can not reach the rest.
"""

import sys

from agent_runner.screen_mapper import SCROLL_ROLES, UiNode, iter_nodes, list_items, matches_category


def _log(msg: str) -> None:
    print(f"[nav] {msg}", file=sys.stderr)


def _visible_nodes(root: UiNode | None):
    for node in iter_nodes(root):
        if node.is_visible():
            yield node


def _text_matches(candidate: str, query: str, exact: bool) -> bool:
    if exact:
        return candidate.strip().lower() == query.strip().lower()
    return query.lower() in candidate.lower()


def node_matches_text(node: UiNode, text: str, exact: bool = False) -> bool:
    """Case-insensitive match against text, content description and resource id."""
    return any(
        _text_matches(field, text, exact)
        for field in (node.text, node.desc, node.resource_id)
    )


def find_by_text(root: UiNode | None, text: str, exact: bool = False) -> UiNode | None:
    """First visible node in document order whose text, description or id matches.

    ``exact`` compares after trimming; otherwise ``text`` must be a substring.
    A blank query matches nothing.
    """
    if not (text or "").strip():
        return None
    for node in _visible_nodes(root):
        if node_matches_text(node, text, exact):
            return node
    return None


def find_clickable_by_text(root: UiNode | None, text: str) -> UiNode | None:
    """First visible clickable node whose text or description contains ``text``."""
    if not (text or "").strip():
        return None
    for node in _visible_nodes(root):
        if not node.clickable:
            continue
        if _text_matches(node.text, text, False) or _text_matches(node.desc, text, False):
            return node
    return None


def find_editable(root: UiNode | None, hint: str | None = None) -> UiNode | None:
    """First visible editable node, optionally filtered by a hint.

    The hint must appear (case-insensitively) in the node's text, description,
    hint text or resource id.
    """
    for node in _visible_nodes(root):
        if not node.editable:
            continue
        if not hint:
            return node
        fields = (node.text, node.desc, node.hint, node.resource_id)
        if any(_text_matches(field, hint, False) for field in fields):
            return node
    return None


def _nth_in_list(container: UiNode, category: str, index: int) -> UiNode | None:
    position = 0
    for item in list_items(container):
        if matches_category(item, category):
            if position == index:
                return item
            position += 1
    return None


def find_by_list_index(root: UiNode | None, category: str, index: int) -> UiNode | None:
    """Return the ``index``-th (0-based) ``category`` item of a list container.

    Items are numbered the way the serialized tree numbers them. Lists are
    tried in document order; a list without enough matching items hands
    over to the lists nested below it.
    """
    if root is None or index < 0:
        return None
    if root.is_list_container():
        found = _nth_in_list(root, category, index)
        if found is not None:
            _log(f"find_by_list_index: {category}[{index}] in {root.role}")
            return found
    for child in root.children:
        found = find_by_list_index(child, category, index)
        if found is not None:
            return found
    return None


def find_scrollable(root: UiNode | None) -> UiNode | None:
    """Best scroll target: a scrollable list/grid/scroll-view, else any scrollable node."""
    fallback = None
    for node in _visible_nodes(root):
        if not node.scrollable:
            continue
        if any(role in node.role for role in SCROLL_ROLES):
            return node
        if fallback is None:
            fallback = node
    if fallback is None:
        _log("find_scrollable: no scrollable node on screen")
    return fallback
