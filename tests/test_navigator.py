import json

from agent_runner import navigator, tree_serializer
from agent_runner.screen_mapper import UiNode

BOX = (0, 0, 100, 100)


def _text(text: str, **kw) -> UiNode:
    return UiNode(role="android.widget.TextView", text=text, bounds=BOX, **kw)


def _video(desc: str) -> UiNode:
    return UiNode(role="android.view.ViewGroup", desc=desc, clickable=True, bounds=BOX)


def test_find_by_list_index_counts_only_matching_category():
    children = [
        _text("ad"),
        _video("Intro - 1:02"),
        _text("shorts"),
        _text("chips"),
        _video("Deep dive - 12:30"),
        _text("sponsored"),
        _video("Finale - 4 minutes, 2 seconds"),
        _text("footer"),
    ]
    feed = UiNode(role="androidx.recyclerview.widget.RecyclerView", bounds=BOX, children=children)
    root = UiNode(role="android.widget.FrameLayout", bounds=BOX, children=[feed])

    found = navigator.find_by_list_index(root, "video", 2)

    assert found is children[6]
    assert navigator.find_by_list_index(root, "video", 3) is None
    # Unknown categories count every child.
    assert navigator.find_by_list_index(root, "anything", 2) is children[2]


def test_find_by_list_index_skips_invisible_children():
    hidden = UiNode(role="android.view.ViewGroup", desc="Hidden - 1:00", bounds=(0, 0, 0, 0))
    shown = _video("Shown - 2:00")
    feed = UiNode(role="android.widget.ListView", bounds=BOX, children=[hidden, shown])

    assert navigator.find_by_list_index(feed, "video", 0) is shown


def test_find_by_list_index_descends_into_nested_lists():
    target = _video("Nested - 9:59")
    inner = UiNode(role="android.widget.GridView", bounds=BOX, children=[target])
    outer = UiNode(role="android.widget.ListView", bounds=BOX, children=[_text("header"), inner])

    assert navigator.find_by_list_index(outer, "video", 0) is target


def test_find_by_list_index_without_snapshot_or_list():
    assert navigator.find_by_list_index(None, "video", 0) is None
    assert navigator.find_by_list_index(_text("lonely"), "video", 0) is None
    assert navigator.find_by_list_index(_text("lonely"), "video", -1) is None


def test_find_by_text_matches_text_desc_and_id_case_insensitively():
    by_desc = UiNode(role="android.widget.ImageButton", desc="Search", bounds=BOX)
    by_id = UiNode(role="android.view.View", resource_id="com.whatsapp:id/fab_new_chat", bounds=BOX)
    root = UiNode(children=[_text("Chats"), by_desc, by_id])

    assert navigator.find_by_text(root, "search") is by_desc
    assert navigator.find_by_text(root, "NEW_CHAT") is by_id
    assert navigator.find_by_text(root, "missing") is None
    assert navigator.find_by_text(None, "Chats") is None


def test_find_by_text_exact_requires_equality_after_trim():
    partial = _text("Search settings")
    exact = _text("  Search ")
    root = UiNode(children=[partial, exact])

    assert navigator.find_by_text(root, "search") is partial
    assert navigator.find_by_text(root, "Search", exact=True) is exact


def test_find_editable_with_and_without_hint():
    name = UiNode(role="android.widget.EditText", editable=True, hint="Name", bounds=BOX)
    message = UiNode(
        role="android.widget.EditText",
        editable=True,
        resource_id="com.whatsapp:id/entry",
        desc="Message",
        bounds=BOX,
    )
    root = UiNode(children=[_text("message"), name, message])

    assert navigator.find_editable(root) is name
    assert navigator.find_editable(root, "message") is message
    assert navigator.find_editable(root, "entry") is message
    assert navigator.find_editable(root, "email") is None


def test_find_clickable_by_text_ignores_plain_labels():
    label = _text("Send")
    button = UiNode(role="android.widget.ImageButton", desc="Send", clickable=True, bounds=BOX)
    root = UiNode(children=[label, button])

    assert navigator.find_clickable_by_text(root, "send") is button


def test_find_scrollable_prefers_list_roles():
    generic = UiNode(role="android.view.View", scrollable=True, bounds=BOX)
    listing = UiNode(role="androidx.recyclerview.widget.RecyclerView", scrollable=True, bounds=BOX)
    root = UiNode(children=[generic, listing])

    assert navigator.find_scrollable(root) is listing
    assert navigator.find_scrollable(UiNode(children=[generic])) is generic
    assert navigator.find_scrollable(UiNode(children=[_text("static")])) is None


def _row(top: int) -> tuple[int, int, int, int]:
    return (0, top, 1080, top + 100)


def test_find_by_list_index_resolves_every_serialized_item():
    inner = UiNode(
        role="android.widget.ListView",
        resource_id="app:id/related",
        bounds=(0, 1500, 1080, 2000),
        children=[_text("inner", resource_id="app:id/inner")],
    )
    outer = UiNode(
        role="androidx.recyclerview.widget.RecyclerView",
        resource_id="app:id/results",
        bounds=(0, 0, 1080, 2280),
        children=[
            UiNode(role="android.widget.EditText", resource_id="app:id/search_src", editable=True, bounds=_row(0)),
            UiNode(role="android.widget.EditText", resource_id="app:id/name", editable=True, bounds=_row(100)),
            UiNode(
                role="android.view.ViewGroup",
                bounds=_row(200),
                children=[_text("Title A", resource_id="app:id/title_a")],
            ),
            UiNode(
                role="android.view.ViewGroup",
                resource_id="app:id/clip",
                desc="Clip - 1:00",
                clickable=True,
                bounds=_row(300),
            ),
            _text("Footer", resource_id="app:id/footer"),
            UiNode(role="android.widget.Button", resource_id="app:id/more", text="More", bounds=_row(500)),
            inner,
        ],
    )
    root = UiNode(role="android.widget.FrameLayout", bounds=(0, 0, 1080, 2280), children=[outer])
    lists = {"results": outer, "related": inner}
    nodes = {}
    for list_node in lists.values():
        for child in list_node.children:
            for node in [child, *child.children]:
                if node.resource_id:
                    nodes[node.short_id] = node

    checked = 0
    for list_record in json.loads(tree_serializer.serialize(root)):
        pending = [list_record]
        while pending:
            record = pending.pop()
            if record.get("type") == "list":
                for item in record.get("children", []):
                    if "index" not in item:
                        pending.append(item)
                        continue
                    category = item.get("type", "item")
                    found = navigator.find_by_list_index(lists[record["id"]], category, item["index"])
                    assert found is nodes[item["id"]], item
                    checked += 1
            else:
                pending.extend(record.get("children", []))

    assert checked == 7


def test_input_and_search_field_are_counted_separately():
    search = UiNode(role="android.widget.EditText", resource_id="app:id/search_src", editable=True, bounds=BOX)
    name = UiNode(role="android.widget.EditText", resource_id="app:id/name", editable=True, bounds=BOX)
    form = UiNode(role="android.widget.ListView", bounds=BOX, children=[search, name])

    assert navigator.find_by_list_index(form, "input", 0) is name
    assert navigator.find_by_list_index(form, "search_field", 0) is search
    assert navigator.find_by_list_index(form, "input", 1) is None


def test_find_by_list_index_sees_items_inside_wrappers():
    wrapped = _video("Wrapped - 2:00")
    feed = UiNode(
        role="android.widget.ListView",
        bounds=BOX,
        children=[UiNode(role="android.widget.FrameLayout", bounds=BOX, children=[wrapped])],
    )

    assert navigator.find_by_list_index(feed, "video", 0) is wrapped


def test_queries_skip_nodes_without_screen_bounds():
    hidden = UiNode(role="android.widget.ImageView", desc="Search", bounds=(0, 0, 0, 0))
    gone = UiNode(role="android.widget.EditText", editable=True, clickable=True, desc="Search", visible=False, bounds=BOX)
    shown = UiNode(role="android.widget.ImageButton", desc="Search", clickable=True, bounds=(900, 80, 1000, 180))
    root = UiNode(role="android.widget.FrameLayout", bounds=(0, 0, 1080, 2280), children=[hidden, gone, shown])

    assert navigator.find_by_text(root, "search") is shown
    assert navigator.find_clickable_by_text(root, "search") is shown
    assert navigator.find_editable(root) is None
    assert navigator.find_scrollable(UiNode(children=[UiNode(scrollable=True)])) is None


def test_blank_query_matches_nothing():
    root = UiNode(role="android.widget.FrameLayout", bounds=(0, 0, 1080, 2280), children=[_text("Chats")])

    assert navigator.find_by_text(root, "") is None
    assert navigator.find_by_text(root, "   ", exact=True) is None
    assert navigator.find_clickable_by_text(root, "") is None
