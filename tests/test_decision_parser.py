from agent_runner.actions import ActionKind, Step
from agent_runner.decision_parser import NoActionFound, Parsed, parse_decision


def test_pipe_line_inside_chatty_text():
    response = "Looking at the screen, the search icon is top right.\nCLICK|Search|null|Opening search\nThanks!"

    parsed = parse_decision(response)

    assert isinstance(parsed, Parsed)
    assert parsed.step == Step(ActionKind.CLICK, "Search", None, "Opening search")
    assert parsed.action_line == "CLICK|Search|null|Opening search"


def test_longer_action_names_win():
    parsed = parse_decision("CLICK_INDEX|video|2|Third video")

    assert parsed.step.action == ActionKind.CLICK_INDEX
    assert parsed.step.value == "2"


def test_missing_fields_get_defaults():
    parsed = parse_decision("SCROLL_DOWN|null")

    assert parsed.step.action == ActionKind.SCROLL_DOWN
    assert parsed.step.value is None
    assert parsed.step.description == "Executing action"


def test_keyword_without_separator_is_not_an_action():
    assert isinstance(parse_decision("I will CLICK the button soon"), NoActionFound)
    assert isinstance(parse_decision("MY_CLICK|x|null|y"), NoActionFound)


def test_structured_record_dict():
    parsed = parse_decision({
        "action": "type_text",
        "target": "Search YouTube",
        "value": "lofi beats",
        "reasoning": "Enter the query",
        "todo_status": "[x] open app, [ ] search",
    })

    assert parsed.step == Step(ActionKind.TYPE_TEXT, "Search YouTube", "lofi beats", "Enter the query")
    assert parsed.action_line == "TYPE_TEXT|Search YouTube|lofi beats|Enter the query"
    assert parsed.todo_status == "[x] open app, [ ] search"


def test_structured_record_with_nulls():
    parsed = parse_decision({"action": "NAVIGATE_BACK", "target": None, "value": "null"})

    assert parsed.step.target == "null"
    assert parsed.step.value is None
    assert parsed.step.description == "Executing action"


def test_json_text_in_markdown_fence():
    response = '```json\n{"action": "TASK_COMPLETE", "target": null, "value": null, "reasoning": "Video playing"}\n```'

    parsed = parse_decision(response)

    assert parsed.step.action == ActionKind.TASK_COMPLETE
    assert parsed.step.description == "Video playing"


def test_unknown_structured_action_and_empty_response():
    assert isinstance(parse_decision({"action": "FLY"}), NoActionFound)
    assert isinstance(parse_decision(None), NoActionFound)
    assert isinstance(parse_decision("nothing useful here"), NoActionFound)
