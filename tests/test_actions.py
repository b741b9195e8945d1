from agent_runner.actions import ActionKind, Failure, Step, Success, parse_plan, parse_plan_line


def test_plan_line_round_trips_through_history_rendering():
    step = parse_plan_line("CLICK|Search|null|Opening search")

    assert step == Step(ActionKind.CLICK, "Search", None, "Opening search")
    assert step.to_line() == "CLICK|Search|null|Opening search"


def test_plan_line_keeps_value_and_pipes_in_description():
    step = parse_plan_line("TYPE_TEXT|Search YouTube|lofi beats|Typing: a|b")

    assert step.action == ActionKind.TYPE_TEXT
    assert step.value == "lofi beats"
    assert step.description == "Typing: a|b"


def test_plan_line_rejects_short_and_unknown_lines():
    assert parse_plan_line("CLICK|Search|null") is None
    assert parse_plan_line("DANCE|Search|null|Dancing") is None
    assert parse_plan_line("") is None


def test_parse_plan_drops_invalid_lines_and_keeps_order():
    text = "\n".join([
        "Here is your plan:",
        "OPEN_APP|com.whatsapp|null|Opening WhatsApp",
        "WAIT|3000|null|Waiting",
        "FLY|away|null|Nope",
        "CLICK|New chat|null|Opening new chat",
    ])

    steps = parse_plan(text)

    assert [s.action for s in steps] == [ActionKind.OPEN_APP, ActionKind.WAIT, ActionKind.CLICK]
    assert steps[0].target == "com.whatsapp"


def test_action_kind_parse_is_lenient_about_case_and_whitespace():
    assert ActionKind.parse(" task_complete ") == ActionKind.TASK_COMPLETE
    assert ActionKind.parse("nope") is None
    assert ActionKind.parse(None) is None


def test_results_report_ok():
    assert Success("done").ok is True
    assert Failure("boom").ok is False
