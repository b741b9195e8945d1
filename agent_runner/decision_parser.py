"""decision_parser.py - Pull one executable Step out of a model's reply.

Two reply shapes are accepted:

* a structured record ``{"action", "target", "value", "reasoning", "todo_status"}``
  (as a dict, or as JSON text, optionally inside a markdown fence);
* free text containing ``ACTION|TARGET|VALUE|REASONING`` somewhere in it.
"""

import json
import re
from dataclasses import dataclass

from agent_runner.actions import ActionKind, Step

DEFAULT_REASONING = "Executing action"

# Longest names first so CLICK_INDEX is not read as CLICK.
_ACTION_RE = re.compile(
    r"(?<![A-Z_])("
    + "|".join(sorted((kind.value for kind in ActionKind), key=len, reverse=True))
    + r")\|"
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


@dataclass(frozen=True)
class Parsed:
    step: Step
    action_line: str
    todo_status: str = ""


@dataclass(frozen=True)
class NoActionFound:
    reason: str


def _clean(raw) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    if not text or text.lower() == "null":
        return None
    return text


def _from_record(record: dict) -> Parsed | NoActionFound:
    action = ActionKind.parse(record.get("action"))
    if action is None:
        return NoActionFound(f"unknown action {record.get('action')!r}")
    target = _clean(record.get("target")) or "null"
    value = _clean(record.get("value"))
    reasoning = _clean(record.get("reasoning")) or DEFAULT_REASONING
    step = Step(action, target, value, reasoning)
    return Parsed(step, step.to_line(), str(record.get("todo_status") or ""))


def _json_record(text: str) -> dict | None:
    body = _FENCE_RE.sub("", text.strip())
    start, end = body.find("{"), body.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        record = json.loads(body[start:end + 1])
    except json.JSONDecodeError:
        return None
    if isinstance(record, dict) and "action" in record:
        return record
    return None


def _from_text(text: str) -> Parsed | NoActionFound:
    match = _ACTION_RE.search(text)
    if match is None:
        return NoActionFound("no recognized action in response")
    action_line = text[match.start():].splitlines()[0].strip()
    parts = action_line.split("|", 3)
    action = ActionKind(parts[0])
    target = parts[1].strip() if len(parts) > 1 else ""
    value = _clean(parts[2]) if len(parts) > 2 else None
    reasoning = (parts[3].strip() if len(parts) > 3 else "") or DEFAULT_REASONING
    return Parsed(Step(action, target, value, reasoning), action_line)


def parse_decision(response) -> Parsed | NoActionFound:
    """Parse a model reply (str or dict) into a Step, or report that none was found."""
    if response is None:
        return NoActionFound("empty response")
    if isinstance(response, dict):
        return _from_record(response)

    text = str(response)
    record = _json_record(text)
    if record is not None:
        return _from_record(record)
    return _from_text(text)
