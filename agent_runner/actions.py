"""actions.py - The closed action vocabulary, step records and results.

A plan line on the wire is exactly ``ACTION|TARGET|VALUE|DESCRIPTION``;
a VALUE of ``null`` means "no value".
"""

from dataclasses import dataclass
from enum import Enum


class ActionKind(str, Enum):
    """Every action the executor knows how to perform."""

    OPEN_APP = "OPEN_APP"            # target: package name
    FIND_ELEMENT = "FIND_ELEMENT"    # target: text / desc / resource id
    CLICK = "CLICK"                  # target: text / desc / resource id
    CLICK_INDEX = "CLICK_INDEX"      # target: element category, value: 0-based index
    TYPE_TEXT = "TYPE_TEXT"          # target: field hint, value: text
    PRESS_ENTER = "PRESS_ENTER"      # target: field hint
    SEARCH = "SEARCH"                # value: query
    WAIT = "WAIT"                    # target: milliseconds
    NAVIGATE_BACK = "NAVIGATE_BACK"
    SCROLL_DOWN = "SCROLL_DOWN"
    SCROLL_UP = "SCROLL_UP"
    TASK_COMPLETE = "TASK_COMPLETE"

    @classmethod
    def parse(cls, text) -> "ActionKind | None":
        """Return the kind named by ``text`` (surrounding whitespace ignored), or None."""
        if text is None:
            return None
        try:
            return cls(str(text).strip().upper())
        except ValueError:
            return None


def _is_null(raw) -> bool:
    return raw is None or str(raw).strip() == "" or str(raw).strip().lower() == "null"


@dataclass(frozen=True)
class Step:
    """One unit of executable intent."""

    action: ActionKind
    target: str
    value: str | None = None
    description: str = ""

    def to_line(self) -> str:
        value = "null" if self.value is None else self.value
        return f"{self.action.value}|{self.target}|{value}|{self.description}"


def parse_plan_line(line: str) -> Step | None:
    """Parse one ``ACTION|TARGET|VALUE|DESCRIPTION`` line.

    Lines with fewer than four fields or an unknown action give None.
    """
    parts = line.split("|", 3)
    if len(parts) < 4:
        return None
    action = ActionKind.parse(parts[0])
    if action is None:
        return None
    value = None if _is_null(parts[2]) else parts[2].strip()
    return Step(action, parts[1].strip(), value, parts[3].strip())


def parse_plan(text: str) -> list[Step]:
    """Parse every valid plan line in ``text``, silently dropping the rest."""
    steps = []
    for line in text.splitlines():
        step = parse_plan_line(line.strip())
        if step is not None:
            steps.append(step)
    return steps


@dataclass(frozen=True)
class Success:
    message: str

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    reason: str

    @property
    def ok(self) -> bool:
        return False


ActionResult = Success | Failure


@dataclass(frozen=True)
class StepExecution:
    """Observability record for one executed step."""

    step: Step
    result: ActionResult
    index: int
