"""executor.py - Turn a Step into one concrete interaction against the UI Host.

Lookups are retried to absorb UI lag; the interaction itself is attempted
once. Every outcome, including unexpected exceptions, comes back as an
ActionResult value.
"""

import sys
import time
from typing import Callable

from agent_runner.actions import ActionKind, ActionResult, Failure, Step, Success

RESOLVE_ATTEMPTS = 5
RESOLVE_DELAY_SECONDS = 0.5
DEFAULT_WAIT_MS = 1000

# Best-effort labels for a submit control when clicking the field itself fails.
SUBMIT_LABELS = ("Search", "Send", "Go", "Enter", "Submit", "Done")


def _log(msg: str) -> None:
    print(f"[exec] {msg}", file=sys.stderr)


def _hint(raw: str | None) -> str | None:
    if raw is None or not raw.strip() or raw.strip().lower() == "null":
        return None
    return raw.strip()


def _parse_int(raw: str | None, default: int) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return default


class ActionExecutor:
    """Executes steps against an injected UI Host."""

    def __init__(self, host, attempts: int = RESOLVE_ATTEMPTS, delay: float = RESOLVE_DELAY_SECONDS):
        self.host = host
        self.attempts = attempts
        self.delay = delay

    def _resolve(self, lookup: Callable[[], object]):
        """Call ``lookup`` up to ``attempts`` times, pausing between tries."""
        for attempt in range(1, self.attempts + 1):
            node = lookup()
            if node is not None:
                return node
            if attempt < self.attempts:
                time.sleep(self.delay)
        return None

    def execute(self, step: Step) -> ActionResult:
        """Execute a single step."""
        if not self.host.is_available():
            return Failure("UI host not available")
        _log(f"{step.action.value} target={step.target!r} value={step.value!r}")
        try:
            return self._dispatch(step)
        except Exception as exc:
            _log(f"Error executing step '{step.description}': {exc}")
            return Failure(f"Error: {exc}")

    def _dispatch(self, step: Step) -> ActionResult:
        action = step.action

        if action == ActionKind.OPEN_APP:
            return self._open_app(step.target.strip())

        elif action == ActionKind.FIND_ELEMENT:
            node = self._resolve(lambda: self.host.find_by_text(step.target))
            if node is None:
                return Failure(f"Element not found: {step.target}")
            return Success(f"Found element: {step.target}")

        elif action == ActionKind.CLICK:
            node = self._resolve(lambda: self.host.find_by_text(step.target))
            if node is None:
                return Failure(f"Element not found to click: {step.target}")
            if not self.host.click(node):
                return Failure(f"Failed to click: {step.target}")
            return Success(f"Clicked: {step.target}")

        elif action == ActionKind.CLICK_INDEX:
            index = _parse_int(step.value, 0)
            node = self._resolve(lambda: self.host.find_by_list_index(step.target, index))
            if node is None:
                return Failure(f"Element at index {index} not found")
            if not self.host.click(node):
                return Failure(f"Failed to click item at index {index}")
            return Success(f"Clicked item at index {index}")

        elif action == ActionKind.TYPE_TEXT:
            hint = _hint(step.target)
            node = self._resolve(lambda: self.host.find_editable(hint))
            if node is None:
                return Failure(f"Input field not found: {step.target}")
            if not self.host.set_text(node, step.value or ""):
                return Failure("Failed to type text")
            return Success(f"Typed text: {step.value or ''}")

        elif action == ActionKind.PRESS_ENTER:
            hint = _hint(step.target)
            node = self._resolve(lambda: self.host.find_editable(hint))
            if node is None:
                return Failure(f"Input field not found: {step.target}")
            if not self._press_enter(node):
                return Failure("Failed to press Enter")
            return Success("Pressed Enter")

        elif action == ActionKind.SEARCH:
            node = self.host.find_editable("search")
            if node is None:
                return Failure("Search field not found")
            if not self.host.set_text(node, step.value or ""):
                return Failure("Failed to search")
            return Success(f"Searched for: {step.value or ''}")

        elif action == ActionKind.WAIT:
            millis = _parse_int(step.target, DEFAULT_WAIT_MS)
            if millis < 0:
                millis = DEFAULT_WAIT_MS
            time.sleep(millis / 1000)
            return Success(f"Waited {millis}ms")

        elif action == ActionKind.NAVIGATE_BACK:
            if not self.host.global_back():
                return Failure("Failed to navigate back")
            return Success("Navigated back")

        elif action in (ActionKind.SCROLL_DOWN, ActionKind.SCROLL_UP):
            return self._scroll(forward=action == ActionKind.SCROLL_DOWN)

        elif action == ActionKind.TASK_COMPLETE:
            return Success("Task Complete")

        return Failure(f"Unknown action: {action}")

    def _open_app(self, package: str) -> ActionResult:
        if not package:
            return Failure("OPEN_APP requires a package name")
        if not self.host.is_installed(package):
            return Failure(f"App not installed: {package}")
        if not self.host.launch_app(package):
            return Failure(f"Failed to open app: {package}")
        return Success(f"Opened app: {package}")

    def _press_enter(self, node) -> bool:
        """Submit an input: the field itself, else a submit-labelled control, else a clickable ancestor."""
        if node.clickable and self.host.submit(node):
            return True

        for label in SUBMIT_LABELS:
            submit = self.host.find_clickable_by_text(label)
            if submit is not None:
                _log(f"press_enter: using submit control '{label}'")
                return self.host.click(submit)

        for ancestor in node.ancestors():
            if ancestor.clickable:
                _log(f"press_enter: clicking ancestor {ancestor.role}")
                return self.host.click(ancestor)
        return False

    def _scroll(self, forward: bool) -> ActionResult:
        direction = "down" if forward else "up"
        container = self.host.find_scrollable()
        if container is None:
            return Failure(f"Failed to scroll {direction} (no scrollable container found)")
        if forward:
            ok = self.host.scroll_forward(container)
        else:
            ok = self.host.scroll_backward(container)
        if not ok:
            return Failure(f"Failed to scroll {direction}")
        return Success(f"Scrolled {direction}")

    def execute_plan(
        self,
        steps: list[Step],
        on_each: Callable[[int, Step, ActionResult], None] | None = None,
    ) -> ActionResult:
        """Run steps in order, stopping at (and returning) the first Failure."""
        for index, step in enumerate(steps):
            result = self.execute(step)
            if on_each is not None:
                on_each(index, step, result)
            if not result.ok:
                _log(f"Plan stopped at step {index + 1}/{len(steps)}: {result.reason}")
                return result
        return Success("All steps completed successfully")
