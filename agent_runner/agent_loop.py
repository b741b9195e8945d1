"""agent_loop.py - Autonomous perceive / decide / act loop for an Android device.

Give it a goal in plain English and it captures the screen, asks the
decision oracle for one action, executes it, records the outcome, and loops
until the oracle says TASK_COMPLETE (or the step budget runs out).

The history handed to the oracle lists every executed action and whether it
worked, so the model can avoid repeating failures.
"""

import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from agent_runner import run_state, screenshot, tree_serializer
from agent_runner.actions import ActionKind, ActionResult, StepExecution
from agent_runner.decision_parser import NoActionFound, parse_decision
from agent_runner.executor import ActionExecutor

MAX_STEPS = 15
SETTLE_SECONDS = 1.0
STALL_WINDOW = 3


def _log(msg: str) -> None:
    print(f"[agent] {msg}", file=sys.stderr)


class Status(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    EXECUTING = "executing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class LoopState:
    status: Status
    step: int = 0
    total: int = 0
    description: str = ""
    message: str = ""


IDLE = LoopState(Status.IDLE)


@dataclass(frozen=True)
class HistoryEntry:
    step: int
    action_line: str = ""
    result: ActionResult | None = None
    note: str = ""

    def render(self) -> str:
        if self.note:
            return f"Step {self.step}: Note: {self.note}"
        outcome = "Success" if self.result.ok else f"Fail: {self.result.reason}"
        return f"Step {self.step}: {self.action_line} -> Result: {outcome}"


class ExecutionHistory:
    """Append-only log of what the loop did; rendered to text only for the oracle."""

    def __init__(self):
        self._entries: list[HistoryEntry] = []

    def append(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    def clear(self) -> None:
        self._entries.clear()

    @property
    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def render(self) -> str:
        return "\n".join(entry.render() for entry in self._entries)


class AgentLoop:
    """Drives one UI Host toward a goal, one oracle decision per iteration."""

    def __init__(
        self,
        host,
        oracle,
        executor: ActionExecutor | None = None,
        max_steps: int = MAX_STEPS,
        settle_seconds: float = SETTLE_SECONDS,
        on_state: Callable[[LoopState], None] | None = None,
        persist: bool = False,
    ):
        self.host = host
        self.oracle = oracle
        self.executor = executor or ActionExecutor(host)
        self.max_steps = max_steps
        self.settle_seconds = settle_seconds
        self.on_state = on_state
        self.persist = persist
        self.history = ExecutionHistory()
        self.executed_steps: list[StepExecution] = []
        self.run_id: str | None = None
        self._state = IDLE
        self._cancel = threading.Event()
        self._recorder: run_state.RunRecorder | None = None

    @property
    def state(self) -> LoopState:
        return self._state

    def _set_state(self, state: LoopState) -> None:
        self._state = state
        if self.on_state is not None:
            self.on_state(state)

    def reset(self) -> None:
        """Back to IDLE with an empty history."""
        self._set_state(IDLE)
        self.history.clear()
        self.executed_steps = []

    def cancel(self) -> None:
        """Ask a running loop to stop at its next iteration boundary."""
        self._cancel.set()

    def capture_state(self) -> tuple[bytes | None, str]:
        """Screenshot plus serialized tree of the current screen."""
        png = self.host.capture_screenshot()
        tree = self.host.serialize_tree()
        return png, tree

    # -- outcome ----------------------------------------------------------

    def _finish(self, state: LoopState, steps: int) -> LoopState:
        self._set_state(state)
        if state.status == Status.SUCCESS:
            _log(f"Goal reached after {steps} step(s)")
        else:
            _log(f"Run ended: {state.message}")
        if self._recorder is not None:
            succeeded = state.status == Status.SUCCESS
            self._recorder.finish(succeeded, state.message or "Task complete", steps)
        return state

    # -- main loop --------------------------------------------------------

    def run(self, goal: str) -> LoopState:
        """Run the loop until it reaches SUCCESS or ERROR."""
        self.history.clear()
        self.executed_steps = []
        self._cancel.clear()
        self._recorder = None
        self._set_state(LoopState(Status.PARSING))

        if self.persist:
            self._recorder = run_state.RunRecorder.start(
                goal=goal,
                serial=getattr(self.host, "serial", None) or "",
                max_steps=self.max_steps,
            )
            self.run_id = self._recorder.run_id
            _log(f"Run ID: {self.run_id}")
        recorder = self._recorder

        _log(f"Goal: {goal} | Max steps: {self.max_steps}")
        recent_trees: list[str] = []

        for step_number in range(1, self.max_steps + 1):
            if self._cancel.is_set():
                return self._finish(LoopState(Status.ERROR, message="Cancelled"), step_number - 1)

            _log(f"--- Step {step_number}/{self.max_steps} ---")

            # 1. Observe
            png, tree = self.capture_state()
            if png is None:
                return self._finish(
                    LoopState(Status.ERROR, message="Failed to capture screen. Is the device connected?"),
                    step_number - 1,
                )
            if recorder is not None:
                label = f"{self.run_id}_step_{step_number:02d}"
                recorder.screen_captured(
                    step_number,
                    screenshot.save_png(png, label),
                    screenshot.save_tree_json(tree, label),
                )

            # 2. Decide
            self._set_state(LoopState(Status.EXECUTING, step_number, self.max_steps, "Thinking..."))
            started = time.monotonic()
            decision = self.oracle.decide_next_step(goal, self.history.render(), png, tree)
            if recorder is not None:
                latency_ms = int((time.monotonic() - started) * 1000)
                recorder.oracle_responded(step_number, latency_ms, empty=decision is None)
            if decision is None:
                return self._finish(
                    LoopState(Status.ERROR, message="Decision oracle failed to make a decision."),
                    step_number,
                )

            # 3. Act
            parsed = parse_decision(decision)
            if isinstance(parsed, NoActionFound):
                _log(f"No valid action in response ({parsed.reason}); skipping step")
                if recorder is not None:
                    recorder.parse_skipped(step_number, parsed.reason)
            elif parsed.step.action == ActionKind.TASK_COMPLETE:
                return self._finish(LoopState(Status.SUCCESS, step_number, self.max_steps), step_number)
            else:
                step = parsed.step
                if parsed.todo_status:
                    _log(f"TODO: {parsed.todo_status}")
                self._set_state(LoopState(Status.EXECUTING, step_number, self.max_steps, step.description))
                result = self.executor.execute(step)
                _log(f"Result: {result}")
                execution = StepExecution(step, result, step_number - 1)
                self.executed_steps.append(execution)
                self.history.append(HistoryEntry(step_number, parsed.action_line, result))
                if recorder is not None:
                    recorder.step_executed(step_number, execution, parsed.action_line)

            # Stall detection: identical screens across the window
            recent_trees.append(tree_serializer.tree_signature(tree))
            if len(recent_trees) > STALL_WINDOW:
                recent_trees.pop(0)
            if len(recent_trees) == STALL_WINDOW and len(set(recent_trees)) == 1:
                note = f"Screen unchanged for the last {STALL_WINDOW} steps; try a different approach."
                _log(f"STALL DETECTED: {note}")
                self.history.append(HistoryEntry(step_number, note=note))
                if recorder is not None:
                    recorder.stall_detected(step_number)
                recent_trees.clear()

            time.sleep(self.settle_seconds)

        return self._finish(
            LoopState(Status.ERROR, message="Max steps reached without completion"),
            self.max_steps,
        )
