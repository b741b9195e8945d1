"""run_state.py - Persisted record of one agent loop run.

Each run lives in ``_artifacts/runs/<run_id>/``:

    state.json    the RunRecord, rewritten whenever it changes
    events.jsonl  one line per loop event (capture, decision, skip, stall)

The MCP server reads these back with list_runs() and replay_run().
"""

import json
import sys
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from agent_runner.actions import StepExecution

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_RUNS_ROOT = _PROJECT_ROOT / "_artifacts" / "runs"

METRICS = ("oracle_calls", "action_failures", "parse_skips", "stalls")


def _log(msg: str) -> None:
    print(f"[run_state] {msg}", file=sys.stderr)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_run_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"run_{stamp}_{uuid.uuid4().hex[:8]}"


@dataclass
class RunRecord:
    run_id: str
    goal: str
    serial: str
    max_steps: int
    status: str = "running"
    summary: str = ""
    last_step: int = 0
    steps: list[dict] = field(default_factory=list)
    metrics: dict[str, int] = field(default_factory=lambda: dict.fromkeys(METRICS, 0))
    started_at: str = field(default_factory=_timestamp)
    finished_at: str = ""


def _step_row(step_number: int, execution: StepExecution, action_line: str) -> dict:
    step, result = execution.step, execution.result
    return {
        "step": step_number,
        "action": step.action.value,
        "target": step.target,
        "value": step.value,
        "line": action_line,
        "ok": result.ok,
        "result": result.message if result.ok else result.reason,
    }


class RunRecorder:
    """Writes one run's record and events as the loop reports them."""

    def __init__(self, record: RunRecord, root: Path | None = None):
        self.record = record
        self.directory = (root or _RUNS_ROOT) / record.run_id

    @classmethod
    def start(cls, goal: str, serial: str, max_steps: int, run_id: str | None = None) -> "RunRecorder":
        recorder = cls(RunRecord(run_id or new_run_id(), goal, serial or "", max_steps))
        recorder.directory.mkdir(parents=True, exist_ok=True)
        recorder._save()
        recorder._event("run_started", goal=goal, max_steps=max_steps)
        _log(f"Recording run {recorder.run_id} in {recorder.directory}")
        return recorder

    @property
    def run_id(self) -> str:
        return self.record.run_id

    def _save(self) -> None:
        (self.directory / "state.json").write_text(json.dumps(asdict(self.record), indent=2))

    def _event(self, kind: str, **fields) -> None:
        line = json.dumps({"type": kind, "timestamp": _timestamp(), **fields})
        with (self.directory / "events.jsonl").open("a") as f:
            f.write(line + "\n")

    def _bump(self, metric: str) -> None:
        self.record.metrics[metric] += 1

    # -- loop events --------------------------------------------------------

    def screen_captured(self, step: int, screenshot_path: str | None, tree_path: str | None) -> None:
        self._event("screen_captured", step=step, screenshot=screenshot_path, tree=tree_path)

    def oracle_responded(self, step: int, latency_ms: int, empty: bool) -> None:
        self._bump("oracle_calls")
        self._save()
        self._event("oracle_response", step=step, latency_ms=latency_ms, empty=empty)

    def parse_skipped(self, step: int, reason: str) -> None:
        self._bump("parse_skips")
        self._save()
        self._event("parse_skipped", step=step, reason=reason)

    def stall_detected(self, step: int) -> None:
        self._bump("stalls")
        self._save()
        self._event("stall_detected", step=step)

    def step_executed(self, step_number: int, execution: StepExecution, action_line: str) -> None:
        self.record.steps.append(_step_row(step_number, execution, action_line))
        self.record.last_step = step_number
        if not execution.result.ok:
            self._bump("action_failures")
        self._save()

    def finish(self, succeeded: bool, summary: str, steps: int) -> None:
        self.record.status = "completed" if succeeded else "failed"
        self.record.summary = summary
        self.record.last_step = steps
        self.record.finished_at = _timestamp()
        self._save()
        self._event("run_finished", status=self.record.status, summary=summary, steps=steps)


# ---------------------------------------------------------------------------
# Reading runs back
# ---------------------------------------------------------------------------


def load_state(run_id: str) -> dict | None:
    """The saved record of a run, or None when it is missing or unreadable."""
    path = _RUNS_ROOT / run_id / "state.json"
    try:
        return json.loads(path.read_text())
    except (OSError, json.JSONDecodeError):
        return None


def list_runs(limit: int = 20) -> list[dict]:
    """Newest runs first, one summary row each."""
    if not _RUNS_ROOT.is_dir():
        return []
    rows = []
    for directory in _RUNS_ROOT.iterdir():
        state = load_state(directory.name) if directory.is_dir() else None
        if state is None:
            continue
        rows.append({key: state.get(key) for key in ("run_id", "goal", "status", "last_step", "started_at", "summary")})
    rows.sort(key=lambda row: row["started_at"] or "", reverse=True)
    return rows[: max(1, limit)]


def replay_run(run_id: str) -> dict:
    """A run's record together with its event stream."""
    state = load_state(run_id)
    if state is None:
        return {"error": f"run '{run_id}' not found"}
    events_path = _RUNS_ROOT / run_id / "events.jsonl"
    events = []
    if events_path.exists():
        events = [json.loads(line) for line in events_path.read_text().splitlines() if line.strip()]
    return {"run_id": run_id, "state": state, "events": events}
