#!/usr/bin/env python3
"""MCP server wrapper for android-agent-runner.

Exposes the Android agent as tools callable by any MCP client over stdio.

Sample client config:

    {
      "mcpServers": {
        "android-agent": {
          "command": "/path/to/android-agent-runner/.venv/bin/python",
          "args": ["/path/to/android-agent-runner/mcp_server.py"],
          "cwd": "/path/to/android-agent-runner"
        }
      }
    }

Run standalone:  python mcp_server.py
"""

import json
import os
import sys

_PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

load_dotenv(os.path.join(_PROJECT_ROOT, ".env"))
load_dotenv(os.path.expanduser("~/.env"))

from agent_runner import run_state, screenshot
from agent_runner.agent_loop import MAX_STEPS, AgentLoop
from agent_runner.executor import ActionExecutor
from agent_runner.oracle import build_oracle
from agent_runner.plan_builder import PlanBuilder
from agent_runner.ui_host import UiHost

# ---------------------------------------------------------------------------
# Lazy device connection
# ---------------------------------------------------------------------------

_host: UiHost | None = None


def _ensure_device() -> UiHost:
    """Connect to the device on first call ($ANDROID_SERIAL or the only attached one)."""
    global _host
    if _host is not None:
        return _host

    host = UiHost(os.getenv("ANDROID_SERIAL") or None)
    if not host.is_available():
        raise RuntimeError("No Android device reachable over adb")
    _host = host
    return _host


# ---------------------------------------------------------------------------
# MCP server
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "android-agent",
    instructions="Android device automation: run goals, execute commands, capture screenshots, dump UI trees",
)


@mcp.tool()
def android_run_goal(goal: str, max_steps: int = MAX_STEPS, oracle: str = "", persist: bool = True) -> str:
    """Run the autonomous agent loop with a plain-English goal.

    The agent reads the screen, asks the model for one action, performs it,
    and repeats until the model reports the task complete or max_steps runs out.

    Args:
        goal: Plain-English description of what to accomplish on the device.
        max_steps: Maximum number of loop iterations (default: 15).
        oracle: "anthropic", "groq" or "openai" (default: $AGENT_ORACLE).
        persist: Record the run under _artifacts/runs/ (default: true).

    Returns:
        JSON string with keys: success, status, message, run_id, steps.
    """
    host = _ensure_device()
    loop = AgentLoop(
        host,
        build_oracle(oracle or None),
        executor=ActionExecutor(host),
        max_steps=max_steps,
        persist=persist,
    )
    final = loop.run(goal)
    return json.dumps({
        "success": final.status.value == "success",
        "status": final.status.value,
        "message": final.message,
        "run_id": loop.run_id,
        "steps": [
            {"line": item.step.to_line(), "ok": item.result.ok, "result": str(item.result)}
            for item in loop.executed_steps
        ],
    }, indent=2)


@mcp.tool()
def android_run_command(command: str, oracle: str = "") -> str:
    """Build a plan for a one-shot command and execute it step by step.

    Returns:
        JSON with the plan lines, per-step outcomes, and the overall result.
    """
    host = _ensure_device()
    steps = PlanBuilder(build_oracle(oracle or None)).build_plan(command)
    if not steps:
        return json.dumps({"error": "could not build a plan", "command": command}, indent=2)

    outcomes = []
    result = ActionExecutor(host).execute_plan(
        steps,
        on_each=lambda index, step, res: outcomes.append(
            {"index": index, "line": step.to_line(), "ok": res.ok}
        ),
    )
    return json.dumps({
        "success": result.ok,
        "result": str(result),
        "plan": [step.to_line() for step in steps],
        "outcomes": outcomes,
    }, indent=2)


@mcp.tool()
def android_screenshot() -> str:
    """Capture a screenshot of the device screen.

    Returns:
        Path to the saved PNG screenshot file.
    """
    path = screenshot.capture(_ensure_device())
    if not path:
        raise RuntimeError("Screenshot capture failed")
    return path


@mcp.tool()
def android_dump_tree() -> str:
    """Serialized UI tree of the current screen (the same view the model gets)."""
    return _ensure_device().serialize_tree()


@mcp.tool()
def android_list_runs(limit: int = 20) -> str:
    """List recent persisted agent runs."""
    return json.dumps(run_state.list_runs(limit=limit), indent=2)


@mcp.tool()
def android_replay_run(run_id: str) -> str:
    """Stored state and events for a run."""
    return json.dumps(run_state.replay_run(run_id), indent=2)


if __name__ == "__main__":
    mcp.run(transport="stdio")
