#!/usr/bin/env python3
"""Android Agent Runner - CLI for driving a device over adb.

Usage:
    python main.py --dump-tree
    python main.py --screenshot
    python main.py --goal "Play lofi beats on YouTube" --persist
    python main.py --command "send hi to Bob on WhatsApp"
"""

import argparse
import sys

from dotenv import load_dotenv

load_dotenv()

from agent_runner import screenshot
from agent_runner.actions import Step
from agent_runner.agent_loop import MAX_STEPS, AgentLoop, LoopState, Status
from agent_runner.executor import ActionExecutor
from agent_runner.oracle import build_oracle
from agent_runner.plan_builder import PlanBuilder
from agent_runner.ui_host import UiHost


def log(msg: str) -> None:
    print(f"[main] {msg}", file=sys.stderr)


def connect(serial: str | None) -> UiHost:
    """Build a UiHost for ``serial`` (or $ANDROID_SERIAL) and check it is reachable."""
    host = UiHost(serial)
    if not host.is_available():
        print("FATAL: No Android device reachable over adb", file=sys.stderr)
        sys.exit(1)
    config = host.config
    log(f"Device: {serial or 'default'} | screen {config.width}x{config.height}")
    return host


def print_state(state: LoopState) -> None:
    if state.status == Status.EXECUTING:
        log(f"[{state.step}/{state.total}] {state.description}")


def do_goal(host: UiHost, goal: str, max_steps: int, oracle_name: str | None, persist: bool) -> bool:
    loop = AgentLoop(
        host,
        build_oracle(oracle_name),
        executor=ActionExecutor(host),
        max_steps=max_steps,
        on_state=print_state,
        persist=persist,
    )
    final = loop.run(goal)
    ok = final.status == Status.SUCCESS

    print(f"\n{'=' * 60}", file=sys.stderr)
    print(f"AGENT {'SUCCESS' if ok else 'FAILED'} after {len(loop.executed_steps)} executed step(s)", file=sys.stderr)
    if final.message:
        print(f"Reason: {final.message}", file=sys.stderr)
    if loop.run_id:
        print(f"Run ID: {loop.run_id}", file=sys.stderr)
    print(f"{'=' * 60}", file=sys.stderr)
    return ok


def do_command(host: UiHost, command: str, oracle_name: str | None) -> bool:
    steps = PlanBuilder(build_oracle(oracle_name)).build_plan(command)
    if not steps:
        log("Could not build a plan for this command")
        return False
    for step in steps:
        log(f"plan: {step.to_line()}")

    def report(index: int, step: Step, result) -> None:
        mark = "ok" if result.ok else "FAILED"
        log(f"[{index + 1}/{len(steps)}] {step.description}: {mark}")

    result = ActionExecutor(host).execute_plan(steps, on_each=report)
    log(f"Plan result: {result}")
    return result.ok


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Android Agent Runner - device automation via adb + uiautomator"
    )
    parser.add_argument(
        "--serial",
        default=None,
        help="adb device serial (default: $ANDROID_SERIAL or the only attached device)",
    )
    parser.add_argument(
        "--goal",
        type=str,
        help="Natural language goal; runs the autonomous agent loop",
    )
    parser.add_argument(
        "--command",
        type=str,
        help="Natural language command; builds a plan once and executes it",
    )
    parser.add_argument(
        "--dump-tree",
        action="store_true",
        help="Print the serialized UI tree of the current screen",
    )
    parser.add_argument(
        "--screenshot",
        action="store_true",
        help="Capture a screenshot into _artifacts/",
    )
    parser.add_argument(
        "--max-steps",
        type=int,
        default=MAX_STEPS,
        help=f"Max agent loop iterations (default: {MAX_STEPS})",
    )
    parser.add_argument(
        "--oracle",
        choices=("anthropic", "groq", "openai"),
        default=None,
        help="Decision oracle provider (default: $AGENT_ORACLE or anthropic)",
    )
    parser.add_argument(
        "--persist",
        action="store_true",
        help="Record the agent run under _artifacts/runs/",
    )

    args = parser.parse_args(argv)

    if not any([args.goal, args.command, args.dump_tree, args.screenshot]):
        parser.print_help()
        return 1

    host = connect(args.serial)

    if args.goal:
        return 0 if do_goal(host, args.goal, args.max_steps, args.oracle, args.persist) else 1

    if args.command:
        return 0 if do_command(host, args.command, args.oracle) else 1

    if args.dump_tree:
        print(host.serialize_tree())

    if args.screenshot:
        path = screenshot.capture(host)
        if not path:
            log("WARNING: Screenshot capture failed")
            return 1
        print(path)

    return 0


if __name__ == "__main__":
    sys.exit(main())
