"""plan_builder.py - One-shot planning: ask the oracle for a whole plan, else use a template.

The oracle plan is tried once. Lines that don't parse are dropped; if nothing
survives, a hand-written template for a few known apps takes over. An empty
list means "cannot proceed", never an exception.
"""

import sys

from agent_runner.actions import ActionKind, Step, parse_plan
from agent_runner.command_parser import CommandParser

APP_LOAD_WAIT_MS = "3000"
DEFAULT_MESSAGE = "Hi"

# App-specific first step into a new conversation.
NEW_CHAT_LABELS = {
    "whatsapp": ("New chat", "Opening new chat"),
    "google chat": ("Start chat", "Starting new chat"),
}


def _log(msg: str) -> None:
    print(f"[plan] {msg}", file=sys.stderr)


def _step(action: ActionKind, target: str, description: str, value: str | None = None) -> Step:
    return Step(action, target, value, description)


class PlanBuilder:
    def __init__(self, oracle=None, parser: CommandParser | None = None):
        self.oracle = oracle
        self.parser = parser or CommandParser()

    def build_plan(self, command: str) -> list[Step]:
        """Oracle plan if it yields any valid steps, otherwise the fallback template."""
        if self.oracle is not None:
            text = self.oracle.generate_plan(command)
            if text:
                steps = parse_plan(text)
                if steps:
                    _log(f"oracle plan: {len(steps)} step(s)")
                    return steps
                _log("oracle plan had no valid lines")
            _log("falling back to template planner")
        return self.fallback_plan(command)

    def fallback_plan(self, command: str) -> list[Step]:
        app_name = self.parser.extract_app_name(command)
        package = self.parser.get_package_name(app_name) if app_name else None
        if package is None:
            _log(f"cannot resolve an app from: {command!r}")
            return []

        steps = [
            _step(ActionKind.OPEN_APP, package, f"Opening {app_name[:1].upper()}{app_name[1:]}"),
            _step(ActionKind.WAIT, APP_LOAD_WAIT_MS, "Waiting for app to load"),
        ]
        if self.parser.is_send_message_command(command):
            steps.extend(self._message_steps(command, app_name))
        elif self.parser.is_search_command(command):
            steps.extend(self._search_steps(command, app_name))
        return steps

    def _message_steps(self, command: str, app_name: str) -> list[Step]:
        contact = self.parser.extract_contact_name(command)
        if contact is None:
            return []
        message = self.parser.extract_message_content(command) or DEFAULT_MESSAGE

        steps = []
        if app_name in NEW_CHAT_LABELS:
            label, description = NEW_CHAT_LABELS[app_name]
            steps.append(_step(ActionKind.FIND_ELEMENT, label, f"Finding {label.lower()} button"))
            steps.append(_step(ActionKind.CLICK, label, description))
        steps += [
            _step(ActionKind.FIND_ELEMENT, "Search", "Finding search field"),
            _step(ActionKind.TYPE_TEXT, "Search", f"Searching for {contact}", contact),
            _step(ActionKind.WAIT, "1500", "Waiting for search results"),
            _step(ActionKind.FIND_ELEMENT, contact, f"Finding contact {contact}"),
            _step(ActionKind.CLICK, contact, f"Opening chat with {contact}"),
            _step(ActionKind.WAIT, "1000", "Waiting for chat to open"),
            _step(ActionKind.FIND_ELEMENT, "message", "Finding message input"),
            _step(ActionKind.TYPE_TEXT, "message", f"Typing message: {message}", message),
            _step(ActionKind.PRESS_ENTER, "message", "Pressing enter"),
            # Some apps only send via the button.
            _step(ActionKind.FIND_ELEMENT, "Send", "Finding send button"),
            _step(ActionKind.CLICK, "Send", "Sending message"),
        ]
        return steps

    def _search_steps(self, command: str, app_name: str) -> list[Step]:
        query = self.parser.extract_search_query(command)
        if query is None or app_name != "youtube":
            return []
        return [
            _step(ActionKind.FIND_ELEMENT, "Search", "Finding search button"),
            _step(ActionKind.CLICK, "Search", "Opening search"),
            _step(ActionKind.FIND_ELEMENT, "Search YouTube", "Finding search field"),
            _step(ActionKind.TYPE_TEXT, "Search YouTube", f"Typing: {query}", query),
            _step(ActionKind.PRESS_ENTER, "Search YouTube", "Submitting search"),
            _step(ActionKind.WAIT, "2000", "Waiting for search results"),
            _step(ActionKind.FIND_ELEMENT, query, f"Finding video {query}"),
            _step(ActionKind.CLICK, query, "Playing video"),
        ]
