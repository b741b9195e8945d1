"""oracle.py - Decision oracle clients: ask a model for the next action or a full plan.

Two providers share one prompt set and one retry policy:

* AnthropicOracle - native tool_use, so the next action comes back as a
  structured record instead of free text.
* OpenAICompatibleOracle - any OpenAI-style chat endpoint (Groq by default),
  answering with a JSON object as text.

Rate-limited calls wait for the server's retry-after (or 25s) and retry up
to 10 times. When a call is given up on, the method returns None.
"""

import base64
import io
import os
import sys
import time
from pathlib import Path

import anthropic
import openai
from dotenv import load_dotenv
from PIL import Image

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")
load_dotenv(Path.home() / ".env")

ANTHROPIC_MODEL = "claude-sonnet-4-5-20250929"
GROQ_MODEL = "openai/gpt-oss-120b"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"
OPENAI_MODEL = "gpt-4o-mini"

MAX_ATTEMPTS = 10
DEFAULT_RETRY_AFTER_SECONDS = 25
MAX_TRANSIENT_BACKOFF_SECONDS = 8
SCREENSHOT_MAX_DIM = 1600

ACTION_NAMES = [
    "OPEN_APP", "CLICK", "CLICK_INDEX", "TYPE_TEXT", "PRESS_ENTER",
    "SCROLL_DOWN", "SCROLL_UP", "NAVIGATE_BACK", "WAIT", "TASK_COMPLETE",
]

SYSTEM_PROMPT = """\
You are an Android automation agent driving a real phone one action at a time.
Decide the SINGLE best next action toward the user's goal. Avoid loops and
never repeat an action that the history shows already failed.
"""

DECISION_PROMPT = """\
USER GOAL:
"{goal}"

ACTION HISTORY (most recent last):
{history}

CURRENT SCREEN (compact UI tree):
Fields: "type" (video, button, search_field, input, list), "index" (0-based
position inside a list), "pos" (top, mid, bot), "id" (short resource id),
"click" / "edit" / "scroll" capability flags.
{tree}

Rules:
- If the target app is not in the foreground, OPEN_APP with its package name first.
- Dismiss popups ("Allow", "Skip", "Not now", "No thanks", "Close", "OK", "Got it") before anything else.
- Keep a short TODO list of sub-tasks and report its progress.
- CLICK only elements present in the tree; prefer "id" or exact "text".
- TYPE_TEXT only when an editable field exists.
- When items carry "index", use CLICK_INDEX (target = type, value = 0-based index).
  "3rd video" means CLICK_INDEX with target "video" and value "2".
  Items without a "type" are numbered across the whole list: use target "item".
- Searching is always: CLICK the search control, TYPE_TEXT the query, PRESS_ENTER,
  WAIT for results, then pick a result.
- If a CLICK did not change the screen, try different text, SCROLL_DOWN, or WAIT.
- If the target is probably off-screen, SCROLL_DOWN once and reassess.
- When the goal is clearly achieved, return TASK_COMPLETE and nothing else.

Actions:
- OPEN_APP (target: package name, value: null)
- CLICK (target: text, description or resource id, value: null)
- CLICK_INDEX (target: element type such as "video", value: index)
- TYPE_TEXT (target: field hint or id, value: text to type)
- PRESS_ENTER (target: field hint or null, value: null)
- SCROLL_DOWN / SCROLL_UP (target: null, value: null)
- NAVIGATE_BACK (target: null, value: null)
- WAIT (target: milliseconds, value: null)
- TASK_COMPLETE (target: null, value: null)
"""

JSON_OUTPUT_RULES = """\
Respond with ONLY a JSON object, no markdown, no extra text:
{"action": "ACTION_TYPE", "target": "target_or_null", "value": "value_or_null",
 "reasoning": "brief explanation with TODO progress", "todo_status": "[x] done, [ ] pending"}
"""

PLAN_PROMPT = """\
Turn this command for an Android phone into an ordered list of UI steps:
"{command}"

Output one step per line, nothing else, in exactly this format:
ACTION|TARGET|VALUE|DESCRIPTION

ACTION is one of: OPEN_APP, FIND_ELEMENT, CLICK, CLICK_INDEX, TYPE_TEXT,
PRESS_ENTER, SEARCH, WAIT, NAVIGATE_BACK, SCROLL_DOWN, SCROLL_UP.
Use the literal null for an empty VALUE. OPEN_APP takes a package name
(e.g. com.whatsapp, com.google.android.youtube); WAIT takes milliseconds.
"""

NEXT_ACTION_TOOL = {
    "name": "next_action",
    "description": "Report the single next UI action to perform.",
    "input_schema": {
        "type": "object",
        "properties": {
            "action": {"type": "string", "enum": ACTION_NAMES},
            "target": {"type": ["string", "null"], "description": "Element text/id, package, type, or milliseconds"},
            "value": {"type": ["string", "null"], "description": "Text to type or list index"},
            "reasoning": {"type": "string", "description": "Why, including TODO progress"},
            "todo_status": {"type": "string", "description": "[x] done items, [ ] pending items"},
        },
        "required": ["action", "target", "value", "reasoning"],
    },
}


def _log(msg: str) -> None:
    print(f"[oracle] {msg}", file=sys.stderr)


class OracleError(RuntimeError):
    """A model call could not be completed within the retry budget."""


def build_decision_prompt(goal: str, history: str, tree: str) -> str:
    return DECISION_PROMPT.format(goal=goal, history=history or "(none yet)", tree=tree or "[]")


def build_plan_prompt(command: str) -> str:
    return PLAN_PROMPT.format(command=command)


def encode_screenshot(png: bytes | None, max_dim: int = SCREENSHOT_MAX_DIM) -> str | None:
    """Downscale a PNG to fit ``max_dim`` and return it base64-encoded."""
    if not png:
        return None
    img = Image.open(io.BytesIO(png))
    w, h = img.size
    if max(w, h) > max_dim:
        scale = max_dim / max(w, h)
        new_w, new_h = int(w * scale), int(h * scale)
        img = img.resize((new_w, new_h), Image.LANCZOS)
        _log(f"Resized screenshot {w}x{h} -> {new_w}x{new_h}")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return base64.standard_b64encode(buf.getvalue()).decode("ascii")


def _retry_after_seconds(exc: Exception, default: float) -> float:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None) or {}
    try:
        return float(headers.get("retry-after"))
    except (TypeError, ValueError):
        return default


def call_with_retries(call, rate_limit_errors: tuple, transient_errors: tuple, attempts: int = MAX_ATTEMPTS):
    """Run ``call`` with bounded retries for rate limits and transient failures."""
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return call()
        except rate_limit_errors as exc:
            last_error = exc
            wait_seconds = _retry_after_seconds(exc, DEFAULT_RETRY_AFTER_SECONDS)
            _log(f"Rate limited ({attempt}/{attempts}), retry-after {wait_seconds}s")
        except transient_errors as exc:
            last_error = exc
            wait_seconds = min(2 ** (attempt - 1), MAX_TRANSIENT_BACKOFF_SECONDS)
            _log(f"Model call failed ({attempt}/{attempts}): {exc}")
        if attempt < attempts:
            time.sleep(wait_seconds)
    raise OracleError(f"Model call failed after {attempts} attempts: {last_error}")


class DecisionOracle:
    """Shared prompting and failure handling. Subclasses implement _decide/_plan."""

    rate_limit_errors: tuple = ()
    transient_errors: tuple = ()

    def _call(self, call):
        return call_with_retries(call, self.rate_limit_errors, self.transient_errors)

    def decide_next_step(self, goal: str, history: str, screenshot: bytes | None, tree: str):
        """Return the next action as a record dict or raw text, or None on failure."""
        prompt = build_decision_prompt(goal, history, tree)
        try:
            decision = self._call(lambda: self._decide(prompt, screenshot))
        except Exception as exc:
            _log(f"decide_next_step failed: {exc}")
            return None
        _log(f"Decision: {decision}")
        return decision

    def generate_plan(self, command: str) -> str | None:
        """Return a full plan as ACTION|TARGET|VALUE|DESCRIPTION lines, or None on failure."""
        prompt = build_plan_prompt(command)
        try:
            plan = self._call(lambda: self._plan(prompt))
        except Exception as exc:
            _log(f"generate_plan failed: {exc}")
            return None
        return plan or None

    def _decide(self, prompt: str, screenshot: bytes | None):
        raise NotImplementedError

    def _plan(self, prompt: str) -> str | None:
        raise NotImplementedError


def _response_action(response) -> dict | str | None:
    """Prefer the tool_use input; fall back to whatever text the model wrote."""
    text_parts: list[str] = []
    for block in response.content:
        if block.type == "tool_use" and isinstance(block.input, dict):
            return dict(block.input)
        if block.type == "text":
            text_parts.append(block.text)
    text = "\n".join(text_parts).strip()
    return text or None


class AnthropicOracle(DecisionOracle):
    rate_limit_errors = (anthropic.RateLimitError,)
    transient_errors = (anthropic.APIConnectionError, anthropic.InternalServerError)

    def __init__(self, client=None, model: str | None = None):
        self.client = client or anthropic.Anthropic(max_retries=0)
        self.model = model or os.getenv("AGENT_MODEL") or ANTHROPIC_MODEL

    def _decide(self, prompt: str, screenshot: bytes | None):
        content: list[dict] = []
        b64 = encode_screenshot(screenshot)
        if b64:
            content.append({
                "type": "image",
                "source": {"type": "base64", "media_type": "image/png", "data": b64},
            })
        content.append({"type": "text", "text": prompt + "\nCall next_action with your decision."})
        response = self.client.messages.create(
            model=self.model,
            max_tokens=1024,
            system=SYSTEM_PROMPT,
            tools=[NEXT_ACTION_TOOL],
            tool_choice={"type": "tool", "name": "next_action"},
            messages=[{"role": "user", "content": content}],
        )
        return _response_action(response)

    def _plan(self, prompt: str) -> str | None:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=2048,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        text = _response_action(response)
        return text if isinstance(text, str) else None


class OpenAICompatibleOracle(DecisionOracle):
    """Text-only oracle for OpenAI-style chat endpoints; the screenshot is not sent."""

    rate_limit_errors = (openai.RateLimitError,)
    transient_errors = (openai.APIConnectionError, openai.InternalServerError)

    def __init__(
        self,
        client=None,
        model: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
    ):
        if client is None:
            client = openai.OpenAI(
                base_url=base_url or os.getenv("OPENAI_BASE_URL") or GROQ_BASE_URL,
                api_key=api_key or os.getenv("GROQ_API_KEY"),
                max_retries=0,
            )
        self.client = client
        self.model = model or os.getenv("AGENT_MODEL") or GROQ_MODEL

    def _complete(self, system: str, prompt: str) -> str | None:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        )
        if not response.choices:
            return None
        content = response.choices[0].message.content
        return content.strip() if content else None

    def _decide(self, prompt: str, screenshot: bytes | None):
        return self._complete(SYSTEM_PROMPT + "Output ONLY valid JSON.", prompt + "\n" + JSON_OUTPUT_RULES)

    def _plan(self, prompt: str) -> str | None:
        return self._complete(SYSTEM_PROMPT, prompt)


def build_oracle(provider: str | None = None) -> DecisionOracle:
    """Build the oracle named by ``provider`` or $AGENT_ORACLE (default: anthropic)."""
    name = (provider or os.getenv("AGENT_ORACLE") or "anthropic").strip().lower()
    if name == "anthropic":
        return AnthropicOracle()
    if name == "groq":
        return OpenAICompatibleOracle()
    if name == "openai":
        return OpenAICompatibleOracle(
            model=os.getenv("AGENT_MODEL") or OPENAI_MODEL,
            base_url=os.getenv("OPENAI_BASE_URL") or "https://api.openai.com/v1",
            api_key=os.getenv("OPENAI_API_KEY"),
        )
    raise ValueError(f"Unknown oracle provider '{name}' (expected anthropic, groq or openai)")
