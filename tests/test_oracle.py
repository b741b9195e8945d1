import base64
import io
from dataclasses import dataclass
from types import SimpleNamespace

import pytest
from PIL import Image

from agent_runner import oracle
from agent_runner.oracle import AnthropicOracle, OpenAICompatibleOracle, OracleError


class FakeRateLimit(Exception):
    def __init__(self, retry_after=None):
        super().__init__("429 Too Many Requests")
        headers = {"retry-after": retry_after} if retry_after is not None else {}
        self.response = SimpleNamespace(headers=headers)


class FakeConnectionError(Exception):
    pass


@pytest.fixture
def sleeps(monkeypatch):
    recorded: list[float] = []
    monkeypatch.setattr(oracle.time, "sleep", lambda seconds: recorded.append(seconds))
    return recorded


def _failing(errors):
    """A call that raises each error in turn, then returns "ok"."""
    state = {"calls": 0}
    pending = list(errors)

    def call():
        state["calls"] += 1
        if pending:
            raise pending.pop(0)
        return "ok"

    return call, state


def test_rate_limit_waits_retry_after_then_succeeds(sleeps):
    call, state = _failing([FakeRateLimit("3"), FakeRateLimit()])

    result = oracle.call_with_retries(call, (FakeRateLimit,), (FakeConnectionError,))

    assert result == "ok"
    assert state["calls"] == 3
    assert sleeps == [3.0, oracle.DEFAULT_RETRY_AFTER_SECONDS]


def test_rate_limit_gives_up_after_ten_attempts(sleeps):
    call, state = _failing([FakeRateLimit() for _ in range(20)])

    with pytest.raises(OracleError, match="after 10 attempts"):
        oracle.call_with_retries(call, (FakeRateLimit,), ())

    assert state["calls"] == 10
    assert len(sleeps) == 9


def test_transient_errors_back_off_exponentially_with_cap(sleeps):
    call, _ = _failing([FakeConnectionError("reset")] * 6)

    assert oracle.call_with_retries(call, (), (FakeConnectionError,)) == "ok"
    assert sleeps == [1, 2, 4, 8, 8, 8]


def test_other_errors_are_not_retried(sleeps):
    call, state = _failing([ValueError("bad request")])

    with pytest.raises(ValueError):
        oracle.call_with_retries(call, (FakeRateLimit,), (FakeConnectionError,))

    assert state["calls"] == 1
    assert sleeps == []


@dataclass
class _Block:
    type: str
    text: str = ""
    input: dict | None = None


class FakeAnthropicMessages:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests: list[dict] = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return SimpleNamespace(content=item)


def _anthropic(responses):
    messages = FakeAnthropicMessages(responses)
    return AnthropicOracle(client=SimpleNamespace(messages=messages), model="test-model"), messages


def test_anthropic_decision_returns_tool_record(sleeps):
    record = {"action": "CLICK", "target": "Search", "value": None, "reasoning": "open search"}
    client_oracle, messages = _anthropic([[_Block("text", text="thinking"), _Block("tool_use", input=record)]])

    decision = client_oracle.decide_next_step("find cats", "", None, "[]")

    assert decision == record
    request = messages.requests[0]
    assert request["model"] == "test-model"
    assert request["tool_choice"] == {"type": "tool", "name": "next_action"}
    assert request["tools"][0]["name"] == "next_action"
    prompt = request["messages"][0]["content"][-1]["text"]
    assert '"find cats"' in prompt
    assert "(none yet)" in prompt


def test_anthropic_decision_sends_downscaled_screenshot():
    buf = io.BytesIO()
    Image.new("RGB", (1080, 3200), "white").save(buf, format="PNG")
    client_oracle, messages = _anthropic([[_Block("tool_use", input={"action": "TASK_COMPLETE"})]])

    client_oracle.decide_next_step("goal", "", buf.getvalue(), "[]")

    image_block = messages.requests[0]["messages"][0]["content"][0]
    assert image_block["type"] == "image"
    sent = Image.open(io.BytesIO(base64.b64decode(image_block["source"]["data"])))
    assert max(sent.size) == oracle.SCREENSHOT_MAX_DIM


def test_anthropic_decision_falls_back_to_text():
    client_oracle, _ = _anthropic([[_Block("text", text="CLICK|Search|null|Open search")]])

    assert client_oracle.decide_next_step("goal", "", None, "[]") == "CLICK|Search|null|Open search"


def test_decision_is_none_when_rate_limited_past_budget(sleeps):
    class LimitedOracle(AnthropicOracle):
        rate_limit_errors = (FakeRateLimit,)

    messages = FakeAnthropicMessages([FakeRateLimit("1") for _ in range(10)])
    limited = LimitedOracle(client=SimpleNamespace(messages=messages))

    assert limited.decide_next_step("goal", "", None, "[]") is None
    assert len(messages.requests) == 10


def test_decision_is_none_on_unexpected_error():
    client_oracle, _ = _anthropic([RuntimeError("boom")])

    assert client_oracle.decide_next_step("goal", "", None, "[]") is None


def test_anthropic_plan_returns_text():
    client_oracle, messages = _anthropic([[_Block("text", text="OPEN_APP|com.whatsapp|null|Open")]])

    assert client_oracle.generate_plan("open whatsapp") == "OPEN_APP|com.whatsapp|null|Open"
    assert "tools" not in messages.requests[0]


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.requests: list[dict] = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.content is None:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _openai(content):
    completions = FakeCompletions(content)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAICompatibleOracle(client=client, model="groq-model"), completions


def test_openai_compatible_decision_asks_for_json():
    client_oracle, completions = _openai('  {"action": "SCROLL_DOWN", "target": null}  ')

    decision = client_oracle.decide_next_step("goal", "Step 1: x -> Result: Success", b"png", "[]")

    assert decision == '{"action": "SCROLL_DOWN", "target": null}'
    request = completions.requests[0]
    assert request["model"] == "groq-model"
    assert "JSON" in request["messages"][1]["content"]
    assert "Step 1: x -> Result: Success" in request["messages"][1]["content"]


def test_openai_compatible_empty_reply_is_none():
    client_oracle, _ = _openai(None)

    assert client_oracle.generate_plan("open whatsapp") is None


def test_build_oracle_selects_provider(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    monkeypatch.setenv("GROQ_API_KEY", "test-key")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.delenv("AGENT_MODEL", raising=False)
    monkeypatch.delenv("OPENAI_BASE_URL", raising=False)
    monkeypatch.delenv("AGENT_ORACLE", raising=False)

    assert isinstance(oracle.build_oracle(), AnthropicOracle)
    groq = oracle.build_oracle("groq")
    assert isinstance(groq, OpenAICompatibleOracle)
    assert groq.model == oracle.GROQ_MODEL
    assert oracle.build_oracle("openai").model == oracle.OPENAI_MODEL

    monkeypatch.setenv("AGENT_ORACLE", "Groq")
    assert isinstance(oracle.build_oracle(), OpenAICompatibleOracle)

    with pytest.raises(ValueError, match="Unknown oracle provider"):
        oracle.build_oracle("gemini")
