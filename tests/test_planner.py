import json
from types import SimpleNamespace

import pytest
from conftest import make_element

from voyager.config import AgentConfig
from voyager.errors import OracleError
from voyager.memory import Memory
from voyager.models import DecisionKind, StepResult
from voyager.planner import Planner, parse_decision


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions: FakeCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def test_parse_decision():
    out = parse_decision(json.dumps({"action": "Click", "args": [3], "reasoning": "the search button"}))

    assert out.kind is DecisionKind.CLICK
    assert out.args == [3]
    assert out.reasoning == "the search button"
    assert out.raw_action == "Click"


@pytest.mark.parametrize(
    "raw,kind",
    [("click", DecisionKind.CLICK), ("go_back", DecisionKind.GO_BACK), ("Answer", DecisionKind.ANSWER),
     ("RETRY", DecisionKind.RETRY), ("jump", None)],
)
def test_parse_decision_action_names(raw, kind):
    assert parse_decision(json.dumps({"action": raw})).kind is kind


def test_parse_decision_wraps_scalar_args():
    assert parse_decision('{"action": "Navigate", "args": "https://example.org"}').args == ["https://example.org"]


@pytest.mark.parametrize("raw", ["not json", "", None, "[1, 2]"])
def test_parse_decision_malformed(raw):
    assert parse_decision(raw).kind is None


@pytest.mark.asyncio
async def test_decide_sends_prompt_and_image():
    completions = FakeCompletions(json.dumps({"action": "Type", "args": [0, "weather"], "reasoning": "search box"}))
    planner = Planner(fake_client(completions), "gpt-4o")
    memory = Memory()
    memory.record(1, StepResult(success=True, message="Clicked element 0"))

    out = await planner.decide("QUJD", [make_element(0, tag="input", text="Search")], "find the weather", memory.format_history())

    assert out.kind is DecisionKind.TYPE
    assert out.args == [0, "weather"]
    request = completions.requests[0]
    assert request["model"] == "gpt-4o"
    assert request["response_format"] == {"type": "json_object"}
    text, image = request["messages"][1]["content"]
    assert "User Request: find the weather" in text["text"]
    assert '0 (<input />): "Search"' in text["text"]
    assert "1. Clicked element 0" in text["text"]
    assert image["image_url"]["url"] == "data:image/png;base64,QUJD"


@pytest.mark.asyncio
async def test_decide_wraps_api_errors():
    planner = Planner(fake_client(FakeCompletions(error=RuntimeError("timeout"))), "gpt-4o")

    with pytest.raises(OracleError, match="timeout"):
        await planner.decide("", [make_element(0)], "q", "")


@pytest.mark.asyncio
async def test_decide_without_key():
    planner = Planner.from_config(AgentConfig(openai_api_key=None))

    assert not planner.ready
    with pytest.raises(OracleError):
        await planner.decide("", [make_element(0)], "q", "")


def test_set_api_key():
    planner = Planner(None, "gpt-4o")

    planner.set_api_key("sk-test")

    assert planner.ready


def test_memory_history_format():
    memory = Memory()
    assert memory.format_history() == ""

    memory.record(1, StepResult(success=True, message="Clicked element 2"))
    memory.record(2, StepResult(success=False, message="Action failed: Scrolled down"))

    assert memory.format_history() == (
        "Previous action observations:\n\n1. Clicked element 2\n2. Action failed: Scrolled down (failed)"
    )
    memory.reset()
    assert memory.format_history() == ""
