"""
Tests for the model interface: the shared round-trip loop and the back-end adapters.

Run with:
$ pytest -q tests/test_model_interface.py
"""

import json
from types import SimpleNamespace

import pytest
from fakes import (
    FakeModel,
    make_tool,
    reply,
    tool_call,
)

from agentic_chatbot.agent.model_interface import (
    AnthropicModelClient,
    ModelConfigError,
    OpenAIModelClient,
    load_model,
    wire_name,
)
from agentic_chatbot.common import to_text
from agentic_chatbot.config import settings

QUERY = [{"role": "user", "content": "find the users"}]
DOCS = {"documents": [{"_id": "1", "name": "Ada"}]}


# ---------------------------------------------------------------------------
# Round-trip loop
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_tool_result_is_fed_back_to_the_model() -> None:
    catalog = {"find": make_tool("find", result=DOCS)}
    model = FakeModel([reply("", tool_call("find", {"filter": {}})), reply("Found Ada.")])

    result = await model.generate(QUERY, catalog, max_roundtrips=3)

    assert result.text == "Found Ada."
    assert result.steps == 2
    assert [call.name for call in result.tool_calls] == ["find"]
    assert result.tool_results[0].result == DOCS
    assert not result.tool_results[0].is_error
    assert catalog["find"].invoke.invocations == [{"filter": {}}]

    assert model.calls[0]["tools"] == ["find"]
    tool_message = model.calls[1]["messages"][-1]
    assert tool_message["role"] == "tool"
    assert tool_message["tool_call_id"] == "call-1"
    assert tool_message["content"] == to_text(DOCS)
    assert model.calls[1]["messages"][-2]["tool_calls"][0].name == "find"


@pytest.mark.asyncio
async def test_namespaced_tools_travel_under_wire_names() -> None:
    catalog = {"mongodb.find": make_tool("mongodb.find", result=DOCS)}
    model = FakeModel([reply("", tool_call("mongodb__find")), reply("Done, found Ada in users.")])

    result = await model.generate(QUERY, catalog, max_roundtrips=1)

    assert model.calls[0]["tools"] == ["mongodb__find"]
    assert result.tool_calls[0].name == "mongodb.find"
    assert result.tool_results[0].name == "mongodb.find"


def test_wire_name_alphabet() -> None:
    assert wire_name("list-databases") == "list-databases"
    assert wire_name("mongodb.find") == "mongodb__find"
    assert len(wire_name("x" * 100)) == 64


@pytest.mark.asyncio
async def test_tool_failure_becomes_error_result() -> None:
    catalog = {"find": make_tool("find", error=RuntimeError("boom"))}
    model = FakeModel([reply("", tool_call("find")), reply("The lookup failed.")])

    result = await model.generate(QUERY, catalog, max_roundtrips=3)

    record = result.tool_results[0]
    assert record.is_error
    assert "boom" in record.result["error"]
    assert result.text == "The lookup failed."
    assert "boom" in model.calls[1]["messages"][-1]["content"]


@pytest.mark.asyncio
async def test_unknown_tool_becomes_error_result() -> None:
    model = FakeModel([reply("", tool_call("imaginary")), reply("Sorry.")])

    result = await model.generate(QUERY, {"find": make_tool("find")}, max_roundtrips=3)

    assert result.tool_results[0].is_error
    assert "not available" in result.tool_results[0].result["error"]


@pytest.mark.asyncio
async def test_last_step_after_roundtrip_cap_has_no_tools() -> None:
    catalog = {"find": make_tool("find", result=DOCS)}
    model = FakeModel([reply("", tool_call("find", call_id=f"c{i}")) for i in range(5)])

    result = await model.generate(QUERY, catalog, max_roundtrips=1)

    assert len(model.calls) == 2
    assert model.calls[0]["tools"] == ["find"]
    assert model.calls[1]["tools"] == []
    assert model.calls[1]["declared"] == ["find"]
    assert len(result.tool_calls) == 1
    assert result.steps == 2


@pytest.mark.asyncio
async def test_zero_roundtrips_offers_no_tools() -> None:
    model = FakeModel([reply("plain answer")])

    result = await model.generate(QUERY, {"find": make_tool("find")}, max_roundtrips=0)

    assert model.calls[0]["tools"] == []
    assert result.text == "plain answer"
    assert result.tool_calls == []


# ---------------------------------------------------------------------------
# Registry and credentials
# ---------------------------------------------------------------------------
def test_load_model_by_name() -> None:
    assert isinstance(load_model("openai"), OpenAIModelClient)
    assert isinstance(load_model("Anthropic"), AnthropicModelClient)


def test_load_model_unknown_backend() -> None:
    with pytest.raises(ModelConfigError, match="not registered"):
        load_model("does-not-exist")


def test_missing_credentials(monkeypatch) -> None:
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", "")

    with pytest.raises(ModelConfigError, match="OPENAI_API_KEY"):
        OpenAIModelClient().check_credentials()
    with pytest.raises(ModelConfigError, match="ANTHROPIC_API_KEY"):
        AnthropicModelClient().check_credentials()


# ---------------------------------------------------------------------------
# Back-end adapters
# ---------------------------------------------------------------------------
class _Recorder:
    """Async ``create`` stand-in that records its keyword arguments."""

    def __init__(self, response):
        self.response = response
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        return self.response


@pytest.mark.asyncio
async def test_openai_completion_maps_tools_and_calls() -> None:
    message = SimpleNamespace(
        content=None,
        tool_calls=[
            SimpleNamespace(
                id="c1", function=SimpleNamespace(name="find", arguments='{"filter": {"a": 1}}')
            )
        ],
    )
    completions = _Recorder(SimpleNamespace(choices=[SimpleNamespace(message=message)]))
    client = OpenAIModelClient(model="gpt-test", client=SimpleNamespace(chat=SimpleNamespace(completions=completions)))
    transcript = [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "", "tool_calls": [tool_call("find", {"x": 1}, "c0")]},
        {"role": "tool", "tool_call_id": "c0", "name": "find", "content": "[]"},
    ]
    schema = {"description": "Find documents", "parameters": {"type": "object", "properties": {}}}

    completion = await client._complete(transcript, {"find": schema})  # pylint: disable=protected-access

    assert completion.text == ""
    assert completion.tool_calls[0].args == {"filter": {"a": 1}}
    sent = completions.kwargs
    assert sent["model"] == "gpt-test"
    assert sent["tools"][0]["function"]["name"] == "find"
    assert sent["messages"][2]["tool_calls"][0]["function"]["arguments"] == json.dumps({"x": 1})
    assert sent["messages"][3] == {"role": "tool", "tool_call_id": "c0", "content": "[]"}


def test_anthropic_transcript_folds_tool_results() -> None:
    transcript = [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "hi"},
        {
            "role": "assistant",
            "content": "",
            "tool_calls": [tool_call("find", {}, "t1"), tool_call("count", {}, "t2")],
        },
        {"role": "tool", "tool_call_id": "t1", "name": "find", "content": "[]"},
        {"role": "tool", "tool_call_id": "t2", "name": "count", "content": "0"},
    ]

    system, messages = AnthropicModelClient._to_anthropic(transcript)  # pylint: disable=protected-access

    assert system == "sys"
    assert [message["role"] for message in messages] == ["user", "assistant", "user"]
    assert [block["type"] for block in messages[1]["content"]] == ["tool_use", "tool_use"]
    assert [block["tool_use_id"] for block in messages[2]["content"]] == ["t1", "t2"]


@pytest.mark.asyncio
async def test_anthropic_completion_collects_text_and_tool_use() -> None:
    response = SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text="Let me look."),
            SimpleNamespace(type="tool_use", id="t1", name="find", input={"filter": {}}),
        ]
    )
    messages_api = _Recorder(response)
    client = AnthropicModelClient(model="claude-test", client=SimpleNamespace(messages=messages_api))

    completion = await client._complete(  # pylint: disable=protected-access
        [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}], {}
    )

    assert completion.text == "Let me look."
    assert completion.tool_calls[0].name == "find"
    assert messages_api.kwargs["system"] == "sys"
    assert "tools" not in messages_api.kwargs


class _ScriptedCreate:
    """Async ``create`` stand-in that replays responses and records every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        return self.responses.pop(0)


@pytest.mark.asyncio
async def test_anthropic_text_only_step_still_declares_tools() -> None:
    messages_api = _ScriptedCreate(
        SimpleNamespace(content=[SimpleNamespace(type="tool_use", id="t1", name="find", input={})]),
        SimpleNamespace(content=[SimpleNamespace(type="text", text="One user named Ada.")]),
    )
    client = AnthropicModelClient(model="claude-test", client=SimpleNamespace(messages=messages_api))

    result = await client.generate(QUERY, {"find": make_tool("find", result=DOCS)}, max_roundtrips=1)

    assert result.text == "One user named Ada."
    first, last = messages_api.requests
    assert "tool_choice" not in first
    assert [tool["name"] for tool in last["tools"]] == ["find"]
    assert last["tool_choice"] == {"type": "none"}
    blocks = [block["type"] for message in last["messages"] for block in message["content"]]
    assert blocks == ["text", "tool_use", "tool_result"]


@pytest.mark.asyncio
async def test_openai_text_only_step_disables_tool_choice() -> None:
    def _message(content=None, calls=None):
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content, tool_calls=calls))])

    completions = _ScriptedCreate(
        _message(calls=[SimpleNamespace(id="c1", function=SimpleNamespace(name="find", arguments="{}"))]),
        _message(content="One user named Ada."),
    )
    client = OpenAIModelClient(model="gpt-test", client=SimpleNamespace(chat=SimpleNamespace(completions=completions)))

    result = await client.generate(QUERY, {"find": make_tool("find", result=DOCS)}, max_roundtrips=1)

    assert result.text == "One user named Ada."
    first, last = completions.requests
    assert "tool_choice" not in first
    assert last["tool_choice"] == "none"
    assert last["tools"][0]["function"]["name"] == "find"
