from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import anthropic
import httpx
import pytest

from switchboard.agent import Agent
from switchboard.api.model import (
    ModelBackend,
    from_anthropic_response,
    to_anthropic_request,
)
from switchboard.config import ModelConfig
from switchboard.errors import ModelBackendError
from switchboard.types import AgentProfile


def _config(**overrides) -> ModelConfig:
    fields = {"api_key": "sk-test", "default_model": "default-model", "request_timeout_seconds": 5.0}
    fields.update(overrides)
    return ModelConfig(**fields)


def _response(*blocks, stop_reason="end_turn", input_tokens=10, output_tokens=5):
    return SimpleNamespace(
        content=list(blocks),
        stop_reason=stop_reason,
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def _text(text: str):
    return SimpleNamespace(type="text", text=text)


def _tool_use(call_id: str, name: str, payload: dict):
    return SimpleNamespace(type="tool_use", id=call_id, name=name, input=payload)


def _backend_with(create: AsyncMock, **config_overrides) -> ModelBackend:
    client = SimpleNamespace(messages=SimpleNamespace(create=create))
    return ModelBackend(_config(**config_overrides), client=client)


# ---------------------------------------------------------------------------
# Request translation
# ---------------------------------------------------------------------------

def test_system_messages_are_folded_into_system_param():
    system, messages = to_anthropic_request([
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "hi"},
    ])

    assert system == "Be brief."
    assert messages == [{"role": "user", "content": "hi"}]


def test_tool_round_trip_rendering():
    system, messages = to_anthropic_request([
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "compute"},
        {
            "role": "assistant",
            "content": "",
            "tool_calls": [
                {"id": "t1", "name": "increment", "arguments": '{"x":1}'},
                {"id": "t2", "name": "increment", "arguments": '{"x":2}'},
            ],
        },
        {"role": "tool", "tool_call_id": "t1", "content": '{"y":2}'},
        {"role": "tool", "tool_call_id": "t2", "content": '{"y":3}'},
    ])

    assert messages[1] == {
        "role": "assistant",
        "content": [
            {"type": "tool_use", "id": "t1", "name": "increment", "input": {"x": 1}},
            {"type": "tool_use", "id": "t2", "name": "increment", "input": {"x": 2}},
        ],
    }
    # Consecutive tool results share one user turn.
    assert messages[2] == {
        "role": "user",
        "content": [
            {"type": "tool_result", "tool_use_id": "t1", "content": '{"y":2}'},
            {"type": "tool_result", "tool_use_id": "t2", "content": '{"y":3}'},
        ],
    }
    assert len(messages) == 3


def test_leading_assistant_turns_are_dropped():
    _, messages = to_anthropic_request([
        {"role": "system", "content": "sys"},
        {"role": "assistant", "content": "orphaned reply"},
        {"role": "user", "content": "hello"},
    ])

    assert messages == [{"role": "user", "content": "hello"}]


def test_response_translation_extracts_text_and_tool_calls():
    reply = from_anthropic_response(
        _response(_text("Let me check. "), _tool_use("tu_1", "increment", {"x": 1}), stop_reason="tool_use")
    )

    assert reply.content == "Let me check. "
    assert reply.wants_tools
    assert reply.tool_calls[0].id == "tu_1"
    assert json.loads(reply.tool_calls[0].arguments) == {"x": 1}
    assert reply.stop_reason == "tool_use"


# ---------------------------------------------------------------------------
# complete()
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_complete_sends_sampling_parameters_and_tools():
    create = AsyncMock(return_value=_response(_text("hello there")))
    backend = _backend_with(create)
    tools = [{"name": "increment", "description": "d", "input_schema": {"type": "object"}}]

    reply = await backend.complete(
        [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}],
        model="claude-test",
        temperature=0.3,
        max_tokens=123,
        tools=tools,
        tool_choice="auto",
    )

    assert reply.content == "hello there"
    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "claude-test"
    assert kwargs["temperature"] == 0.3
    assert kwargs["max_tokens"] == 123
    assert kwargs["system"] == "sys"
    assert kwargs["tools"] == tools
    assert kwargs["tool_choice"] == {"type": "auto"}
    assert backend.telemetry["total_input_tokens"] == 10


@pytest.mark.asyncio
async def test_complete_without_tools_omits_tool_fields():
    create = AsyncMock(return_value=_response(_text("ok")))
    backend = _backend_with(create)

    await backend.complete(
        [{"role": "user", "content": "hi"}], model="", temperature=0.7, max_tokens=10,
        tools=None, tool_choice=None,
    )

    kwargs = create.await_args.kwargs
    assert "tools" not in kwargs
    assert "tool_choice" not in kwargs
    assert "system" not in kwargs
    assert kwargs["model"] == "default-model"


@pytest.mark.asyncio
async def test_connection_error_becomes_backend_error():
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    create = AsyncMock(
        side_effect=anthropic.APIConnectionError(message="Connection error.", request=request)
    )
    backend = _backend_with(create)

    with pytest.raises(ModelBackendError):
        await backend.complete([{"role": "user", "content": "hi"}], "m", 0.5, 10)

    assert backend.telemetry["total_failures"] == 1


@pytest.mark.asyncio
async def test_timeout_becomes_backend_error():
    async def _hang(**_kwargs):
        await asyncio.sleep(5)

    backend = _backend_with(AsyncMock(side_effect=_hang), request_timeout_seconds=1.0)
    backend._request_timeout_seconds = 0.05

    with pytest.raises(ModelBackendError, match="timed out"):
        await backend.complete([{"role": "user", "content": "hi"}], "m", 0.5, 10)


def test_client_is_created_lazily_with_config():
    with patch("switchboard.api.model.anthropic.AsyncAnthropic") as factory:
        backend = ModelBackend(_config(base_url="https://proxy.example", max_retries=2))
        factory.assert_not_called()

        client = backend.client

    factory.assert_called_once_with(
        max_retries=2, api_key="sk-test", base_url="https://proxy.example"
    )
    assert client is factory.return_value


@pytest.mark.asyncio
async def test_tool_none_choice_keeps_tool_definitions():
    create = AsyncMock(return_value=_response(_text("done")))
    backend = _backend_with(create)
    tools = [{"name": "increment", "description": "d", "input_schema": {"type": "object"}}]

    await backend.complete(
        [{"role": "user", "content": "hi"}], "m", 0.5, 10, tools=tools, tool_choice="none"
    )

    kwargs = create.await_args.kwargs
    assert kwargs["tools"] == tools
    assert kwargs["tool_choice"] == {"type": "none"}


def _has_block(messages: list[dict], block_type: str) -> bool:
    return any(
        isinstance(message["content"], list)
        and any(block.get("type") == block_type for block in message["content"])
        for message in messages
    )


@pytest.mark.asyncio
async def test_agent_tool_round_resends_tool_definitions(profiles, history, executor):
    create = AsyncMock(side_effect=[
        _response(_tool_use("tu_1", "increment", {"x": 1}), stop_reason="tool_use"),
        _response(_text("It is 2.")),
    ])
    backend = _backend_with(create)
    profile = await profiles.create(AgentProfile(
        agent_id="calc",
        name="Calc",
        system_prompt="You add.",
        tools_enabled=True,
        enabled_tools=["increment"],
    ))
    agent = Agent(profile, profiles, history, executor, backend)

    answer = await agent.handle_message("1+1?", "+1")

    assert answer == "It is 2."
    assert create.await_count == 2
    follow_up = create.await_args_list[1].kwargs
    assert _has_block(follow_up["messages"], "tool_use")
    assert _has_block(follow_up["messages"], "tool_result")
    assert [t["name"] for t in follow_up["tools"]] == ["increment"]
    assert follow_up["tool_choice"] == {"type": "none"}
    assert follow_up["messages"][-1]["content"] == [
        {"type": "tool_result", "tool_use_id": "tu_1", "content": '{"y":2}'}
    ]
