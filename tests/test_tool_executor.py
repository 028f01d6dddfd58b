"""
Tests for switchboard.tools.executor: argument parsing, validation,
timeouts and the tool-role messages produced for the model.
"""

from __future__ import annotations

import asyncio

import pytest

from switchboard.tools.executor import (
    ToolExecutionResult,
    ToolExecutor,
    _validate_tool_input,
    parse_arguments,
)
from switchboard.tools.registry import ToolDefinition, ToolRegistry
from switchboard.types import ToolCall


# ---------------------------------------------------------------------------
# parse_arguments
# ---------------------------------------------------------------------------

class TestParseArguments:
    def test_json_object(self) -> None:
        assert parse_arguments('{"x": 1}') == {"x": 1}

    def test_empty_means_no_arguments(self) -> None:
        assert parse_arguments("") == {}
        assert parse_arguments(None) == {}
        assert parse_arguments("   ") == {}

    def test_dict_passes_through(self) -> None:
        args = {"x": 1}
        assert parse_arguments(args) is args

    def test_malformed_json(self) -> None:
        with pytest.raises(ValueError, match="Invalid tool arguments"):
            parse_arguments("{not json")

    def test_non_object_json(self) -> None:
        with pytest.raises(ValueError, match="expected a JSON object"):
            parse_arguments("[1, 2]")


# ---------------------------------------------------------------------------
# Schema validation
# ---------------------------------------------------------------------------

class TestValidateToolInput:
    schema = {
        "type": "object",
        "properties": {"x": {"type": "integer"}, "label": {"type": "string"}},
        "required": ["x"],
    }

    def test_valid(self) -> None:
        assert _validate_tool_input(self.schema, {"x": 1, "label": "a"}) is None

    def test_missing_required(self) -> None:
        assert "Missing required" in _validate_tool_input(self.schema, {"label": "a"})

    def test_wrong_type(self) -> None:
        assert "expected integer" in _validate_tool_input(self.schema, {"x": "one"})

    def test_boolean_is_not_integer(self) -> None:
        assert "got boolean" in _validate_tool_input(self.schema, {"x": True})


# ---------------------------------------------------------------------------
# ToolExecutor
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_successful_call_produces_compact_json_tool_message(executor):
    result = await executor.execute(ToolCall(id="call_9", name="increment", arguments='{"x":1}'))

    assert result.success is True
    assert result.result == {"y": 2}
    assert result.to_message() == {"role": "tool", "tool_call_id": "call_9", "content": '{"y":2}'}


@pytest.mark.asyncio
async def test_unknown_tool_is_reported_not_raised(executor):
    result = await executor.execute(ToolCall(id="c", name="ghost"))

    assert result.success is False
    assert result.result == {"error": True, "message": "Unknown tool: ghost"}


@pytest.mark.asyncio
async def test_malformed_arguments_are_reported(executor):
    result = await executor.execute(ToolCall(id="c", name="increment", arguments="{oops"))

    assert result.success is False
    assert result.result["error"] is True
    assert "Invalid tool arguments" in result.result["message"]


@pytest.mark.asyncio
async def test_schema_violation_is_reported(executor):
    result = await executor.execute(ToolCall(id="c", name="increment", arguments="{}"))

    assert result.success is False
    assert "Missing required parameter" in result.result["message"]


@pytest.mark.asyncio
async def test_timeout_is_reported():
    async def sleepy() -> str:
        await asyncio.sleep(5)
        return "late"

    registry = ToolRegistry()
    registry.register(
        ToolDefinition(
            name="sleepy",
            description="never finishes in time",
            input_schema={"type": "object", "properties": {}},
            handler=sleepy,
            timeout=0.05,
        )
    )
    result = await ToolExecutor(registry).execute(ToolCall(id="c", name="sleepy"))

    assert result.success is False
    assert "timed out" in result.result["message"]


@pytest.mark.asyncio
async def test_long_string_output_is_truncated():
    registry = ToolRegistry()
    registry.register(
        ToolDefinition(
            name="chatty",
            description="returns a lot",
            input_schema={"type": "object", "properties": {}},
            handler=lambda: "x" * 5000,
        )
    )
    result = await ToolExecutor(registry, max_output_length=1000).execute(
        ToolCall(id="c", name="chatty")
    )

    assert result.success is True
    assert len(result.result) < 1100
    assert "[Output truncated" in result.result


@pytest.mark.asyncio
async def test_tool_reported_error_counts_as_failure(executor):
    def fails() -> None:
        raise RuntimeError("nope")

    executor.registry.register(
        ToolDefinition(
            name="fails",
            description="raises",
            input_schema={"type": "object", "properties": {}},
            handler=fails,
        )
    )
    result = await executor.execute(ToolCall(id="c", name="fails"))

    assert result.success is False
    assert result.result == {"error": True, "message": "nope"}
    assert executor.stats["failures"] == 1


@pytest.mark.asyncio
async def test_execute_all_preserves_order(executor):
    results = await executor.execute_all([
        ToolCall(id="a", name="increment", arguments='{"x": 1}'),
        ToolCall(id="b", name="increment", arguments='{"x": 10}'),
    ])

    assert [r.tool_call_id for r in results] == ["a", "b"]
    assert [r.result for r in results] == [{"y": 2}, {"y": 11}]


def test_string_result_is_json_encoded():
    result = ToolExecutionResult("c", "t", True, result="plain text")
    assert result.to_message()["content"] == '"plain text"'
