"""
Tool Executor: runs the tool calls a model asks for.

When the model decides to use a tool, this module handles the actual
execution. It is the boundary between "the model asked for something" and
"the registry ran it".

The executor enforces:
1. ARGUMENT PARSING: model-supplied JSON is parsed optimistically; malformed
   arguments are reported back to the model, never raised
2. VALIDATION: required parameters and primitive types are checked against
   the tool's JSON Schema before the handler runs
3. TIMEOUT PROTECTION: no tool can run forever
4. ERROR HANDLING: every failure becomes an ``{"error": true, "message": ...}``
   payload that the model sees as the tool's result
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Optional

import structlog

from switchboard.errors import ToolExecutionError, ToolNotFound
from switchboard.tools.registry import ToolRegistry
from switchboard.types import ToolCall, serialize_tool_result

logger = structlog.get_logger(__name__)


def error_payload(message: str) -> dict[str, Any]:
    return {"error": True, "message": message}


class ToolExecutionResult:
    """
    The result of executing one tool call, success or failure.

    This gets converted into the tool-role prompt entry that is sent back
    to the model, correlated with the originating call id.
    """
    def __init__(
        self,
        tool_call_id: str,
        tool_name: str,
        success: bool,
        result: Any = None,
        execution_time: float = 0.0,
    ):
        self.tool_call_id = tool_call_id
        self.tool_name = tool_name
        self.success = success
        self.result = result
        self.execution_time = execution_time

    def to_message(self) -> dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": self.tool_call_id,
            "content": serialize_tool_result(self.result),
        }


# JSON Schema type -> Python types (for lightweight validation)
_JSON_TYPE_MAP: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


def _validate_tool_input(
    schema: dict[str, Any],
    tool_input: dict[str, Any],
) -> Optional[str]:
    """
    Lightweight JSON Schema validation for tool inputs.

    Checks required fields and basic type constraints. Returns an error
    message string on failure, or None if the input is valid.
    """
    required = schema.get("required", [])
    properties = schema.get("properties", {})

    missing = [name for name in required if name not in tool_input]
    if missing:
        return f"Missing required parameter(s): {', '.join(missing)}"

    for name, value in tool_input.items():
        prop_schema = properties.get(name)
        if not prop_schema or not isinstance(prop_schema, dict):
            continue
        expected_type = prop_schema.get("type")
        if not expected_type:
            continue
        py_types = _JSON_TYPE_MAP.get(expected_type)
        if py_types is None:
            continue
        # In Python bool is a subclass of int, but JSON booleans are distinct
        if isinstance(value, bool) and expected_type in ("integer", "number"):
            return f"Parameter '{name}' expected {expected_type}, got boolean"
        if not isinstance(value, py_types):
            return f"Parameter '{name}' expected {expected_type}, got {type(value).__name__}"

    return None


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Decode model-supplied tool arguments into a keyword dict.

    Raises ValueError when the arguments are not a JSON object.
    """
    if isinstance(raw, dict):
        return raw
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise ValueError(f"Invalid tool arguments: {e}") from e
    if not isinstance(parsed, dict):
        raise ValueError(
            f"Invalid tool arguments: expected a JSON object, got {type(parsed).__name__}"
        )
    return parsed


class ToolExecutor:
    """
    Executes model tool calls through the registry with validation and timeouts.

    The executor never raises for a tool-level problem. Unknown tools,
    malformed arguments, handler crashes and timeouts all come back as a
    failed ToolExecutionResult whose result is an error payload.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        default_timeout: float = 30.0,
        max_output_length: int = 25000,
    ):
        self._registry = registry
        self._default_timeout = default_timeout
        self._max_output_length = max_output_length

        # Execution statistics
        self._total_executions = 0
        self._total_successes = 0
        self._total_failures = 0

        logger.info(
            "tool_executor.initialized",
            timeout=default_timeout,
            max_output=max_output_length,
        )

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def execute(self, call: ToolCall) -> ToolExecutionResult:
        """Execute a single tool call requested by the model."""
        start_time = time.monotonic()
        self._total_executions += 1

        try:
            arguments = parse_arguments(call.arguments)
        except ValueError as e:
            logger.warning("tool_executor.bad_arguments", tool_name=call.name, error=str(e))
            return self._failure(call, str(e), start_time)

        logger.info(
            "tool_executor.executing",
            tool_name=call.name,
            tool_call_id=call.id,
            input_keys=list(arguments.keys()),
        )

        tool_def = self._registry.get(call.name)
        if tool_def is not None:
            validation_error = _validate_tool_input(tool_def.input_schema, arguments)
            if validation_error:
                return self._failure(call, validation_error, start_time)

        timeout = (
            tool_def.timeout
            if tool_def is not None and tool_def.timeout is not None
            else self._default_timeout
        )
        try:
            result = await asyncio.wait_for(
                self._registry.execute(call.name, arguments),
                timeout=timeout,
            )
        except ToolNotFound:
            return self._failure(call, f"Unknown tool: {call.name}", start_time)
        except ToolExecutionError as e:
            return self._failure(call, str(e), start_time)
        except asyncio.TimeoutError:
            logger.warning("tool_executor.timeout", tool_name=call.name, timeout=timeout)
            return self._failure(
                call, f"Tool execution timed out after {timeout}s", start_time
            )

        if isinstance(result, str) and len(result) > self._max_output_length:
            result = (
                result[: self._max_output_length - 100]
                + f"\n\n[Output truncated: {len(result)} chars total, "
                f"showing first {self._max_output_length - 100}]"
            )

        elapsed = time.monotonic() - start_time
        reported_error = isinstance(result, dict) and result.get("error") is True
        if reported_error:
            self._total_failures += 1
        else:
            self._total_successes += 1

        logger.info(
            "tool_executor.finished",
            tool_name=call.name,
            elapsed=round(elapsed, 2),
            reported_error=reported_error,
        )
        return ToolExecutionResult(
            tool_call_id=call.id,
            tool_name=call.name,
            success=not reported_error,
            result=result,
            execution_time=elapsed,
        )

    async def execute_all(self, calls: list[ToolCall]) -> list[ToolExecutionResult]:
        """Execute calls one after another, preserving request order."""
        results = []
        for call in calls:
            results.append(await self.execute(call))
        return results

    def _failure(self, call: ToolCall, message: str, start_time: float) -> ToolExecutionResult:
        self._total_failures += 1
        return ToolExecutionResult(
            tool_call_id=call.id,
            tool_name=call.name,
            success=False,
            result=error_payload(message),
            execution_time=time.monotonic() - start_time,
        )

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_executions": self._total_executions,
            "successes": self._total_successes,
            "failures": self._total_failures,
            "success_rate": (
                self._total_successes / max(1, self._total_executions)
            ),
        }
