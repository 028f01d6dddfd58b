"""
Model Backend: the interface through which every agent reply is generated.

This module wraps the Anthropic SDK. Agents talk to it in a provider-neutral
message format:

    {"role": "system", "content": "..."}
    {"role": "user", "content": "..."}
    {"role": "assistant", "content": "...", "tool_calls": [{"id", "name", "arguments"}]}
    {"role": "tool", "tool_call_id": "...", "content": "..."}

and the backend translates that into a Messages API request (system prompt
folded into ``system``, tool calls rendered as ``tool_use`` blocks, tool
results merged into a user turn of ``tool_result`` blocks). The response is
translated back into a ModelReply.

The backend keeps no conversation state. It receives context and returns a
reply; state lives in the agents and stores above it.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Optional, Protocol

import anthropic
import structlog

from switchboard.config import ModelConfig
from switchboard.errors import ModelBackendError
from switchboard.types import ModelReply, ToolCall

logger = structlog.get_logger(__name__)


class ChatBackend(Protocol):
    """What an Agent needs from a model provider."""

    async def complete(
        self,
        messages: list[dict[str, Any]],
        model: str,
        temperature: float,
        max_tokens: int,
        tools: Optional[list[dict[str, Any]]] = None,
        tool_choice: Optional[str] = "auto",
    ) -> ModelReply: ...


def _decode_arguments(arguments: Any) -> dict[str, Any]:
    if isinstance(arguments, dict):
        return arguments
    if not arguments:
        return {}
    try:
        decoded = json.loads(arguments)
    except (TypeError, json.JSONDecodeError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


def to_anthropic_request(
    messages: list[dict[str, Any]],
) -> tuple[str, list[dict[str, Any]]]:
    """
    Split neutral prompt messages into (system, messages) for the Messages API.

    Consecutive tool results are merged into a single user turn, and any
    assistant turns before the first user turn are dropped because the API
    requires the conversation to open with the user.
    """
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []

    for message in messages:
        role = message.get("role")
        content = message.get("content") or ""

        if role == "system":
            if content:
                system_parts.append(content)
            continue

        if role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": message.get("tool_call_id", ""),
                "content": content,
            }
            previous = converted[-1] if converted else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and previous["content"]
                and previous["content"][-1].get("type") == "tool_result"
            ):
                previous["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
            continue

        if role == "assistant":
            if not converted:
                continue
            tool_calls = message.get("tool_calls") or []
            if tool_calls:
                blocks: list[dict[str, Any]] = []
                if content:
                    blocks.append({"type": "text", "text": content})
                for call in tool_calls:
                    blocks.append({
                        "type": "tool_use",
                        "id": call["id"],
                        "name": call["name"],
                        "input": _decode_arguments(call.get("arguments")),
                    })
                converted.append({"role": "assistant", "content": blocks})
            else:
                converted.append({"role": "assistant", "content": content})
            continue

        if role == "user":
            converted.append({"role": "user", "content": content})
            continue

        logger.warning("model_backend.unknown_role_skipped", role=role)

    return "\n\n".join(system_parts), converted


def from_anthropic_response(response: Any) -> ModelReply:
    """Translate a Messages API response into a ModelReply."""
    texts: list[str] = []
    calls: list[ToolCall] = []
    for block in response.content:
        if block.type == "text":
            texts.append(block.text)
        elif block.type == "tool_use":
            calls.append(
                ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=json.dumps(block.input or {}, ensure_ascii=False),
                )
            )
    usage = getattr(response, "usage", None)
    return ModelReply(
        content="".join(texts),
        tool_calls=calls,
        stop_reason=getattr(response, "stop_reason", None),
        input_tokens=getattr(usage, "input_tokens", 0) or 0,
        output_tokens=getattr(usage, "output_tokens", 0) or 0,
    )


class ModelBackend:
    """
    Anthropic-backed chat completion with a neutral request/reply shape.

    Every call is bounded by ``request_timeout_seconds``. Transport errors,
    API errors and timeouts are raised as ModelBackendError so callers only
    ever handle one failure type.
    """

    def __init__(self, config: ModelConfig, client: Optional[Any] = None):
        self._config = config
        self._client = client
        self._request_timeout_seconds = float(config.request_timeout_seconds)

        # Telemetry
        self._total_calls = 0
        self._total_failures = 0
        self._total_input_tokens = 0
        self._total_output_tokens = 0
        self._last_call_time: Optional[float] = None

        logger.info(
            "model_backend.initialized",
            default_model=config.default_model,
            base_url=config.base_url,
            timeout=self._request_timeout_seconds,
        )

    @property
    def client(self) -> Any:
        """The SDK client, created on first use."""
        if self._client is None:
            kwargs: dict[str, Any] = {"max_retries": self._config.max_retries}
            if self._config.api_key:
                kwargs["api_key"] = self._config.api_key
            if self._config.base_url:
                kwargs["base_url"] = self._config.base_url
            self._client = anthropic.AsyncAnthropic(**kwargs)
        return self._client

    async def complete(
        self,
        messages: list[dict[str, Any]],
        model: str,
        temperature: float,
        max_tokens: int,
        tools: Optional[list[dict[str, Any]]] = None,
        tool_choice: Optional[str] = "auto",
    ) -> ModelReply:
        """
        Request one completion.

        Args:
            messages: Neutral prompt messages, system entry first.
            model: Model identifier; falls back to the configured default.
            temperature: Sampling temperature in [0, 1].
            max_tokens: Reply token cap.
            tools: Schema descriptors ({name, description, input_schema}).
            tool_choice: "auto", "any", "none" or a specific tool name.

        Returns:
            The reply, carrying either text or the tool calls requested.
        """
        start_time = time.monotonic()
        system, converted = to_anthropic_request(messages)

        kwargs: dict[str, Any] = {
            "model": model or self._config.default_model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": converted,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools
            if tool_choice in ("auto", "any", "none"):
                kwargs["tool_choice"] = {"type": tool_choice}
            elif tool_choice:
                kwargs["tool_choice"] = {"type": "tool", "name": tool_choice}

        self._total_calls += 1
        try:
            response = await asyncio.wait_for(
                self.client.messages.create(**kwargs),
                timeout=self._request_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            self._total_failures += 1
            logger.error("model_backend.timeout", timeout=self._request_timeout_seconds)
            raise ModelBackendError(
                f"Model request timed out after {self._request_timeout_seconds}s"
            ) from e
        except anthropic.APIConnectionError as e:
            self._total_failures += 1
            logger.error("model_backend.connection_error", error=str(e))
            raise ModelBackendError(f"Connection error: {e}") from e
        except anthropic.RateLimitError as e:
            self._total_failures += 1
            logger.warning("model_backend.rate_limited", error=str(e))
            raise ModelBackendError(f"Rate limited: {e}") from e
        except anthropic.APIError as e:
            self._total_failures += 1
            logger.error(
                "model_backend.api_error",
                error=str(e),
                status=getattr(e, "status_code", None),
            )
            raise ModelBackendError(str(e)) from e

        reply = from_anthropic_response(response)

        elapsed = time.monotonic() - start_time
        self._total_input_tokens += reply.input_tokens
        self._total_output_tokens += reply.output_tokens
        self._last_call_time = elapsed

        logger.debug(
            "model_backend.completion",
            model=kwargs["model"],
            input_tokens=reply.input_tokens,
            output_tokens=reply.output_tokens,
            elapsed_seconds=round(elapsed, 2),
            stop_reason=reply.stop_reason,
            tool_calls=len(reply.tool_calls),
        )
        return reply

    @property
    def telemetry(self) -> dict[str, Any]:
        """Return current telemetry snapshot."""
        return {
            "total_calls": self._total_calls,
            "total_failures": self._total_failures,
            "total_input_tokens": self._total_input_tokens,
            "total_output_tokens": self._total_output_tokens,
            "last_call_seconds": self._last_call_time if self._last_call_time is not None else 0.0,
        }
