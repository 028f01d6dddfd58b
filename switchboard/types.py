"""
Core data types shared across Switchboard subsystems.

Persisted records (agent profiles, conversation turns) are Pydantic models so
that malformed create/update requests fail before anything is written. The
model-facing containers (tool calls, model replies) are lightweight dataclasses
that cross the boundary between the agent and the model backend.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class Sentinel(str, Enum):
    """Non-reply outcomes of a dispatch."""

    NO_AGENT = "no-agent"


NO_AGENT = Sentinel.NO_AGENT


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        value = str(value).strip()
        if value and value not in seen:
            seen.add(value)
            out.append(value)
    return out


class AgentProfile(BaseModel):
    """Persisted configuration for one agent: persona, model settings, assignments."""

    agent_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    system_prompt: str = Field(min_length=1)
    model: str = "claude-sonnet-4-5-20250929"
    temperature: float = Field(0.7, ge=0.0, le=1.0)
    max_tokens: int = Field(800, gt=0)
    tools_enabled: bool = False
    enabled_tools: list[str] = Field(default_factory=list)
    assigned_senders: list[str] = Field(default_factory=list)
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    model_config = {"validate_assignment": True}

    @field_validator("agent_id", "name", "system_prompt", mode="before")
    @classmethod
    def _strip_required(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("enabled_tools", "assigned_senders", mode="before")
    @classmethod
    def _normalize_lists(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, (list, tuple, set)):
            return _dedupe(list(value))
        return value

    @property
    def offers_tools(self) -> bool:
        return self.tools_enabled and bool(self.enabled_tools)

    def is_assigned_to(self, sender_id: str) -> bool:
        return sender_id in self.assigned_senders


class ConversationTurn(BaseModel):
    """One role-tagged message in the history of an (agent, sender) pair."""

    agent_id: str
    sender_number: str
    role: Literal["user", "assistant"]
    content: str
    sender_name: str = ""
    timestamp: float = Field(default_factory=time.time)
    message_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    turn_id: Optional[int] = None

    def to_prompt_message(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


class ConversationSummary(BaseModel):
    """Aggregated activity of one sender with one agent."""

    sender_number: str
    sender_name: str = ""
    last_message: str = ""
    last_timestamp: float = 0.0
    message_count: int = 0


@dataclass
class ToolCall:
    """A model request to invoke a tool. ``arguments`` is the raw JSON text."""

    id: str
    name: str
    arguments: str = "{}"

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass
class ModelReply:
    """
    Provider-neutral completion result.

    Either ``content`` carries the answer text, or ``tool_calls`` lists the
    tools the model wants invoked before it answers.
    """

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)

    def to_message(self) -> dict[str, Any]:
        """Render as an assistant prompt entry, including any tool calls."""
        message: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        return message


def serialize_tool_result(result: Any) -> str:
    """Serialize tool output for a tool-role prompt entry. Strings are JSON-encoded too."""
    try:
        return json.dumps(result, ensure_ascii=False, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return str(result)
