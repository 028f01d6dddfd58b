"""
Shared fixtures for the Switchboard test suite.

Provides a temporary SQLite database, the stores on top of it, a tool
registry with a deterministic test tool, and a scripted model backend so
individual test modules can focus on behavior rather than setup.
"""

from __future__ import annotations

import copy
from typing import Any, Optional

import pytest

from switchboard.config import RouterConfig
from switchboard.main import configure_logging
from switchboard.router import AgentRouter
from switchboard.storage.database import Database
from switchboard.storage.history import HistoryStore
from switchboard.storage.profiles import ProfileStore
from switchboard.tools.builtin import register_builtin_tools
from switchboard.tools.executor import ToolExecutor
from switchboard.tools.registry import ToolDefinition, ToolRegistry
from switchboard.types import ModelReply

configure_logging("WARNING")


# ---------------------------------------------------------------------------
# Model backend double
# ---------------------------------------------------------------------------

class ScriptedBackend:
    """
    Returns queued replies in order and records every request.

    Each queued item is a ModelReply, a string (shorthand for a text reply)
    or an exception instance to raise.
    """

    def __init__(self, *replies: Any):
        self.replies: list[Any] = list(replies)
        self.calls: list[dict[str, Any]] = []

    def queue(self, *replies: Any) -> None:
        self.replies.extend(replies)

    async def complete(
        self,
        messages: list[dict[str, Any]],
        model: str,
        temperature: float,
        max_tokens: int,
        tools: Optional[list[dict[str, Any]]] = None,
        tool_choice: Optional[str] = "auto",
    ) -> ModelReply:
        self.calls.append({
            "messages": copy.deepcopy(messages),
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "tools": tools,
            "tool_choice": tool_choice,
        })
        if not self.replies:
            return ModelReply(content="(no scripted reply)")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, str):
            return ModelReply(content=reply)
        return reply


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

def increment(x: int) -> dict[str, int]:
    return {"y": x + 1}


def increment_tool() -> ToolDefinition:
    return ToolDefinition(
        name="increment",
        description="Add one to x.",
        input_schema={
            "type": "object",
            "properties": {"x": {"type": "integer"}},
            "required": ["x"],
        },
        handler=increment,
        category="test",
    )


@pytest.fixture()
def registry() -> ToolRegistry:
    reg = ToolRegistry()
    register_builtin_tools(reg)
    reg.register(increment_tool())
    return reg


@pytest.fixture()
def executor(registry: ToolRegistry) -> ToolExecutor:
    return ToolExecutor(registry, default_timeout=5.0)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

@pytest.fixture()
def database(tmp_path):
    db = Database(tmp_path / "switchboard.db", operation_timeout=5.0)
    db.initialize()
    yield db
    db.close()


@pytest.fixture()
def profiles(database: Database) -> ProfileStore:
    return ProfileStore(database)


@pytest.fixture()
def history(database: Database) -> HistoryStore:
    return HistoryStore(database)


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

@pytest.fixture()
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture()
def make_backend():
    """The scripted backend class, for tests that queue their own replies."""
    return ScriptedBackend


@pytest.fixture()
def make_router(profiles, history, executor, backend):
    """Factory for routers sharing the test stores; built-ins off unless asked."""

    def _make(bootstrap: bool = False, **router_settings: Any) -> AgentRouter:
        config = RouterConfig(bootstrap_builtin_agents=bootstrap, **router_settings)
        return AgentRouter(
            profiles=profiles,
            history=history,
            executor=executor,
            backend=backend,
            config=config,
            default_model="test-model",
        )

    return _make
