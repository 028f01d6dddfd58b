"""
Tool Registry: the catalog of callables agents may offer to the model.

Every tool is registered here with its JSON Schema definition, description,
and execution handler. The registry serves two purposes:

1. DISCOVERY: When building the tools array for a model call, the registry
   provides the definitions of the tools an agent has enabled, in the format
   the Messages API expects.

2. DISPATCH: When the model requests a tool call, the registry maps the tool
   name to its handler and invokes it.

Tools are registered once at startup and treated as read-only afterwards, so
concurrent agents can read the registry without coordination.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import structlog

from switchboard.errors import ToolExecutionError, ToolNotFound

logger = structlog.get_logger(__name__)


@dataclass
class ToolDefinition:
    """
    A registered tool with its schema, description, and handler.

    The JSON schema is exactly what gets sent to the model in the 'tools'
    array. The handler is the Python callable (sync or async) that runs
    when the model decides to use this tool; it receives the arguments as
    keyword parameters.
    """
    name: str
    description: str
    input_schema: dict[str, Any]          # JSON Schema for tool parameters
    handler: Optional[Callable] = None    # The function to call
    category: str = "general"             # For organizing in listings/logs
    enabled: bool = True                  # Can be disabled without removal
    is_builtin: bool = False
    timeout: Optional[float] = None       # Per-tool timeout in seconds (None = use default)

    def to_api_format(self) -> dict[str, Any]:
        """
        Convert to the schema descriptor advertised to the model:
        {
            "name": "tool_name",
            "description": "What this tool does and when to use it",
            "input_schema": { JSON Schema }
        }
        """
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


class ToolRegistry:
    """
    Central registry for all tools available to agents.

    Registration is last-write-wins: registering a second tool under an
    existing name replaces the first and logs a warning.
    """

    def __init__(self):
        self._tools: dict[str, ToolDefinition] = {}
        logger.info("tool_registry.initialized")

    def register(self, tool: ToolDefinition) -> None:
        existing = self._tools.get(tool.name)
        if existing is not None:
            logger.warning(
                "tool_registry.name_collision",
                name=tool.name,
                existing_category=existing.category,
                new_category=tool.category,
            )

        self._tools[tool.name] = tool
        logger.info("tool_registry.registered", name=tool.name, category=tool.category)

    def unregister(self, name: str) -> bool:
        """Remove a tool from the registry."""
        if name in self._tools:
            del self._tools[name]
            logger.info("tool_registry.unregistered", name=name)
            return True
        return False

    def get(self, name: str) -> Optional[ToolDefinition]:
        """Look up a tool by name."""
        return self._tools.get(name)

    def list_definitions(self) -> list[dict[str, Any]]:
        """Schema descriptors for every enabled tool, in registration order."""
        return [tool.to_api_format() for tool in self._tools.values() if tool.enabled]

    def get_api_tools(self, names: Iterable[str]) -> list[dict[str, Any]]:
        """
        Schema descriptors for the given tool names, in the order given.

        Names that are unknown or disabled are dropped without error; an
        agent profile may reference tools that are not installed in this
        process.
        """
        definitions = {d["name"]: d for d in self.list_definitions()}
        tools = []
        for name in names:
            definition = definitions.get(name)
            if definition is None:
                logger.debug("tool_registry.unresolved_tool_skipped", name=name)
                continue
            tools.append(definition)
        return tools

    async def execute(self, name: str, arguments: dict[str, Any]) -> Any:
        """
        Invoke a tool and return its result verbatim.

        Raises ToolNotFound when no tool is registered under ``name`` and
        ToolExecutionError when the tool cannot be invoked at all. Exceptions
        raised by the handler itself are converted into a structured error
        result instead of propagating.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFound(name)
        if not tool.enabled:
            raise ToolExecutionError(f"Tool '{name}' is currently disabled.")
        if tool.handler is None:
            raise ToolExecutionError(f"No handler registered for tool: {name}")

        try:
            if inspect.iscoroutinefunction(tool.handler):
                return await tool.handler(**arguments)
            result = await asyncio.to_thread(tool.handler, **arguments)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            logger.error(
                "tool_registry.handler_failed",
                name=name,
                error=f"{type(e).__name__}: {e}",
            )
            return {"error": True, "message": str(e) or type(e).__name__}

    def list_tools(self) -> list[dict[str, Any]]:
        """List all registered tools with metadata."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "category": tool.category,
                "enabled": tool.enabled,
                "builtin": tool.is_builtin,
            }
            for tool in self._tools.values()
        ]

    @property
    def count(self) -> int:
        return len(self._tools)
