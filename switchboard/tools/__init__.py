"""Tool system: registry, executor and built-in tools."""
from switchboard.tools.executor import ToolExecutionResult, ToolExecutor
from switchboard.tools.registry import ToolDefinition, ToolRegistry

__all__ = ["ToolRegistry", "ToolDefinition", "ToolExecutor", "ToolExecutionResult"]
