"""
Switchboard wiring: logging setup and construction of the running system.

``build_router()`` assembles every component from a SwitchboardConfig:

    Database -> ProfileStore, HistoryStore
    ToolRegistry (+ built-in tools) -> ToolExecutor
    ModelBackend
    -> AgentRouter

The caller still has to ``await router.initialize()`` before dispatching, and
``await router.shutdown()`` when done.
"""

from __future__ import annotations

import logging
from typing import Optional

import structlog

from switchboard.api.model import ChatBackend, ModelBackend
from switchboard.config import SwitchboardConfig
from switchboard.router import AgentRouter
from switchboard.storage.database import Database
from switchboard.storage.history import HistoryStore
from switchboard.storage.profiles import ProfileStore
from switchboard.tools.builtin import register_builtin_tools
from switchboard.tools.executor import ToolExecutor
from switchboard.tools.registry import ToolRegistry

_SENSITIVE_KEYS = ("content", "message", "reply", "system_prompt")
_MAX_DISPLAY_LEN = 80


def _truncate_sensitive_fields(logger, method_name, event_dict):
    """
    Structlog processor that keeps chat text out of the logs.

    Message and reply bodies are cut to a short prefix so conversations never
    land in log files verbatim.
    """
    for key in _SENSITIVE_KEYS:
        val = event_dict.get(key)
        if isinstance(val, str) and len(val) > _MAX_DISPLAY_LEN:
            event_dict[key] = val[:_MAX_DISPLAY_LEN] + "... [truncated]"
    return event_dict


_logging_configured = False


def configure_logging(level: str = "WARNING") -> None:
    """Configure structlog and standard-library logging for Switchboard entry points.

    Safe to call more than once; subsequent calls are no-ops.
    """
    global _logging_configured  # noqa: PLW0603
    if _logging_configured:
        return
    _logging_configured = True

    numeric_level = getattr(logging, str(level).upper(), logging.WARNING)
    if not isinstance(numeric_level, int):
        numeric_level = logging.WARNING
    logging.basicConfig(format="%(message)s", level=numeric_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            _truncate_sensitive_fields,
            structlog.dev.ConsoleRenderer(colors=True),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


def build_tool_registry() -> ToolRegistry:
    registry = ToolRegistry()
    register_builtin_tools(registry)
    return registry


def build_router(
    config: Optional[SwitchboardConfig] = None,
    backend: Optional[ChatBackend] = None,
    registry: Optional[ToolRegistry] = None,
) -> AgentRouter:
    """Wire a router and its collaborators from ``config``.

    ``backend`` and ``registry`` may be supplied to replace the Anthropic
    backend or the built-in tool set.
    """
    config = config or SwitchboardConfig()

    database = Database(
        config.storage.db_path,
        operation_timeout=config.storage.operation_timeout_seconds,
    )
    database.initialize()

    registry = registry or build_tool_registry()
    executor = ToolExecutor(
        registry,
        default_timeout=config.tools.default_timeout,
        max_output_length=config.tools.max_output_length,
    )

    return AgentRouter(
        profiles=ProfileStore(database),
        history=HistoryStore(database),
        executor=executor,
        backend=backend or ModelBackend(config.model),
        config=config.router,
        default_model=config.model.default_model,
        retention_days=config.storage.retention_days,
        database=database,
    )

