"""
Built-in Tools: capabilities that ship with Switchboard.

These tools need no external service. The register_builtin_tools() function
adds them all to the ToolRegistry at startup; agents opt in by listing the
tool name in their profile's enabled tools.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from switchboard.tools.registry import ToolDefinition, ToolRegistry


def get_current_time(timezone_name: Optional[str] = None) -> dict[str, Any]:
    """Current date and time, in UTC or the requested IANA timezone."""
    if timezone_name:
        try:
            tz = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError):
            return {"error": True, "message": f"Unknown timezone: {timezone_name}"}
    else:
        tz = timezone.utc
    now = datetime.now(tz)
    return {
        "iso": now.isoformat(timespec="seconds"),
        "date": now.strftime("%Y-%m-%d"),
        "time": now.strftime("%H:%M"),
        "weekday": now.strftime("%A"),
        "timezone": timezone_name or "UTC",
    }


def register_builtin_tools(registry: ToolRegistry) -> None:
    """Register all built-in tools with the registry."""
    registry.register(
        ToolDefinition(
            name="get_current_time",
            description=(
                "Get the current date, time and weekday. Use this whenever the "
                "user asks about today's date, the time, or anything relative to "
                "now (\"tomorrow\", \"next Monday\"). Pass an IANA timezone such as "
                "'Asia/Singapore' when the user mentions a location."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "timezone_name": {
                        "type": "string",
                        "description": "IANA timezone name. Defaults to UTC.",
                    },
                },
            },
            handler=get_current_time,
            category="utility",
            is_builtin=True,
            timeout=5.0,
        )
    )
