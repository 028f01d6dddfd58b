"""CLI application: Click-based command hierarchy for Switchboard.

The main CLI group and global flags. Subcommand modules register
themselves by importing and adding to the group.
"""

from __future__ import annotations

import asyncio
import functools
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

import click

from switchboard.errors import SwitchboardError
from switchboard.router import AgentRouter


def async_cmd(func):
    """Decorator to run an async Click command via asyncio.run()."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return asyncio.run(func(*args, **kwargs))

    return wrapper


def _default_router_factory() -> AgentRouter:
    from switchboard.config import SwitchboardConfig
    from switchboard.main import build_router, configure_logging

    config = SwitchboardConfig()
    configure_logging(config.logging.level)
    return build_router(config)


@asynccontextmanager
async def open_router(ctx: click.Context) -> AsyncIterator[AgentRouter]:
    """Build and initialize a router for one command, shutting it down after.

    Switchboard errors raised by the command are reported as CLI errors.
    """
    factory: Callable[[], AgentRouter] = ctx.obj.get("router_factory") or _default_router_factory
    try:
        router = factory()
    except SwitchboardError as e:
        raise click.ClickException(str(e)) from e
    try:
        await router.initialize()
        yield router
    except SwitchboardError as e:
        raise click.ClickException(str(e)) from e
    finally:
        await router.shutdown()


@click.group()
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output")
@click.option("--no-color", is_flag=True, help="Disable ANSI colors")
@click.pass_context
def cli(ctx: click.Context, json_output: bool, no_color: bool) -> None:
    """Switchboard - route chat senders to configurable agents."""
    ctx.ensure_object(dict)
    ctx.obj["json"] = json_output
    ctx.obj["no_color"] = no_color


# ---------------------------------------------------------------------------
# Register subcommand modules
# ---------------------------------------------------------------------------

def _register_subcommands() -> None:
    """Import and register all subcommands."""
    from switchboard.cli.agents import (
        assign_cmd,
        cleanup_cmd,
        clear_history_cmd,
        conversations_cmd,
        create_agent_cmd,
        delete_agent_cmd,
        list_cmd,
        send_cmd,
        tools_cmd,
        unassign_cmd,
    )

    cli.add_command(list_cmd)
    cli.add_command(create_agent_cmd)
    cli.add_command(delete_agent_cmd)
    cli.add_command(assign_cmd)
    cli.add_command(unassign_cmd)
    cli.add_command(clear_history_cmd)
    cli.add_command(conversations_cmd)
    cli.add_command(cleanup_cmd)
    cli.add_command(send_cmd)
    cli.add_command(tools_cmd)


_register_subcommands()


def main() -> None:
    cli(obj={})
