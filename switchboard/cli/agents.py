"""Agent management commands: list, create, delete, assign, history, send."""

from __future__ import annotations

import json as json_mod
from typing import Any, Optional

import click

from switchboard.cli.app import async_cmd, open_router
from switchboard.cli.formatters import build_table, format_timestamp, get_console, shorten
from switchboard.types import Sentinel


def _echo_json(payload: Any) -> None:
    click.echo(json_mod.dumps(payload, indent=2, default=str))


@click.command("list")
@click.pass_context
@async_cmd
async def list_cmd(ctx: click.Context) -> None:
    """List all agents and their assigned senders."""
    async with open_router(ctx) as router:
        agents = router.get_agent_list()

    if ctx.obj.get("json"):
        _echo_json(agents)
        return

    console = get_console(no_color=ctx.obj.get("no_color", False))
    if not agents:
        console.print("No agents configured.")
        return
    rows = [
        [
            agent["agent_id"],
            agent["name"],
            ", ".join(agent["assigned_senders"]) or "-",
            ", ".join(agent["enabled_tools"]) if agent["tools_enabled"] else "-",
            shorten(agent["description"], 40),
        ]
        for agent in agents
    ]
    console.print(build_table("Agents", ["Agent ID", "Name", "Senders", "Tools", "Description"], rows))


@click.command("create-agent")
@click.option("--agent-id", prompt="Agent ID", help="Unique agent identifier")
@click.option("--name", prompt="Display name", help="Agent display name")
@click.option("--system-prompt", prompt="System prompt", help="Persona instructions")
@click.option("--description", default="", help="Short description")
@click.option("--model", default=None, help="Model identifier (default: configured model)")
@click.option("--temperature", type=float, default=None, help="Sampling temperature, 0.0 to 1.0")
@click.option("--max-tokens", type=int, default=None, help="Maximum reply tokens")
@click.option("--tool", "tools", multiple=True, help="Enable a tool (repeatable)")
@click.option("--sender", "senders", multiple=True, help="Assign a sender (repeatable)")
@click.pass_context
@async_cmd
async def create_agent_cmd(
    ctx: click.Context,
    agent_id: str,
    name: str,
    system_prompt: str,
    description: str,
    model: Optional[str],
    temperature: Optional[float],
    max_tokens: Optional[int],
    tools: tuple[str, ...],
    senders: tuple[str, ...],
) -> None:
    """Create a new agent."""
    config = {
        "agent_id": agent_id,
        "name": name,
        "system_prompt": system_prompt,
        "description": description,
        "model": model,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "tools_enabled": bool(tools),
        "enabled_tools": list(tools),
        "assigned_senders": list(senders),
    }
    async with open_router(ctx) as router:
        agent = await router.create_agent(config)
        profile = agent.profile

    if ctx.obj.get("json"):
        _echo_json(profile.model_dump())
        return
    click.echo(f"Created agent {profile.agent_id} ({profile.name}).")


@click.command("delete-agent")
@click.argument("agent_id")
@click.confirmation_option(prompt="Are you sure you want to delete this agent?")
@click.pass_context
@async_cmd
async def delete_agent_cmd(ctx: click.Context, agent_id: str) -> None:
    """Delete a custom agent. Built-in agents cannot be deleted."""
    async with open_router(ctx) as router:
        await router.delete_agent(agent_id)

    if ctx.obj.get("json"):
        _echo_json({"agent_id": agent_id, "deleted": True})
        return
    click.echo(f"Deleted agent {agent_id}.")


@click.command("assign")
@click.argument("sender")
@click.argument("agent_id")
@click.pass_context
@async_cmd
async def assign_cmd(ctx: click.Context, sender: str, agent_id: str) -> None:
    """Assign SENDER to AGENT_ID."""
    async with open_router(ctx) as router:
        changed = await router.assign(sender, agent_id)

    if ctx.obj.get("json"):
        _echo_json({"sender": sender, "agent_id": agent_id, "changed": changed})
        return
    if changed:
        click.echo(f"Assigned {sender} to {agent_id}.")
    else:
        click.echo(f"{sender} is already assigned to {agent_id}.")


@click.command("unassign")
@click.argument("sender")
@click.argument("agent_id")
@click.pass_context
@async_cmd
async def unassign_cmd(ctx: click.Context, sender: str, agent_id: str) -> None:
    """Remove SENDER from AGENT_ID."""
    async with open_router(ctx) as router:
        changed = await router.unassign(sender, agent_id)

    if ctx.obj.get("json"):
        _echo_json({"sender": sender, "agent_id": agent_id, "changed": changed})
        return
    if changed:
        click.echo(f"Unassigned {sender} from {agent_id}.")
    else:
        click.echo(f"{sender} was not assigned to {agent_id}.")


@click.command("clear-history")
@click.argument("sender")
@click.argument("agent_id")
@click.pass_context
@async_cmd
async def clear_history_cmd(ctx: click.Context, sender: str, agent_id: str) -> None:
    """Delete the conversation between SENDER and AGENT_ID."""
    async with open_router(ctx) as router:
        deleted = await router.clear_history(sender, agent_id)

    if ctx.obj.get("json"):
        _echo_json({"sender": sender, "agent_id": agent_id, "deleted": deleted})
        return
    click.echo(f"Deleted {deleted} message(s).")


@click.command("conversations")
@click.argument("agent_id")
@click.pass_context
@async_cmd
async def conversations_cmd(ctx: click.Context, agent_id: str) -> None:
    """Show every sender AGENT_ID has talked to, most recent first."""
    async with open_router(ctx) as router:
        summaries = await router.list_conversations(agent_id)

    if ctx.obj.get("json"):
        _echo_json([summary.model_dump() for summary in summaries])
        return

    console = get_console(no_color=ctx.obj.get("no_color", False))
    if not summaries:
        console.print(f"No conversations for {agent_id}.")
        return
    rows = [
        [
            s.sender_number,
            s.sender_name or "-",
            s.message_count,
            shorten(s.last_message),
            format_timestamp(s.last_timestamp),
        ]
        for s in summaries
    ]
    console.print(
        build_table(
            f"Conversations: {agent_id}",
            ["Sender", "Name", "Messages", "Last Message", "Last Activity"],
            rows,
        )
    )


@click.command("cleanup")
@click.option("--days", type=float, default=None, help="Delete messages older than this")
@click.pass_context
@async_cmd
async def cleanup_cmd(ctx: click.Context, days: Optional[float]) -> None:
    """Delete old conversation history (default: the configured retention)."""
    async with open_router(ctx) as router:
        deleted = await router.cleanup_history(days)

    if ctx.obj.get("json"):
        _echo_json({"deleted": deleted, "days": days})
        return
    click.echo(f"Deleted {deleted} old message(s).")


@click.command("send")
@click.argument("sender")
@click.argument("message")
@click.option("--name", "sender_name", default="", help="Sender display name")
@click.pass_context
@async_cmd
async def send_cmd(ctx: click.Context, sender: str, message: str, sender_name: str) -> None:
    """Dispatch MESSAGE from SENDER and print the reply."""
    async with open_router(ctx) as router:
        reply = await router.dispatch(message, sender, sender_name, True)

    routed = reply is not None and reply is not Sentinel.NO_AGENT
    if ctx.obj.get("json"):
        _echo_json({"sender": sender, "routed": routed, "reply": reply if routed else None})
        return
    if not routed:
        click.echo(f"No agent is assigned to {sender}.")
        return
    click.echo(reply)


@click.command("tools")
@click.pass_context
@async_cmd
async def tools_cmd(ctx: click.Context) -> None:
    """List the tools agents can enable."""
    async with open_router(ctx) as router:
        tools = router.tool_registry.list_tools()

    if ctx.obj.get("json"):
        _echo_json(tools)
        return

    console = get_console(no_color=ctx.obj.get("no_color", False))
    rows = [
        [t["name"], t["category"], "yes" if t["enabled"] else "no", shorten(t["description"], 60)]
        for t in tools
    ]
    console.print(build_table("Tools", ["Name", "Category", "Enabled", "Description"], rows))
