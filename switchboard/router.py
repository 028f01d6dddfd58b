"""
Agent Router: decides which agent answers which sender.

The router holds the live set of agents as an immutable tuple in registration
order. Routing is first-match: the first agent whose profile lists the sender
answers. If nobody claims the sender the router falls back to the configured
fallback agent, or reports that no agent is responsible.

All mutations (create, delete, assign, unassign, update) run under a single
writer lock. Membership changes publish a new tuple and profile changes swap
an agent's profile reference in one assignment, so a concurrent dispatch sees
either the old state or the new one, never a partial update.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Union

import pydantic
import structlog

from switchboard.agent import Agent
from switchboard.agents.personas import builtin_profiles, is_builtin
from switchboard.api.model import ChatBackend
from switchboard.config import RouterConfig
from switchboard.errors import (
    AgentNotFound,
    DuplicateAgent,
    ProtectedAgent,
    ValidationError,
)
from switchboard.storage.database import Database
from switchboard.storage.history import HistoryStore
from switchboard.storage.profiles import ProfileStore
from switchboard.tools.executor import ToolExecutor
from switchboard.tools.registry import ToolRegistry
from switchboard.types import NO_AGENT, AgentProfile, ConversationSummary, Sentinel

logger = structlog.get_logger(__name__)


def _validation_message(error: pydantic.ValidationError) -> str:
    parts = []
    for item in error.errors():
        field = ".".join(str(loc) for loc in item.get("loc", ())) or "profile"
        parts.append(f"{field}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)


class AgentRouter:
    """
    Routes inbound messages to agents and manages the agent lifecycle.

    Call ``initialize()`` before anything else; every other operation raises
    RuntimeError until it has run.
    """

    def __init__(
        self,
        profiles: ProfileStore,
        history: HistoryStore,
        executor: ToolExecutor,
        backend: ChatBackend,
        config: Optional[RouterConfig] = None,
        default_model: str = "claude-sonnet-4-5-20250929",
        retention_days: int = 30,
        database: Optional[Database] = None,
    ):
        self._profiles = profiles
        self._history = history
        self._executor = executor
        self._backend = backend
        self._config = config or RouterConfig()
        self._default_model = default_model
        self._database = database
        self._retention_days = retention_days

        self._agents: tuple[Agent, ...] = ()
        self._write_lock = asyncio.Lock()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def agents(self) -> tuple[Agent, ...]:
        return self._agents

    @property
    def tool_registry(self) -> ToolRegistry:
        return self._executor.registry

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load every stored profile and build one agent per profile."""
        async with self._write_lock:
            if self._initialized:
                return

            if self._config.bootstrap_builtin_agents:
                await self._bootstrap_builtins()

            agents = []
            for profile in await self._profiles.list_all():
                try:
                    agents.append(self._build_agent(profile))
                except Exception as e:
                    logger.error(
                        "agent_router.agent_load_failed",
                        agent_id=profile.agent_id,
                        error=str(e),
                    )
            self._agents = tuple(agents)
            self._initialized = True

        if (
            self._config.fallback_agent_id
            and self._find(self._config.fallback_agent_id) is None
        ):
            logger.warning(
                "agent_router.fallback_agent_missing",
                agent_id=self._config.fallback_agent_id,
            )
        logger.info("agent_router.initialized", agents=len(self._agents))

    async def _bootstrap_builtins(self) -> None:
        for profile in builtin_profiles(self._default_model):
            if await self._profiles.get(profile.agent_id) is not None:
                continue
            try:
                await self._profiles.create(profile)
                logger.info("agent_router.builtin_created", agent_id=profile.agent_id)
            except DuplicateAgent:
                pass

    async def shutdown(self) -> None:
        """Drop the live agents and close the database, if the router owns one."""
        async with self._write_lock:
            self._agents = ()
            self._initialized = False
        if self._database is not None:
            self._database.close()
        logger.info("agent_router.shutdown")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("AgentRouter not initialized. Call initialize() first.")

    def _build_agent(self, profile: AgentProfile) -> Agent:
        return Agent(
            profile=profile,
            profiles=self._profiles,
            history=self._history,
            executor=self._executor,
            backend=self._backend,
            history_limit=self._config.history_limit,
            serialize_per_sender=self._config.serialize_per_sender,
            sender_lock_cache_size=self._config.sender_lock_cache_size,
        )

    def _find(self, agent_id: str) -> Optional[Agent]:
        for agent in self._agents:
            if agent.agent_id == agent_id:
                return agent
        return None

    def _require_agent(self, agent_id: str) -> Agent:
        agent = self._find(agent_id)
        if agent is None:
            raise AgentNotFound(agent_id)
        return agent

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def select_agent(self, sender_id: str) -> Optional[Agent]:
        """The first registered agent assigned to ``sender_id``, else the fallback."""
        self._require_initialized()
        agents = self._agents
        for agent in agents:
            if agent.is_assigned_to(sender_id):
                return agent
        if self._config.fallback_agent_id:
            return self._find(self._config.fallback_agent_id)
        return None

    async def dispatch(
        self,
        message: str,
        sender_id: str,
        sender_name: str = "",
        is_addressed_to_router: bool = True,
    ) -> Union[str, Sentinel, None]:
        """
        Route one inbound message.

        Returns None when the message was not addressed to us, NO_AGENT when
        no agent is responsible for the sender, and otherwise the reply text.
        Agent failures are logged and answered with the configured apology.
        """
        self._require_initialized()
        if not is_addressed_to_router:
            logger.debug("agent_router.not_addressed")
            return None

        agent = self.select_agent(sender_id)
        if agent is None:
            logger.info("agent_router.no_agent")
            return NO_AGENT

        logger.info("agent_router.dispatched", agent_id=agent.agent_id)
        try:
            return await agent.handle_message(message, sender_id, sender_name)
        except Exception as e:
            logger.error(
                "agent_router.dispatch_failed",
                agent_id=agent.agent_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return self._config.apology_message

    # ------------------------------------------------------------------
    # Agent lifecycle
    # ------------------------------------------------------------------

    async def create_agent(self, config: dict[str, Any]) -> Agent:
        """
        Persist a new profile and register a live agent for it.

        ``config`` holds AgentProfile fields; ``agent_id``, ``name`` and
        ``system_prompt`` are required. Keys set to None take their defaults.
        """
        self._require_initialized()
        fields = {key: value for key, value in config.items() if value is not None}
        fields.setdefault("model", self._default_model)
        for required in ("agent_id", "name", "system_prompt"):
            value = fields.get(required)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError("Agent must have agent_id, name, and system_prompt")
        try:
            profile = AgentProfile(**fields)
        except pydantic.ValidationError as e:
            raise ValidationError(_validation_message(e)) from e

        async with self._write_lock:
            if self._find(profile.agent_id) is not None:
                raise DuplicateAgent(profile.agent_id)
            stored = await self._profiles.create(profile)
            agent = self._build_agent(stored)
            self._agents = self._agents + (agent,)

        logger.info("agent_router.agent_created", agent_id=agent.agent_id)
        return agent

    async def delete_agent(self, agent_id: str) -> bool:
        self._require_initialized()
        if is_builtin(agent_id):
            raise ProtectedAgent(agent_id)

        async with self._write_lock:
            self._require_agent(agent_id)
            await self._profiles.delete(agent_id)
            self._agents = tuple(a for a in self._agents if a.agent_id != agent_id)

        logger.info("agent_router.agent_deleted", agent_id=agent_id)
        return True

    async def update_agent(self, agent_id: str, /, **changes: Any) -> AgentProfile:
        """Apply a partial profile update. ``agent_id`` itself is immutable."""
        self._require_initialized()
        if "agent_id" in changes and changes["agent_id"] != agent_id:
            raise ValidationError("agent_id cannot be changed")
        changes.pop("agent_id", None)
        for field in ("created_at", "updated_at"):
            changes.pop(field, None)
        if not changes:
            return self._require_agent(agent_id).profile

        async with self._write_lock:
            agent = self._require_agent(agent_id)
            try:
                profile = await agent.update_profile(changes)
            except pydantic.ValidationError as e:
                raise ValidationError(_validation_message(e)) from e
            except ValueError as e:
                raise ValidationError(str(e)) from e

        logger.info("agent_router.agent_updated", agent_id=agent_id, fields=sorted(changes))
        return profile

    async def assign(self, sender_id: str, agent_id: str) -> bool:
        """Add ``sender_id`` to the agent's assignments. Idempotent."""
        self._require_initialized()
        sender_id = self._require_sender(sender_id)
        async with self._write_lock:
            agent = self._require_agent(agent_id)
            changed = await agent.assign_sender(sender_id)
        logger.info("agent_router.sender_assigned", agent_id=agent_id, changed=changed)
        return changed

    async def unassign(self, sender_id: str, agent_id: str) -> bool:
        """Remove ``sender_id`` from the agent's assignments. Idempotent."""
        self._require_initialized()
        sender_id = self._require_sender(sender_id)
        async with self._write_lock:
            agent = self._require_agent(agent_id)
            changed = await agent.unassign_sender(sender_id)
        logger.info("agent_router.sender_unassigned", agent_id=agent_id, changed=changed)
        return changed

    @staticmethod
    def _require_sender(sender_id: str) -> str:
        if not isinstance(sender_id, str) or not sender_id.strip():
            raise ValidationError("Sender id must not be empty")
        return sender_id.strip()

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def clear_history(self, sender_id: str, agent_id: str) -> int:
        self._require_initialized()
        agent = self._require_agent(agent_id)
        deleted = await agent.clear_history(sender_id)
        logger.info("agent_router.history_cleared", agent_id=agent_id, deleted=deleted)
        return deleted

    async def list_conversations(self, agent_id: str) -> list[ConversationSummary]:
        self._require_initialized()
        return await self._require_agent(agent_id).get_conversations()

    async def cleanup_history(self, days: Optional[float] = None) -> int:
        """Delete turns older than ``days`` (default: the configured retention)."""
        self._require_initialized()
        if days is None:
            days = self._retention_days
        if days <= 0:
            raise ValidationError("days must be positive")
        return await self._history.delete_older_than(days)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        self._require_initialized()
        return self._find(agent_id)

    def get_agent_list(self) -> list[dict[str, Any]]:
        self._require_initialized()
        return [
            {
                "agent_id": agent.profile.agent_id,
                "name": agent.profile.name,
                "description": agent.profile.description,
                "model": agent.profile.model,
                "assigned_senders": list(agent.profile.assigned_senders),
                "tools_enabled": agent.profile.tools_enabled,
                "enabled_tools": list(agent.profile.enabled_tools),
                "builtin": is_builtin(agent.agent_id),
            }
            for agent in self._agents
        ]
