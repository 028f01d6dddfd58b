"""
Agent: one persona paired with the message-handling protocol.

An Agent owns exactly one AgentProfile and turns an inbound chat message into
a reply:

1. Log the inbound turn (best effort)
2. Read the most recent turns for this (agent, sender) pair, oldest first
3. Build the prompt: system instructions followed by the turns verbatim
4. Resolve the tools this agent offers, if any
5. Ask the model for a completion
6. If the model requested tools, run them and ask exactly once more with
   tool choice "none"; that second reply is the answer
7. Log the outbound turn (best effort)
8. Return the answer

History writes never fail a message. Everything else (history reads, model
calls) propagates to the router, which owns the user-facing apology. The
agent never retries.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import structlog

from switchboard.api.model import ChatBackend
from switchboard.errors import AgentNotFound
from switchboard.storage.history import HistoryStore
from switchboard.storage.profiles import ProfileStore
from switchboard.tools.executor import ToolExecutionResult, ToolExecutor, error_payload
from switchboard.types import AgentProfile, ConversationSummary, ConversationTurn, ToolCall

logger = structlog.get_logger(__name__)


class Agent:
    """
    Runtime agent. Not persisted; rebuilt from its profile at startup.

    When ``serialize_per_sender`` is on, messages from the same sender are
    handled one at a time so turns from overlapping messages never interleave
    in the history. Different senders proceed concurrently.
    """

    def __init__(
        self,
        profile: AgentProfile,
        profiles: ProfileStore,
        history: HistoryStore,
        executor: ToolExecutor,
        backend: ChatBackend,
        history_limit: int = 10,
        serialize_per_sender: bool = True,
        sender_lock_cache_size: int = 512,
    ):
        self._profile = profile
        self._profiles = profiles
        self._history = history
        self._executor = executor
        self._backend = backend
        self._history_limit = max(1, int(history_limit))
        self._serialize_per_sender = serialize_per_sender

        # Per-sender serialisation: LRU cache of asyncio locks
        self._sender_locks: dict[str, asyncio.Lock] = {}
        self._sender_lock_last_used: dict[str, float] = {}
        self._sender_lock_cache_size = max(1, int(sender_lock_cache_size))

    @property
    def agent_id(self) -> str:
        return self._profile.agent_id

    @property
    def profile(self) -> AgentProfile:
        return self._profile

    def is_assigned_to(self, sender_id: str) -> bool:
        return self._profile.is_assigned_to(sender_id)

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    async def handle_message(self, message: str, sender_id: str, sender_name: str = "") -> str:
        """Produce the reply to ``message`` from ``sender_id``."""
        if not self._serialize_per_sender:
            return await self._handle(message, sender_id, sender_name)

        lock = self._get_sender_lock(sender_id)
        try:
            async with lock:
                return await self._handle(message, sender_id, sender_name)
        finally:
            self._release_sender_lock(sender_id)

    async def _handle(self, message: str, sender_id: str, sender_name: str) -> str:
        profile = self._profile
        start_time = time.monotonic()

        inbound_logged = await self._append_turn(sender_id, sender_name, "user", message)

        turns = await self._history.read_recent(profile.agent_id, sender_id, self._history_limit)
        messages = self.build_messages(turns)
        if not inbound_logged:
            messages.append({"role": "user", "content": message})

        tools = self._resolve_tools()
        reply = await self._backend.complete(
            messages,
            model=profile.model,
            temperature=profile.temperature,
            max_tokens=profile.max_tokens,
            tools=tools or None,
            tool_choice="auto" if tools else None,
        )

        tool_rounds = 0
        if reply.wants_tools:
            tool_rounds = 1
            offered = {tool["name"] for tool in tools}
            results = [await self._run_tool(call, offered) for call in reply.tool_calls]
            follow_up = list(messages)
            follow_up.append(reply.to_message())
            follow_up.extend(result.to_message() for result in results)
            reply = await self._backend.complete(
                follow_up,
                model=profile.model,
                temperature=profile.temperature,
                max_tokens=profile.max_tokens,
                tools=tools,
                tool_choice="none",
            )

        answer = reply.content
        await self._append_turn(sender_id, sender_name, "assistant", answer)

        logger.info(
            "agent.answered",
            agent_id=profile.agent_id,
            history_turns=len(turns),
            tools_offered=len(tools),
            tool_rounds=tool_rounds,
            elapsed_seconds=round(time.monotonic() - start_time, 2),
        )
        return answer

    def build_messages(self, turns: list[ConversationTurn]) -> list[dict[str, Any]]:
        """System instructions first, then the turns in the order given."""
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": self._profile.system_prompt}
        ]
        messages.extend(turn.to_prompt_message() for turn in turns)
        return messages

    def _resolve_tools(self) -> list[dict[str, Any]]:
        if not self._profile.offers_tools:
            return []
        return self._executor.registry.get_api_tools(self._profile.enabled_tools)

    async def _run_tool(self, call: ToolCall, offered: set[str]) -> ToolExecutionResult:
        if call.name not in offered:
            logger.warning(
                "agent.tool_not_offered",
                agent_id=self.agent_id,
                tool_name=call.name,
            )
            return ToolExecutionResult(
                tool_call_id=call.id,
                tool_name=call.name,
                success=False,
                result=error_payload(f"Tool {call.name} is not available to this agent"),
            )
        return await self._executor.execute(call)

    async def _append_turn(
        self, sender_id: str, sender_name: str, role: str, content: str
    ) -> bool:
        turn = ConversationTurn(
            agent_id=self.agent_id,
            sender_number=sender_id,
            sender_name=sender_name or "",
            role=role,
            content=content,
        )
        try:
            await self._history.append(turn)
        except Exception as e:
            logger.warning(
                "agent.history_write_failed",
                agent_id=self.agent_id,
                role=role,
                error=str(e),
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Profile management
    # ------------------------------------------------------------------

    async def refresh_profile(self) -> AgentProfile:
        """Reload the profile from the store."""
        profile = await self._profiles.get(self.agent_id)
        if profile is None:
            raise AgentNotFound(self.agent_id)
        self._profile = profile
        return profile

    async def update_profile(self, changes: dict[str, Any]) -> AgentProfile:
        # Validate against the model first so a bad update writes nothing.
        validated = AgentProfile.model_validate({**self._profile.model_dump(), **changes})
        normalized = {key: getattr(validated, key, value) for key, value in changes.items()}
        await self._profiles.update(self.agent_id, normalized)
        return await self.refresh_profile()

    async def assign_sender(self, sender_id: str) -> bool:
        changed = await self._profiles.add_sender(self.agent_id, sender_id)
        await self.refresh_profile()
        return changed

    async def unassign_sender(self, sender_id: str) -> bool:
        changed = await self._profiles.remove_sender(self.agent_id, sender_id)
        await self.refresh_profile()
        return changed

    async def clear_history(self, sender_id: str) -> int:
        return await self._history.clear(self.agent_id, sender_id)

    async def get_conversations(self) -> list[ConversationSummary]:
        return await self._history.aggregate_by_sender(self.agent_id)

    # ------------------------------------------------------------------
    # Per-sender locks
    # ------------------------------------------------------------------

    def _get_sender_lock(self, sender_id: str) -> asyncio.Lock:
        """Return (or create) the per-sender lock and refresh its LRU timestamp."""
        lock = self._sender_locks.get(sender_id)
        if lock is None:
            lock = asyncio.Lock()
            self._sender_locks[sender_id] = lock
        self._sender_lock_last_used[sender_id] = time.monotonic()
        self._evict_sender_locks()
        return lock

    def _evict_sender_locks(self) -> None:
        """Evict the least-recently-used unlocked entries when the cache is full."""
        if len(self._sender_locks) <= self._sender_lock_cache_size:
            return
        excess = len(self._sender_locks) - self._sender_lock_cache_size
        for sender_id, _ in sorted(self._sender_lock_last_used.items(), key=lambda item: item[1]):
            lock = self._sender_locks.get(sender_id)
            if lock is None:
                self._sender_lock_last_used.pop(sender_id, None)
                continue
            if lock.locked():
                continue
            self._sender_locks.pop(sender_id, None)
            self._sender_lock_last_used.pop(sender_id, None)
            excess -= 1
            if excess <= 0:
                break

    def _release_sender_lock(self, sender_id: str) -> None:
        self._sender_lock_last_used[sender_id] = time.monotonic()
        self._evict_sender_locks()

    def __repr__(self) -> str:
        return f"Agent(agent_id={self.agent_id!r}, name={self._profile.name!r})"
