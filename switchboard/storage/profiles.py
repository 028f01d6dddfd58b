"""
Profile Store: durable CRUD for agent profiles.

One row per agent. List-valued fields (enabled tools, assigned senders) are
stored as JSON arrays; sender assignment is a read-modify-write inside one
transaction so concurrent assigns cannot lose each other's updates.
"""

from __future__ import annotations

import json
import sqlite3
import time
from typing import Any, Optional

import structlog

from switchboard.errors import DuplicateAgent
from switchboard.storage.database import Database
from switchboard.types import AgentProfile

logger = structlog.get_logger(__name__)

_COLUMNS = (
    "agent_id",
    "name",
    "description",
    "system_prompt",
    "model",
    "temperature",
    "max_tokens",
    "tools_enabled",
    "enabled_tools",
    "assigned_senders",
    "created_at",
    "updated_at",
)

_UPDATABLE = frozenset(_COLUMNS) - {"agent_id", "created_at", "updated_at"}


def _to_row(profile: AgentProfile) -> tuple[Any, ...]:
    return (
        profile.agent_id,
        profile.name,
        profile.description,
        profile.system_prompt,
        profile.model,
        profile.temperature,
        profile.max_tokens,
        int(profile.tools_enabled),
        json.dumps(profile.enabled_tools),
        json.dumps(profile.assigned_senders),
        profile.created_at,
        profile.updated_at,
    )


def _from_row(row: sqlite3.Row) -> AgentProfile:
    return AgentProfile(
        agent_id=row["agent_id"],
        name=row["name"],
        description=row["description"] or "",
        system_prompt=row["system_prompt"],
        model=row["model"],
        temperature=row["temperature"],
        max_tokens=row["max_tokens"],
        tools_enabled=bool(row["tools_enabled"]),
        enabled_tools=json.loads(row["enabled_tools"] or "[]"),
        assigned_senders=json.loads(row["assigned_senders"] or "[]"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _encode(column: str, value: Any) -> Any:
    if column in ("enabled_tools", "assigned_senders"):
        return json.dumps(list(value))
    if column == "tools_enabled":
        return int(bool(value))
    return value


class ProfileStore:
    """Agent profile persistence on top of a shared Database."""

    def __init__(self, database: Database):
        self._db = database

    async def create(self, profile: AgentProfile) -> AgentProfile:
        """Insert a new profile. Raises DuplicateAgent if the id is taken."""
        now = time.time()
        stored = profile.model_copy(update={"created_at": now, "updated_at": now})
        placeholders = ", ".join("?" for _ in _COLUMNS)
        sql = f"INSERT INTO agent_profiles ({', '.join(_COLUMNS)}) VALUES ({placeholders})"

        def _insert(conn: sqlite3.Connection) -> None:
            try:
                conn.execute(sql, _to_row(stored))
            except sqlite3.IntegrityError as e:
                raise DuplicateAgent(profile.agent_id) from e

        await self._db.run(_insert)
        logger.info("profile_store.created", agent_id=stored.agent_id)
        return stored

    async def get(self, agent_id: str) -> Optional[AgentProfile]:
        def _select(conn: sqlite3.Connection) -> Optional[sqlite3.Row]:
            return conn.execute(
                "SELECT * FROM agent_profiles WHERE agent_id = ?", (agent_id,)
            ).fetchone()

        row = await self._db.run(_select)
        return _from_row(row) if row is not None else None

    async def update(self, agent_id: str, changes: dict[str, Any]) -> bool:
        """Apply a partial update. Returns True if a row was modified."""
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update profile field(s): {', '.join(sorted(unknown))}")
        if not changes:
            return False

        assignments = ", ".join(f"{column} = ?" for column in changes)
        values = [_encode(column, value) for column, value in changes.items()]
        values.extend([time.time(), agent_id])

        def _update(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                f"UPDATE agent_profiles SET {assignments}, updated_at = ? WHERE agent_id = ?",
                values,
            )
            return cursor.rowcount

        modified = await self._db.run(_update)
        logger.info("profile_store.updated", agent_id=agent_id, fields=sorted(changes))
        return modified > 0

    async def delete(self, agent_id: str) -> bool:
        def _delete(conn: sqlite3.Connection) -> int:
            return conn.execute(
                "DELETE FROM agent_profiles WHERE agent_id = ?", (agent_id,)
            ).rowcount

        deleted = await self._db.run(_delete)
        logger.info("profile_store.deleted", agent_id=agent_id, deleted=bool(deleted))
        return deleted > 0

    async def list_all(self) -> list[AgentProfile]:
        """Every stored profile, oldest first (creation order)."""
        def _select(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(
                "SELECT * FROM agent_profiles ORDER BY created_at, rowid"
            ).fetchall()

        rows = await self._db.run(_select)
        profiles = []
        for row in rows:
            try:
                profiles.append(_from_row(row))
            except Exception as e:
                logger.warning(
                    "profile_store.malformed_profile_skipped",
                    agent_id=row["agent_id"],
                    error=str(e),
                )
        return profiles

    async def get_by_sender(self, sender_id: str) -> Optional[AgentProfile]:
        """The first profile (creation order) that lists ``sender_id``."""
        for profile in await self.list_all():
            if profile.is_assigned_to(sender_id):
                return profile
        return None

    async def add_sender(self, agent_id: str, sender_id: str) -> bool:
        return await self._mutate_senders(agent_id, sender_id, add=True)

    async def remove_sender(self, agent_id: str, sender_id: str) -> bool:
        return await self._mutate_senders(agent_id, sender_id, add=False)

    async def _mutate_senders(self, agent_id: str, sender_id: str, add: bool) -> bool:
        def _mutate(conn: sqlite3.Connection) -> bool:
            row = conn.execute(
                "SELECT assigned_senders FROM agent_profiles WHERE agent_id = ?",
                (agent_id,),
            ).fetchone()
            if row is None:
                return False
            senders: list[str] = json.loads(row["assigned_senders"] or "[]")
            if add:
                if sender_id in senders:
                    return False
                senders.append(sender_id)
            else:
                if sender_id not in senders:
                    return False
                senders = [s for s in senders if s != sender_id]
            conn.execute(
                "UPDATE agent_profiles SET assigned_senders = ?, updated_at = ? "
                "WHERE agent_id = ?",
                (json.dumps(senders), time.time(), agent_id),
            )
            return True

        changed = await self._db.run(_mutate)
        logger.info(
            "profile_store.sender_added" if add else "profile_store.sender_removed",
            agent_id=agent_id,
            changed=changed,
        )
        return changed
