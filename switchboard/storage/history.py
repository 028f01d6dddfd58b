"""
History Store: the per (agent, sender) conversation log.

Turns are append-only. Reads return the most recent turns in chronological
order regardless of the order they were written in, because prompt assembly
depends on it. Bulk deletion (clear, retention cleanup) is the only way a
turn ever leaves the log.
"""

from __future__ import annotations

import json
import sqlite3
import time

import structlog

from switchboard.storage.database import Database
from switchboard.types import ConversationSummary, ConversationTurn

logger = structlog.get_logger(__name__)

_SECONDS_PER_DAY = 86400.0

_SUMMARY_SQL = """
SELECT sender_number, sender_name, content, timestamp, message_count FROM (
    SELECT
        sender_number,
        sender_name,
        content,
        timestamp,
        COUNT(*) OVER (PARTITION BY sender_number) AS message_count,
        ROW_NUMBER() OVER (
            PARTITION BY sender_number ORDER BY timestamp DESC, turn_id DESC
        ) AS recency
    FROM conversation_history
    WHERE agent_id = ?
)
WHERE recency = 1
ORDER BY timestamp DESC
"""


def _from_row(row: sqlite3.Row) -> ConversationTurn:
    return ConversationTurn(
        turn_id=row["turn_id"],
        agent_id=row["agent_id"],
        sender_number=row["sender_number"],
        sender_name=row["sender_name"] or "",
        role=row["role"],
        content=row["content"],
        timestamp=row["timestamp"],
        message_id=row["message_id"],
        metadata=json.loads(row["metadata"] or "{}"),
    )


class HistoryStore:
    """Conversation turn persistence on top of a shared Database."""

    def __init__(self, database: Database):
        self._db = database

    async def append(self, turn: ConversationTurn) -> ConversationTurn:
        def _insert(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                "INSERT INTO conversation_history "
                "(agent_id, sender_number, sender_name, role, content, timestamp, "
                "message_id, metadata) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    turn.agent_id,
                    turn.sender_number,
                    turn.sender_name,
                    turn.role,
                    turn.content,
                    turn.timestamp,
                    turn.message_id,
                    json.dumps(turn.metadata, default=str),
                ),
            )
            return cursor.lastrowid

        turn_id = await self._db.run(_insert)
        return turn.model_copy(update={"turn_id": turn_id})

    async def read_recent(
        self, agent_id: str, sender_number: str, limit: int = 10
    ) -> list[ConversationTurn]:
        """The ``limit`` most recent turns for the pair, oldest first."""
        def _select(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(
                "SELECT * FROM conversation_history "
                "WHERE agent_id = ? AND sender_number = ? "
                "ORDER BY timestamp DESC, turn_id DESC LIMIT ?",
                (agent_id, sender_number, max(0, int(limit))),
            ).fetchall()

        rows = await self._db.run(_select)
        return [_from_row(row) for row in reversed(rows)]

    async def clear(self, agent_id: str, sender_number: str) -> int:
        def _delete(conn: sqlite3.Connection) -> int:
            return conn.execute(
                "DELETE FROM conversation_history WHERE agent_id = ? AND sender_number = ?",
                (agent_id, sender_number),
            ).rowcount

        deleted = await self._db.run(_delete)
        logger.info("history_store.cleared", agent_id=agent_id, deleted=deleted)
        return deleted

    async def aggregate_by_sender(self, agent_id: str) -> list[ConversationSummary]:
        """One summary per sender, most recently active first."""
        def _select(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(_SUMMARY_SQL, (agent_id,)).fetchall()

        rows = await self._db.run(_select)
        return [
            ConversationSummary(
                sender_number=row["sender_number"],
                sender_name=row["sender_name"] or "",
                last_message=row["content"],
                last_timestamp=row["timestamp"],
                message_count=row["message_count"],
            )
            for row in rows
        ]

    async def delete_older_than(self, days: float) -> int:
        """Retention cleanup across every agent. Returns the number of turns removed."""
        cutoff = time.time() - float(days) * _SECONDS_PER_DAY

        def _delete(conn: sqlite3.Connection) -> int:
            return conn.execute(
                "DELETE FROM conversation_history WHERE timestamp < ?", (cutoff,)
            ).rowcount

        deleted = await self._db.run(_delete)
        logger.info("history_store.retention_cleanup", days=days, deleted=deleted)
        return deleted

    async def count(self, agent_id: str, sender_number: str) -> int:
        def _count(conn: sqlite3.Connection) -> int:
            return conn.execute(
                "SELECT COUNT(*) FROM conversation_history "
                "WHERE agent_id = ? AND sender_number = ?",
                (agent_id, sender_number),
            ).fetchone()[0]

        return await self._db.run(_count)
