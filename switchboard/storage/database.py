"""
Database: the SQLite connection shared by the profile and history stores.

The stores use synchronous SQLite, which is correct and easy to reason
about. To keep the event loop responsive, every operation is executed in a
worker thread while holding a connection lock, and is bounded by a timeout.
Any SQLite failure or timeout surfaces as a StoreError.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Callable, Optional, TypeVar

import structlog

from switchboard.errors import StoreError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

PROFILE_SCHEMA = """
CREATE TABLE IF NOT EXISTS agent_profiles (
    agent_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT DEFAULT '',
    system_prompt TEXT NOT NULL,
    model TEXT NOT NULL,
    temperature REAL NOT NULL,
    max_tokens INTEGER NOT NULL,
    tools_enabled INTEGER DEFAULT 0,
    enabled_tools TEXT DEFAULT '[]',
    assigned_senders TEXT DEFAULT '[]',
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);
"""

HISTORY_SCHEMA = """
CREATE TABLE IF NOT EXISTS conversation_history (
    turn_id INTEGER PRIMARY KEY AUTOINCREMENT,
    agent_id TEXT NOT NULL,
    sender_number TEXT NOT NULL,
    sender_name TEXT DEFAULT '',
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    timestamp REAL NOT NULL,
    message_id TEXT,
    metadata TEXT DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_history_pair
    ON conversation_history(agent_id, sender_number, timestamp);
CREATE INDEX IF NOT EXISTS idx_history_timestamp ON conversation_history(timestamp);
"""


class _Transaction:
    """
    Commit-or-abandon handshake between a worker thread and its caller.

    Exactly one of ``settle()`` (worker, just before commit) and
    ``abandon()`` (caller, on timeout or cancellation) wins.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._settled = False
        self._abandoned = False

    @property
    def abandoned(self) -> bool:
        with self._lock:
            return self._abandoned

    def settle(self) -> bool:
        with self._lock:
            if self._abandoned:
                return False
            self._settled = True
            return True

    def abandon(self) -> bool:
        with self._lock:
            if self._settled:
                return False
            self._abandoned = True
            return True


def _drain_abandoned(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("database.abandoned_operation_finished", error=str(error))


class Database:
    """
    Owns the SQLite connection and runs store operations off the event loop.

    Call ``initialize()`` once at startup (idempotent) and ``close()`` on
    shutdown.
    """

    def __init__(self, db_path: Path, operation_timeout: float = 10.0):
        self._db_path = db_path
        self._operation_timeout = operation_timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        logger.info("database.initializing", path=str(db_path))

    @property
    def path(self) -> Path:
        return self._db_path

    def initialize(self) -> None:
        """Create the database connection and ensure the schema exists."""
        if self._conn is not None:
            logger.debug("database.already_initialized", path=str(self._db_path))
            return

        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(PROFILE_SCHEMA)
            conn.executescript(HISTORY_SCHEMA)
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            logger.error("database.initialize_failed", path=str(self._db_path), error=str(e))
            raise StoreError(f"Failed to open database {self._db_path}: {e}") from e

        self._conn = conn
        logger.info("database.initialized", path=str(self._db_path))

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
        logger.info("database.closed", path=str(self._db_path))

    def _require_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Database is not initialized. Call initialize() first.")
        return self._conn

    def _run_locked(
        self, operation: Callable[[sqlite3.Connection], T], transaction: _Transaction
    ) -> T:
        with self._lock:
            if transaction.abandoned:
                raise StoreError("Store operation abandoned before it started")
            conn = self._require_connection()
            try:
                result = operation(conn)
            except Exception:
                conn.rollback()
                raise
            if not transaction.settle():
                conn.rollback()
                logger.warning("database.abandoned_rolled_back")
                raise StoreError("Store operation abandoned after timeout")
            conn.commit()
            return result

    async def run(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        """
        Execute ``operation(conn)`` in a worker thread inside a transaction.

        The operation is committed on success and rolled back on failure.
        SQLite errors and timeouts are raised as StoreError; other
        exceptions (e.g. DuplicateAgent raised by the operation) pass through.
        A timed-out operation is rolled back when its worker finishes, so a
        StoreError for a timeout always means nothing was written.
        """
        transaction = _Transaction()
        task = asyncio.ensure_future(asyncio.to_thread(self._run_locked, operation, transaction))
        try:
            done, _ = await asyncio.wait({task}, timeout=self._operation_timeout)
        except asyncio.CancelledError:
            if transaction.abandon():
                task.add_done_callback(_drain_abandoned)
            raise

        if not done and transaction.abandon():
            task.add_done_callback(_drain_abandoned)
            logger.error("database.timeout", timeout=self._operation_timeout)
            raise StoreError(f"Store operation timed out after {self._operation_timeout}s")

        # Either finished in time or already committing.
        try:
            return await task
        except sqlite3.Error as e:
            logger.error("database.operation_failed", error=str(e))
            raise StoreError(str(e)) from e
