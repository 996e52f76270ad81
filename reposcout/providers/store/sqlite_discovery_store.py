"""SQLite-backed discovery store.

Persists sessions, search tasks and analysis records to a local SQLite
database using ``aiosqlite`` for async I/O.  The database runs in WAL mode
with a busy timeout so several worker processes can share the file.

Each public method opens its own short-lived connection and performs one
logical mutation, so there is never a transaction spanning the
existence check and the insert of an analysis record; the
``UNIQUE(session_id, candidate_key)`` constraint is what settles races
between sibling tasks.
"""

from __future__ import annotations

import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import aiosqlite
import structlog

from reposcout.interfaces.discovery_store import IDiscoveryStore
from reposcout.models.discovery import (
    AnalysisRecord,
    DiscoverySession,
    SearchTask,
    TaskStatus,
)
from reposcout.utils.errors import DuplicateAnalysisError, StoreError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/discovery.db")

_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

_CREATE_TABLES_SQL = [
    f"""\
CREATE TABLE IF NOT EXISTS sessions (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id    TEXT    NOT NULL UNIQUE,
    prompt        TEXT    NOT NULL,
    cancelled     INTEGER NOT NULL DEFAULT 0,
    created_at    TEXT    NOT NULL DEFAULT ({_NOW_SQL}),
    completed_at  TEXT
);
""",
    f"""\
CREATE TABLE IF NOT EXISTS search_tasks (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id   TEXT    NOT NULL,
    search_term  TEXT    NOT NULL,
    status       TEXT    NOT NULL DEFAULT 'pending',
    created_at   TEXT    NOT NULL DEFAULT ({_NOW_SQL}),
    updated_at   TEXT    NOT NULL DEFAULT ({_NOW_SQL})
);
""",
    """\
CREATE TABLE IF NOT EXISTS analysis_records (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id       TEXT    NOT NULL,
    search_task_id   INTEGER NOT NULL,
    candidate_key    TEXT    NOT NULL,
    candidate_url    TEXT    NOT NULL,
    description      TEXT,
    relevancy_score  REAL    NOT NULL,
    reasoning        TEXT    NOT NULL DEFAULT '',
    analyzed_at      TEXT    NOT NULL,
    UNIQUE(session_id, candidate_key)
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_session_status ON search_tasks(session_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status_updated ON search_tasks(status, updated_at);",
    "CREATE INDEX IF NOT EXISTS idx_records_session_score "
    "ON analysis_records(session_id, relevancy_score DESC);",
]

_TERMINAL_STATUSES = (TaskStatus.COMPLETED.value, TaskStatus.FAILED.value)
_OUTSTANDING_STATUSES = (TaskStatus.PENDING.value, TaskStatus.RUNNING.value)


class SQLiteDiscoveryStore(IDiscoveryStore):
    """SQLite persistence for discovery sessions.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Parent directories are created
        on :meth:`initialize`.
    busy_timeout_ms:
        How long a connection waits on a locked database before failing.
    """

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self._db_path = Path(db_path)
        self._busy_timeout_ms = busy_timeout_ms

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL")
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("discovery_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def insert_session(self, session: DiscoverySession) -> None:
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO sessions (session_id, prompt, cancelled, created_at) "
                "VALUES (?, ?, ?, ?)",
                (
                    session.session_id,
                    session.prompt,
                    int(session.cancelled),
                    _to_text(session.created_at),
                ),
            )
            await db.commit()

    async def get_session(self, session_id: str) -> DiscoverySession | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT session_id, prompt, cancelled, created_at, completed_at "
                "FROM sessions WHERE session_id = ?",
                (session_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return DiscoverySession(
            session_id=row["session_id"],
            prompt=row["prompt"],
            cancelled=bool(row["cancelled"]),
            created_at=row["created_at"],
            completed_at=row["completed_at"],
        )

    async def mark_session_completed(self, session_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                f"UPDATE sessions SET completed_at = {_NOW_SQL} "
                "WHERE session_id = ? AND completed_at IS NULL",
                (session_id,),
            )
            await db.commit()
            return cursor.rowcount == 1

    async def mark_session_cancelled(self, session_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE sessions SET cancelled = 1 WHERE session_id = ?",
                (session_id,),
            )
            await db.commit()
            return cursor.rowcount == 1

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def insert_task(self, session_id: str, search_term: str) -> SearchTask:
        async with self._connect() as db:
            cursor = await db.execute(
                "INSERT INTO search_tasks (session_id, search_term) VALUES (?, ?)",
                (session_id, search_term),
            )
            task_id = cursor.lastrowid
            await db.commit()
            cursor = await db.execute(
                "SELECT id, session_id, search_term, status, created_at, updated_at "
                "FROM search_tasks WHERE id = ?",
                (task_id,),
            )
            row = await cursor.fetchone()
        return _row_to_task(row)

    async def get_task(self, task_id: int) -> SearchTask | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id, session_id, search_term, status, created_at, updated_at "
                "FROM search_tasks WHERE id = ?",
                (task_id,),
            )
            row = await cursor.fetchone()
        return _row_to_task(row) if row is not None else None

    async def mark_task_running(self, task_id: int) -> TaskStatus | None:
        async with self._connect() as db:
            await db.execute(
                f"UPDATE search_tasks SET status = ?, updated_at = {_NOW_SQL} "
                "WHERE id = ? AND status = ?",
                (TaskStatus.RUNNING.value, task_id, TaskStatus.PENDING.value),
            )
            await db.commit()
            cursor = await db.execute(
                "SELECT status FROM search_tasks WHERE id = ?",
                (task_id,),
            )
            row = await cursor.fetchone()
        return TaskStatus(row["status"]) if row is not None else None

    async def update_task_status(self, task_id: int, status: TaskStatus) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                f"UPDATE search_tasks SET status = ?, updated_at = {_NOW_SQL} "
                "WHERE id = ? AND status NOT IN (?, ?)",
                (status.value, task_id, *_TERMINAL_STATUSES),
            )
            await db.commit()
            changed = cursor.rowcount == 1
        if not changed:
            logger.debug("task_status_unchanged", task_id=task_id, requested=status.value)
        return changed

    async def query_outstanding_tasks(self, session_id: str) -> set[int]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id FROM search_tasks WHERE session_id = ? AND status IN (?, ?)",
                (session_id, *_OUTSTANDING_STATUSES),
            )
            rows = await cursor.fetchall()
        return {row["id"] for row in rows}

    async def list_stale_pending_tasks(self, older_than_seconds: float) -> list[SearchTask]:
        modifier = f"-{float(older_than_seconds)} seconds"
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id, session_id, search_term, status, created_at, updated_at "
                "FROM search_tasks "
                "WHERE status = ? "
                "AND updated_at <= strftime('%Y-%m-%dT%H:%M:%fZ', 'now', ?) "
                "ORDER BY id",
                (TaskStatus.PENDING.value, modifier),
            )
            rows = await cursor.fetchall()
        return [_row_to_task(r) for r in rows]

    # ------------------------------------------------------------------
    # Analysis records
    # ------------------------------------------------------------------

    async def analysis_exists(self, session_id: str, candidate_key: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT 1 FROM analysis_records "
                "WHERE session_id = ? AND candidate_key = ? LIMIT 1",
                (session_id, candidate_key),
            )
            return await cursor.fetchone() is not None

    async def insert_analysis_record(self, record: AnalysisRecord) -> None:
        async with self._connect() as db:
            try:
                await db.execute(
                    "INSERT INTO analysis_records "
                    "(session_id, search_task_id, candidate_key, candidate_url, "
                    " description, relevancy_score, reasoning, analyzed_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.session_id,
                        record.search_task_id,
                        record.candidate_key,
                        record.candidate_url,
                        record.description,
                        record.relevancy_score,
                        record.reasoning,
                        _to_text(record.analyzed_at),
                    ),
                )
                await db.commit()
            except sqlite3.IntegrityError as exc:
                raise DuplicateAnalysisError(
                    message=(
                        f"{record.candidate_key} already analyzed "
                        f"for session {record.session_id}"
                    ),
                    provider_name=self.get_provider_name(),
                ) from exc

    async def query_analysis_records(
        self,
        session_id: str,
        limit: int | None = None,
    ) -> list[AnalysisRecord]:
        sql = (
            "SELECT session_id, search_task_id, candidate_key, candidate_url, "
            "description, relevancy_score, reasoning, analyzed_at "
            "FROM analysis_records WHERE session_id = ? "
            "ORDER BY relevancy_score DESC, analyzed_at ASC, id ASC"
        )
        params: tuple = (session_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (session_id, limit)
        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [AnalysisRecord(**dict(r)) for r in rows]

    def get_provider_name(self) -> str:
        return "sqlite_discovery_store"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection with row access by name and a busy timeout."""
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                await db.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")
                yield db
        except sqlite3.OperationalError as exc:
            raise StoreError(
                message=f"SQLite operation failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc


def _to_text(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _row_to_task(row: aiosqlite.Row) -> SearchTask:
    return SearchTask(
        task_id=row["id"],
        session_id=row["session_id"],
        search_term=row["search_term"],
        status=TaskStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
