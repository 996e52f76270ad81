"""SQLite-backed at-least-once work queue.

A single ``queue_messages`` table holds every undelivered or in-flight
message.  Receiving a message pushes its ``visible_at`` timestamp into the
future by the visibility timeout and stamps a fresh receipt token; a
message that is not acknowledged before ``visible_at`` passes becomes
receivable again, by any consumer, under a new receipt.  Acknowledging
deletes the row, but only if the receipt still matches, so a consumer that
overran its timeout cannot delete a message someone else now owns.

``dedup_key`` is UNIQUE, which makes re-enqueueing a still-queued task a
no-op.  Once a message is acknowledged its key is free again.
"""

from __future__ import annotations

import sqlite3
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite
import structlog

from reposcout.interfaces.task_queue import ITaskQueue
from reposcout.models.discovery import QueueDelivery, SearchTaskMessage
from reposcout.utils.errors import QueueError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/task_queue.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS queue_messages (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    dedup_key      TEXT    NOT NULL UNIQUE,
    body           TEXT    NOT NULL,
    enqueued_at    REAL    NOT NULL,
    visible_at     REAL    NOT NULL,
    receive_count  INTEGER NOT NULL DEFAULT 0,
    receipt        TEXT
);
"""

_CREATE_INDEX_SQL = (
    "CREATE INDEX IF NOT EXISTS idx_queue_visible ON queue_messages(visible_at);"
)


class SQLiteTaskQueue(ITaskQueue):
    """Visibility-timeout queue over a SQLite file.

    Parameters
    ----------
    db_path:
        Path to the queue database file.
    visibility_timeout:
        Seconds a received message stays hidden before it is redelivered.
    busy_timeout_ms:
        How long a connection waits on a locked database before failing.
    """

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        visibility_timeout: float = 300.0,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self._db_path = Path(db_path)
        self._visibility_timeout = visibility_timeout
        self._busy_timeout_ms = busy_timeout_ms

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute(_CREATE_TABLE_SQL)
            await db.execute(_CREATE_INDEX_SQL)
        logger.info(
            "task_queue_initialized",
            path=str(self._db_path),
            visibility_timeout=self._visibility_timeout,
        )

    async def enqueue(self, message: SearchTaskMessage, dedup_key: str) -> bool:
        now = time.time()
        async with self._connect() as db:
            cursor = await db.execute(
                "INSERT OR IGNORE INTO queue_messages "
                "(dedup_key, body, enqueued_at, visible_at) VALUES (?, ?, ?, ?)",
                (dedup_key, message.model_dump_json(), now, now),
            )
            stored = cursor.rowcount == 1
        if not stored:
            logger.debug("enqueue_deduplicated", dedup_key=dedup_key)
        return stored

    async def receive(self, max_messages: int = 10) -> list[QueueDelivery]:
        if max_messages <= 0:
            return []
        now = time.time()
        receipt = uuid.uuid4().hex
        async with self._connect() as db:
            # IMMEDIATE takes the write lock up front, so two consumers
            # can never select the same visible rows.
            await db.execute("BEGIN IMMEDIATE")
            try:
                cursor = await db.execute(
                    "SELECT id FROM queue_messages WHERE visible_at <= ? "
                    "ORDER BY id LIMIT ?",
                    (now, max_messages),
                )
                ids = [row["id"] for row in await cursor.fetchall()]
                if not ids:
                    await db.execute("COMMIT")
                    return []
                placeholders = ",".join("?" for _ in ids)
                await db.execute(
                    "UPDATE queue_messages "
                    "SET visible_at = ?, receipt = ?, receive_count = receive_count + 1 "
                    f"WHERE id IN ({placeholders})",
                    (now + self._visibility_timeout, receipt, *ids),
                )
                cursor = await db.execute(
                    "SELECT id, body, receive_count, receipt FROM queue_messages "
                    f"WHERE id IN ({placeholders}) ORDER BY id",
                    tuple(ids),
                )
                rows = await cursor.fetchall()
                await db.execute("COMMIT")
            except BaseException:
                await db.execute("ROLLBACK")
                raise

        deliveries = [
            QueueDelivery(
                message_id=row["id"],
                message=SearchTaskMessage.model_validate_json(row["body"]),
                receipt=row["receipt"],
                receive_count=row["receive_count"],
            )
            for row in rows
        ]
        redelivered = sum(1 for d in deliveries if d.receive_count > 1)
        logger.debug(
            "queue_received",
            count=len(deliveries),
            redelivered=redelivered,
        )
        return deliveries

    async def ack(self, delivery: QueueDelivery) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                "DELETE FROM queue_messages WHERE id = ? AND receipt = ?",
                (delivery.message_id, delivery.receipt),
            )
            acked = cursor.rowcount == 1
        if not acked:
            logger.warning(
                "ack_receipt_stale",
                message_id=delivery.message_id,
                task_id=delivery.message.task_id,
            )
        return acked

    async def depth(self) -> int:
        """Return the number of messages not yet acknowledged."""
        async with self._connect() as db:
            cursor = await db.execute("SELECT COUNT(*) AS n FROM queue_messages")
            row = await cursor.fetchone()
        return row["n"]

    def get_provider_name(self) -> str:
        return "sqlite_task_queue"

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open an autocommit connection; ``receive`` manages its own transaction."""
        try:
            async with aiosqlite.connect(str(self._db_path), isolation_level=None) as db:
                db.row_factory = aiosqlite.Row
                await db.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")
                yield db
        except sqlite3.Error as exc:
            raise QueueError(
                message=f"SQLite queue operation failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
