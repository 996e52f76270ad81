"""Abstract base class for the relational discovery store.

The store is the system of record for sessions, search tasks and analysis
records.  Every mutation is a single-purpose operation so that concurrent
workers never need a lock spanning more than one statement; the unique
constraint on ``(session_id, candidate_key)`` is the final guard against
duplicate analyses.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from reposcout.models.discovery import (
    AnalysisRecord,
    DiscoverySession,
    SearchTask,
    TaskStatus,
)


# Concrete implementation: SQLiteDiscoveryStore (reposcout/providers/store/)
class IDiscoveryStore(ABC):
    """Contract for persistence of discovery sessions."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    # -- Sessions ----------------------------------------------------------

    @abstractmethod
    async def insert_session(self, session: DiscoverySession) -> None:
        """Persist a new session row."""

    @abstractmethod
    async def get_session(self, session_id: str) -> DiscoverySession | None:
        """Return the session, or ``None`` if unknown."""

    @abstractmethod
    async def mark_session_completed(self, session_id: str) -> bool:
        """Record the terminal transition of a session.

        Returns ``True`` only for the call that actually set
        ``completed_at``; later calls are no-ops returning ``False``.
        """

    @abstractmethod
    async def mark_session_cancelled(self, session_id: str) -> bool:
        """Set the cancelled flag.  Returns ``False`` for unknown sessions."""

    # -- Tasks -------------------------------------------------------------

    @abstractmethod
    async def insert_task(self, session_id: str, search_term: str) -> SearchTask:
        """Insert a pending task and return it with its assigned id."""

    @abstractmethod
    async def get_task(self, task_id: int) -> SearchTask | None:
        """Return the task, or ``None`` if unknown."""

    @abstractmethod
    async def mark_task_running(self, task_id: int) -> TaskStatus | None:
        """Move a pending task to running.

        Returns the task's status after the call (``RUNNING`` for pending
        or already-running tasks, the terminal status otherwise), or
        ``None`` if the task does not exist.  Never leaves a terminal
        status.
        """

    @abstractmethod
    async def update_task_status(self, task_id: int, status: TaskStatus) -> bool:
        """Set a terminal or running status on a non-terminal task.

        Returns ``False`` when the task was already terminal (no change).
        """

    @abstractmethod
    async def query_outstanding_tasks(self, session_id: str) -> set[int]:
        """Return ids of the session's tasks with status pending or running."""

    @abstractmethod
    async def list_stale_pending_tasks(self, older_than_seconds: float) -> list[SearchTask]:
        """Return pending tasks not updated for at least *older_than_seconds*."""

    # -- Analysis records --------------------------------------------------

    @abstractmethod
    async def analysis_exists(self, session_id: str, candidate_key: str) -> bool:
        """Return ``True`` if a record exists for ``(session_id, candidate_key)``."""

    @abstractmethod
    async def insert_analysis_record(self, record: AnalysisRecord) -> None:
        """Insert an analysis record.

        Raises
        ------
        reposcout.utils.errors.DuplicateAnalysisError
            If a record for ``(session_id, candidate_key)`` already exists.
        """

    @abstractmethod
    async def query_analysis_records(
        self,
        session_id: str,
        limit: int | None = None,
    ) -> list[AnalysisRecord]:
        """Return the session's records, best first.

        Ordered by ``relevancy_score`` descending, ties broken by
        ``analyzed_at`` ascending (first analyzed wins).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
