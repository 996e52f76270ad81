"""Per-session owner of the outstanding task set.

The session owner is the single writer for a session's lifecycle.  It
starts sessions, receives ``task_complete`` callbacks from queue
consumers, and answers status queries.

Serialization
-------------
Every mutation for one session runs under that session's lock from
:class:`~reposcout.utils.concurrency.KeyedLocks`, so two simultaneous
``task_complete`` calls can never both see a non-empty set and race past
the "became terminal" transition.  Across processes, the transition is
additionally guarded by the store: ``mark_session_completed`` only
succeeds for the call that actually sets ``completed_at``.

Cache
-----
``self._outstanding`` maps session id to the task ids still pending or
running.  It is a cache.  The store is the source of truth, and the set
is rehydrated from it (tasks with status pending or running) on first use
after a restart and on every status read, so tasks finished by consumers
in other processes are observed.  Entries are dropped once a session turns
terminal.
"""

from __future__ import annotations

import uuid

from reposcout.interfaces.discovery_store import IDiscoveryStore
from reposcout.models.discovery import (
    DiscoverySession,
    SessionStatus,
    SessionStatusReport,
)
from reposcout.pipeline.task_dispatcher import TaskDispatcher
from reposcout.services.repository_analyzer import RepositoryAnalyzer
from reposcout.utils.concurrency import KeyedLocks
from reposcout.utils.errors import GenerationError, SessionNotFoundError
from reposcout.utils.logging import get_logger


class SessionOwner:
    """Starts discovery sessions and tracks their completion.

    Parameters
    ----------
    store:
        The relational store (system of record).
    dispatcher:
        Fans search terms out into queued tasks.
    analyzer:
        Derives search terms from the caller's prompt.
    max_search_terms:
        Upper bound K on derived terms per session.
    top_results:
        Number N of records returned by :meth:`get_status`.
    """

    def __init__(
        self,
        store: IDiscoveryStore,
        dispatcher: TaskDispatcher,
        analyzer: RepositoryAnalyzer,
        max_search_terms: int = 5,
        top_results: int = 10,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._analyzer = analyzer
        self._max_search_terms = max_search_terms
        self._top_results = top_results
        self._locks = KeyedLocks()
        self._outstanding: dict[str, set[int]] = {}
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self, prompt: str) -> str:
        """Create a session for *prompt* and fan it out.

        Returns as soon as every task is dispatched; it does not wait for
        any of them to run.

        Raises
        ------
        GenerationError
            If no usable search terms could be derived.  The session has
            already been persisted and marked completed with no results;
            the exception's ``session_id`` identifies it.
        """
        session = DiscoverySession(session_id=uuid.uuid4().hex, prompt=prompt)
        session_id = session.session_id
        await self._store.insert_session(session)
        self._logger.info("session_created", session_id=session_id)

        try:
            terms = await self._analyzer.generate_search_terms(
                prompt, max_terms=self._max_search_terms
            )
        except GenerationError as exc:
            await self._store.mark_session_completed(session_id)
            self._logger.warning(
                "session_generation_failed",
                session_id=session_id,
                error=str(exc),
            )
            raise GenerationError(
                message=exc.message,
                provider_name=exc.provider_name,
                session_id=session_id,
            ) from exc

        # Consumers finishing early block on this lock until the initial
        # set is recorded.
        async with self._locks.hold(session_id):
            task_ids = set(await self._dispatcher.dispatch_all(session_id, terms))
            self._outstanding[session_id] = task_ids

        self._logger.info(
            "session_started",
            session_id=session_id,
            task_count=len(task_ids),
        )
        return session_id

    async def task_complete(self, session_id: str, task_id: int) -> bool:
        """Remove *task_id* from the session's outstanding set.

        Idempotent: removing an id that is already gone is a no-op.

        Returns
        -------
        bool
            ``True`` only for the call that moved the session to completed.
        """
        async with self._locks.hold(session_id):
            outstanding = self._outstanding.get(session_id)
            if outstanding is None:
                outstanding = await self._store.query_outstanding_tasks(session_id)
                self._outstanding[session_id] = outstanding
            outstanding.discard(task_id)
            if outstanding:
                self._logger.debug(
                    "task_complete",
                    session_id=session_id,
                    task_id=task_id,
                    remaining=len(outstanding),
                )
                return False

            # The cache says empty; confirm before the terminal transition.
            remaining = await self._store.query_outstanding_tasks(session_id)
            if remaining:
                self._outstanding[session_id] = remaining
                return False

            self._outstanding.pop(session_id, None)
            became_terminal = await self._store.mark_session_completed(session_id)
            if became_terminal:
                self._logger.info("session_completed", session_id=session_id)
            return became_terminal

    async def get_status(self, session_id: str) -> SessionStatusReport:
        """Return ``pending`` or ``completed`` plus the top-ranked records.

        Raises
        ------
        SessionNotFoundError
            If *session_id* is unknown.
        """
        session = await self._store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(message=f"Session {session_id} not found")

        async with self._locks.hold(session_id):
            # The store's task rows decide, not completed_at.
            outstanding = await self._store.query_outstanding_tasks(session_id)
            if outstanding:
                self._outstanding[session_id] = outstanding
                return SessionStatusReport(
                    session_id=session_id,
                    status=SessionStatus.PENDING,
                    outstanding_tasks=len(outstanding),
                )
            self._outstanding.pop(session_id, None)

            if session.completed_at is None:
                # Last task finished under another process's owner before
                # it could record the transition.
                if await self._store.mark_session_completed(session_id):
                    self._logger.info("session_completed", session_id=session_id)

        results = await self._store.query_analysis_records(
            session_id, limit=self._top_results
        )
        return SessionStatusReport(
            session_id=session_id,
            status=SessionStatus.COMPLETED,
            results=results,
        )

    async def cancel(self, session_id: str) -> None:
        """Flag *session_id* as cancelled.

        Tasks not yet searched are failed by the consumer; the session
        still completes once every task is terminal.

        Raises
        ------
        SessionNotFoundError
            If *session_id* is unknown.
        """
        if not await self._store.mark_session_cancelled(session_id):
            raise SessionNotFoundError(message=f"Session {session_id} not found")
        self._logger.info("session_cancelled", session_id=session_id)
