"""Fan-in half of the discovery pipeline.

A :class:`QueueConsumer` drains search-task messages, runs the search and
the relevance analysis for each, and reports completion to the session
owner.  Many consumers may run at once, as tasks in one process or as
separate worker processes sharing the same store and queue files.

Per delivery:

  1. Mark the task running.  A task that is already completed or failed
     is a redelivery: report it complete again (an idempotent no-op) and
     ack without reprocessing.  Unknown task ids are acked and dropped.
  2. A cancelled session fails the task instead of searching.
  3. Search.  ``SearchUnavailableError`` fails the task.
  4. Drop candidates repeated within the batch, then candidates that
     already have a record in this session.
  5. Score the rest and insert records.  A unique-constraint hit means a
     sibling task got there first and is not an error.
  6. Mark the task completed and report it to the session owner.

The message is acknowledged only after the task has reached a terminal
status and the owner has been told.  Any unexpected exception leaves it
unacknowledged, and the queue redelivers it after the visibility timeout.
"""

from __future__ import annotations

import asyncio

from reposcout.interfaces.discovery_store import IDiscoveryStore
from reposcout.interfaces.task_queue import ITaskQueue
from reposcout.models.discovery import (
    AnalysisRecord,
    QueueDelivery,
    RepositoryCandidate,
    SearchTaskMessage,
    TaskStatus,
)
from reposcout.pipeline.session_owner import SessionOwner
from reposcout.services.repository_analyzer import RepositoryAnalyzer
from reposcout.services.search_executor import SearchExecutor
from reposcout.utils.concurrency import throttled_gather
from reposcout.utils.errors import (
    DuplicateAnalysisError,
    RepoScoutError,
    SearchUnavailableError,
)
from reposcout.utils.logging import get_logger


class QueueConsumer:
    """Processes queued search tasks end to end.

    Parameters
    ----------
    store:
        The relational store.
    queue:
        The work queue to drain.
    search_executor:
        Runs one search term with retry.
    analyzer:
        Scores candidates.
    session_owner:
        Receives ``task_complete`` callbacks.
    batch_size:
        Default number of messages requested per :meth:`drain_once`.
    consumer_concurrency:
        How many deliveries of one batch are processed at once.
    analysis_concurrency:
        How many candidates of one task are scored at once.
    """

    def __init__(
        self,
        store: IDiscoveryStore,
        queue: ITaskQueue,
        search_executor: SearchExecutor,
        analyzer: RepositoryAnalyzer,
        session_owner: SessionOwner,
        batch_size: int = 10,
        consumer_concurrency: int = 5,
        analysis_concurrency: int = 3,
    ) -> None:
        self._store = store
        self._queue = queue
        self._search_executor = search_executor
        self._analyzer = analyzer
        self._session_owner = session_owner
        self._batch_size = batch_size
        self._consumer_semaphore = asyncio.Semaphore(max(1, consumer_concurrency))
        self._analysis_concurrency = max(1, analysis_concurrency)
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def drain_once(self, max_messages: int | None = None) -> int:
        """Receive one batch and process it.

        Returns
        -------
        int
            Number of deliveries received (acknowledged or not).
        """
        deliveries = await self._queue.receive(max_messages or self._batch_size)
        if not deliveries:
            return 0

        results = await throttled_gather(
            [self.process(d) for d in deliveries],
            self._consumer_semaphore,
        )
        for delivery, result in zip(deliveries, results):
            if isinstance(result, BaseException):
                self._logger.error(
                    "task_processing_failed",
                    session_id=delivery.message.session_id,
                    task_id=delivery.message.task_id,
                    receive_count=delivery.receive_count,
                    error=str(result),
                    error_type=type(result).__name__,
                )
        return len(deliveries)

    async def run(self, stop_event: asyncio.Event, poll_interval: float = 1.0) -> None:
        """Drain the queue until *stop_event* is set.

        Sleeps *poll_interval* seconds (or until stopped) whenever the
        queue comes back empty or a poll fails.  Store and queue errors are
        logged and retried on the next poll.
        """
        self._logger.info("consumer_started", batch_size=self._batch_size)
        while not stop_event.is_set():
            try:
                received = await self.drain_once()
            except RepoScoutError as exc:
                self._logger.error(
                    "consumer_poll_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                received = 0
            if received:
                continue
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                pass
        self._logger.info("consumer_stopped")

    # ------------------------------------------------------------------
    # Per-delivery processing
    # ------------------------------------------------------------------

    async def process(self, delivery: QueueDelivery) -> None:
        """Run one delivery through the task lifecycle and ack it.

        Exceptions other than the handled task-level failures propagate,
        leaving the message unacknowledged.
        """
        message = delivery.message
        session_id, task_id = message.session_id, message.task_id

        status = await self._store.mark_task_running(task_id)
        if status is None:
            self._logger.warning("unknown_task_dropped", session_id=session_id, task_id=task_id)
            await self._queue.ack(delivery)
            return
        if status.is_terminal:
            self._logger.info(
                "task_redelivered",
                session_id=session_id,
                task_id=task_id,
                status=status.value,
            )
            await self._finish(delivery, status=None)
            return

        session = await self._store.get_session(session_id)
        if session is None or session.cancelled:
            self._logger.info("task_skipped_cancelled", session_id=session_id, task_id=task_id)
            await self._finish(delivery, status=TaskStatus.FAILED)
            return

        try:
            candidates = await self._search_executor.execute(message.search_term)
        except SearchUnavailableError as exc:
            self._logger.warning(
                "task_search_failed",
                session_id=session_id,
                task_id=task_id,
                error=str(exc),
            )
            await self._finish(delivery, status=TaskStatus.FAILED)
            return

        fresh = await self._filter_new_candidates(session_id, candidates)
        inserted = await self._analyze_candidates(message, fresh)

        self._logger.info(
            "task_analyzed",
            session_id=session_id,
            task_id=task_id,
            found=len(candidates),
            analyzed=len(fresh),
            inserted=inserted,
        )
        await self._finish(delivery, status=TaskStatus.COMPLETED)

    async def _finish(self, delivery: QueueDelivery, status: TaskStatus | None) -> None:
        """Record the terminal status (if any), notify the owner, then ack."""
        message = delivery.message
        if status is not None:
            await self._store.update_task_status(message.task_id, status)
            self._logger.info(
                "task_completed" if status is TaskStatus.COMPLETED else "task_failed",
                session_id=message.session_id,
                task_id=message.task_id,
            )
        await self._session_owner.task_complete(message.session_id, message.task_id)
        await self._queue.ack(delivery)

    async def _filter_new_candidates(
        self,
        session_id: str,
        candidates: list[RepositoryCandidate],
    ) -> list[RepositoryCandidate]:
        unique: dict[str, RepositoryCandidate] = {}
        for candidate in candidates:
            unique.setdefault(candidate.key, candidate)

        fresh: list[RepositoryCandidate] = []
        for key, candidate in unique.items():
            if await self._store.analysis_exists(session_id, key):
                self._logger.debug("candidate_already_analyzed", session_id=session_id, key=key)
                continue
            fresh.append(candidate)
        return fresh

    async def _analyze_candidates(
        self,
        message: SearchTaskMessage,
        candidates: list[RepositoryCandidate],
    ) -> int:
        if not candidates:
            return 0
        semaphore = asyncio.Semaphore(self._analysis_concurrency)
        results = await throttled_gather(
            [self._analyze_one(message, c) for c in candidates],
            semaphore,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return sum(1 for r in results if r)

    async def _analyze_one(
        self,
        message: SearchTaskMessage,
        candidate: RepositoryCandidate,
    ) -> bool:
        """Score *candidate* and persist it.  Returns ``False`` if a sibling won."""
        relevancy_score, reasoning = await self._analyzer.assess(
            candidate, message.search_term
        )
        record = AnalysisRecord(
            session_id=message.session_id,
            search_task_id=message.task_id,
            candidate_key=candidate.key,
            candidate_url=candidate.html_url,
            description=candidate.description,
            relevancy_score=relevancy_score,
            reasoning=reasoning,
        )
        try:
            await self._store.insert_analysis_record(record)
        except DuplicateAnalysisError:
            self._logger.debug(
                "candidate_analyzed_concurrently",
                session_id=message.session_id,
                key=candidate.key,
            )
            return False
        return True
