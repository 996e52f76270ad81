"""Fan-out half of the discovery pipeline.

One :class:`SearchTask` row per search term, then exactly one enqueue per
task keyed ``search-{task_id}``.  Every row of a session is written before
the first message is queued, so a consumer can never see a partial task
set and complete the session early.  Because the queue ignores a key that is
already queued, re-dispatching the same task (from a retrying caller or
from :meth:`TaskDispatcher.sweep_stale`) never produces a second in-flight
message.

Dispatch never fails after the row insert: if the enqueue raises, the task
stays ``pending`` without a message, and the periodic sweep picks it up.
"""

from __future__ import annotations

from reposcout.interfaces.discovery_store import IDiscoveryStore
from reposcout.interfaces.task_queue import ITaskQueue
from reposcout.models.discovery import SearchTask, SearchTaskMessage
from reposcout.utils.errors import QueueError
from reposcout.utils.logging import get_logger


class TaskDispatcher:
    """Persists search tasks and enqueues their messages."""

    def __init__(self, store: IDiscoveryStore, queue: ITaskQueue) -> None:
        self._store = store
        self._queue = queue
        self._logger = get_logger(__name__)

    async def dispatch(self, session_id: str, search_term: str) -> int:
        """Insert a pending task for *search_term* and enqueue it.

        Returns
        -------
        int
            The new task id, whether or not the enqueue succeeded.
        """
        [task_id] = await self.dispatch_all(session_id, [search_term])
        return task_id

    async def dispatch_all(self, session_id: str, search_terms: list[str]) -> list[int]:
        """Insert a pending task per term, then enqueue each of them.

        Returns
        -------
        list[int]
            The new task ids in term order, whether or not each enqueue
            succeeded.
        """
        tasks = [
            await self._store.insert_task(session_id, term) for term in search_terms
        ]
        for task in tasks:
            await self._enqueue(task)
        return [task.task_id for task in tasks]

    async def sweep_stale(self, older_than_seconds: float) -> int:
        """Re-enqueue tasks stuck ``pending`` for at least *older_than_seconds*.

        Tasks whose message is still queued are unaffected, the queue
        treats their key as a duplicate.

        Returns
        -------
        int
            Number of tasks for which an enqueue was attempted.
        """
        stale = await self._store.list_stale_pending_tasks(older_than_seconds)
        for task in stale:
            await self._enqueue(task)
        if stale:
            self._logger.info(
                "stale_tasks_swept",
                count=len(stale),
                older_than_seconds=older_than_seconds,
            )
        return len(stale)

    async def _enqueue(self, task: SearchTask) -> bool:
        message = SearchTaskMessage(
            session_id=task.session_id,
            task_id=task.task_id,
            search_term=task.search_term,
        )
        try:
            stored = await self._queue.enqueue(message, dedup_key=message.dedup_key)
        except QueueError as exc:
            self._logger.error(
                "task_enqueue_failed",
                session_id=task.session_id,
                task_id=task.task_id,
                error=str(exc),
            )
            return False

        self._logger.debug(
            "task_dispatched" if stored else "task_already_queued",
            session_id=task.session_id,
            task_id=task.task_id,
            search_term=task.search_term,
        )
        return stored
