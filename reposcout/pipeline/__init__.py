"""Orchestration components for the repository discovery pipeline."""

from reposcout.pipeline.queue_consumer import QueueConsumer
from reposcout.pipeline.session_owner import SessionOwner
from reposcout.pipeline.task_dispatcher import TaskDispatcher

__all__ = [
    "QueueConsumer",
    "SessionOwner",
    "TaskDispatcher",
]
