"""Abstract base class for the search-task work queue.

Delivery is at-least-once: a received message that is not acknowledged
within the provider's visibility timeout becomes receivable again.  No
ordering across messages is guaranteed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from reposcout.models.discovery import QueueDelivery, SearchTaskMessage


# Concrete implementation: SQLiteTaskQueue (reposcout/providers/queue/)
class ITaskQueue(ABC):
    """Contract for the work queue between dispatcher and consumers."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create backing storage if needed."""

    @abstractmethod
    async def enqueue(self, message: SearchTaskMessage, dedup_key: str) -> bool:
        """Enqueue *message* unless *dedup_key* is already queued.

        Returns ``True`` if a new message was stored, ``False`` if the key
        was a duplicate (a no-op).

        Raises
        ------
        reposcout.utils.errors.QueueError
            If the message could not be stored.
        """

    @abstractmethod
    async def receive(self, max_messages: int = 10) -> list[QueueDelivery]:
        """Claim up to *max_messages* visible messages.

        Claimed messages are hidden from other consumers until acknowledged
        or until the visibility timeout expires.
        """

    @abstractmethod
    async def ack(self, delivery: QueueDelivery) -> bool:
        """Remove a delivered message permanently.

        Returns ``False`` if the receipt is stale (the message was
        redelivered to someone else or already acknowledged).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this queue."""
