"""Bounded-retry wrapper around a single repository search.

The provider performs exactly one request per call and applies its own
request-level timeout.  This service owns the retry policy: up to
``max_attempts`` calls, sleeping ``backoff_base * attempt`` seconds between
them (1s then 2s with the defaults).  Sleeping uses :func:`asyncio.sleep`,
so a task that is backing off never stalls sibling tasks running on the
same consumer.
"""

from __future__ import annotations

import asyncio

from reposcout.interfaces.repository_search_provider import IRepositorySearchProvider
from reposcout.models.discovery import RepositoryCandidate
from reposcout.utils.errors import (
    ProviderUnavailableError,
    RateLimitError,
    ResearchError,
    SearchUnavailableError,
)
from reposcout.utils.logging import get_logger

_RETRYABLE_ERRORS = (ProviderUnavailableError, RateLimitError, ResearchError)


class SearchExecutor:
    """Execute one search term against the configured provider, with retry."""

    def __init__(
        self,
        search_provider: IRepositorySearchProvider,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        results_per_term: int = 10,
    ) -> None:
        """Initialise the executor.

        Parameters
        ----------
        search_provider:
            The repository search backend.
        max_attempts:
            Total number of calls before giving up (at least 1).
        backoff_base:
            Seconds multiplied by the attempt number to get the pause
            after that attempt fails.  ``0`` disables sleeping.
        results_per_term:
            Number of candidates requested per search.
        """
        self._provider = search_provider
        self._max_attempts = max(1, max_attempts)
        self._backoff_base = backoff_base
        self._results_per_term = results_per_term
        self._logger = get_logger(__name__)

    async def execute(self, search_term: str) -> list[RepositoryCandidate]:
        """Run *search_term* and return its candidates.

        Raises
        ------
        SearchUnavailableError
            When every attempt has failed with a retryable error.
        """
        provider_name = self._provider.get_provider_name()
        last_error: Exception | None = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                candidates = await self._provider.search(
                    search_term, num_results=self._results_per_term
                )
            except _RETRYABLE_ERRORS as exc:
                last_error = exc
                self._logger.warning(
                    "search_attempt_failed",
                    search_term=search_term,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error=str(exc),
                )
                if attempt < self._max_attempts and self._backoff_base > 0:
                    await asyncio.sleep(self._backoff_base * attempt)
                continue

            self._logger.info(
                "search_complete",
                search_term=search_term,
                attempt=attempt,
                result_count=len(candidates),
            )
            return candidates

        self._logger.error(
            "search_unavailable",
            search_term=search_term,
            attempts=self._max_attempts,
            error=str(last_error),
        )
        raise SearchUnavailableError(
            message=(
                f"Search for {search_term!r} failed after "
                f"{self._max_attempts} attempts: {last_error}"
            ),
            provider_name=provider_name,
        ) from last_error
