"""Abstract base class for repository search providers.

Defines the contract for a single search against a code-hosting platform.
The GitHub REST search API is the only implementation today; the adapter
keeps the search executor provider-agnostic and lets tests inject fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from reposcout.models.discovery import RepositoryCandidate


# Concrete implementation: GitHubSearchProvider (reposcout/providers/search/)
class IRepositorySearchProvider(ABC):
    """Contract for repository search services.

    A provider performs exactly one request per call.  Retrying is the
    search executor's job.
    """

    @abstractmethod
    async def search(
        self,
        query: str,
        num_results: int = 10,
    ) -> list[RepositoryCandidate]:
        """Execute a repository search and return the top results.

        Parameters
        ----------
        query:
            The search query string (provider query syntax allowed).
        num_results:
            Maximum number of candidates to return.

        Returns
        -------
        list[RepositoryCandidate]
            Zero or more candidates ordered by the provider's relevance.

        Raises
        ------
        reposcout.utils.errors.RateLimitError
            If the provider throttled the request.
        reposcout.utils.errors.ProviderUnavailableError
            If the provider could not be reached or returned a server error.
        reposcout.utils.errors.ResearchError
            For any other unusable response.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"github"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
