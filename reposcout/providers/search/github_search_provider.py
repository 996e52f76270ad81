"""GitHub repository search provider implementing IRepositorySearchProvider.

Issues one GET against the REST ``/search/repositories`` endpoint per call
and maps the ``items`` array onto :class:`RepositoryCandidate` models.

Failures are classified rather than swallowed, so the search executor can
decide what to retry:

    403 / 429            -> RateLimitError
    5xx, network errors  -> ProviderUnavailableError
    anything else        -> ResearchError

An ``httpx.AsyncClient`` is injected for connection pooling and so tests
can swap in an ``httpx.MockTransport``.
"""

from __future__ import annotations

from typing import Any

import httpx

from reposcout.interfaces.repository_search_provider import IRepositorySearchProvider
from reposcout.models.discovery import RepositoryCandidate
from reposcout.utils.errors import ProviderUnavailableError, RateLimitError, ResearchError
from reposcout.utils.logging import get_logger

_DEFAULT_API_URL = "https://api.github.com"
_MAX_PER_PAGE = 100  # GitHub's hard ceiling for per_page


class GitHubSearchProvider(IRepositorySearchProvider):
    """Repository search against the GitHub REST API.

    Parameters
    ----------
    http_client:
        Injected ``httpx.AsyncClient``; the caller owns its lifecycle.
    token:
        Optional personal access token.  Anonymous search works but is
        limited to 10 requests per minute.
    api_url:
        Base URL, overridable for GitHub Enterprise.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token: str = "",
        api_url: str = _DEFAULT_API_URL,
    ) -> None:
        self._client = http_client
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._logger = get_logger(__name__)

    async def search(
        self,
        query: str,
        num_results: int = 10,
    ) -> list[RepositoryCandidate]:
        per_page = max(1, min(num_results, _MAX_PER_PAGE))
        try:
            response = await self._client.get(
                f"{self._api_url}/search/repositories",
                params={"q": query, "per_page": per_page},
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(
                message=f"GitHub request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        status = response.status_code
        if status in (403, 429):
            self._logger.warning(
                "github_rate_limited",
                query=query,
                status=status,
                remaining=response.headers.get("x-ratelimit-remaining"),
            )
            raise RateLimitError(
                message=f"GitHub search throttled (HTTP {status})",
                provider_name=self.get_provider_name(),
            )
        if status >= 500:
            raise ProviderUnavailableError(
                message=f"GitHub search returned HTTP {status}",
                provider_name=self.get_provider_name(),
            )
        if status != 200:
            raise ResearchError(
                message=f"GitHub search rejected query {query!r} (HTTP {status})",
                provider_name=self.get_provider_name(),
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ResearchError(
                message="GitHub search returned a non-JSON body",
                provider_name=self.get_provider_name(),
            ) from exc

        items = payload.get("items") or []
        candidates = [
            c for c in (self._parse_item(item) for item in items[:num_results]) if c is not None
        ]
        self._logger.debug(
            "github_search_complete",
            query=query,
            total_count=payload.get("total_count"),
            result_count=len(candidates),
        )
        return candidates

    def get_provider_name(self) -> str:
        return "github"

    def is_available(self) -> bool:
        """GitHub search works anonymously, so the provider is always usable."""
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _parse_item(item: dict[str, Any]) -> RepositoryCandidate | None:
        full_name = item.get("full_name")
        html_url = item.get("html_url")
        if not full_name or not html_url:
            return None
        return RepositoryCandidate(
            full_name=full_name,
            html_url=html_url,
            description=item.get("description"),
            stargazers_count=item.get("stargazers_count") or 0,
            language=item.get("language"),
            topics=item.get("topics") or [],
        )
