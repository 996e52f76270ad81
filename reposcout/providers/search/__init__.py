"""Repository-search provider implementations.

Currently only GitHub's REST search API.  Another code host could be
added here behind IRepositorySearchProvider; the search executor would
pick it up transparently via dependency injection.
"""

from reposcout.providers.search.github_search_provider import GitHubSearchProvider

__all__ = ["GitHubSearchProvider"]
