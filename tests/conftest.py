"""Shared pytest fixtures for the RepoScout test suite."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from reposcout.interfaces.llm_provider import ILLMProvider
from reposcout.interfaces.repository_search_provider import IRepositorySearchProvider
from reposcout.models.discovery import RelevanceAssessment, RepositoryCandidate
from reposcout.providers.queue.sqlite_task_queue import SQLiteTaskQueue
from reposcout.providers.store.sqlite_discovery_store import SQLiteDiscoveryStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_candidate(full_name: str, description: str | None = None, **kwargs: Any) -> RepositoryCandidate:
    """Build a RepositoryCandidate with a matching GitHub URL."""
    return RepositoryCandidate(
        full_name=full_name,
        html_url=f"https://github.com/{full_name}",
        description=description or f"{full_name} description",
        **kwargs,
    )


def scripted_complete(terms: list[str], reasoning: str = "Relevant enough. Score: 0.5"):
    """Side effect for ``llm.complete`` serving both term generation and scoring."""

    async def _complete(system_prompt: str, user_prompt: str, **kwargs: Any) -> str:
        if "search queries" in system_prompt:
            return "\n".join(terms)
        return reasoning

    return _complete


class FakeSearchProvider(IRepositorySearchProvider):
    """Scripted search provider.

    ``results`` maps a search term to either a list of candidates or an
    exception instance raised on every call for that term.  Unknown terms
    return no candidates.
    """

    def __init__(self, results: dict[str, list[RepositoryCandidate] | Exception] | None = None) -> None:
        self.results = results or {}
        self.calls: list[str] = []

    async def search(self, query: str, num_results: int = 10) -> list[RepositoryCandidate]:
        self.calls.append(query)
        outcome = self.results.get(query, [])
        if isinstance(outcome, Exception):
            raise outcome
        return list(outcome)[:num_results]

    def get_provider_name(self) -> str:
        return "fake_search"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _restore_logging_config():
    """Undo logging configuration made during a test.

    ``configure_logging`` binds structlog and the root handler to whatever
    stream is current; under ``capsys`` that stream is closed once the test
    ends, which would break logging in every later test.
    """
    structlog_config = structlog.get_config()
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    structlog.configure(**structlog_config)
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
async def store(tmp_path: Path) -> SQLiteDiscoveryStore:
    """An initialised discovery store backed by a temp file."""
    s = SQLiteDiscoveryStore(db_path=tmp_path / "discovery.db")
    await s.initialize()
    return s


@pytest.fixture
async def queue(tmp_path: Path) -> SQLiteTaskQueue:
    """An initialised task queue backed by a temp file."""
    q = SQLiteTaskQueue(db_path=tmp_path / "queue.db", visibility_timeout=60.0)
    await q.initialize()
    return q


@pytest.fixture
def mock_llm() -> MagicMock:
    """An ILLMProvider mock whose structured calls return a 0.5 score."""
    llm = MagicMock(spec=ILLMProvider)
    llm.complete = AsyncMock(return_value="Looks moderately relevant. Score: 0.5")
    llm.complete_structured = AsyncMock(
        return_value=RelevanceAssessment(relevancy_score=0.5, reasoning="moderately relevant")
    )
    llm.get_provider_name.return_value = "mock_llm"
    llm.is_available.return_value = True
    return llm
