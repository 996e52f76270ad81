"""Utility modules for RepoScout.

- **errors** -- Domain exception hierarchy rooted at RepoScoutError.
- **concurrency** -- semaphore-throttled gather and per-key asyncio locks.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Domain exception hierarchy --------------------------------------------
from reposcout.utils.errors import (
    AnalysisDegradedError,
    ConfigurationError,
    DuplicateAnalysisError,
    GenerationError,
    LLMError,
    ProviderUnavailableError,
    QueueError,
    RateLimitError,
    RepoScoutError,
    ResearchError,
    SearchUnavailableError,
    SessionNotFoundError,
    StoreError,
)

# -- Async concurrency helpers ---------------------------------------------
from reposcout.utils.concurrency import KeyedLocks, throttled_gather

# -- Structured logging setup ----------------------------------------------
from reposcout.utils.logging import configure_logging, get_logger

__all__ = [
    "AnalysisDegradedError",
    "ConfigurationError",
    "DuplicateAnalysisError",
    "GenerationError",
    "KeyedLocks",
    "LLMError",
    "ProviderUnavailableError",
    "QueueError",
    "RateLimitError",
    "RepoScoutError",
    "ResearchError",
    "SearchUnavailableError",
    "SessionNotFoundError",
    "StoreError",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
