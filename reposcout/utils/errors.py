"""Custom exception hierarchy for RepoScout.

All application exceptions inherit from :class:`RepoScoutError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "github", "sqlite") caused the failure.

The hierarchy is organized by pipeline concern:

    RepoScoutError  (base -- catch-all for any RepoScout error)
    +-- GenerationError          (no usable search terms for a prompt)
    +-- SearchUnavailableError   (search retries exhausted for one task)
    +-- AnalysisDegradedError    (structuring stage failed; logged only)
    +-- DuplicateAnalysisError   (unique (session, candidate) violated)
    +-- SessionNotFoundError     (status/cancel on an unknown session)
    +-- ResearchError            (a single search call failed)
    +-- LLMError                 (any LLM API call failure)
    +-- RateLimitError           (provider rate-limit exceeded)
    +-- ProviderUnavailableError (external service down / unreachable)
    +-- StoreError               (relational store failure)
    +-- QueueError               (work queue failure)
    +-- ConfigurationError       (startup / missing config)

Only ``GenerationError`` and ``SessionNotFoundError`` ever reach a caller
of the front door.  Everything else degrades to a smaller or zero-scored
result inside the pipeline.
"""


class RepoScoutError(Exception):
    """Base exception for all RepoScout errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[github] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Session / fan-out errors
# ---------------------------------------------------------------------------

class GenerationError(RepoScoutError):
    """Raised when a prompt yields no usable search terms.

    The session has already been persisted and marked terminal with an
    empty result set when this is raised; ``session_id`` lets the caller
    still hand the id back to its client.
    """

    def __init__(
        self,
        message: str = "No usable search terms could be generated",
        provider_name: str | None = None,
        session_id: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._session_id = session_id

    @property
    def session_id(self) -> str | None:
        return self._session_id


class SessionNotFoundError(RepoScoutError):
    """Raised when a session id is not present in the store."""

    def __init__(
        self,
        message: str = "Session not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Search errors
# ---------------------------------------------------------------------------

class ResearchError(RepoScoutError):
    """Raised when a single repository search call fails."""

    def __init__(
        self,
        message: str = "Repository search failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class SearchUnavailableError(RepoScoutError):
    """Raised by the search executor once every attempt has failed.

    The queue consumer treats this as a terminal task failure, never as
    a reason to redeliver the message.
    """

    def __init__(
        self,
        message: str = "Repository search unavailable after retries",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Analysis errors
# ---------------------------------------------------------------------------

class AnalysisDegradedError(RepoScoutError):
    """The structuring stage failed and scoring fell back to text parsing.

    Constructed for logging only; the analyzer never raises it.
    """

    def __init__(
        self,
        message: str = "Structured relevance assessment failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DuplicateAnalysisError(RepoScoutError):
    """Raised when an analysis record already exists for (session, candidate).

    Expected under races between sibling tasks; callers treat it as
    "already analyzed".
    """

    def __init__(
        self,
        message: str = "Candidate already analyzed for this session",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service / provider errors
# ---------------------------------------------------------------------------

class ProviderUnavailableError(RepoScoutError):
    """Raised when an external service or provider is unreachable."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(RepoScoutError):
    """Raised when an API rate limit is exceeded.

    The search executor retries these with backoff.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(RepoScoutError):
    """Raised when an LLM API call fails or returns an unparseable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Storage / queue / configuration errors
# ---------------------------------------------------------------------------

class StoreError(RepoScoutError):
    """Raised when the relational store rejects or fails an operation."""

    def __init__(
        self,
        message: str = "Discovery store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class QueueError(RepoScoutError):
    """Raised when the work queue fails to enqueue, receive, or ack."""

    def __init__(
        self,
        message: str = "Task queue operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(RepoScoutError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
