"""Domain models for repository discovery sessions.

Defines Pydantic v2 models for sessions, search tasks, analysis records,
search candidates and queue payloads.  All models use frozen config;
state transitions happen in the store, and the models are snapshots of a
row at read time.

The outstanding-task set of a session is never stored as a column.  It is
always derivable as "tasks of this session with status pending or
running", which is what lets the session owner rebuild its in-memory
cache after a crash.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class TaskStatus(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Lifecycle of a single search task.

    pending --consumer picks it up--> running --success--> completed
    running --search retries exhausted--> failed

    No transition leaves COMPLETED or FAILED.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class SessionStatus(str, Enum):  # noqa: UP042
    """Caller-visible status of a discovery session."""

    PENDING = "pending"
    COMPLETED = "completed"


class DiscoverySession(BaseModel):
    """One caller-initiated discovery request."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    prompt: str
    created_at: datetime = Field(default_factory=_utcnow)
    # Set exactly once, when the outstanding set first becomes empty.
    completed_at: datetime | None = None
    cancelled: bool = False


class SearchTask(BaseModel):
    """One unit of fan-out work covering a single derived search term."""

    model_config = ConfigDict(frozen=True)

    task_id: int
    session_id: str
    search_term: str
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class RepositoryCandidate(BaseModel):
    """A repository surfaced by a search, prior to relevance scoring."""

    model_config = ConfigDict(frozen=True)

    full_name: str
    html_url: str
    description: str | None = None
    stargazers_count: int = 0
    language: str | None = None
    topics: list[str] = Field(default_factory=list)

    @property
    def key(self) -> str:
        """Stable identifier used for per-session deduplication."""
        return self.full_name


class AnalysisRecord(BaseModel):
    """The relevance verdict for one candidate within one session.

    At most one record exists per ``(session_id, candidate_key)``.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    search_task_id: int
    candidate_key: str
    candidate_url: str
    description: str | None = None
    relevancy_score: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    analyzed_at: datetime = Field(default_factory=_utcnow)


class RelevanceAssessment(BaseModel):
    """Output schema the structuring model is constrained to.

    ``relevancy_score`` is deliberately unbounded here; models are not
    trusted to respect ranges, so clamping happens in the analyzer.
    """

    relevancy_score: float = Field(
        description="How relevant the repository is to the search term, from 0.0 to 1.0"
    )
    reasoning: str = Field(description="One or two sentences justifying the score")


class SearchTaskMessage(BaseModel):
    """Queue payload for one search task."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    task_id: int
    search_term: str

    @property
    def dedup_key(self) -> str:
        return f"search-{self.task_id}"


class QueueDelivery(BaseModel):
    """A single delivery of a queued message to a consumer.

    ``receipt`` identifies this particular delivery; acknowledging with a
    receipt from an earlier, expired delivery is a no-op.
    """

    model_config = ConfigDict(frozen=True)

    message_id: int
    message: SearchTaskMessage
    receipt: str
    receive_count: int = 1


class SessionStatusReport(BaseModel):
    """Answer to a status query for one session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    status: SessionStatus
    results: list[AnalysisRecord] = Field(default_factory=list)
    outstanding_tasks: int = 0
