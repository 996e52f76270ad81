"""Pydantic request/response schemas for the RepoScout API.

Defines the public contract for the REST endpoints: starting a discovery
session, polling its status, cancelling it, and the health check.

Convention: request schemas end with "Request", response schemas end with
"Response".  Internal domain models are mapped onto these at the route
boundary so storage columns can change without breaking clients.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from reposcout.models.discovery import AnalysisRecord, SessionStatus


class StartSessionRequest(BaseModel):
    """Natural-language description of the repositories wanted."""

    prompt: str = Field(..., min_length=1, max_length=2000)


class StartSessionResponse(BaseModel):
    """Returned as soon as the session has been fanned out."""

    session_id: str
    status: SessionStatus
    detail: str | None = Field(
        default=None,
        description="Set when no search terms could be derived and the session ended empty",
    )


class RepositoryResult(BaseModel):
    """One ranked repository in a completed session."""

    repository: str
    url: str
    description: str | None = None
    relevancy_score: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    search_task_id: int
    analyzed_at: datetime

    @classmethod
    def from_record(cls, record: AnalysisRecord) -> RepositoryResult:
        return cls(
            repository=record.candidate_key,
            url=record.candidate_url,
            description=record.description,
            relevancy_score=record.relevancy_score,
            reasoning=record.reasoning,
            search_task_id=record.search_task_id,
            analyzed_at=record.analyzed_at,
        )


class SessionStatusResponse(BaseModel):
    """Status poll result.  ``results`` is empty while pending."""

    session_id: str
    status: SessionStatus
    outstanding_tasks: int = 0
    results: list[RepositoryResult] = Field(default_factory=list)


class CancelSessionResponse(BaseModel):
    """Acknowledgement of a cancellation request."""

    session_id: str
    cancelled: bool


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
