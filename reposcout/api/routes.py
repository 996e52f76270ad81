"""REST API route definitions for RepoScout.

All routes are mounted under ``/api/v1``:

    /api/v1/sessions                      POST    Start a discovery session
    /api/v1/sessions/{sid}                GET     Poll status and ranked results
    /api/v1/sessions/{sid}/cancel         POST    Stop searching for a session
    /api/v1/health                        GET     Health check + provider status

Services are resolved from ``app.state`` (populated at startup in
``main.py``'s ``_build_all``) through ``Depends`` helpers, so tests can
mount the router on a bare app with mocks on its state.  Pipeline errors
are left to ``ErrorHandlingMiddleware``, which picks the status code.
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Request

from reposcout import __version__
from reposcout.api.schemas import (
    CancelSessionResponse,
    ErrorResponse,
    HealthResponse,
    RepositoryResult,
    SessionStatusResponse,
    StartSessionRequest,
    StartSessionResponse,
)
from reposcout.models.discovery import SessionStatus
from reposcout.pipeline.session_owner import SessionOwner
from reposcout.utils.errors import GenerationError
from reposcout.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Dependency injection helpers
# ---------------------------------------------------------------------------


def _get_session_owner(request: Request) -> SessionOwner:
    """Retrieve the SessionOwner singleton from application state."""
    return request.app.state.session_owner


SessionOwnerDep = Annotated[SessionOwner, Depends(_get_session_owner)]


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@router.post(
    "/sessions",
    response_model=StartSessionResponse,
    status_code=202,
    responses={502: {"model": ErrorResponse}},
    summary="Start a repository discovery session",
)
async def start_session(
    body: StartSessionRequest,
    owner: SessionOwnerDep,
) -> StartSessionResponse:
    """Derive search terms from the prompt and fan them out.

    Returns immediately; poll ``GET /sessions/{session_id}`` for results.
    A prompt that yields no search terms still gets a session id, already
    completed with no results.
    """
    try:
        session_id = await owner.start(body.prompt)
    except GenerationError as exc:
        if exc.session_id is None:
            raise
        return StartSessionResponse(
            session_id=exc.session_id,
            status=SessionStatus.COMPLETED,
            detail=exc.message,
        )
    return StartSessionResponse(session_id=session_id, status=SessionStatus.PENDING)


@router.get(
    "/sessions/{session_id}",
    response_model=SessionStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get session status and ranked results",
)
async def get_session_status(
    session_id: str,
    owner: SessionOwnerDep,
) -> SessionStatusResponse:
    report = await owner.get_status(session_id)
    return SessionStatusResponse(
        session_id=report.session_id,
        status=report.status,
        outstanding_tasks=report.outstanding_tasks,
        results=[RepositoryResult.from_record(r) for r in report.results],
    )


@router.post(
    "/sessions/{session_id}/cancel",
    response_model=CancelSessionResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Cancel a discovery session",
)
async def cancel_session(
    session_id: str,
    owner: SessionOwnerDep,
) -> CancelSessionResponse:
    """Flag the session as cancelled; queued tasks are failed, not searched."""
    await owner.cancel(session_id)
    return CancelSessionResponse(session_id=session_id, cancelled=True)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    status = "healthy" if providers.get("llm", False) else "degraded"
    return HealthResponse(status=status, version=__version__, providers=providers)
