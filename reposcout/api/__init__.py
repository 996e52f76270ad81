"""RepoScout API layer — routes, schemas, and middleware."""

from reposcout.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from reposcout.api.routes import router
from reposcout.api.schemas import (
    CancelSessionResponse,
    ErrorResponse,
    HealthResponse,
    SessionStatusResponse,
    StartSessionRequest,
    StartSessionResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "CancelSessionResponse",
    "ErrorResponse",
    "HealthResponse",
    "SessionStatusResponse",
    "StartSessionRequest",
    "StartSessionResponse",
]
