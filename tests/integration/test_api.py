"""Integration tests for FastAPI API endpoints using TestClient."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from reposcout import __version__
from reposcout.api.middleware import (
    REQUEST_ID_HEADER,
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    status_for_error,
)
from reposcout.api.routes import router as api_router
from reposcout.models.discovery import AnalysisRecord, SessionStatus, SessionStatusReport
from reposcout.pipeline.session_owner import SessionOwner
from reposcout.utils.errors import (
    GenerationError,
    ProviderUnavailableError,
    QueueError,
    RateLimitError,
    SearchUnavailableError,
    SessionNotFoundError,
    StoreError,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record(key: str, score: float) -> AnalysisRecord:
    return AnalysisRecord(
        session_id="sess-1",
        search_task_id=1,
        candidate_key=key,
        candidate_url=f"https://github.com/{key}",
        description="desc",
        relevancy_score=score,
        reasoning="fits",
        analyzed_at=datetime(2025, 5, 1, tzinfo=timezone.utc),
    )


def _create_test_app(llm_available: bool = True) -> tuple[FastAPI, MagicMock]:
    """Create a FastAPI app with a mocked SessionOwner on its state."""
    app = FastAPI()
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router)

    owner = MagicMock(spec=SessionOwner)
    owner.start = AsyncMock(return_value="sess-1")
    owner.get_status = AsyncMock()
    owner.cancel = AsyncMock(return_value=None)

    app.state.session_owner = owner
    app.state.provider_registry = {
        "llm": llm_available,
        "llm_provider": "mock_llm",
        "search": True,
        "store": "sqlite_discovery_store",
    }
    return app, owner


@pytest.fixture()
def app_and_owner() -> tuple[FastAPI, MagicMock]:
    return _create_test_app()


@pytest.fixture()
def client(app_and_owner) -> TestClient:
    return TestClient(app_and_owner[0])


# ---------------------------------------------------------------------------
# POST /api/v1/sessions
# ---------------------------------------------------------------------------


class TestStartSession:
    def test_returns_202_pending(self, client: TestClient, app_and_owner) -> None:
        _, owner = app_and_owner
        response = client.post("/api/v1/sessions", json={"prompt": "async sqlite drivers"})

        assert response.status_code == 202
        assert response.json() == {"session_id": "sess-1", "status": "pending", "detail": None}
        owner.start.assert_awaited_once_with("async sqlite drivers")

    def test_empty_prompt_rejected(self, client: TestClient) -> None:
        response = client.post("/api/v1/sessions", json={"prompt": ""})
        assert response.status_code == 422

    def test_no_search_terms_returns_completed_session(self, client: TestClient, app_and_owner) -> None:
        _, owner = app_and_owner
        owner.start = AsyncMock(
            side_effect=GenerationError("Model returned no usable search terms", session_id="sess-2")
        )

        response = client.post("/api/v1/sessions", json={"prompt": "???"})

        assert response.status_code == 202
        data = response.json()
        assert data["session_id"] == "sess-2"
        assert data["status"] == "completed"
        assert "no usable search terms" in data["detail"]

    def test_generation_error_without_session_is_502(self, client: TestClient, app_and_owner) -> None:
        _, owner = app_and_owner
        owner.start = AsyncMock(side_effect=GenerationError("llm down"))

        response = client.post("/api/v1/sessions", json={"prompt": "x"})

        assert response.status_code == 502
        assert response.json() == {"error": "GenerationError", "detail": "llm down"}


# ---------------------------------------------------------------------------
# GET /api/v1/sessions/{id}
# ---------------------------------------------------------------------------


class TestGetSessionStatus:
    def test_pending(self, client: TestClient, app_and_owner) -> None:
        _, owner = app_and_owner
        owner.get_status = AsyncMock(
            return_value=SessionStatusReport(
                session_id="sess-1", status=SessionStatus.PENDING, outstanding_tasks=3
            )
        )

        response = client.get("/api/v1/sessions/sess-1")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "pending"
        assert data["outstanding_tasks"] == 3
        assert data["results"] == []

    def test_completed_with_results(self, client: TestClient, app_and_owner) -> None:
        _, owner = app_and_owner
        owner.get_status = AsyncMock(
            return_value=SessionStatusReport(
                session_id="sess-1",
                status=SessionStatus.COMPLETED,
                results=[_record("a/best", 0.9), _record("b/next", 0.6)],
            )
        )

        response = client.get("/api/v1/sessions/sess-1")

        data = response.json()
        assert data["status"] == "completed"
        assert [r["repository"] for r in data["results"]] == ["a/best", "b/next"]
        assert data["results"][0]["url"] == "https://github.com/a/best"
        assert data["results"][0]["relevancy_score"] == 0.9

    def test_unknown_session_is_404(self, client: TestClient, app_and_owner) -> None:
        _, owner = app_and_owner
        owner.get_status = AsyncMock(side_effect=SessionNotFoundError("Session nope not found"))

        response = client.get("/api/v1/sessions/nope")

        assert response.status_code == 404
        assert response.json()["detail"] == "Session nope not found"


# ---------------------------------------------------------------------------
# POST /api/v1/sessions/{id}/cancel
# ---------------------------------------------------------------------------


class TestCancelSession:
    def test_cancel(self, client: TestClient, app_and_owner) -> None:
        _, owner = app_and_owner
        response = client.post("/api/v1/sessions/sess-1/cancel")

        assert response.status_code == 200
        assert response.json() == {"session_id": "sess-1", "cancelled": True}
        owner.cancel.assert_awaited_once_with("sess-1")

    def test_cancel_unknown_is_404(self, client: TestClient, app_and_owner) -> None:
        _, owner = app_and_owner
        owner.cancel = AsyncMock(side_effect=SessionNotFoundError())

        assert client.post("/api/v1/sessions/nope/cancel").status_code == 404


# ---------------------------------------------------------------------------
# GET /api/v1/health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_healthy(self, client: TestClient) -> None:
        data = client.get("/api/v1/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__
        assert data["providers"]["llm_provider"] == "mock_llm"

    def test_degraded_without_llm(self) -> None:
        app, _ = _create_test_app(llm_available=False)
        data = TestClient(app).get("/api/v1/health").json()
        assert data["status"] == "degraded"


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (SessionNotFoundError(), 404),
            (GenerationError(), 502),
            (RateLimitError(provider_name="github"), 503),
            (ProviderUnavailableError(provider_name="github"), 503),
            (SearchUnavailableError(), 503),
            (StoreError(), 500),
            (QueueError(), 500),
        ],
    )
    def test_status_for_error(self, error, expected: int) -> None:
        assert status_for_error(error) == expected

    def test_unknown_session_body_names_error(self, client: TestClient, app_and_owner) -> None:
        _, owner = app_and_owner
        owner.get_status = AsyncMock(side_effect=SessionNotFoundError("Session nope not found"))

        response = client.get("/api/v1/sessions/nope")

        assert response.json() == {"error": "SessionNotFoundError", "detail": "Session nope not found"}

    def test_store_failure_is_500(self, client: TestClient, app_and_owner) -> None:
        _, owner = app_and_owner
        owner.get_status = AsyncMock(side_effect=StoreError("database is locked"))

        response = client.get("/api/v1/sessions/sess-1")

        assert response.status_code == 500
        assert response.json()["error"] == "StoreError"


class TestRequestId:
    def test_generated_when_absent(self, client: TestClient) -> None:
        response = client.get("/api/v1/health")
        assert len(response.headers[REQUEST_ID_HEADER]) == 12

    def test_client_value_is_echoed(self, client: TestClient) -> None:
        response = client.get("/api/v1/health", headers={REQUEST_ID_HEADER: "trace-42"})
        assert response.headers[REQUEST_ID_HEADER] == "trace-42"

    def test_echoed_on_mapped_errors(self, client: TestClient, app_and_owner) -> None:
        _, owner = app_and_owner
        owner.cancel = AsyncMock(side_effect=SessionNotFoundError())

        response = client.post("/api/v1/sessions/nope/cancel", headers={REQUEST_ID_HEADER: "trace-7"})

        assert response.status_code == 404
        assert response.headers[REQUEST_ID_HEADER] == "trace-7"
