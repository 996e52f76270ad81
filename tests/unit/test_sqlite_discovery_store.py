"""Unit tests for SQLiteDiscoveryStore.

Runs against a temporary SQLite file per test (see the ``store`` fixture
in conftest.py).
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from reposcout.models.discovery import AnalysisRecord, DiscoverySession, TaskStatus
from reposcout.utils.errors import DuplicateAnalysisError

_T0 = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _record(
    session_id: str,
    key: str,
    score: float,
    task_id: int = 1,
    analyzed_at: datetime = _T0,
) -> AnalysisRecord:
    return AnalysisRecord(
        session_id=session_id,
        search_task_id=task_id,
        candidate_key=key,
        candidate_url=f"https://github.com/{key}",
        description=f"{key} repo",
        relevancy_score=score,
        reasoning="because",
        analyzed_at=analyzed_at,
    )


async def _new_session(store, session_id: str = "s1") -> str:
    await store.insert_session(DiscoverySession(session_id=session_id, prompt="find things"))
    return session_id


# ─── Initialization ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_initialize_is_idempotent(store):
    await store.initialize()
    assert store.get_provider_name() == "sqlite_discovery_store"


# ─── Sessions ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_insert_and_get_session(store):
    await _new_session(store, "abc")
    session = await store.get_session("abc")
    assert session is not None
    assert session.prompt == "find things"
    assert session.completed_at is None
    assert session.cancelled is False


@pytest.mark.asyncio
async def test_get_unknown_session_returns_none(store):
    assert await store.get_session("nope") is None


@pytest.mark.asyncio
async def test_mark_session_completed_only_once(store):
    sid = await _new_session(store)
    assert await store.mark_session_completed(sid) is True
    assert await store.mark_session_completed(sid) is False
    session = await store.get_session(sid)
    assert session.completed_at is not None


@pytest.mark.asyncio
async def test_mark_session_cancelled(store):
    sid = await _new_session(store)
    assert await store.mark_session_cancelled(sid) is True
    assert (await store.get_session(sid)).cancelled is True
    assert await store.mark_session_cancelled("unknown") is False


# ─── Tasks ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_insert_task_assigns_increasing_ids(store):
    sid = await _new_session(store)
    first = await store.insert_task(sid, "edge compute")
    second = await store.insert_task(sid, "serverless runtime")
    assert first.status is TaskStatus.PENDING
    assert second.task_id > first.task_id
    assert (await store.get_task(first.task_id)).search_term == "edge compute"


@pytest.mark.asyncio
async def test_mark_task_running_transitions(store):
    sid = await _new_session(store)
    task = await store.insert_task(sid, "term")

    assert await store.mark_task_running(task.task_id) is TaskStatus.RUNNING
    # Idempotent while running
    assert await store.mark_task_running(task.task_id) is TaskStatus.RUNNING

    assert await store.update_task_status(task.task_id, TaskStatus.COMPLETED) is True
    # Never leaves a terminal status
    assert await store.mark_task_running(task.task_id) is TaskStatus.COMPLETED
    assert (await store.get_task(task.task_id)).status is TaskStatus.COMPLETED


@pytest.mark.asyncio
async def test_mark_task_running_unknown_task(store):
    assert await store.mark_task_running(9999) is None


@pytest.mark.asyncio
async def test_update_task_status_rejects_terminal_change(store):
    sid = await _new_session(store)
    task = await store.insert_task(sid, "term")
    assert await store.update_task_status(task.task_id, TaskStatus.FAILED) is True
    assert await store.update_task_status(task.task_id, TaskStatus.COMPLETED) is False
    assert (await store.get_task(task.task_id)).status is TaskStatus.FAILED


@pytest.mark.asyncio
async def test_query_outstanding_tasks(store):
    sid = await _new_session(store)
    pending = await store.insert_task(sid, "a")
    running = await store.insert_task(sid, "b")
    done = await store.insert_task(sid, "c")
    failed = await store.insert_task(sid, "d")
    await store.mark_task_running(running.task_id)
    await store.update_task_status(done.task_id, TaskStatus.COMPLETED)
    await store.update_task_status(failed.task_id, TaskStatus.FAILED)

    other = await _new_session(store, "other")
    await store.insert_task(other, "x")

    assert await store.query_outstanding_tasks(sid) == {pending.task_id, running.task_id}


@pytest.mark.asyncio
async def test_list_stale_pending_tasks(store):
    sid = await _new_session(store)
    pending = await store.insert_task(sid, "a")
    running = await store.insert_task(sid, "b")
    await store.mark_task_running(running.task_id)

    stale = await store.list_stale_pending_tasks(0)
    assert [t.task_id for t in stale] == [pending.task_id]
    assert await store.list_stale_pending_tasks(3600) == []


# ─── Analysis records ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_insert_and_check_analysis_record(store):
    sid = await _new_session(store)
    assert await store.analysis_exists(sid, "org/repo") is False
    await store.insert_analysis_record(_record(sid, "org/repo", 0.7))
    assert await store.analysis_exists(sid, "org/repo") is True
    assert await store.analysis_exists("other", "org/repo") is False


@pytest.mark.asyncio
async def test_duplicate_analysis_record_raises(store):
    sid = await _new_session(store)
    await store.insert_analysis_record(_record(sid, "org/repo", 0.7, task_id=1))
    with pytest.raises(DuplicateAnalysisError):
        await store.insert_analysis_record(_record(sid, "org/repo", 0.2, task_id=2))

    records = await store.query_analysis_records(sid)
    assert len(records) == 1
    assert records[0].relevancy_score == 0.7


@pytest.mark.asyncio
async def test_query_analysis_records_ordering_and_limit(store):
    sid = await _new_session(store)
    await store.insert_analysis_record(_record(sid, "low/repo", 0.3, analyzed_at=_T0))
    await store.insert_analysis_record(
        _record(sid, "late/high", 0.9, analyzed_at=_T0 + timedelta(seconds=5))
    )
    await store.insert_analysis_record(
        _record(sid, "early/high", 0.9, analyzed_at=_T0 + timedelta(seconds=1))
    )

    records = await store.query_analysis_records(sid)
    assert [r.candidate_key for r in records] == ["early/high", "late/high", "low/repo"]

    top = await store.query_analysis_records(sid, limit=2)
    assert [r.candidate_key for r in top] == ["early/high", "late/high"]
    assert top[0].reasoning == "because"


@pytest.mark.asyncio
async def test_concurrent_inserts_of_same_candidate_leave_one_row(store):
    sid = await _new_session(store)

    outcomes = await asyncio.gather(
        *(store.insert_analysis_record(_record(sid, "hot/repo", 0.5, task_id=i)) for i in range(8)),
        return_exceptions=True,
    )

    assert sum(1 for o in outcomes if o is None) == 1
    assert all(isinstance(o, DuplicateAnalysisError) for o in outcomes if o is not None)
    assert len(await store.query_analysis_records(sid)) == 1
