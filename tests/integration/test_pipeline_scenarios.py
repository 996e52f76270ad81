"""End-to-end discovery scenarios over real SQLite store and queue files.

The LLM and the GitHub search backend are scripted; everything between
them (fan-out, queueing, consumers, dedup, completion) is the production
code path.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from reposcout.interfaces.llm_provider import ILLMProvider
from reposcout.models.discovery import RelevanceAssessment, SessionStatus, TaskStatus
from reposcout.pipeline.queue_consumer import QueueConsumer
from reposcout.pipeline.session_owner import SessionOwner
from reposcout.pipeline.task_dispatcher import TaskDispatcher
from reposcout.providers.queue.sqlite_task_queue import SQLiteTaskQueue
from reposcout.services.repository_analyzer import RepositoryAnalyzer
from reposcout.services.search_executor import SearchExecutor
from reposcout.utils.errors import LLMError, ProviderUnavailableError
from tests.conftest import FakeSearchProvider, make_candidate, scripted_complete

_REPO_LINE = re.compile(r"^Repository: (\S+)$", re.MULTILINE)


def _llm(terms: list[str], scores: dict[str, float] | None = None) -> MagicMock:
    """LLM whose structured score is looked up by repository name."""
    llm = MagicMock(spec=ILLMProvider)
    llm.complete = AsyncMock(side_effect=scripted_complete(terms))
    llm.get_provider_name.return_value = "scripted_llm"

    async def _structured(system_prompt: str, user_prompt: str, schema, **kwargs):
        repo = _REPO_LINE.search(user_prompt).group(1)
        return RelevanceAssessment(relevancy_score=(scores or {}).get(repo, 0.5), reasoning=repo)

    llm.complete_structured = AsyncMock(side_effect=_structured)
    return llm


def _pipeline(store, queue, llm, provider) -> tuple[SessionOwner, QueueConsumer]:
    analyzer = RepositoryAnalyzer(llm)
    owner = SessionOwner(store, TaskDispatcher(store, queue), analyzer)
    consumer = QueueConsumer(
        store=store,
        queue=queue,
        search_executor=SearchExecutor(provider, max_attempts=3, backoff_base=0),
        analyzer=analyzer,
        session_owner=owner,
    )
    return owner, consumer


async def _task_statuses(store, session_id: str) -> dict[int, TaskStatus]:
    # Outstanding tasks are gone once terminal, so read them by id range.
    statuses: dict[int, TaskStatus] = {}
    task_id = 1
    while (task := await store.get_task(task_id)) is not None:
        if task.session_id == session_id:
            statuses[task_id] = task.status
        task_id += 1
    return statuses


@pytest.mark.asyncio
async def test_overlapping_searches_produce_one_ranked_record_per_repo(store, queue) -> None:
    llm = _llm(
        ["edge compute framework", "serverless runtime"],
        scores={"a/alpha": 0.9, "b/beta": 0.4, "c/shared": 0.7, "d/delta": 0.2},
    )
    provider = FakeSearchProvider(
        {
            "edge compute framework": [make_candidate("a/alpha"), make_candidate("b/beta"), make_candidate("c/shared")],
            "serverless runtime": [make_candidate("c/shared"), make_candidate("d/delta")],
        }
    )
    owner, consumer = _pipeline(store, queue, llm, provider)

    session_id = await owner.start("find edge-compute frameworks")
    assert (await owner.get_status(session_id)).status is SessionStatus.PENDING

    await consumer.drain_once()

    report = await owner.get_status(session_id)
    assert report.status is SessionStatus.COMPLETED
    assert [r.candidate_key for r in report.results] == ["a/alpha", "c/shared", "b/beta", "d/delta"]
    assert [r.relevancy_score for r in report.results] == [0.9, 0.7, 0.4, 0.2]
    assert set((await _task_statuses(store, session_id)).values()) == {TaskStatus.COMPLETED}
    assert await queue.depth() == 0


@pytest.mark.asyncio
async def test_failed_search_task_still_lets_session_complete(store, queue) -> None:
    llm = _llm(["broken term", "working term"])
    provider = FakeSearchProvider(
        {
            "broken term": ProviderUnavailableError("GitHub 502", provider_name="github"),
            "working term": [make_candidate("w/one"), make_candidate("w/two")],
        }
    )
    owner, consumer = _pipeline(store, queue, llm, provider)

    session_id = await owner.start("prompt")
    await consumer.drain_once()

    report = await owner.get_status(session_id)
    assert report.status is SessionStatus.COMPLETED
    assert sorted(r.candidate_key for r in report.results) == ["w/one", "w/two"]
    assert sorted((await _task_statuses(store, session_id)).values(), key=lambda s: s.value) == [
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
    ]
    assert provider.calls.count("broken term") == 3


@pytest.mark.asyncio
async def test_structuring_outage_degrades_to_text_scores(store, queue) -> None:
    llm = MagicMock(spec=ILLMProvider)
    llm.get_provider_name.return_value = "scripted_llm"

    async def _complete(system_prompt: str, user_prompt: str, **kwargs) -> str:
        if "search queries" in system_prompt:
            return "vector db"
        if "Repository: v/scored" in user_prompt:
            return "Strong match for vector search.\nScore: 0.8"
        return "Unclear what this does."

    llm.complete = AsyncMock(side_effect=_complete)
    llm.complete_structured = AsyncMock(side_effect=LLMError("schema violation"))
    provider = FakeSearchProvider({"vector db": [make_candidate("v/scored"), make_candidate("v/unscored")]})
    owner, consumer = _pipeline(store, queue, llm, provider)

    session_id = await owner.start("vector database")
    await consumer.drain_once()

    report = await owner.get_status(session_id)
    assert report.status is SessionStatus.COMPLETED
    scores = {r.candidate_key: r.relevancy_score for r in report.results}
    assert scores == {"v/scored": 0.8, "v/unscored": 0.0}
    assert set((await _task_statuses(store, session_id)).values()) == {TaskStatus.COMPLETED}


@pytest.mark.asyncio
async def test_consumers_in_separate_processes_complete_session_once(store, queue) -> None:
    terms = [f"term {i}" for i in range(4)]
    llm = _llm(terms)
    shared = make_candidate("shared/repo")
    provider = FakeSearchProvider({t: [shared, make_candidate(f"own/{i}")] for i, t in enumerate(terms)})

    front_owner, _ = _pipeline(store, queue, llm, provider)
    # Each worker builds its own owner, as a separate process would.
    _, worker_a = _pipeline(store, queue, llm, provider)
    _, worker_b = _pipeline(store, queue, llm, provider)

    session_id = await front_owner.start("prompt")
    await asyncio.gather(worker_a.drain_once(2), worker_b.drain_once(2))

    report = await front_owner.get_status(session_id)
    assert report.status is SessionStatus.COMPLETED
    keys = [r.candidate_key for r in report.results]
    assert len(keys) == len(set(keys)) == 5
    assert await queue.depth() == 0


@pytest.mark.asyncio
async def test_crashed_delivery_is_redelivered_and_finished(store, tmp_path: Path) -> None:
    queue = SQLiteTaskQueue(db_path=tmp_path / "short.db", visibility_timeout=0.05)
    await queue.initialize()
    llm = _llm(["term"])
    provider = FakeSearchProvider({"term": [make_candidate("r/one")]})
    owner, healthy = _pipeline(store, queue, llm, provider)

    crashing_analyzer = MagicMock(spec=RepositoryAnalyzer)
    crashing_analyzer.assess = AsyncMock(side_effect=RuntimeError("worker died"))
    crashing = QueueConsumer(
        store=store,
        queue=queue,
        search_executor=SearchExecutor(provider, backoff_base=0),
        analyzer=crashing_analyzer,
        session_owner=owner,
    )

    session_id = await owner.start("prompt")
    await crashing.drain_once()
    assert (await owner.get_status(session_id)).status is SessionStatus.PENDING

    await asyncio.sleep(0.1)
    assert await healthy.drain_once() == 1

    report = await owner.get_status(session_id)
    assert report.status is SessionStatus.COMPLETED
    assert [r.candidate_key for r in report.results] == ["r/one"]
    assert await queue.depth() == 0
