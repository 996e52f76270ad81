"""RepoScout FastAPI application entry point.

Wires together all providers, services, and routes via dependency
injection.  Loads configuration from ``.env`` and ``config/config.yaml``
and configures structured logging.

Also exposes :func:`build_pipeline` so the worker CLI can construct the
same object graph without starting the web server.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from reposcout import __version__
from reposcout.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from reposcout.api.routes import router as api_router
from reposcout.config.loader import load_config
from reposcout.config.settings import Settings
from reposcout.interfaces.llm_provider import ILLMProvider
from reposcout.pipeline.queue_consumer import QueueConsumer
from reposcout.pipeline.session_owner import SessionOwner
from reposcout.pipeline.task_dispatcher import TaskDispatcher
from reposcout.providers.llm.anthropic_provider import AnthropicLLMProvider
from reposcout.providers.llm.ollama_provider import OllamaLLMProvider
from reposcout.providers.llm.openai_provider import OpenAILLMProvider
from reposcout.providers.queue.sqlite_task_queue import SQLiteTaskQueue
from reposcout.providers.search.github_search_provider import GitHubSearchProvider
from reposcout.providers.store.sqlite_discovery_store import SQLiteDiscoveryStore
from reposcout.services.repository_analyzer import RepositoryAnalyzer
from reposcout.services.search_executor import SearchExecutor
from reposcout.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# LLM provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Select the first available LLM provider based on configured API keys.

    Priority order: Anthropic -> OpenAI -> Ollama (always available).
    """
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(settings=app_settings)
    if app_settings.openai_api_key:
        return OpenAILLMProvider(settings=app_settings)
    return OllamaLLMProvider(settings=app_settings)


def _build_all(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    search_cfg = app_config["search"]
    queue_cfg = app_config["queue"]
    pipeline_cfg = app_config["pipeline"]

    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=app_settings.search_timeout_seconds)

    # -- External collaborators --
    llm = _build_llm_provider(app_settings)
    search_provider = GitHubSearchProvider(
        http_client=http_client,
        token=app_settings.github_token,
        api_url=app_settings.github_api_url,
    )
    store = SQLiteDiscoveryStore(db_path=app_settings.discovery_db_path)
    queue = SQLiteTaskQueue(
        db_path=app_settings.queue_db_path,
        visibility_timeout=float(queue_cfg["visibility_timeout"]),
    )

    # -- Services --
    search_executor = SearchExecutor(
        search_provider=search_provider,
        max_attempts=int(search_cfg["max_attempts"]),
        backoff_base=float(search_cfg["backoff_base"]),
        results_per_term=int(search_cfg["results_per_term"]),
    )
    analyzer = RepositoryAnalyzer(reasoning_llm=llm, structuring_llm=llm)

    # -- Pipeline --
    dispatcher = TaskDispatcher(store=store, queue=queue)
    session_owner = SessionOwner(
        store=store,
        dispatcher=dispatcher,
        analyzer=analyzer,
        max_search_terms=int(pipeline_cfg["max_search_terms"]),
        top_results=int(pipeline_cfg["top_results"]),
    )
    consumer = QueueConsumer(
        store=store,
        queue=queue,
        search_executor=search_executor,
        analyzer=analyzer,
        session_owner=session_owner,
        batch_size=int(queue_cfg["batch_size"]),
        consumer_concurrency=int(queue_cfg["consumer_concurrency"]),
        analysis_concurrency=int(queue_cfg["analysis_concurrency"]),
    )

    provider_registry: dict[str, Any] = {
        "llm": llm.is_available(),
        "llm_provider": llm.get_provider_name(),
        "search": search_provider.is_available(),
        "search_authenticated": bool(app_settings.github_token),
        "store": store.get_provider_name(),
        "queue": queue.get_provider_name(),
    }

    return {
        "http_client": http_client,
        "llm": llm,
        "store": store,
        "queue": queue,
        "search_executor": search_executor,
        "analyzer": analyzer,
        "dispatcher": dispatcher,
        "session_owner": session_owner,
        "consumer": consumer,
        "provider_registry": provider_registry,
        "config": app_config,
    }


def build_pipeline(
    custom_settings: Settings | None = None,
    custom_config: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the component graph outside the web server (worker CLI, scripts)."""
    app_settings = custom_settings or settings
    app_config = custom_config or (
        config if custom_settings is None else load_config(settings=app_settings)
    )
    return _build_all(app_settings, app_config)


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise stores and in-process consumers on startup, stop them on shutdown."""
    components = _build_all(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["store"].initialize()
    await components["queue"].initialize()

    # In-process consumers let a single `uvicorn` process run the whole
    # pipeline; set queue.embedded_consumers to 0 when using workers.
    stop_event = asyncio.Event()
    consumer: QueueConsumer = components["consumer"]
    poll_interval = float(config["queue"]["poll_interval"])
    consumer_tasks = [
        asyncio.create_task(consumer.run(stop_event, poll_interval=poll_interval))
        for _ in range(int(config["queue"]["embedded_consumers"]))
    ]

    _logger.info(
        "app_startup",
        version=__version__,
        environment=settings.app_env,
        llm_provider=components["provider_registry"]["llm_provider"],
        embedded_consumers=len(consumer_tasks),
    )

    yield

    # -- Shutdown: stop consumers, close shared httpx client --
    stop_event.set()
    if consumer_tasks:
        await asyncio.gather(*consumer_tasks, return_exceptions=True)
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="Consumers stopped, HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="RepoScout API",
        version=__version__,
        description=(
            "Describe the repositories you need in plain language; RepoScout "
            "fans the request out into GitHub searches, scores every candidate "
            "with an LLM, and returns a ranked list."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def run() -> None:
    """Serve the API with uvicorn."""
    uvicorn.run(
        "reposcout.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )


if __name__ == "__main__":
    run()
