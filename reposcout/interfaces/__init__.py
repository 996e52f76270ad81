"""Public interface definitions for all external collaborators.

Every external store, queue or API in the discovery pipeline is accessed
exclusively through the abstract base classes defined here.  Concrete
adapters live in ``reposcout/providers/`` and are wired in
``reposcout/main.py``; tests inject mocks against the same contracts.

    Interface                  ->  Concrete implementations
    ---------------------------------------------------------------
    ILLMProvider               ->  OpenAILLMProvider, AnthropicLLMProvider,
                                   OllamaLLMProvider
    IRepositorySearchProvider  ->  GitHubSearchProvider
    IDiscoveryStore            ->  SQLiteDiscoveryStore
    ITaskQueue                 ->  SQLiteTaskQueue
"""

from reposcout.interfaces.discovery_store import IDiscoveryStore
from reposcout.interfaces.llm_provider import ILLMProvider
from reposcout.interfaces.repository_search_provider import IRepositorySearchProvider
from reposcout.interfaces.task_queue import ITaskQueue

__all__ = [
    "IDiscoveryStore",
    "ILLMProvider",
    "IRepositorySearchProvider",
    "ITaskQueue",
]
