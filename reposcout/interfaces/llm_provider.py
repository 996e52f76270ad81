"""Abstract base class for LLM service providers.

Defines the contract for any large-language-model backend used for search
term generation, free-form relevance reasoning, and schema-constrained
structuring.  Implementations wrap OpenAI (or OpenAI-compatible
endpoints), Anthropic, or a local Ollama server.  Providers are stateless
request/response adapters: no retries, no conversation state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TypeVar

from pydantic import BaseModel

ModelT = TypeVar("ModelT", bound=BaseModel)


# Concrete implementations: OpenAILLMProvider, AnthropicLLMProvider, OllamaLLMProvider
# Located in: reposcout/providers/llm/
class ILLMProvider(ABC):
    """Contract for LLM services used throughout the discovery pipeline."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> str:
        """Generate a free-text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The user-facing prompt containing the actual request or data.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        reposcout.utils.errors.LLMError
            If the API call fails or returns an empty response.
        """

    @abstractmethod
    async def complete_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[ModelT],
        temperature: float = 0.0,
        max_tokens: int = 1000,
    ) -> ModelT:
        """Generate output constrained to *schema* and validate it.

        Parameters
        ----------
        system_prompt:
            The system/instruction message.
        user_prompt:
            The content to structure.
        schema:
            Pydantic model describing the required output shape.  Its JSON
            schema is sent to the provider, and the response is validated
            against it.

        Returns
        -------
        BaseModel
            A validated instance of *schema*.

        Raises
        ------
        reposcout.utils.errors.LLMError
            If the API call fails or the output does not validate.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured.

        Implementations verify that credentials are present without
        making an inference call.
        """

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Perform a lightweight API call to confirm credentials are valid."""
