"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
Supports free-text completion and JSON-schema constrained output.  When a
custom ``openai_base_url`` is configured (e.g. TogetherAI, Fireworks,
Groq), the client points at that URL instead of the default OpenAI
endpoint.

Two model names are used: ``openai_text_model`` for reasoning and term
generation, ``openai_structuring_model`` for the schema-constrained
pass.  The structuring model defaults to the text model.
"""

from __future__ import annotations

import openai
import structlog
from pydantic import ValidationError

from reposcout.config.settings import Settings
from reposcout.interfaces.llm_provider import ILLMProvider, ModelT
from reposcout.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


def build_json_schema_format(schema: type[ModelT]) -> dict:
    """Return a chat-completions ``response_format`` for *schema*."""
    return {
        "type": "json_schema",
        "json_schema": {
            "name": schema.__name__,
            "schema": schema.model_json_schema(),
        },
    }


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible API.

    Uses ``gpt-4o-mini`` for both stages by default.  Models can be
    overridden via settings for OpenAI-compatible providers.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key
        self._timeout_seconds = settings.llm_timeout_seconds

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(self._timeout_seconds, connect=5.0),
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._text_model = settings.openai_text_model or "gpt-4o-mini"
        self._structuring_model = settings.openai_structuring_model or self._text_model
        self._provider_label = (
            "openai-compatible" if settings.openai_base_url else "openai"
        )

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> str:
        """Generate a text completion via the OpenAI-compatible chat API."""
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
            content = response.choices[0].message.content
            if content is None:
                raise LLMError(
                    message=f"{self._provider_label} returned empty response",
                    provider_name=self.get_provider_name(),
                )
            logger.info(
                "openai_completion",
                model=self._text_model,
                provider=self._provider_label,
                tokens=response.usage.total_tokens if response.usage else None,
            )
            return content
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._provider_label} timed out after {self._timeout_seconds}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def complete_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[ModelT],
        temperature: float = 0.0,
        max_tokens: int = 1000,
    ) -> ModelT:
        """Generate JSON matching *schema* and validate it.

        The JSON schema is sent as ``response_format`` so the server
        constrains decoding; the reply is still validated locally because
        OpenAI-compatible servers differ in how strictly they honour it.
        """
        try:
            response = await self._client.chat.completions.create(
                model=self._structuring_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                response_format=build_json_schema_format(schema),
            )
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._provider_label} structured call timed out",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._provider_label} structured API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content
        if not content:
            raise LLMError(
                message=f"{self._provider_label} returned empty structured response",
                provider_name=self.get_provider_name(),
            )
        try:
            result = schema.model_validate_json(content)
        except ValidationError as exc:
            raise LLMError(
                message=f"{self._provider_label} output did not match {schema.__name__}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "openai_structured_completion",
            model=self._structuring_model,
            provider=self._provider_label,
            schema=schema.__name__,
        )
        return result

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """Try listing models to verify the API key works."""
        if not self.is_available():
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError:
            return False

    def get_provider_name(self) -> str:
        """Return 'openai' or 'openai-compatible' depending on configuration."""
        return self._provider_label
