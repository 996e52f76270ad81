"""Anthropic LLM provider adapter.

Wraps the ``anthropic`` async client to implement :class:`ILLMProvider`
via the Claude Messages API.

Key differences from the OpenAI adapter:
    - System prompt is a separate parameter, not a message in the list
    - Response content is a list of blocks, so text blocks are filtered
      and joined
    - Structured output is obtained by forcing a single tool call whose
      ``input_schema`` is the requested model's JSON schema
"""

from __future__ import annotations

import anthropic
import structlog
from pydantic import ValidationError

from reposcout.config.settings import Settings
from reposcout.interfaces.llm_provider import ILLMProvider, ModelT
from reposcout.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)


class AnthropicLLMProvider(ILLMProvider):
    """LLM provider backed by the Anthropic Claude API."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.anthropic_api_key
        self._client = anthropic.AsyncAnthropic(
            api_key=self._api_key,
            timeout=settings.llm_timeout_seconds,
        )
        self._model = settings.anthropic_model

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
        """Generate a text completion via the Anthropic Messages API."""
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
            )
            text_blocks = [block.text for block in response.content if block.type == "text"]
            if not text_blocks:
                raise LLMError(
                    message="Anthropic returned no text content",
                    provider_name=self.get_provider_name(),
                )
            result = "\n".join(text_blocks)
            logger.info(
                "anthropic_completion",
                model=self._model,
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            )
            return result
        except anthropic.APIError as exc:
            raise LLMError(
                message=f"Anthropic API error: {exc}",
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
        """Force a single tool call shaped like *schema* and validate its input."""
        tool_name = f"record_{schema.__name__.lower()}"
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
                tools=[
                    {
                        "name": tool_name,
                        "description": (schema.__doc__ or schema.__name__).strip(),
                        "input_schema": schema.model_json_schema(),
                    }
                ],
                tool_choice={"type": "tool", "name": tool_name},
            )
        except anthropic.APIError as exc:
            raise LLMError(
                message=f"Anthropic structured API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        tool_inputs = [block.input for block in response.content if block.type == "tool_use"]
        if not tool_inputs:
            raise LLMError(
                message="Anthropic returned no tool_use block",
                provider_name=self.get_provider_name(),
            )
        try:
            result = schema.model_validate(tool_inputs[0])
        except ValidationError as exc:
            raise LLMError(
                message=f"Anthropic output did not match {schema.__name__}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "anthropic_structured_completion",
            model=self._model,
            schema=schema.__name__,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return result

    def is_available(self) -> bool:
        """Return ``True`` if an Anthropic API key is configured."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """Try a minimal completion to verify the API key works."""
        if not self.is_available():
            return False
        try:
            await self._client.messages.create(
                model=self._model,
                max_tokens=10,
                messages=[{"role": "user", "content": "hi"}],
            )
            return True
        except anthropic.APIError:
            return False

    def get_provider_name(self) -> str:
        return "anthropic"
