"""LLM provider adapters.

Three concrete implementations of ILLMProvider (reposcout/interfaces/llm_provider.py):
    - OpenAILLMProvider    — gpt-4o-mini (also supports OpenAI-compatible APIs)
    - AnthropicLLMProvider — Claude Sonnet, structured output via forced tool use
    - OllamaLLMProvider    — local models via an Ollama server

main.py picks the first provider with credentials configured and injects
it into both stages of the repository analyzer.
"""

from reposcout.providers.llm.anthropic_provider import AnthropicLLMProvider
from reposcout.providers.llm.ollama_provider import OllamaLLMProvider
from reposcout.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["OpenAILLMProvider", "AnthropicLLMProvider", "OllamaLLMProvider"]
