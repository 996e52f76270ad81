"""Application settings loaded from environment variables via pydantic-settings.

Values are read from two sources, in priority order:

  1. Environment variables, e.g. ``GITHUB_TOKEN=ghp_abc123``
  2. A ``.env`` file in the working directory

Field ``github_token`` maps to env var ``GITHUB_TOKEN``.  Defaults apply
when neither source sets a value.  Pipeline tunables (fan-out width,
retry policy, queue batch sizes) live in ``config/config.yaml`` and are
merged by :func:`reposcout.config.loader.load_config`; the matching fields
here only override the YAML when set explicitly.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """RepoScout application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === LLM Providers ===
    # Empty string = "not configured"; provider selection in main.py skips
    # providers with empty keys and falls through to the next.
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_text_model: str = ""
    openai_structuring_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1"
    llm_timeout_seconds: float = 25.0

    # === Repository search ===
    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    search_timeout_seconds: float = 15.0

    # === Persistence ===
    discovery_db_path: str = "data/discovery.db"
    queue_db_path: str = "data/task_queue.db"

    # === Pipeline overrides (None = use config.yaml) ===
    max_search_terms: int | None = None
    top_results: int | None = None
    search_max_attempts: int | None = None
    search_backoff_base: float | None = None

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_llm_providers(self) -> list[str]:
        """Return LLM provider names that have non-empty credentials configured."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
