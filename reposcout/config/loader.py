"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. config/config.yaml  -- static pipeline defaults checked into the repo
  2. .env file           -- local developer overrides (not committed)
  3. Environment vars    -- set at deploy time

Pipeline tunables are only overridden by the environment when the
corresponding :class:`Settings` field was actually provided, so an unset
``MAX_SEARCH_TERMS`` does not clobber the YAML value.
"""

from pathlib import Path
from typing import Any

import yaml

from reposcout.config.settings import Settings

_DEFAULTS: dict[str, Any] = {
    "pipeline": {
        "max_search_terms": 5,
        "top_results": 10,
    },
    "search": {
        "max_attempts": 3,
        "backoff_base": 1.0,
        "results_per_term": 10,
    },
    "queue": {
        "batch_size": 10,
        "visibility_timeout": 300,
        "consumer_concurrency": 5,
        "analysis_concurrency": 3,
        "poll_interval": 1.0,
        "stale_task_seconds": 600,
        "embedded_consumers": 1,
    },
}

# Settings field -> (section, key) in the merged config.
_PIPELINE_OVERRIDES: dict[str, tuple[str, str]] = {
    "max_search_terms": ("pipeline", "max_search_terms"),
    "top_results": ("pipeline", "top_results"),
    "search_max_attempts": ("search", "max_attempts"),
    "search_backoff_base": ("search", "backoff_base"),
}


def load_config(
    path: str = "config/config.yaml",
    settings: Settings | None = None,
) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to merge; a fresh one is built if omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config: dict[str, Any] = {}
    _deep_merge(config, {k: dict(v) for k, v in _DEFAULTS.items()})

    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
        _deep_merge(config, yaml_config)

    settings = settings or Settings()
    env_overrides: dict[str, Any] = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "llm": {
            "available_providers": settings.get_available_llm_providers(),
            "timeout_seconds": settings.llm_timeout_seconds,
        },
        "storage": {
            "discovery_db_path": settings.discovery_db_path,
            "queue_db_path": settings.queue_db_path,
        },
        "logging": {
            "level": settings.log_level,
        },
    }
    for field_name, (section, key) in _PIPELINE_OVERRIDES.items():
        value = getattr(settings, field_name)
        if value is not None:
            env_overrides.setdefault(section, {})[key] = value

    _deep_merge(config, env_overrides)
    return config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
