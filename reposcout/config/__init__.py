"""Configuration module — exports Settings and load_config."""

from reposcout.config.loader import load_config
from reposcout.config.settings import Settings

__all__ = ["Settings", "load_config"]
