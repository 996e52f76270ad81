"""RepoScout: prompt-driven GitHub repository discovery."""

__version__ = "0.1.0"
