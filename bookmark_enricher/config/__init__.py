"""Configuration models and loading."""

from .pydantic_config import ConfigurationManager, EnricherConfig

__all__ = ["ConfigurationManager", "EnricherConfig"]
