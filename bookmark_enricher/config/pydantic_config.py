"""
Pydantic-based configuration system for Bookmark Enricher.

Settings are grouped by concern (AI, scheduler, prefetch, Notion, storage)
and can be loaded from a TOML or JSON file, with credentials falling back to
environment variables.
"""

import json
import os
import warnings
from pathlib import Path
from typing import Dict, Literal, Optional

import toml
from pydantic import (
    BaseModel,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)

DEFAULT_STORAGE_KEY = "ai-bookmark-manager-bookmarks"
DEFAULT_STORE_PATH = Path.home() / ".bookmark_enricher" / "store.json"

PLACEHOLDER_SECRETS = {
    "your-gemini-api-key-here",
    "your-x-bearer-token-here",
    "your-notion-token-here",
}


def _coerce_secret(value, field_name: str) -> Optional[SecretStr]:
    """Shared handling for optional secrets: blank means unset."""
    if value is None or value == "":
        return None
    if isinstance(value, SecretStr):
        value = value.get_secret_value()
    key_str = str(value).strip()
    if not key_str:
        return None
    if key_str in PLACEHOLDER_SECRETS:
        raise ValueError(
            f"Please replace the placeholder value of {field_name} with a real "
            f"credential."
        )
    return SecretStr(key_str)


class AIConfig(BaseModel):
    """Gemini enrichment client settings."""

    gemini_api_key: Optional[SecretStr] = Field(
        default=None,
        description="Gemini API key",
    )
    model: str = Field(
        default="gemini-2.5-flash",
        min_length=1,
        description="Gemini model used for enrichment",
    )
    retrieval_tool: Literal["google_search", "url_context"] = Field(
        default="google_search",
        description="Grounding tool: web search or direct URL retrieval",
    )
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    timeout: float = Field(
        default=60.0,
        ge=5.0,
        le=600.0,
        description="HTTP timeout for a generateContent call in seconds",
    )
    max_retries: int = Field(
        default=2,
        ge=0,
        le=5,
        description="Retries after the first attempt",
    )
    initial_backoff: float = Field(
        default=1.5,
        ge=0.0,
        le=60.0,
        description="Base delay for rate-limit backoff in seconds",
    )
    backoff_factor: float = Field(default=2.0, ge=1.0, le=10.0)
    transient_delay: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Fixed delay before retrying a non-rate-limit failure",
    )
    max_sources: int = Field(default=5, ge=0, le=50)

    @field_validator("gemini_api_key", mode="before")
    @classmethod
    def validate_api_key(cls, v, info):
        """Treat blank keys as unset and reject template placeholders."""
        key = _coerce_secret(v, info.field_name)
        if key is not None and len(key.get_secret_value()) < 10:
            warnings.warn(
                "Gemini API key appears to be very short. "
                "Please verify this is a valid API key.",
                UserWarning,
            )
        return key


class SchedulerConfig(BaseModel):
    """Queue scheduler pacing settings."""

    batch_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="URLs per enrichment call",
    )
    batch_delay: float = Field(
        default=5.0,
        ge=0.0,
        le=600.0,
        description="Pause between successful chunks in seconds",
    )
    rate_limit_cooldown: float = Field(
        default=30.0,
        ge=0.0,
        le=3600.0,
        description="Pause after a chunk failed on rate limits",
    )
    error_cooldown: float = Field(
        default=10.0,
        ge=0.0,
        le=3600.0,
        description="Pause after a chunk failed for any other reason",
    )

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v):
        """Warn about batch sizes that strain per-minute token limits."""
        if v > 10:
            warnings.warn(
                f"Large batch size ({v}) may exceed per-minute token limits. "
                "Consider using 5.",
                UserWarning,
            )
        return v


class PrefetchConfig(BaseModel):
    """Context prefetcher settings."""

    enabled: bool = True
    x_bearer_token: Optional[SecretStr] = None
    proxy_url: str = Field(
        default="",
        description="Relay base URL the encoded target URL is appended to",
    )
    timeout: float = Field(default=10.0, ge=1.0, le=120.0)

    @field_validator("x_bearer_token", mode="before")
    @classmethod
    def validate_token(cls, v, info):
        return _coerce_secret(v, info.field_name)


class NotionConfig(BaseModel):
    """Notion sync settings."""

    token: Optional[SecretStr] = None
    proxy_url: str = ""
    timeout: float = Field(default=30.0, ge=1.0, le=300.0)

    @field_validator("token", mode="before")
    @classmethod
    def validate_token(cls, v, info):
        return _coerce_secret(v, info.field_name)


class StorageConfig(BaseModel):
    """Where records are persisted."""

    path: Path = Field(default=DEFAULT_STORE_PATH)
    key: str = Field(default=DEFAULT_STORAGE_KEY, min_length=1)

    @field_validator("path", mode="before")
    @classmethod
    def validate_path(cls, v):
        if isinstance(v, str):
            return Path(v).expanduser()
        return v


class EnricherConfig(BaseModel):
    """Main configuration model."""

    ai: AIConfig = Field(default_factory=AIConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    prefetch: PrefetchConfig = Field(default_factory=PrefetchConfig)
    notion: NotionConfig = Field(default_factory=NotionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


class ConfigurationManager:
    """Manages loading and validation of configuration from multiple sources."""

    # (config group, field, environment variables in priority order)
    ENV_FALLBACKS = [
        ("ai", "gemini_api_key", ("GEMINI_API_KEY", "API_KEY")),
        ("prefetch", "x_bearer_token", ("X_BEARER_TOKEN",)),
        ("prefetch", "proxy_url", ("CORS_PROXY_URL",)),
        ("notion", "token", ("NOTION_TOKEN",)),
        ("storage", "path", ("BOOKMARK_ENRICHER_STORE",)),
    ]

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Optional path to configuration file (TOML or JSON)
        """
        self._config: Optional[EnricherConfig] = None
        self._load_configuration(config_path)

    def _get_default_config_paths(self) -> list[Path]:
        """Get list of default configuration file paths to try."""
        return [
            Path.cwd() / "bookmark_enricher.toml",
            Path.cwd() / "bookmark_enricher.json",
            Path.home() / ".bookmark_enricher" / "config.toml",
            Path.home() / ".bookmark_enricher" / "config.json",
        ]

    def _load_configuration(self, config_path: Optional[Path] = None) -> None:
        """Load configuration from file or use defaults."""
        config_data: Dict = {}

        if config_path:
            config_data = self._load_config_file(Path(config_path))
        else:
            for path in self._get_default_config_paths():
                if path.exists():
                    config_data = self._load_config_file(path)
                    break

        self._load_from_env(config_data)

        try:
            self._config = EnricherConfig(**config_data)
        except ValidationError as e:
            raise ValueError(format_config_error(e))

    def _load_config_file(self, config_path: Path) -> Dict:
        """Load configuration from TOML or JSON file."""
        if not config_path.exists():
            raise FileNotFoundError(
                2, "Configuration file not found", str(config_path)
            )

        suffix = config_path.suffix.lower()
        if suffix not in (".toml", ".json"):
            raise ValueError(
                f"Unsupported configuration file format: {config_path.suffix}"
            )

        try:
            if suffix == ".toml":
                return toml.load(config_path)
            with open(config_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (toml.TomlDecodeError, json.JSONDecodeError, OSError) as e:
            raise ValueError(f"Failed to load configuration from {config_path}: {e}")

    def _load_from_env(self, config_data: Dict) -> None:
        """Fill credentials and paths from environment variables when absent."""
        for group, field_name, env_vars in self.ENV_FALLBACKS:
            section = config_data.setdefault(group, {})
            if section.get(field_name):
                continue
            for env_var in env_vars:
                value = os.getenv(env_var)
                if value:
                    section[field_name] = value
                    break

    @property
    def config(self) -> EnricherConfig:
        """Get the current configuration."""
        if not self._config:
            raise RuntimeError("Configuration not loaded")
        return self._config

    def get_secret(self, name: str) -> Optional[str]:
        """Get a credential's plain value by name (gemini, x, notion)."""
        secret = {
            "gemini": self.config.ai.gemini_api_key,
            "x": self.config.prefetch.x_bearer_token,
            "notion": self.config.notion.token,
        }.get(name)
        return secret.get_secret_value() if secret else None

    def has_secret(self, name: str) -> bool:
        """Check whether a credential is configured."""
        return self.get_secret(name) is not None


def create_sample_config(output_path: Path, format: str = "toml") -> None:
    """Create a sample configuration file."""
    sample_config = {
        "ai": {
            "gemini_api_key": "your-gemini-api-key-here",
            "model": "gemini-2.5-flash",
            "retrieval_tool": "google_search",
            "max_retries": 2,
        },
        "scheduler": {
            "batch_size": 5,
            "batch_delay": 5.0,
            "rate_limit_cooldown": 30.0,
            "error_cooldown": 10.0,
        },
        "prefetch": {
            "enabled": True,
            "x_bearer_token": "your-x-bearer-token-here",
            "proxy_url": "",
            "timeout": 10.0,
        },
        "notion": {"token": "your-notion-token-here", "proxy_url": ""},
        "storage": {"path": str(DEFAULT_STORE_PATH), "key": DEFAULT_STORAGE_KEY},
    }

    output_path = Path(output_path)
    if format.lower() == "toml":
        with open(output_path, "w", encoding="utf-8") as f:
            toml.dump(sample_config, f)
    elif format.lower() == "json":
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(sample_config, f, indent=2)
    else:
        raise ValueError(f"Unsupported format: {format}")


def _format_error_location(location: tuple) -> str:
    """Format the error location path."""
    if not location:
        return "Configuration"
    parts = [part if isinstance(part, str) else f"[{part}]" for part in location]
    return " -> ".join(parts)


def format_config_error(error: Exception) -> str:
    """
    Format any configuration-related error into a user-friendly message.

    Args:
        error: Exception that occurred during configuration

    Returns:
        Formatted error message
    """
    if isinstance(error, ValidationError):
        lines = ["Configuration Validation Failed:"]
        for detail in error.errors():
            location = _format_error_location(detail["loc"])
            lines.append(f"  - {location}: {detail.get('msg', 'Invalid value')}")
        lines.append(
            "Check the configuration file format (TOML or JSON) and make sure "
            "credentials are not placeholder values."
        )
        return "\n".join(lines)

    if isinstance(error, FileNotFoundError):
        return (
            f"Configuration File Not Found: {error.filename}\n"
            "Create one with: bookmark-enricher create-config"
        )

    return f"Configuration Error: {error}"
