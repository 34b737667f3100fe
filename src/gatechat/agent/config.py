"""Configuration management using pydantic-settings.

Key patterns:
1. Multiple env files (.env, .env.local) - local overrides shared
2. Optional API keys with startup warnings
3. validation_alias for explicit env var names
4. Cached singleton, loaded on first use so a bad value is a
   ConfigurationError instead of an import-time crash
5. Export to os.environ for external libraries

Usage:
    from gatechat.agent.config import get_settings
    print(get_settings().gateway_url)
"""

import functools
import logging
import os
from pathlib import Path
from typing import Literal, Self

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gatechat.lib.events import LogLevel

logger = logging.getLogger(__name__)

type LogLevelName = Literal["debug", "info", "warn", "error"]


class ConfigurationError(Exception):
    """A required startup value is missing or invalid."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    External API keys use standard names (e.g., ANTHROPIC_API_KEY) for
    compatibility with external libraries.

    Agent-specific settings use a prefix (e.g., AGENT_MODEL).
    """

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        extra="ignore",
    )

    @model_validator(mode="after")
    def warn_missing_optional_keys(self) -> Self:
        """Warn at startup if optional API keys are missing.

        The agent SDK can fall back to a logged-in CLI session, so a
        missing key is not fatal here.
        """
        missing = []

        if not self.anthropic_api_key:
            missing.append("ANTHROPIC_API_KEY")

        if missing:
            logger.warning(
                "Missing API keys (agent may fail to start): %s", ", ".join(missing)
            )
        return self

    # ==========================================================================
    # API KEYS
    # ==========================================================================

    anthropic_api_key: str | None = Field(
        default=None,
        validation_alias="ANTHROPIC_API_KEY",
        description="Anthropic API key",
    )

    # ==========================================================================
    # MODEL SETTINGS
    # ==========================================================================

    model: str = Field(
        default="claude-sonnet-4-20250514",
        validation_alias="AGENT_MODEL",
        description="Claude model to use",
    )

    max_thinking_tokens: int | None = Field(
        default=None,
        validation_alias="AGENT_MAX_THINKING_TOKENS",
        description="Max thinking tokens (None = model default)",
    )

    max_turns: int = Field(
        default=10,
        ge=1,
        validation_alias="AGENT_MAX_TURNS",
        description="Maximum agent-internal turns per user message",
    )

    # ==========================================================================
    # GATEWAY
    # ==========================================================================

    gateway_url: str | None = Field(
        default=None,
        validation_alias="GATEWAY_URL",
        description="MCP gateway URL (overridable with --gateway-url)",
    )

    oauth_callback_port: int = Field(
        default=9876,
        validation_alias="OAUTH_CALLBACK_PORT",
        description="Local port for the OAuth redirect listener",
    )

    oauth_timeout_seconds: float = Field(
        default=300,
        validation_alias="OAUTH_TIMEOUT_SECONDS",
        description="How long to wait for the browser authorization",
    )

    http_timeout_seconds: float = Field(
        default=60,
        validation_alias="AGENT_HTTP_TIMEOUT_SECONDS",
        description="Timeout for gateway and OAuth HTTP requests",
    )

    # ==========================================================================
    # LOGGING
    # ==========================================================================

    log_level: LogLevelName = Field(
        default="info",
        validation_alias="LOG_LEVEL",
        description="Minimum level shown in the terminal",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        """Accept any spelling ``LogLevel.parse`` accepts, e.g. ``WARNING``."""
        if isinstance(value, str):
            return LogLevel.parse(value).name.lower()
        return value

    log_timestamps: bool = Field(
        default=True,
        validation_alias="LOG_TIMESTAMPS",
        description="Prefix terminal lines with [HH:MM:SS]",
    )

    log_color: bool = Field(
        default=True,
        validation_alias="LOG_COLOR",
        description="Colorize terminal output",
    )

    # ==========================================================================
    # PATHS
    # ==========================================================================

    context_dir: Path = Field(
        default=Path(".context"),
        validation_alias="AGENT_CONTEXT_DIR",
        description="Base directory for persisted client state",
    )

    logs_path: Path = Field(
        default=Path("./logs"),
        validation_alias="AGENT_LOGS_PATH",
        description="Directory for runtime log files",
    )

    @property
    def credentials_dir(self) -> Path:
        """Directory holding the OAuth client, tokens and PKCE verifier."""
        return self.context_dir / "gateway"

    def require_gateway_url(self, override: str | None = None) -> str:
        """Return the gateway URL, preferring *override* over the env var.

        Raises:
            ConfigurationError: If neither source provides a URL.
        """
        url = override or self.gateway_url
        if not url:
            raise ConfigurationError(
                "Gateway URL is required. Set GATEWAY_URL or pass --gateway-url."
            )
        return url


@functools.cache
def get_settings() -> Settings:
    """Load the settings once per process.

    Raises:
        ConfigurationError: If an environment value is invalid.
    """
    try:
        loaded = Settings.model_validate({})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration:\n{e}") from e

    # Export API keys to os.environ for external libraries
    # (the agent SDK subprocess reads the key from its environment)
    env_exports = [
        ("ANTHROPIC_API_KEY", loaded.anthropic_api_key),
    ]
    for env_name, value in env_exports:
        if value and env_name not in os.environ:
            os.environ[env_name] = value
    return loaded
