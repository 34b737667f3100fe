"""Tests for Settings."""

from collections.abc import Iterator
from pathlib import Path

import pytest

from gatechat.agent.config import ConfigurationError, Settings, get_settings


def _settings(**values: object) -> Settings:
    return Settings.model_validate(values)


class TestSettings:
    """Tests for defaults and env var aliases."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GATEWAY_URL", raising=False)
        monkeypatch.delenv("AGENT_MAX_TURNS", raising=False)
        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        assert settings.max_turns == 10
        assert settings.oauth_callback_port == 9876
        assert settings.log_level == "info"
        assert settings.credentials_dir == Path(".context") / "gateway"

    def test_env_aliases(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GATEWAY_URL", "https://gateway.example.com/mcp")
        monkeypatch.setenv("LOG_LEVEL", "warn")
        monkeypatch.setenv("AGENT_MAX_TURNS", "3")

        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        assert settings.gateway_url == "https://gateway.example.com/mcp"
        assert settings.log_level == "warn"
        assert settings.max_turns == 3

    def test_invalid_log_level_rejected(self) -> None:
        with pytest.raises(ValueError):
            _settings(LOG_LEVEL="verbose")


class TestRequireGatewayUrl:
    """Tests for resolving the gateway URL."""

    def test_override_wins(self) -> None:
        settings = _settings(GATEWAY_URL="https://env.example.com")

        assert settings.require_gateway_url("https://cli.example.com") == (
            "https://cli.example.com"
        )

    def test_env_value_used(self) -> None:
        settings = _settings(GATEWAY_URL="https://env.example.com")

        assert settings.require_gateway_url() == "https://env.example.com"

    def test_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GATEWAY_URL", raising=False)
        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        with pytest.raises(ConfigurationError, match="GATEWAY_URL"):
            settings.require_gateway_url()


class TestLogLevelSetting:
    """Tests for normalising LOG_LEVEL."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("warning", "warn"), ("WARN", "warn"), (" Debug ", "debug"), ("error", "error")],
    )
    def test_spellings_normalised(self, raw: str, expected: str) -> None:
        assert _settings(LOG_LEVEL=raw).log_level == expected


class TestGetSettings:
    """Tests for the cached settings loader."""

    @pytest.fixture(autouse=True)
    def fresh_cache(self) -> Iterator[None]:
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_invalid_value_is_configuration_error(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LOG_LEVEL", "loud")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            get_settings()

    def test_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        assert get_settings() is get_settings()
