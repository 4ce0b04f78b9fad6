"""Tests for assistant settings and environment overrides."""

from __future__ import annotations

import logging

import pytest

from cellsmith.services.settings import AssistantSettings, load_settings


def test_defaults_without_environment() -> None:
    settings = load_settings(env={})

    assert settings == AssistantSettings()
    assert settings.max_tool_calls == 10
    assert settings.max_attempts == 3
    assert settings.retry_delay_seconds == 1.0


def test_env_overrides_apply() -> None:
    settings = load_settings(
        env={
            "CELLSMITH_API_KEY": "sk-env",
            "CELLSMITH_BASE_URL": "http://localhost:8080/v1",
            "CELLSMITH_MODEL": "local-model",
            "CELLSMITH_LONGER_CONTEXT_MODEL": "local-model-32k",
            "CELLSMITH_MAX_TOKENS": "2048",
            "CELLSMITH_MAX_TOOL_CALLS": "4",
            "CELLSMITH_REQUEST_TIMEOUT": "12.5",
            "CELLSMITH_DEBUG_LOGGING": "yes",
        }
    )

    assert settings.api_key == "sk-env"
    assert settings.base_url == "http://localhost:8080/v1"
    assert settings.model == "local-model"
    assert settings.longer_context_model == "local-model-32k"
    assert settings.max_tokens == 2048
    assert settings.max_tool_calls == 4
    assert settings.request_timeout == 12.5
    assert settings.debug_logging is True


def test_openai_key_is_a_fallback() -> None:
    assert load_settings(env={"OPENAI_API_KEY": "sk-openai"}).api_key == "sk-openai"
    both = load_settings(env={"OPENAI_API_KEY": "sk-openai", "CELLSMITH_API_KEY": "sk-cellsmith"})
    assert both.api_key == "sk-cellsmith"


def test_process_environment_is_the_default_source(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CELLSMITH_MODEL", "from-process")
    assert load_settings().model == "from-process"


def test_runtime_overrides_win_over_environment() -> None:
    settings = load_settings(env={"CELLSMITH_MAX_TOOL_CALLS": "4"}, max_tool_calls=6, model=None)

    assert settings.max_tool_calls == 6
    assert settings.model is None


@pytest.mark.parametrize(
    ("name", "value"),
    [("CELLSMITH_MAX_TOOL_CALLS", "many"), ("CELLSMITH_REQUEST_TIMEOUT", "soon")],
)
def test_invalid_numbers_are_ignored(caplog: pytest.LogCaptureFixture, name: str, value: str) -> None:
    with caplog.at_level(logging.WARNING, logger="cellsmith.services.settings"):
        settings = load_settings(env={name: value})

    assert settings == AssistantSettings()
    assert name in caplog.text


def test_unknown_overrides_are_ignored(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="cellsmith.services.settings"):
        settings = load_settings(env={}, temperature=0.7)

    assert settings == AssistantSettings()
    assert "temperature" in caplog.text
