"""Assistant settings and environment overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping

__all__ = ["AssistantSettings", "load_settings"]

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"

_ENV_OVERRIDES: Mapping[str, str] = {
    "CELLSMITH_API_KEY": "api_key",
    "CELLSMITH_BASE_URL": "base_url",
    "CELLSMITH_MODEL": "model",
    "CELLSMITH_LONGER_CONTEXT_MODEL": "longer_context_model",
    "CELLSMITH_ORGANIZATION": "organization",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "CELLSMITH_DEBUG_LOGGING": "debug_logging",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "CELLSMITH_MAX_TOKENS": "max_tokens",
    "CELLSMITH_MAX_TOOL_CALLS": "max_tool_calls",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "CELLSMITH_REQUEST_TIMEOUT": "request_timeout",
}
# Consulted only when CELLSMITH_API_KEY is unset.
_FALLBACK_API_KEY_ENV = "OPENAI_API_KEY"
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True)
class AssistantSettings:
    """Options the host supplies to configure the assistant."""

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    model: str | None = None
    longer_context_model: str | None = None
    max_tokens: int | None = None
    max_tool_calls: int = 10
    request_timeout: float = 90.0
    max_attempts: int = 3
    retry_delay_seconds: float = 1.0
    organization: str | None = None
    default_headers: dict[str, str] = field(default_factory=dict)
    debug_logging: bool = False


def load_settings(env: Mapping[str, str] | None = None, **overrides: Any) -> AssistantSettings:
    """Build settings from defaults, then environment, then explicit overrides.

    Args:
        env: Environment mapping; defaults to ``os.environ``.
        **overrides: Field values that win over the environment. ``None`` values are ignored.
    """
    source = os.environ if env is None else env
    settings = _apply_env_overrides(AssistantSettings(), source)
    return _apply_overrides(settings, overrides, source="runtime")


def _apply_overrides(
    settings: AssistantSettings,
    overrides: Mapping[str, Any],
    *,
    source: str,
) -> AssistantSettings:
    allowed = {item.name for item in fields(AssistantSettings)}
    filtered: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in allowed:
            LOGGER.warning("Ignoring unknown %s setting %r", source, key)
            continue
        if value is None:
            continue
        filtered[key] = value
    if filtered:
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
        settings = replace(settings, **filtered)
    return settings


def _apply_env_overrides(settings: AssistantSettings, env: Mapping[str, str]) -> AssistantSettings:
    overrides: Dict[str, Any] = {}
    for env_name, field_name in _ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is not None:
            overrides[field_name] = value
    if "api_key" not in overrides and env.get(_FALLBACK_API_KEY_ENV):
        overrides["api_key"] = env[_FALLBACK_API_KEY_ENV]
    for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is not None:
            overrides[field_name] = value.strip().lower() in _TRUE_VALUES
    for env_name, field_name in _INT_ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is None:
            continue
        try:
            overrides[field_name] = int(value, 10)
        except ValueError:
            LOGGER.warning(
                "Environment override %s=%s is not a valid integer",
                env_name,
                value,
            )
    for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value is None:
            continue
        try:
            overrides[field_name] = float(value)
        except ValueError:
            LOGGER.warning(
                "Environment override %s=%s is not a valid float", env_name, value
            )
    if overrides:
        settings = _apply_overrides(settings, overrides, source="environment")
    return settings

