"""Host-facing configuration."""

from .settings import AssistantSettings, load_settings

__all__ = ["AssistantSettings", "load_settings"]
