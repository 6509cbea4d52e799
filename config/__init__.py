"""Configuration package for Roadmap Canvas."""

from .settings import settings, get_settings, Settings

__all__ = ["settings", "get_settings", "Settings"]
