"""Configuration module for the skill runtime."""

from .settings import Settings, get_settings

__all__ = ["get_settings", "Settings"]
