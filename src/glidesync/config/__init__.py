"""Configuration package for glidesync."""

from glidesync.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
