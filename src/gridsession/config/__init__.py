"""Configuration primitives for the gridsession client."""

from .settings import ClientSettings, get_settings

__all__ = ["ClientSettings", "get_settings"]
