"""Configuration management."""

from process_engine.config.settings import Backend, Environment, Settings, get_settings

__all__ = ["Backend", "Environment", "Settings", "get_settings"]
