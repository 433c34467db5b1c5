# src/config/__init__.py
"""
Конфигурация релея: секции настроек и готовый синглтон.
"""

from src.config.loader import (
    RelaySettings,
    Settings,
    UpstreamSettings,
    get_settings,
    settings,
)

__all__ = ["Settings", "UpstreamSettings", "RelaySettings", "get_settings", "settings"]
