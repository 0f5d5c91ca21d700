"""
Dependency injection services.

Provides type aliases and provider functions for FastAPI dependency injection.
"""

from infrastructure.services.dependencies import ClockDep, SettingsDep
from infrastructure.services.providers import get_clock, get_settings

__all__ = [
    "SettingsDep",
    "ClockDep",
    "get_settings",
    "get_clock",
]
