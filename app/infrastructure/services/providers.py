"""
Factory functions for dependency injection.

Provides application-scoped singleton providers for core infrastructure services.
"""

from functools import lru_cache

from infrastructure.clock import Clock, SystemClock
from infrastructure.configuration import Settings


@lru_cache
def get_settings() -> Settings:
    """
    Get application-scoped settings singleton.

    This is the single source of truth for settings across the entire application.
    The @lru_cache decorator ensures only ONE instance is created per process.

    Components never call this themselves: the engine factory reads the
    settings once and hands each component the section it needs.

    Returns:
        Settings: Cached settings instance loaded from environment.
    """
    return Settings()


@lru_cache
def get_clock() -> Clock:
    """
    Get the application-scoped wall clock.

    Returns:
        Clock: SystemClock shared by every component of the process.
    """
    return SystemClock()
