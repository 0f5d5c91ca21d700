"""Base classes for the settings sections.

Every section reads the process environment (and `.env` when present)
with case-sensitive aliases and ignores variables it does not declare.
The three bases only differ in name; they tell the reader which layer a
section configures.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_CONFIG = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


class SectionSettings(BaseSettings):
    model_config = ENV_CONFIG


class IntegrationSettings(SectionSettings):
    """External services the engine talks to (AWS, ElastiCache)."""


class FeatureSettings(SectionSettings):
    """Channels, scheduling, retention, rate limits and batching."""


class InfrastructureSettings(SectionSettings):
    """Retry policies, idempotency and the record store."""
