"""Integration settings __init__ - exports all integration settings."""

from infrastructure.configuration.integrations.aws import AwsSettings
from infrastructure.configuration.integrations.elasticache import ElastiCacheSettings

__all__ = ["AwsSettings", "ElastiCacheSettings"]
