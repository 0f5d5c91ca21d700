"""AWS integration settings."""

from typing import Optional

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class AwsSettings(IntegrationSettings):
    """Where the DynamoDB-backed store and idempotency cache live.

    Environment Variables:
        AWS_REGION: Region of the DynamoDB tables (default: ca-central-1)
        AWS_ENDPOINT_URL: Endpoint override for DynamoDB Local or LocalStack
    """

    AWS_REGION: str = Field(default="ca-central-1", alias="AWS_REGION")
    ENDPOINT_URL: Optional[str] = Field(default=None, alias="AWS_ENDPOINT_URL")
