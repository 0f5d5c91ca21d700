"""Region and endpoint configuration for boto3 clients."""

from typing import Any, Dict, Optional

from infrastructure.clients.aws.executor import get_boto3_client


class SessionProvider:
    """Builds boto3 clients for one region, optionally against a local endpoint.

    Credentials come from the default boto3 chain (environment, task role).

    Args:
        region: AWS region, e.g. ca-central-1
        endpoint_url: DynamoDB Local or LocalStack URL
    """

    def __init__(self, region: Optional[str] = None, endpoint_url: Optional[str] = None) -> None:
        self.region = region
        self.endpoint_url = endpoint_url

    def build_client_kwargs(self) -> Dict[str, Any]:
        session_config = {"region_name": self.region} if self.region else {}
        client_config = dict(session_config)
        if self.endpoint_url:
            client_config["endpoint_url"] = self.endpoint_url
        return {
            "session_config": session_config or None,
            "client_config": client_config or None,
        }

    def get_boto3_client(self, service_name: str) -> Any:
        return get_boto3_client(service_name, **self.build_client_kwargs())
