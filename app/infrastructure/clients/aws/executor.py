"""Base AWS client utilities for infrastructure clients.

Provides `get_boto3_client` and `execute_aws_api_call` with the
OperationResult pattern. This module avoids reading settings at import
time and accepts configuration via parameters.
"""

import time
from typing import Any, Dict, List, Optional

import boto3  # type: ignore
from botocore.client import BaseClient  # type: ignore
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore
import structlog

from infrastructure.operations.classifiers import classify_aws_error
from infrastructure.operations.result import OperationResult

logger = structlog.get_logger()


def get_boto3_client(
    service_name: str,
    session_config: Optional[Dict[str, Any]] = None,
    client_config: Optional[Dict[str, Any]] = None,
) -> BaseClient:
    """Create a boto3 client for the given service.

    Args:
        service_name: AWS service name (e.g., 'dynamodb')
        session_config: Optional boto3 session kwargs (e.g., region_name)
        client_config: Optional client kwargs (e.g., endpoint_url)

    Returns:
        botocore client instance
    """
    session = boto3.Session(**(session_config or {}))
    return session.client(service_name, **(client_config or {}))


def _calculate_retry_delay(attempt: int, backoff_factor: float = 0.5) -> float:
    return backoff_factor * (2**attempt)


def _call_api_once(
    client: BaseClient,
    method: str,
    keys: Optional[List[str]],
    force_paginate: bool,
    kwargs: Dict[str, Any],
) -> Any:
    if force_paginate:
        paginator = client.get_paginator(method)
        results: List[Any] = []
        for page in paginator.paginate(**kwargs):
            for k in keys or []:
                if k in page and isinstance(page[k], list):
                    results.extend(page[k])
        return results

    return getattr(client, method)(**kwargs)


def execute_aws_api_call(
    client: BaseClient,
    method: str,
    keys: Optional[List[str]] = None,
    max_retries: int = 3,
    force_paginate: bool = False,
    backoff_factor: float = 0.5,
    expected_error_codes: Optional[List[str]] = None,
    **kwargs,
) -> OperationResult:
    """Execute an AWS API call with retries and standardized results.

    Throttling is retried with exponential backoff. Every other failure is
    classified once and returned. Codes listed in ``expected_error_codes``
    (for example the CONDITION_FAILED outcome of a conditional put) are
    logged at debug level instead of error.

    Args:
        client: boto3 client to call.
        method: Client method name (e.g., 'put_item').
        keys: Response keys collected across pages when paginating.
        max_retries: Retries for transient failures.
        force_paginate: Use the client's paginator for the call.
        backoff_factor: Base of the exponential retry delay.
        expected_error_codes: Classified error codes that are normal outcomes.
        **kwargs: Parameters forwarded to the API method.

    Returns:
        OperationResult with the response (or collected items) as data.
    """
    expected = set(expected_error_codes or [])
    mapped = OperationResult.permanent_error("unknown_error")

    for attempt in range(max_retries + 1):
        try:
            result = _call_api_once(client, method, keys, force_paginate, kwargs)
            return OperationResult.success(data=result, message=f"{method} succeeded")

        except (ClientError, BotoCoreError) as e:
            mapped = classify_aws_error(e)

            if mapped.error_code in expected:
                logger.debug(
                    "aws_api_expected_error",
                    method=method,
                    error_code=mapped.error_code,
                )
                return mapped

            if mapped.is_transient and attempt < max_retries:
                delay = _calculate_retry_delay(attempt, backoff_factor)
                logger.warning(
                    "aws_api_retry",
                    method=method,
                    attempt=attempt + 1,
                    error=str(e),
                    delay=delay,
                )
                time.sleep(delay)
                continue

            logger.error(
                "aws_api_error_final",
                method=method,
                error=str(e),
                error_code=mapped.error_code,
            )
            return mapped

    return mapped
