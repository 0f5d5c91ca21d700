"""Error classifiers for provider exceptions.

Converts provider-specific exceptions (transport gateways, AWS SDK) into
standardized OperationResult objects so that the retry controller only ever
deals with transient, fatal and skipped outcomes.

Key Functions:
- classify_provider_error(): e-mail/SMS/push gateway errors → OperationResult
- classify_provider_code(): bare provider error code → OperationResult
- classify_aws_error(): AWS SDK errors → OperationResult

Usage:
    from infrastructure.operations.classifiers import classify_provider_error

    try:
        result = provider.send(number, text)
    except Exception as exc:
        return classify_provider_error(exc)
"""

from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional

from botocore.exceptions import ClientError

from infrastructure.operations.errors import ProviderError
from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

# Codes that can never succeed on retry
FATAL_PROVIDER_CODES = frozenset(
    {
        "INVALID_RECIPIENT",
        "INVALID_EMAIL",
        "INVALID_PHONE_FORMAT",
        "BOUNCED",
        "COMPLAINED",
        "UNAUTHORIZED",
        "FORBIDDEN",
        "MISSING_CREDENTIALS",
        "CHANNEL_DISABLED",
        "USER_HAS_OPTED_OUT",
        "PUSH_DISABLED",
        "INVALID_REGISTRATION",
        "NOT_REGISTERED",
        "INVALID_TOKEN",
        "TOKEN_NOT_FOUND",
        "NO_VALID_DEVICE_TOKENS",
    }
)

TRANSIENT_PROVIDER_CODES = frozenset(
    {
        "TIMEOUT",
        "SEND_TIMEOUT",
        "RATE_LIMITED",
        "SERVER_ERROR",
        "SERVICE_UNAVAILABLE",
        "SOFT_BOUNCE",
        "CONNECTION_ERROR",
    }
)


def classify_provider_code(
    code: Optional[str],
    message: str,
    retry_after: Optional[int] = None,
) -> OperationResult:
    """Classify a provider error code into an OperationResult.

    Unknown codes are treated as transient: a gateway that fails without a
    recognizable code is assumed to be degraded rather than rejecting the
    message outright.

    Args:
        code: Provider error code, any case
        message: Human-friendly message to carry on the result
        retry_after: Optional retry hint in seconds

    Returns:
        OperationResult with TRANSIENT_ERROR or PERMANENT_ERROR status
    """
    normalized = (code or "").upper()
    if normalized in FATAL_PROVIDER_CODES:
        return OperationResult.permanent_error(message, error_code=normalized)
    if normalized in TRANSIENT_PROVIDER_CODES:
        return OperationResult.transient_error(
            message, error_code=normalized, retry_after=retry_after
        )
    return OperationResult.transient_error(
        message, error_code=normalized or "PROVIDER_ERROR", retry_after=retry_after
    )


def classify_provider_error(exc: Exception) -> OperationResult:
    """Classify an exception raised by a transport provider.

    Mapping:
    - ProviderError with explicit retryable hint → honoured
    - ProviderError with HTTP 429 → TRANSIENT_ERROR (RATE_LIMITED)
    - ProviderError with HTTP 5xx → TRANSIENT_ERROR (SERVER_ERROR)
    - ProviderError with HTTP 401/403 → PERMANENT_ERROR
    - ProviderError with other 4xx → PERMANENT_ERROR (INVALID_REQUEST)
    - ProviderError with a code → classify_provider_code()
    - TimeoutError / ConnectionError → TRANSIENT_ERROR
    - Anything else → TRANSIENT_ERROR (SYSTEM_ERROR)

    Args:
        exc: Exception raised while calling the provider

    Returns:
        OperationResult with the classified status
    """
    if isinstance(exc, ProviderError):
        code = (exc.code or "").upper() or None

        if exc.retryable is True:
            return OperationResult.transient_error(
                exc.message,
                error_code=code or "PROVIDER_ERROR",
                retry_after=exc.retry_after,
            )
        if exc.retryable is False:
            return OperationResult.permanent_error(
                exc.message, error_code=code or "PROVIDER_REJECTED"
            )

        status_code = exc.status_code
        if status_code == 429:
            return OperationResult.transient_error(
                f"Provider rate limited: {exc.message}",
                error_code="RATE_LIMITED",
                retry_after=exc.retry_after or 60,
            )
        if status_code and 500 <= status_code < 600:
            return OperationResult.transient_error(
                f"Provider server error ({status_code}): {exc.message}",
                error_code="SERVER_ERROR",
                retry_after=exc.retry_after,
            )
        if status_code in (401, 403):
            return OperationResult.permanent_error(
                f"Provider rejected credentials ({status_code})",
                error_code="UNAUTHORIZED" if status_code == 401 else "FORBIDDEN",
            )
        if code:
            return classify_provider_code(code, exc.message, exc.retry_after)
        if status_code and 400 <= status_code < 500:
            return OperationResult.permanent_error(
                f"Provider client error ({status_code}): {exc.message}",
                error_code="INVALID_REQUEST",
            )
        return OperationResult.transient_error(
            f"Provider error: {exc.message}", error_code="PROVIDER_ERROR"
        )

    if isinstance(exc, (TimeoutError, FutureTimeoutError)):
        return OperationResult.transient_error(
            f"Provider timed out: {str(exc) or type(exc).__name__}",
            error_code="SEND_TIMEOUT",
        )

    if isinstance(exc, ConnectionError):
        return OperationResult.transient_error(
            f"Connection error: {type(exc).__name__}: {str(exc)}",
            error_code="CONNECTION_ERROR",
        )

    return OperationResult.transient_error(
        f"Unexpected error: {type(exc).__name__}: {str(exc)}",
        error_code="SYSTEM_ERROR",
    )


def classify_aws_error(exc: Exception) -> OperationResult:
    """Classify AWS SDK errors into OperationResult.

    Handles botocore.exceptions.ClientError exceptions by mapping AWS error
    codes to appropriate OperationStatus values. Unknown errors are treated
    as transient, following the AWS SDK convention.

    Error Code Mapping:
    - ThrottlingException / ProvisionedThroughputExceededException → TRANSIENT_ERROR
    - ConditionalCheckFailedException → PERMANENT_ERROR (CONDITION_FAILED)
    - AccessDeniedException → PERMANENT_ERROR
    - ResourceNotFoundException → NOT_FOUND
    - ValidationException → PERMANENT_ERROR
    - Other → TRANSIENT_ERROR

    Args:
        exc: Exception raised by AWS SDK (boto3/botocore)

    Returns:
        OperationResult with appropriate status, message, error_code, and
        retry_after (if applicable)
    """
    if not isinstance(exc, ClientError):
        return OperationResult.transient_error(
            f"AWS connection error: {type(exc).__name__}: {str(exc)}",
            error_code="CONNECTION_ERROR",
        )

    error_code = "Unknown"
    if hasattr(exc, "response") and exc.response:
        error_info = exc.response.get("Error", {})
        error_code = error_info.get("Code", "Unknown")

    if error_code in ("ThrottlingException", "ProvisionedThroughputExceededException"):
        return OperationResult.error(
            OperationStatus.TRANSIENT_ERROR,
            "AWS API throttled",
            error_code="RATE_LIMITED",
            retry_after=60,
        )

    # A failed condition is an expected outcome for claims and reservations
    if error_code == "ConditionalCheckFailedException":
        return OperationResult.permanent_error(
            "DynamoDB condition not met",
            error_code="CONDITION_FAILED",
        )

    if error_code == "AccessDeniedException":
        return OperationResult.permanent_error(
            "AWS API access denied",
            error_code="FORBIDDEN",
        )

    if error_code == "ResourceNotFoundException":
        return OperationResult.error(
            OperationStatus.NOT_FOUND,
            "AWS resource not found",
            error_code="NOT_FOUND",
        )

    if error_code in (
        "ValidationException",
        "InvalidParameterException",
        "BadRequestException",
    ):
        return OperationResult.permanent_error(
            f"AWS validation error: {error_code}",
            error_code="INVALID_REQUEST",
        )

    return OperationResult.transient_error(
        f"AWS client error: {error_code}",
        error_code="AWS_CLIENT_ERROR",
    )
