"""Operation status enumeration.

Status codes shared by every send, validate and dispatch operation so that
callers can decide between delivery, retry, terminal failure and skip
without catching exceptions.
"""

from enum import Enum


class OperationStatus(Enum):
    """Status codes for operation results.

    Attributes:
        SUCCESS: Operation completed (message accepted by the provider)
        TRANSIENT_ERROR: Retryable error (timeout, provider 5xx, rate limit)
        PERMANENT_ERROR: Non-retryable error (invalid recipient, disabled
            channel, missing credentials)
        SKIPPED: Nothing to do (no longer relevant, user opted out, duplicate)
        NOT_FOUND: Referenced record or resource does not exist
    """

    SUCCESS = "success"
    TRANSIENT_ERROR = "transient_error"
    PERMANENT_ERROR = "permanent_error"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
