"""OperationResult: the outcome of a send, validation or store call.

Delivery code never decides retry behaviour by catching exceptions.
Providers, channels and AWS calls all return one of these and the
retry controller reads ``is_transient`` / ``is_fatal`` / ``is_skipped``.
"""

from dataclasses import dataclass
from typing import Any, Optional

from infrastructure.operations.status import OperationStatus

FATAL_STATUSES = frozenset({OperationStatus.PERMANENT_ERROR, OperationStatus.NOT_FOUND})


@dataclass(frozen=True)
class OperationResult:
    """Outcome plus an optional machine code and payload.

    Attributes:
        status: High-level outcome
        message: Human readable reason, copied into failure_reason
        data: Provider payload (message id, rejected device tokens)
        error_code: Stable code such as INVALID_PHONE_FORMAT or RATE_LIMITED
        retry_after: Seconds the provider asked us to wait
    """

    status: OperationStatus
    message: str
    data: Optional[Any] = None
    error_code: Optional[str] = None
    retry_after: Optional[int] = None

    @property
    def is_success(self) -> bool:
        return self.status is OperationStatus.SUCCESS

    @property
    def is_transient(self) -> bool:
        return self.status is OperationStatus.TRANSIENT_ERROR

    @property
    def is_fatal(self) -> bool:
        return self.status in FATAL_STATUSES

    @property
    def is_skipped(self) -> bool:
        return self.status is OperationStatus.SKIPPED

    @classmethod
    def success(cls, data: Optional[Any] = None, message: str = "ok") -> "OperationResult":
        return cls(OperationStatus.SUCCESS, message, data=data)

    @classmethod
    def error(
        cls,
        status: OperationStatus,
        message: str,
        error_code: Optional[str] = None,
        retry_after: Optional[int] = None,
        data: Optional[Any] = None,
    ) -> "OperationResult":
        """Any non-success result; prefer the specific factories below."""
        return cls(status, message, data=data, error_code=error_code, retry_after=retry_after)

    @classmethod
    def transient_error(
        cls,
        message: str,
        error_code: Optional[str] = None,
        retry_after: Optional[int] = None,
        data: Optional[Any] = None,
    ) -> "OperationResult":
        """Worth retrying: timeouts, provider 5xx, throttling, open circuits."""
        return cls.error(OperationStatus.TRANSIENT_ERROR, message, error_code, retry_after, data)

    @classmethod
    def permanent_error(
        cls,
        message: str,
        error_code: Optional[str] = None,
        data: Optional[Any] = None,
    ) -> "OperationResult":
        """Retrying cannot help: bad recipient, disabled channel, bad credentials."""
        return cls.error(OperationStatus.PERMANENT_ERROR, message, error_code, data=data)

    @classmethod
    def skipped(cls, message: str, error_code: Optional[str] = None) -> "OperationResult":
        """Deliberately not delivered (opted out, duplicate, no longer relevant)."""
        return cls.error(OperationStatus.SKIPPED, message, error_code)
