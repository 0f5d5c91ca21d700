"""Exceptions raised by transport providers and stores."""

from typing import Optional


class ProviderError(Exception):
    """Raised by an e-mail, SMS or push provider when a send is rejected.

    Attributes:
        code: Provider error code (e.g. "BOUNCED", "not_registered")
        status_code: Optional HTTP status returned by the gateway
        retryable: Explicit retry hint from the provider, if it gives one
        retry_after: Optional seconds to wait before retrying
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
        retry_after: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.retryable = retryable
        self.retry_after = retry_after
        super().__init__(message)


class NotificationStoreError(Exception):
    """Raised when the notification record store cannot complete a call."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code
        super().__init__(message)
