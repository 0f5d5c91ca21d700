"""Operation result types and status enums.

This module contains standardized result types for operations across
the application, including status enums, result dataclasses, and error
classifiers for provider exceptions.
"""

from infrastructure.operations.classifiers import (
    classify_aws_error,
    classify_provider_code,
    classify_provider_error,
)
from infrastructure.operations.errors import NotificationStoreError, ProviderError
from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

__all__ = [
    "OperationResult",
    "OperationStatus",
    "ProviderError",
    "NotificationStoreError",
    "classify_provider_error",
    "classify_provider_code",
    "classify_aws_error",
]
