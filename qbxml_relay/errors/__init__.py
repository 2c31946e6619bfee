"""Error classification and retry engine."""

from qbxml_relay.errors.classifier import (
    Classification,
    ClassifiedError,
    ErrorCode,
    classify,
    classify_message,
    is_quickbooks_error,
    log_classified,
)
from qbxml_relay.errors.retry import (
    DEFAULT_RETRYABLE_CODES,
    BatchError,
    BatchOutcome,
    BatchProcessor,
    RetryExecutor,
    RetryPolicy,
    apply_retry_defaults,
    compute_delay,
    interruptible_sleep,
)

__all__ = [
    "Classification",
    "ClassifiedError",
    "ErrorCode",
    "classify",
    "classify_message",
    "is_quickbooks_error",
    "log_classified",
    "DEFAULT_RETRYABLE_CODES",
    "RetryPolicy",
    "RetryExecutor",
    "BatchProcessor",
    "BatchOutcome",
    "BatchError",
    "apply_retry_defaults",
    "compute_delay",
    "interruptible_sleep",
]
