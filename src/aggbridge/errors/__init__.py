"""aggbridge error handling.

Exception hierarchy shared by the tracker and its collaborators, plus the
retry policy applied to transient status query failures.
"""

from .exceptions import (
    AggBridgeError,
    AlreadyClaimed,
    ClaimError,
    ClaimReverted,
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    ProofUnavailable,
    StatusApiError,
    SubmissionFailed,
    TrackingError,
    TrackingFailed,
    TrackingTimeout,
    TransactionNotFound,
    TransportError,
    ValidationError,
    create_transport_error,
    create_validation_error,
)
from .recovery import RetryPolicy

__all__ = [
    "AggBridgeError",
    "AlreadyClaimed",
    "ClaimError",
    "ClaimReverted",
    "ConfigurationError",
    "ErrorCategory",
    "ErrorContext",
    "ErrorSeverity",
    "ProofUnavailable",
    "StatusApiError",
    "SubmissionFailed",
    "TrackingError",
    "TrackingFailed",
    "TrackingTimeout",
    "TransactionNotFound",
    "TransportError",
    "ValidationError",
    "create_transport_error",
    "create_validation_error",
    "RetryPolicy",
]
