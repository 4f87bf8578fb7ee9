"""Exception hierarchy for aggbridge.

Every error raised by the tracker, its collaborators and its configuration
layer derives from :class:`AggBridgeError` and carries an
:class:`ErrorContext` naming the transaction, the networks involved and the
last recorded state, so callers can act on a failure without re-querying.
"""

import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories."""

    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    SUBMISSION = "submission"
    TRANSPORT = "transport"
    CLAIM = "claim"
    TRACKING = "tracking"
    SYSTEM = "system"


@dataclass
class ErrorContext:
    """Context information for an error."""

    timestamp: float = field(default_factory=time.time)
    transaction_ref: Optional[str] = None
    source_network: Optional[int] = None
    destination_network: Optional[int] = None
    last_state: Optional[str] = None
    operation: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "timestamp": self.timestamp,
            "transaction_ref": self.transaction_ref,
            "source_network": self.source_network,
            "destination_network": self.destination_network,
            "last_state": self.last_state,
            "operation": self.operation,
            "metadata": self.metadata,
        }


class AggBridgeError(Exception):
    """Base exception for all aggbridge errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
        retryable: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.category = category
        self.context = context or ErrorContext()
        self.cause = cause
        self.retryable = retryable
        self.metadata = metadata or {}
        self.timestamp = time.time()
        self.traceback = traceback.format_exc()

    @property
    def transaction_ref(self) -> Optional[str]:
        return self.context.transaction_ref

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
            "retryable": self.retryable,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]

        if self.error_code:
            parts.append(f"Code: {self.error_code}")

        if self.context.transaction_ref:
            parts.append(f"Tx: {self.context.transaction_ref}")

        if self.severity != ErrorSeverity.MEDIUM:
            parts.append(f"Severity: {self.severity.value}")

        if self.retryable:
            parts.append("Retryable: Yes")

        return " | ".join(parts)


class ValidationError(AggBridgeError):
    """Invalid input or violated record invariant."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        expected: Optional[Any] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", "VALIDATION_FAILED")
        super().__init__(message, category=ErrorCategory.VALIDATION, **kwargs)
        self.field = field
        self.value = value
        self.expected = expected

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "field": self.field,
                "value": str(self.value) if self.value is not None else None,
                "expected": str(self.expected) if self.expected is not None else None,
            }
        )
        return data


class ConfigurationError(AggBridgeError):
    """Configuration error."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", "INVALID_CONFIG")
        super().__init__(message, category=ErrorCategory.CONFIGURATION, **kwargs)
        self.config_key = config_key
        self.config_value = config_value

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "config_key": self.config_key,
                "config_value": (
                    str(self.config_value) if self.config_value is not None else None
                ),
            }
        )
        return data


class TransactionNotFound(AggBridgeError):
    """The reference is not known to the tracker."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "UNKNOWN_TRANSACTION")
        super().__init__(message, category=ErrorCategory.VALIDATION, **kwargs)


class SubmissionFailed(AggBridgeError):
    """The source-chain call reverted or the provider rejected it."""

    def __init__(self, message: str, reason: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "SUBMISSION_FAILED")
        super().__init__(
            message,
            category=ErrorCategory.SUBMISSION,
            severity=ErrorSeverity.HIGH,
            retryable=False,
            **kwargs,
        )
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"reason": self.reason})
        return data


class TransportError(AggBridgeError):
    """Status API, bridge service or RPC endpoint unreachable."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", "TRANSPORT_FAILURE")
        super().__init__(
            message, category=ErrorCategory.TRANSPORT, retryable=True, **kwargs
        )
        self.endpoint = endpoint
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"endpoint": self.endpoint, "status_code": self.status_code})
        return data


class StatusApiError(AggBridgeError):
    """The status API answered with a response that retrying cannot fix."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", "STATUS_API_REJECTED")
        super().__init__(
            message, category=ErrorCategory.TRANSPORT, retryable=False, **kwargs
        )
        self.endpoint = endpoint
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"endpoint": self.endpoint, "status_code": self.status_code})
        return data


class ClaimError(AggBridgeError):
    """Base class for destination-chain claim failures."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.CLAIM)
        super().__init__(message, **kwargs)


class ProofUnavailable(ClaimError):
    """Claim attempted before the destination indexed the source deposit.

    Retryable by the caller once the bridge reports readiness; never retried
    automatically.
    """

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "PROOF_UNAVAILABLE")
        super().__init__(message, retryable=True, **kwargs)


class AlreadyClaimed(ClaimError):
    """The deposit was already claimed on the destination chain."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "ALREADY_CLAIMED")
        super().__init__(message, severity=ErrorSeverity.HIGH, **kwargs)


class ClaimReverted(ClaimError):
    """Any other on-chain rejection of a claim; ``reason`` is kept verbatim."""

    def __init__(self, message: str, reason: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "CLAIM_REVERTED")
        super().__init__(message, severity=ErrorSeverity.HIGH, **kwargs)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"reason": self.reason})
        return data


class TrackingError(AggBridgeError):
    """Tracking ended without the transaction reaching a terminal state."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.TRACKING)
        super().__init__(message, **kwargs)


class TrackingTimeout(TrackingError):
    """The overall tracking deadline elapsed."""

    def __init__(self, message: str, timeout_duration: Optional[float] = None, **kwargs):
        kwargs.setdefault("error_code", "TRACKING_TIMEOUT")
        super().__init__(message, **kwargs)
        self.timeout_duration = timeout_duration

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"timeout_duration": self.timeout_duration})
        return data


class TrackingFailed(TrackingError):
    """Consecutive status query failures exceeded the retry ceiling."""

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        last_error: Optional[str] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", "RETRIES_EXHAUSTED")
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.last_error = last_error

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"attempts": self.attempts, "last_error": self.last_error})
        return data


def create_validation_error(
    field: str, value: Any, expected: Any, message: Optional[str] = None
) -> ValidationError:
    """Create a validation error."""
    if message is None:
        message = f"Invalid value for field '{field}': expected {expected}, got {value!r}"

    return ValidationError(message=message, field=field, value=value, expected=expected)


def create_transport_error(
    endpoint: str,
    status_code: Optional[int] = None,
    message: Optional[str] = None,
    cause: Optional[BaseException] = None,
) -> TransportError:
    """Create a transport error."""
    if message is None:
        if status_code:
            message = f"Request to '{endpoint}' failed: HTTP {status_code}"
        else:
            message = f"Request to '{endpoint}' failed"

    return TransportError(
        message=message, endpoint=endpoint, status_code=status_code, cause=cause
    )
