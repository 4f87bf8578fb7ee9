"""Retry policy used by the tracking loop when status queries fail."""

import random
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .exceptions import AggBridgeError, TransportError


@dataclass
class RetryPolicy:
    """Retry policy configuration.

    ``max_retries`` is the number of consecutive failures tolerated; the
    failure after that is fatal for the current tracking session.
    """

    max_retries: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: List[type] = field(default_factory=lambda: [TransportError])

    def get_delay(self, attempt: int) -> float:
        """Get delay for the given attempt."""
        if attempt <= 0:
            return 0.0

        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay *= random.uniform(0.5, 1.5)

        return delay

    def is_retryable(self, error: BaseException) -> bool:
        """Whether ``error`` should be absorbed and retried."""
        if isinstance(error, AggBridgeError) and not error.retryable:
            return False
        return any(isinstance(error, exc_type) for exc_type in self.retryable_exceptions)

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        return attempt <= self.max_retries and self.is_retryable(error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_retries": self.max_retries,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "exponential_base": self.exponential_base,
            "jitter": self.jitter,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryPolicy":
        return cls(
            max_retries=int(data.get("max_retries", cls.max_retries)),
            base_delay=float(data.get("base_delay", cls.base_delay)),
            max_delay=float(data.get("max_delay", cls.max_delay)),
            exponential_base=float(data.get("exponential_base", cls.exponential_base)),
            jitter=bool(data.get("jitter", cls.jitter)),
        )
