"""
Backoff configuration and retry bookkeeping.

RetryConfig computes delays with exponential growth and equal jitter.
RetryState is the attempt counter owned by one in-flight retrying
operation; it is never shared between operations.
"""

import logging
import random
import threading
from dataclasses import dataclass, field

from core.errors.exceptions import ThrottlingError

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    max_attempts of None means retry until success.
    """

    max_attempts: int | None = None
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0

    # If True, use retry_after from ThrottlingError when available
    respect_retry_after: bool = True

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        if self.max_attempts is not None:
            self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)
        # bool('false') would be True, so only coerce non-bools
        self.respect_retry_after = (
            self.respect_retry_after
            if isinstance(self.respect_retry_after, bool)
            else str(self.respect_retry_after).lower() in ("1", "true", "yes")
        )
        if self.base_delay <= 0:
            raise ValueError(f"base_delay must be > 0, got {self.base_delay}")
        if self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})"
            )
        # Below 2 the jitter windows of consecutive attempts overlap
        if self.exponential_base < 2:
            raise ValueError(f"exponential_base must be >= 2, got {self.exponential_base}")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def get_delay(self, attempt: int, error: Exception | None = None) -> float:
        """
        Calculate delay with equal jitter to prevent thundering herd.

        The jittered window for attempt n is [b/2, b] with b = base * exp**n,
        so the window of n+1 starts where the window of n ends and delays
        never shrink between consecutive attempts. A retry_after from a
        ThrottlingError can lengthen the delay but never shorten it.

        Args:
            attempt: 0-indexed attempt number
            error: Optional exception to check for retry_after

        Returns:
            Delay in seconds
        """
        # Exponent is clamped so huge attempt counters don't overflow float
        exponent = min(attempt, 64)
        base_delay = self.base_delay * (self.exponential_base**exponent)

        # Apply equal jitter: half fixed, half random
        jitter = random.uniform(0, base_delay / 2)
        delay = (base_delay / 2) + jitter

        if (
            self.respect_retry_after
            and isinstance(error, ThrottlingError)
            and error.retry_after
        ):
            delay = max(delay, error.retry_after)

        return min(delay, self.max_delay)

    def is_exhausted(self, attempt: int) -> bool:
        """Whether `attempt` failed attempts use up the configured budget."""
        return self.max_attempts is not None and attempt >= self.max_attempts


DEFAULT_DISCOVERY_RETRY = RetryConfig(base_delay=1.0, max_delay=60.0)


@dataclass
class RetryState:
    """Attempt counter of one retrying operation.

    ``attempt`` counts consecutive failures and goes back to zero on
    success. ``probes`` counts every attempt made, successful or not.
    ``last_delay`` is the longest delay handed out since the last reset.
    """

    attempt: int = 0
    probes: int = 0
    last_delay: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_probe(self) -> int:
        with self._lock:
            self.probes += 1
            return self.probes

    def increment(self) -> int:
        """Record a failed attempt and return the new attempt count."""
        with self._lock:
            self.attempt += 1
            return self.attempt

    def next_delay(self, delay: float) -> float:
        """Delay before the next attempt, never shorter than the previous one."""
        with self._lock:
            self.last_delay = max(self.last_delay, delay)
            return self.last_delay

    def reset(self) -> None:
        with self._lock:
            self.attempt = 0
            self.last_delay = 0.0


__all__ = [
    "DEFAULT_DISCOVERY_RETRY",
    "RetryConfig",
    "RetryState",
]
