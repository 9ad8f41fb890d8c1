"""
Resilience patterns: backoff configuration, retry state and scheduling.
"""

from core.resilience.retry import (
    DEFAULT_DISCOVERY_RETRY,
    RetryConfig,
    RetryState,
)
from core.resilience.scheduler import LoopScheduler

__all__ = [
    "DEFAULT_DISCOVERY_RETRY",
    "LoopScheduler",
    "RetryConfig",
    "RetryState",
]
