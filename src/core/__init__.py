"""
Core library: infrastructure shared by the gateway client.

Modules:
    errors      - Exception hierarchy and error classification
    logging     - Structured JSON logging with shard/operation context
    resilience  - Backoff configuration, retry state and delay scheduling
    types       - Enums and collaborator protocols

Design Principles:
    - No network code; transports live in the gateway package
    - All modules are independently testable
    - Async-first where applicable
"""

from .types import AccountType, ErrorCategory, ListenerCategory

__version__ = "0.1.0"

__all__ = [
    "AccountType",
    "ErrorCategory",
    "ListenerCategory",
]
