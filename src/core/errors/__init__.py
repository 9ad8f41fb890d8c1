"""
Error classification and exception hierarchy.

Provides:
- GatewayError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from core.errors.exceptions import (
    AuthError,
    ConfigurationError,
    # Base classes
    GatewayError,
    PermanentError,
    ThrottlingError,
    TransientDiscoveryError,
    TransientError,
    UsageError,
    ValidationError,
    classify_exception,
    # Classification utilities
    classify_http_status,
    wrap_exception,
)

__all__ = [
    # Base classes
    "GatewayError",
    "AuthError",
    "TransientError",
    "PermanentError",
    # Transient errors
    "ThrottlingError",
    "TransientDiscoveryError",
    # Permanent errors
    "ConfigurationError",
    "ValidationError",
    "UsageError",
    # Classification utilities
    "classify_http_status",
    "classify_exception",
    "wrap_exception",
]
