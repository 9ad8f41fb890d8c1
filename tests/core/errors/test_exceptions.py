"""Tests for the gateway error hierarchy and classification helpers."""

import asyncio

import pytest

from core.errors.exceptions import (
    AuthError,
    ConfigurationError,
    GatewayError,
    PermanentError,
    ThrottlingError,
    TransientDiscoveryError,
    TransientError,
    UsageError,
    ValidationError,
    classify_exception,
    classify_http_status,
    wrap_exception,
)
from core.types import ErrorCategory


class TestHierarchy:

    @pytest.mark.parametrize(
        "exc_class,category",
        [
            (AuthError, ErrorCategory.AUTH),
            (TransientError, ErrorCategory.TRANSIENT),
            (ThrottlingError, ErrorCategory.TRANSIENT),
            (TransientDiscoveryError, ErrorCategory.TRANSIENT),
            (PermanentError, ErrorCategory.PERMANENT),
            (ConfigurationError, ErrorCategory.PERMANENT),
            (ValidationError, ErrorCategory.PERMANENT),
            (UsageError, ErrorCategory.PERMANENT),
            (GatewayError, ErrorCategory.UNKNOWN),
        ],
    )
    def test_categories(self, exc_class, category):
        assert exc_class("boom").category is category

    def test_permanent_errors_are_not_retryable(self):
        assert not ConfigurationError("no token").is_retryable
        assert not ValidationError("bad shard").is_retryable
        assert TransientError("timeout").is_retryable
        assert AuthError("401").is_retryable

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            raise ValidationError("shard cannot be less than 0!")

    def test_str_includes_cause(self):
        cause = ConnectionError("reset by peer")
        error = TransientError("probe failed", cause=cause)
        assert str(error) == "probe failed | Caused by: reset by peer"

    def test_context_defaults_to_empty_dict(self):
        assert GatewayError("x").context == {}

    def test_throttling_error_keeps_retry_after(self):
        assert ThrottlingError("slow down", retry_after=2.5).retry_after == 2.5

    def test_discovery_error_keeps_attempt(self):
        assert TransientDiscoveryError("gave up", attempt=4).attempt == 4


class TestClassifyHttpStatus:

    @pytest.mark.parametrize(
        "status,category",
        [
            (200, ErrorCategory.UNKNOWN),
            (401, ErrorCategory.AUTH),
            (429, ErrorCategory.TRANSIENT),
            (403, ErrorCategory.PERMANENT),
            (404, ErrorCategory.PERMANENT),
            (500, ErrorCategory.TRANSIENT),
            (503, ErrorCategory.TRANSIENT),
        ],
    )
    def test_status_mapping(self, status, category):
        assert classify_http_status(status) is category


class TestClassifyException:

    def test_gateway_error_keeps_category(self):
        assert classify_exception(AuthError("x")) is ErrorCategory.AUTH

    def test_connection_errors_are_transient(self):
        assert classify_exception(ConnectionError("Connection refused")) is ErrorCategory.TRANSIENT

    def test_timeouts_are_transient(self):
        assert classify_exception(asyncio.TimeoutError()) is ErrorCategory.TRANSIENT

    def test_unauthorized_is_auth(self):
        assert classify_exception(RuntimeError("401 Unauthorized")) is ErrorCategory.AUTH

    def test_forbidden_is_permanent(self):
        assert classify_exception(RuntimeError("403 Forbidden")) is ErrorCategory.PERMANENT

    def test_unknown(self):
        assert classify_exception(RuntimeError("something odd")) is ErrorCategory.UNKNOWN


class TestWrapException:

    def test_gateway_error_returned_as_is_with_context(self):
        error = TransientError("x")
        wrapped = wrap_exception(error, context={"attempt": 1})
        assert wrapped is error
        assert error.context == {"attempt": 1}

    def test_throttling_detected(self):
        wrapped = wrap_exception(RuntimeError("429 Too Many Requests"))
        assert isinstance(wrapped, ThrottlingError)
        assert wrapped.context["error_type"] == "throttling"

    def test_timeout_detected(self):
        wrapped = wrap_exception(TimeoutError("read timeout"))
        assert isinstance(wrapped, TransientError)
        assert wrapped.context["error_type"] == "timeout"

    def test_auth_detected(self):
        assert isinstance(wrap_exception(RuntimeError("401 Unauthorized")), AuthError)

    def test_unknown_uses_default_class(self):
        cause = RuntimeError("odd")
        wrapped = wrap_exception(cause)
        assert type(wrapped) is GatewayError
        assert wrapped.cause is cause
