"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_shard: ContextVar[str] = ContextVar("shard", default="")
_operation: ContextVar[str] = ContextVar("operation", default="")
_domain: ContextVar[str] = ContextVar("domain", default="")
_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


def set_log_context(
    shard: Optional[int | str] = None,
    operation: Optional[str] = None,
    domain: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> None:
    if shard is not None:
        _shard.set(str(shard))
    if operation is not None:
        _operation.set(operation)
    if domain is not None:
        _domain.set(domain)
    if trace_id is not None:
        _trace_id.set(trace_id)


def get_log_context() -> Dict[str, str]:
    return {
        "shard": _shard.get(),
        "operation": _operation.get(),
        "domain": _domain.get(),
        "trace_id": _trace_id.get(),
    }


def clear_log_context() -> None:
    _shard.set("")
    _operation.set("")
    _domain.set("")
    _trace_id.set("")
