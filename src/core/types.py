"""
Core types and protocols used across modules.

This module provides base enums and the protocol definitions of the
collaborators the gateway client talks to (connection factory, control-plane
session, scheduler) so that the orchestration code can be tested without a
network.
"""

from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Optional, Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., network timeouts, 429/503 errors)
        AUTH: Authentication failures (e.g., 401 errors, revoked tokens)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., validation errors, configuration issues)
        UNKNOWN: Unclassified errors, may retry conservatively
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class AccountType(Enum):
    """Type of account a credential belongs to."""

    BOT = "bot"
    CLIENT = "client"


class ListenerCategory(Enum):
    """
    Categories of globally attachable listeners.

    Listeners are registered per category on the client builder and attached
    to every gateway session it creates.
    """

    CONNECTION = "connection"
    MESSAGE = "message"
    SERVER = "server"
    USER = "user"
    RAW = "raw"


class GatewaySession(Protocol):
    """A logged-in shard connection returned by a ConnectionFactory."""

    def add_listener(self, category: ListenerCategory, listener: Callable[[Any], Any]) -> None:
        ...

    async def disconnect(self) -> None:
        ...


class ConnectionFactory(Protocol):
    """
    Opens one logical shard connection.

    The returned awaitable resolves once the gateway handshake completes and
    raises if the handshake fails.
    """

    def open(
        self,
        account_type: AccountType,
        token: str,
        shard: int,
        total_shards: int,
        wait_for_servers_on_startup: bool,
        proxy_selector: Optional[Callable[[str], Optional[str]]],
        proxy: Optional[str],
        proxy_auth: Any,
        trust_all_certificates: bool,
    ) -> Awaitable[GatewaySession]:
        ...


class ControlPlaneSession(Protocol):
    """Disposable session used for a single control-plane query."""

    async def get_recommended_shards(self) -> Any:
        """
        Ask the service for the recommended shard count and gateway endpoint.

        Returns:
            A GatewayInfo-like object with ``url`` and ``shards`` attributes
        """
        ...

    async def close(self) -> None:
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Delayed re-invocation primitive used for backoff."""

    def after(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        ...


__all__ = [
    "AccountType",
    "ConnectionFactory",
    "ControlPlaneSession",
    "ErrorCategory",
    "GatewaySession",
    "ListenerCategory",
    "Scheduler",
    "TimerHandle",
]
