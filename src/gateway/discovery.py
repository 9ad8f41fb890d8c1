"""
Recommended shard count discovery.

Each probe opens a disposable control-plane session, asks for the recommended
shard count and gateway endpoint, and closes the session again whatever the
outcome. Failed probes are re-scheduled with exponential backoff. By default
there is no attempt limit: the loop runs until a probe succeeds or the caller
cancels the returned future.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Optional

from core.errors.exceptions import (
    ConfigurationError,
    TransientDiscoveryError,
    ValidationError,
    wrap_exception,
)
from core.logging.utilities import log_exception, log_with_context
from core.resilience.retry import DEFAULT_DISCOVERY_RETRY, RetryConfig, RetryState
from core.resilience.scheduler import LoopScheduler
from core.types import ControlPlaneSession, Scheduler, TimerHandle
from gateway.shards import ShardConfig
from gateway.transport import GatewayInfo, ProxySettings, set_default_gateway_url

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str, ProxySettings, bool], ControlPlaneSession]


class _DiscoveryOperation:
    """State of one discover() call: its future, retry state and pending timer."""

    def __init__(
        self,
        client: "ShardDiscoveryClient",
        future: asyncio.Future,
        retry_state: RetryState,
        token: str,
        proxy_settings: ProxySettings,
        trust_all_certificates: bool,
    ):
        self.client = client
        self.future = future
        self.retry_state = retry_state
        self.token = token
        self.proxy_settings = proxy_settings
        self.trust_all_certificates = trust_all_certificates
        self._timer: Optional[TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        future.add_done_callback(self._on_done)

    def _on_done(self, future: asyncio.Future) -> None:
        if not future.cancelled():
            return
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.info(
            "Recommended shard discovery cancelled",
            extra={"attempt": self.retry_state.attempt},
        )

    def probe(self) -> None:
        """Start one probe; used both for the first attempt and as the timer callback."""
        self._timer = None
        if self.future.done():
            return
        self._task = asyncio.ensure_future(self._probe())

    async def _probe(self) -> None:
        self.retry_state.record_probe()
        session: Optional[ControlPlaneSession] = None
        try:
            session = self.client.session_factory(
                self.token, self.proxy_settings, self.trust_all_certificates
            )
            info = await session.get_recommended_shards()
        except Exception as e:
            self._retry_later(e)
        else:
            self._apply(info)
        finally:
            if session is not None:
                await self._close(session)

    def _apply(self, info: GatewayInfo) -> None:
        # Errors applying a received response fail the operation, no retry
        if self.future.done():
            return
        try:
            self.client.on_gateway_url(info.url)
            self.client.shard_config.set_total_shards(info.shards)
        except Exception as e:
            log_exception(
                logger,
                e,
                "Could not apply recommended total shards",
                include_traceback=not isinstance(e, ValidationError),
                total_shards=getattr(info, "shards", None),
            )
            self.future.set_exception(e)
            return

        self.retry_state.reset()
        logger.info(
            "Recommended total shards: %d",
            info.shards,
            extra={"total_shards": info.shards, "gateway_url": info.url},
        )
        self.future.set_result(info)

    def _retry_later(self, error: Exception) -> None:
        wrapped = wrap_exception(error)
        attempt = self.retry_state.increment()
        if self.future.done():
            return

        retry_config = self.client.retry_config
        if retry_config.is_exhausted(attempt):
            log_exception(
                logger,
                wrapped,
                "Giving up on recommended total shards",
                attempt=attempt,
                max_attempts=retry_config.max_attempts,
            )
            self.future.set_exception(
                TransientDiscoveryError(
                    f"Could not get recommended total shards after {attempt} attempts",
                    attempt=attempt,
                    cause=wrapped,
                )
            )
            return

        delay = self.retry_state.next_delay(retry_config.get_delay(attempt - 1, wrapped))
        log_with_context(
            logger,
            logging.INFO,
            f"Retrying to get recommended total shards in {delay:.2f} seconds!",
            attempt=attempt,
            delay_seconds=round(delay, 2),
            error_category=wrapped.category.value,
            error_message=str(error)[:200],
        )
        self._timer = self.client.scheduler.after(delay, self.probe)

    @staticmethod
    async def _close(session: ControlPlaneSession) -> None:
        try:
            await session.close()
        except Exception as e:
            log_exception(
                logger,
                e,
                "Failed to close discovery session",
                level=logging.WARNING,
                include_traceback=False,
            )


class ShardDiscoveryClient:
    """Asks the service how many shards to use and where to connect."""

    def __init__(
        self,
        shard_config: ShardConfig,
        session_factory: SessionFactory,
        retry_config: RetryConfig | None = None,
        scheduler: Scheduler | None = None,
        on_gateway_url: Callable[[str], Any] = set_default_gateway_url,
    ):
        self.shard_config = shard_config
        self.session_factory = session_factory
        self.retry_config = retry_config or DEFAULT_DISCOVERY_RETRY
        self.scheduler = scheduler or LoopScheduler()
        self.on_gateway_url = on_gateway_url

    def discover(
        self,
        token: Optional[str],
        proxy_settings: ProxySettings | None = None,
        trust_all_certificates: bool = False,
        retry_state: RetryState | None = None,
    ) -> asyncio.Future:
        """
        Resolve the recommended shard count, retrying until it succeeds.

        Must be called with a running event loop. The first probe starts
        immediately; the returned future resolves with the GatewayInfo once a
        probe succeeds and its shard count has been applied to the shard
        config. Cancel the future to stop retrying.

        Args:
            token: Credential used for the control-plane query
            proxy_settings: Proxy configuration for the disposable sessions
            trust_all_certificates: Disable certificate verification
            retry_state: Attempt counter to use (a fresh one by default)

        Returns:
            Future resolving to GatewayInfo
        """
        future = asyncio.get_running_loop().create_future()
        if not token:
            future.set_exception(
                ConfigurationError(
                    "You cannot request the recommended total shards without a token!"
                )
            )
            return future

        retry_state = retry_state if retry_state is not None else RetryState()
        retry_state.reset()
        operation = _DiscoveryOperation(
            self,
            future,
            retry_state,
            token,
            proxy_settings or ProxySettings(),
            trust_all_certificates,
        )
        operation.probe()
        return future


__all__ = ["SessionFactory", "ShardDiscoveryClient"]
