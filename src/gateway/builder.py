"""
Client builder: credentials, shard numbering and the login orchestration.

ClientBuilder collects the settings a gateway client needs and turns them
into shard connections:

    builder = ClientBuilder(connection_factory).set_token(token)
    await builder.set_recommended_total_shards()
    sessions = await asyncio.gather(*builder.login_all_shards())

All login and discovery methods must be called from a running event loop.
They return futures immediately; configuration and validation problems are
reported synchronously (raised, or as an already-failed future), connection
problems only through the returned futures.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Optional

import aiohttp

from core.errors.exceptions import ConfigurationError, UsageError
from core.logging.context_managers import LogContext, log_operation
from core.resilience.retry import RetryConfig, RetryState
from core.types import AccountType, ConnectionFactory, GatewaySession, ListenerCategory, Scheduler
from gateway.discovery import SessionFactory, ShardDiscoveryClient
from gateway.events.pipeline import SinkErrorPolicy, Stage, start
from gateway.listeners import Listener, ListenerRegistry
from gateway.shards import ShardConfig
from gateway.transport import DEFAULT_API_BASE_URL, ProxySettings, RestControlPlaneSession

if TYPE_CHECKING:
    from config.config import ClientConfig

logger = logging.getLogger(__name__)


def _failed_future(error: Exception) -> asyncio.Future:
    future = asyncio.get_running_loop().create_future()
    future.set_exception(error)
    return future


class ClientBuilder:
    """Builds and logs in the shards of one gateway client."""

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        session_factory: SessionFactory | None = None,
        retry_config: RetryConfig | None = None,
        scheduler: Scheduler | None = None,
        api_base_url: str = DEFAULT_API_BASE_URL,
        request_timeout_seconds: float = 30.0,
    ):
        self.connection_factory = connection_factory
        self.api_base_url = api_base_url
        self.request_timeout_seconds = request_timeout_seconds

        self._token: Optional[str] = None
        self._account_type = AccountType.BOT
        self._wait_for_servers_on_startup = True
        self._proxy: Optional[str] = None
        self._proxy_selector: Optional[Callable[[str], Optional[str]]] = None
        self._proxy_auth: Optional[aiohttp.BasicAuth] = None
        self._trust_all_certificates = False

        self.shard_config = ShardConfig()
        self.listeners = ListenerRegistry()
        self.discovery = ShardDiscoveryClient(
            self.shard_config,
            session_factory or self._open_control_plane_session,
            retry_config=retry_config,
            scheduler=scheduler,
        )

    @classmethod
    def from_config(
        cls,
        config: "ClientConfig",
        connection_factory: ConnectionFactory,
        **kwargs: Any,
    ) -> "ClientBuilder":
        """Create a builder pre-populated from a loaded ClientConfig."""
        kwargs.setdefault("retry_config", config.retry_config())
        builder = cls(
            connection_factory,
            api_base_url=config.api_base_url,
            request_timeout_seconds=config.request_timeout_seconds,
            **kwargs,
        )
        builder.set_account_type(config.account_type)
        builder.set_wait_for_servers_on_startup(config.wait_for_servers_on_startup)
        builder.set_trust_all_certificates(config.trust_all_certificates)
        if config.token:
            builder.set_token(config.token)
        if config.proxy_url:
            builder.set_proxy(config.proxy_url)
        if config.proxy_username:
            builder.set_proxy_auth(
                aiohttp.BasicAuth(config.proxy_username, config.proxy_password)
            )
        builder.set_total_shards(config.total_shards)
        builder.set_current_shard(config.current_shard)
        return builder

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]) -> "ClientBuilder":
        self._token = token or None
        return self

    @property
    def account_type(self) -> AccountType:
        return self._account_type

    def set_account_type(self, account_type: AccountType) -> "ClientBuilder":
        self._account_type = AccountType(account_type)
        return self

    @property
    def current_shard(self) -> int:
        return self.shard_config.current_shard

    def set_current_shard(self, current_shard: int) -> "ClientBuilder":
        self.shard_config.set_current_shard(current_shard)
        return self

    @property
    def total_shards(self) -> int:
        return self.shard_config.total_shards

    def set_total_shards(self, total_shards: int) -> "ClientBuilder":
        self.shard_config.set_total_shards(total_shards)
        return self

    @property
    def wait_for_servers_on_startup(self) -> bool:
        return self._wait_for_servers_on_startup

    def set_wait_for_servers_on_startup(self, wait: bool) -> "ClientBuilder":
        self._wait_for_servers_on_startup = bool(wait)
        return self

    def set_proxy(self, proxy: Optional[str]) -> "ClientBuilder":
        self._proxy = proxy
        return self

    def set_proxy_selector(
        self, proxy_selector: Optional[Callable[[str], Optional[str]]]
    ) -> "ClientBuilder":
        self._proxy_selector = proxy_selector
        return self

    def set_proxy_auth(self, proxy_auth: Optional[aiohttp.BasicAuth]) -> "ClientBuilder":
        self._proxy_auth = proxy_auth
        return self

    @property
    def proxy_settings(self) -> ProxySettings:
        return ProxySettings(
            proxy=self._proxy,
            proxy_selector=self._proxy_selector,
            proxy_auth=self._proxy_auth,
        )

    @property
    def trust_all_certificates(self) -> bool:
        return self._trust_all_certificates

    def set_trust_all_certificates(self, trust_all_certificates: bool) -> "ClientBuilder":
        self._trust_all_certificates = bool(trust_all_certificates)
        return self

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, category: ListenerCategory, listener: Listener) -> "ClientBuilder":
        """Attach ``listener`` to every session created by this builder."""
        self.listeners.register(category, listener)
        return self

    def pipeline(
        self,
        category: ListenerCategory,
        error_policy: SinkErrorPolicy = SinkErrorPolicy.PROPAGATE,
    ) -> Stage:
        """Register a new pipeline root as a listener and return it for chaining."""
        root = start(error_policy)
        self.listeners.register(category, root.accept)
        return root

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self) -> asyncio.Future:
        """Open the connection of the current shard."""
        state = self.shard_config.state
        logger.debug("Creating shard %d of %d", state.current_shard + 1, state.total_shards)
        if self._token is None:
            return _failed_future(ConfigurationError("You cannot login without a token!"))

        # The task copies the current context, so everything the connection logs is tagged
        with LogContext(shard=state.current_shard):
            return asyncio.ensure_future(
                self._open_session(state.current_shard, state.total_shards)
            )

    async def _open_session(self, shard: int, total_shards: int) -> GatewaySession:
        with log_operation(logger, "open_shard", shard=shard, total_shards=total_shards):
            session = await self.connection_factory.open(
                self._account_type,
                self._token,
                shard,
                total_shards,
                self._wait_for_servers_on_startup,
                self._proxy_selector,
                self._proxy,
                self._proxy_auth,
                self._trust_all_certificates,
            )
        attached = self.listeners.attach_to(session)
        logger.info(
            "Shard %d of %d connected",
            shard + 1,
            total_shards,
            extra={"shard": shard, "total_shards": total_shards, "listeners": attached},
        )
        return session

    def login_shards(self, *shards: int) -> list[asyncio.Future]:
        """
        Log in the given shards, one future per shard in input order.

        Raises:
            ValidationError: duplicate shards or shards outside [0, total_shards);
                nothing is started in that case
        """
        if not shards:
            return []
        self.shard_config.validate_batch(shards)

        total = self.shard_config.total_shards
        if len(shards) == total:
            logger.info("Creating %d %s", total, "shard" if total == 1 else "shards")
        else:
            logger.info("Creating %d out of %d shards (%s)", len(shards), total, list(shards))

        if self.shard_config.current_shard != 0:
            return [
                _failed_future(
                    UsageError(
                        "You cannot use login_shards or login_all_shards after setting the current shard!",
                        context={"shard": shard},
                    )
                )
                for shard in shards
            ]

        result = []
        for shard in shards:
            with self.shard_config.pinned(shard):
                result.append(self.login())
        return result

    def login_all_shards(self) -> list[asyncio.Future]:
        return self.login_shards(*range(self.shard_config.total_shards))

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def set_recommended_total_shards(
        self, retry_state: RetryState | None = None
    ) -> asyncio.Future:
        """Ask the service for the recommended shard count and apply it.

        The future resolves with the GatewayInfo once the total has been set.
        It retries until it succeeds; cancel the future to stop it.
        """
        return self.discovery.discover(
            self._token,
            self.proxy_settings,
            self._trust_all_certificates,
            retry_state=retry_state,
        )

    def _open_control_plane_session(
        self, token: str, proxy_settings: ProxySettings, trust_all_certificates: bool
    ) -> RestControlPlaneSession:
        return RestControlPlaneSession(
            token,
            account_type=self._account_type,
            proxy_settings=proxy_settings,
            trust_all_certificates=trust_all_certificates,
            api_base_url=self.api_base_url,
            timeout_seconds=self.request_timeout_seconds,
        )


__all__ = ["ClientBuilder"]
