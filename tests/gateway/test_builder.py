"""
Tests for ClientBuilder login orchestration.

Test Coverage:
    - Single shard login and connection factory arguments
    - Batch login, pinning and validation
    - Failed futures for missing token and pinned builders
    - Listener and pipeline attachment
    - Recommended total shards delegation
    - Construction from ClientConfig
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from config.config import ClientConfig
from core.errors.exceptions import ConfigurationError, UsageError, ValidationError
from core.logging.context import get_log_context
from core.resilience.retry import RetryState
from core.types import AccountType, ListenerCategory
from gateway.builder import ClientBuilder
from gateway.transport import get_default_gateway_url

from fakes import FakeScheduler, FakeSessionFactory, drain, gateway_info, unavailable


class FakeConnectionFactory:
    """Records open() calls and the log context each connection starts in."""

    def __init__(self, fail_shards=()):
        self.fail_shards = set(fail_shards)
        self.opened = []
        self.contexts = []

    async def open(self, account_type, token, shard, total_shards, *args):
        self.contexts.append(get_log_context()["shard"])
        self.opened.append((account_type, token, shard, total_shards) + args)
        await asyncio.sleep(0)
        if shard in self.fail_shards:
            raise ConnectionError(f"shard {shard} handshake failed")
        session = Mock()
        session.shard = shard
        return session


@pytest.fixture
def factory():
    return FakeConnectionFactory()


@pytest.fixture
def builder(factory):
    return ClientBuilder(factory, scheduler=FakeScheduler()).set_token("token")


class TestSettings:

    def test_defaults(self, factory):
        builder = ClientBuilder(factory)
        assert builder.token is None
        assert builder.account_type is AccountType.BOT
        assert builder.current_shard == 0
        assert builder.total_shards == 1
        assert builder.wait_for_servers_on_startup is True
        assert builder.trust_all_certificates is False

    def test_fluent_setters(self, factory):
        selector = lambda url: None  # noqa: E731
        auth = aiohttp.BasicAuth("user", "pass")
        builder = (
            ClientBuilder(factory)
            .set_token("token")
            .set_account_type(AccountType.CLIENT)
            .set_total_shards(4)
            .set_current_shard(2)
            .set_wait_for_servers_on_startup(False)
            .set_proxy("http://proxy:8080")
            .set_proxy_selector(selector)
            .set_proxy_auth(auth)
            .set_trust_all_certificates(True)
        )

        assert builder.account_type is AccountType.CLIENT
        assert (builder.current_shard, builder.total_shards) == (2, 4)
        assert builder.proxy_settings.proxy == "http://proxy:8080"
        assert builder.proxy_settings.proxy_selector is selector
        assert builder.proxy_settings.proxy_auth is auth

    def test_empty_token_means_none(self, factory):
        assert ClientBuilder(factory).set_token("").token is None

    def test_invalid_shards_rejected(self, factory):
        builder = ClientBuilder(factory)
        with pytest.raises(ValidationError):
            builder.set_current_shard(1)
        with pytest.raises(ValidationError):
            builder.set_total_shards(0)


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_opens_current_shard(self, builder, factory):
        session = await builder.login()

        assert session.shard == 0
        assert factory.opened == [
            (AccountType.BOT, "token", 0, 1, True, None, None, None, False)
        ]

    @pytest.mark.asyncio
    async def test_login_without_token_fails_future(self, factory):
        future = ClientBuilder(factory).login()

        assert future.done()
        with pytest.raises(ConfigurationError, match="You cannot login without a token!"):
            await future
        assert factory.opened == []

    @pytest.mark.asyncio
    async def test_connection_failure_surfaces_through_future(self):
        factory = FakeConnectionFactory(fail_shards={0})
        builder = ClientBuilder(factory).set_token("token")

        future = builder.login()
        assert not future.done()
        with pytest.raises(ConnectionError):
            await future

    @pytest.mark.asyncio
    async def test_connection_runs_in_shard_log_context(self, builder, factory):
        builder.set_total_shards(3).set_current_shard(2)

        await builder.login()

        assert factory.contexts == ["2"]
        assert get_log_context()["shard"] == ""

    @pytest.mark.asyncio
    async def test_listeners_attached(self, builder):
        on_message = Mock()
        builder.add_listener(ListenerCategory.MESSAGE, on_message)

        session = await builder.login()

        session.add_listener.assert_called_once_with(ListenerCategory.MESSAGE, on_message)

    @pytest.mark.asyncio
    async def test_pipeline_registered_as_listener(self, builder):
        received = []
        root = builder.pipeline(ListenerCategory.MESSAGE)
        root.filter(lambda e: e["content"].startswith("!")).map(lambda e: e["content"]).consume(
            received.append
        )

        session = await builder.login()
        category, listener = session.add_listener.call_args.args
        listener({"content": "hello"})
        listener({"content": "!ping"})

        assert category is ListenerCategory.MESSAGE
        assert received == ["!ping"]


class TestLoginShards:

    @pytest.mark.asyncio
    async def test_empty_batch(self, builder, factory):
        assert builder.login_shards() == []
        assert factory.opened == []

    @pytest.mark.asyncio
    async def test_subset_in_input_order(self, builder, factory):
        builder.set_total_shards(4)

        futures = builder.login_shards(3, 0)
        sessions = await asyncio.gather(*futures)

        assert [s.shard for s in sessions] == [3, 0]
        assert [call[2:4] for call in factory.opened] == [(3, 4), (0, 4)]
        assert builder.current_shard == 0

    @pytest.mark.asyncio
    async def test_login_all_shards(self, builder, factory):
        builder.set_total_shards(3)

        sessions = await asyncio.gather(*builder.login_all_shards())

        assert [s.shard for s in sessions] == [0, 1, 2]
        assert factory.contexts == ["0", "1", "2"]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_others(self):
        factory = FakeConnectionFactory(fail_shards={1})
        builder = ClientBuilder(factory).set_token("token").set_total_shards(3)

        results = await asyncio.gather(*builder.login_all_shards(), return_exceptions=True)

        assert results[0].shard == 0
        assert isinstance(results[1], ConnectionError)
        assert results[2].shard == 2

    @pytest.mark.asyncio
    async def test_duplicates_raise_before_starting(self, builder, factory):
        builder.set_total_shards(4)

        with pytest.raises(ValidationError, match="shards cannot be started multiple times!"):
            builder.login_shards(0, 1, 1)
        assert factory.opened == []

    @pytest.mark.asyncio
    async def test_out_of_range_raises(self, builder, factory):
        builder.set_total_shards(2)

        with pytest.raises(ValidationError):
            builder.login_shards(0, 2)
        with pytest.raises(ValidationError):
            builder.login_shards(-1)
        assert factory.opened == []

    @pytest.mark.asyncio
    async def test_pinned_builder_fails_every_future(self, builder, factory):
        builder.set_total_shards(4).set_current_shard(1)

        futures = builder.login_shards(0, 2)

        assert len(futures) == 2
        for future in futures:
            with pytest.raises(UsageError):
                await future
        assert factory.opened == []

    @pytest.mark.asyncio
    async def test_without_token_every_future_fails(self, factory):
        builder = ClientBuilder(factory).set_total_shards(2)

        futures = builder.login_all_shards()

        for future in futures:
            with pytest.raises(ConfigurationError):
                await future
        assert builder.current_shard == 0


class TestRecommendedTotalShards:

    @pytest.mark.asyncio
    async def test_applies_total_and_endpoint(self, factory):
        sessions = FakeSessionFactory(gateway_info(shards=5, url="wss://recommended"))
        builder = ClientBuilder(factory, session_factory=sessions).set_token("token")

        info = await builder.set_recommended_total_shards()

        assert info.shards == 5
        assert builder.total_shards == 5
        assert get_default_gateway_url() == "wss://recommended"
        assert sessions.calls[0][0] == "token"

    @pytest.mark.asyncio
    async def test_retries_with_builder_scheduler(self, factory):
        scheduler = FakeScheduler()
        sessions = FakeSessionFactory(unavailable(), gateway_info(shards=2))
        builder = ClientBuilder(factory, session_factory=sessions, scheduler=scheduler)
        builder.set_token("token")
        retry_state = RetryState()

        future = builder.set_recommended_total_shards(retry_state)
        await drain()
        scheduler.fire_next()
        await future

        assert retry_state.probes == 2
        assert builder.total_shards == 2

    @pytest.mark.asyncio
    async def test_without_token(self, factory):
        with pytest.raises(ConfigurationError):
            await ClientBuilder(factory).set_recommended_total_shards()

    @pytest.mark.asyncio
    async def test_default_session_factory(self, factory):
        builder = ClientBuilder(
            factory, api_base_url="https://api.example.com", request_timeout_seconds=5
        ).set_account_type(AccountType.CLIENT)

        session = builder._open_control_plane_session("token", builder.proxy_settings, True)
        try:
            assert session.api_base_url == "https://api.example.com"
            assert session.trust_all_certificates is True
        finally:
            await session.close()


class TestFromConfig:

    def test_settings_copied(self, factory):
        config = ClientConfig(
            token="token",
            account_type=AccountType.CLIENT,
            current_shard=1,
            total_shards=3,
            wait_for_servers_on_startup=False,
            trust_all_certificates=True,
            proxy_url="http://proxy:8080",
            proxy_username="user",
            proxy_password="pass",
            retry_max_attempts=4,
        )

        builder = ClientBuilder.from_config(config, factory)

        assert builder.token == "token"
        assert builder.account_type is AccountType.CLIENT
        assert (builder.current_shard, builder.total_shards) == (1, 3)
        assert builder.wait_for_servers_on_startup is False
        assert builder.trust_all_certificates is True
        assert builder.proxy_settings.proxy == "http://proxy:8080"
        assert builder.proxy_settings.proxy_auth.login == "user"
        assert builder.discovery.retry_config.max_attempts == 4

    def test_empty_config(self, factory):
        builder = ClientBuilder.from_config(ClientConfig(), factory)
        assert builder.token is None
        assert builder.proxy_settings.proxy is None


class TestConnectionFactoryProtocol:

    @pytest.mark.asyncio
    async def test_async_mock_factory(self):
        factory = Mock()
        factory.open = AsyncMock(return_value=Mock())
        builder = ClientBuilder(factory).set_token("token")

        await builder.login()

        factory.open.assert_awaited_once()
