"""
Control-plane transport for shard discovery.

RestControlPlaneSession is the disposable session opened for a single
"recommended shards" query: it owns an aiohttp ClientSession configured with
the client's credentials, proxy and certificate settings and must be closed
after the query, whatever its outcome.
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from core.errors.exceptions import (
    AuthError,
    PermanentError,
    ThrottlingError,
    TransientError,
    classify_http_status,
)
from core.types import AccountType, ErrorCategory

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://discord.com/api/v10"
DEFAULT_GATEWAY_URL = "wss://gateway.discord.gg"
GATEWAY_BOT_PATH = "/gateway/bot"

_gateway_url_lock = threading.Lock()
_default_gateway_url: str = DEFAULT_GATEWAY_URL


def get_default_gateway_url() -> str:
    """Endpoint new shard connections should connect to."""
    return _default_gateway_url


def set_default_gateway_url(url: str) -> None:
    global _default_gateway_url
    if not url:
        raise ValueError("gateway url cannot be empty")
    with _gateway_url_lock:
        _default_gateway_url = url
    logger.debug("Default gateway endpoint set", extra={"gateway_url": url})


def reset_default_gateway_url() -> None:
    global _default_gateway_url
    with _gateway_url_lock:
        _default_gateway_url = DEFAULT_GATEWAY_URL


class SessionStartLimit(BaseModel):
    total: int = Field(..., ge=0)
    remaining: int = Field(..., ge=0)
    reset_after: int = Field(..., ge=0, description="Milliseconds until the limit resets")
    max_concurrency: int = Field(default=1, ge=1)


class GatewayInfo(BaseModel):
    """Recommended shard count and gateway endpoint returned by the service."""

    url: str = Field(..., min_length=1, description="Gateway endpoint")
    shards: int = Field(..., ge=1, description="Recommended total shard count")
    session_start_limit: SessionStartLimit | None = None


@dataclass(frozen=True)
class ProxySettings:
    """Proxy configuration passed to every connection the client opens.

    An explicit ``proxy`` wins over ``proxy_selector``, which is asked for
    the proxy of each URL (returning None means "connect directly").
    """

    proxy: Optional[str] = None
    proxy_selector: Optional[Callable[[str], Optional[str]]] = None
    proxy_auth: Optional[aiohttp.BasicAuth] = None

    def proxy_for(self, url: str) -> Optional[str]:
        if self.proxy:
            return self.proxy
        if self.proxy_selector is not None:
            return self.proxy_selector(url)
        return None


def authorization_header(token: str, account_type: AccountType) -> str:
    if account_type is AccountType.BOT and not token.startswith("Bot "):
        return f"Bot {token}"
    return token


def _parse_retry_after(response: aiohttp.ClientResponse, body: Any) -> float | None:
    if isinstance(body, dict) and body.get("retry_after") is not None:
        try:
            return float(body["retry_after"])
        except (TypeError, ValueError):
            pass
    header = response.headers.get("Retry-After")
    if header:
        try:
            return float(header)
        except ValueError:
            return None
    return None


class RestControlPlaneSession:
    """Disposable REST session used to query the recommended shard count."""

    def __init__(
        self,
        token: str,
        account_type: AccountType = AccountType.BOT,
        proxy_settings: ProxySettings | None = None,
        trust_all_certificates: bool = False,
        api_base_url: str = DEFAULT_API_BASE_URL,
        timeout_seconds: float = 30.0,
    ):
        if not token:
            raise ValueError("RestControlPlaneSession requires 'token'")
        self.api_base_url = api_base_url.rstrip("/")
        self.proxy_settings = proxy_settings or ProxySettings()
        self.trust_all_certificates = trust_all_certificates
        self._session = aiohttp.ClientSession(
            headers={
                "Authorization": authorization_header(token, account_type),
                "Accept": "application/json",
            },
            timeout=aiohttp.ClientTimeout(total=timeout_seconds),
        )

    async def __aenter__(self) -> "RestControlPlaneSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._session.closed

    async def close(self) -> None:
        if not self._session.closed:
            await self._session.close()
            # Let the connector finish closing its transports
            await asyncio.sleep(0)

    async def get_recommended_shards(self) -> GatewayInfo:
        url = f"{self.api_base_url}{GATEWAY_BOT_PATH}"
        request_kwargs: dict[str, Any] = {
            "proxy": self.proxy_settings.proxy_for(url),
            "proxy_auth": self.proxy_settings.proxy_auth,
        }
        if self.trust_all_certificates:
            request_kwargs["ssl"] = False

        async with self._session.get(url, **request_kwargs) as response:
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = None

            if response.status >= 300:
                raise self._error_for(response, url, body)

        try:
            info = GatewayInfo.model_validate(body)
        except PydanticValidationError as e:
            raise TransientError(
                "Malformed gateway response",
                cause=e,
                context={"http_url": url},
            ) from e

        logger.debug(
            "Fetched recommended shards",
            extra={"shards": info.shards, "gateway_url": info.url},
        )
        return info

    @staticmethod
    def _error_for(response: aiohttp.ClientResponse, url: str, body: Any):
        status = response.status
        context = {"http_status": status, "http_url": url}
        message = f"Gateway request failed ({status}): {url}"
        category = classify_http_status(status)

        if category == ErrorCategory.AUTH:
            return AuthError(message, context=context)
        if status == 429:
            return ThrottlingError(
                message, retry_after=_parse_retry_after(response, body), context=context
            )
        if category == ErrorCategory.PERMANENT:
            return PermanentError(message, context=context)
        return TransientError(message, context=context)

