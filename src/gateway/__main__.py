"""Gateway client command line. Use --help for usage."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import aiohttp
from dotenv import load_dotenv

from config.config import ClientConfig, load_config
from core.errors.exceptions import GatewayError
from core.logging.setup import setup_logging
from core.resilience.retry import RetryState
from gateway.discovery import ShardDiscoveryClient
from gateway.shards import ShardConfig
from gateway.transport import ProxySettings, RestControlPlaneSession

# __main__.py is at src/gateway/__main__.py, so the project root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)


def _proxy_settings(config: ClientConfig) -> ProxySettings:
    auth = None
    if config.proxy_username:
        auth = aiohttp.BasicAuth(config.proxy_username, config.proxy_password)
    return ProxySettings(proxy=config.proxy_url or None, proxy_auth=auth)


async def run_discovery(config: ClientConfig, timeout: float | None = None) -> dict:
    """Resolve the recommended shard count once and describe the result."""

    def session_factory(token, proxy_settings, trust_all_certificates):
        return RestControlPlaneSession(
            token,
            account_type=config.account_type,
            proxy_settings=proxy_settings,
            trust_all_certificates=trust_all_certificates,
            api_base_url=config.api_base_url,
            timeout_seconds=config.request_timeout_seconds,
        )

    shard_config = ShardConfig()
    client = ShardDiscoveryClient(
        shard_config,
        session_factory,
        retry_config=config.retry_config(),
        on_gateway_url=lambda url: None,
    )
    retry_state = RetryState()
    future = client.discover(
        config.token,
        _proxy_settings(config),
        config.trust_all_certificates,
        retry_state=retry_state,
    )
    info = await asyncio.wait_for(future, timeout)
    return {
        "gateway_url": info.url,
        "total_shards": shard_config.total_shards,
        "probes": retry_state.probes,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m gateway",
        description="Sharded gateway client tools",
    )
    parser.add_argument("--config", type=Path, help="Path to config.yaml file")
    parser.add_argument("--json", action="store_true", help="Output in JSON format")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    discover = subparsers.add_parser(
        "discover", help="Print the recommended shard count and gateway endpoint"
    )
    discover.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Give up after this many failed probes (default: config value, unbounded)",
    )
    discover.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Give up after this many seconds",
    )

    subparsers.add_parser("validate", help="Validate the configuration file")
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv(PROJECT_ROOT / ".env")

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    setup_logging(
        name="gateway",
        console_level=logging.DEBUG if args.verbose else logging.WARNING,
        file_level=logging.DEBUG if args.verbose else logging.WARNING,
        log_to_stdout=True,
        json_format=args.json,
    )

    try:
        overrides = {}
        if getattr(args, "max_attempts", None) is not None:
            overrides["discovery_retry"] = {"max_attempts": args.max_attempts}
        config = load_config(config_path=args.config, overrides=overrides or None)

        if args.command == "validate":
            result = {"valid": True, "total_shards": config.total_shards}
        else:
            result = asyncio.run(run_discovery(config, timeout=args.timeout))
    except FileNotFoundError as e:
        result = {"error": str(e)}
    except GatewayError as e:
        result = {"error": str(e), "error_category": e.category.value}
    except asyncio.TimeoutError:
        result = {"error": f"Timed out after {args.timeout} seconds"}

    if args.json:
        print(json.dumps(result, indent=2))
    elif "error" in result:
        print(f"✗ {result['error']}", file=sys.stderr)
    else:
        for key, value in result.items():
            print(f"{key}: {value}")

    return 1 if "error" in result else 0


if __name__ == "__main__":
    sys.exit(main())
