"""Gateway client configuration from YAML file.

Loads the ``gateway:`` section of config/config.yaml:

    gateway:
      token: ${GATEWAY_TOKEN:-}
      account_type: bot
      shards:
        current: 0
        total: 1
      wait_for_servers_on_startup: true
      trust_all_certificates: false
      proxy:
        url: ${HTTPS_PROXY:-}
        username: ""
        password: ""
      api:
        base_url: https://discord.com/api/v10
        timeout_seconds: 30
      discovery_retry:
        base_delay: 1.0
        max_delay: 60.0
        exponential_base: 2.0
        max_attempts: null        # null = retry until success

Environment variables ARE supported using ${VAR_NAME} and ${VAR_NAME:-default}
syntax in YAML files. GATEWAY_TOKEN, when set, overrides the token.
"""

import json
import logging
import os
import re
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.errors.exceptions import ConfigurationError
from core.resilience.retry import RetryConfig
from core.types import AccountType

# Configure module logger
logger = logging.getLogger(__name__)


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"


@dataclass
class ClientConfig:
    """Gateway client configuration.

    Proxy and API settings are optional; a token is only required once the
    client logs in or asks for the recommended shard count.
    """

    token: str = ""
    account_type: AccountType = AccountType.BOT
    current_shard: int = 0
    total_shards: int = 1
    wait_for_servers_on_startup: bool = True
    trust_all_certificates: bool = False

    proxy_url: str = ""
    proxy_username: str = ""
    proxy_password: str = ""

    api_base_url: str = "https://discord.com/api/v10"
    request_timeout_seconds: float = 30.0

    retry_base_delay: float = 1.0
    retry_max_delay: float = 60.0
    retry_exponential_base: float = 2.0
    retry_max_attempts: Optional[int] = None

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            exponential_base=self.retry_exponential_base,
        )

    def validate(self) -> None:
        """Validate configuration for correctness and constraints.

        Raises:
            ConfigurationError: describing the first invalid setting
        """
        if self.total_shards < 1:
            raise ConfigurationError(
                f"gateway.shards.total must be >= 1, got {self.total_shards}"
            )
        if not 0 <= self.current_shard < self.total_shards:
            raise ConfigurationError(
                f"gateway.shards.current must be in [0, {self.total_shards}), "
                f"got {self.current_shard}"
            )
        if self.request_timeout_seconds <= 0:
            raise ConfigurationError(
                f"gateway.api.timeout_seconds must be > 0, got {self.request_timeout_seconds}"
            )
        if not self.api_base_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"gateway.api.base_url must start with http:// or https://, got: {self.api_base_url!r}"
            )
        if self.proxy_url and not self.proxy_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"gateway.proxy.url must start with http:// or https://, got: {self.proxy_url!r}"
            )
        if self.proxy_password and not self.proxy_username:
            raise ConfigurationError("gateway.proxy.password requires gateway.proxy.username")
        try:
            self.retry_config()
        except ValueError as e:
            raise ConfigurationError(f"gateway.discovery_retry: {e}", cause=e) from e

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        data["account_type"] = self.account_type.value
        if redact:
            for key in ("token", "proxy_password"):
                if data[key]:
                    data[key] = "[REDACTED]"
        return data


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> ClientConfig:
    """Load gateway client configuration from config.yaml.

    Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n" f"Expected file: config/config.yaml"
        )

    logger.info("Loading configuration from file: %s", config_path)
    yaml_data = _expand_env_vars(load_yaml(config_path))

    if "gateway" not in yaml_data:
        raise ConfigurationError(
            "Invalid config file: missing 'gateway:' section\n"
            "See config.yaml.example for correct structure"
        )

    gateway_config = yaml_data["gateway"] or {}
    if overrides:
        logger.debug("Applying overrides: %s", list(overrides.keys()))
        gateway_config = _deep_merge(gateway_config, overrides)

    shards = gateway_config.get("shards", {}) or {}
    proxy = gateway_config.get("proxy", {}) or {}
    api = gateway_config.get("api", {}) or {}
    retry = gateway_config.get("discovery_retry", {}) or {}

    token = os.getenv("GATEWAY_TOKEN") or gateway_config.get("token", "") or ""
    if not token:
        logger.warning("Gateway token not configured")

    try:
        account_type = AccountType(str(gateway_config.get("account_type", "bot")).lower())
    except ValueError as e:
        raise ConfigurationError(
            f"gateway.account_type must be one of {[t.value for t in AccountType]}, "
            f"got {gateway_config.get('account_type')!r}",
            cause=e,
        ) from e

    max_attempts = retry.get("max_attempts")
    try:
        config = ClientConfig(
            token=token,
            account_type=account_type,
            current_shard=int(shards.get("current", 0)),
            total_shards=int(shards.get("total", 1)),
            wait_for_servers_on_startup=_as_bool(
                gateway_config.get("wait_for_servers_on_startup", True)
            ),
            trust_all_certificates=_as_bool(gateway_config.get("trust_all_certificates", False)),
            proxy_url=proxy.get("url", "") or "",
            proxy_username=proxy.get("username", "") or "",
            proxy_password=proxy.get("password", "") or "",
            api_base_url=(api.get("base_url") or ClientConfig.api_base_url).rstrip("/"),
            request_timeout_seconds=float(api.get("timeout_seconds", 30)),
            retry_base_delay=float(retry.get("base_delay", 1.0)),
            retry_max_delay=float(retry.get("max_delay", 60.0)),
            retry_exponential_base=float(retry.get("exponential_base", 2.0)),
            retry_max_attempts=int(max_attempts) if max_attempts not in (None, "") else None,
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value in gateway config: {e}", cause=e) from e

    logger.debug("Validating configuration...")
    config.validate()
    logger.debug(
        "Configuration loaded",
        extra={"total_shards": config.total_shards, "shard": config.current_shard},
    )
    return config


_client_config: Optional[ClientConfig] = None


def get_config() -> ClientConfig:
    """Get or load the singleton client config instance."""
    global _client_config
    if _client_config is None:
        _client_config = load_config()
    return _client_config


def set_config(config: ClientConfig) -> None:
    """Set the singleton client config instance (useful for testing)."""
    global _client_config
    _client_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _client_config
    _client_config = None


def _cli_main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point for config validation and debugging."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Gateway Client Configuration Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate configuration
  python -m config.config --validate

  # Show loaded configuration (secrets redacted)
  python -m config.config --show-merged

  # JSON output for automation
  python -m config.config --validate --json --config /path/to/config.yaml
        """,
    )
    parser.add_argument("--validate", action="store_true", help="Validate configuration")
    parser.add_argument(
        "--show-merged", action="store_true", help="Display loaded configuration as YAML"
    )
    parser.add_argument("--config", type=Path, help="Path to config.yaml file")
    parser.add_argument("--json", action="store_true", help="Output in JSON format")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if not args.validate and not args.show_merged:
        parser.print_help()
        return 0

    try:
        config = load_config(config_path=args.config)
    except FileNotFoundError as e:
        if args.json:
            print(json.dumps({"error": str(e)}))
        else:
            print(f"✗ Error: {e}", file=sys.stderr)
        return 1
    except ConfigurationError as e:
        if args.json:
            print(json.dumps({"error": str(e)}))
        else:
            print(f"✗ Validation error: {e}", file=sys.stderr)
        return 1

    output: Dict[str, Any] = {}
    if args.validate:
        if args.json:
            output["validation"] = {"passed": True, "errors": []}
        else:
            print("✓ Configuration validation passed")
            print(f"  - Shards: {config.current_shard} of {config.total_shards}")
            print(f"  - Token configured: {'yes' if config.token else 'no'}")

    if args.show_merged:
        if args.json:
            output["config"] = config.to_dict()
        else:
            print(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False))

    if args.json:
        print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())
