"""Configuration loading for the gateway client.

Main Functions
--------------
    - load_config(): Load client configuration from config.yaml
    - get_config(): Get or load the singleton config instance
    - set_config() / reset_config(): Replace or drop the singleton

Usage
-----
    >>> from config import load_config
    >>> config = load_config()
    >>> builder = ClientBuilder.from_config(config, connection_factory)

Configuration Priority
----------------------
1. GATEWAY_TOKEN environment variable (token only)
2. ${VAR} references expanded inside config.yaml
3. Values in config.yaml
4. Dataclass defaults
"""

from config.config import (
    ClientConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "ClientConfig",
    "get_config",
    "load_config",
    "reset_config",
    "set_config",
]
