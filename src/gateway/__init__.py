"""
Sharded gateway client core.

Subpackages and modules:
    events     - Composable filter/map/flat-map event pipelines
    shards     - Validated shard numbering
    discovery  - Recommended shard count discovery with backoff
    listeners  - Listeners attached to every created session
    transport  - aiohttp control-plane session and gateway endpoint
    builder    - ClientBuilder: login, batch login, recommended shards
"""

from gateway.builder import ClientBuilder
from gateway.discovery import ShardDiscoveryClient
from gateway.events import SinkErrorPolicy, Stage, start
from gateway.listeners import ListenerRegistry
from gateway.shards import ShardConfig, ShardState
from gateway.transport import GatewayInfo, ProxySettings

__all__ = [
    "ClientBuilder",
    "GatewayInfo",
    "ListenerRegistry",
    "ProxySettings",
    "ShardConfig",
    "ShardDiscoveryClient",
    "ShardState",
    "SinkErrorPolicy",
    "Stage",
    "start",
]
