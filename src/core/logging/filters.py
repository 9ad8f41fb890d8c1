"""Log filters for context-based routing."""

import logging

from .context import get_log_context


class ShardContextFilter(logging.Filter):
    """
    Filter logs to only pass those emitted for a specific shard.

    Used to route logs of one shard to its own handler when several shards
    run in the same process.

    Usage:
        handler = logging.FileHandler("shard-3.log")
        handler.addFilter(ShardContextFilter(3))
    """

    def __init__(self, shard: int | str):
        super().__init__()
        self.shard = str(shard)

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_log_context()
        return ctx.get("shard") == self.shard
