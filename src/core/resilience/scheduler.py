"""Timer-based delayed re-invocation on the asyncio event loop."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class LoopScheduler:
    """Schedules callbacks with ``loop.call_later``.

    The loop is resolved lazily so the scheduler can be created outside a
    running loop (e.g. while building a client) and used inside one.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def after(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        logger.debug(
            "Scheduling callback",
            extra={"delay_seconds": round(delay, 2)},
        )
        return self._get_loop().call_later(delay, callback)
