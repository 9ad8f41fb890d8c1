"""
Shard numbering for a gateway client.

ShardConfig keeps the current shard and the total shard count as one frozen
ShardState replaced under a single lock, so ``current_shard < total_shards``
holds for every state any thread can observe. Failed updates raise
ValidationError and leave the state untouched.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from core.errors.exceptions import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShardState:
    current_shard: int = 0
    total_shards: int = 1


def _require_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            f"{name} must be an integer, got {type(value).__name__}",
            context={name: value},
        )
    return value


class ShardConfig:
    """Validated (current_shard, total_shards) pair shared by one client."""

    def __init__(self, current_shard: int = 0, total_shards: int = 1):
        _require_int("total_shards", total_shards)
        _require_int("current_shard", current_shard)
        if total_shards < 1:
            raise ValidationError(
                "totalShards cannot be less than 1!",
                context={"total_shards": total_shards},
            )
        if not 0 <= current_shard < total_shards:
            raise ValidationError(
                "currentShard must be in [0, totalShards)!",
                context={"current_shard": current_shard, "total_shards": total_shards},
            )
        self._state = ShardState(current_shard, total_shards)
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        state = self._state
        return f"ShardConfig(current_shard={state.current_shard}, total_shards={state.total_shards})"

    @property
    def state(self) -> ShardState:
        """Consistent snapshot of both fields."""
        return self._state

    @property
    def current_shard(self) -> int:
        return self._state.current_shard

    @property
    def total_shards(self) -> int:
        return self._state.total_shards

    def set_total_shards(self, total_shards: int) -> None:
        _require_int("total_shards", total_shards)
        with self._lock:
            state = self._state
            if total_shards < 1:
                raise ValidationError(
                    "totalShards cannot be less than 1!",
                    context={"total_shards": total_shards},
                )
            if state.current_shard >= total_shards:
                raise ValidationError(
                    "currentShard cannot be greater or equal than totalShards!",
                    context={"current_shard": state.current_shard, "total_shards": total_shards},
                )
            self._state = ShardState(state.current_shard, total_shards)
        logger.debug("Total shards set", extra={"total_shards": total_shards})

    def set_current_shard(self, current_shard: int) -> None:
        _require_int("current_shard", current_shard)
        with self._lock:
            state = self._state
            if current_shard >= state.total_shards:
                raise ValidationError(
                    "currentShard cannot be greater or equal than totalShards!",
                    context={"current_shard": current_shard, "total_shards": state.total_shards},
                )
            if current_shard < 0:
                raise ValidationError(
                    "currentShard cannot be less than 0!",
                    context={"current_shard": current_shard},
                )
            self._state = ShardState(current_shard, state.total_shards)

    def validate_batch(self, shards: tuple[int, ...]) -> None:
        """Check a batch of shard indices against the current total.

        Raises:
            ValidationError: on duplicates or indices outside [0, total_shards)
        """
        for shard in shards:
            _require_int("shard", shard)
        if len(set(shards)) != len(shards):
            raise ValidationError(
                "shards cannot be started multiple times!",
                context={"shards": list(shards)},
            )
        total = self.total_shards
        if max(shards) >= total:
            raise ValidationError(
                "shard cannot be greater or equal than totalShards!",
                context={"shards": list(shards), "total_shards": total},
            )
        if min(shards) < 0:
            raise ValidationError(
                "shard cannot be less than 0!",
                context={"shards": list(shards)},
            )

    @contextmanager
    def pinned(self, shard: int) -> Iterator[ShardState]:
        """Temporarily make ``shard`` the current shard, restoring the previous one on exit."""
        previous = self.current_shard
        self.set_current_shard(shard)
        try:
            yield self._state
        finally:
            self.set_current_shard(previous)


__all__ = ["ShardConfig", "ShardState"]
