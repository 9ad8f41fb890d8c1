"""
Composable, synchronous event pipelines.

A pipeline is a tree of stages rooted at ``start()``. Each stage applies one
operation (identity, filter, map or flat-map) and forwards the result to its
sinks, in registration order, depth-first, on the calling thread:

    root = start()
    root.filter(lambda x: x % 2 == 0).map(lambda x: x * 10).consume(out.append)
    for x in (1, 2, 3, 4):
        root.accept(x)   # out == [20, 40]

Sinks are only ever appended. Appends publish a new tuple under the stage's
lock and a delivery iterates the tuple it read when it started, so stages can
be extended from any thread while events are flowing. A sink added during an
in-flight delivery may miss that delivery but receives every later one.

There is no buffering, backpressure or replay.
"""

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from core.logging.utilities import log_exception

logger = logging.getLogger(__name__)

I = TypeVar("I")  # noqa: E741
O = TypeVar("O")  # noqa: E741
T = TypeVar("T")
U = TypeVar("U")

Sink = Callable[[Any], Any]


class StageKind(Enum):
    IDENTITY = "identity"
    FILTER = "filter"
    MAP = "map"
    FLAT_MAP = "flat_map"


class SinkErrorPolicy(Enum):
    """
    What a stage does when one of its sinks raises.

    PROPAGATE: the exception escapes ``accept``; sinks registered after the
        failing one do not see the element.
    ISOLATE: the failure is logged and delivery continues with the next sink.

    Errors raised by a stage's own operation (predicate, mapper) always
    propagate, whatever the policy.
    """

    PROPAGATE = "propagate"
    ISOLATE = "isolate"


# Returned by Stage.apply when the element must not be forwarded.
_DROP = object()


class Stage(Generic[I, O]):
    """
    One node of a pipeline.

    Stages are created through ``start``, ``filtering``, ``mapping`` and
    ``flat_mapping`` or by chaining from an existing stage; they are not
    meant to be constructed directly.
    """

    def __init__(
        self,
        kind: StageKind,
        operation: Optional[Callable[[Any], Any]] = None,
        error_policy: SinkErrorPolicy = SinkErrorPolicy.PROPAGATE,
    ):
        if kind is not StageKind.IDENTITY and operation is None:
            raise TypeError(f"{kind.value} stage requires an operation")
        self.kind = kind
        self.operation = operation
        self.error_policy = error_policy
        self._sinks: tuple[Sink, ...] = ()
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Stage(kind={self.kind.value}, sinks={len(self._sinks)})"

    @property
    def sinks(self) -> tuple[Sink, ...]:
        """Snapshot of the registered sinks in delivery order."""
        return self._sinks

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def apply(self, element: I) -> Any:
        """Evaluate this stage's operation; returns ``_DROP`` to stop the element."""
        kind = self.kind
        if kind is StageKind.IDENTITY:
            return element
        if kind is StageKind.FILTER:
            return element if self.operation(element) else _DROP
        if kind is StageKind.MAP:
            return self.operation(element)
        if kind is StageKind.FLAT_MAP:
            result = self.operation(element)
            return _DROP if result is None else result
        raise ValueError(f"Unknown stage kind: {kind}")

    def accept(self, element: I) -> None:
        """Push one element through this stage and everything downstream of it."""
        output = self.apply(element)
        if output is _DROP:
            return

        sinks = self._sinks
        if self.error_policy is SinkErrorPolicy.PROPAGATE:
            for sink in sinks:
                sink(output)
            return

        for index, sink in enumerate(sinks):
            try:
                sink(output)
            except Exception as e:
                log_exception(
                    logger,
                    e,
                    "Pipeline sink failed, continuing with remaining sinks",
                    level=logging.WARNING,
                    stage=self.kind.value,
                    sink=index,
                )

    __call__ = accept

    # ------------------------------------------------------------------
    # Chaining
    # ------------------------------------------------------------------

    def _append(self, sink: Sink) -> None:
        with self._lock:
            self._sinks = self._sinks + (sink,)

    def _chain(self, stage: "Stage[O, T]") -> "Stage[O, T]":
        self._append(stage)
        return stage

    def filter(self, condition: Callable[[O], bool]) -> "Stage[O, O]":
        """Forward only elements for which ``condition`` is true."""
        return self._chain(filtering(condition, self.error_policy))

    def filter_not(self, condition: Callable[[O], bool]) -> "Stage[O, O]":
        """Forward only elements for which ``condition`` is false."""
        return self.filter(lambda element: not condition(element))

    def filter_attribute_present(self, getter: Callable[[O], Any]) -> "Stage[O, O]":
        """Forward elements whose attribute, as returned by ``getter``, is not None.

        Example: ``pipeline.filter_attribute_present(lambda e: e.author_user)``
        """
        return self.filter(lambda element: getter(element) is not None)

    def filter_attribute(
        self, getter: Callable[[O], T], condition: Callable[[T], bool]
    ) -> "Stage[O, O]":
        """Forward elements whose attribute satisfies ``condition``.

        Example: ``pipeline.filter_attribute(lambda e: e.author, is_server_admin)``
        """
        return self.filter(lambda element: condition(getter(element)))

    def filter_attribute_not(
        self, getter: Callable[[O], T], condition: Callable[[T], bool]
    ) -> "Stage[O, O]":
        """Forward elements whose attribute does not satisfy ``condition``."""
        return self.filter(lambda element: not condition(getter(element)))

    def map(self, function: Callable[[O], T]) -> "Stage[O, T]":
        """Forward ``function(element)`` for every element."""
        return self._chain(mapping(function, self.error_policy))

    def flat_map(self, function: Callable[[O], Optional[T]]) -> "Stage[O, T]":
        """Forward ``function(element)`` unless it returns None.

        Same as ``map(function).filter(lambda v: v is not None)`` in one stage.
        """
        return self._chain(flat_mapping(function, self.error_policy))

    def consume(self, consumer: Callable[[O], Any]) -> None:
        """Register a terminal sink.

        Nothing is returned to chain from, but the stage itself stays open:
        more filters, maps and consumers can be attached to it.
        """
        if not callable(consumer):
            raise TypeError(f"consumer must be callable, got {type(consumer).__name__}")
        self._append(consumer)


def start(error_policy: SinkErrorPolicy = SinkErrorPolicy.PROPAGATE) -> Stage[T, T]:
    """Create a no-op root stage to start a chain from.

    Every stage chained from the root inherits ``error_policy``.
    """
    return Stage(StageKind.IDENTITY, error_policy=error_policy)


def filtering(
    condition: Callable[[T], bool],
    error_policy: SinkErrorPolicy = SinkErrorPolicy.PROPAGATE,
) -> Stage[T, T]:
    return Stage(StageKind.FILTER, condition, error_policy)


def mapping(
    function: Callable[[I], O],
    error_policy: SinkErrorPolicy = SinkErrorPolicy.PROPAGATE,
) -> Stage[I, O]:
    return Stage(StageKind.MAP, function, error_policy)


def flat_mapping(
    function: Callable[[I], Optional[O]],
    error_policy: SinkErrorPolicy = SinkErrorPolicy.PROPAGATE,
) -> Stage[I, O]:
    """Create a stage forwarding ``function(element)`` only when it is not None."""
    return Stage(StageKind.FLAT_MAP, function, error_policy)


__all__ = [
    "SinkErrorPolicy",
    "Stage",
    "StageKind",
    "filtering",
    "flat_mapping",
    "mapping",
    "start",
]
