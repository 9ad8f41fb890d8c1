"""Event pipelines: filter/map/flat-map chains with fan-out to sinks."""

from gateway.events.pipeline import (
    SinkErrorPolicy,
    Stage,
    StageKind,
    filtering,
    flat_mapping,
    mapping,
    start,
)

__all__ = [
    "SinkErrorPolicy",
    "Stage",
    "StageKind",
    "filtering",
    "flat_mapping",
    "mapping",
    "start",
]
