"""Structured diagnostic events for clustering and ranking decisions.

Engines report decisions ("photo X split from cluster Y because of a time
gap") as events keyed by photo and cluster id. The caller chooses the sink:
forward to logging, collect in memory for assertions, or drop.

Usage:
    sink = CollectingSink()
    engine = ClusteringEngine(criteria, sink=sink)
    engine.cluster(photos)

    for event in sink.for_photo('IMG_0042'):
        print(event.kind, event.data)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

# Event kinds
CLUSTER_CREATED = 'cluster_created'
PHOTO_MATCHED = 'photo_matched'
PHOTO_SPLIT = 'photo_split'
BURST_OVERRIDE = 'burst_override'
CLUSTER_FULL = 'cluster_full'
FINGERPRINT_UNAVAILABLE = 'fingerprint_unavailable'
FINGERPRINT_MALFORMED = 'fingerprint_malformed'
ANALYSIS_FAILED = 'analysis_failed'
REPRESENTATIVE_SELECTED = 'representative_selected'
SUB_CLUSTERS_FOUND = 'sub_clusters_found'
RUN_CANCELLED = 'run_cancelled'


@dataclass(frozen=True)
class DiagnosticEvent:
    """A single engine decision.

    Attributes:
        kind: Event kind (see module constants)
        level: logging level of the event
        photo_id: Photo the decision is about (if any)
        cluster_id: Cluster the decision is about (if any)
        data: Decision details (similarities, gaps, reasons)
    """
    kind: str
    level: int = logging.DEBUG
    photo_id: Optional[str] = None
    cluster_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_warning(self) -> bool:
        return self.level >= logging.WARNING

    def describe(self) -> str:
        parts = [self.kind]
        if self.photo_id is not None:
            parts.append(f"photo={self.photo_id}")
        if self.cluster_id is not None:
            parts.append(f"cluster={self.cluster_id}")
        parts.extend(f"{key}={_format_value(value)}" for key, value in self.data.items())
        return " ".join(parts)


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


class DiagnosticSink:
    """Receives diagnostic events. Subclasses override emit()."""

    def emit(self, event: DiagnosticEvent) -> None:
        raise NotImplementedError


class NullSink(DiagnosticSink):
    """Drops every event."""

    def emit(self, event: DiagnosticEvent) -> None:
        pass


class LoggingSink(DiagnosticSink):
    """Forwards events to a logger at the event's level."""

    def __init__(self, target: Optional[logging.Logger] = None):
        self.logger = target or logger

    def emit(self, event: DiagnosticEvent) -> None:
        self.logger.log(event.level, event.describe())


class CollectingSink(DiagnosticSink):
    """Keeps events in memory so callers and tests can query decisions."""

    def __init__(self):
        self.events: List[DiagnosticEvent] = []

    def emit(self, event: DiagnosticEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: str) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.kind == kind]

    def for_photo(self, photo_id: str) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.photo_id == photo_id]

    def for_cluster(self, cluster_id: str) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.cluster_id == cluster_id]

    @property
    def warnings(self) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.is_warning]

    def clear(self):
        self.events.clear()

    def __len__(self) -> int:
        return len(self.events)


class FanOutSink(DiagnosticSink):
    """Sends every event to several sinks."""

    def __init__(self, *sinks: DiagnosticSink):
        self.sinks = list(sinks)

    def emit(self, event: DiagnosticEvent) -> None:
        for sink in self.sinks:
            sink.emit(event)


def emit(
    sink: Optional[DiagnosticSink],
    kind: str,
    level: int = logging.DEBUG,
    photo_id: Optional[str] = None,
    cluster_id: Optional[str] = None,
    **data: Any
) -> DiagnosticEvent:
    """Build an event and hand it to the sink (a LoggingSink if none is given)."""
    event = DiagnosticEvent(
        kind=kind,
        level=level,
        photo_id=photo_id,
        cluster_id=cluster_id,
        data=data
    )
    (sink if sink is not None else LoggingSink()).emit(event)
    return event
