"""
Metric emitters - Destinations for the records produced by a collection tick.

The coordinator only needs something with ``add_fields(category, fields, tags)``.
Three emitters are provided: an in-memory accumulator, a Prometheus gauge
exporter and a JSON-lines writer.
"""

import json
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Set, TextIO, Tuple

from prometheus_client import CollectorRegistry, Gauge

from ..data_collection.row_mapper import Scalar, ScalarKind, scalar_kind
from ..utils.logger import get_struct_logger

logger = get_struct_logger(__name__)

SERVICE_CLASS_FIELD = "Service Class"


class MetricEmitter(Protocol):
    """Anything that accepts one metric record per result row."""

    def add_fields(self, category: str, fields: Dict[str, Scalar], tags: Dict[str, str]) -> None:
        ...


@dataclass(frozen=True)
class MetricRecord:
    """A single emitted metric, timestamped at ingestion."""
    category: str
    fields: Dict[str, Scalar]
    tags: Dict[str, str]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, object]:
        return {
            'measurement': self.category,
            'fields': self.fields,
            'tags': self.tags,
            'timestamp': self.timestamp.isoformat(),
        }


class MetricAccumulator:
    """Thread-safe in-memory emitter."""

    def __init__(self):
        self._records: List[MetricRecord] = []
        self._lock = threading.Lock()

    def add_fields(self, category: str, fields: Dict[str, Scalar], tags: Dict[str, str]) -> None:
        record = MetricRecord(category=category, fields=dict(fields), tags=dict(tags))
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> List[MetricRecord]:
        with self._lock:
            return list(self._records)

    def drain(self) -> List[MetricRecord]:
        """Return and forget everything collected so far."""
        with self._lock:
            records, self._records = self._records, []
        return records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class JsonLinesEmitter:
    """Writes each record as one JSON document per line."""

    def __init__(self, stream: TextIO):
        self.stream = stream
        self._lock = threading.Lock()

    def add_fields(self, category: str, fields: Dict[str, Scalar], tags: Dict[str, str]) -> None:
        record = MetricRecord(category=category, fields=dict(fields), tags=dict(tags))
        line = json.dumps(record.to_dict(), sort_keys=True)
        with self._lock:
            self.stream.write(line + "\n")
            self.stream.flush()


def metric_name(category: str, field_name: str, prefix: str = "redshift") -> str:
    """Build a Prometheus-safe gauge name, e.g. ``redshift_query_avg_query_time_ms``."""
    slug = re.sub(r'[^0-9a-zA-Z]+', '_', field_name).strip('_').lower()
    return f"{prefix}_{category}_{slug}"


class PrometheusEmitter:
    """
    Publishes numeric fields as Prometheus gauges.

    Each (category, field) pair becomes one gauge labelled by cluster. Rows
    from the per-service-class query also carry a service_class label.
    Booleans are exported as 0/1; strings and NULLs are skipped.

    Wrap each collection tick in ``cycle()``: series not set during the tick
    are removed when it ends, so a failed query or a retired service class
    stops exporting its last value.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, prefix: str = "redshift"):
        self.registry = registry or CollectorRegistry()
        self.prefix = prefix
        self._gauges: Dict[str, Gauge] = {}
        self._lock = threading.Lock()
        self._live: Set[Tuple[str, Tuple[str, ...]]] = set()
        self._seen: Optional[Set[Tuple[str, Tuple[str, ...]]]] = None

    def _gauge(self, name: str, field_name: str, labelnames) -> Gauge:
        with self._lock:
            gauge = self._gauges.get(name)
            if gauge is None:
                gauge = Gauge(
                    name,
                    f'Redshift "{field_name}"',
                    list(labelnames),
                    registry=self.registry
                )
                self._gauges[name] = gauge
            return gauge

    def add_fields(self, category: str, fields: Dict[str, Scalar], tags: Dict[str, str]) -> None:
        labels = {'cluster': tags.get('cluster', '')}
        family = category
        if SERVICE_CLASS_FIELD in fields:
            labels['service_class'] = str(fields[SERVICE_CLASS_FIELD])
            family = f"{category}_service_class"

        for field_name, value in fields.items():
            if field_name == SERVICE_CLASS_FIELD:
                continue
            kind = scalar_kind(value)
            if kind in (ScalarKind.STRING, ScalarKind.NULL):
                logger.debug("Skipping non-numeric field", category=category,
                             field=field_name, kind=kind.value)
                continue

            name = metric_name(family, field_name, self.prefix)
            gauge = self._gauge(name, field_name, labels.keys())
            gauge.labels(**labels).set(float(value))

            series = (name, tuple(labels.values()))
            with self._lock:
                self._live.add(series)
                if self._seen is not None:
                    self._seen.add(series)

    @contextmanager
    def cycle(self):
        """Mark one collection tick; stale series are dropped on exit, even if the tick raised."""
        with self._lock:
            self._seen = set()
        try:
            yield self
        finally:
            with self._lock:
                stale = self._live - self._seen
                self._live = self._seen
                self._seen = None
            for name, labelvalues in stale:
                self._gauges[name].remove(*labelvalues)
            if stale:
                logger.debug("Removed stale series", count=len(stale))
