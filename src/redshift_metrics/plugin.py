"""
Redshift input - The object a host metrics agent schedules once per tick.

Hosts register ``create_input`` under the name "redshift" in their own input
registry; nothing is registered globally on import.
"""

from contextlib import nullcontext
from typing import Dict, List, Optional

from .config.settings import Settings
from .connectors.redshift_client import RedshiftQueryExecutor
from .data_collection.gather import GatherCoordinator
from .utils.logger import PerformanceLogger, get_logger

logger = get_logger(__name__)

INPUT_NAME = "redshift"

SAMPLE_CONFIG = """\
{
  "redshift": {
    "_comment": "address is a libpq connection string or URI for the cluster",
    "address": "dbname='<db>' port='5439' user='<user>' password='<pw>' host='<cluster>.<region>.redshift.amazonaws.com'",
    "_comment_cluster_name": "optional name of the cluster, used as the 'cluster' tag",
    "cluster_name": "lucid",
    "_comment_interval_seconds": "window scanned by the time-windowed queries",
    "interval_seconds": 500
  },
  "collection": {
    "connect_timeout_seconds": 10,
    "statement_timeout_ms": 30000,
    "collection_interval_seconds": 60
  },
  "exporter": {
    "port": 9439
  }
}
"""


class RedshiftInput:
    """Collects the diagnostic query battery from one Redshift cluster."""

    def __init__(
        self,
        address: str,
        cluster_name: Optional[str] = "",
        interval_seconds: int = 500,
        queries: Optional[List[str]] = None,
        coordinator: Optional[GatherCoordinator] = None
    ):
        self.address = address
        self.cluster_name = cluster_name or ""
        self.interval_seconds = interval_seconds
        self.queries = queries
        self.coordinator = coordinator or GatherCoordinator()

    @staticmethod
    def sample_config() -> str:
        return SAMPLE_CONFIG

    @staticmethod
    def description() -> str:
        return "Read metrics from Amazon Redshift"

    def gather(self, emitter) -> Dict[str, int]:
        """
        Run one collection tick, emitting into ``emitter``. Raises GatherError on partial failure.

        Emitters that keep state between ticks (PrometheusEmitter) have the tick
        wrapped in their ``cycle()`` so series from failed queries are dropped.
        """
        cycle = getattr(emitter, "cycle", None)
        tick = cycle() if cycle is not None else nullcontext()
        with tick, PerformanceLogger(f"redshift gather ({self.cluster_name or 'unnamed'})", logger):
            return self.coordinator.gather(
                self.address,
                self.cluster_name,
                self.interval_seconds,
                emitter,
                names=self.queries
            )


def create_input(settings: Settings) -> RedshiftInput:
    """Build a RedshiftInput from validated settings."""
    if settings.redshift is None:
        raise ValueError("Redshift connection is not configured (set redshift.address or REDSHIFT_ADDRESS)")

    collection = settings.collection
    executor = RedshiftQueryExecutor(
        connect_timeout=collection.connect_timeout_seconds,
        statement_timeout_ms=collection.statement_timeout_ms,
        fetch_batch_size=collection.fetch_batch_size
    )
    return RedshiftInput(
        address=settings.redshift.address,
        cluster_name=settings.redshift.cluster_name,
        interval_seconds=settings.redshift.interval_seconds,
        queries=settings.redshift.queries,
        coordinator=GatherCoordinator(executor=executor)
    )
