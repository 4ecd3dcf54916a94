"""
Gather Coordinator - Fans the query catalog out against one cluster per tick.

Every catalog entry runs on its own worker thread with its own connection.
Rows are mapped and handed to the emitter as they are read. A failing query
only ends its own run; once every run has finished, all failures are raised
together as a GatherError keyed by query name.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import closing
from typing import Dict, Iterable, Optional

from ..connectors.redshift_client import RedshiftQueryExecutor
from ..errors import GatherError
from ..utils.logger import get_logger
from .query_catalog import QueryDescriptor, QueryTemplate, build_catalog
from .row_mapper import RowMapper

logger = get_logger(__name__)

CLUSTER_TAG = "cluster"


class GatherCoordinator:
    """
    Runs the diagnostic query battery concurrently and emits one record per row.

    No retries, no cancellation of sibling runs, and no concurrency limit:
    the fan-out width equals the catalog size.
    """

    def __init__(
        self,
        executor: Optional[RedshiftQueryExecutor] = None,
        mapper: Optional[RowMapper] = None,
        templates: Optional[Dict[str, QueryTemplate]] = None
    ):
        self.executor = executor or RedshiftQueryExecutor()
        self.mapper = mapper or RowMapper()
        self.templates = templates

    def gather(
        self,
        target: str,
        cluster_label: Optional[str],
        lookback_seconds: int,
        emit,
        names: Optional[Iterable[str]] = None
    ) -> Dict[str, int]:
        """
        Run one collection tick.

        Args:
            target: Connection string for the cluster
            cluster_label: Value of the ``cluster`` tag (None is tagged as "")
            lookback_seconds: Window for the time-windowed queries
            emit: MetricEmitter receiving one add_fields() call per row
            names: Optional subset of catalog entries to run

        Returns:
            Rows emitted per query name

        Raises:
            InvalidLookbackError: If lookback_seconds is not a positive integer
            GatherError: After all runs finish, if any of them failed
        """
        catalog = build_catalog(lookback_seconds, names, self.templates)
        tags = {CLUSTER_TAG: cluster_label or ""}

        if not catalog:
            return {}

        emitted: Dict[str, int] = {}
        failures: Dict[str, Exception] = {}

        logger.debug(f"Dispatching {len(catalog)} queries")
        with ThreadPoolExecutor(max_workers=len(catalog), thread_name_prefix="redshift-query") as pool:
            future_to_name = {
                pool.submit(self._run_query, target, descriptor, tags, emit): name
                for name, descriptor in catalog.items()
            }

            for future in as_completed(future_to_name):
                name = future_to_name[future]
                error = future.exception()
                if error is None:
                    emitted[name] = future.result()
                    logger.debug(f"{name}: emitted {emitted[name]} rows")
                else:
                    failures[name] = error
                    logger.error(f"Query {name} failed: {error}")

        if failures:
            raise GatherError(failures, emitted)
        return emitted

    def _run_query(self, target: str, descriptor: QueryDescriptor, tags: Dict[str, str], emit) -> int:
        """Execute one query and push each mapped row to the emitter."""
        count = 0
        with closing(self.executor.execute(target, descriptor)) as rows:
            for row in rows:
                fields = self.mapper.map(row.columns, row.values, query_name=descriptor.name)
                emit.add_fields(descriptor.category, fields, dict(tags))
                count += 1
        return count
