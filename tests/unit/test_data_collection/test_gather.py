"""
Unit tests for the gather coordinator.

Tests concurrent fan-out, record emission and partial-failure reporting.
"""

import threading
from unittest.mock import Mock

import psycopg2
import pytest

from redshift_metrics.connectors.redshift_client import RedshiftQueryExecutor, ResultRow
from redshift_metrics.data_collection.gather import GatherCoordinator
from redshift_metrics.data_collection.query_catalog import QUERY_TEMPLATES, QueryTemplate
from redshift_metrics.errors import (
    ColumnBindMismatchError,
    ConnectionOpenError,
    GatherError,
    InvalidLookbackError,
    QueryExecutionError,
)
from redshift_metrics.monitoring.emitters import MetricAccumulator

TARGET = "postgresql://monitor:pw@example.redshift.amazonaws.com:5439/dev"


def _templates(count):
    return {
        f"Q{i}": QueryTemplate(f"Q{i}", f'select {i} as "Value {i}";', "query")
        for i in range(count)
    }


class BarrierExecutor:
    """Executor whose runs all wait on one barrier before yielding a row."""

    def __init__(self, parties):
        self.barrier = threading.Barrier(parties, timeout=5)
        self.finished = []
        self._lock = threading.Lock()

    def execute(self, target, descriptor):
        self.barrier.wait()
        try:
            yield ResultRow(("value",), (descriptor.name,))
        finally:
            with self._lock:
                self.finished.append(descriptor.name)


class TestGatherCoordinator:
    """Test suite for GatherCoordinator.gather."""

    @pytest.fixture
    def coordinator(self, scenario_server, scenario_templates):
        executor = RedshiftQueryExecutor(connect=scenario_server)
        return GatherCoordinator(executor=executor, templates=scenario_templates)

    def test_scenario_emits_one_record_per_row(self, coordinator, scenario_server):
        """Test the three-query scenario end to end."""
        acc = MetricAccumulator()

        emitted = coordinator.gather(TARGET, "lucid", 500, acc)

        assert emitted == {"ColumnsNotCompressed": 1, "WLMService": 1, "RunningQueries": 1}
        assert len(acc) == 3

        by_category = {record.category: record for record in acc.records}
        assert by_category["column"].fields == {"Columns Not Compressed": 12}
        assert by_category["wlm"].fields == {"Queued": 2, "Executing": 5, "Serviced": 340, "Evicted": 0}
        assert by_category["query"].fields == {"Currently Running Queries": 7}
        assert all(record.tags == {"cluster": "lucid"} for record in acc.records)
        assert scenario_server.all_closed

    def test_lookback_reaches_windowed_query(self, coordinator, scenario_server):
        """Test that the lookback value is rendered into the executed SQL."""
        coordinator.gather(TARGET, "lucid", 500, MetricAccumulator())

        executed = [sql for conn in scenario_server.connections for sql in conn.executed]
        assert any("INTERVAL '500 seconds'" in sql for sql in executed)

    def test_missing_cluster_label_tagged_empty(self, coordinator):
        """Test that an unset cluster label is tagged as an empty string."""
        acc = MetricAccumulator()

        coordinator.gather(TARGET, None, 60, acc)

        assert all(record.tags == {"cluster": ""} for record in acc.records)

    def test_repeated_gather_is_idempotent(self, coordinator):
        """Test that two ticks over identical responses produce identical records."""
        first, second = MetricAccumulator(), MetricAccumulator()

        coordinator.gather(TARGET, "lucid", 500, first)
        coordinator.gather(TARGET, "lucid", 500, second)

        def shape(acc):
            return sorted((r.category, sorted(r.fields.items()), sorted(r.tags.items())) for r in acc.records)

        assert shape(first) == shape(second)

    def test_multi_row_query_emits_every_row(self, stub_server):
        """Test a per-service-class query returning several rows."""
        stub_server.responses["stv_wlm_service_class_state"] = (
            ["Service Class", "Queued Queries", "Executing Queries", "Serviced Queries", "Evicted Queries"],
            [(6, 1, 2, 30, 0), (7, 0, 1, 12, 0), (8, 4, 4, 99, 1)]
        )
        coordinator = GatherCoordinator(executor=RedshiftQueryExecutor(connect=stub_server))
        acc = MetricAccumulator()

        emitted = coordinator.gather(TARGET, "lucid", 60, acc, names=["WLMServiceClass"])

        assert emitted == {"WLMServiceClass": 3}
        assert [r.fields["Service Class"] for r in acc.records] == [6, 7, 8]
        assert all(r.category == "wlm" for r in acc.records)

    def test_single_failure_reported_and_others_emitted(self, scenario_server, scenario_templates):
        """Test that one failing query does not stop the others."""
        scenario_server.responses["stv_inflight"] = psycopg2.ProgrammingError("relation stv_inflight denied")
        coordinator = GatherCoordinator(
            executor=RedshiftQueryExecutor(connect=scenario_server), templates=scenario_templates
        )
        acc = MetricAccumulator()

        with pytest.raises(GatherError) as exc_info:
            coordinator.gather(TARGET, "lucid", 500, acc)

        error = exc_info.value
        assert set(error.failures) == {"RunningQueries"}
        assert isinstance(error.failures["RunningQueries"], QueryExecutionError)
        assert error.emitted == {"ColumnsNotCompressed": 1, "WLMService": 1}
        assert "RunningQueries" in str(error)
        assert {r.category for r in acc.records} == {"column", "wlm"}
        assert scenario_server.all_closed

    def test_every_failure_collected(self, scenario_server, scenario_templates):
        """Test that all failures are reported, each under its query name."""
        scenario_server.connect_error = psycopg2.OperationalError("timeout expired")
        coordinator = GatherCoordinator(
            executor=RedshiftQueryExecutor(connect=scenario_server), templates=scenario_templates
        )

        with pytest.raises(GatherError) as exc_info:
            coordinator.gather(TARGET, "lucid", 500, MetricAccumulator())

        failures = exc_info.value.failures
        assert set(failures) == set(scenario_templates)
        for name, err in failures.items():
            assert isinstance(err, ConnectionOpenError)
            assert err.query_name == name
        assert exc_info.value.emitted == {}

    def test_mapper_failure_attributed_to_query(self, scenario_server, scenario_templates):
        """Test that a malformed row fails only its own query."""
        scenario_server.responses["pg_attribute"] = (["Columns Not Compressed"], [(1, 2)])
        coordinator = GatherCoordinator(
            executor=RedshiftQueryExecutor(connect=scenario_server), templates=scenario_templates
        )

        with pytest.raises(GatherError) as exc_info:
            coordinator.gather(TARGET, "lucid", 500, MetricAccumulator())

        assert set(exc_info.value.failures) == {"ColumnsNotCompressed"}
        assert isinstance(exc_info.value.failures["ColumnsNotCompressed"], ColumnBindMismatchError)
        assert scenario_server.all_closed

    def test_emitter_failure_isolated(self, coordinator):
        """Test that an emitter raising for one category fails only that query."""
        emitter = Mock()

        def add_fields(category, fields, tags):
            if category == "wlm":
                raise RuntimeError("sink full")

        emitter.add_fields.side_effect = add_fields

        with pytest.raises(GatherError) as exc_info:
            coordinator.gather(TARGET, "lucid", 500, emitter)

        assert set(exc_info.value.failures) == {"WLMService"}
        assert emitter.add_fields.call_count == 3

    def test_runs_are_concurrent_and_all_complete(self):
        """Test that every query is in flight at once and finished before return."""
        templates = _templates(6)
        executor = BarrierExecutor(parties=6)
        coordinator = GatherCoordinator(executor=executor, templates=templates)
        acc = MetricAccumulator()

        emitted = coordinator.gather(TARGET, "lucid", 60, acc)

        assert emitted == {name: 1 for name in templates}
        assert sorted(executor.finished) == sorted(templates)
        assert len(acc) == 6

    def test_empty_catalog(self):
        """Test that an empty catalog dispatches nothing."""
        executor = Mock()
        coordinator = GatherCoordinator(executor=executor, templates={})

        assert coordinator.gather(TARGET, "lucid", 60, MetricAccumulator()) == {}
        executor.execute.assert_not_called()

    def test_invalid_lookback_rejected_before_dispatch(self):
        """Test that a bad window fails fast without opening connections."""
        executor = Mock()
        coordinator = GatherCoordinator(executor=executor)

        with pytest.raises(InvalidLookbackError):
            coordinator.gather(TARGET, "lucid", 0, MetricAccumulator())

        executor.execute.assert_not_called()

    def test_full_catalog_dispatched(self, stub_server):
        """Test that every built-in query is run once per tick."""
        coordinator = GatherCoordinator(executor=RedshiftQueryExecutor(connect=stub_server))

        with pytest.raises(GatherError) as exc_info:
            # the stub knows none of the real queries, so every run fails
            coordinator.gather(TARGET, "lucid", 60, MetricAccumulator())

        assert set(exc_info.value.failures) == set(QUERY_TEMPLATES)
        assert len(stub_server.connections) == len(QUERY_TEMPLATES)
        assert stub_server.all_closed
