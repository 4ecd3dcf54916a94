"""
Redshift Metrics Collector

Runs a battery of diagnostic queries against an Amazon Redshift cluster's
system views and turns every result row into a metric record tagged with the
cluster name.
"""

__version__ = "1.0.0"

from .errors import (
    RedshiftMetricsError,
    ConnectionOpenError,
    LivenessCheckError,
    QueryExecutionError,
    RowReadError,
    ColumnBindMismatchError,
    InvalidLookbackError,
    GatherError
)
from .config.settings import Settings, get_settings, load_settings
from .connectors import RedshiftQueryExecutor, ResultRow
from .data_collection import (
    QueryDescriptor,
    build_catalog,
    RowMapper,
    GatherCoordinator
)
from .monitoring import MetricRecord, MetricAccumulator, PrometheusEmitter, JsonLinesEmitter
from .plugin import RedshiftInput, create_input
from .utils.logger import setup_logging, get_logger

__all__ = [
    "RedshiftMetricsError",
    "ConnectionOpenError",
    "LivenessCheckError",
    "QueryExecutionError",
    "RowReadError",
    "ColumnBindMismatchError",
    "InvalidLookbackError",
    "GatherError",
    "Settings",
    "get_settings",
    "load_settings",
    "RedshiftQueryExecutor",
    "ResultRow",
    "QueryDescriptor",
    "build_catalog",
    "RowMapper",
    "GatherCoordinator",
    "MetricRecord",
    "MetricAccumulator",
    "PrometheusEmitter",
    "JsonLinesEmitter",
    "RedshiftInput",
    "create_input",
    "setup_logging",
    "get_logger",
]
