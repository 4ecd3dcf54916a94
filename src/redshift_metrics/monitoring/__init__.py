"""Metric emitters for collected Redshift records."""

from .emitters import (
    MetricEmitter,
    MetricRecord,
    MetricAccumulator,
    JsonLinesEmitter,
    PrometheusEmitter,
    metric_name
)

__all__ = [
    'MetricEmitter',
    'MetricRecord',
    'MetricAccumulator',
    'JsonLinesEmitter',
    'PrometheusEmitter',
    'metric_name'
]
