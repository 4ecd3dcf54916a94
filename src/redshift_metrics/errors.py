"""
Exception hierarchy for Redshift metric collection.

Each executor/mapper failure aborts only the query run that raised it;
GatherError is what the coordinator reports once every run has finished.
"""

from typing import Dict, Optional


class RedshiftMetricsError(Exception):
    """Base class for all collection errors."""

    def __init__(self, message: str, query_name: Optional[str] = None):
        self.query_name = query_name
        if query_name:
            message = f"{query_name}: {message}"
        super().__init__(message)


class ConnectionOpenError(RedshiftMetricsError):
    """Raised when a connection to the cluster cannot be opened."""
    pass


class LivenessCheckError(RedshiftMetricsError):
    """Raised when the connection opened but failed the ping query."""
    pass


class QueryExecutionError(RedshiftMetricsError):
    """Raised when the diagnostic query itself fails (bad SQL, permissions, missing view)."""
    pass


class RowReadError(RedshiftMetricsError):
    """Raised while introspecting result columns or reading row values."""
    pass


class ColumnBindMismatchError(RowReadError):
    """Raised when a row's value count does not match the captured column names."""
    pass


class InvalidLookbackError(ValueError):
    """Raised when the lookback window is not a positive integer."""
    pass


class GatherError(RedshiftMetricsError):
    """
    Raised after a collection tick in which one or more queries failed.

    Attributes:
        failures: query name -> exception raised by that query's run
        emitted: query name -> rows emitted, for the runs that succeeded
    """

    def __init__(self, failures: Dict[str, Exception], emitted: Optional[Dict[str, int]] = None):
        self.failures = dict(failures)
        self.emitted = dict(emitted or {})
        names = ", ".join(sorted(self.failures))
        details = "; ".join(
            _describe(name, err) for name, err in sorted(self.failures.items())
        )
        super().__init__(f"{len(self.failures)} query run(s) failed [{names}] - {details}")


def _describe(name: str, err: Exception) -> str:
    # executor errors already carry the query name in their message
    if getattr(err, 'query_name', None) == name:
        return f"{type(err).__name__}: {err}"
    return f"{type(err).__name__}: {name}: {err}"
