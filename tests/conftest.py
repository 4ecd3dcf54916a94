"""
Pytest configuration and fixtures for the Redshift metrics collector tests.

Provides a stub DB-API server (connect callable, connections and cursors) so
the executor and coordinator run end to end without a live cluster.
"""

import sys
import threading
from pathlib import Path

import psycopg2
import pytest

# Add src to Python path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from redshift_metrics.connectors.redshift_client import PING_QUERY
from redshift_metrics.data_collection.query_catalog import QueryTemplate


class StubCursor:
    """DB-API cursor returning canned results."""

    def __init__(self, connection):
        self.connection = connection
        self.description = None
        self.closed = False
        self._rows = []
        self._position = 0

    def execute(self, sql):
        server = self.connection.server
        self.connection.executed.append(sql)

        if sql == PING_QUERY:
            if server.ping_error is not None:
                raise server.ping_error
            self.description = [("?column?",)]
            self._rows = [(1,)]
            return

        response = server.response_for(sql)
        if isinstance(response, Exception):
            raise response
        columns, rows = response
        self.description = None if columns is None else [(name,) for name in columns]
        self._rows = list(rows)
        self._position = 0

    def fetchone(self):
        rows = self.fetchmany(1)
        return rows[0] if rows else None

    def fetchmany(self, size=1):
        server = self.connection.server
        if server.fetch_error is not None and self._position >= server.fetch_error_after:
            raise server.fetch_error
        batch = self._rows[self._position:self._position + size]
        self._position += len(batch)
        return batch

    def close(self):
        self.closed = True


class StubConnection:
    """DB-API connection recording whether it was closed."""

    def __init__(self, server, dsn, kwargs):
        self.server = server
        self.dsn = dsn
        self.kwargs = kwargs
        self.closed = False
        self.executed = []
        self.cursors = []

    def cursor(self):
        cursor = StubCursor(self)
        self.cursors.append(cursor)
        return cursor

    def close(self):
        self.closed = True


class StubServer:
    """
    Stand-in for psycopg2.connect.

    ``responses`` maps a marker substring of the SQL text to either
    ``(columns, rows)`` or an exception to raise from execute().
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.connect_error = None
        self.ping_error = None
        self.fetch_error = None
        self.fetch_error_after = 0
        self.connections = []
        self._lock = threading.Lock()

    def __call__(self, dsn, **kwargs):
        if self.connect_error is not None:
            raise self.connect_error
        conn = StubConnection(self, dsn, kwargs)
        with self._lock:
            self.connections.append(conn)
        return conn

    def response_for(self, sql):
        for marker, response in self.responses.items():
            if marker in sql:
                return response
        raise psycopg2.ProgrammingError(f"relation does not exist: {sql.strip()[:40]}")

    @property
    def all_closed(self):
        return all(conn.closed for conn in self.connections)


@pytest.fixture
def stub_server():
    """A stub server with no canned responses."""
    return StubServer()


@pytest.fixture
def scenario_templates():
    """Three-query catalog: one column query, WLM service counts, running queries."""
    return {
        "ColumnsNotCompressed": QueryTemplate(
            "ColumnsNotCompressed", 'select count(1) as "Columns Not Compressed" from pg_attribute;', "column"
        ),
        "WLMService": QueryTemplate(
            "WLMService", 'select 1 as "Queued" from stv_wlm_service_class_state;', "wlm"
        ),
        "RunningQueries": QueryTemplate(
            "RunningQueries",
            "select count(1) as \"Currently Running Queries\" from stv_inflight "
            "where starttime >= GETDATE() - INTERVAL '{lookback_seconds} seconds';",
            "query",
            windowed=True
        ),
    }


@pytest.fixture
def scenario_server():
    """Stub server answering the three scenario queries with fixed rows."""
    return StubServer({
        "pg_attribute": (["Columns Not Compressed"], [(12,)]),
        "stv_wlm_service_class_state": (
            ["Queued", "Executing", "Serviced", "Evicted"], [(2, 5, 340, 0)]
        ),
        "stv_inflight": (["Currently Running Queries"], [(7,)]),
    })
