"""
Redshift Query Executor - Runs one diagnostic query over its own connection.

Redshift speaks the PostgreSQL wire protocol, so connections are opened with
psycopg2 from a libpq connection string. Every execution opens an exclusive
connection, checks it with a ping query, runs the diagnostic query and streams
rows back until the result set is exhausted. The cursor and connection are
closed on every exit path, including when the consumer stops iterating early.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional, Tuple

import psycopg2
from psycopg2.extensions import parse_dsn

from ..errors import (
    ConnectionOpenError,
    LivenessCheckError,
    QueryExecutionError,
    RowReadError,
)
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..data_collection.query_catalog import QueryDescriptor

logger = get_logger(__name__)

PING_QUERY = "SELECT 1"


@dataclass(frozen=True)
class ResultRow:
    """One result row: column names from the result schema plus positional values."""
    columns: Tuple[str, ...]
    values: Tuple[Any, ...]


class RedshiftQueryExecutor:
    """
    Executes catalog queries against a Redshift cluster.

    Features:
    - One connection per execution, never shared between concurrent runs
    - Liveness check before the diagnostic query is issued
    - Optional server-side statement timeout so blocking calls honor a deadline
    - Batched fetching with rows yielded one at a time
    """

    def __init__(
        self,
        connect: Callable[..., Any] = psycopg2.connect,
        connect_timeout: Optional[int] = 10,
        statement_timeout_ms: Optional[int] = None,
        fetch_batch_size: int = 1000
    ):
        """
        Initialize the executor.

        Args:
            connect: DB-API connect callable taking a DSN (psycopg2.connect by default)
            connect_timeout: Seconds to wait for the connection to open
            statement_timeout_ms: Server-side timeout applied to every statement
            fetch_batch_size: Rows pulled per fetchmany() call
        """
        if fetch_batch_size < 1:
            raise ValueError("fetch_batch_size must be at least 1")
        self._connect = connect
        self.connect_timeout = connect_timeout
        self.statement_timeout_ms = statement_timeout_ms
        self.fetch_batch_size = fetch_batch_size

    def _connection_kwargs(self, target: str):
        kwargs = {}
        if self.connect_timeout:
            kwargs['connect_timeout'] = self.connect_timeout
        if self.statement_timeout_ms:
            # Keyword options replace the DSN's own, so keep whatever it already sets
            existing = parse_dsn(target).get('options')
            timeout = f"-c statement_timeout={self.statement_timeout_ms}"
            kwargs['options'] = f"{existing} {timeout}" if existing else timeout
        return kwargs

    def execute(self, target: str, descriptor: "QueryDescriptor") -> Iterator[ResultRow]:
        """
        Run a query and stream its rows.

        The returned generator holds the connection open until it is exhausted
        or closed; callers should consume it fully or wrap it in
        contextlib.closing().

        Args:
            target: libpq connection string or URI for the cluster
            descriptor: Rendered query to run

        Yields:
            ResultRow for each row, in the order the server returns them

        Raises:
            ConnectionOpenError: If the connection cannot be opened
            LivenessCheckError: If the ping query fails
            QueryExecutionError: If the diagnostic query fails
            RowReadError: If the result schema or a row cannot be read
        """
        name = descriptor.name

        try:
            conn = self._connect(target, **self._connection_kwargs(target))
        except psycopg2.Error as e:
            raise ConnectionOpenError(f"failed to open connection: {e}", query_name=name) from e

        try:
            self._ping(conn, name)

            cursor = conn.cursor()
            try:
                try:
                    cursor.execute(descriptor.script)
                except psycopg2.Error as e:
                    raise QueryExecutionError(f"query failed: {e}", query_name=name) from e

                # Column order is captured once and reused for every row
                if cursor.description is None:
                    raise RowReadError("query returned no result set", query_name=name)
                columns = tuple(desc[0] for desc in cursor.description)

                row_count = 0
                while True:
                    try:
                        batch = cursor.fetchmany(self.fetch_batch_size)
                    except psycopg2.Error as e:
                        raise RowReadError(
                            f"failed reading rows after {row_count}: {e}", query_name=name
                        ) from e
                    if not batch:
                        break
                    for values in batch:
                        row_count += 1
                        yield ResultRow(columns=columns, values=tuple(values))

                logger.debug(f"{name}: read {row_count} rows")
            finally:
                cursor.close()
        finally:
            self._close(conn, name)

    def _ping(self, conn, name: str):
        """Verify the connection answers before issuing the real query."""
        try:
            cursor = conn.cursor()
            try:
                cursor.execute(PING_QUERY)
                cursor.fetchone()
            finally:
                cursor.close()
        except psycopg2.Error as e:
            raise LivenessCheckError(f"ping failed: {e}", query_name=name) from e

    def _close(self, conn, name: str):
        try:
            conn.close()
        except psycopg2.Error as e:
            logger.warning(f"{name}: error closing connection: {e}")
