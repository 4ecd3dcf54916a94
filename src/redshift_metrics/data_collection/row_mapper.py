"""
Row Mapper - Turns positional result rows into name-addressed field maps.

The driver hands back each row as a flat tuple; the column names are captured
once per result set from the cursor description. The mapper binds one slot per
column in that order, then re-associates each bound value with its column name.
"""

import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Sequence, Union

from ..errors import ColumnBindMismatchError, RowReadError

Scalar = Union[int, float, bool, str, None]


class ScalarKind(Enum):
    """Kinds of value a mapped field can hold."""
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    STRING = "string"
    NULL = "null"


def scalar_kind(value: Scalar) -> ScalarKind:
    """Classify a mapped value. bool is checked before int since it subclasses it."""
    if value is None:
        return ScalarKind.NULL
    if isinstance(value, bool):
        return ScalarKind.BOOLEAN
    if isinstance(value, int):
        return ScalarKind.INTEGER
    if isinstance(value, float):
        return ScalarKind.FLOAT
    if isinstance(value, str):
        return ScalarKind.STRING
    raise TypeError(f"Not a scalar value: {type(value).__name__}")


def to_scalar(value) -> Scalar:
    """
    Normalise a driver value into a generic scalar.

    NUMERIC/DECIMAL results (sum, avg over integers) arrive as Decimal and
    become int when integral, float otherwise. Temporal values become ISO
    strings. Anything else cannot be held and raises TypeError.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    raise TypeError(f"Unsupported column value type: {type(value).__name__}")


class RowMapper:
    """Maps one positional row onto its ordered column names."""

    def map(
        self,
        ordered_columns: Sequence[str],
        row: Sequence,
        query_name: Optional[str] = None
    ) -> Dict[str, Scalar]:
        """
        Build a column -> value mapping for a single row.

        Args:
            ordered_columns: Column names captured from the result schema
            row: Positional values as returned by the driver
            query_name: Query the row belongs to, for error attribution

        Returns:
            Mapping of column name to scalar value, one entry per column

        Raises:
            ColumnBindMismatchError: If the row width differs from the column count
            RowReadError: If a value cannot be held as a generic scalar
        """
        if len(row) != len(ordered_columns):
            raise ColumnBindMismatchError(
                f"row has {len(row)} values but {len(ordered_columns)} columns were described",
                query_name=query_name
            )

        slots = [None] * len(ordered_columns)
        for position, raw in enumerate(row):
            try:
                slots[position] = to_scalar(raw)
            except TypeError as e:
                raise RowReadError(
                    f"cannot read column {ordered_columns[position]!r}: {e}",
                    query_name=query_name
                ) from e

        return {column: slots[position] for position, column in enumerate(ordered_columns)}
