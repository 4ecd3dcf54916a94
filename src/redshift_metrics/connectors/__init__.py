"""
Redshift connection components.

Provides the per-query executor that opens, checks and closes its own
connection for every diagnostic query run.
"""

from .redshift_client import RedshiftQueryExecutor, ResultRow, PING_QUERY

__all__ = [
    'RedshiftQueryExecutor',
    'ResultRow',
    'PING_QUERY'
]
