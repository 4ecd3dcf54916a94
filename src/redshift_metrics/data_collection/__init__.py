"""
Collection components: the diagnostic query catalog, the row mapper and the
coordinator that runs the catalog against a cluster each tick.
"""

from .query_catalog import QueryDescriptor, QueryTemplate, QUERY_TEMPLATES, build_catalog
from .row_mapper import RowMapper, Scalar, ScalarKind, scalar_kind
from .gather import GatherCoordinator

__all__ = [
    'QueryDescriptor',
    'QueryTemplate',
    'QUERY_TEMPLATES',
    'build_catalog',
    'RowMapper',
    'Scalar',
    'ScalarKind',
    'scalar_kind',
    'GatherCoordinator'
]
