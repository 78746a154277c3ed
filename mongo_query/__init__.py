# SPDX-License-Identifier: MIT
# Copyright (c) 2025 mongo-query contributors

"""MongoDB query and aggregation-pipeline helpers.

Describe a filter, sort, page, grouping or left outer join with a MongoQuery
and let MongoQueryClient assemble and run the aggregation pipeline. Documents
can be mapped to dataclass entities declared with column().
"""

__version__ = "0.1.0"

from . import aggregations
from .client import MongoQueryClient
from .coercion import TypeCoercer
from .config import MongoQueryConfig
from .entity import ColumnMapping, EntityMapper, column, get_column_mappings
from .errors import (
    EntityConversionError,
    MongoQueryConnectionError,
    MongoQueryError,
    NotConnectedError,
    QueryConfigurationError,
)
from .introspection import to_aggregations_json
from .pipeline import (
    build_count_pipeline,
    build_group_pipeline,
    build_left_outer_join_pipeline,
)
from .query import MongoQuery

__all__ = [
    # Version
    "__version__",
    # Client
    "MongoQueryClient",
    "MongoQueryConfig",
    # Query description and pipelines
    "MongoQuery",
    "aggregations",
    "build_count_pipeline",
    "build_group_pipeline",
    "build_left_outer_join_pipeline",
    "to_aggregations_json",
    # Entity mapping
    "column",
    "ColumnMapping",
    "EntityMapper",
    "TypeCoercer",
    "get_column_mappings",
    # Exceptions
    "MongoQueryError",
    "MongoQueryConnectionError",
    "NotConnectedError",
    "QueryConfigurationError",
    "EntityConversionError",
]
