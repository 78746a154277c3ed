# SPDX-License-Identifier: MIT
# Copyright (c) 2025 mongo-query contributors

"""Query descriptor consumed by the pipeline assembler."""

import copy
from typing import Any, Iterable, Mapping, Sequence

from pymongo.collection import Collection

from .errors import QueryConfigurationError

SortSpec = Mapping[str, int] | Sequence[tuple[str, int]]


class MongoQuery:
    """Filter, projection, sort, pagination, grouping and join settings for one collection.

    Setters return the query so calls can be chained::

        query = (
            MongoQuery(collection)
            .set_filter({"sim_status": "active"})
            .set_sort([("update_time", -1)])
            .set_page(2, 20)
        )

    A query may be reused across operations. The client copies it when an
    operation starts; mutating a query from one thread while another thread
    runs an operation with it is not supported.
    """

    def __init__(self, collection: Collection | None = None):
        """Create a query on the given collection.

        Args:
            collection: Collection to query. Borrowed, never closed by the query.
        """
        self.collection = collection

        self.filter: dict[str, Any] = {}
        self.projection: dict[str, Any] | None = None
        self.sort: SortSpec | None = None
        self.skip: int | None = None
        self.limit: int | None = None

        self.group_fields: list[str] = []
        self.total_name: str | None = None

        self.right_collection_name: str | None = None
        self.left_join_field: str | None = None
        self.right_join_field: str | None = None
        self.right_projection: dict[str, Any] | None = None
        self.right_limit: int = 1
        self.right_filter: dict[str, Any] = {}
        self.merge_right_objects_to_left: bool = False

    def __repr__(self) -> str:
        name = getattr(self.collection, "full_name", None)
        return f"MongoQuery(collection={name!r}, filter={self.filter!r}, group_fields={self.group_fields!r})"

    def snapshot(self) -> "MongoQuery":
        """Return an independent copy sharing only the collection handle."""
        return copy.deepcopy(self, memo={id(self.collection): self.collection})

    def set_collection(self, collection: Collection) -> "MongoQuery":
        self.collection = collection
        return self

    def set_filter(self, filter_dict: Mapping[str, Any] | None) -> "MongoQuery":
        """Set the match condition. None resets it to match every document."""
        self.filter = dict(filter_dict) if filter_dict else {}
        return self

    def set_projection(self, projection: Mapping[str, Any] | None) -> "MongoQuery":
        self.projection = dict(projection) if projection is not None else None
        return self

    def set_sort(self, sort: SortSpec | None) -> "MongoQuery":
        """Set the sort order.

        Args:
            sort: Mapping of field to direction, or ordered (field, direction) pairs
        """
        self.sort = sort
        return self

    def set_skip(self, skip: int | None) -> "MongoQuery":
        """Set the number of documents to skip (0-based offset)."""
        if skip is not None and skip < 0:
            raise QueryConfigurationError(f"skip must be non-negative, got {skip}")
        self.skip = skip
        return self

    def set_limit(self, limit: int | None) -> "MongoQuery":
        """Set the maximum number of documents returned. 0 means no limit."""
        if limit is not None and limit < 0:
            raise QueryConfigurationError(f"limit must be non-negative, got {limit}")
        self.limit = limit
        return self

    def set_page(self, page: int, page_size: int) -> "MongoQuery":
        """Select a page of results.

        Args:
            page: Page number, starting at 1
            page_size: Number of documents per page
        """
        if page < 1:
            raise QueryConfigurationError(f"page starts at 1, got {page}")
        if page_size < 1:
            raise QueryConfigurationError(f"page_size must be positive, got {page_size}")
        self.skip = (page - 1) * page_size
        self.limit = page_size
        return self

    def set_group_fields(self, group_fields: Iterable[str] | None) -> "MongoQuery":
        """Set the fields to group by. Order defines key and output column order."""
        self.group_fields = list(group_fields) if group_fields else []
        return self

    def set_group_field(self, group_field: str) -> "MongoQuery":
        self.group_fields = [group_field]
        return self

    def set_total_name(self, total_name: str | None) -> "MongoQuery":
        """Set the output field holding the per-group document count."""
        self.total_name = total_name
        return self

    def set_right_collection_name(self, name: str) -> "MongoQuery":
        self.right_collection_name = name
        return self

    def set_left_join_field(self, field_name: str) -> "MongoQuery":
        self.left_join_field = field_name
        return self

    def set_right_join_field(self, field_name: str) -> "MongoQuery":
        self.right_join_field = field_name
        return self

    def set_right_projection(self, projection: Mapping[str, Any] | None) -> "MongoQuery":
        self.right_projection = dict(projection) if projection is not None else None
        return self

    def set_right_limit(self, right_limit: int | None) -> "MongoQuery":
        """Set how many right-side documents are joined per left document (default 1)."""
        if right_limit is None:
            right_limit = 1
        if right_limit < 1:
            raise QueryConfigurationError(f"right_limit must be at least 1, got {right_limit}")
        self.right_limit = right_limit
        return self

    def set_right_filter(self, filter_dict: Mapping[str, Any] | None) -> "MongoQuery":
        self.right_filter = dict(filter_dict) if filter_dict else {}
        return self

    def set_merge_right_objects_to_left(self, merge: bool | None) -> "MongoQuery":
        """Merge the first joined right-side document into the left document."""
        self.merge_right_objects_to_left = bool(merge)
        return self

    @property
    def has_total(self) -> bool:
        return bool(self.total_name and self.total_name.strip())

    @property
    def namespace(self) -> str:
        """Full name of the collection, for log messages."""
        return getattr(self.collection, "full_name", "<no collection>")
