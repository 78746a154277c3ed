# SPDX-License-Identifier: MIT
# Copyright (c) 2025 mongo-query contributors

"""Aggregation stage builders.

Each helper returns a single stage document, e.g. ``match({"a": 1})`` returns
``{"$match": {"a": 1}}``.
"""

from typing import Any, Mapping, Sequence

from pymongo import ASCENDING, DESCENDING

ROOT = "$$ROOT"


def field_ref(name: str) -> str:
    """Return the aggregation expression referencing a field ("$name")."""
    return f"${name}"


def match(filter_dict: Mapping[str, Any]) -> dict[str, Any]:
    return {"$match": dict(filter_dict)}


def group(key: Any, **accumulators: Mapping[str, Any]) -> dict[str, Any]:
    """Build a $group stage.

    Args:
        key: Group key expression (becomes _id)
        **accumulators: Output field name -> accumulator expression
    """
    spec: dict[str, Any] = {"_id": key}
    spec.update(accumulators)
    return {"$group": spec}


def group_by_aliases(field_aliases: Mapping[str, str], **accumulators: Mapping[str, Any]) -> dict[str, Any]:
    """Group on a composite key built from alias -> expression pairs.

    Example:
        >>> group_by_aliases({"customer": "$device_customer_name"}, count=count_accumulator())
        {'$group': {'_id': {'customer': '$device_customer_name'}, 'count': {'$sum': 1}}}
    """
    return group(dict(field_aliases), **accumulators)


def count_accumulator() -> dict[str, Any]:
    return {"$sum": 1}


def project(projection: Mapping[str, Any]) -> dict[str, Any]:
    return {"$project": dict(projection)}


def sort(sort_spec: Mapping[str, int] | Sequence[tuple[str, int]]) -> dict[str, Any]:
    """Build a $sort stage from a mapping or ordered (field, direction) pairs."""
    return {"$sort": normalize_sort(sort_spec)}


def skip(count: int) -> dict[str, Any]:
    return {"$skip": count}


def limit(count: int) -> dict[str, Any]:
    return {"$limit": count}


def count(field_name: str) -> dict[str, Any]:
    return {"$count": field_name}


def lookup(
    from_collection: str,
    pipeline: Sequence[Mapping[str, Any]],
    as_field: str,
    let: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a $lookup stage running a correlated sub-pipeline on from_collection."""
    spec: dict[str, Any] = {"from": from_collection}
    if let:
        spec["let"] = dict(let)
    spec["pipeline"] = [dict(stage) for stage in pipeline]
    spec["as"] = as_field
    return {"$lookup": spec}


def replace_with(expression: Any) -> dict[str, Any]:
    return {"$replaceWith": expression}


def merge_objects(*expressions: Any) -> dict[str, Any]:
    return {"$mergeObjects": list(expressions)}


def first(expression: Any) -> dict[str, Any]:
    return {"$first": expression}


def normalize_sort(sort_spec: Mapping[str, int] | Sequence[tuple[str, int]]) -> dict[str, int]:
    """Convert a sort specification into an ordered field -> direction dict.

    Raises:
        ValueError: If a direction is neither 1/-1 (pymongo ASCENDING/DESCENDING)
            nor a $meta expression
    """
    items = sort_spec.items() if isinstance(sort_spec, Mapping) else sort_spec
    result: dict[str, int] = {}
    for field_name, direction in items:
        if not isinstance(direction, Mapping) and direction not in (ASCENDING, DESCENDING):
            raise ValueError(f"Sort direction for {field_name!r} must be 1 or -1, got {direction!r}")
        result[field_name] = direction
    return result
