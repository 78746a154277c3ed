# SPDX-License-Identifier: MIT
# Copyright (c) 2025 mongo-query contributors

"""Assembly of aggregation pipelines from a MongoQuery.

Every builder returns a new list of stage documents; stage order is fixed and
does not depend on data or indexes.
"""

from typing import Any

from . import aggregations as stages
from .errors import QueryConfigurationError
from .query import MongoQuery

TOTAL_GROUPS_FIELD = "__totalGroups"
JOIN_FIELD_SUFFIX = "__datas"
LEFT_JOIN_VARIABLE = "left_join_value"


def build_group_key(group_fields: list[str]) -> dict[str, str]:
    """Map each group field to its field reference, preserving order."""
    return {field_name: stages.field_ref(field_name) for field_name in group_fields}


def build_default_group_projection(query: MongoQuery) -> dict[str, Any]:
    """Flatten the composite group key back into top-level fields.

    $group nests the key fields under _id; the default projection drops _id and
    re-exposes each group field under its own name, then the count field.
    """
    projection: dict[str, Any] = {"_id": 0}
    for field_name in query.group_fields:
        projection[field_name] = f"$_id.{field_name}"
    if query.has_total:
        projection[query.total_name] = 1
    return projection


def join_field_name(query: MongoQuery) -> str:
    """Name of the array field holding joined right-side documents."""
    return f"{query.right_collection_name}{JOIN_FIELD_SUFFIX}"


def _require_group_fields(query: MongoQuery) -> None:
    if not query.group_fields:
        raise QueryConfigurationError("group_fields must not be empty for a grouped query")


def _append_pagination(pipeline: list[dict[str, Any]], query: MongoQuery) -> None:
    if query.skip is not None:
        pipeline.append(stages.skip(query.skip))
    # A limit of 0 means no limit, as with pymongo's Cursor.limit; $limit rejects 0.
    if query.limit:
        pipeline.append(stages.limit(query.limit))


def build_count_pipeline(query: MongoQuery) -> list[dict[str, Any]]:
    """Pipeline counting the distinct groups matching the filter.

    Raises:
        QueryConfigurationError: If the query has no group fields
    """
    _require_group_fields(query)
    return [
        stages.match(query.filter),
        stages.group(build_group_key(query.group_fields)),
        stages.count(TOTAL_GROUPS_FIELD),
    ]


def build_group_pipeline(query: MongoQuery) -> list[dict[str, Any]]:
    """Pipeline for a grouped query.

    Stages: $match, $group (with a $sum count when total_name is set),
    $project (explicit or default), then optional $sort, $skip, $limit.

    Raises:
        QueryConfigurationError: If the query has no group fields
    """
    _require_group_fields(query)

    pipeline = [stages.match(query.filter)]

    key = build_group_key(query.group_fields)
    if query.has_total:
        pipeline.append(stages.group(key, **{query.total_name: stages.count_accumulator()}))
    else:
        pipeline.append(stages.group(key))

    if query.projection is not None:
        pipeline.append(stages.project(query.projection))
    else:
        pipeline.append(stages.project(build_default_group_projection(query)))

    if query.sort is not None:
        pipeline.append(stages.sort(query.sort))

    _append_pagination(pipeline, query)
    return pipeline


def validate_join(query: MongoQuery) -> None:
    """Check that the join settings are complete.

    Raises:
        QueryConfigurationError: If a join setting is missing or invalid
    """
    missing = [
        name
        for name in ("right_collection_name", "left_join_field", "right_join_field")
        if not (getattr(query, name) or "").strip()
    ]
    if missing:
        raise QueryConfigurationError(
            f"Left outer join requires {', '.join(missing)} to be set"
        )
    if query.right_limit is None or query.right_limit < 1:
        raise QueryConfigurationError(
            f"right_limit must be at least 1, got {query.right_limit}"
        )


def build_right_pipeline(query: MongoQuery) -> list[dict[str, Any]]:
    """Sub-pipeline run on the right collection for each left document.

    The right-side match combines right_filter with an equality between the
    right join field and the left document's join field, exposed to the
    sub-pipeline through a $lookup variable. An empty right_filter matches
    everything and is left out of the $and.
    """
    correlation = {
        "$expr": {
            "$eq": [
                stages.field_ref(query.right_join_field),
                f"$${LEFT_JOIN_VARIABLE}",
            ]
        }
    }
    if query.right_filter:
        pipeline = [stages.match({"$and": [dict(query.right_filter), correlation]})]
    else:
        pipeline = [stages.match(correlation)]
    if query.right_projection is not None:
        pipeline.append(stages.project(query.right_projection))
    pipeline.append(stages.limit(query.right_limit))
    return pipeline


def build_left_outer_join_pipeline(query: MongoQuery) -> list[dict[str, Any]]:
    """Pipeline emulating a left outer join with $lookup.

    Stages: $match, optional $sort, $lookup into "<right>__datas", optional
    merge of the first joined document into the root, optional left-side
    $project, then $skip and $limit.

    Raises:
        QueryConfigurationError: If the join settings are incomplete
    """
    validate_join(query)
    as_field = join_field_name(query)

    pipeline = [stages.match(query.filter)]

    if query.sort is not None:
        pipeline.append(stages.sort(query.sort))

    pipeline.append(
        stages.lookup(
            query.right_collection_name,
            build_right_pipeline(query),
            as_field,
            let={LEFT_JOIN_VARIABLE: stages.field_ref(query.left_join_field)},
        )
    )

    if query.merge_right_objects_to_left:
        # $first of an empty array is missing, which $mergeObjects ignores.
        pipeline.append(
            stages.replace_with(
                stages.merge_objects(stages.ROOT, stages.first(stages.field_ref(as_field)))
            )
        )
        pipeline.append(stages.project({as_field: 0}))

    if query.projection is not None:
        pipeline.append(stages.project(query.projection))

    _append_pagination(pipeline, query)
    return pipeline
