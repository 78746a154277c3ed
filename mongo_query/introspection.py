# SPDX-License-Identifier: MIT
# Copyright (c) 2025 mongo-query contributors

"""Rendering of pipelines as Extended JSON for debugging."""

from typing import Any, Iterable, Mapping

from bson import json_util
from bson.json_util import JSONMode, JSONOptions

# ObjectIds and dates render as {"$oid": ...} / {"$date": ...} wrappers, which
# are not query operators. mongosh needs EJSON.parse() to read them back.
EXTENDED_JSON_OPTIONS = JSONOptions(json_mode=JSONMode.RELAXED)


def stage_to_json(stage: Mapping[str, Any]) -> str:
    """Serialize one pipeline stage to relaxed Extended JSON."""
    return json_util.dumps(stage, json_options=EXTENDED_JSON_OPTIONS)


def to_aggregations_json(pipeline: Iterable[Mapping[str, Any]]) -> str:
    """Render a pipeline as a JSON array string.

    Each stage is serialized independently. The output is relaxed Extended
    JSON: pipelines that hold only plain values can be pasted into the
    Compass aggregation editor as-is, while pipelines holding ObjectIds or
    dates must go through ``EJSON.parse`` in mongosh (or ``json_util.loads``)
    to get their BSON types back.

    Args:
        pipeline: Sequence of stage documents

    Returns:
        "[stage1,stage2,...]"
    """
    return "[" + ",".join(stage_to_json(stage) for stage in pipeline) + "]"
