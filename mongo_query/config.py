# SPDX-License-Identifier: MIT
# Copyright (c) 2025 mongo-query contributors

"""Configuration for the MongoDB query client."""

import os
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_URI = "mongodb://localhost:27017"
DEFAULT_TIMEZONE = "UTC"
CREATE_TIME_FIELD = "create_time"
UPDATE_TIME_FIELD = "update_time"


def resolve_timezone(value: str | tzinfo | None) -> tzinfo:
    """Resolve a timezone name or tzinfo to a tzinfo.

    Args:
        value: IANA zone name (e.g. "Asia/Shanghai"), a tzinfo, or None for UTC

    Returns:
        tzinfo instance

    Raises:
        ValueError: If the zone name is unknown
    """
    if value is None:
        return timezone.utc
    if isinstance(value, tzinfo):
        return value
    if value.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {value}") from e


@dataclass
class MongoQueryConfig:
    """Settings for MongoQueryClient.

    Attributes:
        uri: MongoDB connection string
        default_timezone: Zone used to convert stored UTC timestamps to local
            date-times and back. Defaults to UTC, matching MongoDB's own storage.
        create_time_field: Column stamped once when a document is inserted
        update_time_field: Column stamped on every write
        client_options: Extra keyword arguments passed to pymongo.MongoClient
    """
    uri: str = DEFAULT_URI
    default_timezone: str | tzinfo = DEFAULT_TIMEZONE
    create_time_field: str = CREATE_TIME_FIELD
    update_time_field: str = UPDATE_TIME_FIELD
    client_options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "MongoQueryConfig":
        """Build a config from environment variables.

        Explicit keyword overrides take precedence over environment variables.

        Environment Variables:
        - MONGODB_URI: Connection string (default mongodb://localhost:27017)
        - MONGODB_DEFAULT_TIMEZONE: IANA zone name (default UTC)
        - MONGODB_CREATE_TIME_FIELD: Insert timestamp column (default create_time)
        - MONGODB_UPDATE_TIME_FIELD: Update timestamp column (default update_time)
        """
        env = environ if environ is not None else os.environ

        values: dict[str, Any] = {
            "uri": env.get("MONGODB_URI", DEFAULT_URI),
            "default_timezone": env.get("MONGODB_DEFAULT_TIMEZONE", DEFAULT_TIMEZONE),
            "create_time_field": env.get("MONGODB_CREATE_TIME_FIELD", CREATE_TIME_FIELD),
            "update_time_field": env.get("MONGODB_UPDATE_TIME_FIELD", UPDATE_TIME_FIELD),
        }
        values.update(overrides)
        return cls(**values)

    @property
    def tzinfo(self) -> tzinfo:
        """Resolved default timezone."""
        return resolve_timezone(self.default_timezone)
