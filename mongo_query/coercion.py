# SPDX-License-Identifier: MIT
# Copyright (c) 2025 mongo-query contributors

"""Conversion of stored BSON values to entity field types."""

import logging
import types
from datetime import date, datetime, time, timezone, tzinfo
from decimal import Decimal
from typing import Any, Union, get_args, get_origin

from bson import ObjectId
from bson.decimal128 import Decimal128
from bson.errors import InvalidId

from .config import resolve_timezone

logger = logging.getLogger(__name__)

# Non-optional primitive targets never receive None.
_ZERO_VALUES: dict[type, Any] = {
    int: 0,
    float: 0.0,
    bool: False,
}

_COERCION_ERRORS = (ValueError, TypeError, ArithmeticError, InvalidId)


def unwrap_optional(target_type: Any) -> tuple[Any, bool]:
    """Strip None from an Optional/union annotation.

    Args:
        target_type: Annotation such as int, Optional[int] or int | None

    Returns:
        (inner type, True if None was part of the annotation). Unions of more
        than one non-None type are returned unchanged.
    """
    origin = get_origin(target_type)
    if origin is Union or origin is types.UnionType:
        args = get_args(target_type)
        non_none = [arg for arg in args if arg is not type(None)]
        optional = len(non_none) < len(args)
        if len(non_none) == 1:
            return non_none[0], optional
        return target_type, optional
    return target_type, False


class TypeCoercer:
    """Converts raw stored values into the types declared on entity fields.

    Stored timestamps are UTC (pymongo decodes them as naive UTC datetimes).
    Entity datetimes are local wall-clock values in ``default_timezone``.
    """

    def __init__(self, default_timezone: str | tzinfo | None = None):
        """Initialize the coercer.

        Args:
            default_timezone: Zone for local date-times; UTC when omitted
        """
        self.default_timezone = resolve_timezone(default_timezone)

    def coerce(self, value: Any, target_type: Any) -> Any:
        """Convert value to target_type.

        Conversion failures are logged and yield None rather than raising.

        Args:
            value: Raw value read from a document
            target_type: Declared type of the destination field

        Returns:
            Converted value
        """
        target, optional = unwrap_optional(target_type)

        if value is None:
            if optional:
                return None
            return _ZERO_VALUES.get(target)

        concrete = get_origin(target) or target
        if concrete is Any or not isinstance(concrete, type):
            return value

        try:
            if concrete is datetime:
                converted = self._to_datetime(value)
                if converted is not None:
                    return converted
            elif concrete is date:
                converted = self._to_date(value)
                if converted is not None:
                    return converted

            if isinstance(value, concrete) and not (isinstance(value, bool) and concrete is not bool):
                return value

            if isinstance(value, Decimal128):
                value = value.to_decimal()
                if concrete is Decimal:
                    return value

            if concrete is str:
                return str(value)
            if concrete is bool:
                return str(value).strip().lower() == "true"
            if concrete is int:
                return int(str(value).strip())
            if concrete is float:
                return float(str(value).strip())
            if concrete is Decimal:
                return Decimal(str(value).strip())
            if concrete is ObjectId:
                return ObjectId(str(value))
        except _COERCION_ERRORS as e:
            logger.warning(
                "TypeCoercer: conversion failed %s -> %s, value %r: %s",
                type(value).__name__,
                getattr(concrete, "__name__", concrete),
                value,
                e,
            )
            return None

        return value

    def to_local(self, value: datetime) -> datetime:
        """Convert a stored timestamp to a naive local date-time."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(self.default_timezone).replace(tzinfo=None)

    def to_storage(self, value: Any) -> Any:
        """Convert a local date-time or date to the naive UTC form MongoDB stores.

        Naive values are read as wall-clock time in the default timezone; aware
        values keep their own offset. A date is stored as local midnight of that
        day. Anything else is returned unchanged.
        """
        if isinstance(value, date) and not isinstance(value, datetime):
            value = datetime.combine(value, time())
        if not isinstance(value, datetime):
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=self.default_timezone)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def _to_datetime(self, value: Any) -> datetime | None:
        if isinstance(value, datetime):
            return self.to_local(value)
        if isinstance(value, str):
            parsed = datetime.fromisoformat(value.strip())
            if parsed.tzinfo is not None:
                return self.to_local(parsed)
            return parsed
        if isinstance(value, date):
            return datetime.combine(value, time())
        return None

    def _to_date(self, value: Any) -> date | None:
        if isinstance(value, datetime):
            return self.to_local(value).date()
        if isinstance(value, str):
            return date.fromisoformat(value.strip())
        return None
