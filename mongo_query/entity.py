# SPDX-License-Identifier: MIT
# Copyright (c) 2025 mongo-query contributors

"""Declarative mapping between MongoDB documents and dataclass entities.

Entities are plain dataclasses whose mapped fields are declared with
:func:`column`::

    @dataclass
    class SimInfo:
        sim_iccid: str | None = column("sim_iccid", desc="ICCID")
        create_time: datetime | None = column("create_time", desc="Created at")

The mapping table is built once per entity type and reused by both directions.
"""

import dataclasses
import functools
import logging
import typing
from dataclasses import dataclass
from typing import Any, TypeVar

from .coercion import TypeCoercer
from .errors import EntityConversionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

COLUMN_METADATA_KEY = "column"
DESC_METADATA_KEY = "desc"


def column(name: str, desc: str = "", default: Any = None, **kwargs: Any) -> Any:
    """Declare a dataclass field stored under the given column name.

    Args:
        name: Column (key) name in the stored document
        desc: Human-readable description of the column
        default: Field default; None unless given
        **kwargs: Passed through to dataclasses.field

    Returns:
        A dataclasses.field carrying the column metadata
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[COLUMN_METADATA_KEY] = name
    metadata[DESC_METADATA_KEY] = desc
    if "default_factory" in kwargs:
        return dataclasses.field(metadata=metadata, **kwargs)
    return dataclasses.field(default=default, metadata=metadata, **kwargs)


@dataclass(frozen=True)
class ColumnMapping:
    """One mapped field of an entity type."""
    field_name: str
    column: str
    desc: str
    field_type: Any


@functools.lru_cache(maxsize=None)
def get_column_mappings(entity_type: type) -> tuple[ColumnMapping, ...]:
    """Return the column mappings declared on an entity type, in declaration order.

    Raises:
        EntityConversionError: If entity_type is not a dataclass
    """
    if not (isinstance(entity_type, type) and dataclasses.is_dataclass(entity_type)):
        raise EntityConversionError(f"{entity_type!r} is not a dataclass entity type")

    try:
        hints = typing.get_type_hints(entity_type)
    except (NameError, TypeError) as e:
        raise EntityConversionError(
            f"Cannot resolve field types of {entity_type.__name__}: {e}"
        ) from e

    mappings = []
    for f in dataclasses.fields(entity_type):
        column_name = f.metadata.get(COLUMN_METADATA_KEY)
        if not column_name:
            continue
        mappings.append(
            ColumnMapping(
                field_name=f.name,
                column=column_name,
                desc=f.metadata.get(DESC_METADATA_KEY, ""),
                field_type=hints.get(f.name, Any),
            )
        )
    return tuple(mappings)


class EntityMapper:
    """Converts documents to entities and back using declared column mappings."""

    def __init__(self, coercer: TypeCoercer | None = None):
        self.coercer = coercer or TypeCoercer()

    def to_entity(self, document: dict[str, Any] | None, entity_type: type[T]) -> T | None:
        """Convert a document to an instance of entity_type.

        Columns missing from the document, or stored as null, leave the field
        at its default.

        Args:
            document: Document read from MongoDB
            entity_type: Dataclass type to build

        Returns:
            Entity instance, or None if document is None

        Raises:
            EntityConversionError: If the entity cannot be instantiated or assigned
        """
        if document is None:
            return None

        mappings = get_column_mappings(entity_type)
        try:
            entity = entity_type()
        except TypeError as e:
            raise EntityConversionError(
                f"Document conversion failed: {entity_type.__name__} cannot be created without arguments"
            ) from e
        except Exception as e:
            raise EntityConversionError(
                f"Document conversion failed: creating {entity_type.__name__} raised {type(e).__name__}: {e}"
            ) from e

        for mapping in mappings:
            value = document.get(mapping.column)
            if value is None:
                continue
            converted = self.coercer.coerce(value, mapping.field_type)
            try:
                setattr(entity, mapping.field_name, converted)
            except (AttributeError, TypeError) as e:
                raise EntityConversionError(
                    f"Document conversion failed: cannot set {entity_type.__name__}.{mapping.field_name}"
                ) from e

        return entity

    def to_document(self, entity: Any) -> dict[str, Any] | None:
        """Convert an entity to a document.

        Fields whose value is None are left out of the document entirely, so a
        partial entity never overwrites stored columns with null.

        Args:
            entity: Dataclass instance

        Returns:
            Document keyed by column name, or None if entity is None

        Raises:
            EntityConversionError: If entity is not a dataclass instance
        """
        if entity is None:
            return None

        document: dict[str, Any] = {}
        for mapping in get_column_mappings(type(entity)):
            try:
                value = getattr(entity, mapping.field_name)
            except AttributeError as e:
                raise EntityConversionError(
                    f"Entity conversion failed: cannot read {type(entity).__name__}.{mapping.field_name}"
                ) from e
            if value is not None:
                document[mapping.column] = self.coercer.to_storage(value)
        return document
