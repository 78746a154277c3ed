# SPDX-License-Identifier: MIT
# Copyright (c) 2025 mongo-query contributors

"""Tests for entity declarations and EntityMapper."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import bson
import pytest
from conftest import SimInfo

from mongo_query import EntityConversionError, EntityMapper, TypeCoercer, column, get_column_mappings

UTC_PLUS_8 = timezone(timedelta(hours=8))


@dataclass
class Tagged:
    name: Optional[str] = column("name")
    tags: list = column("tags", desc="Labels", default_factory=list)


@dataclass
class NeedsArguments:
    ident: str
    name: Optional[str] = column("name")


@dataclass(frozen=True)
class FrozenSim:
    sim_iccid: Optional[str] = column("sim_iccid")


@dataclass
class Activation:
    sim_iccid: Optional[str] = column("sim_iccid")
    activated_on: Optional[date] = column("activated_on")


@dataclass
class Validated:
    name: Optional[str] = column("name")

    def __post_init__(self):
        raise ValueError("name is required")


class NotAnEntity:
    pass


@pytest.fixture
def mapper():
    return EntityMapper()


class TestColumnDeclarations:
    """Tests for column() and get_column_mappings."""

    def test_mappings_in_declaration_order(self):
        """Test mapped fields are listed in order and unmapped fields skipped."""
        mappings = get_column_mappings(SimInfo)

        assert [m.column for m in mappings] == [
            "sim_iccid",
            "sim_status",
            "traffic_mb",
            "retry_count",
            "create_time",
        ]
        assert mappings[0].desc == "ICCID"
        assert mappings[2].field_type is int

    def test_mappings_are_cached(self):
        """Test the mapping table is built once per type."""
        assert get_column_mappings(SimInfo) is get_column_mappings(SimInfo)

    def test_default_factory(self):
        """Test column() supports default_factory."""
        assert Tagged().tags == []
        assert get_column_mappings(Tagged)[1].desc == "Labels"

    def test_non_dataclass_rejected(self):
        """Test a plain class cannot be used as an entity type."""
        with pytest.raises(EntityConversionError):
            get_column_mappings(NotAnEntity)


class TestToEntity:
    """Tests for EntityMapper.to_entity."""

    def test_converts_mapped_columns(self, mapper):
        """Test stored values are coerced into the declared field types."""
        created = datetime(2025, 1, 1, 10, 30)
        entity = mapper.to_entity(
            {"sim_iccid": "8986", "sim_status": "active", "traffic_mb": "12", "create_time": created, "other": 1},
            SimInfo,
        )

        assert entity.sim_iccid == "8986"
        assert entity.sim_status == "active"
        assert entity.traffic_mb == 12
        assert entity.create_time == created
        assert entity.note == "not stored"

    def test_absent_column_keeps_default(self, mapper):
        """Test missing columns leave field defaults untouched."""
        entity = mapper.to_entity({}, SimInfo)

        assert entity == SimInfo()

    def test_null_column_keeps_default(self, mapper):
        """Test null stored values leave the default instead of zeroing it."""
        entity = mapper.to_entity({"retry_count": None, "sim_status": None}, SimInfo)

        assert entity.retry_count == 3
        assert entity.sim_status is None

    def test_failed_coercion_sets_none(self, mapper):
        """Test a bad value only affects its own field."""
        entity = mapper.to_entity({"traffic_mb": "lots", "sim_iccid": "8986"}, SimInfo)

        assert entity.traffic_mb is None
        assert entity.sim_iccid == "8986"

    def test_timestamps_use_default_timezone(self):
        """Test stored UTC timestamps become local date-times."""
        mapper = EntityMapper(TypeCoercer(UTC_PLUS_8))

        entity = mapper.to_entity({"create_time": datetime(2025, 1, 1, 0, 0)}, SimInfo)

        assert entity.create_time == datetime(2025, 1, 1, 8, 0)

    def test_none_document(self, mapper):
        """Test None converts to None."""
        assert mapper.to_entity(None, SimInfo) is None

    def test_type_needing_arguments_fails(self, mapper):
        """Test entity types must be constructible without arguments."""
        with pytest.raises(EntityConversionError, match="without arguments"):
            mapper.to_entity({"name": "x"}, NeedsArguments)

    def test_failing_post_init_is_wrapped(self, mapper):
        """Test any error raised while creating the entity is wrapped."""
        with pytest.raises(EntityConversionError, match="ValueError") as exc_info:
            mapper.to_entity({"name": "x"}, Validated)

        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_frozen_type_fails(self, mapper):
        """Test assignment failures abort the whole record."""
        with pytest.raises(EntityConversionError, match="cannot set"):
            mapper.to_entity({"sim_iccid": "8986"}, FrozenSim)


class TestToDocument:
    """Tests for EntityMapper.to_document."""

    def test_none_fields_omitted(self, mapper):
        """Test None fields are left out rather than written as null."""
        document = mapper.to_document(SimInfo(sim_iccid="8986", traffic_mb=0))

        assert document == {"sim_iccid": "8986", "traffic_mb": 0, "retry_count": 3}
        assert "sim_status" not in document

    def test_column_order(self, mapper):
        """Test the document follows declaration order."""
        document = mapper.to_document(SimInfo(sim_status="active", sim_iccid="8986"))

        assert list(document) == ["sim_iccid", "sim_status", "traffic_mb", "retry_count"]

    def test_local_datetimes_stored_as_utc(self):
        """Test local date-times are converted back to UTC."""
        mapper = EntityMapper(TypeCoercer(UTC_PLUS_8))

        document = mapper.to_document(SimInfo(create_time=datetime(2025, 1, 1, 8, 0)))

        assert document["create_time"] == datetime(2025, 1, 1, 0, 0)

    def test_none_entity(self, mapper):
        """Test None converts to None."""
        assert mapper.to_document(None) is None

    def test_non_entity_rejected(self, mapper):
        """Test objects that are not dataclasses are rejected."""
        with pytest.raises(EntityConversionError):
            mapper.to_document(NotAnEntity())


class TestRoundTrip:
    """Tests for document -> entity -> document."""

    def test_round_trip_reproduces_document(self):
        """Test a document with every mapped column survives a round trip."""
        mapper = EntityMapper(TypeCoercer(UTC_PLUS_8))
        document = {
            "sim_iccid": "8986",
            "sim_status": "active",
            "traffic_mb": 12,
            "retry_count": 1,
            "create_time": datetime(2025, 1, 1, 0, 0),
        }

        assert mapper.to_document(mapper.to_entity(document, SimInfo)) == document

    def test_round_trip_with_date_field(self):
        """Test a date field is written back as the stored local midnight."""
        mapper = EntityMapper(TypeCoercer(UTC_PLUS_8))
        document = {"sim_iccid": "8986", "activated_on": datetime(2025, 1, 1, 16, 0)}

        entity = mapper.to_entity(document, Activation)

        assert entity.activated_on == date(2025, 1, 2)
        assert mapper.to_document(entity) == document

    def test_date_field_written_as_bson_datetime(self):
        """Test a date read from a timestamp can be encoded again."""
        mapper = EntityMapper(TypeCoercer(UTC_PLUS_8))

        entity = mapper.to_entity({"activated_on": datetime(2025, 1, 2, 3, 0)}, Activation)
        encoded = bson.encode(mapper.to_document(entity))

        assert bson.decode(encoded) == {"activated_on": datetime(2025, 1, 1, 16, 0)}
