# SPDX-License-Identifier: MIT
# Copyright (c) 2025 mongo-query contributors

"""Shared fixtures for mongo_query tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest

from mongo_query import MongoQueryClient, column


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that need a running MongoDB server")


@dataclass
class SimInfo:
    """Entity used across the tests."""

    sim_iccid: Optional[str] = column("sim_iccid", desc="ICCID")
    sim_status: Optional[str] = column("sim_status", desc="SIM status")
    traffic_mb: int = column("traffic_mb", desc="Traffic used", default=0)
    retry_count: int = column("retry_count", desc="Sync retries", default=3)
    create_time: Optional[datetime] = column("create_time", desc="Created at")
    note: str = "not stored"


class FakeCursor:
    """Stand-in for a pymongo cursor that records chained calls and closing."""

    def __init__(self, documents: list[dict[str, Any]] | None = None, error: Exception | None = None):
        self._documents = iter(documents or [])
        self._error = error
        self.calls: list[tuple[str, Any]] = []
        self.closed = False

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __iter__(self) -> "FakeCursor":
        return self

    def __next__(self) -> dict[str, Any]:
        if self._error is not None:
            raise self._error
        return next(self._documents)

    def sort(self, spec):
        self.calls.append(("sort", spec))
        return self

    def skip(self, count):
        self.calls.append(("skip", count))
        return self

    def limit(self, count):
        self.calls.append(("limit", count))
        return self

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def collection():
    """Mock pymongo collection."""
    coll = MagicMock(name="collection")
    coll.full_name = "iot.sim_info"
    return coll


@pytest.fixture
def client():
    """Unconnected client; query methods only use the collection handed to them."""
    return MongoQueryClient("mongodb://localhost:27017")
