# SPDX-License-Identifier: MIT
# Copyright (c) 2025 mongo-query contributors

"""MongoDB client executing MongoQuery operations."""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone, tzinfo
from typing import Any, Iterable, Iterator, Mapping, TypeVar

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.cursor import Cursor
from pymongo.database import Database
from pymongo.errors import PyMongoError
from pymongo.results import BulkWriteResult, DeleteResult, InsertManyResult, InsertOneResult, UpdateResult

from .aggregations import normalize_sort
from .coercion import TypeCoercer
from .config import CREATE_TIME_FIELD, UPDATE_TIME_FIELD, MongoQueryConfig
from .entity import EntityMapper
from .errors import MongoQueryConnectionError, NotConnectedError, QueryConfigurationError
from .introspection import to_aggregations_json
from .pipeline import (
    TOTAL_GROUPS_FIELD,
    build_count_pipeline,
    build_group_pipeline,
    build_left_outer_join_pipeline,
)
from .query import MongoQuery

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MongoQueryClient:
    """Runs counts, finds, grouped queries and left outer joins described by MongoQuery.

    The client owns one pymongo.MongoClient, acquired by connect() and
    released by close(). It can also be used as a context manager::

        with MongoQueryClient("mongodb://localhost:27017") as client:
            sims = client.get_collection(client.get_database("iot"), "sim_info")
            rows = client.group(MongoQuery(sims).set_group_field("sim_status").set_total_name("count"))
    """

    @classmethod
    def from_config(cls, config: MongoQueryConfig) -> "MongoQueryClient":
        """Create a MongoQueryClient from configuration.

        Args:
            config: Connection and mapping settings

        Returns:
            Configured (not yet connected) MongoQueryClient instance

        Raises:
            ValueError: If the configured timezone is unknown
        """
        return cls(
            uri=config.uri,
            default_timezone=config.tzinfo,
            create_time_field=config.create_time_field,
            update_time_field=config.update_time_field,
            **config.client_options,
        )

    def __init__(
        self,
        uri: str,
        default_timezone: str | tzinfo | None = None,
        create_time_field: str = CREATE_TIME_FIELD,
        update_time_field: str = UPDATE_TIME_FIELD,
        **client_options: Any,
    ):
        """Initialize the client.

        Args:
            uri: MongoDB connection string (required)
            default_timezone: Zone for local date-times on entities; UTC when omitted
            create_time_field: Column stamped only when a document is inserted
            update_time_field: Column stamped on every write
            **client_options: Additional pymongo.MongoClient options

        Raises:
            ValueError: If uri is empty or the timezone is unknown
        """
        if not uri:
            raise ValueError(
                "MongoDB uri is required. "
                "Provide a connection string such as mongodb://host:27017."
            )

        self.uri = uri
        self.client_options = client_options
        self.create_time_field = create_time_field
        self.update_time_field = update_time_field
        self.coercer = TypeCoercer(default_timezone)
        self.mapper = EntityMapper(self.coercer)
        self.client: MongoClient | None = None

    def __enter__(self) -> "MongoQueryClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def connect(self) -> None:
        """Connect to MongoDB and verify the server responds.

        Raises:
            MongoQueryConnectionError: If the uri or options are invalid or the server cannot be reached
        """
        if self.client is not None:
            return

        client = None
        try:
            client = MongoClient(self.uri, **self.client_options)
            client.admin.command("ping")
        except PyMongoError as e:
            if client is not None:
                client.close()
            logger.error("MongoQueryClient: connection failed - %s", e, exc_info=True)
            raise MongoQueryConnectionError("Failed to connect to MongoDB") from e
        except Exception as e:
            if client is not None:
                client.close()
            logger.error("MongoQueryClient: unexpected error during connect - %s", e, exc_info=True)
            raise MongoQueryConnectionError(f"Unexpected error connecting to MongoDB: {str(e)}") from e

        self.client = client
        logger.info("MongoQueryClient: connected")

    def close(self) -> None:
        """Release the MongoDB client."""
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.info("MongoQueryClient: closed")

    def get_database(self, database_name: str) -> Database:
        """Return a database handle.

        Raises:
            NotConnectedError: If connect() has not been called
        """
        if self.client is None:
            raise NotConnectedError("Not connected to MongoDB")
        return self.client[database_name]

    def get_collection(self, database: Database | str, collection_name: str) -> Collection:
        """Return a collection handle from a database handle or database name."""
        if isinstance(database, str):
            database = self.get_database(database)
        return database[collection_name]

    def to_aggregations_json(self, pipeline: Iterable[Mapping[str, Any]]) -> str:
        """Render a pipeline as relaxed Extended JSON for debugging."""
        return to_aggregations_json(pipeline)

    def to_entity(self, document: Mapping[str, Any] | None, entity_type: type[T]) -> T | None:
        return self.mapper.to_entity(document, entity_type)

    def to_document(self, entity: Any) -> dict[str, Any] | None:
        return self.mapper.to_document(entity)

    # Queries

    def count(self, query: MongoQuery) -> int:
        """Count matching documents, or matching groups when group_fields is set."""
        q = query.snapshot()
        collection = _collection_of(q)

        with _logged_failure("count", q.namespace):
            if not q.group_fields:
                return collection.count_documents(q.filter)

            pipeline = build_count_pipeline(q)
            self._log_pipeline(q, pipeline)
            with collection.aggregate(pipeline) as cursor:
                result = next(cursor, None)

        if result is None:
            return 0
        return int(result[TOTAL_GROUPS_FIELD])

    def find(self, query: MongoQuery, entity_type: type[T] | None = None) -> Iterator[Any]:
        """Find documents matching the query filter.

        Projection, sort, skip and limit are applied in that order when set.
        The returned iterator is lazy and single-use; the server cursor is
        closed when it is exhausted or when the iterator is closed.

        Args:
            query: Query to run
            entity_type: Dataclass to convert each document to; raw documents when None

        Returns:
            Iterator over documents or entities
        """
        q = query.snapshot()
        collection = _collection_of(q)

        cursor = collection.find(q.filter, projection=q.projection)
        if q.sort is not None:
            cursor = cursor.sort(list(normalize_sort(q.sort).items()))
        if q.skip is not None:
            cursor = cursor.skip(q.skip)
        if q.limit is not None:
            cursor = cursor.limit(q.limit)

        logger.debug(
            "MongoQueryClient: find on %s filter=%s projection=%s sort=%s skip=%s limit=%s",
            q.namespace, q.filter, q.projection, q.sort, q.skip, q.limit,
        )
        return self._iterate(cursor, q.namespace, entity_type)

    def find_first(self, query: MongoQuery, entity_type: type[T] | None = None) -> Any:
        """Return the first matching document (or entity), or None."""
        q = query.snapshot()
        collection = _collection_of(q)

        sort = list(normalize_sort(q.sort).items()) if q.sort is not None else None
        with _logged_failure("find_first", q.namespace):
            document = collection.find_one(q.filter, projection=q.projection, sort=sort)
        return self._convert(document, entity_type)

    def group(self, query: MongoQuery) -> list[dict[str, Any]]:
        """Run a grouped query and return one document per group.

        Raises:
            QueryConfigurationError: If the query has no group fields
        """
        q = query.snapshot()
        collection = _collection_of(q)
        pipeline = build_group_pipeline(q)
        return self._aggregate(collection, q, pipeline)

    def left_outer_join(self, query: MongoQuery) -> list[dict[str, Any]]:
        """Join right-side documents into each matching left document.

        Raises:
            QueryConfigurationError: If the join settings are incomplete
        """
        q = query.snapshot()
        collection = _collection_of(q)
        pipeline = build_left_outer_join_pipeline(q)
        return self._aggregate(collection, q, pipeline)

    # Writes

    def insert_one(self, collection: Collection, data: Mapping[str, Any]) -> InsertOneResult:
        """Insert a document stamped with create and update times."""
        with _logged_failure("insert_one", collection.full_name):
            return collection.insert_one(self._stamped(data))

    def insert_one_entity(self, collection: Collection, entity: Any) -> InsertOneResult:
        with _logged_failure("insert_one", collection.full_name):
            return collection.insert_one(self._stamped_entity(entity))

    def insert_many(self, collection: Collection, data_list: Iterable[Mapping[str, Any]]) -> InsertManyResult:
        documents = [self._stamped(data) for data in data_list]
        with _logged_failure("insert_many", collection.full_name):
            return collection.insert_many(documents)

    def insert_many_entity(self, collection: Collection, entities: Iterable[Any]) -> InsertManyResult:
        documents = [self._stamped_entity(entity) for entity in entities]
        with _logged_failure("insert_many", collection.full_name):
            return collection.insert_many(documents)

    def save_or_update(
        self,
        collection: Collection,
        filter_dict: Mapping[str, Any],
        data: Mapping[str, Any] | None,
        force_update: bool = False,
    ) -> UpdateResult:
        """Upsert every document matching the filter.

        The create time is written only when a document is inserted; the update
        time is written every time.

        Without force_update, None values are skipped, strings are stripped and
        blank strings are skipped, so an empty string can never overwrite a
        stored value. With force_update every key is written as given.

        Args:
            collection: Target collection
            filter_dict: Documents to update
            data: Column values to write
            force_update: Write None and blank values too

        Returns:
            pymongo UpdateResult
        """
        now = _now()
        set_fields: dict[str, Any] = {self.update_time_field: now}

        for key, value in (data or {}).items():
            if key in (self.create_time_field, self.update_time_field):
                continue
            if force_update:
                set_fields[key] = value
            elif value is None:
                continue
            elif isinstance(value, str):
                stripped = value.strip()
                if stripped:
                    set_fields[key] = stripped
            else:
                set_fields[key] = value

        update = {
            "$setOnInsert": {self.create_time_field: now},
            "$set": set_fields,
        }
        with _logged_failure("save_or_update", collection.full_name):
            return collection.update_many(dict(filter_dict), update, upsert=True)

    def save_or_update_entity(
        self,
        collection: Collection,
        filter_dict: Mapping[str, Any],
        entity: Any,
        force_update: bool = False,
    ) -> UpdateResult:
        """Upsert from an entity; fields that are None on the entity are never written."""
        return self.save_or_update(collection, filter_dict, self.to_document(entity), force_update)

    def delete(self, collection: Collection, filter_dict: Mapping[str, Any]) -> DeleteResult:
        """Delete every document matching the filter."""
        with _logged_failure("delete", collection.full_name):
            return collection.delete_many(dict(filter_dict))

    def bulk_write(self, collection: Collection, requests: Iterable[Any]) -> BulkWriteResult:
        requests = list(requests)
        with _logged_failure("bulk_write", collection.full_name):
            return collection.bulk_write(requests)

    # Internals

    def _aggregate(
        self, collection: Collection, q: MongoQuery, pipeline: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        self._log_pipeline(q, pipeline)
        with _logged_failure("aggregate", q.namespace):
            with collection.aggregate(pipeline) as cursor:
                results = list(cursor)
        logger.debug("MongoQueryClient: aggregation on %s returned %d documents", q.namespace, len(results))
        return results

    def _iterate(self, cursor: Cursor, namespace: str, entity_type: type[T] | None) -> Iterator[Any]:
        with _logged_failure("find", namespace):
            with cursor:
                for document in cursor:
                    yield self._convert(document, entity_type)

    def _convert(self, document: Mapping[str, Any] | None, entity_type: type[T] | None) -> Any:
        if entity_type is None or entity_type is dict:
            return document
        return self.mapper.to_entity(document, entity_type)

    def _log_pipeline(self, q: MongoQuery, pipeline: list[dict[str, Any]]) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Aggregation pipeline %s: %s", q.namespace, to_aggregations_json(pipeline))

    def _stamped(self, data: Mapping[str, Any]) -> dict[str, Any]:
        now = _now()
        document = {self.create_time_field: now, self.update_time_field: now}
        document.update(data)
        return document

    def _stamped_entity(self, entity: Any) -> dict[str, Any]:
        now = _now()
        document = self.to_document(entity) or {}
        document[self.create_time_field] = now
        document[self.update_time_field] = now
        return document


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _collection_of(q: MongoQuery) -> Collection:
    if q.collection is None:
        raise QueryConfigurationError("MongoQuery has no collection")
    return q.collection


@contextmanager
def _logged_failure(operation: str, namespace: str) -> Iterator[None]:
    """Log a failed store call and re-raise it unchanged."""
    try:
        yield
    except PyMongoError as e:
        logger.error("MongoQueryClient: %s on %s failed - %s", operation, namespace, e, exc_info=True)
        raise
