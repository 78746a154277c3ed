# SPDX-License-Identifier: MIT
# Copyright (c) 2025 mongo-query contributors

"""Exceptions raised by the query layer."""


class MongoQueryError(Exception):
    """Base exception for query layer errors."""
    pass


class MongoQueryConnectionError(MongoQueryError):
    """Exception raised when connection to MongoDB fails."""
    pass


class NotConnectedError(MongoQueryError):
    """Exception raised when the client is used before connect() or after close()."""
    pass


class QueryConfigurationError(MongoQueryError, ValueError):
    """Exception raised when a MongoQuery is missing settings an operation needs."""
    pass


class EntityConversionError(MongoQueryError):
    """Exception raised when a document cannot be converted to or from an entity.

    Raised for the whole record: an entity type that cannot be instantiated
    without arguments, rejects attribute assignment, or is not a dataclass.
    """
    pass
