"""
Exception classes for entity mapping and SQL execution.
"""
import sqlite3

import psycopg


class DormError(Exception):
    """Base class for all dorm errors.
    """


class SchemaError(DormError):
    """Entity type cannot be described as a table.

    Raised for types with zero or several primary keys, or with no mappable
    fields at all.
    """


class TypeMappingError(DormError):
    """A field value cannot be bound to a statement or read from a row.
    """


class SqlSupportError(DormError):
    """Wraps a non-store failure raised while executing a query helper.

    The original exception is always available as ``__cause__``.
    """


# Errors raised by the drivers themselves. These are never wrapped.
StoreError = (
    psycopg.Error,
    sqlite3.Error,
    )

IntegrityError = (
    psycopg.IntegrityError,
    sqlite3.IntegrityError,
    )

ProgrammingError = (
    psycopg.ProgrammingError,
    sqlite3.ProgrammingError,
    )

OperationalError = (
    psycopg.OperationalError,
    sqlite3.OperationalError,
    )
