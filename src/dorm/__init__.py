"""
Entity mapping for PostgreSQL and SQLite over DB-API connections.

Entity operations can be called either as:
- Module functions: dorm.select(cn, key, Widget)
- Dorm methods: Dorm(options).select(cn, key, Widget)

The module functions use a default ``Dorm`` (array-typed bulk select,
unquoted identifiers).
"""
__version__ = '0.1.0'

from collections.abc import Iterable
from typing import Any, TypeVar

from dorm.connection import ConnectionWrapper, connect
from dorm.exceptions import DormError, IntegrityError, OperationalError
from dorm.exceptions import ProgrammingError, SchemaError, SqlSupportError
from dorm.exceptions import StoreError, TypeMappingError
from dorm.options import DatabaseOptions, DormOptions
from dorm.orm import Dorm
from dorm.schema import ColumnSpec, TableData, column, describe
from dorm.sql_generation import SqlGenerator, SqlTemplate
from dorm.statement import ResultSet, Statement, prepare
from dorm.support import SqlSupport, simple_mapping
from dorm.types import SqlType, TypeMapping, get_registry

T = TypeVar('T')

_default = Dorm()


def select(cn: Any, key: Any, cls: type[T]) -> T | None:
    """Load one entity by primary key, or None when no row matches.
    """
    return _default.select(cn, key, cls)


def select_many(cn: Any, keys: Iterable[Any], cls: type[T]) -> list[T]:
    """Load the entities for a collection of primary keys.

    Binds the keys as one array parameter; use
    ``Dorm(DormOptions(array_support=False))`` on SQLite.
    """
    return _default.select_many(cn, keys, cls)


def insert(cn: Any, entity: T) -> T | None:
    """Insert an entity, returning it with its key populated.
    """
    return _default.insert(cn, entity)


def update(cn: Any, entity: Any) -> int:
    """Update the row of an entity by its key.
    """
    return _default.update(cn, entity)


def delete(cn: Any, key: Any, cls: type) -> int:
    """Delete the row of ``cls`` with the given key.
    """
    return _default.delete(cn, key, cls)


__all__ = [
    'ColumnSpec',
    'ConnectionWrapper',
    'DatabaseOptions',
    'Dorm',
    'DormError',
    'DormOptions',
    'IntegrityError',
    'OperationalError',
    'ProgrammingError',
    'ResultSet',
    'SchemaError',
    'SqlGenerator',
    'SqlSupport',
    'SqlSupportError',
    'SqlTemplate',
    'SqlType',
    'Statement',
    'StoreError',
    'TableData',
    'TypeMapping',
    'TypeMappingError',
    'column',
    'connect',
    'delete',
    'describe',
    'get_registry',
    'insert',
    'prepare',
    'select',
    'select_many',
    'simple_mapping',
    'update',
]
