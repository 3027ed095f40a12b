"""
Entity operations: select, bulk select, insert, update and delete.

``Dorm`` ties the pieces together for each call::

    entity type -> descriptor -> template -> bound statement -> rows -> entities

Operations never commit or roll back; transaction boundaries belong to the
caller. Store errors propagate unchanged. Each statement and result set is
closed before the operation returns.
"""
import logging
from collections.abc import Iterable
from typing import Any, TypeVar

from dorm import types
from dorm.entity import new_instance, read_field
from dorm.options import DormOptions
from dorm.schema import TableData, describe
from dorm.sql_generation import SqlGenerator
from dorm.statement import Statement

logger = logging.getLogger(__name__)

__all__ = ['Dorm']

T = TypeVar('T')


def _materialize(rs: Any, cls: type[T], descriptor: TableData) -> T:
    entity = new_instance(cls, descriptor)
    for field in descriptor.all_fields:
        types.set_field(rs, field, entity)
    return entity


class Dorm:
    """Maps entity instances to rows of their table.

    Args:
        options: Mapping options; ``array_support=False`` makes ``select_many``
            expand its keys into ``IN (?, ?, ...)`` for stores without array
            parameters; ``None`` follows the store strategy of each connection

    >>> from dataclasses import dataclass
    >>> import sqlite3
    >>> from dorm.schema import column
    >>> @dataclass
    ... class Widget:
    ...     id: int | None = column(primary_key=True, default=None)
    ...     name: str = ''
    >>> cn = sqlite3.connect(':memory:')
    >>> _ = cn.execute('create table widget (id integer primary key, name text)')
    >>> orm = Dorm(DormOptions(array_support=False))
    >>> saved = orm.insert(cn, Widget(name='spanner'))
    >>> saved.id
    1
    >>> orm.select(cn, 1, Widget)
    Widget(id=1, name='spanner')
    >>> orm.select(cn, 2, Widget) is None
    True
    """

    def __init__(self, options: DormOptions | None = None) -> None:
        self.options = options or DormOptions()
        self.generator = SqlGenerator(quote=self.options.quote_identifiers)

    def __repr__(self) -> str:
        return f'Dorm({self.options!r})'

    def select(self, cn: Any, key: Any, cls: type[T]) -> T | None:
        """Load the entity of type ``cls`` with primary key ``key``.

        Returns
            The entity, or None when no row matches
        """
        descriptor = describe(cls)
        template = self.generator.select_by_key(descriptor)
        with Statement(cn, template.sql) as stmt:
            types.set_parameter(stmt, key, 1)
            with stmt.execute_query() as rs:
                if not rs.next():
                    logger.debug(f'No {cls.__name__} with key {key!r}')
                    return None
                return _materialize(rs, cls, descriptor)

    def select_many(self, cn: Any, keys: Iterable[Any], cls: type[T]) -> list[T]:
        """Load every entity of type ``cls`` whose key is in ``keys``.

        Duplicate keys are removed before binding, so the result holds at most
        one entity per distinct key, in the order the store returns them.
        """
        distinct = set(keys)
        if not distinct:
            return []
        descriptor = describe(cls)
        array_support = self.options.uses_arrays(cn)
        template = self.generator.bulk_select_by_keys(descriptor, array_support)
        with Statement(cn, template.sql, expand_arrays=not array_support) as stmt:
            types.set_array_parameter(stmt, distinct, 1)
            with stmt.execute_query() as rs:
                result = [_materialize(row, cls, descriptor) for row in rs]
        logger.debug(f'Selected {len(result)} {cls.__name__} rows for {len(distinct)} keys')
        return result

    def insert(self, cn: Any, entity: T) -> T | None:
        """Insert ``entity``.

        A key counts as provided only when the key field is nullable and set;
        a non-nullable primitive key is always left to the store.

        Returns
            ``entity`` itself when the key was provided; otherwise a new
            instance holding the generated key and the other field values of
            ``entity``, or None if the store returned no key
        """
        cls = type(entity)
        descriptor = describe(cls)
        pk = descriptor.primary_key
        key_provided = pk.nullable and read_field(entity, pk) is not None
        template = self.generator.insert(descriptor, key_provided)
        return_key = None if key_provided else self.generator.identifier(pk.column)

        with Statement(cn, template.sql, return_key=return_key) as stmt:
            fields = descriptor.all_fields if key_provided else descriptor.columns
            for index, field in enumerate(fields, 1):
                types.set_field_parameter(stmt, field, entity, index)
            stmt.execute_update()
            if key_provided:
                return entity

            with stmt.generated_keys() as rs:
                if not rs.next():
                    logger.warning(f'Insert into {descriptor.table} returned no generated key')
                    return None
                result = new_instance(cls, descriptor)
                types.extract_key(rs, pk, result)
        for field in descriptor.columns:
            types.copy_field(field, result, entity)
        return result

    def update(self, cn: Any, entity: Any) -> int:
        """Write every column of ``entity`` to the row with its key.

        Returns
            Row count reported by the driver
        """
        descriptor = describe(type(entity))
        template = self.generator.update(descriptor)
        with Statement(cn, template.sql) as stmt:
            index = 0
            for index, field in enumerate(descriptor.columns, 1):
                types.set_field_parameter(stmt, field, entity, index)
            types.set_field_parameter(stmt, descriptor.primary_key, entity, index + 1)
            return stmt.execute_update()

    def delete(self, cn: Any, key: Any, cls: type) -> int:
        """Delete the row of ``cls`` with primary key ``key``.

        Returns
            Row count reported by the driver
        """
        descriptor = describe(cls)
        template = self.generator.delete_by_key(descriptor)
        with Statement(cn, template.sql) as stmt:
            types.set_parameter(stmt, key, 1)
            return stmt.execute_update()


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
