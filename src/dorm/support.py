"""
Query helpers for hand-written SQL.

Each helper opens a statement on the caller's connection, lets a binding
callback set its parameters, executes it and hands every row to a mapping
callback::

    support = SqlSupport()
    names = support.query_list(
        cn, 'select name from widget where score > ?',
        lambda stmt: stmt.set_int(1, 10),
        simple_mapping(lambda rs: rs.get(1)))

Store errors propagate unchanged. Anything else raised while the statement is
open, callbacks included, is wrapped in ``SqlSupportError``.
"""
import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from dorm.exceptions import SqlSupportError, StoreError
from dorm.options import DormOptions
from dorm.statement import ResultSet, Statement

logger = logging.getLogger(__name__)

__all__ = ['SqlSupport', 'Builder', 'simple_mapping']

T = TypeVar('T')
K = TypeVar('K')

StatementBinding = Callable[[Statement], None]
ResultMapping = Callable[[ResultSet, int], T]

# Postgres returns the whole inserted row; the key is read from column 1
ALL_COLUMNS = '*'


def simple_mapping(fn: Callable[[ResultSet], T]) -> ResultMapping:
    """Adapt a mapping that does not need the row number.

    >>> mapping = simple_mapping(lambda rs: rs.get(1))
    >>> rs = ResultSet.from_rows([(7,)])
    >>> rs.next()
    True
    >>> mapping(rs, 0)
    7
    """
    def mapping(rs: ResultSet, index: int) -> T:
        return fn(rs)
    return mapping


def _require(**kwargs: Any) -> None:
    for name, value in kwargs.items():
        if value is None:
            raise ValueError(f'{name} must not be None')


class SqlSupport:
    """Executes SQL with binding and mapping callbacks.

    Args:
        options: ``array_support=False`` expands collections bound with
            ``Statement.set_array`` into one placeholder per element;
            ``None`` leaves it to the store strategy of the connection
    """

    def __init__(self, options: DormOptions | None = None) -> None:
        self.options = options or DormOptions()

    def _statement(self, cn: Any, sql: str, return_key: str | None = None) -> Statement:
        return Statement(cn, sql, return_key=return_key,
                         expand_arrays=not self.options.uses_arrays(cn))

    def _run(self, cn: Any, sql: str, binding: StatementBinding | None,
             work: Callable[[Statement], T], return_key: str | None = None) -> T:
        try:
            with self._statement(cn, sql, return_key) as stmt:
                if binding is not None:
                    binding(stmt)
                return work(stmt)
        except StoreError:
            raise
        except Exception as err:
            raise SqlSupportError(f'{type(err).__name__} while executing: {sql}') from err

    def query(self, cn: Any, sql: str, binding: StatementBinding | None,
              mapping: ResultMapping) -> Any:
        """Map the first row of a query.

        Returns
            Mapped first row, or None when the query returns no rows
        """
        _require(connection=cn, sql=sql, mapping=mapping)

        def work(stmt: Statement) -> Any:
            with stmt.execute_query() as rs:
                return mapping(rs, 0) if rs.next() else None
        return self._run(cn, sql, binding, work)

    def query_list(self, cn: Any, sql: str, binding: StatementBinding | None,
                   mapping: ResultMapping) -> list:
        """Map every row of a query, in row order.
        """
        _require(connection=cn, sql=sql, mapping=mapping)

        def work(stmt: Statement) -> list:
            with stmt.execute_query() as rs:
                return [mapping(rs, i) for i, _ in enumerate(rs)]
        return self._run(cn, sql, binding, work)

    def query_map(self, cn: Any, sql: str, binding: StatementBinding | None,
                  result_mapping: ResultMapping, key_mapping: ResultMapping) -> dict:
        """Map every row of a query into a dict keyed by ``key_mapping``.

        Later rows replace earlier rows with the same key.
        """
        _require(connection=cn, sql=sql, result_mapping=result_mapping,
                 key_mapping=key_mapping)

        def work(stmt: Statement) -> dict:
            result = {}
            with stmt.execute_query() as rs:
                for i, _ in enumerate(rs):
                    result[key_mapping(rs, i)] = result_mapping(rs, i)
            return result
        return self._run(cn, sql, binding, work)

    def update(self, cn: Any, sql: str, binding: StatementBinding | None = None) -> int:
        """Execute an INSERT, UPDATE or DELETE.

        Returns
            Row count reported by the driver
        """
        _require(connection=cn, sql=sql)
        return self._run(cn, sql, binding, lambda stmt: stmt.execute_update())

    def insert(self, cn: Any, sql: str, binding: StatementBinding | None = None,
               key_column: str | None = None) -> Any:
        """Execute a single-row INSERT and return the generated key.

        On PostgreSQL the statement gets ``RETURNING <key_column>``, or
        ``RETURNING *`` without one, and the first returned column is the key.
        On SQLite the key is the inserted row id.

        Returns
            Generated key, or None when the store reports none
        """
        _require(connection=cn, sql=sql)

        def work(stmt: Statement) -> Any:
            stmt.execute_update()
            with stmt.generated_keys() as rs:
                if not rs.next():
                    logger.debug(f'No generated key for: {sql}')
                    return None
                return rs.get(1)
        return self._run(cn, sql, binding, work, return_key=key_column or ALL_COLUMNS)

    def builder(self, sql: str) -> 'Builder':
        """Start a fluent call chain for ``sql``.

        >>> support = SqlSupport()
        >>> b = support.builder('select 1').result_mapping(simple_mapping(lambda rs: rs.get(1)))
        >>> b.binding is None
        True
        """
        _require(sql=sql)
        return Builder(self, sql)


@dataclass(frozen=True)
class Builder:
    """Immutable call chain over ``SqlSupport``.

    Each configuration method returns a new builder; terminal ``execute_*``
    calls run the statement on a connection.
    """
    support: SqlSupport
    sql: str
    binding: StatementBinding | None = None
    mapping: ResultMapping | None = None
    keys: ResultMapping | None = None

    def statement_binding(self, binding: StatementBinding) -> 'Builder':
        return dataclasses.replace(self, binding=binding)

    def result_mapping(self, mapping: ResultMapping) -> 'Builder':
        return dataclasses.replace(self, mapping=mapping)

    def key_mapping(self, mapping: ResultMapping) -> 'Builder':
        return dataclasses.replace(self, keys=mapping)

    def execute_update(self, cn: Any) -> int:
        return self.support.update(cn, self.sql, self.binding)

    def execute_insert(self, cn: Any, key_column: str | None = None) -> Any:
        return self.support.insert(cn, self.sql, self.binding, key_column)

    def execute_query(self, cn: Any) -> Any:
        return self.support.query(cn, self.sql, self.binding, self.mapping)

    def execute_query_list(self, cn: Any) -> list:
        return self.support.query_list(cn, self.sql, self.binding, self.mapping)

    def execute_query_mapped(self, cn: Any) -> dict:
        return self.support.query_map(cn, self.sql, self.binding, self.mapping, self.keys)


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
