"""
SQL template generation for the canonical entity operations.

Every template is a pure function of a ``TableData`` descriptor. Columns are
always listed in ``descriptor.columns`` order, which is also the order in which
the orchestrator binds parameters.
"""
import logging
from dataclasses import dataclass
from typing import Literal

from dorm.schema import TableData
from dorm.sql import quote_identifier

logger = logging.getLogger(__name__)

__all__ = ['SqlTemplate', 'SqlGenerator']


@dataclass(frozen=True)
class SqlTemplate:
    """Generated statement text plus how its parameters line up.

    ``key_position`` tells where the primary key is bound: ``'first'``,
    ``'last'``, or None when the key is not a parameter (auto-generated insert).
    ``returns_key`` is set on inserts that expect the store to generate the key.
    """
    sql: str
    operation: str
    key_position: Literal['first', 'last'] | None = 'first'
    returns_key: bool = False

    def __str__(self) -> str:
        return self.sql


class SqlGenerator:
    """Builds statements with ``?`` placeholders.

    Args:
        quote: Double-quote table and column names
    """

    def __init__(self, quote: bool = False) -> None:
        self.quote = quote

    def identifier(self, name: str) -> str:
        return quote_identifier(name) if self.quote else name

    def _projection(self, descriptor: TableData) -> str:
        return ', '.join(self.identifier(f.column) for f in descriptor.all_fields)

    def select_by_key(self, descriptor: TableData) -> SqlTemplate:
        """SELECT <pk>, <cols> FROM <table> WHERE <pk> = ?
        """
        pk = self.identifier(descriptor.primary_key.column)
        sql = (f'SELECT {self._projection(descriptor)} FROM {self.identifier(descriptor.table)} '
               f'WHERE {pk} = ?')
        return SqlTemplate(sql, 'select')

    def bulk_select_by_keys(self, descriptor: TableData,
                            array_support: bool = True) -> SqlTemplate:
        """Select every row whose key is in a collection.

        The default binds the whole collection as one array parameter
        (``= ANY(?)``), which only works on stores with array parameters such
        as PostgreSQL. With ``array_support=False`` the template uses
        ``IN (?)`` and the statement expands the placeholder per key.
        """
        pk = self.identifier(descriptor.primary_key.column)
        predicate = f'{pk} = ANY(?)' if array_support else f'{pk} IN (?)'
        sql = (f'SELECT {self._projection(descriptor)} FROM {self.identifier(descriptor.table)} '
               f'WHERE {predicate}')
        return SqlTemplate(sql, 'bulk_select')

    def insert(self, descriptor: TableData, key_provided: bool) -> SqlTemplate:
        """INSERT INTO <table> ([<pk>, ]<cols>) VALUES (?, ...)

        Without a provided key the key column is omitted and left to the store.
        """
        fields = descriptor.all_fields if key_provided else descriptor.columns
        table = self.identifier(descriptor.table)
        if not fields:
            sql = f'INSERT INTO {table} DEFAULT VALUES'
        else:
            names = ', '.join(self.identifier(f.column) for f in fields)
            placeholders = ', '.join(['?'] * len(fields))
            sql = f'INSERT INTO {table} ({names}) VALUES ({placeholders})'
        return SqlTemplate(sql, 'insert',
                           key_position='first' if key_provided else None,
                           returns_key=not key_provided)

    def update(self, descriptor: TableData) -> SqlTemplate:
        """UPDATE <table> SET <col> = ?, ... WHERE <pk> = ?
        """
        pk = self.identifier(descriptor.primary_key.column)
        assignments = ', '.join(f'{self.identifier(f.column)} = ?' for f in descriptor.columns)
        if not assignments:
            # key-only entity: nothing to change, still a valid statement
            assignments = f'{pk} = {pk}'
        sql = f'UPDATE {self.identifier(descriptor.table)} SET {assignments} WHERE {pk} = ?'
        return SqlTemplate(sql, 'update', key_position='last')

    def delete_by_key(self, descriptor: TableData) -> SqlTemplate:
        """DELETE FROM <table> WHERE <pk> = ?
        """
        pk = self.identifier(descriptor.primary_key.column)
        return SqlTemplate(f'DELETE FROM {self.identifier(descriptor.table)} WHERE {pk} = ?',
                           'delete')
