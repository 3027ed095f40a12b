"""
PostgreSQL strategy implementation (psycopg 3).

- ``%s`` placeholders, with every literal percent sign doubled
- typed nulls rendered as casts, e.g. ``%s::integer``
- Python lists bind natively as arrays, so ``= ANY(%s)`` works
- generated keys come back through ``RETURNING``
"""
import logging
from typing import TYPE_CHECKING, Any

import psycopg
import sqlalchemy as sa
from psycopg.adapt import PyFormat

from dorm.exceptions import TypeMappingError
from dorm.sql import escape_percent
from dorm.strategy.base import StoreStrategy, register_strategy
from dorm.types import SqlType
from dorm.utils import get_raw_connection

if TYPE_CHECKING:
    from dorm.options import DatabaseOptions

logger = logging.getLogger(__name__)

postgres_casts: dict[SqlType, str] = {
    SqlType.BOOLEAN: 'boolean',
    SqlType.TINYINT: 'smallint',
    SqlType.SMALLINT: 'smallint',
    SqlType.INTEGER: 'integer',
    SqlType.BIGINT: 'bigint',
    SqlType.REAL: 'real',
    SqlType.DOUBLE: 'double precision',
    SqlType.NUMERIC: 'numeric',
    SqlType.VARCHAR: 'varchar',
    SqlType.VARBINARY: 'bytea',
    SqlType.DATE: 'date',
    SqlType.TIME: 'time',
    SqlType.TIMESTAMP: 'timestamp',
    SqlType.UUID: 'uuid',
}


@register_strategy('postgresql')
class PostgresStrategy(StoreStrategy):
    """PostgreSQL-specific operations.
    """

    supports_arrays = True

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    @property
    def placeholder(self) -> str:
        return '%s'

    def render_placeholder(self, sql_type: SqlType | None = None) -> str:
        """Cast typed nulls so the server does not have to guess their type."""
        cast = postgres_casts.get(sql_type)
        if cast is None:
            return self.placeholder
        return f'{self.placeholder}::{cast}'

    def prepare_sql(self, sql: str) -> str:
        return escape_percent(sql)

    def check_bindable(self, raw_conn: Any, value: Any) -> None:
        """Look the value's type up in psycopg's adapters map."""
        if value is None:
            return
        raw_conn = get_raw_connection(raw_conn)
        adapters = getattr(raw_conn, 'adapters', None) or psycopg.adapters
        try:
            adapters.get_dumper(type(value), PyFormat.AUTO)
        except psycopg.ProgrammingError as err:
            raise TypeMappingError(
                f'No mapping or psycopg adapter for {type(value).__name__}: {err}') from err

    def returning_clause(self, key_column: str) -> str:
        return f' RETURNING {key_column}'

    def generated_key(self, cursor: Any, key_column: str) -> tuple | None:
        if cursor.description is None:
            return None
        row = cursor.fetchone()
        if row is None:
            return None
        if isinstance(row, dict):
            return (row[key_column],) if key_column in row else (next(iter(row.values())),)
        return (row[0],)

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for PostgreSQL."""
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        if options.appname:
            query['application_name'] = options.appname

        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port,
            database=options.database,
            query=query,
        )

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'username', 'password', 'database', 'port']
