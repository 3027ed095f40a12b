"""Low-level connection utilities with no internal dependencies.

These utilities work with any connection type accepted by dorm
(ConnectionWrapper, SQLAlchemy pooled connections, raw DBAPI connections)
and import nothing from other dorm modules.
"""
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])')


def get_dialect_name(obj: Any) -> str:
    """Get dialect name for a database connection or engine.
    """
    if hasattr(obj, 'dialect'):
        dialect = obj.dialect
        if isinstance(dialect, str):
            return dialect.lower()
        return str(dialect.name).lower()

    if hasattr(obj, 'engine') and hasattr(obj.engine, 'dialect'):
        return str(obj.engine.dialect.name).lower()

    if hasattr(obj, 'driver_connection'):
        return get_dialect_name(obj.driver_connection)

    type_name = f'{type(obj).__module__}.{type(obj).__name__}'
    if 'psycopg' in type_name:
        return 'postgresql'
    if 'sqlite3' in type_name:
        return 'sqlite'

    raise AttributeError(f'Cannot determine dialect for {type(obj)}')


def get_raw_connection(connection: Any) -> Any:
    """Extract the raw DBAPI connection from a wrapper."""
    raw_conn = connection
    while hasattr(raw_conn, 'driver_connection'):
        raw_conn = raw_conn.driver_connection
    return raw_conn


def snake_case(name: str) -> str:
    """Convert a class name to a table-style name.

    >>> snake_case('Widget')
    'widget'
    >>> snake_case('OrderLine')
    'order_line'
    >>> snake_case('HTTPRequestLog')
    'http_request_log'
    """
    return _CAMEL_BOUNDARY.sub('_', name).lower()


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
