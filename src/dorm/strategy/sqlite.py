"""
SQLite strategy implementation.

SQLite is dynamically typed, so nulls carry no type and most values bind as
text, numbers or blobs. It has no array parameters: the default bulk select
template (``= ANY(?)``) fails here unless the caller turns array support off.
Generated keys come from ``cursor.lastrowid``.
"""
import datetime
import decimal
import logging
import sqlite3
import uuid
from typing import TYPE_CHECKING, Any

import dateutil.parser
import sqlalchemy as sa

from dorm.exceptions import TypeMappingError
from dorm.strategy.base import StoreStrategy, register_strategy

if TYPE_CHECKING:
    from dorm.options import DatabaseOptions

logger = logging.getLogger(__name__)

_NATIVE_TYPES = (int, float, str, bytes, bytearray, memoryview)


def convert_date(val: bytes) -> datetime.date:
    """Convert ISO 8601 date string to date object."""
    return dateutil.parser.isoparse(val.decode()).date()


def convert_datetime(val: bytes) -> datetime.datetime:
    """Convert ISO 8601 datetime string to datetime object."""
    return dateutil.parser.isoparse(val.decode())


def register_sqlite_adapters() -> None:
    """Register module-wide sqlite3 adapters and converters.
    """
    # Adapters (Python -> SQLite)
    sqlite3.register_adapter(datetime.date, lambda v: v.isoformat())
    sqlite3.register_adapter(datetime.datetime, lambda v: v.isoformat(' '))
    sqlite3.register_adapter(datetime.time, lambda v: v.isoformat())
    sqlite3.register_adapter(decimal.Decimal, str)
    sqlite3.register_adapter(uuid.UUID, str)

    # Converters (SQLite -> Python), active with detect_types
    sqlite3.register_converter('date', convert_date)
    sqlite3.register_converter('datetime', convert_datetime)
    sqlite3.register_converter('timestamp', convert_datetime)


@register_strategy('sqlite')
class SQLiteStrategy(StoreStrategy):
    """SQLite-specific operations.
    """

    def __init__(self) -> None:
        register_sqlite_adapters()

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    @property
    def placeholder(self) -> str:
        return '?'

    def check_bindable(self, raw_conn: Any, value: Any) -> None:
        """Accept native sqlite3 types and types with a registered adapter."""
        if value is None or isinstance(value, _NATIVE_TYPES):
            return
        adapters = getattr(sqlite3, 'adapters', {})
        if (type(value), sqlite3.PrepareProtocol) in adapters:
            return
        if hasattr(value, '__conform__'):
            return
        raise TypeMappingError(f'No mapping or sqlite3 adapter for {type(value).__name__}')

    def generated_key(self, cursor: Any, key_column: str) -> tuple | None:
        rowid = cursor.lastrowid
        if rowid is None:
            return None
        return (rowid,)

    def register_type_adapters(self, raw_conn: Any) -> None:
        """Register dialect-specific type adapters and converters for SQLite.
        """
        register_sqlite_adapters()

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite."""
        return {
            'connect_args': {
                'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES
            }
        }

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']
