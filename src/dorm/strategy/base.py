"""
Base strategy interface for store-specific statement handling.

The mapping layer talks to a database only through a strategy: it decides
the driver paramstyle, how typed nulls and arrays are bound, whether a value
can be bound at all, and how a generated key is read back after an insert.
Each concrete strategy registers itself for a dialect name.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from dorm.sql import quote_identifier as sql_quote_identifier

if TYPE_CHECKING:
    from dorm.options import DatabaseOptions
    from dorm.types import SqlType

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['StoreStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('postgresql')
        class PostgresStrategy(StoreStrategy):
            ...
    """
    def decorator(cls: type['StoreStrategy']) -> type['StoreStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class StoreStrategy(ABC):
    """Base class for store-specific operations.
    """

    #: Whether a Python list binds as a single array parameter
    supports_arrays: bool = False

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'postgresql', 'sqlite')."""

    @property
    @abstractmethod
    def placeholder(self) -> str:
        """Return the driver's positional placeholder marker.

        Returns
            str: '%s' for PostgreSQL-style, '?' for SQLite-style
        """

    def render_placeholder(self, sql_type: 'SqlType | None' = None) -> str:
        """Return the placeholder for a parameter bound as a typed null.

        Default implementation ignores the type.

        Args:
            sql_type: Target SQL kind of the null, None for untyped

        Returns
            str: Placeholder text, possibly carrying a cast
        """
        return self.placeholder

    def prepare_sql(self, sql: str) -> str:
        """Escape SQL text before placeholders are rendered.

        Default implementation is a no-op.
        """
        return sql

    def adapt_array(self, values: list) -> Any:
        """Return the driver value for an array parameter.
        """
        return list(values)

    @abstractmethod
    def check_bindable(self, raw_conn: Any, value: Any) -> None:
        """Verify the driver can bind ``value`` without a type mapping.

        Args:
            raw_conn: Raw DBAPI connection
            value: Value about to be bound

        Raises
            TypeMappingError: If the driver has no adapter for the value's type
        """

    def returning_clause(self, key_column: str) -> str:
        """Return the clause appended to inserts that expect a generated key.

        Default implementation appends nothing.
        """
        return ''

    @abstractmethod
    def generated_key(self, cursor: Any, key_column: str) -> tuple | None:
        """Read the generated key after an insert.

        Args:
            cursor: Raw DBAPI cursor that executed the insert
            key_column: Name of the primary key column

        Returns
            One-element tuple with the key, or None when the store returned none
        """

    def register_type_adapters(self, raw_conn: Any) -> None:
        """Register dialect-specific type adapters.

        Args:
            raw_conn: Raw DBAPI connection to register adapters on
        """

    def quote_identifier(self, identifier: str) -> str:
        """Quote a database identifier.

        Default implementation uses standard SQL double-quote escaping.
        """
        return sql_quote_identifier(identifier, self.dialect_name)

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for this dialect.
        """

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for this dialect.
        """
        return {}

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this dialect.
        """

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this dialect.

        Raises
            ValueError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or 0')
