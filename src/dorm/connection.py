"""
Database connection handling with SQLAlchemy.

This module provides:
1. The `connect()` function for opening a connection from options
2. The `ConnectionWrapper` class, the connection object accepted by dorm
3. Engine creation through a thread-safe registry

dorm never commits or rolls back on its own; transaction boundaries belong
to the caller (`commit()` / `rollback()` on the wrapper).
"""
import atexit
import logging
import threading
from typing import Any, Self

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from dorm.options import DatabaseOptions
from dorm.strategy import get_strategy
from dorm.utils import get_dialect_name

__all__ = [
    'ConnectionWrapper',
    'connect',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def get_engine_for_options(options: DatabaseOptions, **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.
    """
    key = str(options)

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        strategy = get_strategy(options.drivername)
        url = strategy.build_connection_url(options)

        engine_kwargs: dict[str, Any] = {'echo': False, 'poolclass': NullPool}
        engine_kwargs.update(strategy.get_engine_kwargs(options))
        engine_kwargs.update(kwargs)

        engine = sa.create_engine(url, **engine_kwargs)
        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in list(_engine_registry.values()):
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


class ConnectionWrapper:
    """Wraps a SQLAlchemy connection for use with dorm.

    1. Exposes the DBAPI connection (`dbapi_connection`, `driver_connection`)
    2. Tracks statement counts and execution time
    3. Supports the context manager protocol
    """

    def __init__(self, sa_connection: sa.engine.Connection,
                 options: DatabaseOptions | None = None) -> None:
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine
        self.options = options
        self.dbapi_connection = sa_connection.connection
        self._dialect = get_dialect_name(sa_connection)
        self.calls = 0
        self.time = 0

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def dialect(self) -> str:
        """Return the dialect name ('postgresql' or 'sqlite')."""
        return self._dialect

    @property
    def driver_connection(self) -> Any:
        """The raw driver connection (sqlite3 / psycopg)."""
        return self.dbapi_connection.driver_connection

    @property
    def closed(self) -> bool:
        return self.sa_connection.closed

    def cursor(self) -> Any:
        """Return a new DBAPI cursor."""
        return self.dbapi_connection.cursor()

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def commit(self) -> None:
        self.dbapi_connection.commit()

    def rollback(self) -> None:
        self.dbapi_connection.rollback()

    def close(self) -> None:
        """Return the connection to the engine.

        Uncommitted work is rolled back by the pool.
        """
        if self.sa_connection.closed:
            return
        self.sa_connection.close()
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                     f'(avg: {self.time / max(1, self.calls):.3f}s per query)')


def connect(options: DatabaseOptions | dict[str, Any] | None = None,
            **kw: Any) -> ConnectionWrapper:
    """Open a database connection.

    Args:
        options: DatabaseOptions object or dictionary of options
        **kw: Option values, overriding those in a dictionary

    Returns
        ConnectionWrapper object for the database

    >>> cn = connect(drivername='sqlite', database=':memory:')
    >>> cn.dialect
    'sqlite'
    >>> cn.close()
    """
    if not isinstance(options, DatabaseOptions):
        options = DatabaseOptions.from_dict(options or {}, **kw)

    engine = get_engine_for_options(options)
    sa_connection = engine.connect()
    wrapper = ConnectionWrapper(sa_connection, options)
    get_strategy(options.drivername).register_type_adapters(wrapper.driver_connection)
    return wrapper


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
