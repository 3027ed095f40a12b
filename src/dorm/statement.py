"""
Prepared statements and result sets over DB-API cursors.

``Statement`` collects 1-indexed parameters against ``?`` SQL text and renders
them into the driver paramstyle when executed. ``ResultSet`` walks the rows of
an executed statement one at a time and reads columns by 1-based position or
by name. Both release their cursor on ``close()`` and are context managers.
"""
import logging
import time
from collections.abc import Iterable, Iterator, Mapping, Sequence
from functools import wraps
from typing import Any, NamedTuple, Self

from dorm.sql import render_placeholders
from dorm.strategy import StoreStrategy, get_db_strategy
from dorm.types import SqlType
from dorm.utils import get_raw_connection

logger = logging.getLogger(__name__)

__all__ = ['Statement', 'ResultSet', 'prepare']


class _Value(NamedTuple):
    value: Any
    sql_type: SqlType | None = None


class _Null(NamedTuple):
    sql_type: SqlType | None = None


class _Array(NamedTuple):
    values: list


def dumpsql(func):
    """Decorator for logging SQL statements and parameters."""
    @wraps(func)
    def wrapper(self, sql: str, params: Sequence[Any]):
        start = time.time()
        logger.debug(f'SQL:\n{sql}\nargs: {params}')
        try:
            return func(self, sql, params)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}\nargs: {params}')
            raise
        finally:
            elapsed = time.time() - start
            if hasattr(self.cn, 'addcall'):
                self.cn.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


def _as_tuple(row: Any) -> tuple:
    if isinstance(row, Mapping):
        return tuple(row.values())
    return tuple(row)


class ResultSet:
    """Forward-only cursor over result rows.

    Call ``next()`` to advance; it returns False once the rows are exhausted.
    Iterating yields the result set itself positioned on each row.
    """

    def __init__(self, cursor: Any = None, rows: Iterable[Sequence] | None = None,
                 column_names: Sequence[str] | None = None) -> None:
        self._cursor = cursor
        self._rows = iter(rows) if rows is not None else None
        if column_names is None and cursor is not None and cursor.description:
            column_names = [desc[0] for desc in cursor.description]
        self._names = list(column_names or [])
        self._lookup = {name: i for i, name in enumerate(self._names)}
        self._lookup_folded = {name.lower(): i for i, name in reversed(list(enumerate(self._names)))}
        self._row: tuple | None = None
        self.closed = False

    @classmethod
    def from_rows(cls, rows: Iterable[Sequence], column_names: Sequence[str] | None = None) -> Self:
        """Build an in-memory result set."""
        return cls(rows=rows, column_names=column_names)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __iter__(self) -> Iterator[Self]:
        while self.next():
            yield self

    @property
    def column_names(self) -> list[str]:
        return list(self._names)

    @property
    def row(self) -> tuple:
        """Current row as a tuple."""
        if self._row is None:
            raise ValueError('Result set is not positioned on a row')
        return self._row

    def next(self) -> bool:
        """Advance to the next row."""
        if self.closed:
            raise ValueError('Result set is closed')
        if self._rows is not None:
            row = next(self._rows, None)
        elif self._cursor is not None and self._cursor.description is not None:
            row = self._cursor.fetchone()
        else:
            row = None
        self._row = None if row is None else _as_tuple(row)
        return self._row is not None

    def get(self, index: int) -> Any:
        """Read a column of the current row by 1-based position."""
        row = self.row
        if not 1 <= index <= len(row):
            raise IndexError(f'Column index {index} out of range 1..{len(row)}')
        return row[index - 1]

    def get_by_name(self, name: str) -> Any:
        """Read a column of the current row by name.

        Falls back to a case-insensitive match, since unquoted identifiers
        are folded by most stores.
        """
        row = self.row
        index = self._lookup.get(name)
        if index is None:
            index = self._lookup_folded.get(name.lower())
        if index is None:
            raise KeyError(f'No column named {name!r} in {self._names}')
        return row[index]

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._row = None


class Statement:
    """Parameterized statement bound to a connection.

    Parameters are set by 1-based index in any order; every placeholder must
    be bound before execution. The cursor is opened on first execution and
    closed by ``close()``.

    Args:
        cn: Connection (ConnectionWrapper or raw DBAPI connection)
        sql: SQL text with ``?`` placeholders
        return_key: Primary key column to read back after an insert
        expand_arrays: Expand array parameters into one placeholder per element
        strategy: Store strategy, detected from the connection when omitted
    """

    def __init__(self, cn: Any, sql: str, return_key: str | None = None,
                 expand_arrays: bool = False, strategy: StoreStrategy | None = None) -> None:
        self.cn = cn
        self.sql = sql
        self.return_key = return_key
        self.expand_arrays = expand_arrays
        self.strategy = strategy or get_db_strategy(cn)
        self.rowcount = -1
        self._params: dict[int, Any] = {}
        self._cursor = None
        self._results: list[ResultSet] = []
        self.closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f'Statement({self.sql!r}, params={len(self._params)})'

    @property
    def raw_connection(self) -> Any:
        return get_raw_connection(self.cn)

    def _bind(self, index: int, param: Any) -> None:
        if isinstance(index, bool) or not isinstance(index, int) or index < 1:
            raise ValueError(f'Parameter index must be a positive integer, got {index!r}')
        self._params[index] = param

    # Parameter setters

    def set_object(self, index: int, value: Any) -> None:
        """Bind a value with no type mapping, as the driver adapts it.

        Raises
            TypeMappingError: If the driver cannot adapt the value's type
        """
        if value is None:
            self._bind(index, _Null())
            return
        self.strategy.check_bindable(self.raw_connection, value)
        self._bind(index, _Value(value))

    def set_parameter(self, index: int, value: Any, sql_type: SqlType | None = None) -> None:
        """Bind an already converted value."""
        if value is None:
            self._bind(index, _Null(sql_type))
        else:
            self._bind(index, _Value(value, sql_type))

    def set_null(self, index: int, sql_type: SqlType | None = None) -> None:
        """Bind a null of the given SQL kind."""
        self._bind(index, _Null(sql_type))

    def _set_typed(self, index: int, value: Any, sql_type: SqlType, convert=None) -> None:
        if value is None:
            self.set_null(index, sql_type)
        else:
            self._bind(index, _Value(convert(value) if convert else value, sql_type))

    def set_bool(self, index: int, value: bool | None) -> None:
        self._set_typed(index, value, SqlType.BOOLEAN, bool)

    def set_short(self, index: int, value: int | None) -> None:
        self._set_typed(index, value, SqlType.SMALLINT, int)

    def set_int(self, index: int, value: int | None) -> None:
        self._set_typed(index, value, SqlType.INTEGER, int)

    def set_long(self, index: int, value: int | None) -> None:
        self._set_typed(index, value, SqlType.BIGINT, int)

    def set_float(self, index: int, value: float | None) -> None:
        self._set_typed(index, value, SqlType.DOUBLE, float)

    def set_decimal(self, index: int, value: Any) -> None:
        self._set_typed(index, value, SqlType.NUMERIC)

    def set_str(self, index: int, value: str | None) -> None:
        self._set_typed(index, value, SqlType.VARCHAR, str)

    def set_bytes(self, index: int, value: bytes | None) -> None:
        self._set_typed(index, value, SqlType.VARBINARY, bytes)

    def set_date(self, index: int, value: Any) -> None:
        self._set_typed(index, value, SqlType.DATE)

    def set_time(self, index: int, value: Any) -> None:
        self._set_typed(index, value, SqlType.TIME)

    def set_timestamp(self, index: int, value: Any) -> None:
        self._set_typed(index, value, SqlType.TIMESTAMP)

    def set_uuid(self, index: int, value: Any) -> None:
        self._set_typed(index, value, SqlType.UUID)

    def set_array(self, index: int, values: Iterable[Any]) -> None:
        """Bind a collection as one array parameter.

        With ``expand_arrays`` the placeholder is replaced by one placeholder
        per element instead, for stores without array parameters.
        """
        self._bind(index, _Array(list(values)))

    def clear_parameters(self) -> None:
        self._params.clear()

    # Execution

    def render(self) -> tuple[str, list[Any]]:
        """Return the driver SQL and parameter list.

        Raises
            ValueError: If a placeholder is unbound or an index has no placeholder
        """
        strategy = self.strategy
        params: list[Any] = []
        rendered: set[int] = set()

        def render_one(index: int) -> str:
            if index not in self._params:
                raise ValueError(f'Parameter {index} is not bound in: {self.sql}')
            rendered.add(index)
            param = self._params[index]
            if isinstance(param, _Null):
                params.append(None)
                return strategy.render_placeholder(param.sql_type)
            if isinstance(param, _Array):
                if not self.expand_arrays:
                    params.append(strategy.adapt_array(param.values))
                    return strategy.placeholder
                if not param.values:
                    return 'NULL'
                params.extend(param.values)
                return ', '.join([strategy.placeholder] * len(param.values))
            params.append(param.value)
            return strategy.placeholder

        sql = render_placeholders(strategy.prepare_sql(self.sql), render_one)
        extra = sorted(set(self._params) - rendered)
        if extra:
            raise ValueError(f'Parameter index {extra[0]} has no placeholder in: {self.sql}')
        if self.return_key:
            sql = sql.rstrip().rstrip(';') + strategy.returning_clause(self.return_key)
        return sql, params

    def _ensure_cursor(self) -> Any:
        if self.closed:
            raise ValueError('Statement is closed')
        if self._cursor is None:
            self._cursor = self.cn.cursor()
        return self._cursor

    @dumpsql
    def _execute(self, sql: str, params: Sequence[Any]) -> None:
        cursor = self._ensure_cursor()
        cursor.execute(sql, params)
        self.rowcount = cursor.rowcount

    def execute(self) -> bool:
        """Execute the statement.

        Returns
            True when the statement produced a result set
        """
        self._execute(*self.render())
        return self._cursor.description is not None

    def execute_query(self) -> ResultSet:
        """Execute and return the result rows."""
        self._execute(*self.render())
        rs = ResultSet(cursor=self._cursor)
        self._results.append(rs)
        return rs

    def execute_update(self) -> int:
        """Execute and return the affected row count."""
        self._execute(*self.render())
        return self.rowcount

    def generated_keys(self) -> ResultSet:
        """Return the key generated by the last insert, possibly empty."""
        if self._cursor is None:
            raise ValueError('Statement has not been executed')
        if not self.return_key:
            raise ValueError('Statement was not prepared to return a generated key')
        key = self.strategy.generated_key(self._cursor, self.return_key)
        rs = ResultSet.from_rows([key] if key is not None else [], [self.return_key])
        self._results.append(rs)
        return rs

    def close(self) -> None:
        """Close open result sets and the cursor."""
        if self.closed:
            return
        self.closed = True
        for rs in self._results:
            rs.close()
        self._results.clear()
        if self._cursor is not None:
            try:
                self._cursor.close()
            finally:
                self._cursor = None


def prepare(cn: Any, sql: str, return_key: str | None = None,
            expand_arrays: bool = False) -> Statement:
    """Create a statement for ``sql`` on ``cn``.

    Use it as a context manager so the cursor is always released::

        with prepare(cn, 'select name from widget where id = ?') as stmt:
            stmt.set_int(1, 7)
            with stmt.execute_query() as rs:
                while rs.next():
                    print(rs.get(1))
    """
    return Statement(cn, sql, return_key=return_key, expand_arrays=expand_arrays)
