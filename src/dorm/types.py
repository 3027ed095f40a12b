"""
Type mapping registry.

Each registered ``TypeMapping`` knows how to move values of one declared
Python type between entity fields, statement parameters and result rows:

- set_parameter: entity field -> statement slot, binding a typed null for None
- set_object: raw value -> statement slot (primary keys)
- write_result: result column -> entity field, by position or column name
- copy: entity field -> same field of another entity
- extract_key: generated key row -> entity field

Dispatch is by exact declared type. Types without a mapping fall back to
generic binding (``Statement.set_object``), which the store strategy may
refuse with ``TypeMappingError``.
"""
import datetime
import decimal
import enum
import logging
import threading
import uuid
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

import dateutil.parser
import numpy as np

from dorm.entity import read_field, write_field, zero_value
from dorm.exceptions import TypeMappingError

if TYPE_CHECKING:
    from dorm.schema import FieldDescriptor
    from dorm.statement import ResultSet, Statement

logger = logging.getLogger(__name__)

__all__ = [
    'SqlType',
    'TypeMapping',
    'TypeMappingRegistry',
    'get_registry',
    'set_field_parameter',
    'set_parameter',
    'set_array_parameter',
    'set_field',
    'copy_field',
    'extract_key',
]

_isoparser = dateutil.parser.isoparser()


class SqlType(enum.Enum):
    """Target SQL kinds, used for typed nulls."""
    BOOLEAN = 'boolean'
    TINYINT = 'tinyint'
    SMALLINT = 'smallint'
    INTEGER = 'integer'
    BIGINT = 'bigint'
    REAL = 'real'
    DOUBLE = 'double'
    NUMERIC = 'numeric'
    VARCHAR = 'varchar'
    VARBINARY = 'varbinary'
    DATE = 'date'
    TIME = 'time'
    TIMESTAMP = 'timestamp'
    UUID = 'uuid'
    OTHER = 'other'


def _identity(value: Any) -> Any:
    return value


class TypeMapping:
    """Marshalling rules for one declared Python type.

    Args:
        python_type: Declared field type handled by this mapping
        sql_type: SQL kind used when binding a null
        to_db: Converts a non-null field value to a bindable value
        from_db: Converts a non-null column value to the declared type
    """

    def __init__(self, python_type: type, sql_type: SqlType,
                 to_db: Callable[[Any], Any] | None = None,
                 from_db: Callable[[Any], Any] | None = None) -> None:
        self.python_type = python_type
        self.sql_type = sql_type
        self._to_db = to_db or _identity
        self._from_db = from_db or _identity

    def __repr__(self) -> str:
        return f'TypeMapping({self.python_type.__name__}, {self.sql_type.name})'

    def to_db(self, value: Any) -> Any:
        try:
            return self._to_db(value)
        except (TypeError, ValueError, AttributeError) as err:
            raise TypeMappingError(
                f'Cannot bind {value!r} as {self.python_type.__name__}: {err}') from err

    def from_db(self, value: Any, field: 'FieldDescriptor') -> Any:
        """Convert a column value for ``field``; SQL NULL becomes the field's blank."""
        if value is None:
            return zero_value(field.value_type, field.nullable)
        try:
            return self._from_db(value)
        except (TypeError, ValueError, ArithmeticError, AttributeError) as err:
            raise TypeMappingError(
                f'Cannot read {value!r} into {field.name} ({self.python_type.__name__}): {err}') from err

    def set_object(self, stmt: 'Statement', value: Any, index: int) -> None:
        if value is None:
            stmt.set_null(index, self.sql_type)
        else:
            stmt.set_parameter(index, self.to_db(value), self.sql_type)

    def set_parameter(self, stmt: 'Statement', field: 'FieldDescriptor',
                      entity: Any, index: int) -> None:
        self.set_object(stmt, read_field(entity, field), index)

    def write_result(self, rs: 'ResultSet', field: 'FieldDescriptor',
                     entity: Any, index: int | None = None) -> None:
        value = rs.get(index) if index is not None else rs.get_by_name(field.column)
        write_field(entity, field, self.from_db(value, field))

    def copy(self, field: 'FieldDescriptor', target: Any, origin: Any) -> None:
        write_field(target, field, read_field(origin, field))

    def extract_key(self, rs: 'ResultSet', field: 'FieldDescriptor', entity: Any) -> None:
        self.write_result(rs, field, entity, 1)


# Column value converters (database -> Python)

def _to_bool(value: Any) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)):
        return value != 0
    if isinstance(value, str) and value.lower() in {'t', 'true', '1', 'f', 'false', '0'}:
        return value.lower() in {'t', 'true', '1'}
    raise ValueError(f'not a boolean: {value!r}')


def _to_int(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, (float, decimal.Decimal)) and value != int(value):
        raise ValueError(f'non-integral value {value!r}')
    return int(value)


def _to_decimal(value: Any) -> decimal.Decimal:
    if isinstance(value, decimal.Decimal):
        return value
    if isinstance(value, float):
        return decimal.Decimal(str(value))
    return decimal.Decimal(value)


def _decode(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode()
    return value


def _to_str(value: Any) -> str:
    return _decode(value) if isinstance(value, (bytes, bytearray, memoryview)) else str(value)


def _to_date(value: Any) -> datetime.date:
    value = _decode(value)
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return _isoparser.isoparse(value).date()


def _to_datetime(value: Any) -> datetime.datetime:
    value = _decode(value)
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    return _isoparser.isoparse(value)


def _to_time(value: Any) -> datetime.time:
    value = _decode(value)
    if isinstance(value, datetime.time):
        return value
    return _isoparser.parse_isotime(value)


def _to_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)) and len(value) == 16:
        return uuid.UUID(bytes=bytes(value))
    return uuid.UUID(_decode(value))


def _numpy_item(value: Any) -> Any:
    return value.item() if isinstance(value, np.generic) else value


def _default_mappings() -> list[TypeMapping]:
    mappings = [
        TypeMapping(bool, SqlType.BOOLEAN, to_db=bool, from_db=_to_bool),
        TypeMapping(int, SqlType.BIGINT, from_db=_to_int),
        TypeMapping(float, SqlType.DOUBLE, to_db=float, from_db=float),
        TypeMapping(decimal.Decimal, SqlType.NUMERIC, from_db=_to_decimal),
        TypeMapping(str, SqlType.VARCHAR, from_db=_to_str),
        TypeMapping(bytes, SqlType.VARBINARY, from_db=bytes),
        TypeMapping(bytearray, SqlType.VARBINARY, to_db=bytes, from_db=bytearray),
        TypeMapping(datetime.datetime, SqlType.TIMESTAMP, from_db=_to_datetime),
        TypeMapping(datetime.date, SqlType.DATE, from_db=_to_date),
        TypeMapping(datetime.time, SqlType.TIME, from_db=_to_time),
        TypeMapping(uuid.UUID, SqlType.UUID, from_db=_to_uuid),
        ]
    numpy_kinds = [
        (np.bool_, SqlType.BOOLEAN, lambda v: np.bool_(_to_bool(v))),
        (np.int16, SqlType.SMALLINT, lambda v: np.int16(_to_int(v))),
        (np.int32, SqlType.INTEGER, lambda v: np.int32(_to_int(v))),
        (np.int64, SqlType.BIGINT, lambda v: np.int64(_to_int(v))),
        (np.float32, SqlType.REAL, np.float32),
        (np.float64, SqlType.DOUBLE, np.float64),
        ]
    for python_type, sql_type, from_db in numpy_kinds:
        mappings.append(TypeMapping(python_type, sql_type, to_db=_numpy_item, from_db=from_db))
    return mappings


class TypeMappingRegistry:
    """Registry of type mappings keyed by declared Python type.
    """

    _instance = None
    _lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> 'TypeMappingRegistry':
        """Get singleton instance.
        """
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def __init__(self, mappings: Iterable[TypeMapping] | None = None) -> None:
        self._mappings: dict[Any, TypeMapping] = {}
        for mapping in _default_mappings() if mappings is None else mappings:
            self.register(mapping)

    def register(self, mapping: TypeMapping) -> None:
        """Register a mapping, replacing any previous one for the same type.
        """
        self._mappings[mapping.python_type] = mapping
        logger.debug(f'Registered {mapping!r}')

    def unregister(self, python_type: Any) -> TypeMapping | None:
        return self._mappings.pop(python_type, None)

    def get(self, python_type: Any) -> TypeMapping | None:
        try:
            return self._mappings.get(python_type)
        except TypeError:
            # unhashable hint, such as a parametrized generic
            return None

    def __contains__(self, python_type: Any) -> bool:
        return self.get(python_type) is not None


def get_registry() -> TypeMappingRegistry:
    """Get the type mapping registry."""
    return TypeMappingRegistry.get_instance()


# Dispatch with generic fallback

def set_field_parameter(stmt: 'Statement', field: 'FieldDescriptor',
                        entity: Any, index: int) -> None:
    """Bind an entity field at ``index``.
    """
    mapping = get_registry().get(field.value_type)
    if mapping is not None:
        mapping.set_parameter(stmt, field, entity, index)
    else:
        stmt.set_object(index, read_field(entity, field))


def set_parameter(stmt: 'Statement', value: Any, index: int) -> None:
    """Bind a raw value at ``index``, dispatching on the value's own type.
    """
    mapping = get_registry().get(type(value))
    if mapping is not None:
        mapping.set_object(stmt, value, index)
    else:
        stmt.set_object(index, value)


def set_array_parameter(stmt: 'Statement', values: Iterable[Any], index: int) -> None:
    """Bind a collection of raw values as one array parameter.
    """
    converted = []
    for value in values:
        mapping = get_registry().get(type(value))
        converted.append(mapping.to_db(value) if mapping is not None and value is not None else value)
    stmt.set_array(index, converted)


def set_field(rs: 'ResultSet', field: 'FieldDescriptor', entity: Any,
              index: int | None = None) -> None:
    """Write a result column into an entity field.

    Reads positionally when ``index`` is given, by column name otherwise.
    """
    mapping = get_registry().get(field.value_type)
    if mapping is not None:
        mapping.write_result(rs, field, entity, index)
    else:
        value = rs.get(index) if index is not None else rs.get_by_name(field.column)
        write_field(entity, field, value)


def copy_field(field: 'FieldDescriptor', target: Any, origin: Any) -> None:
    mapping = get_registry().get(field.value_type)
    if mapping is not None:
        mapping.copy(field, target, origin)
    else:
        write_field(target, field, read_field(origin, field))


def extract_key(rs: 'ResultSet', field: 'FieldDescriptor', entity: Any) -> None:
    """Write the first column of a generated key row into ``field``."""
    mapping = get_registry().get(field.value_type)
    if mapping is not None:
        mapping.extract_key(rs, field, entity)
    else:
        set_field(rs, field, entity, 1)
