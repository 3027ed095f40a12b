"""
Entity materialization.

Builds blank entity instances and reads/writes their fields by descriptor.
Instances are created without running ``__init__`` so that entity classes need
no particular constructor signature; each mapped field starts out with its
declared default or the zero value of its type.
"""
import dataclasses
import logging
from typing import TYPE_CHECKING, Any, TypeVar

import numpy as np

if TYPE_CHECKING:
    from dorm.schema import FieldDescriptor, TableData

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Machine types with no natural "no value": a non-optional field of one of
# these types is never null, and starts out as zero.
PRIMITIVE_ZEROS: dict[type, Any] = {
    bool: False,
    int: 0,
    float: 0.0,
    np.bool_: np.bool_(False),
    np.int16: np.int16(0),
    np.int32: np.int32(0),
    np.int64: np.int64(0),
    np.float32: np.float32(0.0),
    np.float64: np.float64(0.0),
    }

PRIMITIVE_TYPES = frozenset(PRIMITIVE_ZEROS)


def is_primitive(value_type: Any) -> bool:
    return value_type in PRIMITIVE_TYPES


def zero_value(value_type: Any, nullable: bool = True) -> Any:
    """Return the blank value for a field of the given type.

    >>> zero_value(int, nullable=False)
    0
    >>> zero_value(int) is None
    True
    >>> zero_value(str, nullable=False) is None
    True
    """
    if nullable:
        return None
    return PRIMITIVE_ZEROS.get(value_type)


def read_field(entity: Any, field: 'FieldDescriptor') -> Any:
    return getattr(entity, field.name)


def write_field(entity: Any, field: 'FieldDescriptor', value: Any) -> None:
    # object.__setattr__ bypasses frozen dataclass guards
    object.__setattr__(entity, field.name, value)


def _initial_value(field: 'FieldDescriptor') -> Any:
    if field.default is not dataclasses.MISSING:
        return field.default
    if field.default_factory is not dataclasses.MISSING:
        return field.default_factory()
    return zero_value(field.value_type, field.nullable)


def new_instance(cls: type[T], descriptor: 'TableData') -> T:
    """Construct a blank instance of ``cls``.

    Every mapped field is initialized; transient dataclass fields with a
    default get it too, so the instance is complete for the caller.
    """
    instance = cls.__new__(cls)
    for field in descriptor.all_fields:
        write_field(instance, field, _initial_value(field))
    for name, value in descriptor.transient_defaults():
        object.__setattr__(instance, name, value)
    return instance


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
