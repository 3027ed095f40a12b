"""
Schema introspection for entity types.

An entity type is a class, normally a dataclass, whose annotated fields map
one-to-one to the columns of a single table. ``describe`` derives a
``TableData`` descriptor from the class and memoizes it for the lifetime of
the process.

Field metadata is attached either through ``column()``::

    @dataclass
    class Widget:
        id: int | None = column(primary_key=True, default=None)
        name: str = column(name='widget_name', default='')

or through ``typing.Annotated``::

    class Widget:
        id: Annotated[int | None, ColumnSpec(primary_key=True)]

When no field is marked as primary key, a field named ``id`` is used.
"""
import dataclasses
import logging
import types
import typing
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Annotated, Any, ClassVar, Union

from dorm.cache import Cache, cacheable
from dorm.entity import is_primitive
from dorm.exceptions import SchemaError
from dorm.utils import snake_case

logger = logging.getLogger(__name__)

__all__ = [
    'ColumnSpec',
    'column',
    'FieldDescriptor',
    'TableData',
    'describe',
    'clear_descriptor_cache',
]

METADATA_KEY = 'dorm'
DESCRIPTOR_CACHE = 'entity_descriptors'
CONVENTIONAL_KEY = 'id'


@dataclass(frozen=True)
class ColumnSpec:
    """Mapping options for one entity field."""
    name: str | None = None
    primary_key: bool = False
    transient: bool = False


def column(*, name: str | None = None, primary_key: bool = False,
           transient: bool = False, **kwargs: Any) -> Any:
    """Declare a dataclass field with mapping options.

    Accepts every ``dataclasses.field`` keyword (``default``,
    ``default_factory``, ``repr``, ...).
    """
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[METADATA_KEY] = ColumnSpec(name=name, primary_key=primary_key,
                                        transient=transient)
    return dataclasses.field(metadata=metadata, **kwargs)


@dataclass(frozen=True)
class FieldDescriptor:
    """One mapped field of an entity type.

    ``value_type`` is the declared type with ``None`` removed from optional
    unions; it selects the type mapping used to marshal the field.
    """
    name: str
    value_type: Any
    column: str
    nullable: bool
    primary_key: bool = False
    default: Any = dataclasses.field(default_factory=lambda: dataclasses.MISSING, compare=False)
    default_factory: Any = dataclasses.field(default_factory=lambda: dataclasses.MISSING,
                                             compare=False)


@dataclass(frozen=True)
class TableData:
    """Table-level description of an entity type.

    ``columns`` excludes the primary key and keeps declaration order; every
    generated statement and every binding loop iterates it in that order.
    """
    entity: type
    table: str
    primary_key: FieldDescriptor
    columns: tuple[FieldDescriptor, ...]
    transient: tuple[tuple[str, Any, Any], ...] = ()

    @property
    def all_fields(self) -> tuple[FieldDescriptor, ...]:
        return (self.primary_key, *self.columns)

    def column_name(self, field: FieldDescriptor | str) -> str:
        """Column name for a field descriptor or field name."""
        if isinstance(field, FieldDescriptor):
            return field.column
        return self.field(field).column

    def field(self, name: str) -> FieldDescriptor:
        for field in self.all_fields:
            if field.name == name:
                return field
        raise KeyError(f'{self.entity.__name__} has no mapped field {name!r}')

    def transient_defaults(self) -> Iterator[tuple[str, Any]]:
        """Yield (name, value) for transient fields that declare a default."""
        for name, default, factory in self.transient:
            if default is not dataclasses.MISSING:
                yield name, default
            elif factory is not dataclasses.MISSING:
                yield name, factory()


def _unwrap(hint: Any) -> tuple[Any, bool, ColumnSpec | None]:
    """Split a type hint into (value type, optional, annotated spec)."""
    spec = None
    if typing.get_origin(hint) is Annotated:
        hint, *extras = typing.get_args(hint)
        spec = next((x for x in extras if isinstance(x, ColumnSpec)), None)

    if typing.get_origin(hint) not in {Union, types.UnionType}:
        return hint, False, spec

    args = typing.get_args(hint)
    members = [a for a in args if a is not type(None)]
    optional = len(members) < len(args)
    if len(members) == 1:
        value_type, _, inner_spec = _unwrap(members[0])
        return value_type, optional, spec or inner_spec
    return Union[tuple(members)], optional, spec


def _is_classvar(hint: Any) -> bool:
    return hint is ClassVar or typing.get_origin(hint) is ClassVar


def _declared_fields(cls: type) -> Iterator[tuple[str, Any, ColumnSpec | None, Any, Any]]:
    """Yield (name, hint, metadata spec, default, default factory) per field."""
    try:
        hints = typing.get_type_hints(cls, include_extras=True)
    except (NameError, TypeError) as err:
        raise SchemaError(f'Cannot resolve field types of {cls.__name__}: {err}') from err

    if dataclasses.is_dataclass(cls):
        for f in dataclasses.fields(cls):
            yield (f.name, hints.get(f.name, f.type), f.metadata.get(METADATA_KEY),
                   f.default, f.default_factory)
        return

    for name, hint in hints.items():
        if name.startswith('_') or _is_classvar(hint):
            continue
        yield name, hint, None, getattr(cls, name, dataclasses.MISSING), dataclasses.MISSING


def build_table_data(cls: type) -> TableData:
    """Compute the descriptor of ``cls`` without caching.
    """
    fields: list[FieldDescriptor] = []
    transient: list[tuple[str, Any, Any]] = []

    for name, hint, meta_spec, default, factory in _declared_fields(cls):
        value_type, optional, annotated_spec = _unwrap(hint)
        spec = meta_spec or annotated_spec or ColumnSpec()
        if spec.transient:
            transient.append((name, default, factory))
            continue
        fields.append(FieldDescriptor(
            name=name,
            value_type=value_type,
            column=spec.name or name,
            nullable=optional or not is_primitive(value_type),
            primary_key=spec.primary_key,
            default=default,
            default_factory=factory,
            ))

    if not fields:
        raise SchemaError(f'{cls.__name__} declares no mappable fields')

    keys = [f for f in fields if f.primary_key]
    if not keys:
        keys = [f for f in fields if f.name == CONVENTIONAL_KEY]
    if len(keys) != 1:
        names = [f.name for f in keys]
        raise SchemaError(f'{cls.__name__} must declare exactly one primary key, found {len(keys)}: {names}')
    primary_key = dataclasses.replace(keys[0], primary_key=True)

    seen: set[str] = set()
    for f in fields:
        if f.column in seen:
            raise SchemaError(f'{cls.__name__} maps column {f.column!r} more than once')
        seen.add(f.column)

    table = getattr(cls, '__tablename__', None) or snake_case(cls.__name__)
    columns = tuple(f for f in fields if f.name != primary_key.name)
    logger.debug(f'Described {cls.__name__} as table {table} with key {primary_key.column} '
                 f'and {len(columns)} columns')
    return TableData(entity=cls, table=table, primary_key=primary_key,
                     columns=columns, transient=tuple(transient))


@cacheable(DESCRIPTOR_CACHE)
def _describe(cls: type) -> TableData:
    return build_table_data(cls)


def describe(cls: type) -> TableData:
    """Return the cached descriptor for an entity type.

    Raises
        SchemaError: If ``cls`` is not a class or is not a well-formed entity
    """
    if not isinstance(cls, type):
        raise SchemaError(f'Expected an entity class, got {cls!r}')
    return _describe(cls)


def clear_descriptor_cache() -> None:
    Cache.get_instance().clear_cache(DESCRIPTOR_CACHE)
