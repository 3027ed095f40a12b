"""
Tests for the type mapping registry and its dispatch functions.
"""
import datetime
import decimal
import threading
import uuid

import numpy as np
import pytest
from dorm import SqlType, TypeMapping, TypeMappingError, describe, get_registry
from dorm import types
from dorm.statement import ResultSet, Statement
from dorm.strategy import get_strategy

from tests.fixtures.entities import Gadget, OrderLine, Widget


class Money:
    def __init__(self, cents):
        self.cents = cents

    def __eq__(self, other):
        return isinstance(other, Money) and other.cents == self.cents


@pytest.fixture
def money_mapping():
    """Register a mapping for Money for the duration of a test"""
    mapping = TypeMapping(Money, SqlType.BIGINT,
                          to_db=lambda m: m.cents, from_db=Money)
    get_registry().register(mapping)
    yield mapping
    get_registry().unregister(Money)


@pytest.fixture
def pg_statement(fake_connection):
    """Statement on a recording PostgreSQL connection"""
    def factory(sql):
        return Statement(fake_connection('postgresql'), sql)
    return factory


@pytest.mark.parametrize(('python_type', 'sql_type'), [
    (bool, SqlType.BOOLEAN),
    (int, SqlType.BIGINT),
    (float, SqlType.DOUBLE),
    (decimal.Decimal, SqlType.NUMERIC),
    (str, SqlType.VARCHAR),
    (bytes, SqlType.VARBINARY),
    (datetime.datetime, SqlType.TIMESTAMP),
    (datetime.date, SqlType.DATE),
    (datetime.time, SqlType.TIME),
    (uuid.UUID, SqlType.UUID),
    (np.int32, SqlType.INTEGER),
    (np.float32, SqlType.REAL),
])
def test_default_mappings(python_type, sql_type):
    """Test the registry covers the common declared types"""
    mapping = get_registry().get(python_type)

    assert mapping is not None
    assert mapping.sql_type is sql_type


def test_registry_misses():
    """Test lookups for unmapped and unhashable types"""
    registry = get_registry()

    assert dict not in registry
    assert registry.get(list[int]) is None
    assert registry.get(['unhashable']) is None


def test_registry_is_singleton():
    assert get_registry() is get_registry()


def test_registry_first_use_from_many_threads(monkeypatch):
    """Test racing first lookups share one registry"""
    monkeypatch.setattr(types.TypeMappingRegistry, '_instance', None)
    barrier = threading.Barrier(8)
    seen = []

    def worker():
        barrier.wait()
        seen.append(get_registry())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(seen) == 8
    assert all(r is seen[0] for r in seen)


def test_from_db_null_handling():
    """Test SQL NULL becomes None for nullable fields and zero otherwise"""
    mapping = get_registry().get(int)
    d = describe(Gadget)

    assert mapping.from_db(None, describe(Widget).field('score')) is None
    assert mapping.from_db(None, d.field('qty')) == 0
    assert get_registry().get(bool).from_db(None, d.field('active')) is False


@pytest.mark.parametrize(('python_type', 'value', 'expected'), [
    (bool, 1, True),
    (bool, 0, False),
    (bool, 't', True),
    (int, 7.0, 7),
    (int, decimal.Decimal('3'), 3),
    (float, 2, 2.0),
    (decimal.Decimal, 1.5, decimal.Decimal('1.5')),
    (decimal.Decimal, '12.50', decimal.Decimal('12.50')),
    (str, b'abc', 'abc'),
    (datetime.date, '2024-01-02', datetime.date(2024, 1, 2)),
    (datetime.date, datetime.datetime(2024, 1, 2, 3, 4), datetime.date(2024, 1, 2)),
    (datetime.datetime, '2024-01-02 03:04:05', datetime.datetime(2024, 1, 2, 3, 4, 5)),
    (datetime.datetime, datetime.date(2024, 1, 2), datetime.datetime(2024, 1, 2)),
    (datetime.time, '12:30:00', datetime.time(12, 30)),
    (uuid.UUID, '12345678-1234-5678-1234-567812345678',
     uuid.UUID('12345678-1234-5678-1234-567812345678')),
])
def test_column_conversions(python_type, value, expected):
    """Test column values are converted to the declared type"""
    mapping = get_registry().get(python_type)
    field = describe(Gadget).field('weight')

    assert mapping.from_db(value, field) == expected


def test_numpy_conversions():
    """Test numpy scalars bind as Python values and read back as numpy"""
    mapping = get_registry().get(np.int32)
    field = describe(Gadget).field('qty')

    bound = mapping.to_db(np.int32(5))
    assert bound == 5
    assert type(bound) is int

    value = mapping.from_db(5, field)
    assert value == 5
    assert isinstance(value, np.int32)


def test_conversion_errors():
    """Test failed conversions raise TypeMappingError"""
    field = describe(Gadget).field('qty')

    with pytest.raises(TypeMappingError, match='non-integral'):
        get_registry().get(int).from_db(1.5, field)
    with pytest.raises(TypeMappingError):
        get_registry().get(bool).from_db('maybe', field)
    with pytest.raises(TypeMappingError, match='Cannot bind'):
        get_registry().get(float).to_db('abc')


def test_set_field_parameter_binds_typed_null(pg_statement):
    """Test a None nullable primitive binds as a typed null"""
    stmt = pg_statement('update widget set score = ? where id = ?')
    entity = Widget(id=1, name='a', score=None)
    d = describe(Widget)

    types.set_field_parameter(stmt, d.field('score'), entity, 1)
    types.set_field_parameter(stmt, d.primary_key, entity, 2)

    sql, params = stmt.render()
    assert sql == 'update widget set score = %s::bigint where id = %s'
    assert params == [None, 1]


def test_set_field_parameter_converts_values(pg_statement, gadget):
    """Test mapped values pass through to_db"""
    stmt = pg_statement('select ?, ?')
    d = describe(Gadget)

    types.set_field_parameter(stmt, d.field('price'), gadget, 1)
    types.set_field_parameter(stmt, d.field('token'), gadget, 2)

    _, params = stmt.render()
    assert params == [decimal.Decimal('12.50'), gadget.token]


def test_unmapped_field_falls_back_to_generic_binding(fake_connection):
    """Test unmapped types go to set_object and may be refused"""
    stmt = Statement(fake_connection('sqlite'), 'insert into order_line (details) values (?)')
    field = describe(OrderLine).field('details')

    with pytest.raises(TypeMappingError, match='dict'):
        types.set_field_parameter(stmt, field, OrderLine(details={'a': 1}), 1)


def test_unmapped_none_binds_untyped_null(fake_connection):
    """Test a None value of an unmapped type binds without checks"""
    stmt = Statement(fake_connection('postgresql'), 'select ?')
    field = describe(OrderLine).field('details')

    types.set_field_parameter(stmt, field, OrderLine(details=None), 1)
    assert stmt.render() == ('select %s', [None])


def test_custom_mapping(money_mapping, fake_connection):
    """Test a registered mapping is used for binding and reading"""
    stmt = Statement(fake_connection('sqlite'), 'select ?')
    types.set_parameter(stmt, Money(250), 1)
    assert stmt.render() == ('select ?', [250])

    rs = ResultSet.from_rows([(250,)], ['amount'])
    rs.next()
    assert money_mapping.from_db(rs.get(1), describe(Widget).field('name')) == Money(250)


def test_set_parameter_dispatches_on_value_type(fake_connection):
    """Test raw values are converted by the mapping of their own type"""
    stmt = Statement(fake_connection('postgresql'), 'select ?, ?')
    types.set_parameter(stmt, np.int64(9), 1)
    types.set_parameter(stmt, None, 2)

    sql, params = stmt.render()
    assert params == [9, None]
    assert type(params[0]) is int


def test_set_array_parameter_converts_elements(fake_connection):
    """Test array elements are converted one by one"""
    stmt = Statement(fake_connection('postgresql'), 'select * from t where id = ANY(?)')
    types.set_array_parameter(stmt, [np.int64(1), 2], 1)

    _, params = stmt.render()
    assert params == [[1, 2]]
    assert all(type(v) is int for v in params[0])


def test_set_field_by_name_and_position():
    """Test result columns are written by name or by 1-based index"""
    d = describe(Widget)
    entity = Widget()
    rs = ResultSet.from_rows([(5, 'gear', None)], ['ID', 'NAME', 'SCORE'])
    rs.next()

    types.set_field(rs, d.field('name'), entity)
    types.set_field(rs, d.primary_key, entity, 1)
    types.set_field(rs, d.field('score'), entity)

    assert entity == Widget(id=5, name='gear', score=None)


def test_copy_field_and_extract_key():
    """Test copying between instances and extracting a generated key"""
    d = describe(Widget)
    origin = Widget(id=None, name='bolt', score=4)
    target = Widget()

    for field in d.columns:
        types.copy_field(field, target, origin)
    rs = ResultSet.from_rows([(42,)], ['id'])
    rs.next()
    types.extract_key(rs, d.primary_key, target)

    assert target == Widget(id=42, name='bolt', score=4)


def test_sqlite_nulls_are_untyped():
    """Test SQLite renders typed nulls as plain placeholders"""
    strategy = get_strategy('sqlite')
    assert strategy.render_placeholder(SqlType.INTEGER) == '?'
