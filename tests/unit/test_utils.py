"""
Unit tests for connection utilities.
"""
import sqlite3

import pytest
from dorm.utils import get_dialect_name, get_raw_connection, snake_case


@pytest.mark.parametrize(('name', 'expected'), [
    ('Widget', 'widget'),
    ('OrderLine', 'order_line'),
    ('HTTPRequestLog', 'http_request_log'),
    ('Item2Price', 'item2_price'),
    ('lower', 'lower'),
])
def test_snake_case(name, expected):
    assert snake_case(name) == expected


def test_dialect_from_raw_connections(create_simple_mock_connection):
    """Test dialect detection from driver module names"""
    assert get_dialect_name(create_simple_mock_connection('postgresql')) == 'postgresql'
    assert get_dialect_name(create_simple_mock_connection('sqlite')) == 'sqlite'
    with pytest.raises(AttributeError):
        get_dialect_name(create_simple_mock_connection('unknown'))


def test_dialect_from_real_sqlite_connection():
    cn = sqlite3.connect(':memory:')
    try:
        assert get_dialect_name(cn) == 'sqlite'
        assert get_raw_connection(cn) is cn
    finally:
        cn.close()


def test_dialect_attribute_wins():
    """Test wrapper objects report their own dialect"""
    class Wrapper:
        dialect = 'PostgreSQL'

    assert get_dialect_name(Wrapper()) == 'postgresql'


def test_raw_connection_unwraps_nested_wrappers():
    class Inner:
        pass

    inner = Inner()

    class Middle:
        driver_connection = inner

    class Outer:
        driver_connection = Middle()

    assert get_raw_connection(Outer()) is inner
