"""
Entity operations against an in-memory SQLite database.
"""
import datetime
import decimal
import sqlite3
import uuid

import dorm
import pytest
from dorm import Dorm, DormOptions, TypeMappingError

from tests.fixtures.entities import Account, Counter, Gadget, OrderLine, Widget
from tests.fixtures.entities import make_account


def test_insert_generates_key(any_sqlite_conn, widget):
    """Test insert without a key returns a new entity with the generated key"""
    saved = dorm.insert(any_sqlite_conn, widget)

    assert saved is not widget
    assert saved.id == 1
    assert saved.name == widget.name
    assert saved.score is None
    assert widget.id is None


def test_insert_then_select_round_trip(any_sqlite_conn):
    """Test select(insert(e).key) equals insert(e) field for field"""
    saved = dorm.insert(any_sqlite_conn, Widget(name='gear', score=12))

    assert dorm.select(any_sqlite_conn, saved.id, Widget) == saved


def test_null_score_round_trips_as_none(sqlite_conn):
    """Test {id: None, name: a, score: None} comes back with key 7 and a null score"""
    for n in range(1, 7):
        dorm.insert(sqlite_conn, Widget(id=n, name=f'filler{n}'))

    saved = dorm.insert(sqlite_conn, Widget(id=None, name='a', score=None))
    assert saved.id == 7

    loaded = dorm.select(sqlite_conn, 7, Widget)
    assert loaded == Widget(id=7, name='a', score=None)
    assert loaded.score is None


def test_insert_with_explicit_key(any_sqlite_conn):
    """Test a provided key is used and the same entity is returned"""
    widget = Widget(id=42, name='bolt', score=0)
    saved = dorm.insert(any_sqlite_conn, widget)

    assert saved is widget
    assert dorm.select(any_sqlite_conn, 42, Widget) == widget


def test_select_unmatched_key(any_sqlite_conn):
    """Test a missing row is None, not an error"""
    assert dorm.select(any_sqlite_conn, 999, Widget) is None


def test_update(any_sqlite_conn):
    """Test update writes every column and reports the row count"""
    saved = dorm.insert(any_sqlite_conn, Widget(name='gear', score=1))
    saved.name = 'cog'
    saved.score = None

    assert dorm.update(any_sqlite_conn, saved) == 1
    assert dorm.select(any_sqlite_conn, saved.id, Widget) == Widget(id=saved.id, name='cog', score=None)
    assert dorm.update(any_sqlite_conn, Widget(id=999, name='ghost')) == 0


def test_delete(any_sqlite_conn):
    """Test delete by key"""
    saved = dorm.insert(any_sqlite_conn, Widget(name='gear'))

    assert dorm.delete(any_sqlite_conn, saved.id, Widget) == 1
    assert dorm.select(any_sqlite_conn, saved.id, Widget) is None
    assert dorm.delete(any_sqlite_conn, saved.id, Widget) == 0


def test_select_many_dedupes_keys(any_sqlite_conn, sqlite_orm):
    """Test duplicate keys are bound once and unknown keys are skipped"""
    for name in ('a', 'b', 'c'):
        sqlite_orm.insert(any_sqlite_conn, Widget(name=name))

    result = sqlite_orm.select_many(any_sqlite_conn, [1, 1, 2, 2, 99], Widget)

    assert len(result) == 2
    assert sorted(w.name for w in result) == ['a', 'b']


def test_select_many_empty_keys(any_sqlite_conn, sqlite_orm):
    assert sqlite_orm.select_many(any_sqlite_conn, [], Widget) == []
    assert dorm.select_many(any_sqlite_conn, set(), Widget) == []


def test_select_many_with_array_parameter_fails_on_sqlite(sqlite_conn):
    """Test the default array bulk select surfaces the store error unchanged"""
    dorm.insert(sqlite_conn, Widget(name='a'))

    with pytest.raises(sqlite3.Error):
        dorm.select_many(sqlite_conn, [1], Widget)


def test_all_default_types_round_trip(sqlite_conn, gadget):
    """Test every default mapping through a real store"""
    saved = dorm.insert(sqlite_conn, gadget)
    loaded = dorm.select(sqlite_conn, saved.gadget_id, Gadget)

    assert loaded == saved
    assert loaded.price == decimal.Decimal('12.50')
    assert loaded.made_on == datetime.date(2024, 1, 2)
    assert loaded.updated_at == datetime.datetime(2024, 1, 2, 3, 4, 5)
    assert loaded.token == uuid.UUID('12345678-1234-5678-1234-567812345678')
    assert loaded.payload == b'\x00\x01\x02'
    assert loaded.active is True
    assert loaded.note == 'unsaved'


def test_nulls_in_every_nullable_column(any_sqlite_conn):
    """Test nullable fields come back as None and primitives as zero"""
    saved = dorm.insert(any_sqlite_conn, Gadget())
    loaded = dorm.select(any_sqlite_conn, saved.gadget_id, Gadget)

    assert loaded.weight is None
    assert loaded.price is None
    assert loaded.made_on is None
    assert loaded.token is None
    assert loaded.qty == 0
    assert loaded.active is False


def test_natural_string_key(any_sqlite_conn):
    """Test a plain class with a caller-assigned key"""
    account = make_account('A-1', 'ada', 10.5)

    assert dorm.insert(any_sqlite_conn, account) is account
    loaded = dorm.select(any_sqlite_conn, 'A-1', Account)

    assert isinstance(loaded, Account)
    assert (loaded.account_no, loaded.owner, loaded.balance) == ('A-1', 'ada', 10.5)


def test_primitive_key_is_never_provided(any_sqlite_conn):
    """Test a non-nullable int key is always generated by the store"""
    saved = dorm.insert(any_sqlite_conn, Counter(id=5, hits=2))

    assert saved.id == 1
    assert saved.hits == 2
    assert dorm.select(any_sqlite_conn, 5, Counter) is None


def test_unbindable_field_raises(sqlite_conn):
    """Test a field type with neither a mapping nor a driver adapter"""
    with pytest.raises(TypeMappingError):
        dorm.insert(sqlite_conn, OrderLine(details={'a': 1}))


def test_operations_do_not_commit(sl_conn):
    """Test transaction boundaries are left to the caller"""
    saved = dorm.insert(sl_conn, Widget(name='temp'))
    sl_conn.rollback()

    assert dorm.select(sl_conn, saved.id, Widget) is None


def test_quoted_identifiers(any_sqlite_conn):
    orm = Dorm(DormOptions(array_support=False, quote_identifiers=True))
    saved = orm.insert(any_sqlite_conn, Widget(name='quoted'))

    assert orm.select(any_sqlite_conn, saved.id, Widget) == saved
    assert orm.select_many(any_sqlite_conn, [saved.id], Widget) == [saved]
