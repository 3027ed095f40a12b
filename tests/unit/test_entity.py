"""
Unit tests for entity materialization.
"""
from dataclasses import dataclass

import numpy as np
import pytest
from dorm import describe
from dorm.entity import is_primitive, new_instance, read_field, write_field
from dorm.entity import zero_value

from tests.fixtures.entities import Account, Gadget, Widget


@pytest.mark.parametrize(('value_type', 'expected'), [
    (int, 0),
    (float, 0.0),
    (bool, False),
    (np.int32, 0),
    (str, None),
    (bytes, None),
])
def test_zero_value_for_required_fields(value_type, expected):
    """Test non-nullable fields start at zero, object types at None"""
    assert zero_value(value_type, nullable=False) == expected


def test_zero_value_for_nullable_fields():
    assert zero_value(int, nullable=True) is None
    assert zero_value(bool) is None


def test_is_primitive():
    assert is_primitive(int)
    assert is_primitive(np.float64)
    assert not is_primitive(str)
    assert not is_primitive(list[int])


def test_new_instance_uses_declared_defaults():
    """Test a blank dataclass instance without calling __init__"""
    entity = new_instance(Widget, describe(Widget))

    assert isinstance(entity, Widget)
    assert entity == Widget(id=None, name='', score=None)


def test_new_instance_sets_transient_defaults():
    """Test transient fields get their default or factory value"""
    first = new_instance(Gadget, describe(Gadget))
    second = new_instance(Gadget, describe(Gadget))

    assert first.note == 'unsaved'
    assert first.tags == []
    assert first.tags is not second.tags
    assert first.qty == 0
    assert first.active is False


def test_new_instance_of_plain_class():
    """Test plain classes start with zero values and None"""
    account = new_instance(Account, describe(Account))

    assert account.account_no is None
    assert account.owner is None
    assert account.balance == 0.0


def test_new_instance_skips_init():
    """Test __init__ side effects do not run"""
    calls = []

    class Audited:
        id: int | None

        def __init__(self):
            calls.append(self)

    entity = new_instance(Audited, describe(Audited))
    assert entity.id is None
    assert calls == []


def test_write_field_on_frozen_dataclass():
    """Test fields of frozen dataclasses can be populated"""
    @dataclass(frozen=True)
    class Point:
        id: int | None = None
        x: float = 0.0

    d = describe(Point)
    point = new_instance(Point, d)
    write_field(point, d.field('x'), 2.5)

    assert read_field(point, d.field('x')) == 2.5
    assert point == Point(id=None, x=2.5)
