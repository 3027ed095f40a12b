"""
Fixtures for SQLite-specific integration tests.
"""
import pytest


@pytest.fixture(params=['sqlite_conn', 'sl_conn'])
def any_sqlite_conn(request):
    """Run a test against both a raw sqlite3 connection and a ConnectionWrapper."""
    return request.getfixturevalue(request.param)
