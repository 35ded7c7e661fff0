"""
SQLite Lock Retry Tests
"""

import sqlite3

import pytest

from quote_dispatch.kernel.retry import retry_on_sqlite_lock


def test_retries_lock_errors_until_success() -> None:
    calls = {"n": 0}

    @retry_on_sqlite_lock(max_attempts=5, min_wait_ms=1, max_wait_ms=2)
    def flaky() -> str:
        calls["n"] += 1
        if calls["n"] < 3:
            raise sqlite3.OperationalError("database is locked")
        return "written"

    assert flaky() == "written"
    assert calls["n"] == 3


def test_gives_up_after_max_attempts() -> None:
    calls = {"n": 0}

    @retry_on_sqlite_lock(max_attempts=3, min_wait_ms=1, max_wait_ms=2)
    def always_busy() -> None:
        calls["n"] += 1
        raise sqlite3.OperationalError("database is busy")

    with pytest.raises(sqlite3.OperationalError):
        always_busy()
    assert calls["n"] == 3


def test_other_operational_errors_are_not_retried() -> None:
    calls = {"n": 0}

    @retry_on_sqlite_lock(max_attempts=5, min_wait_ms=1, max_wait_ms=2)
    def broken_sql() -> None:
        calls["n"] += 1
        raise sqlite3.OperationalError("no such table: quotes")

    with pytest.raises(sqlite3.OperationalError, match="no such table"):
        broken_sql()
    assert calls["n"] == 1
