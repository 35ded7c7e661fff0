"""
Pytest configuration and shared fixtures

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator

import pytest

from quote_dispatch.desk import QuoteDesk
from quote_dispatch.kernel.actors import Actor, ActorRole, StaticActorContext
from quote_dispatch.kernel.policy import DispatchPolicy
from quote_dispatch.kernel.time import TestTimeProvider
from quote_dispatch.store import SQLiteStore


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup, including WAL side files
    for path in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if path.exists():
            path.unlink()


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC, a Wednesday, so its capacity
    week starts on Monday 2025-01-13.
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> DispatchPolicy:
    """Provide default dispatch policy for tests"""
    return DispatchPolicy()


@pytest.fixture
def admin() -> Actor:
    return Actor(id="ops-1", role=ActorRole.ADMIN)


@pytest.fixture
def customer() -> Actor:
    return Actor(id="cust-1", role=ActorRole.CUSTOMER)


@pytest.fixture
def make_desk(
    temp_db: Path, test_time: TestTimeProvider, policy: DispatchPolicy
) -> Iterator[Callable[..., QuoteDesk]]:
    """
    Factory for desks sharing one database and clock, one per acting user

    Notifications are delivered inline so tests can assert on subscribers
    without waiting on a worker thread.
    """
    desks: list[QuoteDesk] = []

    def factory(actor: Actor, **kwargs) -> QuoteDesk:
        kwargs.setdefault("policy", policy)
        kwargs.setdefault("time_provider", test_time)
        kwargs.setdefault("background_notifications", False)
        desk = QuoteDesk(temp_db, StaticActorContext(actor), **kwargs)
        desks.append(desk)
        return desk

    yield factory

    for desk in desks:
        desk.close()


@pytest.fixture
def desk(make_desk: Callable[..., QuoteDesk], admin: Actor) -> QuoteDesk:
    """Desk acting as an admin operator"""
    return make_desk(admin)


@pytest.fixture
def store(desk: QuoteDesk) -> SQLiteStore:
    return desk.store
