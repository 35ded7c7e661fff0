"""
Tests for health server

Tests Flask-based health check endpoints for Kubernetes liveness and readiness
probes against a database created by a real QuoteDesk.

Fun fact: The concept of "health checks" in distributed systems was pioneered by Amazon
in the early 2000s when building their highly available retail platform. Today, every
cloud-native system uses similar patterns!
"""

import sqlite3

import pytest

from quote_dispatch import health_server
from quote_dispatch.health_server import app, initialize_health_server
from tests.helpers import build_provider, seed_destination, seed_providers, seed_quote, unwrap


@pytest.fixture
def client():
    """Flask test client"""
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


@pytest.fixture(autouse=True)
def reset_server():
    yield
    health_server._db_path = None


@pytest.fixture
def populated_db(desk, temp_db):
    """Database with two quotes, one destination and one award"""
    seed_providers(desk, build_provider("p-1"))
    first = seed_quote(desk)
    seed_quote(desk, title="Second bracket")
    seed_destination(desk, first.id, "p-1")
    unwrap(desk.award(first.id, "p-1"))
    return temp_db


# =============================================================================
# Liveness
# =============================================================================


def test_liveness_needs_nothing(client):
    response = client.get("/health/live")

    assert response.status_code == 200
    assert response.get_json() == {"status": "alive", "service": "quote-dispatch"}


# =============================================================================
# Readiness
# =============================================================================


def test_readiness_without_initialization(client):
    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_path_not_initialized"


def test_readiness_with_missing_file(client, tmp_path):
    initialize_health_server(tmp_path / "missing.db")

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_file_not_found"


def test_readiness_with_foreign_database(client, tmp_path):
    """A SQLite file without the quote desk schema is not ready"""
    db_path = tmp_path / "other.db"
    sqlite3.connect(str(db_path)).close()
    initialize_health_server(db_path)

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_operational_error"


def test_readiness_reports_quote_count(client, populated_db):
    initialize_health_server(populated_db)

    response = client.get("/health/ready")

    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "ready"
    assert data["quote_count"] == 2


# =============================================================================
# Detailed health
# =============================================================================


def test_detailed_health_counts_pipeline(client, populated_db):
    initialize_health_server(populated_db)

    response = client.get("/health")

    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "healthy"
    assert data["version"]
    assert data["database"]["quotes_by_status"] == {"submitted": 1, "won": 1}
    assert data["database"]["destination_count"] == 1
    assert data["database"]["award_count"] == 1


def test_detailed_health_degraded_without_database(client):
    response = client.get("/health")

    assert response.status_code == 503
    assert response.get_json()["database"] == {"status": "not_initialized"}
