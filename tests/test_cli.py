"""
CLI integration tests

Drives the quotedesk commands through Typer's CliRunner against a fresh
database per test.

Fun fact: Unix exit status 1 for "general error" goes back to the very first
edition of Unix in 1971 - and shells still read it the same way today!
"""

import re

import pytest
from typer.testing import CliRunner

from quote_dispatch.cli.main import app


@pytest.fixture
def runner():
    """Typer CLI test runner"""
    return CliRunner()


@pytest.fixture
def db(runner, tmp_path):
    """Initialized database with one verified CNC shop"""
    db_path = tmp_path / "desk.db"
    assert runner.invoke(app, ["init", "--db", str(db_path)]).exit_code == 0
    result = runner.invoke(
        app,
        [
            "provider", "add",
            "--id", "p-1",
            "--name", "Acme CNC",
            "--process", "CNC Machining",
            "--email", "rfq@acme.example.com",
            "--verified",
            "--db", str(db_path),
        ],
    )
    assert result.exit_code == 0, result.output
    return db_path


def create_quote(runner, db) -> str:
    result = runner.invoke(
        app,
        [
            "quote", "create",
            "--customer", "cust-1",
            "--title", "Bracket",
            "--process", "cnc machining",
            "--db", str(db),
        ],
    )
    assert result.exit_code == 0, result.output
    return re.search(r"Created quote: (\S+)", result.output).group(1)


# =============================================================================
# Initialization Tests
# =============================================================================


def test_init_creates_database(runner, tmp_path):
    """Test init command creates database"""
    db_path = tmp_path / "new.db"

    result = runner.invoke(app, ["init", "--db", str(db_path)])

    assert result.exit_code == 0
    assert db_path.exists()
    assert "initialized" in result.output.lower()


def test_init_refuses_existing_database(runner, db):
    result = runner.invoke(app, ["init", "--db", str(db)])

    assert result.exit_code == 1


def test_missing_database(runner, tmp_path):
    result = runner.invoke(
        app, ["quote", "show", "--id", "q-1", "--db", str(tmp_path / "nope.db")]
    )

    assert result.exit_code == 1
    assert "Database not found" in result.output


# =============================================================================
# Workflow Tests
# =============================================================================


def test_quote_to_award(runner, db):
    """Create, dispatch, quote and award through the CLI"""
    quote_id = create_quote(runner, db)

    result = runner.invoke(
        app, ["destination", "add", "--quote", quote_id, "--provider", "p-1", "--db", str(db)]
    )
    assert result.exit_code == 0, result.output
    assert "Added 1 destination(s)" in result.output

    result = runner.invoke(
        app,
        [
            "offer", "upsert",
            "--quote", quote_id,
            "--provider", "p-1",
            "--price", "1250.00",
            "--lead-min", "10",
            "--db", str(db),
        ],
    )
    assert result.exit_code == 0, result.output
    assert "1250.00 USD" in result.output

    result = runner.invoke(
        app, ["award", "create", "--quote", quote_id, "--provider", "p-1", "--db", str(db)]
    )
    assert result.exit_code == 0, result.output
    assert f"Awarded quote {quote_id} to p-1" in result.output

    result = runner.invoke(app, ["quote", "show", "--id", quote_id, "--db", str(db)])
    assert "Status: won" in result.output

    feedback = ["award", "feedback", "--quote", quote_id, "--supplier", "p-1",
                "--reason", "lead_time", "--db", str(db)]
    assert "Recorded award feedback" in runner.invoke(app, feedback).output
    again = runner.invoke(app, feedback)
    assert again.exit_code == 0
    assert "already recorded" in again.output


def test_second_award_fails(runner, db):
    quote_id = create_quote(runner, db)
    runner.invoke(
        app,
        ["provider", "add", "--id", "p-2", "--name", "Zeta", "--verified", "--db", str(db)],
    )
    award = ["award", "create", "--quote", quote_id, "--db", str(db), "--provider"]

    assert runner.invoke(app, award + ["p-1"]).exit_code == 0
    result = runner.invoke(app, award + ["p-2"])

    assert result.exit_code == 1
    assert "winner_exists" in result.output


def test_transition_denied(runner, db):
    quote_id = create_quote(runner, db)

    result = runner.invoke(
        app, ["quote", "transition", "--id", quote_id, "--action", "approve", "--db", str(db)]
    )

    assert result.exit_code == 1
    assert "transition_denied" in result.output


def test_role_option_limits_commands(runner, db):
    quote_id = create_quote(runner, db)

    denied = runner.invoke(
        app,
        ["--role", "customer", "--actor", "cust-1",
         "destination", "add", "--quote", quote_id, "--provider", "p-1", "--db", str(db)],
    )
    archived = runner.invoke(
        app,
        ["--role", "customer", "--actor", "cust-1",
         "quote", "transition", "--id", quote_id, "--action", "archive", "--db", str(db)],
    )

    assert denied.exit_code == 1
    assert "access_denied" in denied.output
    assert archived.exit_code == 0, archived.output
    assert "cancelled" in archived.output


def test_capacity_commands(runner, db):
    request = ["capacity", "request", "--provider", "p-1", "--week", "2025-01-15",
               "--db", str(db)]

    first = runner.invoke(app, request)
    assert first.exit_code == 0, first.output
    assert "week 2025-01-13" in first.output

    second = runner.invoke(app, request)
    assert second.exit_code == 1
    assert "recent_request_exists" in second.output

    check = runner.invoke(
        app, ["capacity", "check", "--provider", "p-1", "--week", "2025-01-13", "--db", str(db)]
    )
    assert "Suppressed" in check.output


def test_rank_json(runner, db):
    quote_id = create_quote(runner, db)

    result = runner.invoke(app, ["provider", "rank", "--quote", quote_id, "--json", "--db", str(db)])

    assert result.exit_code == 0, result.output
    assert '"eligible": true' in result.output
