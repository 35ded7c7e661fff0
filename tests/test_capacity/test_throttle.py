"""
Capacity Request Throttle Tests

A provider is asked about a week at most once per window, unless they have
answered since.
"""

from datetime import datetime, timedelta, timezone

import pytest

from quote_dispatch.capacity.models import CapacityLevel, CapacityRequestReason, CapacityUpdateRequest
from quote_dispatch.capacity.throttle import is_suppressed, validate_week_start_date
from quote_dispatch.kernel.actors import Actor, ActorRole
from quote_dispatch.kernel.errors import ValidationFailed
from quote_dispatch.kernel.events import EventType
from tests.helpers import build_provider, seed_providers, unwrap

WEEK = "2025-01-13"


@pytest.fixture
def provider(desk):
    return seed_providers(desk, build_provider("p-1"))[0]


# =============================================================================
# Pure rule
# =============================================================================


def _request(created_at: datetime) -> CapacityUpdateRequest:
    return CapacityUpdateRequest(
        id="r-1",
        provider_id="p-1",
        week_start_date=WEEK,
        reason=CapacityRequestReason.STALE,
        created_at=created_at,
    )


def test_is_suppressed_rule() -> None:
    asked = datetime(2025, 1, 13, 9, 0, tzinfo=timezone.utc)
    window = timedelta(days=7)

    assert not is_suppressed(None, None, asked, window)
    assert is_suppressed(_request(asked), None, asked + timedelta(days=6), window)
    assert not is_suppressed(_request(asked), None, asked + window, window)
    assert is_suppressed(_request(asked), asked, asked + timedelta(hours=1), window)
    assert not is_suppressed(
        _request(asked), asked + timedelta(minutes=1), asked + timedelta(hours=1), window
    )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2025-01-13", "2025-01-13"),
        ("2025-01-15", "2025-01-13"),
        (" 2025-01-19 ", "2025-01-13"),
        ("2025-01-20", "2025-01-20"),
    ],
)
def test_week_is_normalised_to_monday(raw, expected) -> None:
    assert validate_week_start_date(raw) == expected


@pytest.mark.parametrize("raw", ["", "next week", "2025-13-01", None])
def test_malformed_week(raw) -> None:
    with pytest.raises(ValidationFailed) as exc_info:
        validate_week_start_date(raw)
    assert "week_start_date" in exc_info.value.field_errors


# =============================================================================
# Through the desk
# =============================================================================


def test_request_then_suppress_then_answer(desk, provider, test_time) -> None:
    assert unwrap(desk.should_suppress_capacity_request("p-1", WEEK)) is False

    request = unwrap(desk.request_capacity_update("p-1", WEEK, reason="stale"))
    assert request.reason == CapacityRequestReason.STALE
    assert request.requested_by_actor_id == "ops-1"

    assert unwrap(desk.should_suppress_capacity_request("p-1", WEEK)) is True
    repeat = desk.request_capacity_update("p-1", WEEK)
    assert repeat.error_kind == "recent_request_exists"

    test_time.advance_seconds(3600)
    snapshot = unwrap(
        desk.record_capacity_update("p-1", WEEK, "CNC Machining", CapacityLevel.HIGH)
    )
    assert snapshot.capability == "cnc machining"

    assert unwrap(desk.should_suppress_capacity_request("p-1", WEEK)) is False
    assert unwrap(desk.request_capacity_update("p-1", WEEK)).week_start_date == WEEK


def test_suppression_expires_with_window(desk, provider, test_time) -> None:
    unwrap(desk.request_capacity_update("p-1", WEEK))

    test_time.advance_days(6)
    assert unwrap(desk.should_suppress_capacity_request("p-1", WEEK)) is True

    test_time.advance_days(1)
    assert unwrap(desk.should_suppress_capacity_request("p-1", WEEK)) is False


def test_suppression_at_explicit_time(desk, provider, test_time) -> None:
    unwrap(desk.request_capacity_update("p-1", WEEK))
    asked = test_time.now()

    assert unwrap(
        desk.should_suppress_capacity_request("p-1", WEEK, now=asked + timedelta(days=1))
    ) is True
    assert unwrap(
        desk.should_suppress_capacity_request("p-1", WEEK, now=asked + timedelta(days=7))
    ) is False


def test_naive_time_is_read_as_utc(desk, provider) -> None:
    # Request recorded at 2025-01-15 12:00 UTC
    unwrap(desk.request_capacity_update("p-1", WEEK))

    assert desk.capacity.should_suppress("p-1", WEEK, datetime(2025, 1, 15, 13)) is True
    assert desk.capacity.should_suppress("p-1", WEEK, datetime(2025, 1, 22, 12)) is False

    result = desk.should_suppress_capacity_request("p-1", WEEK, now=datetime(2025, 1, 16, 9))
    assert result.ok
    assert result.value is True


def test_any_day_of_week_is_the_same_week(desk, provider) -> None:
    request = unwrap(desk.request_capacity_update("p-1", "2025-01-15"))

    assert request.week_start_date == WEEK
    assert unwrap(desk.should_suppress_capacity_request("p-1", "2025-01-17")) is True
    assert unwrap(desk.should_suppress_capacity_request("p-1", "2025-01-20")) is False


def test_other_provider_is_not_suppressed(desk, provider) -> None:
    seed_providers(desk, build_provider("p-2"))
    unwrap(desk.request_capacity_update("p-1", WEEK))

    assert unwrap(desk.should_suppress_capacity_request("p-2", WEEK)) is False


def test_request_validation(desk, provider) -> None:
    assert desk.request_capacity_update("p-1", "soon").error_kind == "validation_failed"
    assert desk.request_capacity_update("ghost", WEEK).error_kind == "validation_failed"
    assert desk.request_capacity_update("p-1", WEEK, reason="urgent").error_kind == (
        "validation_failed"
    )


def test_request_is_announced(desk, provider) -> None:
    seen = []
    desk.bus.subscribe(EventType.CAPACITY_UPDATE_REQUESTED, seen.append)

    unwrap(desk.request_capacity_update("p-1", WEEK, quote_id="q-9"))

    assert len(seen) == 1
    assert seen[0].payload == {
        "provider_id": "p-1",
        "week_start_date": WEEK,
        "reason": "manual",
        "quote_id": "q-9",
    }


def test_unrecorded_request_still_returned(desk, provider, monkeypatch) -> None:
    def broken(request) -> None:
        raise RuntimeError("disk full")

    monkeypatch.setattr(desk.store, "append_capacity_request", broken)

    result = desk.request_capacity_update("p-1", WEEK)

    assert result.ok
    assert unwrap(desk.should_suppress_capacity_request("p-1", WEEK)) is False


def test_requests_are_admin_only(make_desk, desk, provider) -> None:
    supplier = make_desk(Actor(id="p-1", role=ActorRole.SUPPLIER))

    assert supplier.request_capacity_update("p-1", WEEK).error_kind == "access_denied"
    assert supplier.should_suppress_capacity_request("p-1", WEEK).error_kind == "access_denied"


# =============================================================================
# Capacity reports
# =============================================================================


def test_supplier_reports_own_capacity_only(make_desk, desk, provider, test_time) -> None:
    seed_providers(desk, build_provider("p-2"))
    supplier = make_desk(Actor(id="p-1", role=ActorRole.SUPPLIER))

    own = unwrap(supplier.record_capacity_update("p-1", WEEK, "cnc", "medium", notes=" Busy "))
    other = supplier.record_capacity_update("p-2", WEEK, "cnc", "low")

    assert own.capacity_level == CapacityLevel.MEDIUM
    assert own.notes == "Busy"
    assert own.created_at == test_time.now()
    assert other.error_kind == "access_denied"


def test_repeat_report_replaces_previous(desk, provider, test_time) -> None:
    unwrap(desk.record_capacity_update("p-1", WEEK, "cnc", "low"))
    test_time.advance_seconds(60)

    unwrap(desk.record_capacity_update("p-1", WEEK, "cnc", "overloaded"))

    assert desk.store.latest_capacity_update("p-1", WEEK) == test_time.now()


def test_report_validation(desk, provider) -> None:
    result = desk.record_capacity_update("p-1", WEEK, "  ", "swamped")

    assert result.error_kind == "validation_failed"
    assert set(result.detail["fields"]) == {"capability", "capacity_level"}
