"""
Dispatch Mode Resolution and Derived Status Tests

Both functions are pure, so these tests build records in memory.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from quote_dispatch.dispatch.models import Destination, DestinationStatus, DispatchStatus
from quote_dispatch.dispatch.readiness import (
    MISSING_EMAIL,
    MISSING_RFQ_URL,
    NO_CHANNEL,
    derive_dispatch_status,
    resolve_dispatch_mode,
)
from quote_dispatch.offers.models import Offer, OfferStatus
from quote_dispatch.providers.models import DispatchMode
from tests.helpers import build_provider

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_destination(**overrides) -> Destination:
    fields = dict(
        id="d-1",
        quote_id="q-1",
        provider_id="p-1",
        offer_token="tok",
        created_at=NOW,
        last_status_at=NOW,
    )
    fields.update(overrides)
    return Destination(**fields)


def make_offer(status: OfferStatus = OfferStatus.RECEIVED, provider_id: str = "p-1") -> Offer:
    return Offer(
        id="o-1",
        quote_id="q-1",
        provider_id=provider_id,
        total_price=Decimal("100"),
        status=status,
        received_at=NOW,
        updated_at=NOW,
    )


# =============================================================================
# resolve_dispatch_mode
# =============================================================================


def test_email_inferred_when_present() -> None:
    readiness = resolve_dispatch_mode(None, build_provider("p-1", rfq_url="https://x.example/rfq"))

    assert readiness.mode == DispatchMode.EMAIL
    assert readiness.is_ready
    assert readiness.blocking_reasons == []


def test_web_form_inferred_from_rfq_url_only() -> None:
    readiness = resolve_dispatch_mode(
        None, build_provider("p-1", email=None, rfq_url="https://x.example/rfq")
    )

    assert readiness.mode == DispatchMode.WEB_FORM
    assert readiness.is_ready


def test_no_channel_blocks_with_fix() -> None:
    readiness = resolve_dispatch_mode(None, build_provider("p-1", email="  "))

    assert readiness.mode is None
    assert not readiness.is_ready
    assert readiness.blocking_reasons == [NO_CHANNEL]
    assert readiness.recommended_fix == ["Add provider email or RFQ URL"]


def test_explicit_mode_is_never_swapped() -> None:
    provider = build_provider("p-1", dispatch_mode=DispatchMode.WEB_FORM)

    readiness = resolve_dispatch_mode(None, provider)

    assert readiness.mode == DispatchMode.WEB_FORM
    assert not readiness.is_ready
    assert readiness.blocking_reasons == [MISSING_RFQ_URL]
    assert readiness.recommended_fix == ["Add RFQ URL"]


def test_destination_mode_beats_provider_hint() -> None:
    provider = build_provider(
        "p-1", email=None, rfq_url="https://x.example/rfq", dispatch_mode=DispatchMode.WEB_FORM
    )
    destination = make_destination(dispatch_mode=DispatchMode.EMAIL)

    readiness = resolve_dispatch_mode(destination, provider)

    assert readiness.mode == DispatchMode.EMAIL
    assert readiness.blocking_reasons == [MISSING_EMAIL]


# =============================================================================
# derive_dispatch_status
# =============================================================================


@pytest.mark.parametrize(
    "overrides, expected",
    [
        ({}, DispatchStatus.NOT_STARTED),
        ({"dispatch_started_at": NOW}, DispatchStatus.IN_PROGRESS),
        ({"dispatch_started_at": NOW, "submitted_at": NOW}, DispatchStatus.SUBMITTED),
        (
            {"submitted_at": NOW, "status": DestinationStatus.DECLINED},
            DispatchStatus.SUBMITTED,
        ),
    ],
)
def test_status_from_timestamps(overrides, expected) -> None:
    assert derive_dispatch_status(make_destination(**overrides), []) == expected


def test_live_offer_wins_over_timestamps() -> None:
    destination = make_destination()

    assert derive_dispatch_status(destination, [make_offer()]) == DispatchStatus.OFFER_RECEIVED
    assert (
        derive_dispatch_status(destination, [make_offer(OfferStatus.REVISED)])
        == DispatchStatus.OFFER_RECEIVED
    )


def test_withdrawn_or_foreign_offers_are_ignored() -> None:
    destination = make_destination(submitted_at=NOW)

    offers = [make_offer(OfferStatus.WITHDRAWN), make_offer(provider_id="p-2")]

    assert derive_dispatch_status(destination, offers) == DispatchStatus.SUBMITTED
