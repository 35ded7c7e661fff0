"""
Offer Validation and Completeness Tests
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from quote_dispatch.kernel.actors import ActorRole
from quote_dispatch.kernel.errors import ValidationFailed
from quote_dispatch.offers.models import Offer, OfferInput, OfferSource
from quote_dispatch.offers.scoring import score_completeness, validate_offer_input
from quote_dispatch.offers.visibility import project_offer_for_role

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def field_errors(**fields) -> dict[str, str]:
    with pytest.raises(ValidationFailed) as exc_info:
        validate_offer_input(OfferInput(**fields))
    return exc_info.value.field_errors


def test_valid_offer_is_parsed() -> None:
    parsed = validate_offer_input(
        OfferInput(
            total_price="1,250.00",
            currency="eur",
            lead_time_days_min="10",
            lead_time_days_max=15,
            internal_cost="980.5",
        )
    )

    assert parsed.total_price == Decimal("1250.00")
    assert parsed.currency == "EUR"
    assert (parsed.lead_time_days_min, parsed.lead_time_days_max) == (10, 15)
    assert parsed.internal_cost == Decimal("980.5")


def test_currency_defaults_from_policy() -> None:
    assert validate_offer_input(OfferInput(total_price=10), "CAD").currency == "CAD"


@pytest.mark.parametrize(
    "price, message",
    [
        (None, "Total price is required"),
        ("", "Total price is required"),
        ("0", "Total price must be greater than zero"),
        ("-5", "Total price must be greater than zero"),
        ("abc", "Total price must be a number"),
        ("NaN", "Total price must be a number"),
    ],
)
def test_price_rules(price, message) -> None:
    assert field_errors(total_price=price)["total_price"] == message


def test_every_bad_field_is_reported_at_once() -> None:
    errors = field_errors(
        total_price="-1",
        currency="dollars",
        lead_time_days_min="2.5",
        internal_shipping_cost="-3",
    )

    assert set(errors) == {
        "total_price",
        "currency",
        "lead_time_days_min",
        "internal_shipping_cost",
    }


def test_lead_time_range_must_be_ordered() -> None:
    errors = field_errors(total_price="100", lead_time_days_min=10, lead_time_days_max=5)

    assert errors == {"lead_time_days_max": "Maximum lead time cannot be below the minimum"}


@pytest.mark.parametrize("value", [0, -3, "1.5", True])
def test_lead_time_must_be_positive_whole_days(value) -> None:
    assert "lead_time_days_min" in field_errors(total_price="100", lead_time_days_min=value)


def test_completeness_two_tiers() -> None:
    priced = Offer(
        id="o-1",
        quote_id="q-1",
        provider_id="p-1",
        total_price=Decimal("100"),
        received_at=NOW,
        updated_at=NOW,
    )
    unpriced = priced.model_copy(update={"total_price": None, "lead_time_days_min": 5})

    assert score_completeness(priced).is_actionable
    assert score_completeness(priced).missing == ["lead_time"]
    assert not score_completeness(unpriced).is_actionable
    assert score_completeness(unpriced).missing == ["total_price"]


def test_projection_hides_internal_fields_from_non_admins() -> None:
    offer = Offer(
        id="o-1",
        quote_id="q-1",
        provider_id="p-1",
        total_price=Decimal("100"),
        internal_cost=Decimal("70"),
        source_type=OfferSource.EXTERNAL,
        source_name="Broker portal",
        received_at=NOW,
        updated_at=NOW,
    )

    admin_view = project_offer_for_role(offer, ActorRole.ADMIN)
    customer_view = project_offer_for_role(offer, ActorRole.CUSTOMER)

    assert admin_view["internal_cost"] == "70"
    assert admin_view["source_name"] == "Broker portal"
    assert "internal_cost" not in customer_view
    assert "source_type" not in customer_view
    assert customer_view["total_price"] == "100"
