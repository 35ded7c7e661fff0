"""
Offer validation and completeness scoring

Validation is strict and reports every bad field at once. Completeness is
two-tier: a missing price blocks action, a missing lead time only warns.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel

from quote_dispatch.kernel.errors import ValidationFailed
from quote_dispatch.offers.models import Offer, OfferCompleteness, OfferInput


BLOCKING_FIELDS = ("total_price",)
ADVISORY_FIELDS = ("lead_time",)


class ValidatedOffer(BaseModel):
    """OfferInput after parsing; ready to become an Offer"""

    total_price: Decimal
    currency: str
    lead_time_days_min: int | None = None
    lead_time_days_max: int | None = None
    internal_cost: Decimal | None = None
    internal_shipping_cost: Decimal | None = None


def _parse_decimal(value: Any) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValueError("not a number")
    try:
        parsed = Decimal(str(value).strip().replace(",", ""))
    except InvalidOperation as e:
        raise ValueError("not a number") from e
    if not parsed.is_finite():
        raise ValueError("not a number")
    return parsed


def _parse_positive_int(value: Any) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValueError("not a whole number")
    if isinstance(value, int):
        parsed = value
    else:
        number = _parse_decimal(value)
        if number is None or number != number.to_integral_value():
            raise ValueError("not a whole number")
        parsed = int(number)
    if parsed <= 0:
        raise ValueError("must be positive")
    return parsed


def validate_offer_input(fields: OfferInput, default_currency: str = "USD") -> ValidatedOffer:
    """
    Parse and check raw offer fields

    Args:
        fields: Raw submission
        default_currency: Used when the submission names no currency

    Returns:
        Parsed values

    Raises:
        ValidationFailed: With one message per offending field
    """
    errors: dict[str, str] = {}

    try:
        price = _parse_decimal(fields.total_price)
        if price is None:
            errors["total_price"] = "Total price is required"
        elif price <= 0:
            errors["total_price"] = "Total price must be greater than zero"
    except ValueError:
        price = None
        errors["total_price"] = "Total price must be a number"

    lead_times: dict[str, int | None] = {}
    for name in ("lead_time_days_min", "lead_time_days_max"):
        try:
            lead_times[name] = _parse_positive_int(getattr(fields, name))
        except ValueError:
            lead_times[name] = None
            errors[name] = "Lead time must be a positive whole number of days"

    low, high = lead_times["lead_time_days_min"], lead_times["lead_time_days_max"]
    if low is not None and high is not None and low > high:
        errors["lead_time_days_max"] = "Maximum lead time cannot be below the minimum"

    costs: dict[str, Decimal | None] = {}
    for name in ("internal_cost", "internal_shipping_cost"):
        try:
            costs[name] = _parse_decimal(getattr(fields, name))
            if costs[name] is not None and costs[name] < 0:
                errors[name] = "Cost cannot be negative"
        except ValueError:
            costs[name] = None
            errors[name] = "Cost must be a number"

    currency = (fields.currency or "").strip().upper() or default_currency
    if len(currency) != 3 or not currency.isalpha():
        errors["currency"] = "Currency must be a three-letter code"

    if errors:
        raise ValidationFailed(errors)

    return ValidatedOffer(
        total_price=price,
        currency=currency,
        lead_time_days_min=low,
        lead_time_days_max=high,
        internal_cost=costs["internal_cost"],
        internal_shipping_cost=costs["internal_shipping_cost"],
    )


def score_completeness(offer: Offer) -> OfferCompleteness:
    """
    Judge whether an offer can be acted on

    Provider-submitted and external offers are scored the same way.

    Returns:
        is_actionable False only when the price is missing; `missing` also
        lists advisory gaps such as lead time
    """
    missing: list[str] = []
    if offer.total_price is None or offer.total_price <= 0:
        missing.append("total_price")
    if offer.lead_time_days_min is None and offer.lead_time_days_max is None:
        missing.append("lead_time")

    blocking = [m for m in missing if m in BLOCKING_FIELDS]
    return OfferCompleteness(is_actionable=not blocking, missing=missing)
