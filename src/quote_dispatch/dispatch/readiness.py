"""
Dispatch mode resolution and derived dispatch status

Both functions here are pure: they read the records passed in and never
touch storage, so they can be recomputed on every read.
"""

from typing import Iterable

from quote_dispatch.dispatch.models import (
    Destination,
    DispatchReadiness,
    DispatchStatus,
)
from quote_dispatch.offers.models import Offer
from quote_dispatch.providers.models import DispatchMode, Provider


MISSING_EMAIL = "Missing provider email"
MISSING_RFQ_URL = "Missing RFQ URL"
NO_CHANNEL = "No contact channel on file"

FIX_FOR = {
    MISSING_EMAIL: "Add provider email",
    MISSING_RFQ_URL: "Add RFQ URL",
    NO_CHANNEL: "Add provider email or RFQ URL",
}


def _has(value: str | None) -> bool:
    return bool(value and value.strip())


def _blocked(mode: DispatchMode | None, *reasons: str) -> DispatchReadiness:
    return DispatchReadiness(
        mode=mode,
        is_ready=False,
        blocking_reasons=list(reasons),
        recommended_fix=[FIX_FOR[r] for r in reasons],
    )


def channel_readiness(mode: DispatchMode, provider: Provider) -> DispatchReadiness:
    """Readiness of one specific channel for this provider"""
    if mode == DispatchMode.EMAIL and not _has(provider.email):
        return _blocked(mode, MISSING_EMAIL)
    if mode == DispatchMode.WEB_FORM and not _has(provider.rfq_url):
        return _blocked(mode, MISSING_RFQ_URL)
    return DispatchReadiness(mode=mode, is_ready=True)


def resolve_dispatch_mode(
    destination: Destination | None, provider: Provider
) -> DispatchReadiness:
    """
    Decide how an RFQ reaches a provider

    Precedence: the mode already recorded on the destination, then the
    provider's explicit preference, then inference from contact channels
    (email present -> email; only an RFQ URL -> web_form).

    An explicit mode whose channel is missing is not ready - it is never
    silently swapped for the other channel.

    Args:
        destination: Destination record, or None before one exists
        provider: Provider the destination points at

    Returns:
        DispatchReadiness with the chosen mode and any blocking reasons
    """
    explicit = (destination.dispatch_mode if destination else None) or provider.dispatch_mode
    if explicit is not None:
        return channel_readiness(explicit, provider)

    if _has(provider.email):
        return DispatchReadiness(mode=DispatchMode.EMAIL, is_ready=True)
    if _has(provider.rfq_url):
        return DispatchReadiness(mode=DispatchMode.WEB_FORM, is_ready=True)
    return _blocked(None, NO_CHANNEL)


def derive_dispatch_status(destination: Destination, offers: Iterable[Offer]) -> DispatchStatus:
    """
    Display status of a destination

    offer_received if the provider has a live (non-withdrawn) offer on the
    quote, else submitted / in_progress / not_started from the timestamps.
    """
    for offer in offers:
        if (
            offer.quote_id == destination.quote_id
            and offer.provider_id == destination.provider_id
            and offer.is_active
        ):
            return DispatchStatus.OFFER_RECEIVED
    if destination.submitted_at is not None:
        return DispatchStatus.SUBMITTED
    if destination.dispatch_started_at is not None:
        return DispatchStatus.IN_PROGRESS
    return DispatchStatus.NOT_STARTED
