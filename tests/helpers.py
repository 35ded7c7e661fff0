"""
Test Helper Functions - Builders and Assertions

Provides reusable builders for test data creation. Builders go through the
QuoteDesk where a caller would, so seeded data obeys the same rules.
"""

from typing import Any, Iterable

from quote_dispatch.desk import QuoteDesk
from quote_dispatch.kernel.results import OperationResult
from quote_dispatch.providers.models import DispatchMode, Provider, VerificationStatus
from quote_dispatch.quotes.models import Quote


def unwrap(result: OperationResult) -> Any:
    """Assert an operation succeeded and return its value"""
    assert result.ok, f"{result.error_kind}: {result.detail}"
    return result.value


def build_provider(
    provider_id: str,
    name: str | None = None,
    processes: Iterable[str] = ("cnc machining",),
    materials: Iterable[str] = (),
    verified: bool = True,
    active: bool = True,
    email: str | None = "",
    rfq_url: str | None = None,
    dispatch_mode: DispatchMode | None = None,
    country: str | None = "US",
    states: Iterable[str] = (),
) -> Provider:
    """
    Builder for test providers

    Args:
        provider_id: Unique provider identifier
        name: Display name (defaults to "Provider {provider_id}")
        processes: Declared processes
        materials: Declared materials (empty means "not declared")
        verified: Verification status verified vs unverified
        active: Whether the provider is active
        email: RFQ inbox; "" picks quotes@<id>.example.com, None means no email
        rfq_url: Web form URL
        dispatch_mode: Explicit channel preference
        country: Home country
        states: Ship-to coverage

    Returns:
        Provider ready to register
    """
    return Provider(
        id=provider_id,
        name=name or f"Provider {provider_id}",
        processes=list(processes),
        materials=list(materials),
        verification_status=(
            VerificationStatus.VERIFIED if verified else VerificationStatus.UNVERIFIED
        ),
        is_active=active,
        dispatch_mode=dispatch_mode,
        email=f"quotes@{provider_id}.example.com" if email == "" else email,
        rfq_url=rfq_url,
        country=country,
        states=list(states),
    )


def seed_providers(desk: QuoteDesk, *providers: Provider) -> list[Provider]:
    for provider in providers:
        unwrap(desk.register_provider(provider))
    return list(providers)


def seed_quote(
    desk: QuoteDesk,
    customer_id: str = "cust-1",
    title: str = "Mounting bracket",
    process: str | None = "CNC Machining",
    material: str | None = "Aluminum 6061",
    **kwargs: Any,
) -> Quote:
    """Create a quote in `submitted` through the desk"""
    return unwrap(
        desk.create_quote(
            customer_id=customer_id,
            title=title,
            process=process,
            material=material,
            **kwargs,
        )
    )


def seed_destination(desk: QuoteDesk, quote_id: str, provider_id: str):
    """Add one destination and return it"""
    outcome = unwrap(desk.add_destinations(quote_id, [provider_id]))
    assert len(outcome.created) == 1
    return outcome.created[0]
