"""
Quote Desk Example - one RFQ from intake to award

This example demonstrates:
- Ranking providers for a quote and sending it to the eligible ones
- Confirming a mismatched provider with an override reason
- Email dispatch packages and offer submission through the offer token
- Awarding the quote (and why a second award is refused)
- Throttled capacity requests
"""

import tempfile
from pathlib import Path

from quote_dispatch import QuoteDesk
from quote_dispatch.kernel.actors import Actor, ActorRole, StaticActorContext
from quote_dispatch.kernel.events import EventType
from quote_dispatch.providers.models import DispatchMode, Provider, VerificationStatus


def show(label: str, result) -> None:
    if result.ok:
        print(f"  ✓ {label}")
    else:
        print(f"  ✗ {label}: {result.error_kind} {result.detail}")


def main() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "desk.db"
        desk = QuoteDesk(
            db_path,
            StaticActorContext(Actor(id="ops-1", role=ActorRole.ADMIN)),
            background_notifications=False,
        )
        desk.bus.subscribe_all(lambda event: print(f"    [event] {event.event_type.value}"))

        print("\n=== Providers ===\n")
        for provider in [
            Provider(
                id="acme",
                name="Acme CNC",
                processes=["CNC Machining"],
                materials=["Aluminum 6061"],
                country="US",
                states=["OH", "MI"],
                email="rfq@acme.example.com",
                verification_status=VerificationStatus.VERIFIED,
            ),
            Provider(
                id="zeta",
                name="Zeta Casting",
                processes=["Sand casting"],
                email="sales@zeta.example.com",
                verification_status=VerificationStatus.VERIFIED,
            ),
        ]:
            show(f"registered {provider.name}", desk.register_provider(provider))

        print("\n=== Quote ===\n")
        quote = desk.create_quote(
            customer_id="cust-42",
            title="Mounting bracket, 200 pcs",
            process="cnc machining",
            material="aluminum 6061",
            ship_to_state="OH",
            ship_to_country="US",
            quantity=200,
        ).value
        print(f"  Quote {quote.id}: {quote.status.value}")

        for match in desk.rank_providers(quote.id).value:
            if match.eligible:
                verdict = "eligible"
            else:
                verdict = "mismatch: " + ", ".join(match.mismatch_reasons)
            print(f"  {match.provider.name}: score {match.score} ({verdict})")

        print("\n=== Dispatch ===\n")
        show("add both providers", desk.add_destinations(quote.id, ["acme", "zeta"]))
        outcome = desk.add_destinations(
            quote.id, ["acme", "zeta"], override_reason="Customer accepts a cast alternative"
        )
        show("add both providers with an override", outcome)

        destination = outcome.value.created[0]
        package = desk.generate_dispatch_email(destination.id).value
        print(f"  Email to {package.target}: {package.subject}")
        show("dispatch started", desk.mark_dispatch_started(destination.id))
        show("submitted", desk.mark_submitted(destination.id, DispatchMode.EMAIL))

        print("\n=== Offers ===\n")
        offer = desk.submit_offer_with_token(
            package.offer_token,
            {"total_price": "4,350.00", "lead_time_days_min": "10", "lead_time_days_max": "14"},
        ).value
        print(f"  Offer {offer.id}: {offer.total_price} {offer.currency}")
        completeness = desk.score_offer(quote.id, "acme").value
        print(f"  Actionable: {completeness.is_actionable}")

        print("\n=== Award ===\n")
        show("award to Acme", desk.award(quote.id, "acme", offer_id=offer.id))
        show("award to Zeta", desk.award(quote.id, "zeta"))
        show("feedback", desk.record_award_feedback(quote.id, "acme", "lead_time"))
        print(f"  Quote is now: {desk.get_quote(quote.id).value.status.value}")

        print("\n=== Capacity ===\n")
        show("ask Acme for next week", desk.request_capacity_update("acme", "2025-01-20"))
        show("ask again", desk.request_capacity_update("acme", "2025-01-20"))

        audit = desk.store.load_audit_events(quote.id)
        status_changes = [
            e for e in audit if e["event_type"] == EventType.QUOTE_STATUS_CHANGED.value
        ]
        print(f"\nAudit trail for the quote: {len(audit)} events")
        print(f"Status changes: {len(status_changes)}")


if __name__ == "__main__":
    main()
