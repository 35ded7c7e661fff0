"""
Quote Desk CLI

Command-line interface for the quote dispatch core.
Provides commands for quotes, providers, destinations, offers, awards and
capacity requests. Every command acts as the user given by the global
--actor/--role options (an admin operator by default).

Usage:
    quotedesk init --db quotes.db
    quotedesk quote create --customer cust-1 --title "Bracket" --process "cnc machining"
    quotedesk provider add --id prov-1 --name "Acme CNC" --process "cnc machining" --verified
    quotedesk destination add --quote <id> --provider prov-1 --provider prov-2
    quotedesk offer upsert --quote <id> --provider prov-1 --price 1250.00 --lead-min 10
    quotedesk award create --quote <id> --provider prov-1
    quotedesk --role supplier --actor prov-1 capacity update --provider prov-1 ...
"""

import json
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from quote_dispatch.awards.models import FeedbackConfidence, FeedbackReason
from quote_dispatch.capacity.models import CapacityLevel, CapacityRequestReason
from quote_dispatch.desk import QuoteDesk
from quote_dispatch.dispatch.models import DestinationStatus
from quote_dispatch.kernel.actors import Actor, ActorRole, StaticActorContext
from quote_dispatch.kernel.logging import configure_logging
from quote_dispatch.kernel.policy import DispatchPolicy
from quote_dispatch.kernel.results import OperationResult
from quote_dispatch.offers.models import OfferSource
from quote_dispatch.providers.models import DispatchMode, Provider, VerificationStatus
from quote_dispatch.quotes.models import QuoteAction

# Configure logging to stderr (avoids polluting stdout for JSON output)
configure_logging(json_output=False, log_level="WARNING")

app = typer.Typer(
    name="quotedesk",
    help="Quote Desk - RFQ lifecycle and dispatch orchestration",
    add_completion=False,
)

# Sub-apps
quote_app = typer.Typer(help="Quote lifecycle commands")
provider_app = typer.Typer(help="Provider registry and ranking commands")
destination_app = typer.Typer(help="Dispatch destination commands")
offer_app = typer.Typer(help="Offer intake commands")
award_app = typer.Typer(help="Award and award feedback commands")
capacity_app = typer.Typer(help="Capacity request commands")

app.add_typer(quote_app, name="quote")
app.add_typer(provider_app, name="provider")
app.add_typer(destination_app, name="destination")
app.add_typer(offer_app, name="offer")
app.add_typer(award_app, name="award")
app.add_typer(capacity_app, name="capacity")

# Global state
DEFAULT_DB = Path(".quotedesk.db")
_session: dict[str, Any] = {"actor_id": "operator", "role": ActorRole.ADMIN}

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]


@app.callback()
def main_options(
    actor: Annotated[
        str,
        typer.Option("--actor", envvar="QUOTEDESK_ACTOR", help="Acting user id"),
    ] = "operator",
    role: Annotated[
        ActorRole,
        typer.Option("--role", envvar="QUOTEDESK_ROLE", help="Acting user role"),
    ] = ActorRole.ADMIN,
) -> None:
    """Quote Desk - RFQ lifecycle and dispatch orchestration"""
    _session["actor_id"] = actor
    _session["role"] = role


def get_desk(db_path: Optional[Path] = None) -> QuoteDesk:
    """Get QuoteDesk instance acting as the session user"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'quotedesk init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    actor = Actor(id=_session["actor_id"], role=_session["role"])
    return QuoteDesk(
        str(db),
        StaticActorContext(actor),
        policy=DispatchPolicy.from_env(),
        background_notifications=False,
    )


def unwrap(result: OperationResult) -> Any:
    """Return the result value, or print the failure and exit 1"""
    if result.ok:
        return result.value
    typer.echo(f"Error: {result.error_kind}", err=True)
    if result.detail:
        typer.echo(f"  {json.dumps(result.detail, default=str)}", err=True)
    if result.correlation_id:
        typer.echo(f"  Correlation id: {result.correlation_id}", err=True)
    raise typer.Exit(1)


def echo_json(value: Any) -> None:
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json")
    elif isinstance(value, list):
        value = [v.model_dump(mode="json") if hasattr(v, "model_dump") else v for v in value]
    typer.echo(json.dumps(value, indent=2, default=str))


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option(help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new quote desk database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    # Schema is created on first open
    QuoteDesk(
        str(db),
        StaticActorContext(Actor(id=_session["actor_id"], role=_session["role"])),
        background_notifications=False,
    )
    typer.echo(f"✓ Initialized quote desk database: {db}")


# Quote commands


@quote_app.command("create")
def quote_create(
    customer: Annotated[str, typer.Option("--customer", help="Customer id")],
    title: Annotated[str, typer.Option("--title", help="Short title")] = "",
    process: Annotated[Optional[str], typer.Option("--process")] = None,
    material: Annotated[Optional[str], typer.Option("--material")] = None,
    state: Annotated[Optional[str], typer.Option("--state", help="Ship-to state")] = None,
    country: Annotated[Optional[str], typer.Option("--country", help="Ship-to country")] = None,
    quantity: Annotated[Optional[int], typer.Option("--quantity")] = None,
    db: DbOption = None,
) -> None:
    """Record a new RFQ"""
    desk = get_desk(db)
    quote = unwrap(
        desk.create_quote(
            customer_id=customer,
            title=title,
            process=process,
            material=material,
            ship_to_state=state,
            ship_to_country=country,
            quantity=quantity,
        )
    )
    typer.echo(f"✓ Created quote: {quote.id}")
    typer.echo(f"  Status: {quote.status.value}")


@quote_app.command("transition")
def quote_transition(
    quote_id: Annotated[str, typer.Option("--id", help="Quote ID")],
    action: Annotated[QuoteAction, typer.Option("--action", help="Transition to apply")],
    db: DbOption = None,
) -> None:
    """Move a quote through its lifecycle"""
    desk = get_desk(db)
    quote = unwrap(desk.transition_quote(quote_id, action))
    typer.echo(f"✓ Quote {quote_id}: {action.value} -> {quote.status.value}")


@quote_app.command("show")
def quote_show(
    quote_id: Annotated[str, typer.Option("--id", help="Quote ID")],
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Show a quote"""
    desk = get_desk(db)
    quote = unwrap(desk.get_quote(quote_id))
    if json_output:
        echo_json(quote)
        return
    typer.echo(f"Quote {quote.id}: {quote.title or '(untitled)'}")
    typer.echo(f"  Customer: {quote.customer_id}")
    typer.echo(f"  Status: {quote.status.value}")
    if quote.process:
        typer.echo(f"  Process: {quote.process}")
    if quote.material:
        typer.echo(f"  Material: {quote.material}")


# Provider commands


@provider_app.command("add")
def provider_add(
    provider_id: Annotated[str, typer.Option("--id", help="Provider ID")],
    name: Annotated[str, typer.Option("--name", help="Display name")],
    process: Annotated[
        Optional[list[str]], typer.Option("--process", help="Declared process (repeatable)")
    ] = None,
    material: Annotated[
        Optional[list[str]], typer.Option("--material", help="Declared material (repeatable)")
    ] = None,
    state: Annotated[
        Optional[list[str]], typer.Option("--state", help="Ship-to coverage (repeatable)")
    ] = None,
    country: Annotated[Optional[str], typer.Option("--country")] = None,
    email: Annotated[Optional[str], typer.Option("--email")] = None,
    rfq_url: Annotated[Optional[str], typer.Option("--rfq-url")] = None,
    mode: Annotated[Optional[DispatchMode], typer.Option("--mode", help="Channel hint")] = None,
    verified: Annotated[bool, typer.Option("--verified", help="Mark as verified")] = False,
    inactive: Annotated[bool, typer.Option("--inactive", help="Mark as inactive")] = False,
    db: DbOption = None,
) -> None:
    """Register or update a provider"""
    desk = get_desk(db)
    provider = Provider(
        id=provider_id,
        name=name,
        processes=process or [],
        materials=material or [],
        states=state or [],
        country=country,
        email=email,
        rfq_url=rfq_url,
        dispatch_mode=mode,
        verification_status=(
            VerificationStatus.VERIFIED if verified else VerificationStatus.UNVERIFIED
        ),
        is_active=not inactive,
    )
    unwrap(desk.register_provider(provider))
    typer.echo(f"✓ Registered provider: {provider_id}")


@provider_app.command("rank")
def provider_rank(
    quote_id: Annotated[str, typer.Option("--quote", help="Quote ID")],
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Rank every known provider for a quote"""
    desk = get_desk(db)
    matches = unwrap(desk.rank_providers(quote_id))
    if json_output:
        echo_json(matches)
        return
    typer.echo(f"Providers for quote {quote_id} ({len(matches)}):")
    for match in matches:
        marker = "✓" if match.eligible else "✗"
        line = f"  {marker} {match.provider.id}: {match.provider.name} (score {match.score})"
        if match.mismatch:
            line += f" [mismatch: {', '.join(match.mismatch_reasons)}]"
        typer.echo(line)


# Destination commands


@destination_app.command("add")
def destination_add(
    quote_id: Annotated[str, typer.Option("--quote", help="Quote ID")],
    provider: Annotated[list[str], typer.Option("--provider", help="Provider ID (repeatable)")],
    override_reason: Annotated[
        Optional[str],
        typer.Option("--override-reason", help="Confirms sending to mismatched providers"),
    ] = None,
    db: DbOption = None,
) -> None:
    """Send a quote to one or more providers"""
    desk = get_desk(db)
    outcome = unwrap(desk.add_destinations(quote_id, provider, override_reason))
    typer.echo(f"✓ Added {len(outcome.created)} destination(s) to quote {quote_id}")
    for destination in outcome.created:
        typer.echo(f"  {destination.id}: {destination.provider_id}")
    if outcome.skipped_provider_ids:
        typer.echo(f"  Already present: {', '.join(outcome.skipped_provider_ids)}")
    if outcome.overridden_provider_ids:
        typer.echo(f"  Mismatch override: {', '.join(outcome.overridden_provider_ids)}")


@destination_app.command("list")
def destination_list(
    quote_id: Annotated[str, typer.Option("--quote", help="Quote ID")],
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """List destinations of a quote with their derived dispatch status"""
    desk = get_desk(db)
    views = unwrap(desk.list_destinations(quote_id))
    if json_output:
        echo_json(views)
        return
    typer.echo(f"Destinations for quote {quote_id}: {len(views)}")
    for view in views:
        destination = view.destination
        typer.echo(f"\n  {destination.id}")
        typer.echo(f"    Provider: {destination.provider_id}")
        typer.echo(f"    Status: {destination.status.value}")
        typer.echo(f"    Dispatch: {view.dispatch_status.value}")
        if not view.readiness.is_ready:
            typer.echo(f"    Blocked: {'; '.join(view.readiness.blocking_reasons)}")


@destination_app.command("start")
def destination_start(
    destination_id: Annotated[str, typer.Option("--id", help="Destination ID")],
    db: DbOption = None,
) -> None:
    """Record that the operator started dispatching"""
    desk = get_desk(db)
    destination = unwrap(desk.mark_dispatch_started(destination_id))
    typer.echo(f"✓ Dispatch started: {destination_id}")
    typer.echo(f"  Started at: {destination.dispatch_started_at}")


@destination_app.command("submit")
def destination_submit(
    destination_id: Annotated[str, typer.Option("--id", help="Destination ID")],
    mode: Annotated[DispatchMode, typer.Option("--mode", help="Channel used")],
    notes: Annotated[
        Optional[str], typer.Option("--notes", help="Required for web_form submissions")
    ] = None,
    db: DbOption = None,
) -> None:
    """Record that the RFQ was delivered"""
    desk = get_desk(db)
    destination = unwrap(desk.mark_submitted(destination_id, mode, notes))
    typer.echo(f"✓ Submitted: {destination_id} via {mode.value}")
    typer.echo(f"  Status: {destination.status.value}")


@destination_app.command("status")
def destination_status(
    destination_id: Annotated[str, typer.Option("--id", help="Destination ID")],
    status: Annotated[DestinationStatus, typer.Option("--status", help="New status")],
    error_message: Annotated[Optional[str], typer.Option("--error", help="Error detail")] = None,
    db: DbOption = None,
) -> None:
    """Override a destination's status"""
    desk = get_desk(db)
    destination = unwrap(desk.update_destination_status(destination_id, status, error_message))
    typer.echo(f"✓ Destination {destination_id}: {destination.status.value}")


@destination_app.command("email")
def destination_email(
    destination_id: Annotated[str, typer.Option("--id", help="Destination ID")],
    db: DbOption = None,
) -> None:
    """Show the email dispatch package"""
    desk = get_desk(db)
    package = unwrap(desk.generate_dispatch_email(destination_id))
    typer.echo(f"To: {package.target}")
    typer.echo(f"Subject: {package.subject}")
    typer.echo(f"Offer token: {package.offer_token}")


@destination_app.command("webform")
def destination_webform(
    destination_id: Annotated[str, typer.Option("--id", help="Destination ID")],
    db: DbOption = None,
) -> None:
    """Show the web-form dispatch instructions"""
    desk = get_desk(db)
    package = unwrap(desk.generate_web_form_instructions(destination_id))
    typer.echo(f"Form: {package.target}")
    typer.echo(f"Reference: {package.subject}")
    typer.echo(f"Offer token: {package.offer_token}")


# Offer commands


@offer_app.command("upsert")
def offer_upsert(
    quote_id: Annotated[str, typer.Option("--quote", help="Quote ID")],
    provider_id: Annotated[str, typer.Option("--provider", help="Provider ID")],
    price: Annotated[str, typer.Option("--price", help="Total price")],
    currency: Annotated[Optional[str], typer.Option("--currency")] = None,
    lead_min: Annotated[Optional[str], typer.Option("--lead-min", help="Lead time, days")] = None,
    lead_max: Annotated[Optional[str], typer.Option("--lead-max", help="Lead time, days")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes")] = None,
    internal_cost: Annotated[Optional[str], typer.Option("--internal-cost")] = None,
    source: Annotated[OfferSource, typer.Option("--source")] = OfferSource.PROVIDER,
    source_name: Annotated[Optional[str], typer.Option("--source-name")] = None,
    db: DbOption = None,
) -> None:
    """Record or revise a provider's offer"""
    desk = get_desk(db)
    offer = unwrap(
        desk.upsert_offer(
            quote_id,
            provider_id,
            {
                "total_price": price,
                "currency": currency,
                "lead_time_days_min": lead_min,
                "lead_time_days_max": lead_max,
                "notes": notes,
                "internal_cost": internal_cost,
                "source_type": source,
                "source_name": source_name,
            },
        )
    )
    typer.echo(f"✓ Offer {offer.id}: {offer.status.value}")
    typer.echo(f"  Price: {offer.total_price} {offer.currency}")


@offer_app.command("submit")
def offer_submit(
    token: Annotated[str, typer.Option("--token", help="Destination offer token")],
    price: Annotated[str, typer.Option("--price", help="Total price")],
    lead_min: Annotated[Optional[str], typer.Option("--lead-min", help="Lead time, days")] = None,
    lead_max: Annotated[Optional[str], typer.Option("--lead-max", help="Lead time, days")] = None,
    db: DbOption = None,
) -> None:
    """Submit an offer through a destination's offer link"""
    desk = get_desk(db)
    offer = unwrap(
        desk.submit_offer_with_token(
            token,
            {
                "total_price": price,
                "lead_time_days_min": lead_min,
                "lead_time_days_max": lead_max,
            },
        )
    )
    typer.echo(f"✓ Offer {offer.id} received for quote {offer.quote_id}")


@offer_app.command("withdraw")
def offer_withdraw(
    quote_id: Annotated[str, typer.Option("--quote", help="Quote ID")],
    provider_id: Annotated[str, typer.Option("--provider", help="Provider ID")],
    db: DbOption = None,
) -> None:
    """Withdraw a provider's offer"""
    desk = get_desk(db)
    unwrap(desk.withdraw_offer(quote_id, provider_id))
    typer.echo(f"✓ Withdrew offer from {provider_id} on quote {quote_id}")


@offer_app.command("score")
def offer_score(
    quote_id: Annotated[str, typer.Option("--quote", help="Quote ID")],
    provider_id: Annotated[str, typer.Option("--provider", help="Provider ID")],
    db: DbOption = None,
) -> None:
    """Check whether an offer is complete enough to act on"""
    desk = get_desk(db)
    completeness = unwrap(desk.score_offer(quote_id, provider_id))
    verdict = "actionable" if completeness.is_actionable else "not actionable"
    typer.echo(f"Offer from {provider_id}: {verdict}")
    for field in completeness.missing:
        typer.echo(f"  Missing: {field}")


# Award commands


@award_app.command("create")
def award_create(
    quote_id: Annotated[str, typer.Option("--quote", help="Quote ID")],
    provider_id: Annotated[str, typer.Option("--provider", help="Winning provider")],
    offer_id: Annotated[Optional[str], typer.Option("--offer", help="Winning offer")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes")] = None,
    db: DbOption = None,
) -> None:
    """Award a quote to a provider"""
    desk = get_desk(db)
    award = unwrap(desk.award(quote_id, provider_id, offer_id, notes))
    typer.echo(f"✓ Awarded quote {quote_id} to {award.winning_provider_id}")


@award_app.command("feedback")
def award_feedback(
    quote_id: Annotated[str, typer.Option("--quote", help="Quote ID")],
    supplier_id: Annotated[str, typer.Option("--supplier", help="Winning supplier")],
    reason: Annotated[FeedbackReason, typer.Option("--reason")],
    confidence: Annotated[Optional[FeedbackConfidence], typer.Option("--confidence")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes")] = None,
    db: DbOption = None,
) -> None:
    """Record why the winner won"""
    desk = get_desk(db)
    result = desk.record_award_feedback(quote_id, supplier_id, reason, confidence, notes)
    unwrap(result)
    if result.skipped:
        typer.echo(f"Feedback already recorded for quote {quote_id}")
        return
    typer.echo(f"✓ Recorded award feedback: {reason.value}")


@award_app.command("show")
def award_show(
    quote_id: Annotated[str, typer.Option("--quote", help="Quote ID")],
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Show the award of a quote"""
    desk = get_desk(db)
    award = unwrap(desk.get_award(quote_id))
    if award is None:
        typer.echo(f"No award for quote {quote_id}")
        return
    if json_output:
        echo_json(award)
        return
    typer.echo(f"Award for quote {quote_id}")
    typer.echo(f"  Winner: {award.winning_provider_id}")
    typer.echo(f"  Awarded at: {award.awarded_at}")
    if award.has_feedback:
        typer.echo(f"  Feedback: {award.feedback_reason.value}")


# Capacity commands


@capacity_app.command("check")
def capacity_check(
    provider_id: Annotated[str, typer.Option("--provider", help="Provider ID")],
    week: Annotated[str, typer.Option("--week", help="Any date in the week (YYYY-MM-DD)")],
    db: DbOption = None,
) -> None:
    """Check whether a capacity request would be suppressed"""
    desk = get_desk(db)
    suppressed = unwrap(desk.should_suppress_capacity_request(provider_id, week))
    if suppressed:
        typer.echo(f"Suppressed: {provider_id} already has an open request for that week")
    else:
        typer.echo(f"OK to request capacity from {provider_id}")


@capacity_app.command("request")
def capacity_request(
    provider_id: Annotated[str, typer.Option("--provider", help="Provider ID")],
    week: Annotated[str, typer.Option("--week", help="Any date in the week (YYYY-MM-DD)")],
    reason: Annotated[
        CapacityRequestReason, typer.Option("--reason")
    ] = CapacityRequestReason.MANUAL,
    quote_id: Annotated[Optional[str], typer.Option("--quote", help="Triggering quote")] = None,
    db: DbOption = None,
) -> None:
    """Ask a provider to report capacity for a week"""
    desk = get_desk(db)
    request = unwrap(desk.request_capacity_update(provider_id, week, reason, quote_id))
    typer.echo(f"✓ Requested capacity from {provider_id} for week {request.week_start_date}")


@capacity_app.command("update")
def capacity_update(
    provider_id: Annotated[str, typer.Option("--provider", help="Provider ID")],
    week: Annotated[str, typer.Option("--week", help="Any date in the week (YYYY-MM-DD)")],
    capability: Annotated[str, typer.Option("--capability", help="Process the level applies to")],
    level: Annotated[CapacityLevel, typer.Option("--level")],
    notes: Annotated[Optional[str], typer.Option("--notes")] = None,
    db: DbOption = None,
) -> None:
    """Record a provider's capacity for a week"""
    desk = get_desk(db)
    snapshot = unwrap(
        desk.record_capacity_update(provider_id, week, capability, level, notes)
    )
    typer.echo(
        f"✓ Capacity for {provider_id}, week {snapshot.week_start_date}: "
        f"{snapshot.capacity_level.value}"
    )


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
