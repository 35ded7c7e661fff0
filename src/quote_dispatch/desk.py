"""
QuoteDesk - Main façade

The caller-facing surface of the dispatch core. It wires the store, the event
bus and the component handlers, resolves the acting user, and turns every
outcome into a tagged OperationResult: business denials and validation
errors become `ok=False` results with a stable error_kind, and infrastructure
failures become a generic `internal_error` carrying only a correlation id.

Example:
    >>> from quote_dispatch import QuoteDesk
    >>> from quote_dispatch.kernel.actors import Actor, ActorRole, StaticActorContext
    >>> desk = QuoteDesk("quotes.db", StaticActorContext(Actor(id="ops-1", role=ActorRole.ADMIN)))
    >>> result = desk.add_destinations(quote_id, ["prov-1", "prov-2"])
    >>> result.ok, result.error_kind
    (False, 'mismatch_confirmation_required')
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, TypeVar

from pydantic import ValidationError as ModelValidationError

from quote_dispatch.awards.handlers import AwardCoordinator
from quote_dispatch.awards.models import FeedbackConfidence, FeedbackReason
from quote_dispatch.capacity.models import CapacityLevel, CapacityRequestReason
from quote_dispatch.capacity.throttle import CapacityRequestThrottle
from quote_dispatch.dispatch.handlers import DestinationDispatcher
from quote_dispatch.dispatch.models import DestinationStatus
from quote_dispatch.dispatch.readiness import resolve_dispatch_mode
from quote_dispatch.kernel.actors import Actor, ActorContext, ActorRole, require_admin
from quote_dispatch.kernel.bus import BackgroundNotifier, EventBus, NotificationSender, ViewInvalidator
from quote_dispatch.kernel.errors import (
    AccessDenied,
    BusinessRuleDenial,
    DestinationNotFound,
    IdempotentNoOp,
    OfferNotFound,
    ValidationFailed,
)
from quote_dispatch.kernel.ids import generate_id
from quote_dispatch.kernel.logging import (
    LogOperation,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)
from quote_dispatch.kernel.metrics import operations_total, track_operation_duration
from quote_dispatch.kernel.policy import DispatchPolicy
from quote_dispatch.kernel.results import INTERNAL_ERROR, OperationResult
from quote_dispatch.kernel.time import RealTimeProvider, TimeProvider
from quote_dispatch.offers.handlers import OfferIntake
from quote_dispatch.offers.models import OfferInput
from quote_dispatch.providers.eligibility import EligibilityRanker
from quote_dispatch.providers.models import DispatchMode, Provider, RfqCriteria
from quote_dispatch.quotes.handlers import QuoteStatusMachine
from quote_dispatch.quotes.models import Quote, QuoteAction
from quote_dispatch.store import SQLiteStore

logger = get_logger(__name__)

E = TypeVar("E", bound=Enum)


def _label(value: Enum | str) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def _field_errors(error: ModelValidationError) -> dict[str, str]:
    return {
        ".".join(str(part) for part in item["loc"]) or "input": item["msg"]
        for item in error.errors()
    }


def _parse_enum(enum_cls: type[E], value: E | str, field: str) -> E:
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationFailed({field: f"Must be one of: {allowed}"}) from e


class QuoteDesk:
    """
    Quote dispatch main façade

    Provides one method per caller-facing operation:
    - quote status transitions
    - provider ranking and destination management
    - offer intake
    - award and award feedback
    - capacity-update throttling
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        actor_context: ActorContext,
        policy: DispatchPolicy | None = None,
        time_provider: TimeProvider | None = None,
        notifier: NotificationSender | None = None,
        invalidate_views: ViewInvalidator | None = None,
        background_notifications: bool = True,
    ) -> None:
        """
        Args:
            sqlite_path: Path to SQLite database
            actor_context: Resolves the acting user per call
            policy: Thresholds (defaults if None)
            time_provider: Clock (real time if None)
            notifier: Event sink; defaults to the in-process bus
            invalidate_views: Called with a quote id after each change to it
            background_notifications: Deliver events on a worker thread
        """
        self.sqlite_path = Path(sqlite_path)
        self.actor_context = actor_context
        self.policy = policy or DispatchPolicy()
        self.time_provider = time_provider or RealTimeProvider()

        self.store = SQLiteStore(self.sqlite_path)
        self.bus = EventBus()
        self.bus.subscribe_all(self.store.append_audit_event)

        sink: NotificationSender = notifier or self.bus
        self._background: BackgroundNotifier | None = None
        if background_notifications:
            self._background = BackgroundNotifier(sink)
            sink = self._background
        self.notifier = sink

        self.ranker = EligibilityRanker()
        self.status_machine = QuoteStatusMachine(
            self.store, self.notifier, self.time_provider, invalidate_views
        )
        self.dispatcher = DestinationDispatcher(
            self.store,
            self.notifier,
            self.time_provider,
            self.policy,
            ranker=self.ranker,
            invalidate_views=invalidate_views,
        )
        self.offers = OfferIntake(
            self.store, self.notifier, self.time_provider, self.policy, invalidate_views
        )
        self.awards = AwardCoordinator(
            self.store,
            self.notifier,
            self.time_provider,
            self.policy,
            self.status_machine,
            invalidate_views,
        )
        self.capacity = CapacityRequestThrottle(
            self.store, self.notifier, self.time_provider, self.policy
        )

    # ========================================================================
    # Result plumbing
    # ========================================================================

    def _run(self, operation: str, fn: Callable[[Actor], Any], **context: Any) -> OperationResult:
        """
        Execute one operation and fold its outcome into an OperationResult
        """
        correlation_id = generate_correlation_id()
        set_correlation_id(correlation_id)

        @track_operation_duration(operation)
        def timed() -> Any:
            with LogOperation(logger, operation, **context):
                actor = self.actor_context.current_actor()
                return fn(actor)

        try:
            value = timed()
        except IdempotentNoOp:
            operations_total.labels(operation=operation, outcome="skipped").inc()
            return OperationResult.success(skipped=True)
        except ValidationFailed as e:
            operations_total.labels(operation=operation, outcome="invalid").inc()
            return OperationResult.failure(e.kind, e.detail)
        except ModelValidationError as e:
            operations_total.labels(operation=operation, outcome="invalid").inc()
            return OperationResult.failure(
                ValidationFailed.kind, ValidationFailed(_field_errors(e)).detail
            )
        except BusinessRuleDenial as e:
            operations_total.labels(operation=operation, outcome="denied").inc()
            return OperationResult.failure(e.kind, e.detail)
        except Exception:
            # Already logged with context by LogOperation
            operations_total.labels(operation=operation, outcome="error").inc()
            return OperationResult.failure(
                INTERNAL_ERROR,
                {"message": "Something went wrong. Quote the correlation id when reporting it."},
                correlation_id=correlation_id,
            )

        operations_total.labels(operation=operation, outcome="ok").inc()
        return OperationResult.success(value)

    def drain_notifications(self, timeout: float | None = 5.0) -> None:
        """Wait for queued background notifications (tests, shutdown)"""
        if self._background is not None:
            self._background.drain(timeout)

    def close(self) -> None:
        if self._background is not None:
            self._background.close()

    # ========================================================================
    # Quotes & providers
    # ========================================================================

    def create_quote(
        self,
        customer_id: str,
        title: str = "",
        process: str | None = None,
        material: str | None = None,
        ship_to_state: str | None = None,
        ship_to_country: str | None = None,
        quantity: int | None = None,
    ) -> OperationResult:
        """Record a new RFQ in `submitted` (intake proper happens upstream)"""

        def run(actor: Actor) -> Quote:
            if not actor.is_admin and not (
                actor.role == ActorRole.CUSTOMER and actor.id == customer_id
            ):
                raise AccessDenied(actor.role.value, "quote.create")
            if not customer_id.strip():
                raise ValidationFailed({"customer_id": "Customer is required"})
            now = self.time_provider.now()
            quote = Quote(
                id=generate_id(),
                customer_id=customer_id,
                title=title.strip(),
                process=process,
                material=material,
                ship_to_state=ship_to_state,
                ship_to_country=ship_to_country,
                quantity=quantity,
                created_at=now,
                updated_at=now,
            )
            self.store.save_quote(quote)
            return quote

        return self._run("create_quote", run, customer_id=customer_id)

    def get_quote(self, quote_id: str) -> OperationResult:
        def run(actor: Actor) -> Quote:
            quote = self.status_machine.load(quote_id)
            if not actor.is_admin and actor.id != quote.customer_id:
                raise AccessDenied(actor.role.value, "quote.read")
            return quote

        return self._run("get_quote", run, quote_id=quote_id)

    def transition_quote(self, quote_id: str, action: QuoteAction | str) -> OperationResult:
        def run(actor: Actor) -> Quote:
            parsed = _parse_enum(QuoteAction, action, "action")
            return self.status_machine.transition(quote_id, parsed, actor)

        return self._run("transition_quote", run, quote_id=quote_id, action=_label(action))

    def register_provider(self, provider: Provider) -> OperationResult:
        """Upsert a provider record (provider data is owned upstream)"""

        def run(actor: Actor) -> Provider:
            require_admin(actor, "providers.register")
            self.store.save_provider(provider)
            return provider

        return self._run("register_provider", run, provider_id=provider.id)

    def rank_providers(
        self, quote_id: str, rank_signal: Mapping[str, int] | None = None
    ) -> OperationResult:
        """Every known provider, judged and ordered for this quote"""

        def run(actor: Actor) -> list[Any]:
            require_admin(actor, "providers.rank")
            quote = self.status_machine.load(quote_id)
            criteria = RfqCriteria(
                process=quote.process,
                material=quote.material,
                ship_to_state=quote.ship_to_state,
                ship_to_country=quote.ship_to_country,
            )
            return self.ranker.rank(self.store.load_providers(), criteria, rank_signal)

        return self._run("rank_providers", run, quote_id=quote_id)

    # ========================================================================
    # Destinations
    # ========================================================================

    def add_destinations(
        self,
        quote_id: str,
        provider_ids: list[str],
        override_reason: str | None = None,
    ) -> OperationResult:
        return self._run(
            "add_destinations",
            lambda actor: self.dispatcher.add_destinations(
                quote_id, provider_ids, actor, override_reason
            ),
            quote_id=quote_id,
            provider_count=len(provider_ids),
        )

    def resolve_dispatch_mode(self, destination_id: str) -> OperationResult:
        def run(actor: Actor) -> Any:
            require_admin(actor, "dispatch.resolve_mode")
            destination = self.store.load_destination(destination_id)
            if destination is None:
                raise DestinationNotFound(destination_id)
            provider = self.store.load_provider(destination.provider_id)
            if provider is None:
                raise ValidationFailed({"provider_id": "Destination provider is missing"})
            return resolve_dispatch_mode(destination, provider)

        return self._run("resolve_dispatch_mode", run, destination_id=destination_id)

    def generate_dispatch_email(self, destination_id: str) -> OperationResult:
        return self._run(
            "generate_dispatch_email",
            lambda actor: self.dispatcher.generate_dispatch_email(destination_id, actor),
            destination_id=destination_id,
        )

    def generate_web_form_instructions(self, destination_id: str) -> OperationResult:
        return self._run(
            "generate_web_form_instructions",
            lambda actor: self.dispatcher.generate_web_form_instructions(destination_id, actor),
            destination_id=destination_id,
        )

    def mark_dispatch_started(self, destination_id: str) -> OperationResult:
        return self._run(
            "mark_dispatch_started",
            lambda actor: self.dispatcher.mark_dispatch_started(destination_id, actor),
            destination_id=destination_id,
        )

    def mark_submitted(
        self,
        destination_id: str,
        dispatch_mode: DispatchMode | str,
        notes: str | None = None,
    ) -> OperationResult:
        def run(actor: Actor) -> Any:
            mode = _parse_enum(DispatchMode, dispatch_mode, "dispatch_mode")
            return self.dispatcher.mark_submitted(destination_id, actor, mode, notes)

        return self._run(
            "mark_submitted",
            run,
            destination_id=destination_id,
            dispatch_mode=_label(dispatch_mode),
        )

    def update_destination_status(
        self,
        destination_id: str,
        status: DestinationStatus | str,
        error_message: str | None = None,
    ) -> OperationResult:
        def run(actor: Actor) -> Any:
            parsed = _parse_enum(DestinationStatus, status, "status")
            return self.dispatcher.update_status(destination_id, parsed, actor, error_message)

        return self._run(
            "update_destination_status",
            run,
            destination_id=destination_id,
            status=_label(status),
        )

    def list_destinations(self, quote_id: str) -> OperationResult:
        return self._run(
            "list_destinations",
            lambda actor: self.dispatcher.list_destinations(quote_id, actor),
            quote_id=quote_id,
        )

    # ========================================================================
    # Offers
    # ========================================================================

    def upsert_offer(
        self, quote_id: str, provider_id: str, fields: OfferInput | Mapping[str, Any]
    ) -> OperationResult:
        def run(actor: Actor) -> Any:
            offer_input = fields if isinstance(fields, OfferInput) else OfferInput(**fields)
            return self.offers.upsert_offer(quote_id, provider_id, offer_input, actor)

        return self._run("upsert_offer", run, quote_id=quote_id, provider_id=provider_id)

    def submit_offer_with_token(
        self, offer_token: str, fields: OfferInput | Mapping[str, Any]
    ) -> OperationResult:
        """Provider self-service path; the token stands in for the actor"""

        def run(actor: Actor) -> Any:
            offer_input = fields if isinstance(fields, OfferInput) else OfferInput(**fields)
            return self.offers.submit_offer_with_token(offer_token, offer_input)

        return self._run("submit_offer_with_token", run)

    def withdraw_offer(self, quote_id: str, provider_id: str) -> OperationResult:
        return self._run(
            "withdraw_offer",
            lambda actor: self.offers.withdraw_offer(quote_id, provider_id, actor),
            quote_id=quote_id,
            provider_id=provider_id,
        )

    def score_offer(self, quote_id: str, provider_id: str) -> OperationResult:
        """Completeness of the provider's current offer on a quote"""

        def run(actor: Actor) -> Any:
            if not actor.is_admin and actor.id != provider_id:
                raise AccessDenied(actor.role.value, "offers.score")
            offer = next(
                (o for o in self.store.load_offers(quote_id) if o.provider_id == provider_id),
                None,
            )
            if offer is None:
                raise OfferNotFound(None, provider_id, quote_id)
            return self.offers.score_completeness(offer)

        return self._run("score_offer", run, quote_id=quote_id, provider_id=provider_id)

    # ========================================================================
    # Awards
    # ========================================================================

    def award(
        self,
        quote_id: str,
        provider_id: str,
        offer_id: str | None = None,
        notes: str | None = None,
    ) -> OperationResult:
        return self._run(
            "award",
            lambda actor: self.awards.award(quote_id, provider_id, actor, offer_id, notes),
            quote_id=quote_id,
            provider_id=provider_id,
        )

    def record_award_feedback(
        self,
        quote_id: str,
        supplier_id: str,
        reason: FeedbackReason | str,
        confidence: FeedbackConfidence | str | None = None,
        notes: str | None = None,
    ) -> OperationResult:
        """ok with skipped=True when feedback was already recorded"""
        return self._run(
            "record_award_feedback",
            lambda actor: self.awards.record_feedback(
                quote_id, supplier_id, reason, actor, confidence, notes
            ),
            quote_id=quote_id,
            supplier_id=supplier_id,
        )

    def get_award(self, quote_id: str) -> OperationResult:
        def run(actor: Actor) -> Any:
            require_admin(actor, "awards.read")
            return self.store.load_award(quote_id)

        return self._run("get_award", run, quote_id=quote_id)

    # ========================================================================
    # Capacity
    # ========================================================================

    def should_suppress_capacity_request(
        self, provider_id: str, week_start_date: str, now: datetime | None = None
    ) -> OperationResult:
        """Evaluated at `now` when given, otherwise at the desk clock"""

        def run(actor: Actor) -> bool:
            require_admin(actor, "capacity.should_suppress")
            return self.capacity.should_suppress(provider_id, week_start_date, now)

        return self._run(
            "should_suppress_capacity_request",
            run,
            provider_id=provider_id,
            week_start_date=week_start_date,
        )

    def request_capacity_update(
        self,
        provider_id: str,
        week_start_date: str,
        reason: CapacityRequestReason | str = CapacityRequestReason.MANUAL,
        quote_id: str | None = None,
    ) -> OperationResult:
        def run(actor: Actor) -> Any:
            parsed = _parse_enum(CapacityRequestReason, reason, "reason")
            return self.capacity.request_update(
                provider_id, week_start_date, actor, parsed, quote_id
            )

        return self._run(
            "request_capacity_update",
            run,
            provider_id=provider_id,
            week_start_date=week_start_date,
        )

    def record_capacity_update(
        self,
        provider_id: str,
        week_start_date: str,
        capability: str,
        capacity_level: CapacityLevel | str,
        notes: str | None = None,
    ) -> OperationResult:
        return self._run(
            "record_capacity_update",
            lambda actor: self.capacity.record_capacity_update(
                provider_id, week_start_date, capability, capacity_level, actor, notes
            ),
            provider_id=provider_id,
            week_start_date=week_start_date,
        )
