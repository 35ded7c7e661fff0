"""
Destination Dispatcher

Creates per-provider destination records for a quote, resolves how each one
is delivered, and advances its delivery state.

Creation is idempotent per (quote, provider): the unique constraint decides,
not a read-then-insert check. Mismatched providers need a written override.
"""

from quote_dispatch.dispatch.models import (
    OVERRIDE_STATUSES,
    SUBMITTABLE_STATUSES,
    AddDestinationsResult,
    Destination,
    DestinationStatus,
    DestinationView,
    DispatchPackage,
)
from quote_dispatch.dispatch.readiness import (
    channel_readiness,
    derive_dispatch_status,
    resolve_dispatch_mode,
)
from quote_dispatch.kernel.actors import Actor, require_admin
from quote_dispatch.kernel.bus import NotificationSender, ViewInvalidator, publish_after_commit
from quote_dispatch.kernel.errors import (
    DestinationNotFound,
    DispatchNotReady,
    InvalidDestinationState,
    MismatchConfirmationRequired,
    QuoteNotFound,
    ValidationFailed,
)
from quote_dispatch.kernel.events import DomainEvent, EventType, create_event
from quote_dispatch.kernel.ids import generate_id, generate_offer_token
from quote_dispatch.kernel.logging import get_logger
from quote_dispatch.kernel.metrics import destinations_created_total, mismatch_overrides_total
from quote_dispatch.kernel.policy import DispatchPolicy
from quote_dispatch.kernel.time import TimeProvider
from quote_dispatch.providers.eligibility import EligibilityRanker
from quote_dispatch.providers.models import DispatchMode, Provider, RfqCriteria
from quote_dispatch.quotes.models import Quote
from quote_dispatch.store import Store

logger = get_logger(__name__)


class DestinationDispatcher:
    """
    Admin-only operations on a quote's destinations

    Every mutating method commits first, then emits destination_updated
    and invalidates the quote's views.
    """

    def __init__(
        self,
        store: Store,
        notifier: NotificationSender,
        time_provider: TimeProvider,
        policy: DispatchPolicy,
        ranker: EligibilityRanker | None = None,
        invalidate_views: ViewInvalidator | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.time_provider = time_provider
        self.policy = policy
        self.ranker = ranker or EligibilityRanker()
        self.invalidate_views = invalidate_views

    # ========================================================================
    # Creation
    # ========================================================================

    def add_destinations(
        self,
        quote_id: str,
        provider_ids: list[str],
        actor: Actor,
        override_reason: str | None = None,
    ) -> AddDestinationsResult:
        """
        Dispatch a quote to a set of providers

        If any selected provider is mismatched, whether or not it is already
        on the quote, an override reason of at least
        `policy.min_override_reason_length` characters is required. Providers
        that already have a destination for this quote are then skipped.

        Args:
            quote_id: Quote being dispatched
            provider_ids: Providers to add
            actor: Must be an admin
            override_reason: Justification for dispatching to mismatched providers

        Returns:
            Which destinations were created and which providers were skipped

        Raises:
            AccessDenied: Actor is not an admin
            QuoteNotFound: Unknown quote
            ValidationFailed: No providers given, or unknown provider ids
            MismatchConfirmationRequired: Mismatched providers without a valid override
        """
        require_admin(actor, "dispatch.add_destinations")
        quote = self._load_quote(quote_id)

        requested = list(dict.fromkeys(pid.strip() for pid in provider_ids if pid.strip()))
        if not requested:
            raise ValidationFailed({"provider_ids": "Select at least one provider"})

        providers = {p.id: p for p in self.store.load_providers(requested)}
        unknown = [pid for pid in requested if pid not in providers]
        if unknown:
            raise ValidationFailed({"provider_ids": f"Unknown providers: {', '.join(unknown)}"})

        # Every selected provider is checked, including ones already on the quote
        criteria = RfqCriteria(process=quote.process, material=quote.material)
        mismatched = [
            m.provider.id
            for m in self.ranker.mismatched([providers[pid] for pid in requested], criteria)
        ]
        reason = (override_reason or "").strip()
        if mismatched and len(reason) < self.policy.min_override_reason_length:
            raise MismatchConfirmationRequired(
                mismatched, self.policy.min_override_reason_length
            )

        existing = {d.provider_id for d in self.store.load_destinations(quote_id)}
        new_ids = [pid for pid in requested if pid not in existing]
        if not new_ids:
            return AddDestinationsResult(skipped_provider_ids=requested)

        now = self.time_provider.now()
        candidates = [
            Destination(
                id=generate_id(),
                quote_id=quote_id,
                provider_id=pid,
                status=DestinationStatus.NOT_STARTED,
                offer_token=generate_offer_token(self.policy.offer_token_bytes),
                override_reason=reason if pid in mismatched else None,
                created_at=now,
                last_status_at=now,
            )
            for pid in new_ids
        ]
        created = self.store.insert_destinations(candidates)
        created_ids = {d.provider_id for d in created}

        destinations_created_total.inc(len(created))
        overridden = [pid for pid in mismatched if pid in created_ids]
        if overridden:
            mismatch_overrides_total.inc(len(overridden))
            logger.info(
                "Mismatched providers dispatched under override",
                quote_id=quote_id,
                provider_ids=overridden,
                override_reason=reason,
            )

        publish_after_commit(
            self.notifier,
            [self._destination_event(d, "created", actor) for d in created],
            quote_id=quote_id,
            invalidate_views=self.invalidate_views,
        )
        return AddDestinationsResult(
            created=created,
            skipped_provider_ids=[pid for pid in requested if pid not in created_ids],
            overridden_provider_ids=overridden,
        )

    # ========================================================================
    # Dispatch packages
    # ========================================================================

    def generate_dispatch_email(self, destination_id: str, actor: Actor) -> DispatchPackage:
        """
        Everything needed to email the RFQ to the provider

        Raises:
            DispatchNotReady: The provider has no usable email address
        """
        return self._package(destination_id, DispatchMode.EMAIL, actor)

    def generate_web_form_instructions(
        self, destination_id: str, actor: Actor
    ) -> DispatchPackage:
        """
        Everything needed to submit the RFQ through the provider's web form

        Raises:
            DispatchNotReady: The provider has no RFQ submission URL
        """
        return self._package(destination_id, DispatchMode.WEB_FORM, actor)

    def _package(self, destination_id: str, mode: DispatchMode, actor: Actor) -> DispatchPackage:
        require_admin(actor, f"dispatch.generate_{mode.value}")
        destination = self._load_destination(destination_id)
        provider = self._load_provider(destination.provider_id)

        readiness = channel_readiness(mode, provider)
        if not readiness.is_ready:
            raise DispatchNotReady(destination_id, readiness.blocking_reasons)

        quote = self._load_quote(destination.quote_id)
        target = provider.email if mode == DispatchMode.EMAIL else provider.rfq_url
        return DispatchPackage(
            destination_id=destination.id,
            quote_id=destination.quote_id,
            provider_id=provider.id,
            mode=mode,
            target=(target or "").strip(),
            offer_token=destination.offer_token,
            subject=f"Request for quote: {quote.title or quote.id}",
        )

    # ========================================================================
    # Delivery state
    # ========================================================================

    def mark_dispatch_started(self, destination_id: str, actor: Actor) -> Destination:
        """
        Record the first touch on a destination

        Only the first call sets dispatch_started_at; repeats return the
        destination unchanged.
        """
        require_admin(actor, "dispatch.mark_started")
        self._load_destination(destination_id)

        now = self.time_provider.now()
        first = self.store.mark_dispatch_started(destination_id, now)
        destination = self._load_destination(destination_id)

        if first:
            publish_after_commit(
                self.notifier,
                [self._destination_event(destination, "dispatch_started", actor)],
                quote_id=destination.quote_id,
                invalidate_views=self.invalidate_views,
            )
        return destination

    def mark_submitted(
        self,
        destination_id: str,
        actor: Actor,
        dispatch_mode: DispatchMode,
        notes: str | None = None,
    ) -> Destination:
        """
        Record that the RFQ was delivered to the provider

        Web-form submissions leave no automatic trail, so they require notes
        of at least `policy.min_web_form_notes_length` characters.

        Raises:
            ValidationFailed: Web-form submission without adequate notes
            InvalidDestinationState: Destination already submitted/quoted/declined
        """
        require_admin(actor, "dispatch.mark_submitted")
        cleaned = (notes or "").strip() or None
        if (
            dispatch_mode == DispatchMode.WEB_FORM
            and len(cleaned or "") < self.policy.min_web_form_notes_length
        ):
            raise ValidationFailed(
                {
                    "notes": (
                        f"Web form submissions need notes of at least "
                        f"{self.policy.min_web_form_notes_length} characters"
                    )
                }
            )

        destination = self._load_destination(destination_id)
        if destination.status not in SUBMITTABLE_STATUSES:
            raise InvalidDestinationState(destination_id, destination.status.value)

        now = self.time_provider.now()
        if not self.store.mark_submitted(
            destination_id, SUBMITTABLE_STATUSES, dispatch_mode, cleaned, now
        ):
            fresh = self._load_destination(destination_id)
            raise InvalidDestinationState(destination_id, fresh.status.value)

        destination = self._load_destination(destination_id)
        publish_after_commit(
            self.notifier,
            [self._destination_event(destination, "submitted", actor)],
            quote_id=destination.quote_id,
            invalidate_views=self.invalidate_views,
        )
        return destination

    def update_status(
        self,
        destination_id: str,
        status: DestinationStatus,
        actor: Actor,
        error_message: str | None = None,
    ) -> Destination:
        """
        Manually correct a destination's status

        Any current status may move to sent, quoted, declined or error.
        Moving to sent backfills submitted_at when it was never set.

        Raises:
            ValidationFailed: Unsupported target status, or error without a message
        """
        require_admin(actor, "dispatch.update_status")
        if status not in OVERRIDE_STATUSES:
            allowed = ", ".join(sorted(s.value for s in OVERRIDE_STATUSES))
            raise ValidationFailed({"status": f"Status must be one of: {allowed}"})

        message = (error_message or "").strip() or None
        if status == DestinationStatus.ERROR and message is None:
            raise ValidationFailed({"error_message": "An error status needs a message"})

        self._load_destination(destination_id)
        now = self.time_provider.now()
        self.store.update_destination_status(
            destination_id,
            status,
            message if status == DestinationStatus.ERROR else None,
            now,
        )

        destination = self._load_destination(destination_id)
        publish_after_commit(
            self.notifier,
            [self._destination_event(destination, "status_updated", actor)],
            quote_id=destination.quote_id,
            invalidate_views=self.invalidate_views,
        )
        return destination

    # ========================================================================
    # Reads
    # ========================================================================

    def list_destinations(self, quote_id: str, actor: Actor) -> list[DestinationView]:
        """
        Destinations of a quote with freshly derived dispatch status

        Nothing derived is cached; every call reads destinations, offers
        and providers again.
        """
        require_admin(actor, "dispatch.list_destinations")
        self._load_quote(quote_id)
        destinations = self.store.load_destinations(quote_id)
        offers = self.store.load_offers(quote_id)
        providers = {
            p.id: p for p in self.store.load_providers([d.provider_id for d in destinations])
        }
        return [
            DestinationView(
                destination=d,
                dispatch_status=derive_dispatch_status(d, offers),
                readiness=resolve_dispatch_mode(d, providers[d.provider_id]),
            )
            for d in destinations
        ]

    # ========================================================================
    # Helpers
    # ========================================================================

    def _load_quote(self, quote_id: str) -> Quote:
        quote = self.store.load_quote(quote_id)
        if quote is None:
            raise QuoteNotFound(quote_id)
        return quote

    def _load_destination(self, destination_id: str) -> Destination:
        destination = self.store.load_destination(destination_id)
        if destination is None:
            raise DestinationNotFound(destination_id)
        return destination

    def _load_provider(self, provider_id: str) -> Provider:
        provider = self.store.load_provider(provider_id)
        if provider is None:
            raise ValidationFailed({"provider_id": f"Unknown provider: {provider_id}"})
        return provider

    def _destination_event(
        self, destination: Destination, change: str, actor: Actor
    ) -> DomainEvent:
        return create_event(
            event_type=EventType.DESTINATION_UPDATED,
            stream_id=destination.quote_id,
            occurred_at=self.time_provider.now(),
            actor_id=actor.id,
            payload={
                "quote_id": destination.quote_id,
                "destination_id": destination.id,
                "provider_id": destination.provider_id,
                "status": destination.status.value,
                "change": change,
            },
        )
