"""
Award Coordinator

Selects the winning provider for a quote. The at-most-one-winner rule lives
in the database (awards keyed by quote_id), and the award row and the quote's
move to `won` commit together or not at all.

Fun fact: "Award" comes from the Old North French "awarder", to observe or
examine - the decision was supposed to come after a careful look!
"""

from quote_dispatch.awards.models import Award, FeedbackConfidence, FeedbackReason
from quote_dispatch.kernel.actors import Actor, require_admin
from quote_dispatch.kernel.bus import NotificationSender, ViewInvalidator, publish_after_commit
from quote_dispatch.kernel.errors import (
    AlreadyRecorded,
    AwardNotFound,
    OfferNotFound,
    TransitionDenied,
    ValidationFailed,
    WinnerExists,
)
from quote_dispatch.kernel.events import EventType, create_event
from quote_dispatch.kernel.logging import get_logger
from quote_dispatch.kernel.metrics import award_conflicts_total, quote_transitions_total
from quote_dispatch.kernel.policy import DispatchPolicy
from quote_dispatch.kernel.time import TimeProvider
from quote_dispatch.quotes.handlers import QuoteStatusMachine
from quote_dispatch.quotes.models import QuoteAction
from quote_dispatch.store import Store

logger = get_logger(__name__)


class AwardCoordinator:
    """Admin-only award and award-feedback operations"""

    def __init__(
        self,
        store: Store,
        notifier: NotificationSender,
        time_provider: TimeProvider,
        policy: DispatchPolicy,
        status_machine: QuoteStatusMachine,
        invalidate_views: ViewInvalidator | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.time_provider = time_provider
        self.policy = policy
        self.status_machine = status_machine
        self.invalidate_views = invalidate_views

    def award(
        self,
        quote_id: str,
        provider_id: str,
        actor: Actor,
        offer_id: str | None = None,
        notes: str | None = None,
    ) -> Award:
        """
        Record the winner of a quote and move the quote to `won`

        Args:
            quote_id: Quote being decided
            provider_id: Winning provider
            actor: Must be an admin
            offer_id: Winning offer; must be a live offer by `provider_id` on this quote
            notes: Free-text rationale

        Returns:
            The stored award

        Raises:
            AccessDenied: Actor is not an admin
            QuoteNotFound: Unknown quote
            WinnerExists: The quote already has an award
            TransitionDenied: The quote's status does not allow `win`
            OfferNotFound: `offer_id` is not a live offer from this provider on this quote
        """
        require_admin(actor, "awards.award")
        logger.info("Award requested", quote_id=quote_id, provider_id=provider_id)

        quote = self.status_machine.load(quote_id)
        if self.store.load_award(quote_id) is not None:
            award_conflicts_total.inc()
            raise WinnerExists(quote_id)

        won_status = self.status_machine.plan(quote, QuoteAction.WIN)

        if offer_id is not None:
            offer = self.store.load_offer(offer_id)
            if (
                offer is None
                or offer.quote_id != quote_id
                or offer.provider_id != provider_id
                or not offer.is_active
            ):
                raise OfferNotFound(offer_id, provider_id, quote_id)

        if self.store.load_provider(provider_id) is None:
            raise ValidationFailed({"provider_id": f"Unknown provider: {provider_id}"})

        now = self.time_provider.now()
        award = Award(
            quote_id=quote_id,
            winning_provider_id=provider_id,
            winning_offer_id=offer_id,
            awarded_at=now,
            awarded_by_actor_id=actor.id,
            notes=(notes or "").strip() or None,
        )

        try:
            written = self.store.save_award(award, quote.status, won_status)
        except WinnerExists:
            award_conflicts_total.inc()
            raise

        if not written:
            # The quote moved after we read it; report what beat us
            if self.store.load_award(quote_id) is not None:
                award_conflicts_total.inc()
                raise WinnerExists(quote_id)
            fresh = self.status_machine.load(quote_id)
            raise TransitionDenied(quote_id, QuoteAction.WIN.value, fresh.status.value)

        quote_transitions_total.labels(action=QuoteAction.WIN.value).inc()
        logger.info(
            "Award recorded",
            quote_id=quote_id,
            provider_id=provider_id,
            offer_id=offer_id,
        )

        publish_after_commit(
            self.notifier,
            [
                create_event(
                    event_type=EventType.AWARDED,
                    stream_id=quote_id,
                    occurred_at=now,
                    actor_id=actor.id,
                    payload={
                        "quote_id": quote_id,
                        "provider_id": provider_id,
                        "offer_id": offer_id,
                    },
                ),
                self.status_machine.status_changed_event(
                    quote, won_status, QuoteAction.WIN, actor, now
                ),
            ],
            quote_id=quote_id,
            invalidate_views=self.invalidate_views,
        )
        return award

    def record_feedback(
        self,
        quote_id: str,
        supplier_id: str,
        reason: FeedbackReason | str,
        actor: Actor,
        confidence: FeedbackConfidence | str | None = None,
        notes: str | None = None,
    ) -> Award:
        """
        Append the "why did they win" annotation to an award, once

        Raises:
            AccessDenied: Actor is not an admin
            AwardNotFound: The quote has no award
            ValidationFailed: Unknown reason/confidence, wrong supplier, notes too long
            AlreadyRecorded: Feedback was already present (a skipped success)
        """
        require_admin(actor, "awards.record_feedback")

        errors: dict[str, str] = {}
        try:
            parsed_reason = FeedbackReason(reason)
        except ValueError:
            parsed_reason = None
            errors["reason"] = "Unknown feedback reason"

        parsed_confidence = None
        if confidence not in (None, ""):
            try:
                parsed_confidence = FeedbackConfidence(confidence)
            except ValueError:
                errors["confidence"] = "Confidence must be low, medium or high"

        cleaned_notes = (notes or "").strip() or None
        limit = self.policy.award_feedback_max_notes_length
        if cleaned_notes and len(cleaned_notes) > limit:
            errors["notes"] = f"Notes must be at most {limit} characters"

        award = self.store.load_award(quote_id)
        if award is None:
            raise AwardNotFound(quote_id)
        if supplier_id != award.winning_provider_id:
            errors["supplier_id"] = "Feedback must name the winning supplier"

        if errors:
            raise ValidationFailed(errors)

        if award.has_feedback:
            raise AlreadyRecorded(quote_id)

        now = self.time_provider.now()
        if not self.store.record_award_feedback(
            quote_id, parsed_reason, parsed_confidence, cleaned_notes, actor.id, now
        ):
            raise AlreadyRecorded(quote_id)

        publish_after_commit(
            self.notifier,
            [
                create_event(
                    event_type=EventType.AWARD_FEEDBACK_RECORDED,
                    stream_id=quote_id,
                    occurred_at=now,
                    actor_id=actor.id,
                    payload={
                        "quote_id": quote_id,
                        "supplier_id": supplier_id,
                        "reason": parsed_reason.value,
                        "confidence": parsed_confidence.value if parsed_confidence else None,
                    },
                )
            ],
            quote_id=quote_id,
            invalidate_views=self.invalidate_views,
        )
        return self.store.load_award(quote_id) or award
