"""
Quote Status Machine

Validates and applies status transitions for a single quote. Every applied
transition is one conditional write ("move from S to S' iff still S"),
followed by a quote_status_changed event and view invalidation.

Fun fact: The first formal state machines were described by McCulloch and
Pitts in 1943 to model neurons - ours only has seven states and no synapses!
"""

from datetime import datetime

from quote_dispatch.kernel.actors import Actor
from quote_dispatch.kernel.bus import NotificationSender, ViewInvalidator, publish_after_commit
from quote_dispatch.kernel.errors import QuoteNotFound, TransitionDenied
from quote_dispatch.kernel.events import DomainEvent, EventType, create_event
from quote_dispatch.kernel.logging import get_logger
from quote_dispatch.kernel.metrics import quote_transitions_total
from quote_dispatch.kernel.time import TimeProvider
from quote_dispatch.quotes import invariants
from quote_dispatch.quotes.models import Quote, QuoteAction, QuoteStatus
from quote_dispatch.store import Store

logger = get_logger(__name__)


class QuoteStatusMachine:
    """
    Applies allow-table transitions to persisted quotes

    Also used by the award flow, which folds the `win` transition into its
    own atomic write and then announces it through `status_changed_event`.
    """

    def __init__(
        self,
        store: Store,
        notifier: NotificationSender,
        time_provider: TimeProvider,
        invalidate_views: ViewInvalidator | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.time_provider = time_provider
        self.invalidate_views = invalidate_views

    def load(self, quote_id: str) -> Quote:
        quote = self.store.load_quote(quote_id)
        if quote is None:
            raise QuoteNotFound(quote_id)
        return quote

    def plan(self, quote: Quote, action: QuoteAction) -> QuoteStatus:
        """
        Target status for `action`, or TransitionDenied

        Pure: reads only the quote passed in.
        """
        return invariants.validate_transition(quote, action)

    def transition(self, quote_id: str, action: QuoteAction, actor: Actor) -> Quote:
        """
        Apply an action to a quote

        Args:
            quote_id: Quote to move
            action: Requested action
            actor: Acting user (admin, or the owning customer for archive/reopen)

        Returns:
            The quote as it stands after the call

        Raises:
            QuoteNotFound: Unknown quote id
            AccessDenied: Actor may not run this action on this quote
            TransitionDenied: Action not allowed from the current status, or
                `win`, which only the award flow applies
        """
        quote = self.load(quote_id)
        invariants.validate_actor_may_transition(actor, quote, action)

        if action in invariants.AWARD_ONLY_ACTIONS:
            raise TransitionDenied(quote_id, action.value, quote.status.value)

        if invariants.is_idempotent_repeat(action, quote.status):
            logger.info(
                "Quote transition already applied",
                quote_id=quote_id,
                action=action.value,
                status=quote.status.value,
            )
            return quote

        new_status = self.plan(quote, action)
        now = self.time_provider.now()

        if not self.store.update_quote_status(quote_id, quote.status, new_status, now):
            # Someone moved the quote between our read and write
            fresh = self.load(quote_id)
            if invariants.is_idempotent_repeat(action, fresh.status):
                return fresh
            raise TransitionDenied(quote_id, action.value, fresh.status.value)

        quote_transitions_total.labels(action=action.value).inc()
        logger.info(
            "Quote status changed",
            quote_id=quote_id,
            action=action.value,
            from_status=quote.status.value,
            to_status=new_status.value,
        )

        publish_after_commit(
            self.notifier,
            [self.status_changed_event(quote, new_status, action, actor, now)],
            quote_id=quote_id,
            invalidate_views=self.invalidate_views,
        )
        return quote.model_copy(update={"status": new_status, "updated_at": now})

    @staticmethod
    def status_changed_event(
        quote: Quote,
        new_status: QuoteStatus,
        action: QuoteAction,
        actor: Actor,
        occurred_at: datetime,
    ) -> DomainEvent:
        return create_event(
            event_type=EventType.QUOTE_STATUS_CHANGED,
            stream_id=quote.id,
            occurred_at=occurred_at,
            actor_id=actor.id,
            payload={
                "quote_id": quote.id,
                "action": action.value,
                "from_status": quote.status.value,
                "to_status": new_status.value,
            },
        )
