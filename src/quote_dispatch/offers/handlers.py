"""
Offer Intake

Accepts offers from providers (directly or through a destination's offer
token) and from the operator on behalf of off-platform sources. One offer
row per (quote, provider): a second submission revises the first.
"""

from quote_dispatch.kernel.actors import Actor, ActorRole, require_admin_or_supplier
from quote_dispatch.kernel.bus import NotificationSender, ViewInvalidator, publish_after_commit
from quote_dispatch.kernel.errors import (
    InvalidOfferToken,
    OfferNotFound,
    QuoteNotFound,
    ValidationFailed,
)
from quote_dispatch.kernel.events import EventType, create_event
from quote_dispatch.kernel.ids import generate_id
from quote_dispatch.kernel.logging import get_logger
from quote_dispatch.kernel.policy import DispatchPolicy
from quote_dispatch.kernel.time import TimeProvider
from quote_dispatch.offers.models import (
    Offer,
    OfferCompleteness,
    OfferInput,
    OfferSource,
    OfferStatus,
)
from quote_dispatch.offers.scoring import score_completeness, validate_offer_input
from quote_dispatch.store import Store

logger = get_logger(__name__)


class OfferIntake:
    """Validates, stores and announces offers"""

    def __init__(
        self,
        store: Store,
        notifier: NotificationSender,
        time_provider: TimeProvider,
        policy: DispatchPolicy,
        invalidate_views: ViewInvalidator | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.time_provider = time_provider
        self.policy = policy
        self.invalidate_views = invalidate_views

    def upsert_offer(
        self,
        quote_id: str,
        provider_id: str,
        fields: OfferInput,
        actor: Actor,
    ) -> Offer:
        """
        Insert or revise the offer for (quote, provider)

        The stored offer is linked to the provider's destination on the
        quote, and that destination moves to `quoted`.

        Args:
            quote_id: Quote the offer answers
            provider_id: Offering provider
            fields: Raw offer fields
            actor: An admin, or the supplier whose id is `provider_id`

        Returns:
            The offer as stored (status `revised` if it replaced one)

        Raises:
            AccessDenied: Actor is neither admin nor the provider itself
            QuoteNotFound: Unknown quote
            ValidationFailed: Bad price, lead time, currency or cost fields
        """
        require_admin_or_supplier(actor, provider_id, "offers.upsert")

        if actor.role != ActorRole.ADMIN:
            restricted = {}
            if fields.internal_cost is not None or fields.internal_shipping_cost is not None:
                restricted["internal_cost"] = "Only the operator may record internal costs"
            if fields.source_type != OfferSource.PROVIDER:
                restricted["source_type"] = "Providers may only submit their own offers"
            if restricted:
                raise ValidationFailed(restricted)

        if self.store.load_quote(quote_id) is None:
            raise QuoteNotFound(quote_id)
        if self.store.load_provider(provider_id) is None:
            raise ValidationFailed({"provider_id": f"Unknown provider: {provider_id}"})

        parsed = validate_offer_input(fields, self.policy.default_currency)
        now = self.time_provider.now()

        stored = self.store.save_offer(
            Offer(
                id=generate_id(),
                quote_id=quote_id,
                provider_id=provider_id,
                total_price=parsed.total_price,
                currency=parsed.currency,
                lead_time_days_min=parsed.lead_time_days_min,
                lead_time_days_max=parsed.lead_time_days_max,
                status=OfferStatus.RECEIVED,
                notes=(fields.notes or "").strip() or None,
                assumptions=(fields.assumptions or "").strip() or None,
                internal_cost=parsed.internal_cost,
                internal_shipping_cost=parsed.internal_shipping_cost,
                source_type=fields.source_type,
                source_name=(fields.source_name or "").strip() or None,
                source_url=(fields.source_url or "").strip() or None,
                received_at=now,
                updated_at=now,
            )
        )
        was_revision = stored.status == OfferStatus.REVISED

        logger.info(
            "Offer stored",
            quote_id=quote_id,
            provider_id=provider_id,
            offer_id=stored.id,
            was_revision=was_revision,
            source_type=stored.source_type.value,
        )

        publish_after_commit(
            self.notifier,
            [
                create_event(
                    event_type=EventType.OFFER_RECEIVED,
                    stream_id=quote_id,
                    occurred_at=now,
                    actor_id=actor.id,
                    payload={
                        "quote_id": quote_id,
                        "provider_id": provider_id,
                        "offer_id": stored.id,
                        "destination_id": stored.destination_id,
                        "was_revision": was_revision,
                        "source_type": stored.source_type.value,
                    },
                )
            ],
            quote_id=quote_id,
            invalidate_views=self.invalidate_views,
        )
        return stored

    def submit_offer_with_token(self, offer_token: str, fields: OfferInput) -> Offer:
        """
        Provider self-service entry through a destination's offer link

        The token identifies both the quote and the provider; the provider
        acts as a supplier on its own behalf.

        Raises:
            InvalidOfferToken: Token matches no destination
        """
        token = (offer_token or "").strip()
        destination = self.store.load_destination_by_token(token) if token else None
        if destination is None:
            raise InvalidOfferToken()

        actor = Actor(id=destination.provider_id, role=ActorRole.SUPPLIER)
        return self.upsert_offer(destination.quote_id, destination.provider_id, fields, actor)

    def withdraw_offer(self, quote_id: str, provider_id: str, actor: Actor) -> Offer:
        """
        Withdraw a provider's offer; withdrawing twice is a no-op

        Raises:
            OfferNotFound: The provider never made an offer on this quote
        """
        require_admin_or_supplier(actor, provider_id, "offers.withdraw")

        existing = self._find(quote_id, provider_id)
        if existing is None:
            raise OfferNotFound(None, provider_id, quote_id)

        now = self.time_provider.now()
        if self.store.withdraw_offer(quote_id, provider_id, now):
            publish_after_commit(
                self.notifier,
                [
                    create_event(
                        event_type=EventType.OFFER_WITHDRAWN,
                        stream_id=quote_id,
                        occurred_at=now,
                        actor_id=actor.id,
                        payload={
                            "quote_id": quote_id,
                            "provider_id": provider_id,
                            "offer_id": existing.id,
                        },
                    )
                ],
                quote_id=quote_id,
                invalidate_views=self.invalidate_views,
            )
        return self._find(quote_id, provider_id) or existing

    def score_completeness(self, offer: Offer) -> OfferCompleteness:
        return score_completeness(offer)

    def _find(self, quote_id: str, provider_id: str) -> Offer | None:
        for offer in self.store.load_offers(quote_id):
            if offer.provider_id == provider_id:
                return offer
        return None
