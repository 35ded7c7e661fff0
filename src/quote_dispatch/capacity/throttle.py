"""
Capacity Request Throttle

Keeps the operator from nagging a provider: a new capacity-update request
for a week is suppressed while an earlier request for that week is still
unanswered and inside the rolling window.

This is a noisy-neighbour control, not a rate limit. It is evaluated per
call; there is no scheduled job.
"""

from datetime import datetime, timedelta, timezone

from quote_dispatch.capacity.models import (
    CapacityLevel,
    CapacityRequestReason,
    CapacitySnapshot,
    CapacityUpdateRequest,
)
from quote_dispatch.kernel.actors import Actor, require_admin, require_admin_or_supplier
from quote_dispatch.kernel.bus import NotificationSender, publish_after_commit
from quote_dispatch.kernel.errors import CapacityRequestSuppressed, ValidationFailed
from quote_dispatch.kernel.events import EventType, create_event
from quote_dispatch.kernel.ids import generate_id
from quote_dispatch.kernel.logging import get_logger
from quote_dispatch.kernel.metrics import capacity_requests_suppressed_total
from quote_dispatch.kernel.policy import DispatchPolicy
from quote_dispatch.kernel.time import TimeProvider, week_start
from quote_dispatch.providers.normalize import normalize_process
from quote_dispatch.store import Store

logger = get_logger(__name__)


def validate_week_start_date(value: str) -> str:
    """
    Normalise a week key to the Monday of its week (YYYY-MM-DD)

    Raises:
        ValidationFailed: Not an ISO date
    """
    try:
        parsed = datetime.strptime((value or "").strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise ValidationFailed({"week_start_date": "Use a YYYY-MM-DD date"}) from e
    return week_start(parsed)


def is_suppressed(
    last_request: CapacityUpdateRequest | None,
    last_update_at: datetime | None,
    now: datetime,
    window: timedelta,
) -> bool:
    """
    Pure suppression rule

    Suppress when a request exists, it is within `window` of `now`, and the
    provider has not updated since (no update, or an update not later than
    the request).
    """
    if last_request is None:
        return False
    if now - last_request.created_at >= window:
        return False
    return last_update_at is None or last_update_at <= last_request.created_at


class CapacityRequestThrottle:
    """Decides, records and answers capacity-update requests"""

    def __init__(
        self,
        store: Store,
        notifier: NotificationSender,
        time_provider: TimeProvider,
        policy: DispatchPolicy,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.time_provider = time_provider
        self.policy = policy

    @property
    def window(self) -> timedelta:
        return timedelta(days=self.policy.capacity_request_window_days)

    def should_suppress(
        self, provider_id: str, week_start_date: str, now: datetime | None = None
    ) -> bool:
        """
        Whether a new request to this provider for this week would be noise

        Args:
            provider_id: Provider to ask
            week_start_date: Week the request is about (any day of it)
            now: Evaluation time (defaults to the clock); naive values are read as UTC
        """
        week = validate_week_start_date(week_start_date)
        if now is None:
            now = self.time_provider.now()
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return is_suppressed(
            self.store.latest_capacity_request(provider_id, week),
            self.store.latest_capacity_update(provider_id, week),
            now,
            self.window,
        )

    def request_update(
        self,
        provider_id: str,
        week_start_date: str,
        actor: Actor,
        reason: CapacityRequestReason = CapacityRequestReason.MANUAL,
        quote_id: str | None = None,
    ) -> CapacityUpdateRequest:
        """
        Ask a provider to report capacity for a week

        Recording the request is best-effort: if the append fails it is
        logged and the caller still gets the request back.

        Raises:
            AccessDenied: Actor is not an admin
            ValidationFailed: Unknown provider or malformed week
            CapacityRequestSuppressed: An unanswered request is still in the window
        """
        require_admin(actor, "capacity.request_update")
        week = validate_week_start_date(week_start_date)
        if self.store.load_provider(provider_id) is None:
            raise ValidationFailed({"provider_id": f"Unknown provider: {provider_id}"})

        now = self.time_provider.now()
        if self.should_suppress(provider_id, week, now):
            capacity_requests_suppressed_total.inc()
            raise CapacityRequestSuppressed(provider_id, week)

        request = CapacityUpdateRequest(
            id=generate_id(),
            provider_id=provider_id,
            week_start_date=week,
            reason=reason,
            quote_id=quote_id,
            requested_by_actor_id=actor.id,
            created_at=now,
        )
        try:
            self.store.append_capacity_request(request)
        except Exception as e:
            logger.error(
                "Capacity request not recorded",
                provider_id=provider_id,
                week_start_date=week,
                error=str(e),
                exc_info=True,
            )

        publish_after_commit(
            self.notifier,
            [
                create_event(
                    event_type=EventType.CAPACITY_UPDATE_REQUESTED,
                    stream_id=provider_id,
                    occurred_at=now,
                    actor_id=actor.id,
                    payload={
                        "provider_id": provider_id,
                        "week_start_date": week,
                        "reason": reason.value,
                        "quote_id": quote_id,
                    },
                )
            ],
        )
        return request

    def record_capacity_update(
        self,
        provider_id: str,
        week_start_date: str,
        capability: str,
        capacity_level: CapacityLevel | str,
        actor: Actor,
        notes: str | None = None,
    ) -> CapacitySnapshot:
        """
        Store a provider's capacity report; this lifts any suppression

        Raises:
            AccessDenied: Actor is neither admin nor the provider itself
            ValidationFailed: Bad week, capability or level
        """
        require_admin_or_supplier(actor, provider_id, "capacity.record_update")
        week = validate_week_start_date(week_start_date)

        errors: dict[str, str] = {}
        normalized_capability = normalize_process(capability)
        if not normalized_capability:
            errors["capability"] = "Capability is required"
        try:
            level = CapacityLevel(capacity_level)
        except ValueError:
            level = None
            errors["capacity_level"] = "Level must be low, medium, high or overloaded"
        if errors:
            raise ValidationFailed(errors)

        now = self.time_provider.now()
        snapshot = CapacitySnapshot(
            provider_id=provider_id,
            week_start_date=week,
            capability=normalized_capability,
            capacity_level=level,
            notes=(notes or "").strip() or None,
            created_at=now,
        )
        self.store.save_capacity_snapshot(snapshot)

        publish_after_commit(
            self.notifier,
            [
                create_event(
                    event_type=EventType.CAPACITY_UPDATED,
                    stream_id=provider_id,
                    occurred_at=now,
                    actor_id=actor.id,
                    payload={
                        "provider_id": provider_id,
                        "week_start_date": week,
                        "capability": normalized_capability,
                        "capacity_level": level.value,
                    },
                )
            ],
        )
        return snapshot
