"""
Domain events emitted after a state change commits

Events are immutable facts; subscribers (view invalidation, audit log,
notification delivery) react to them on a best-effort basis.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from quote_dispatch.kernel.ids import generate_id


class EventType(str, Enum):
    """Event names callers can subscribe to"""

    QUOTE_STATUS_CHANGED = "quote_status_changed"
    DESTINATION_UPDATED = "destination_updated"
    AWARDED = "awarded"
    AWARD_FEEDBACK_RECORDED = "award_feedback_recorded"
    OFFER_RECEIVED = "offer_received"
    OFFER_WITHDRAWN = "offer_withdrawn"
    CAPACITY_UPDATE_REQUESTED = "capacity_update_requested"
    CAPACITY_UPDATED = "capacity_updated"


class DomainEvent(BaseModel):
    """
    A fact about something that already happened

    `stream_id` is the id of the aggregate the event concerns (usually
    the quote id; the provider id for capacity events).
    """

    event_id: str = Field(..., description="Unique event identifier (UUIDv7)")
    event_type: EventType
    stream_id: str = Field(..., description="Aggregate the event belongs to")
    occurred_at: datetime
    actor_id: str | None = Field(default=None, description="None for system events")
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


def create_event(
    *,
    event_type: EventType,
    stream_id: str,
    occurred_at: datetime,
    actor_id: str | None = None,
    payload: dict[str, Any] | None = None,
) -> DomainEvent:
    """Factory that assigns a fresh event id"""
    return DomainEvent(
        event_id=generate_id(),
        event_type=event_type,
        stream_id=stream_id,
        occurred_at=occurred_at,
        actor_id=actor_id,
        payload=payload or {},
    )
