"""
Dispatch Domain Models

A Destination records one RFQ being sent to one provider.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from quote_dispatch.providers.models import DispatchMode


class DestinationStatus(str, Enum):
    """
    Persisted destination status

    mark_submitted moves not_started|in_progress|error → submitted;
    update_status is a permissive admin override to sent/quoted/declined/error.
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    SENT = "sent"
    QUOTED = "quoted"
    DECLINED = "declined"
    ERROR = "error"
    OFFER_RECEIVED = "offer_received"


SUBMITTABLE_STATUSES = frozenset(
    {DestinationStatus.NOT_STARTED, DestinationStatus.IN_PROGRESS, DestinationStatus.ERROR}
)

OVERRIDE_STATUSES = frozenset(
    {
        DestinationStatus.SENT,
        DestinationStatus.QUOTED,
        DestinationStatus.DECLINED,
        DestinationStatus.ERROR,
    }
)


class DispatchStatus(str, Enum):
    """Derived display state, recomputed on every read"""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    OFFER_RECEIVED = "offer_received"


class Destination(BaseModel):
    """One RFQ-to-provider dispatch record (unique per quote/provider pair)"""

    id: str
    quote_id: str
    provider_id: str
    status: DestinationStatus = DestinationStatus.NOT_STARTED
    offer_token: str
    dispatch_mode: DispatchMode | None = None
    dispatch_started_at: datetime | None = None
    submitted_at: datetime | None = None
    submission_notes: str | None = None
    error_message: str | None = None
    override_reason: str | None = None
    created_at: datetime
    last_status_at: datetime

    model_config = {"frozen": True}


class DispatchReadiness(BaseModel):
    """Outcome of resolve_dispatch_mode"""

    mode: DispatchMode | None
    is_ready: bool
    blocking_reasons: list[str] = Field(default_factory=list)
    recommended_fix: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class DestinationView(BaseModel):
    """A destination as read by callers, with its derived dispatch status"""

    destination: Destination
    dispatch_status: DispatchStatus
    readiness: DispatchReadiness

    model_config = {"frozen": True}


class AddDestinationsResult(BaseModel):
    """Outcome of add_destinations; pairs that already existed are skipped"""

    created: list[Destination] = Field(default_factory=list)
    skipped_provider_ids: list[str] = Field(default_factory=list)
    overridden_provider_ids: list[str] = Field(
        default_factory=list, description="Mismatched providers added under an override"
    )


class DispatchPackage(BaseModel):
    """
    What an operator needs to send an RFQ through one channel

    The wire format of the eventual email is not modelled here.
    """

    destination_id: str
    quote_id: str
    provider_id: str
    mode: DispatchMode
    target: str = Field(..., description="Email address or RFQ submission URL")
    offer_token: str
    subject: str
