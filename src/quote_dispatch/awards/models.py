"""
Award Domain Models

One award per quote, immutable once written except for the feedback fields,
which may be appended exactly once.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class FeedbackReason(str, Enum):
    """Primary reason the winner was chosen"""

    PRICE = "price"
    LEAD_TIME = "lead_time"
    QUALITY = "quality"
    CAPABILITY = "capability"
    RESPONSIVENESS = "responsiveness"
    RELATIONSHIP = "relationship"
    OTHER = "other"


class FeedbackConfidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Award(BaseModel):
    """The recorded selection of a winning provider for a quote"""

    quote_id: str
    winning_provider_id: str
    winning_offer_id: str | None = None
    awarded_at: datetime
    awarded_by_actor_id: str
    notes: str | None = None
    feedback_reason: FeedbackReason | None = None
    feedback_confidence: FeedbackConfidence | None = None
    feedback_notes: str | None = None
    feedback_recorded_at: datetime | None = None
    feedback_actor_id: str | None = None

    model_config = {"frozen": True}

    @property
    def has_feedback(self) -> bool:
        return self.feedback_reason is not None
