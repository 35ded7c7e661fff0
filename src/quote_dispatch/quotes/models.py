"""
Quote Domain Models

The RFQ aggregate, its status set and the actions that move it.

Fun fact: Requests for quotation predate the telephone - Victorian foundries
answered "enquiries" by post, and a reply inside a fortnight was considered fast!
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class QuoteStatus(str, Enum):
    """
    Quote lifecycle states

    submitted → in_review → quoted → approved → won | lost
    archive sends any non-terminal state to cancelled; reopen brings
    lost/cancelled back to in_review.
    """

    SUBMITTED = "submitted"
    IN_REVIEW = "in_review"
    QUOTED = "quoted"
    APPROVED = "approved"
    WON = "won"
    LOST = "lost"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({QuoteStatus.WON, QuoteStatus.CANCELLED})


class QuoteAction(str, Enum):
    """Named transitions an operator (or the award flow) can request"""

    START_REVIEW = "start_review"
    MARK_QUOTED = "mark_quoted"
    APPROVE = "approve"
    WIN = "win"
    LOSE = "lose"
    REOPEN = "reopen"
    ARCHIVE = "archive"


class Quote(BaseModel):
    """
    A buyer's request for quotation

    The criteria fields feed provider eligibility; all are optional.
    """

    id: str
    customer_id: str
    status: QuoteStatus = QuoteStatus.SUBMITTED
    title: str = ""
    process: str | None = Field(default=None, description="Required manufacturing process")
    material: str | None = None
    ship_to_state: str | None = None
    ship_to_country: str | None = None
    quantity: int | None = Field(default=None, ge=1)
    created_at: datetime
    updated_at: datetime

    model_config = {"frozen": True}
