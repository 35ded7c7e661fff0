"""
Offer Domain Models

Price and lead-time proposals against an RFQ, from a provider or entered by
the operator on behalf of an off-platform source.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class OfferStatus(str, Enum):
    RECEIVED = "received"
    REVISED = "revised"
    QUOTED = "quoted"
    WITHDRAWN = "withdrawn"


class OfferSource(str, Enum):
    """Where an offer came from"""

    PROVIDER = "provider"
    EXTERNAL = "external"
    MANUAL = "manual"


class OfferInput(BaseModel):
    """
    Raw offer fields as submitted

    Deliberately loose (strings accepted) - validation with field-level
    errors happens in offers.scoring.validate_offer_input.
    """

    total_price: Any = None
    currency: str | None = None
    lead_time_days_min: Any = None
    lead_time_days_max: Any = None
    notes: str | None = None
    assumptions: str | None = None
    internal_cost: Any = None
    internal_shipping_cost: Any = None
    source_type: OfferSource = OfferSource.PROVIDER
    source_name: str | None = None
    source_url: str | None = None


class Offer(BaseModel):
    """A stored offer (unique per quote/provider pair)"""

    id: str
    quote_id: str
    provider_id: str
    destination_id: str | None = None
    total_price: Decimal | None = None
    currency: str = "USD"
    lead_time_days_min: int | None = None
    lead_time_days_max: int | None = None
    status: OfferStatus = OfferStatus.RECEIVED
    notes: str | None = None
    assumptions: str | None = None
    internal_cost: Decimal | None = Field(default=None, description="Admin-only")
    internal_shipping_cost: Decimal | None = Field(default=None, description="Admin-only")
    source_type: OfferSource = OfferSource.PROVIDER
    source_name: str | None = None
    source_url: str | None = None
    received_at: datetime
    updated_at: datetime

    model_config = {"frozen": True}

    @property
    def is_active(self) -> bool:
        return self.status != OfferStatus.WITHDRAWN


class OfferCompleteness(BaseModel):
    """
    Two-tier completeness verdict

    `missing` lists blocking and advisory gaps alike; only a missing price
    makes the offer non-actionable.
    """

    is_actionable: bool
    missing: list[str] = Field(default_factory=list)
