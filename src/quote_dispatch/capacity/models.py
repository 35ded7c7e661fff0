"""
Capacity Domain Models

Weekly capacity snapshots reported by providers, and the append-only log
of requests asking them to report.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class CapacityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    OVERLOADED = "overloaded"


class CapacityRequestReason(str, Enum):
    """Why the operator is asking for an update"""

    STALE = "stale"
    MISSING = "missing"
    MANUAL = "manual"


class CapacityUpdateRequest(BaseModel):
    """One ask sent to a provider; never mutated"""

    id: str
    provider_id: str
    week_start_date: str = Field(..., description="Monday of the week, YYYY-MM-DD")
    reason: CapacityRequestReason
    quote_id: str | None = None
    requested_by_actor_id: str | None = None
    created_at: datetime

    model_config = {"frozen": True}


class CapacitySnapshot(BaseModel):
    """A provider's own capacity report for a capability in a week"""

    provider_id: str
    week_start_date: str
    capability: str
    capacity_level: CapacityLevel
    notes: str | None = None
    created_at: datetime

    model_config = {"frozen": True}
