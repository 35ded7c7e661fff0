"""
Provider Domain Models

Providers are read-mostly collaborator data: capabilities, coverage and
contact channels used to decide who an RFQ can be sent to.
"""

from enum import Enum

from pydantic import BaseModel, Field


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    PENDING = "pending"
    UNVERIFIED = "unverified"


class DispatchMode(str, Enum):
    """Channel used to deliver an RFQ to a provider"""

    EMAIL = "email"
    WEB_FORM = "web_form"


class Provider(BaseModel):
    """A manufacturing supplier that can quote RFQs"""

    id: str
    name: str
    processes: list[str] = Field(default_factory=list)
    materials: list[str] = Field(default_factory=list)
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    is_active: bool = True
    dispatch_mode: DispatchMode | None = Field(
        default=None, description="Explicit channel preference, overrides inference"
    )
    email: str | None = None
    rfq_url: str | None = None
    country: str | None = None
    states: list[str] = Field(default_factory=list, description="Ship-to coverage")

    model_config = {"frozen": True}


class MatchReason(str, Enum):
    """Why a provider scored for an RFQ (display weights in eligibility.py)"""

    PROCESS_MATCH = "process_match"
    GEO_MATCH = "geo_match"
    KNOWN_CONTACT = "known_contact"
    VERIFIED_ACTIVE = "verified_active"


class RfqCriteria(BaseModel):
    """Eligibility criteria taken from a quote; every field optional"""

    process: str | None = None
    material: str | None = None
    ship_to_state: str | None = None
    ship_to_country: str | None = None

    @property
    def has_criteria(self) -> bool:
        return any(
            (self.process, self.ship_to_state, self.ship_to_country)
        )


class ProviderMatch(BaseModel):
    """EligibilityRanker verdict for one provider"""

    provider: Provider
    eligible: bool
    mismatch: bool = False
    mismatch_reasons: list[str] = Field(default_factory=list)
    reasons: list[MatchReason] = Field(default_factory=list)
    score: int = 0
    rank_index: int | None = None

    model_config = {"frozen": True}
