"""
Dispatch Policy - operational thresholds for the dispatch core

Every tunable number the handlers consult lives here, so a deployment can
tighten or relax them without code changes.

Fun fact: The five-character minimum for override reasons is just long enough
to rule out "ok" and "yes" but short enough that nobody writes an essay!
"""

import os

from pydantic import BaseModel, Field


ENV_PREFIX = "QUOTE_DISPATCH_"


class DispatchPolicy(BaseModel):
    """
    Thresholds consulted by the dispatch, award and capacity handlers

    Defaults match production behaviour; tests override individual fields.
    """

    min_override_reason_length: int = Field(
        default=5,
        ge=1,
        description="Minimum characters in a mismatch override justification",
    )

    min_web_form_notes_length: int = Field(
        default=5,
        ge=1,
        description="Minimum characters of notes when submitting through a web form",
    )

    award_feedback_max_notes_length: int = Field(
        default=2000,
        ge=1,
        description="Maximum characters in award feedback notes",
    )

    capacity_request_window_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Rolling window in which a repeat capacity request is suppressed",
    )

    offer_token_bytes: int = Field(
        default=24,
        ge=16,
        le=64,
        description="Random bytes in a destination's self-service offer token",
    )

    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency assumed when an offer omits one",
    )

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls) -> "DispatchPolicy":
        """
        Build a policy from QUOTE_DISPATCH_* environment variables

        Unset variables keep their defaults; e.g. QUOTE_DISPATCH_CAPACITY_REQUEST_WINDOW_DAYS=14.
        """
        overrides = {}
        for name in cls.model_fields:
            value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if value is not None:
                overrides[name] = value
        return cls(**overrides)
