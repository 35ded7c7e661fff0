"""
Custom exceptions for the quote dispatch core

Three families of failure, kept apart so callers can render them differently:
- ValidationFailed: bad input shape or range, with a field-level detail map
- BusinessRuleDenial: expected, user-facing refusals (not crashes)
- StoreError: infrastructure trouble, never leaked past a correlation id

Idempotent repeats (IdempotentNoOp) are a fourth, benign branch: the caller
treats them as success.

Fun fact: The word "quote" comes from the medieval Latin "quotare", to mark
with numbers - originally it meant numbering the chapters of a book!
"""

from typing import Any


class QuoteDispatchError(Exception):
    """Base exception for all quote dispatch errors"""

    pass


# ============================================================================
# Validation
# ============================================================================


class ValidationFailed(QuoteDispatchError):
    """
    Raised when input fails shape or range checks

    Carries a field -> message map so forms can highlight offending fields.
    Never retried automatically.
    """

    kind = "validation_failed"

    def __init__(self, field_errors: dict[str, str]) -> None:
        self.field_errors = dict(field_errors)
        fields = ", ".join(sorted(self.field_errors))
        super().__init__(f"Validation failed for: {fields}")

    @property
    def detail(self) -> dict[str, Any]:
        return {"fields": self.field_errors}


# ============================================================================
# Business-rule denials
# ============================================================================


class BusinessRuleDenial(QuoteDispatchError):
    """
    Base class for expected business-rule refusals

    Subclasses set a stable `kind` used as the error_kind of the
    caller-facing result, and expose structured `detail`.
    """

    kind = "business_rule_denied"

    @property
    def detail(self) -> dict[str, Any]:
        return {"message": str(self)}


class AccessDenied(BusinessRuleDenial):
    """Raised when the acting user's role may not perform the operation"""

    kind = "access_denied"

    def __init__(self, actor_role: str, operation: str) -> None:
        self.actor_role = actor_role
        self.operation = operation
        super().__init__(f"Role '{actor_role}' may not perform {operation}")

    @property
    def detail(self) -> dict[str, Any]:
        return {"message": str(self), "role": self.actor_role, "operation": self.operation}


class QuoteNotFound(BusinessRuleDenial):
    """Raised when a quote id does not resolve"""

    kind = "quote_not_found"

    def __init__(self, quote_id: str) -> None:
        self.quote_id = quote_id
        super().__init__(f"Quote {quote_id} not found")


class DestinationNotFound(BusinessRuleDenial):
    """Raised when a destination id does not resolve"""

    kind = "destination_not_found"

    def __init__(self, destination_id: str) -> None:
        self.destination_id = destination_id
        super().__init__(f"Destination {destination_id} not found")


class AwardNotFound(BusinessRuleDenial):
    """Raised when feedback targets a quote that has no award"""

    kind = "award_not_found"

    def __init__(self, quote_id: str) -> None:
        self.quote_id = quote_id
        super().__init__(f"Quote {quote_id} has no award")


class TransitionDenied(BusinessRuleDenial):
    """
    Raised when a status action is not allowed from the current status

    Surfaced verbatim to the caller - it is guidance, not a failure.
    """

    kind = "transition_denied"

    def __init__(self, quote_id: str, action: str, current_status: str) -> None:
        self.quote_id = quote_id
        self.action = action
        self.current_status = current_status
        super().__init__(
            f"Cannot {action} quote {quote_id} while it is {current_status}"
        )

    @property
    def detail(self) -> dict[str, Any]:
        return {
            "message": str(self),
            "action": self.action,
            "current_status": self.current_status,
        }


class MismatchConfirmationRequired(BusinessRuleDenial):
    """
    Raised when mismatched providers are added without a justification

    Lists only the offending providers so the operator can confirm them.
    """

    kind = "mismatch_confirmation_required"

    def __init__(self, provider_ids: list[str], min_reason_length: int) -> None:
        self.provider_ids = list(provider_ids)
        self.min_reason_length = min_reason_length
        super().__init__(
            f"Providers {', '.join(self.provider_ids)} do not match the RFQ; "
            f"an override reason of at least {min_reason_length} characters is required"
        )

    @property
    def detail(self) -> dict[str, Any]:
        return {
            "message": str(self),
            "provider_ids": self.provider_ids,
            "min_reason_length": self.min_reason_length,
        }


class WinnerExists(BusinessRuleDenial):
    """Raised when a quote already has an award"""

    kind = "winner_exists"

    def __init__(self, quote_id: str) -> None:
        self.quote_id = quote_id
        super().__init__(f"Quote {quote_id} already has a winner")


class DispatchNotReady(BusinessRuleDenial):
    """Raised when a destination lacks the contact channel its dispatch needs"""

    kind = "dispatch_not_ready"

    def __init__(self, destination_id: str, blocking_reasons: list[str]) -> None:
        self.destination_id = destination_id
        self.blocking_reasons = list(blocking_reasons)
        super().__init__(
            f"Destination {destination_id} is not ready for dispatch: "
            + "; ".join(self.blocking_reasons)
        )

    @property
    def detail(self) -> dict[str, Any]:
        return {"message": str(self), "blocking_reasons": self.blocking_reasons}


class InvalidDestinationState(BusinessRuleDenial):
    """Raised when a destination cannot be marked submitted from its status"""

    kind = "invalid_destination_state"

    def __init__(self, destination_id: str, status: str) -> None:
        self.destination_id = destination_id
        self.status = status
        super().__init__(
            f"Destination {destination_id} is already {status} and cannot be submitted"
        )

    @property
    def detail(self) -> dict[str, Any]:
        return {"message": str(self), "status": self.status}


class OfferNotFound(BusinessRuleDenial):
    """Raised when an offer does not belong to the provider and quote given"""

    kind = "offer_not_found"

    def __init__(self, offer_id: str | None, provider_id: str, quote_id: str) -> None:
        self.offer_id = offer_id
        self.provider_id = provider_id
        self.quote_id = quote_id
        subject = f"Offer {offer_id}" if offer_id else "There"
        super().__init__(
            f"{subject} is not an active offer from provider "
            f"{provider_id} on quote {quote_id}"
        )


class InvalidOfferToken(BusinessRuleDenial):
    """Raised when a self-service offer token does not resolve to a destination"""

    kind = "invalid_offer_token"

    def __init__(self) -> None:
        super().__init__("Offer link is invalid or has expired")


class CapacityRequestSuppressed(BusinessRuleDenial):
    """Raised when a capacity request was already sent and not yet answered"""

    kind = "recent_request_exists"

    def __init__(self, provider_id: str, week_start_date: str) -> None:
        self.provider_id = provider_id
        self.week_start_date = week_start_date
        super().__init__(
            f"A capacity update was already requested from {provider_id} "
            f"for week {week_start_date}"
        )


# ============================================================================
# Idempotent no-ops
# ============================================================================


class IdempotentNoOp(QuoteDispatchError):
    """
    Raised when an operation was already applied

    This is actually SUCCESS - the caller reports it as a skipped write
    so retries and double-submits stay harmless.
    """

    pass


class AlreadyRecorded(IdempotentNoOp):
    """Raised when award feedback already exists"""

    def __init__(self, quote_id: str) -> None:
        self.quote_id = quote_id
        super().__init__(f"Feedback for quote {quote_id} already recorded")


# ============================================================================
# Infrastructure
# ============================================================================


class StoreError(QuoteDispatchError):
    """Raised on persistence failures other than constraint conflicts"""

    pass
