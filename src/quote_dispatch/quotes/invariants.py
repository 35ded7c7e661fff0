"""
Quote Status Invariants

The explicit allow-table for quote actions, plus the pure checks built on it.
Nothing here touches storage; handlers call these before writing.
"""

from quote_dispatch.kernel.actors import Actor, ActorRole
from quote_dispatch.kernel.errors import AccessDenied, TransitionDenied
from quote_dispatch.quotes.models import Quote, QuoteAction, QuoteStatus


ACTIVE_STATUSES = frozenset(
    {
        QuoteStatus.SUBMITTED,
        QuoteStatus.IN_REVIEW,
        QuoteStatus.QUOTED,
        QuoteStatus.APPROVED,
    }
)

# action -> (allowed source statuses, target status)
ALLOWED_TRANSITIONS: dict[QuoteAction, tuple[frozenset[QuoteStatus], QuoteStatus]] = {
    QuoteAction.START_REVIEW: (frozenset({QuoteStatus.SUBMITTED}), QuoteStatus.IN_REVIEW),
    QuoteAction.MARK_QUOTED: (
        frozenset({QuoteStatus.SUBMITTED, QuoteStatus.IN_REVIEW}),
        QuoteStatus.QUOTED,
    ),
    QuoteAction.APPROVE: (frozenset({QuoteStatus.QUOTED}), QuoteStatus.APPROVED),
    QuoteAction.WIN: (ACTIVE_STATUSES, QuoteStatus.WON),
    QuoteAction.LOSE: (ACTIVE_STATUSES, QuoteStatus.LOST),
    QuoteAction.REOPEN: (
        frozenset({QuoteStatus.LOST, QuoteStatus.CANCELLED}),
        QuoteStatus.IN_REVIEW,
    ),
    QuoteAction.ARCHIVE: (ACTIVE_STATUSES | {QuoteStatus.LOST}, QuoteStatus.CANCELLED),
}

# Re-running these on a quote already in the target state is a no-op success
IDEMPOTENT_ACTIONS = frozenset({QuoteAction.ARCHIVE})

CUSTOMER_ACTIONS = frozenset({QuoteAction.ARCHIVE, QuoteAction.REOPEN})

# Only the award flow may apply these; it writes the award and the status together
AWARD_ONLY_ACTIONS = frozenset({QuoteAction.WIN})


def target_status(action: QuoteAction) -> QuoteStatus:
    return ALLOWED_TRANSITIONS[action][1]


def is_allowed(action: QuoteAction, current: QuoteStatus) -> bool:
    allowed_from, _ = ALLOWED_TRANSITIONS[action]
    return current in allowed_from


def is_idempotent_repeat(action: QuoteAction, current: QuoteStatus) -> bool:
    """True when `action` already happened (archive of a cancelled quote)"""
    return action in IDEMPOTENT_ACTIONS and current == target_status(action)


def validate_transition(quote: Quote, action: QuoteAction) -> QuoteStatus:
    """
    Check an action against the allow-table

    Args:
        quote: Quote as currently persisted
        action: Requested action

    Returns:
        The status the quote will move to

    Raises:
        TransitionDenied: If the current status is not an allowed source
    """
    if not is_allowed(action, quote.status):
        raise TransitionDenied(quote.id, action.value, quote.status.value)
    return target_status(action)


def validate_actor_may_transition(actor: Actor, quote: Quote, action: QuoteAction) -> None:
    """
    Admins may run any action; customers may archive or reopen their own quotes

    Raises:
        AccessDenied: For suppliers, or customers outside those limits
    """
    if actor.is_admin:
        return
    if (
        actor.role == ActorRole.CUSTOMER
        and actor.id == quote.customer_id
        and action in CUSTOMER_ACTIONS
    ):
        return
    raise AccessDenied(actor.role.value, f"quote.{action.value}")
