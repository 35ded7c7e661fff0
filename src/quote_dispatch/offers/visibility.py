"""
Boundary projection of offers per viewer role

The core always works with full offer records. Callers that render offers
to customers or suppliers pass them through here first.
"""

from typing import Any

from quote_dispatch.kernel.actors import ActorRole
from quote_dispatch.offers.models import Offer


ADMIN_ONLY_FIELDS = frozenset(
    {
        "internal_cost",
        "internal_shipping_cost",
        "source_type",
        "source_name",
        "source_url",
    }
)


def project_offer_for_role(offer: Offer, role: ActorRole) -> dict[str, Any]:
    """
    JSON-ready view of an offer for the given role

    Admins see everything; customers and suppliers never see internal
    costs or where an external offer came from.
    """
    data = offer.model_dump(mode="json")
    if role == ActorRole.ADMIN:
        return data
    return {k: v for k, v in data.items() if k not in ADMIN_ONLY_FIELDS}
