"""
Actor identity - who is performing an operation

Authentication lives outside the core; callers hand in an ActorContext that
resolves the current actor's id and role.
"""

from enum import Enum
from typing import Protocol

from pydantic import BaseModel, Field

from quote_dispatch.kernel.errors import AccessDenied


class ActorRole(str, Enum):
    """Roles recognised by the core"""

    ADMIN = "admin"
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class Actor(BaseModel):
    """The acting user: an id plus a role"""

    id: str = Field(..., min_length=1)
    role: ActorRole

    model_config = {"frozen": True}

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


class ActorContext(Protocol):
    """Resolves the identity of whoever is calling"""

    def current_actor(self) -> Actor:
        ...


class StaticActorContext:
    """ActorContext that always returns the same actor (CLI, jobs, tests)"""

    def __init__(self, actor: Actor) -> None:
        self.actor = actor

    def current_actor(self) -> Actor:
        return self.actor


def require_admin(actor: Actor, operation: str) -> None:
    """
    Raise AccessDenied unless the actor is an admin

    Args:
        actor: Acting user
        operation: Operation name, echoed in the denial
    """
    if not actor.is_admin:
        raise AccessDenied(actor.role.value, operation)


def require_admin_or_supplier(actor: Actor, provider_id: str, operation: str) -> None:
    """Allow admins, or the supplier acting on its own provider record"""
    if actor.is_admin:
        return
    if actor.role == ActorRole.SUPPLIER and actor.id == provider_id:
        return
    raise AccessDenied(actor.role.value, operation)
