"""
Kernel - shared infrastructure for the dispatch core

Clock, identity, errors, events, logging, metrics and retry: everything the
domain packages build on and nothing domain-specific.
"""

from quote_dispatch.kernel.actors import Actor, ActorContext, ActorRole, StaticActorContext
from quote_dispatch.kernel.errors import (
    AlreadyRecorded,
    BusinessRuleDenial,
    IdempotentNoOp,
    QuoteDispatchError,
    StoreError,
    ValidationFailed,
)
from quote_dispatch.kernel.events import DomainEvent, EventType
from quote_dispatch.kernel.ids import generate_id
from quote_dispatch.kernel.results import OperationResult
from quote_dispatch.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # Identity
    "Actor",
    "ActorContext",
    "ActorRole",
    "StaticActorContext",
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events & results
    "DomainEvent",
    "EventType",
    "OperationResult",
    # Errors
    "QuoteDispatchError",
    "ValidationFailed",
    "BusinessRuleDenial",
    "IdempotentNoOp",
    "AlreadyRecorded",
    "StoreError",
]
