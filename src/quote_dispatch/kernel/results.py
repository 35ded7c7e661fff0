"""
Tagged operation results returned to callers

Every caller-facing operation answers with an OperationResult instead of
raising for expected outcomes: `ok=True` with a value, or `ok=False` with a
stable `error_kind` and a structured `detail`.
"""

from typing import Any

from pydantic import BaseModel, Field


INTERNAL_ERROR = "internal_error"


class OperationResult(BaseModel):
    """Outcome of one caller-facing operation"""

    ok: bool
    value: Any = None
    skipped: bool = Field(
        default=False, description="True when the write was already applied"
    )
    error_kind: str | None = None
    detail: dict[str, Any] = Field(default_factory=dict)
    correlation_id: str | None = None

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @classmethod
    def success(cls, value: Any = None, *, skipped: bool = False) -> "OperationResult":
        return cls(ok=True, value=value, skipped=skipped)

    @classmethod
    def failure(
        cls,
        error_kind: str,
        detail: dict[str, Any] | None = None,
        *,
        correlation_id: str | None = None,
    ) -> "OperationResult":
        return cls(
            ok=False,
            error_kind=error_kind,
            detail=detail or {},
            correlation_id=correlation_id,
        )
