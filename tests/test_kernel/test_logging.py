"""
Logging Tests - redaction and operation outcome levels
"""

from typing import Any

import pytest

from quote_dispatch.kernel.errors import ValidationFailed, WinnerExists
from quote_dispatch.kernel.logging import (
    LogOperation,
    get_correlation_id,
    redact_context,
    set_correlation_id,
)


class RecordingLogger:
    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def info(self, event: str, **kwargs: Any) -> None:
        self.records.append(("info", event, kwargs))

    def error(self, event: str, **kwargs: Any) -> None:
        self.records.append(("error", event, kwargs))


def test_redact_context_masks_sensitive_fields() -> None:
    redacted = redact_context(
        {
            "quote_id": "q-1",
            "actor_id": "alice",
            "offer_token": "tok",
            "total_price": "1250.00",
        }
    )

    assert redacted["quote_id"] == "q-1"
    assert redacted["actor_id"] == "***REDACTED***"
    assert redacted["offer_token"] == "***REDACTED***"
    assert redacted["total_price"] == "***REDACTED***"


def test_log_operation_success() -> None:
    logger = RecordingLogger()

    with LogOperation(logger, "award", quote_id="q-1", actor_id="alice"):
        pass

    assert [(level, event) for level, event, _ in logger.records] == [
        ("info", "award started"),
        ("info", "award completed"),
    ]
    completed = logger.records[-1][2]
    assert completed["quote_id"] == "q-1"
    assert completed["actor_id"] == "***REDACTED***"
    assert "duration_ms" in completed


@pytest.mark.parametrize(
    "error", [WinnerExists("q-1"), ValidationFailed({"notes": "too short"})]
)
def test_log_operation_denial_is_info(error: Exception) -> None:
    logger = RecordingLogger()

    with pytest.raises(type(error)):
        with LogOperation(logger, "award", quote_id="q-1"):
            raise error

    level, event, context = logger.records[-1]
    assert (level, event) == ("info", "award denied")
    assert context["reason"] == str(error)


def test_log_operation_unexpected_failure_is_error() -> None:
    logger = RecordingLogger()

    with pytest.raises(RuntimeError):
        with LogOperation(logger, "award", quote_id="q-1"):
            raise RuntimeError("disk full")

    level, event, _ = logger.records[-1]
    assert (level, event) == ("error", "award failed")


def test_correlation_id_round_trip() -> None:
    set_correlation_id("corr-123")

    assert get_correlation_id() == "corr-123"
