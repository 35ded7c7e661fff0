"""
Dispatch Policy Tests
"""

import pytest
from pydantic import ValidationError

from quote_dispatch.kernel.policy import DispatchPolicy


def test_defaults() -> None:
    policy = DispatchPolicy()

    assert policy.min_override_reason_length == 5
    assert policy.min_web_form_notes_length == 5
    assert policy.award_feedback_max_notes_length == 2000
    assert policy.capacity_request_window_days == 7
    assert policy.default_currency == "USD"


def test_from_env_reads_prefixed_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QUOTE_DISPATCH_CAPACITY_REQUEST_WINDOW_DAYS", "14")
    monkeypatch.setenv("QUOTE_DISPATCH_DEFAULT_CURRENCY", "EUR")

    policy = DispatchPolicy.from_env()

    assert policy.capacity_request_window_days == 14
    assert policy.default_currency == "EUR"
    assert policy.min_override_reason_length == 5


def test_from_env_rejects_out_of_range(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QUOTE_DISPATCH_CAPACITY_REQUEST_WINDOW_DAYS", "0")

    with pytest.raises(ValidationError):
        DispatchPolicy.from_env()


def test_policy_is_frozen() -> None:
    policy = DispatchPolicy()

    with pytest.raises(ValidationError):
        policy.min_override_reason_length = 1
