"""
Normalisation Tests
"""

import pytest

from quote_dispatch.providers.normalize import (
    normalize_country,
    normalize_process,
    normalize_set,
    normalize_state,
    processes_match,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("  CNC   Machining ", "cnc machining"),
        ("Sheet Metal", "sheet metal"),
        ("   ", None),
        (None, None),
    ],
)
def test_normalize_process(raw, expected) -> None:
    assert normalize_process(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Texas", "TX"),
        ("tx", "TX"),
        ("new  york", "NY"),
        ("District of Columbia", "DC"),
        ("Ontario", None),
        ("", None),
    ],
)
def test_normalize_state(raw, expected) -> None:
    assert normalize_state(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("U.S.A.", "US"),
        ("usa", "US"),
        ("United States", "US"),
        ("Mexico", "MX"),
        ("Germany", "GERMANY"),
        (None, None),
    ],
)
def test_normalize_country(raw, expected) -> None:
    assert normalize_country(raw) == expected


def test_normalize_set_drops_blanks() -> None:
    assert normalize_set(["CNC Machining", " ", "cnc machining"]) == frozenset({"cnc machining"})


def test_processes_match_is_containment_either_way() -> None:
    assert processes_match("cnc", {"cnc machining"})
    assert processes_match("cnc machining", {"cnc"})
    assert processes_match("sheet metal", {"sheet metal"})
    assert not processes_match("injection molding", {"cnc machining", "sheet metal"})
    assert not processes_match("cnc", set())
