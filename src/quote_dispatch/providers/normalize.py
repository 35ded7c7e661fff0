"""
Normalisation of free-text RFQ and provider attributes

Buyers type "Texas", "tx" or "U.S.A."; providers list "CNC Machining " with a
trailing space. Everything is folded to one canonical form before matching.
"""

import re
from typing import Iterable


US_STATE_NAME_TO_CODE = {
    "ALABAMA": "AL",
    "ALASKA": "AK",
    "ARIZONA": "AZ",
    "ARKANSAS": "AR",
    "CALIFORNIA": "CA",
    "COLORADO": "CO",
    "CONNECTICUT": "CT",
    "DELAWARE": "DE",
    "FLORIDA": "FL",
    "GEORGIA": "GA",
    "HAWAII": "HI",
    "IDAHO": "ID",
    "ILLINOIS": "IL",
    "INDIANA": "IN",
    "IOWA": "IA",
    "KANSAS": "KS",
    "KENTUCKY": "KY",
    "LOUISIANA": "LA",
    "MAINE": "ME",
    "MARYLAND": "MD",
    "MASSACHUSETTS": "MA",
    "MICHIGAN": "MI",
    "MINNESOTA": "MN",
    "MISSISSIPPI": "MS",
    "MISSOURI": "MO",
    "MONTANA": "MT",
    "NEBRASKA": "NE",
    "NEVADA": "NV",
    "NEW HAMPSHIRE": "NH",
    "NEW JERSEY": "NJ",
    "NEW MEXICO": "NM",
    "NEW YORK": "NY",
    "NORTH CAROLINA": "NC",
    "NORTH DAKOTA": "ND",
    "OHIO": "OH",
    "OKLAHOMA": "OK",
    "OREGON": "OR",
    "PENNSYLVANIA": "PA",
    "RHODE ISLAND": "RI",
    "SOUTH CAROLINA": "SC",
    "SOUTH DAKOTA": "SD",
    "TENNESSEE": "TN",
    "TEXAS": "TX",
    "UTAH": "UT",
    "VERMONT": "VT",
    "VIRGINIA": "VA",
    "WASHINGTON": "WA",
    "WEST VIRGINIA": "WV",
    "WISCONSIN": "WI",
    "WYOMING": "WY",
    "DISTRICT OF COLUMBIA": "DC",
}

US_STATE_CODES = frozenset(US_STATE_NAME_TO_CODE.values())

COUNTRY_ALIASES = {
    "US": "US",
    "USA": "US",
    "U S": "US",
    "U S A": "US",
    "UNITED STATES": "US",
    "UNITED STATES OF AMERICA": "US",
    "CA": "CA",
    "CANADA": "CA",
    "MX": "MX",
    "MEXICO": "MX",
}


def normalize_text(value: str | None) -> str | None:
    """Trimmed text, or None when empty"""
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def normalize_process(value: str | None) -> str | None:
    """Lower-cased, whitespace-collapsed process or material name"""
    text = normalize_text(value)
    if text is None:
        return None
    return re.sub(r"\s+", " ", text.lower())


def normalize_set(values: Iterable[str]) -> frozenset[str]:
    return frozenset(n for n in (normalize_process(v) for v in values) if n)


def normalize_country(value: str | None) -> str | None:
    """
    Fold a country to ISO-2 where an alias is known

    Unknown countries pass through upper-cased with punctuation collapsed.
    """
    text = normalize_text(value)
    if text is None:
        return None
    cleaned = re.sub(r"[.\s]+", " ", text.upper()).strip()
    if not cleaned:
        return None
    return COUNTRY_ALIASES.get(cleaned, cleaned)


def normalize_state(value: str | None) -> str | None:
    """
    Fold a US state name or code to its two-letter code

    Returns None for anything that is not a recognised US state.
    """
    text = normalize_text(value)
    if text is None:
        return None
    upper = text.upper()
    if upper in US_STATE_CODES:
        return upper
    cleaned = re.sub(r"\s+", " ", re.sub(r"[^A-Z]", " ", upper)).strip()
    return US_STATE_NAME_TO_CODE.get(cleaned)


def processes_match(required: str, declared: Iterable[str]) -> bool:
    """
    True when the required process equals, contains or is contained by a
    declared one ("cnc" matches "cnc machining" and vice versa)
    """
    for candidate in declared:
        if candidate == required or required in candidate or candidate in required:
            return True
    return False
