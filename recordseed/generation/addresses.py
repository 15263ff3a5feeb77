"""
Address coordination helpers.

Country and state fields that share an address prefix (Billing, Shipping,
Mailing, Other) must agree within a record. Both sides use the same
``RecordContext`` key, e.g. ``"billing-address-country-selection"``. When the
store exposes no picklist metadata for free-text country/state fields, a
small built-in country table supplies consistent pairs.
"""

from __future__ import annotations

import re
from typing import Dict, Optional, Tuple

ADDRESS_PREFIXES: Tuple[Tuple[str, str], ...] = (
    ("PersonMailing", "mailing"),
    ("PersonOther", "other"),
    ("Billing", "billing"),
    ("Shipping", "shipping"),
    ("Mailing", "mailing"),
    ("Other", "other"),
)

COUNTRY_PATTERN = re.compile(r"country", re.IGNORECASE)
STATE_PATTERN = re.compile(r"(^|[a-z_])state(code)?($|__c$)|province|region", re.IGNORECASE)

# code -> (name, ((state code, state name), ...))
COUNTRIES: Dict[str, Tuple[str, Tuple[Tuple[str, str], ...]]] = {
    "AU": (
        "Australia",
        (
            ("NSW", "New South Wales"),
            ("VIC", "Victoria"),
            ("QLD", "Queensland"),
            ("WA", "Western Australia"),
            ("SA", "South Australia"),
            ("TAS", "Tasmania"),
            ("ACT", "Australian Capital Territory"),
            ("NT", "Northern Territory"),
        ),
    ),
    "US": (
        "United States",
        (
            ("CA", "California"),
            ("NY", "New York"),
            ("TX", "Texas"),
            ("FL", "Florida"),
            ("WA", "Washington"),
            ("IL", "Illinois"),
        ),
    ),
    "CA": (
        "Canada",
        (
            ("ON", "Ontario"),
            ("QC", "Quebec"),
            ("BC", "British Columbia"),
            ("AB", "Alberta"),
        ),
    ),
    "GB": (
        "United Kingdom",
        (
            ("ENG", "England"),
            ("SCT", "Scotland"),
            ("WLS", "Wales"),
            ("NIR", "Northern Ireland"),
        ),
    ),
}
COUNTRY_CODES: Tuple[str, ...] = tuple(COUNTRIES)


def address_prefix(field_name: str) -> Optional[str]:
    for prefix, key in ADDRESS_PREFIXES:
        if field_name.startswith(prefix):
            return key
    return None


def looks_like_country(field_name: str) -> bool:
    return bool(COUNTRY_PATTERN.search(field_name))


def looks_like_state(field_name: str) -> bool:
    return bool(STATE_PATTERN.search(field_name)) and not looks_like_country(field_name)


def selection_key(field_name: str) -> str:
    """
    RecordContext key under which a controlling value is remembered.

    Country and state fields with the same address prefix share one key.
    """
    prefix = address_prefix(field_name)
    if prefix and (looks_like_country(field_name) or looks_like_state(field_name)):
        return f"{prefix}-address-country-selection"
    if looks_like_country(field_name) or looks_like_state(field_name):
        return "address-country-selection"
    return f"{field_name.lower()}-selection"


def dependent_key(field_name: str) -> str:
    """RecordContext key for a dependent value chosen before its controller."""
    return f"{field_name.lower()}-dependent-selection"


def resolve_country(value: Optional[str]) -> Optional[str]:
    """Map a stored country code or name to a code of the built-in table."""
    if not value:
        return None
    needle = str(value).strip().lower()
    for code, (name, _) in COUNTRIES.items():
        if needle in (code.lower(), name.lower()):
            return code
    if needle in ("usa", "united states of america"):
        return "US"
    if needle in ("uk", "great britain"):
        return "GB"
    return None


def country_label(code: str, max_length: int) -> str:
    """Full country name, or its code when the name does not fit."""
    name = COUNTRIES[code][0]
    return name if not max_length or len(name) <= max_length else code


def state_label(code: str, index: int, max_length: int) -> str:
    states = COUNTRIES[code][1]
    state_code, state_name = states[index % len(states)]
    return state_name if not max_length or len(state_name) <= max_length else state_code


__all__ = [
    "COUNTRIES",
    "COUNTRY_CODES",
    "address_prefix",
    "country_label",
    "dependent_key",
    "looks_like_country",
    "looks_like_state",
    "resolve_country",
    "selection_key",
    "state_label",
]
