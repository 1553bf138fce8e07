"""Market code normalization.

Bare numeric codes are mapped to namespaced identifiers understood by the
quote upstream (``sh600519``, ``hk00700``, ``jj000216``...). Some 6-digit
codes are shared between a Shenzhen listing and an open-ended fund; those
expand to both candidates and are reconciled downstream.
"""

from typing import Iterable

from fund_valuation.models.market import (
    BEIJING,
    EXCHANGE_NAMESPACES,
    HONG_KONG,
    NAMESPACES,
    OPEN_FUND,
    SHANGHAI,
    SHENZHEN,
    Candidates,
    Normalized,
    Single,
)

_SHANGHAI_PREFIXES = ("50", "51", "60", "68")
_BEIJING_PREFIXES = ("83", "87", "43")
# 00xxxx: Shenzhen stock or open-ended fund; 16xxxx: listed open-ended fund (LOF)
_AMBIGUOUS_PREFIXES = ("00", "16")

# Markers stripped to get back to a bare fund code
_FUND_CODE_MARKERS = (OPEN_FUND, SHENZHEN, SHANGHAI)


def normalize(code: str) -> Normalized:
    """Resolve a bare or qualified code into one or more identifiers.

    Unrecognized shapes pass through unchanged.
    """
    code = (code or "").strip()
    if not code.isdigit():
        return Single(code)

    if len(code) == 6:
        if code.startswith(_SHANGHAI_PREFIXES):
            return Single(f"{SHANGHAI}{code}")
        if code.startswith(_AMBIGUOUS_PREFIXES):
            return Candidates((f"{SHENZHEN}{code}", f"{OPEN_FUND}{code}"))
        if code.startswith(("30", "15")):
            return Single(f"{SHENZHEN}{code}")
        if code.startswith(_BEIJING_PREFIXES):
            return Single(f"{BEIJING}{code}")
        return Single(f"{OPEN_FUND}{code}")

    if len(code) == 5:
        return Single(f"{HONG_KONG}{code}")

    return Single(code)


def flatten(codes: Iterable[str]) -> list[str]:
    """Normalize codes and expand candidates, de-duplicated in first-seen order."""
    seen: dict[str, None] = {}
    for code in codes:
        for identifier in normalize(code).flatten():
            if identifier:
                seen.setdefault(identifier, None)
    return list(seen)


def prefer_exchange(normalized: Normalized) -> str:
    """Pick the exchange-listed candidate over the fund one."""
    if isinstance(normalized, Single):
        return normalized.identifier
    for identifier in normalized.identifiers:
        if namespace_of(identifier) in EXCHANGE_NAMESPACES:
            return identifier
    return normalized.identifiers[0]


def namespace_of(identifier: str) -> str | None:
    prefix = identifier[:2].lower()
    if prefix in NAMESPACES and identifier[2:].isdigit():
        return prefix
    return None


def strip_namespace(code: str) -> str:
    code = (code or "").strip()
    if code[:2].lower() in _FUND_CODE_MARKERS:
        return code[2:]
    return code
