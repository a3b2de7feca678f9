"""
Row classifier
--------------
Pure predicates that recognize structural markers in broker exports where
the account and contract are written as standalone rows above the trades.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional, Sequence

ACCOUNT_HEADER = "Account"
ENTRY_ORDER_HEADER = "Entry Order Number"
COMPLETED_ORDERS = "Completed Orders"

SENTINELS = frozenset({ACCOUNT_HEADER, ENTRY_ORDER_HEADER})

_EXCHANGE_CODE = re.compile(r"^[A-Z]{3}\d$")
_INSTRUMENT = re.compile(r"^[A-Z]{2,4}\d{1,2}$")


class Marker(str, Enum):
    ACCOUNT_NUMBER = "account_number"
    INSTRUMENT = "instrument"
    SECTION_HEADER = "section_header"
    NONE = "none"


def is_account_number(value: str) -> bool:
    # heuristic: long, not an exchange code, not a numeric id, not a header label
    return (
        len(value) > 8
        and not _EXCHANGE_CODE.match(value)
        and not value.isdigit()
        and value not in SENTINELS
    )


def is_instrument(value: str) -> bool:
    return bool(_INSTRUMENT.match(value))


def classify_cell(value: Optional[str]) -> Marker:
    if not value:
        return Marker.NONE
    if value == ENTRY_ORDER_HEADER:
        return Marker.SECTION_HEADER
    if is_account_number(value):
        return Marker.ACCOUNT_NUMBER
    if is_instrument(value):
        return Marker.INSTRUMENT
    return Marker.NONE


def first_cell(row: Sequence[str]) -> str:
    return row[0] if row else ""
