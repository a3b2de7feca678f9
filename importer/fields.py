"""
Canonical trade fields
----------------------
The closed set of fields a source column can be mapped onto, with the
required flag and the header aliases used to suggest a mapping for a custom
CSV.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union


class CanonicalField(str, Enum):
    ACCOUNT_NUMBER = "accountNumber"
    INSTRUMENT = "instrument"
    ENTRY_ID = "entryId"
    CLOSE_ID = "closeId"
    QUANTITY = "quantity"
    ENTRY_PRICE = "entryPrice"
    CLOSE_PRICE = "closePrice"
    ENTRY_DATE = "entryDate"
    CLOSE_DATE = "closeDate"
    PNL = "pnl"
    TIME_IN_POSITION = "timeInPosition"
    SIDE = "side"
    COMMISSION = "commission"


class Coercion(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    PRICE = "price"
    CURRENCY = "currency"
    DURATION = "duration"
    DATE = "date"
    SIDE = "side"


@dataclass(frozen=True)
class FieldSpec:
    field: CanonicalField
    required: bool
    coercion: Coercion
    aliases: Tuple[str, ...] = ()


FIELD_SPECS: Dict[CanonicalField, FieldSpec] = {
    s.field: s
    for s in (
        FieldSpec(CanonicalField.ACCOUNT_NUMBER, False, Coercion.TEXT, ("account", "accountnumber")),
        FieldSpec(CanonicalField.INSTRUMENT, True, Coercion.TEXT, ("symbol", "ticker")),
        FieldSpec(CanonicalField.ENTRY_ID, False, Coercion.TEXT, ("entryid", "entryorderid")),
        FieldSpec(CanonicalField.CLOSE_ID, False, Coercion.TEXT, ("closeid", "closeorderid")),
        FieldSpec(CanonicalField.QUANTITY, True, Coercion.NUMBER, ("qty", "amount")),
        FieldSpec(CanonicalField.ENTRY_PRICE, True, Coercion.PRICE, ("entryprice",)),
        FieldSpec(CanonicalField.CLOSE_PRICE, True, Coercion.PRICE, ("closeprice", "exitprice")),
        FieldSpec(CanonicalField.ENTRY_DATE, True, Coercion.DATE, ("entrydate",)),
        FieldSpec(CanonicalField.CLOSE_DATE, True, Coercion.DATE, ("closedate", "exitdate")),
        FieldSpec(CanonicalField.PNL, True, Coercion.CURRENCY, ("pnl", "profit")),
        FieldSpec(CanonicalField.TIME_IN_POSITION, False, Coercion.DURATION, ("timeinposition", "duration")),
        FieldSpec(CanonicalField.SIDE, False, Coercion.SIDE, ("side", "direction")),
        FieldSpec(CanonicalField.COMMISSION, False, Coercion.NUMBER, ("commission", "fee")),
    )
}

REQUIRED_FIELDS: Tuple[CanonicalField, ...] = tuple(f for f, s in FIELD_SPECS.items() if s.required)

# header string -> canonical field
ColumnMapping = Dict[str, CanonicalField]

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_header(header: str) -> str:
    return _NON_ALNUM.sub("", header.lower())


def _alias_index() -> Dict[str, CanonicalField]:
    out: Dict[str, CanonicalField] = {}
    for field, spec in FIELD_SPECS.items():
        out.setdefault(normalize_header(field.value), field)
        for alias in spec.aliases:
            out.setdefault(normalize_header(alias), field)
    return out


_ALIASES = _alias_index()


def suggest_mapping(headers: Iterable[str]) -> ColumnMapping:
    """Propose header -> field by alias; the first header claiming a field keeps it."""
    mapping: ColumnMapping = {}
    taken = set()
    for header in headers:
        if not header:
            continue
        field = _ALIASES.get(normalize_header(header))
        if field is None or field in taken:
            continue
        mapping[header] = field
        taken.add(field)
    return mapping


def missing_required_fields(mapping: Mapping[str, Union[CanonicalField, str]]) -> List[CanonicalField]:
    mapped = {CanonicalField(v) for v in mapping.values() if v}
    return [f for f in REQUIRED_FIELDS if f not in mapped]


def coerce_mapping(mapping: Mapping[str, Union[CanonicalField, str, None]]) -> ColumnMapping:
    """Accept user mappings keyed by header with field names as plain strings; blank targets are skipped."""
    out: ColumnMapping = {}
    for header, target in mapping.items():
        if not target:
            continue
        out[header] = CanonicalField(target)
    return out


def header_positions(
    headers: Sequence[str], mapping: ColumnMapping, columns: Optional[Sequence[int]] = None
) -> List[Tuple[int, CanonicalField]]:
    """(source column, field) for every mapped header."""
    cols = list(columns) if columns is not None else list(range(len(headers)))
    return [(cols[i], mapping[h]) for i, h in enumerate(headers) if h in mapping]
