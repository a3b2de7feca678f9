"""
Field mapper
------------
Turns extracted data rows into per-row canonical field values using a
header -> field mapping and the coercion table. Fixed-layout platforms get
their mapping resolved from the layout (exact header first, then the first
layout key contained in the header) and their post-processing rules applied
here, so the assembler only ever sees canonical values.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Sequence

from core.models import to_datetime
from importer.coercion import Coercer
from importer.errors import FieldCoercionError
from importer.fields import CanonicalField, ColumnMapping, header_positions
from importer.platforms import FieldLayout, MatchMode
from utils.logger import log_extra, setup_logger

logger = setup_logger(__name__)

_APOSTROPHES = re.compile(r"[’‘′`]")


def normalize_apostrophes(header: str) -> str:
    return _APOSTROPHES.sub("'", header)


def resolve_layout_mapping(headers: Sequence[str], layout: FieldLayout) -> ColumnMapping:
    mapping: ColumnMapping = {}
    for header in headers:
        if not header:
            continue
        key = normalize_apostrophes(header).strip()
        target = layout.columns.get(key)
        if target is None and layout.match == MatchMode.SUBSTRING:
            target = next((f for k, f in layout.columns.items() if k in key), None)
        if target is not None:
            mapping[header] = target
    return mapping


@dataclass
class MappedRow:
    index: int
    values: Dict[CanonicalField, Any] = field(default_factory=dict)
    # set when a fatal field (pnl) could not be coerced; the row is dropped
    error: Optional[FieldCoercionError] = None
    empty: bool = False


def map_row(
    index: int,
    row: Sequence[str],
    positions: Sequence[tuple],
    coercers: Dict[CanonicalField, Coercer],
    fatal_fields: FrozenSet[CanonicalField] = frozenset({CanonicalField.PNL}),
    min_cells: int = 0,
    platform: Optional[str] = None,
) -> MappedRow:
    if not any(c and str(c).strip() for c in row) or len(row) < min_cells:
        return MappedRow(index=index, empty=True)

    out = MappedRow(index=index)
    for col, target in positions:
        raw = row[col] if col < len(row) else None
        coerced = coercers[target](raw)
        if coerced.error is not None:
            if target in fatal_fields:
                out.error = coerced.error
                continue
            logger.debug(
                "coercion fallback",
                extra=log_extra(platform=platform, row_index=index, field=target.value, raw=raw),
            )
        out.values[target] = coerced.value
    return out


def map_rows(
    headers: Sequence[str],
    data_rows: Sequence[Sequence[str]],
    mapping: ColumnMapping,
    coercers: Dict[CanonicalField, Coercer],
    *,
    columns: Optional[Sequence[int]] = None,
    row_offset: int = 0,
    row_indexes: Optional[Sequence[int]] = None,
    fatal_fields: FrozenSet[CanonicalField] = frozenset({CanonicalField.PNL}),
    min_cells: int = 0,
    platform: Optional[str] = None,
) -> List[MappedRow]:
    positions = header_positions(headers, mapping, columns)
    indexes = row_indexes if row_indexes is not None else range(row_offset, row_offset + len(data_rows))
    return [
        map_row(indexes[i], row, positions, coercers, fatal_fields, min_cells, platform)
        for i, row in enumerate(data_rows)
    ]


def _strip_instrument(value: Optional[str], layout: FieldLayout) -> Optional[str]:
    if not value:
        return value
    if layout.instrument_suffix_pattern:
        value = re.sub(layout.instrument_suffix_pattern, "", value)
    if layout.strip_contract_suffix:
        value = value[: -layout.strip_contract_suffix]
    return value


def _seconds_between(start: Optional[str], end: Optional[str]) -> Optional[float]:
    a: Optional[datetime] = to_datetime(start)
    b: Optional[datetime] = to_datetime(end)
    if a is None or b is None:
        return None
    return round((b - a).total_seconds())


def apply_layout(row: MappedRow, layout: FieldLayout) -> MappedRow:
    """Platform-specific fixes applied to an already coerced row."""
    if row.empty or row.error is not None:
        return row
    v = dict(row.values)

    if CanonicalField.INSTRUMENT in v:
        v[CanonicalField.INSTRUMENT] = _strip_instrument(v[CanonicalField.INSTRUMENT], layout)

    if layout.swap_legs_when_sold_first:
        entry = to_datetime(v.get(CanonicalField.ENTRY_DATE))
        close = to_datetime(v.get(CanonicalField.CLOSE_DATE))
        if entry is not None and close is not None and entry > close:
            v[CanonicalField.ENTRY_DATE], v[CanonicalField.CLOSE_DATE] = (
                v[CanonicalField.CLOSE_DATE],
                v[CanonicalField.ENTRY_DATE],
            )
            v[CanonicalField.ENTRY_PRICE], v[CanonicalField.CLOSE_PRICE] = (
                v.get(CanonicalField.CLOSE_PRICE),
                v.get(CanonicalField.ENTRY_PRICE),
            )
            v[CanonicalField.ENTRY_ID], v[CanonicalField.CLOSE_ID] = (
                v.get(CanonicalField.CLOSE_ID),
                v.get(CanonicalField.ENTRY_ID),
            )
            v[CanonicalField.SIDE] = "short"
        elif entry is not None and close is not None:
            v[CanonicalField.SIDE] = "long"

    if layout.pnl_includes_commission:
        v[CanonicalField.PNL] = v.get(CanonicalField.PNL, 0.0) + v.get(CanonicalField.COMMISSION, 0.0)

    if layout.time_from_dates:
        seconds = _seconds_between(v.get(CanonicalField.ENTRY_DATE), v.get(CanonicalField.CLOSE_DATE))
        if seconds is not None:
            v[CanonicalField.TIME_IN_POSITION] = seconds

    return MappedRow(index=row.index, values=v, error=row.error, empty=row.empty)
