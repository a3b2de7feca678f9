"""
Platform extractors
-------------------
Each extractor turns the raw string matrix of one export file into a header
row plus data rows. They are pure: the Rithmic performance walker threads
its carried account/instrument through an explicit scan state, so a file is
processed in one ordered pass with no shared state.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from importer.classifier import (
    COMPLETED_ORDERS,
    ENTRY_ORDER_HEADER,
    SENTINELS,
    Marker,
    classify_cell,
    first_cell,
)
from importer.errors import EmptyInputError, MissingHeaderError, MissingSectionMarkerError
from utils.logger import log_extra, setup_logger

logger = setup_logger(__name__)

RawRow = Sequence[str]


@dataclass
class Extraction:
    headers: List[str]
    data_rows: List[List[str]]
    # index of the first data row in the source matrix
    data_offset: int = 0
    # source column of each header; headers drop blank cells, data rows keep them
    header_columns: Optional[List[int]] = None
    # source row of each data row when they are not contiguous
    source_rows: Optional[List[int]] = None

    def columns(self) -> List[int]:
        if self.header_columns is None:
            return list(range(len(self.headers)))
        return self.header_columns

    def row_indexes(self) -> List[int]:
        if self.source_rows is None:
            return [self.data_offset + i for i in range(len(self.data_rows))]
        return self.source_rows


def _non_blank(row: RawRow) -> List[str]:
    return [c for c in row if c and c.strip()]


def _non_blank_columns(row: RawRow) -> List[int]:
    return [i for i, c in enumerate(row) if c and c.strip()]


def _first_header(rows: Sequence[RawRow], platform: Optional[str]) -> Extraction:
    if len(rows) == 0:
        raise EmptyInputError("the CSV file appears to be empty", platform=platform, row_index=0)
    # leading blank lines are not the header
    index = next((i for i, r in enumerate(rows) if _non_blank(r)), None)
    if index is None:
        raise EmptyInputError("the CSV file only contains blank rows", platform=platform, row_index=0)
    return Extraction(
        headers=_non_blank(rows[index]),
        header_columns=_non_blank_columns(rows[index]),
        data_rows=[list(r) for r in rows[index + 1:]],
        data_offset=index + 1,
    )


def extract_standard_csv(rows: Sequence[RawRow], platform: Optional[str] = None) -> Extraction:
    return _first_header(rows, platform)


def extract_quantower(rows: Sequence[RawRow], platform: Optional[str] = None) -> Extraction:
    # single header row; order columns are resolved from the platform layout
    return _first_header(rows, platform)


def extract_rithmic_orders(rows: Sequence[RawRow], platform: Optional[str] = None) -> Extraction:
    if len(rows) == 0:
        raise EmptyInputError("the orders export is empty", platform=platform, row_index=0)
    marker = next((i for i, r in enumerate(rows) if first_cell(r) == COMPLETED_ORDERS), None)
    if marker is None:
        raise MissingSectionMarkerError(
            f"no '{COMPLETED_ORDERS}' section found", platform=platform, row_index=None
        )
    header_index = marker + 1
    if header_index >= len(rows):
        raise MissingHeaderError(
            f"'{COMPLETED_ORDERS}' is not followed by a header row", platform=platform, row_index=marker
        )
    return Extraction(
        headers=_non_blank(rows[header_index]),
        header_columns=_non_blank_columns(rows[header_index]),
        data_rows=[list(r) for r in rows[header_index + 1:]],
        data_offset=header_index + 1,
    )


@dataclass(frozen=True)
class RithmicScan:
    """Carried state of the Rithmic performance walker."""

    account: str = ""
    instrument: str = ""
    headers: Tuple[str, ...] = ()
    header_index: Optional[int] = None


def rithmic_step(
    state: RithmicScan, index: int, row: RawRow, platform: Optional[str] = None
) -> Tuple[RithmicScan, Optional[List[str]]]:
    """Advance the walker by one row; returns the new state and the data row it emits, if any."""
    head = first_cell(row)
    marker = classify_cell(head)
    if marker is Marker.ACCOUNT_NUMBER:
        return replace(state, account=head), None
    if marker is Marker.INSTRUMENT:
        return replace(state, instrument=head), None
    if marker is Marker.SECTION_HEADER:
        candidate = ("AccountNumber", "Instrument", *row)
        if not state.headers:
            return replace(state, headers=candidate, header_index=index), None
        if candidate != state.headers:
            logger.warning(
                "repeated header differs from the first one, keeping the first",
                extra=log_extra(platform=platform, row_index=index, first_header_row=state.header_index),
            )
        return state, None
    if state.headers and head and head not in SENTINELS:
        return state, [state.account, state.instrument, *row]
    return state, None


def extract_rithmic_performance(rows: Sequence[RawRow], platform: Optional[str] = None) -> Extraction:
    if len(rows) == 0:
        raise EmptyInputError("the performance export is empty", platform=platform, row_index=0)
    state = RithmicScan()
    data_rows: List[List[str]] = []
    source_rows: List[int] = []
    for index, row in enumerate(rows):
        state, emitted = rithmic_step(state, index, row, platform)
        if emitted is not None:
            data_rows.append(emitted)
            source_rows.append(index)
    if not state.headers:
        raise MissingHeaderError(
            f"no '{ENTRY_ORDER_HEADER}' header row found", platform=platform, row_index=None
        )
    return Extraction(
        headers=list(state.headers),
        data_rows=data_rows,
        data_offset=source_rows[0] if source_rows else 0,
        source_rows=source_rows,
    )
