import pytest

from importer.coercion import build_coercers
from importer.fields import (
    REQUIRED_FIELDS,
    CanonicalField as F,
    coerce_mapping,
    header_positions,
    missing_required_fields,
    normalize_header,
    suggest_mapping,
)
from importer.mapper import apply_layout, map_row, map_rows, normalize_apostrophes, resolve_layout_mapping
from importer.platforms import NINJATRADER_LAYOUT, RITHMIC_PERFORMANCE_LAYOUT, FieldLayout, MatchMode


def test_normalize_header():
    assert normalize_header("Entry Price ($)") == "entryprice"
    assert normalize_header("close_date") == "closedate"


def test_suggest_mapping_by_alias_first_header_wins():
    headers = ["Symbol", "Ticker", "Qty", "Entry Price", "Exit Price", "Entry Date", "Exit Date", "PnL", "Notes"]
    mapping = suggest_mapping(headers)
    assert mapping == {
        "Symbol": F.INSTRUMENT,
        "Qty": F.QUANTITY,
        "Entry Price": F.ENTRY_PRICE,
        "Exit Price": F.CLOSE_PRICE,
        "Entry Date": F.ENTRY_DATE,
        "Exit Date": F.CLOSE_DATE,
        "PnL": F.PNL,
    }
    assert missing_required_fields(mapping) == []


def test_missing_required_fields():
    assert missing_required_fields({}) == list(REQUIRED_FIELDS)
    assert [f.value for f in REQUIRED_FIELDS] == [
        "instrument",
        "quantity",
        "entryPrice",
        "closePrice",
        "entryDate",
        "closeDate",
        "pnl",
    ]
    assert missing_required_fields({"Sym": "instrument", "Note": ""})[0] == F.QUANTITY


def test_coerce_mapping_skips_blank_targets():
    assert coerce_mapping({"a": "pnl", "b": None, "c": "", "d": F.SIDE}) == {"a": F.PNL, "d": F.SIDE}
    with pytest.raises(ValueError):
        coerce_mapping({"a": "not-a-field"})


def test_header_positions_follow_source_columns():
    mapping = {"Symbol": F.INSTRUMENT, "PnL": F.PNL}
    assert header_positions(["Symbol", "Qty", "PnL"], mapping) == [(0, F.INSTRUMENT), (2, F.PNL)]
    assert header_positions(["Symbol", "PnL"], mapping, [0, 3]) == [(0, F.INSTRUMENT), (3, F.PNL)]


def test_layout_exact_match_wins_over_substring():
    layout = FieldLayout(columns={"Price": F.CLOSE_PRICE, "Entry Price": F.ENTRY_PRICE}, match=MatchMode.SUBSTRING)
    mapping = resolve_layout_mapping(["Entry Price", "Entry Price USD", "Other"], layout)
    assert mapping == {"Entry Price": F.ENTRY_PRICE, "Entry Price USD": F.CLOSE_PRICE}

    exact = FieldLayout(columns=layout.columns, match=MatchMode.EXACT)
    assert resolve_layout_mapping(["Entry Price USD"], exact) == {}


def test_rithmic_layout_substring_uses_declaration_order():
    mapping = resolve_layout_mapping(["Trade P&L (USD)", "Entry Order Number / Entry Price", ""], RITHMIC_PERFORMANCE_LAYOUT)
    assert mapping == {
        "Trade P&L (USD)": F.PNL,
        "Entry Order Number / Entry Price": F.ENTRY_ID,
    }


def test_ninjatrader_headers_normalize_apostrophes():
    assert normalize_apostrophes("Prix d’entrée") == "Prix d'entrée"
    mapping = resolve_layout_mapping(["Prix d’entrée", "Heure d‘entrée", "Compte"], NINJATRADER_LAYOUT)
    assert mapping == {
        "Prix d’entrée": F.ENTRY_PRICE,
        "Heure d‘entrée": F.ENTRY_DATE,
        "Compte": F.ACCOUNT_NUMBER,
    }


def test_map_row_pnl_error_is_fatal_other_fields_default():
    coercers = build_coercers()
    positions = [(0, F.INSTRUMENT), (1, F.QUANTITY), (2, F.PNL)]

    row = map_row(5, ["ESZ4", "lots", "abc"], positions, coercers)
    assert row.index == 5
    assert row.error is not None and row.error.field == "pnl"
    assert row.values[F.QUANTITY] == 0.0
    assert F.PNL not in row.values

    lenient = map_row(6, ["ESZ4", "1", "abc"], positions, coercers, fatal_fields=frozenset())
    assert lenient.error is None
    assert lenient.values[F.PNL] == 0.0


def test_map_row_marks_blank_and_short_rows_empty():
    coercers = build_coercers()
    positions = [(0, F.INSTRUMENT)]
    assert map_row(0, ["", "  "], positions, coercers).empty
    assert map_row(0, [], positions, coercers).empty
    assert map_row(0, ["ESZ4", "1"], positions, coercers, min_cells=3).empty
    # short rows are read as missing cells
    assert map_row(0, ["ESZ4"], [(0, F.INSTRUMENT), (4, F.PNL)], coercers).error is not None


def test_map_rows_uses_source_columns_and_offset():
    coercers = build_coercers()
    rows = map_rows(
        ["Symbol", "PnL"],
        [["ESZ4", "", "12.5"], ["NQZ4", "", "(3)"]],
        {"Symbol": F.INSTRUMENT, "PnL": F.PNL},
        coercers,
        columns=[0, 2],
        row_offset=1,
    )
    assert [r.index for r in rows] == [1, 2]
    assert rows[0].values == {F.INSTRUMENT: "ESZ4", F.PNL: 12.5}
    assert rows[1].values[F.PNL] == -3.0


def test_apply_layout_strips_suffix_and_derives_duration():
    coercers = build_coercers(date_formats=NINJATRADER_LAYOUT.date_formats, locale_currency=True)
    headers = ["Instrument", "Entry time", "Exit time", "Profit", "Commission"]
    mapped = map_rows(
        headers,
        [["ES 03-25", "15/01/2024 14:30:00", "15/01/2024 14:31:30", "95,50", "4,50"]],
        resolve_layout_mapping(headers, NINJATRADER_LAYOUT),
        coercers,
        fatal_fields=frozenset(),
    )
    out = apply_layout(mapped[0], NINJATRADER_LAYOUT)
    assert out.values[F.INSTRUMENT] == "ES"
    assert out.values[F.PNL] == pytest.approx(100.0)
    assert out.values[F.TIME_IN_POSITION] == 90
    # the input row is left untouched
    assert mapped[0].values[F.PNL] == pytest.approx(95.5)


def test_map_rows_keeps_explicit_source_rows():
    rows = map_rows(
        ["Symbol", "PnL"],
        [["ESZ4", "1"], ["NQZ4", "x"]],
        {"Symbol": F.INSTRUMENT, "PnL": F.PNL},
        build_coercers(),
        row_indexes=[3, 5],
    )
    assert [r.index for r in rows] == [3, 5]
    assert rows[1].error is not None
