import copy

import pytest

from core.models import Side
from importer.errors import DropReason, UnknownPlatformError
from importer.pipeline import run_import
from importer.platforms import PLATFORMS, PlatformCategory, get_platform, list_platforms
from utils.config import DEFAULT_IMPORT_CFG


def _cfg():
    return copy.deepcopy(DEFAULT_IMPORT_CFG)


def test_registry():
    assert len(PLATFORMS) == 12
    assert get_platform("rithmic-performance").skip_header_selection
    assert get_platform("rithmic-orders").needs_weekend_warning
    assert get_platform("csv-ai").requires_account_selection
    assert not get_platform("thor-sync").is_file_based
    assert {p.key for p in list_platforms(PlatformCategory.DIRECT_SYNC)} == {
        "rithmic-sync",
        "thor-sync",
        "tradovate-sync",
    }
    assert [p.key for p in list_platforms(PlatformCategory.CUSTOM_CSV)] == ["csv-ai"]
    d = get_platform("tradovate").to_dict()
    assert d["category"] == "platform-csv"
    assert d["fixed_layout"] is True
    with pytest.raises(UnknownPlatformError):
        get_platform("metatrader")


def test_rithmic_performance_import():
    rows = [
        ["ACCT123456", "", ""],
        ["ESZ4"],
        [
            "Entry Order Number",
            "Entry Buy/Sell",
            "Fill Size",
            "Entry Price",
            "Entry Time",
            "Exit Order Number",
            "Exit Price",
            "Exit Time",
            "Trade P&L",
            "Commission & Fees",
            "Trade Life Span",
        ],
        ["1001", "B", "1", "4500.25", "2024-01-15 14:30:00", "1002", "4510.25", "2024-01-15 14:45:00", "500.00", "4.50", "15min0sec"],
        ["NQZ4"],
        ["1003", "S", "2", "16010", "2024-01-15 15:00:00", "1004", "16020", "2024-01-15 15:10:00", "(40.00)", "9.00", "10min"],
    ]
    report = run_import("rithmic-performance", rows, user_id="u1", cfg=_cfg())
    assert report.ok
    assert report.dropped == []
    first, second = report.trades

    assert first.account_number == "ACCT123456"
    assert first.instrument == "ES"
    assert first.side == Side.LONG
    assert first.pnl == 500.0
    assert first.commission == 4.5
    assert first.time_in_position == 900
    assert first.entry_id == "1001" and first.close_id == "1002"
    assert first.entry_date == "2024-01-15T14:30:00.000Z"

    assert second.instrument == "NQ"
    assert second.side == Side.SHORT
    assert second.quantity == 2.0
    assert second.pnl == -40.0
    assert second.time_in_position == 600


def test_rithmic_performance_without_header_is_structural():
    report = run_import("rithmic-performance", [["ACCT123456"], ["ESZ4"]], user_id="u1", cfg=_cfg())
    assert report.error is not None
    assert report.to_dict()["error"]["error"] == "MissingHeaderError"


def test_tradovate_swaps_legs_when_sold_first():
    rows = [
        ["symbol", "qty", "pnl", "duration", "buyFillId", "buyPrice", "boughtTimestamp", "sellFillId", "sellPrice", "soldTimestamp"],
        ["MNQH5", "1", "$25.00", "5min0sec", "b1", "18010.25", "01/15/2024 15:05:00", "s1", "18022.75", "01/15/2024 15:00:00"],
        ["MNQH5", "1", "$(10.00)", "1min", "b2", "18030", "01/15/2024 16:00:00", "s2", "18025", "01/15/2024 16:01:00"],
    ]
    report = run_import("tradovate", rows, user_id="u1", account_number="TV-1", cfg=_cfg())
    assert report.ok
    short, long_ = report.trades

    assert short.instrument == "MNQ"
    assert short.side == Side.SHORT
    assert short.entry_date == "2024-01-15T15:00:00.000Z"
    assert short.close_date == "2024-01-15T15:05:00.000Z"
    assert short.entry_price == 18022.75
    assert short.close_price == 18010.25
    assert short.time_in_position == 300
    # fill ids follow the legs: the sell opened the short
    assert short.entry_id == "s1"
    assert short.close_id == "b1"
    assert short.account_number == "TV-1"
    # fixed layouts never get default commissions
    assert short.commission == 0.0

    assert long_.side == Side.LONG
    assert long_.pnl == -10.0
    assert long_.entry_price == 18030.0
    assert long_.entry_id == "b2" and long_.close_id == "s2"


def test_topstep_substring_headers_and_duration_from_dates():
    rows = [
        ["Id", "ContractName", "EnteredAt", "ExitedAt", "EntryPrice", "ExitPrice", "Fees", "PnL", "Size", "Type"],
        ["77", "ESH4", "2024-01-15T14:30:00+00:00", "2024-01-15T14:32:05+00:00", "4800", "4810", "4.50", "500", "1", "Long"],
    ]
    report = run_import("topstep", rows, user_id="u1", account_number="TS-1", cfg=_cfg())
    assert report.ok
    t = report.trades[0]
    assert t.instrument == "ES"
    assert t.side == Side.LONG
    assert t.time_in_position == 125
    assert t.commission == 4.5
    assert t.entry_id == "77"


def test_ninjatrader_french_export():
    rows = [
        [
            "Compte",
            "Instrument",
            "Pos. marché.",
            "Qté",
            "Prix d’entrée",
            "Prix de sortie",
            "Heure d’entrée",
            "Heure de sortie",
            "Profit",
            "Commission",
        ],
        ["Sim101", "ES 03-25", "Long", "1", "5000,25", "5010,25", "15/01/2024 14:30:00", "15/01/2024 14:45:00", "495,50 $", "4,50 $"],
        ["Sim101", "NQ 03-25", "Short", "1", "21000", "20990", "15/01/2024 15:00:00", "15/01/2024 15:01:00", "n/a", "2,25"],
        ["Total", "x"],
    ]
    report = run_import("ninjatrader-performance", rows, user_id="u1", cfg=_cfg())
    assert report.ok
    first, second = report.trades

    assert first.account_number == "Sim101"
    assert first.instrument == "ES"
    assert first.entry_price == pytest.approx(5000.25)
    assert first.entry_date == "2024-01-15T14:30:00.000Z"
    assert first.pnl == pytest.approx(500.0)
    assert first.commission == pytest.approx(4.5)
    assert first.time_in_position == 900

    # unparseable pnl falls back to 0 on this platform, then commission is added back
    assert second.pnl == pytest.approx(2.25)
    assert second.side == Side.SHORT

    assert [d.reason for d in report.dropped] == [DropReason.EMPTY_ROW]


def test_ninjatrader_english_us_dates():
    rows = [
        ["Account", "Instrument", "Market pos.", "Qty", "Entry price", "Exit price", "Entry time", "Exit time", "Profit", "Commission"],
        ["Sim101", "MES 06-25", "Long", "2", "5000.25", "5001.25", "1/15/2024 2:30:00 PM", "1/15/2024 2:35 PM", "$10.00", "$1.24"],
    ]
    report = run_import("ninjatrader-performance", rows, user_id="u1", cfg=_cfg())
    t = report.trades[0]
    assert t.instrument == "MES"
    assert t.entry_date == "2024-01-15T14:30:00.000Z"
    assert t.close_date == "2024-01-15T14:35:00.000Z"
    assert t.pnl == pytest.approx(11.24)



def test_rithmic_performance_drop_index_skips_marker_rows():
    header = ["Entry Order Number", "Entry Buy/Sell", "Fill Size", "Entry Price", "Entry Time", "Exit Price", "Exit Time", "Trade P&L"]
    rows = [
        ["ACCT123456"],
        ["ESZ4"],
        header,
        ["1001", "B", "1", "4500", "2024-01-15 14:30:00", "4510", "2024-01-15 14:45:00", "500"],
        ["NQZ4"],
        ["1003", "S", "1", "16010", "2024-01-15 15:00:00", "16020", "2024-01-15 15:10:00", "bad"],
    ]
    report = run_import("rithmic-performance", rows, user_id="u1", cfg=_cfg())
    assert len(report.trades) == 1
    assert [(d.index, d.reason) for d in report.dropped] == [(5, DropReason.PNL_UNPARSEABLE)]


RITHMIC_ORDER_HEADER = [
    "Account",
    "Status",
    "Buy/Sell",
    "Qty Filled",
    "Symbol",
    "Avg Fill Price",
    "Update Time (RDT)",
    "Order Number",
    "Commission Fill Rate",
]


def test_rithmic_orders_rebuilds_trades_from_fills():
    rows = [
        ["Orders report"],
        ["Completed Orders"],
        RITHMIC_ORDER_HEADER,
        ["APEX-1", "Filled", "S", "1", "ESZ4", "4510.25", "15/01/2024 14:45", "1002", "2.25"],
        ["APEX-1", "Filled", "B", "1", "ESZ4", "4500.25", "15/01/2024 14:30", "1001", "2.25"],
        ["APEX-1", "Filled", "B", "2", "ZNH4", "110'16", "2024-01-15 15:00:00", "2001", "1.94"],
        ["APEX-1", "Filled", "S", "3", "ZNH4", "110'24", "2024-01-15 15:10:00", "2002", "1.94"],
        ["APEX-1", "Cancelled", "B", "0", "ESZ4", "", "2024-01-15 15:20:00", "1003", "2.25"],
    ]
    report = run_import("rithmic-orders", rows, user_id="u1", cfg=_cfg())
    assert report.ok
    assert report.rows_seen == 5
    es, zn = report.trades

    assert es.account_number == "APEX-1"
    assert es.instrument == "ES"
    assert es.side == Side.LONG
    assert es.quantity == 1.0
    assert es.entry_price == 4500.25 and es.close_price == 4510.25
    assert es.entry_date == "2024-01-15T14:30:00.000Z"
    assert es.close_date == "2024-01-15T14:45:00.000Z"
    # 40 ticks at 12.50
    assert es.pnl == pytest.approx(500.0)
    assert es.commission == pytest.approx(4.5)
    assert es.time_in_position == 900
    assert es.entry_id == "1001" and es.close_id == "1002"

    assert zn.instrument == "ZN"
    assert zn.quantity == 2.0
    assert zn.entry_price == 110.5 and zn.close_price == 110.75
    # 32 ticks of 1/128 at 15.625, two contracts
    assert zn.pnl == pytest.approx(1000.0)
    # the reversing fill pays for the two contracts it closed; the third stays with the open short
    assert zn.commission == pytest.approx(1.94 * 4)

    # the sell of 3 flattened 2 and left a short of 1 open
    assert [(d.index, d.reason) for d in report.dropped] == [
        (6, DropReason.OPEN_POSITION),
        (7, DropReason.ZERO_QUANTITY),
    ]
    assert "short 1" in report.dropped[0].detail

    missing = run_import("rithmic-orders", rows[2:], user_id="u1", cfg=_cfg())
    assert missing.to_dict()["error"]["error"] == "MissingSectionMarkerError"


def test_rithmic_orders_without_fill_columns_is_structural():
    rows = [["Completed Orders"], ["Account", "Symbol"], ["APEX-1", "ESZ4"]]
    report = run_import("rithmic-orders", rows, user_id="u1", cfg=_cfg())
    assert report.error is not None
    assert report.to_dict()["error"]["error"] == "MissingHeaderError"


QUANTOWER_HEADER = [
    "Account",
    "Date/Time",
    "Symbol",
    "Description",
    "Symbol type",
    "Expiration date",
    "Strike price",
    "Side",
    "Order type",
    "Quantity",
    "Price",
    "Gross P/L",
    "Fee",
    "Net P/L",
    "Trade value",
    "Trade ID",
    "Order ID",
    "Position ID",
]


def test_quantower_rebuilds_trades_from_fills():
    rows = [
        QUANTOWER_HEADER,
        ["QT-1", "2024-12-20 7:17:03 PM +03:00", "EPH5", "E-mini S&P 500", "Futures", "3/21/2025", "", "Buy", "Market", "1", "6000.25", "", "-2.5", "", "", "t1", "o1", "p1"],
        ["QT-1", "2024-12-20 7:27:03 PM +03:00", "EPH5", "E-mini S&P 500", "Futures", "3/21/2025", "", "Sell", "Limit", "-1", "6002.75", "125", "-2.5", "122.5", "", "t2", "o2", "p1"],
        ["QT-1", "10/7/24 9:50:07 PM +01:00", "ENQZ4", "E-mini Nasdaq-100", "Futures", "", "", "Sell", "Market", "1", "20000", "", "-2.5", "", "", "t3", "o3", "p2"],
    ]
    report = run_import("quantower", rows, user_id="u1", cfg=_cfg())
    assert report.ok
    [t] = report.trades

    assert t.account_number == "QT-1"
    # CQG root EP is the exchange's ES
    assert t.instrument == "ES"
    assert t.side == Side.LONG
    assert t.quantity == 1.0
    assert t.entry_date == "2024-12-20T16:17:03.000Z"
    assert t.time_in_position == 600
    assert t.pnl == pytest.approx(125.0)
    assert t.commission == pytest.approx(5.0)
    assert t.entry_id == "o1" and t.close_id == "o2"

    [open_nq] = report.dropped
    assert open_nq.index == 3
    assert open_nq.reason == DropReason.OPEN_POSITION
    assert open_nq.detail.startswith("NQ position left open")
