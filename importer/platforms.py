"""
Platform registry
-----------------
One immutable descriptor per supported data source. CSV platforms carry the
extractor that locates their header/data rows and, when the export has a
fixed column layout, the header table used instead of a user mapping. Order
exports carry an order layout instead: their rows are fills that are folded
into trades.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from importer.errors import UnknownPlatformError
from importer.extractors import (
    Extraction,
    RawRow,
    extract_quantower,
    extract_rithmic_orders,
    extract_rithmic_performance,
    extract_standard_csv,
)
from importer.fields import CanonicalField as F
from importer.orders import ContractSpec, OrderField, OrderLayout

Extractor = Callable[[Sequence[RawRow], Optional[str]], Extraction]


class PlatformCategory(str, Enum):
    DIRECT_SYNC = "direct-sync"
    CUSTOM_CSV = "custom-csv"
    PLATFORM_CSV = "platform-csv"


class MatchMode(str, Enum):
    EXACT = "exact"
    SUBSTRING = "substring"


@dataclass(frozen=True)
class FieldLayout:
    """Fixed header -> field table of a platform export plus its post-processing rules."""

    columns: Mapping[str, F]
    match: MatchMode = MatchMode.EXACT
    # characters dropped from the end of the instrument (contract month + year)
    strip_contract_suffix: int = 0
    # regex removed from the instrument, e.g. a trailing " 03-25" expiry
    instrument_suffix_pattern: Optional[str] = None
    # pnl and commission use the locale-aware parser and fall back to 0
    locale_currency: bool = False
    # reported pnl is net of commission; add it back
    pnl_includes_commission: bool = False
    time_from_dates: bool = False
    # buy leg later than sell leg means a short: swap legs (dates, prices, fill ids) and mark short
    swap_legs_when_sold_first: bool = False
    date_formats: Tuple[str, ...] = ()
    min_cells: int = 0


@dataclass(frozen=True)
class PlatformDescriptor:
    key: str
    label: str
    category: PlatformCategory
    extract: Optional[Extractor] = None
    layout: Optional[FieldLayout] = None
    # one row per filled order; trades are rebuilt from the fills
    orders: Optional[OrderLayout] = None
    skip_header_selection: bool = False
    requires_account_selection: bool = False
    # Rithmic data is unavailable over weekends
    needs_weekend_warning: bool = False

    @property
    def is_file_based(self) -> bool:
        return self.extract is not None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "category": self.category.value,
            "file_based": self.is_file_based,
            "fixed_layout": self.layout is not None,
            "order_based": self.orders is not None,
            "skip_header_selection": self.skip_header_selection,
            "requires_account_selection": self.requires_account_selection,
            "needs_weekend_warning": self.needs_weekend_warning,
        }


RITHMIC_PERFORMANCE_LAYOUT = FieldLayout(
    columns={
        "AccountNumber": F.ACCOUNT_NUMBER,
        "Instrument": F.INSTRUMENT,
        "Fill Size": F.QUANTITY,
        "Trade P&L": F.PNL,
        "Trade Life Span": F.TIME_IN_POSITION,
        "Commission & Fees": F.COMMISSION,
        "Entry Buy/Sell": F.SIDE,
        "Entry Order Number": F.ENTRY_ID,
        "Entry Price": F.ENTRY_PRICE,
        "Entry Time": F.ENTRY_DATE,
        "Exit Order Number": F.CLOSE_ID,
        "Exit Price": F.CLOSE_PRICE,
        "Exit Time": F.CLOSE_DATE,
    },
    match=MatchMode.SUBSTRING,
    strip_contract_suffix=2,
)

TRADOVATE_LAYOUT = FieldLayout(
    columns={
        "symbol": F.INSTRUMENT,
        "qty": F.QUANTITY,
        "pnl": F.PNL,
        "duration": F.TIME_IN_POSITION,
        "buyFillId": F.ENTRY_ID,
        "buyPrice": F.ENTRY_PRICE,
        "boughtTimestamp": F.ENTRY_DATE,
        "sellFillId": F.CLOSE_ID,
        "sellPrice": F.CLOSE_PRICE,
        "soldTimestamp": F.CLOSE_DATE,
    },
    strip_contract_suffix=2,
    swap_legs_when_sold_first=True,
    date_formats=("%m/%d/%Y %H:%M:%S",),
)

TOPSTEP_LAYOUT = FieldLayout(
    columns={
        "ContractName": F.INSTRUMENT,
        "Size": F.QUANTITY,
        "PnL": F.PNL,
        "Fees": F.COMMISSION,
        "Type": F.SIDE,
        "Id": F.ENTRY_ID,
        "EntryPrice": F.ENTRY_PRICE,
        "EnteredAt": F.ENTRY_DATE,
        "ExitPrice": F.CLOSE_PRICE,
        "ExitedAt": F.CLOSE_DATE,
    },
    match=MatchMode.SUBSTRING,
    strip_contract_suffix=2,
    time_from_dates=True,
)

NINJATRADER_LAYOUT = FieldLayout(
    columns={
        # English export
        "Account": F.ACCOUNT_NUMBER,
        "Entry name": F.ENTRY_ID,
        "Entry price": F.ENTRY_PRICE,
        "Entry time": F.ENTRY_DATE,
        "Exit name": F.CLOSE_ID,
        "Exit price": F.CLOSE_PRICE,
        "Exit time": F.CLOSE_DATE,
        "Instrument": F.INSTRUMENT,
        "Market pos.": F.SIDE,
        "Profit": F.PNL,
        "Qty": F.QUANTITY,
        "Commission": F.COMMISSION,
        # French export
        "Compte": F.ACCOUNT_NUMBER,
        "Nom d'entrée": F.ENTRY_ID,
        "Prix d'entrée": F.ENTRY_PRICE,
        "Heure d'entrée": F.ENTRY_DATE,
        "Nom de la sortie": F.CLOSE_ID,
        "Prix de sortie": F.CLOSE_PRICE,
        "Heure de sortie": F.CLOSE_DATE,
        "Pos. marché.": F.SIDE,
        "Qté": F.QUANTITY,
    },
    instrument_suffix_pattern=r"\s+\d{2}-\d{2}$",
    locale_currency=True,
    pnl_includes_commission=True,
    time_from_dates=True,
    date_formats=(
        "%m/%d/%Y %I:%M:%S %p",
        "%m/%d/%Y %I:%M %p",
        "%d/%m/%Y %H:%M:%S",
        "%d/%m/%Y %H:%M",
    ),
    min_cells=3,
)


RITHMIC_ORDERS_LAYOUT = OrderLayout(
    columns={
        OrderField.ACCOUNT: ("Account",),
        OrderField.SYMBOL: ("Symbol",),
        OrderField.SIDE: ("Buy/Sell",),
        OrderField.QUANTITY: ("Qty Filled",),
        OrderField.PRICE: ("Avg Fill Price",),
        OrderField.TIMESTAMP: ("Update Time",),
        OrderField.ORDER_ID: ("Order Number",),
        OrderField.COMMISSION: ("Commission Fill Rate",),
    },
    required=frozenset(
        {OrderField.SYMBOL, OrderField.SIDE, OrderField.QUANTITY, OrderField.PRICE, OrderField.TIMESTAMP}
    ),
    buy_tokens=frozenset({"B"}),
    sell_tokens=frozenset({"S"}),
    fallback_spec=ContractSpec(1 / 64, 15.625),
    commission_is_rate=True,
    fractional_prices=True,
    price_decimals=5,
    date_formats=("%d/%m/%Y %H:%M",),
)

QUANTOWER_LAYOUT = OrderLayout(
    columns={
        OrderField.ACCOUNT: ("Account",),
        OrderField.SYMBOL: ("Symbol",),
        OrderField.SIDE: ("Side",),
        OrderField.QUANTITY: ("Quantity",),
        OrderField.PRICE: ("Price",),
        OrderField.TIMESTAMP: ("Date/Time", "Date"),
        OrderField.ORDER_ID: ("Order ID",),
        OrderField.COMMISSION: ("Fee",),
    },
    required=frozenset(
        {OrderField.SYMBOL, OrderField.SIDE, OrderField.QUANTITY, OrderField.PRICE, OrderField.TIMESTAMP}
    ),
    buy_tokens=frozenset({"Buy"}),
    sell_tokens=frozenset({"Sell"}),
    fallback_spec=ContractSpec(0.25, 5.0),
    cqg_symbols=True,
    date_formats=("%Y-%m-%d %I:%M:%S %p %z", "%m/%d/%y %I:%M:%S %p %z"),
)


_PLATFORMS: Tuple[PlatformDescriptor, ...] = (
    PlatformDescriptor(
        "rithmic-sync", "Rithmic Sync", PlatformCategory.DIRECT_SYNC, needs_weekend_warning=True
    ),
    PlatformDescriptor(
        "csv-ai",
        "Custom CSV",
        PlatformCategory.CUSTOM_CSV,
        extract=extract_standard_csv,
        requires_account_selection=True,
    ),
    PlatformDescriptor("tradezella", "Tradezella", PlatformCategory.PLATFORM_CSV, extract=extract_standard_csv),
    PlatformDescriptor(
        "tradovate",
        "Tradovate",
        PlatformCategory.PLATFORM_CSV,
        extract=extract_standard_csv,
        layout=TRADOVATE_LAYOUT,
        requires_account_selection=True,
    ),
    PlatformDescriptor(
        "quantower",
        "Quantower",
        PlatformCategory.PLATFORM_CSV,
        extract=extract_quantower,
        orders=QUANTOWER_LAYOUT,
        skip_header_selection=True,
    ),
    PlatformDescriptor(
        "topstep",
        "Topstep",
        PlatformCategory.PLATFORM_CSV,
        extract=extract_standard_csv,
        layout=TOPSTEP_LAYOUT,
        requires_account_selection=True,
    ),
    PlatformDescriptor(
        "ninjatrader-performance",
        "NinjaTrader Performance",
        PlatformCategory.PLATFORM_CSV,
        extract=extract_standard_csv,
        layout=NINJATRADER_LAYOUT,
    ),
    PlatformDescriptor(
        "rithmic-performance",
        "Rithmic Performance",
        PlatformCategory.PLATFORM_CSV,
        extract=extract_rithmic_performance,
        layout=RITHMIC_PERFORMANCE_LAYOUT,
        skip_header_selection=True,
        needs_weekend_warning=True,
    ),
    PlatformDescriptor(
        "rithmic-orders",
        "Rithmic Orders",
        PlatformCategory.PLATFORM_CSV,
        extract=extract_rithmic_orders,
        orders=RITHMIC_ORDERS_LAYOUT,
        skip_header_selection=True,
        needs_weekend_warning=True,
    ),
    PlatformDescriptor("thor-sync", "Thor Sync", PlatformCategory.DIRECT_SYNC),
    PlatformDescriptor("tradovate-sync", "Tradovate Sync", PlatformCategory.DIRECT_SYNC),
    PlatformDescriptor(
        "ftmo",
        "FTMO",
        PlatformCategory.PLATFORM_CSV,
        extract=extract_standard_csv,
        skip_header_selection=True,
        requires_account_selection=True,
    ),
)

PLATFORMS: Dict[str, PlatformDescriptor] = {p.key: p for p in _PLATFORMS}


def get_platform(key: str) -> PlatformDescriptor:
    try:
        return PLATFORMS[key]
    except KeyError:
        raise UnknownPlatformError(f"unknown platform '{key}'", platform=key) from None


def list_platforms(category: Optional[PlatformCategory] = None) -> List[PlatformDescriptor]:
    return [p for p in _PLATFORMS if category is None or p.category == category]
