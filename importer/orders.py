"""
Order fills to trades
---------------------
Order exports (Rithmic "Completed Orders", Quantower) list one row per filled
order instead of one row per trade. ``fold_orders`` replays the fills in time
order and keeps one open position per account and instrument:

 - a fill on the position's side adds to it and moves the average entry price
 - a fill on the other side reduces it; once flat the round trip becomes a trade
 - a fill larger than the open quantity closes the trade and opens the
   reverse position with the remainder

Positions still open when the file ends are reported back, never turned into
trades. PnL is recomputed from the contract's tick size and tick value.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from core.models import Side, to_datetime
from importer.coercion import normalize_date, parse_number_prefix, parse_price
from importer.errors import DropReason, ImportFailure, MissingHeaderError
from importer.fields import CanonicalField, normalize_header


@dataclass(frozen=True)
class ContractSpec:
    tick_size: float
    tick_value: float


DEFAULT_CONTRACT_SPECS: Dict[str, ContractSpec] = {
    # equity index
    "ES": ContractSpec(0.25, 12.50),
    "NQ": ContractSpec(0.25, 5.00),
    "YM": ContractSpec(1.00, 5.00),
    "RTY": ContractSpec(0.10, 10.00),
    "MES": ContractSpec(0.25, 1.25),
    "MNQ": ContractSpec(0.25, 0.50),
    "MYM": ContractSpec(1.00, 0.50),
    "M2K": ContractSpec(0.10, 0.50),
    "FDAX": ContractSpec(0.50, 12.50),
    "FESX": ContractSpec(1.00, 10.00),
    # currencies
    "6A": ContractSpec(0.0001, 10.00),
    "6B": ContractSpec(0.0001, 6.25),
    "6C": ContractSpec(0.0001, 10.00),
    "6E": ContractSpec(0.0001, 12.50),
    "6J": ContractSpec(0.000001, 12.50),
    "M6E": ContractSpec(0.00001, 1.25),
    # metals and energy
    "GC": ContractSpec(0.10, 10.00),
    "MGC": ContractSpec(0.10, 1.00),
    "SI": ContractSpec(0.005, 25.00),
    "HG": ContractSpec(0.0005, 12.50),
    "CL": ContractSpec(0.01, 10.00),
    "MCL": ContractSpec(0.01, 1.00),
    "NG": ContractSpec(0.001, 10.00),
    # grains
    "ZC": ContractSpec(0.25, 12.50),
    "ZW": ContractSpec(0.25, 12.50),
    "ZS": ContractSpec(0.25, 12.50),
    # rates
    "ZN": ContractSpec(1 / 128, 15.625),
    "ZB": ContractSpec(1 / 32, 31.25),
    "ZF": ContractSpec(1 / 128, 7.8125),
    "ZT": ContractSpec(1 / 128, 15.625),
    "UB": ContractSpec(1 / 32, 31.25),
}

# CQG root -> exchange root, for brokers routing through CQG
CQG_SYMBOLS: Dict[str, str] = {
    "EP": "ES",
    "ENQ": "NQ",
    "DD": "FDAX",
    "DSX": "FESX",
    "DA6": "6A",
    "BP6": "6B",
    "CA6": "6C",
    "EU6": "6E",
    "JY6": "6J",
    "GCE": "GC",
    "SIE": "SI",
    "CPE": "HG",
    "CLE": "CL",
    "MCLE": "MCL",
    "NGE": "NG",
    "ZCE": "ZC",
    "ZWA": "ZW",
    "ZSE": "ZS",
    "TYA": "ZN",
    "USA": "ZB",
    "FVA": "ZF",
    "TUA": "ZT",
    "ULA": "UB",
}

_CONTRACT_CODE = re.compile(r"[A-Za-z]\d$")


class OrderField(str, Enum):
    ACCOUNT = "account"
    SYMBOL = "symbol"
    SIDE = "side"
    QUANTITY = "quantity"
    PRICE = "price"
    TIMESTAMP = "timestamp"
    ORDER_ID = "orderId"
    COMMISSION = "commission"


@dataclass(frozen=True)
class OrderLayout:
    # order field -> candidate header names; exact match first, then contained
    columns: Mapping[OrderField, Tuple[str, ...]]
    required: FrozenSet[OrderField]
    buy_tokens: FrozenSet[str]
    sell_tokens: FrozenSet[str]
    # used for instruments missing from the contract table
    fallback_spec: ContractSpec
    # the commission column is a per-contract rate, not the order's total
    commission_is_rate: bool = False
    # prices may be written in 32nds, e.g. 110'16
    fractional_prices: bool = False
    cqg_symbols: bool = False
    price_decimals: int = 2
    date_formats: Tuple[str, ...] = ()


class OrderRejected(ImportFailure):
    def __init__(self, reason: DropReason, detail: str = ""):
        super().__init__(detail or reason.value)
        self.reason = reason
        self.detail = detail


@dataclass(frozen=True)
class RejectedOrder:
    index: int
    reason: DropReason
    detail: str = ""


@dataclass(frozen=True)
class Order:
    index: int
    account: str
    instrument: str
    side: Side
    quantity: float
    price: float
    commission: float
    timestamp: str
    order_id: str


@dataclass(frozen=True)
class Position:
    account: str
    instrument: str
    side: Side
    # contracts still open
    quantity: float
    # contracts reported on the trade once it closes
    size: float
    average_entry: float
    entry_date: str
    entries: Tuple[Order, ...]
    exits: Tuple[Order, ...] = ()
    commission: float = 0.0

    def describe(self) -> str:
        return f"{self.side.value} {self.quantity:g} @ {self.average_entry:.2f}"


@dataclass(frozen=True)
class ClosedTrade:
    # source row of the fill that flattened the position
    index: int
    account: str
    instrument: str
    side: Side
    quantity: float
    entry_price: float
    close_price: float
    entry_date: str
    close_date: str
    pnl: float
    commission: float
    time_in_position: float
    entry_id: str
    close_id: str

    def values(self) -> Dict[CanonicalField, Any]:
        return {
            CanonicalField.ACCOUNT_NUMBER: self.account or None,
            CanonicalField.INSTRUMENT: self.instrument,
            CanonicalField.QUANTITY: self.quantity,
            CanonicalField.ENTRY_PRICE: self.entry_price,
            CanonicalField.CLOSE_PRICE: self.close_price,
            CanonicalField.ENTRY_DATE: self.entry_date,
            CanonicalField.CLOSE_DATE: self.close_date,
            CanonicalField.PNL: self.pnl,
            CanonicalField.COMMISSION: self.commission,
            CanonicalField.TIME_IN_POSITION: self.time_in_position,
            CanonicalField.SIDE: self.side.value,
            CanonicalField.ENTRY_ID: self.entry_id,
            CanonicalField.CLOSE_ID: self.close_id,
        }


@dataclass
class OrderFold:
    trades: List[ClosedTrade]
    open_positions: List[Position]


def contract_specs(overrides: Optional[Mapping[str, Mapping[str, float]]] = None) -> Dict[str, ContractSpec]:
    """Built-in contract table with ``{root: {tick_size, tick_value}}`` overrides from config."""
    specs = dict(DEFAULT_CONTRACT_SPECS)
    for root, raw in (overrides or {}).items():
        specs[str(root).upper()] = ContractSpec(float(raw["tick_size"]), float(raw["tick_value"]))
    return specs


def parse_order_price(raw: Optional[str], fractional: bool = False) -> Optional[float]:
    """``"4500.25"`` -> 4500.25; with ``fractional``, ``"110'16"`` -> 110.5 (32nds)."""
    s = (raw or "").strip()
    if fractional and "'" in s and "." not in s:
        whole, _, frac = s.partition("'")
        w = parse_number_prefix(whole)
        f = parse_number_prefix(frac)
        if w is None:
            return None
        return w + (f / 32 if f is not None else 0.0)
    return parse_price(s)


def instrument_root(symbol: str, cqg: bool = False) -> str:
    if not cqg:
        return symbol[:-2]
    base = symbol[:-2] if _CONTRACT_CODE.search(symbol) else symbol
    return CQG_SYMBOLS.get(base, base)


def resolve_order_columns(
    headers: Sequence[str],
    layout: OrderLayout,
    columns: Optional[Sequence[int]] = None,
    platform: Optional[str] = None,
) -> Dict[OrderField, int]:
    """Source column of every order field found in the header row."""
    cols = list(columns) if columns is not None else list(range(len(headers)))
    normalized = [normalize_header(h) for h in headers]
    found: Dict[OrderField, int] = {}
    for field, names in layout.columns.items():
        for name in names:
            key = normalize_header(name)
            pos = next((i for i, h in enumerate(normalized) if h == key), None)
            if pos is None:
                pos = next((i for i, h in enumerate(normalized) if key in h), None)
            if pos is not None:
                found[field] = cols[pos]
                break
    missing = sorted(f.value for f in layout.required if f not in found)
    if missing:
        raise MissingHeaderError(
            f"order export is missing column(s): {', '.join(missing)}", platform=platform
        )
    return found


def parse_order(
    index: int,
    row: Sequence[str],
    columns: Mapping[OrderField, int],
    layout: OrderLayout,
    date_formats: Sequence[str] = (),
    tz: Optional[str] = None,
) -> Order:
    """One order row to an ``Order``; raises ``OrderRejected`` when the row cannot be used."""

    def cell(field: OrderField) -> str:
        col = columns.get(field)
        if col is None or col >= len(row):
            return ""
        return (row[col] or "").strip()

    if not any(c and str(c).strip() for c in row):
        raise OrderRejected(DropReason.EMPTY_ROW)
    symbol = cell(OrderField.SYMBOL)
    if not symbol:
        raise OrderRejected(DropReason.MISSING_INSTRUMENT)
    quantity = abs(parse_number_prefix(cell(OrderField.QUANTITY)) or 0.0)
    if quantity == 0:
        raise OrderRejected(DropReason.ZERO_QUANTITY, "order has no filled quantity")
    price = parse_order_price(cell(OrderField.PRICE), layout.fractional_prices)
    if price is None:
        raise OrderRejected(DropReason.MISSING_PRICE, f"unreadable fill price {cell(OrderField.PRICE)!r}")
    token = cell(OrderField.SIDE)
    if token in layout.buy_tokens:
        side = Side.LONG
    elif token in layout.sell_tokens:
        side = Side.SHORT
    else:
        raise OrderRejected(DropReason.MISSING_SIDE, f"unknown order side {token!r}")
    timestamp = normalize_date(cell(OrderField.TIMESTAMP), (*layout.date_formats, *date_formats), tz)
    if timestamp is None:
        raise OrderRejected(DropReason.MISSING_DATE, f"unreadable fill time {cell(OrderField.TIMESTAMP)!r}")
    commission = parse_number_prefix(cell(OrderField.COMMISSION)) or 0.0
    if layout.commission_is_rate:
        commission *= quantity
    return Order(
        index=index,
        account=cell(OrderField.ACCOUNT),
        instrument=instrument_root(symbol, layout.cqg_symbols),
        side=side,
        quantity=quantity,
        price=price,
        commission=commission,
        timestamp=timestamp,
        order_id=cell(OrderField.ORDER_ID),
    )


def position_pnl(entries: Sequence[Order], exits: Sequence[Order], spec: ContractSpec, side: Side) -> float:
    entry_qty = sum(o.quantity for o in entries)
    exit_qty = sum(o.quantity for o in exits)
    avg_entry = sum(o.price * o.quantity for o in entries) / entry_qty
    avg_exit = sum(o.price * o.quantity for o in exits) / exit_qty
    ticks = (avg_exit - avg_entry) / spec.tick_size
    raw = ticks * spec.tick_value * min(entry_qty, exit_qty)
    return raw if side is Side.LONG else -raw


def _seconds(start: str, end: str) -> float:
    a: Optional[datetime] = to_datetime(start)
    b: Optional[datetime] = to_datetime(end)
    if a is None or b is None:
        return 0.0
    return (b - a).total_seconds()


def _open(order: Order) -> Position:
    return Position(
        account=order.account,
        instrument=order.instrument,
        side=order.side,
        quantity=order.quantity,
        size=order.quantity,
        average_entry=order.price,
        entry_date=order.timestamp,
        entries=(order,),
        commission=order.commission,
    )


def _close(pos: Position, order: Order, spec: ContractSpec, decimals: int) -> ClosedTrade:
    exit_qty = sum(o.quantity for o in pos.exits)
    close_price = sum(o.price * o.quantity for o in pos.exits) / exit_qty
    return ClosedTrade(
        index=order.index,
        account=pos.account,
        instrument=pos.instrument,
        side=pos.side,
        quantity=pos.size,
        entry_price=round(pos.average_entry, decimals),
        close_price=round(close_price, decimals),
        entry_date=pos.entry_date,
        close_date=order.timestamp,
        pnl=position_pnl(pos.entries, pos.exits, spec, pos.side),
        commission=pos.commission,
        time_in_position=_seconds(pos.entry_date, order.timestamp),
        entry_id="-".join(o.order_id for o in pos.entries),
        close_id="-".join(o.order_id for o in pos.exits),
    )


PositionBook = Dict[Tuple[str, str], Position]


def order_step(
    book: Mapping[Tuple[str, str], Position], order: Order, spec: ContractSpec, decimals: int = 2
) -> Tuple[PositionBook, Optional[ClosedTrade]]:
    """Apply one fill; returns the new book and the trade it closed, if any."""
    book = dict(book)
    key = (order.account, order.instrument)
    pos = book.get(key)
    if pos is None:
        book[key] = _open(order)
        return book, None

    if order.side is pos.side:
        size = pos.quantity + order.quantity
        book[key] = replace(
            pos,
            quantity=size,
            size=size,
            average_entry=(pos.average_entry * pos.quantity + order.price * order.quantity) / size,
            entries=pos.entries + (order,),
            commission=pos.commission + order.commission,
        )
        return book, None

    closing = order
    opening: Optional[Order] = None
    remainder = order.quantity - pos.quantity
    if remainder > 0:
        # the fill flattens the position and opens the opposite one; commission is split pro rata
        closing = replace(
            order, quantity=pos.quantity, commission=order.commission * pos.quantity / order.quantity
        )
        opening = replace(order, quantity=remainder, commission=order.commission - closing.commission)

    pos = replace(
        pos,
        quantity=pos.quantity - closing.quantity,
        exits=pos.exits + (closing,),
        commission=pos.commission + closing.commission,
    )
    if pos.quantity > 0:
        book[key] = pos
        return book, None

    closed = _close(pos, order, spec, decimals)
    if opening is not None:
        book[key] = _open(opening)
    else:
        del book[key]
    return book, closed


def fold_orders(
    orders: Sequence[Order], specs: Mapping[str, ContractSpec], fallback: ContractSpec, decimals: int = 2
) -> OrderFold:
    """Replay fills sorted by time (stable for equal timestamps)."""
    book: PositionBook = {}
    trades: List[ClosedTrade] = []
    for order in sorted(orders, key=lambda o: o.timestamp):
        book, closed = order_step(book, order, specs.get(order.instrument, fallback), decimals)
        if closed is not None:
            trades.append(closed)
    return OrderFold(trades=trades, open_positions=list(book.values()))


def orders_to_trades(
    rows: Sequence[Sequence[str]],
    indexes: Sequence[int],
    columns: Mapping[OrderField, int],
    layout: OrderLayout,
    *,
    specs: Mapping[str, ContractSpec],
    date_formats: Sequence[str] = (),
    tz: Optional[str] = None,
) -> Tuple[List[ClosedTrade], List[RejectedOrder]]:
    orders: List[Order] = []
    rejected: List[RejectedOrder] = []
    for index, row in zip(indexes, rows):
        try:
            orders.append(parse_order(index, row, columns, layout, date_formats, tz))
        except OrderRejected as e:
            rejected.append(RejectedOrder(index, e.reason, e.detail))

    fold = fold_orders(orders, specs, layout.fallback_spec, layout.price_decimals)
    for pos in fold.open_positions:
        detail = f"{pos.instrument} position left open: {pos.describe()}"
        rejected.extend(RejectedOrder(o.index, DropReason.OPEN_POSITION, detail) for o in pos.entries + pos.exits)
    rejected.sort(key=lambda r: r.index)
    return fold.trades, rejected
