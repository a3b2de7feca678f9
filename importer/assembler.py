"""
Trade assembler
---------------
Builds canonical ``Trade`` records from mapped rows: side inference,
account fallback, commission defaults, the content-hash id, and the
acceptance filter. Rows that cannot become a trade are returned as
``DroppedRow`` entries with a reason instead of disappearing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from core.models import Side, Trade, to_datetime
from importer.errors import DropReason
from importer.fields import CanonicalField as F
from importer.mapper import MappedRow
from utils.logger import log_extra, setup_logger

logger = setup_logger(__name__)

_LONG_TOKENS = frozenset({"long", "buy"})
_SHORT_TOKENS = frozenset({"short", "sell"})


@dataclass(frozen=True)
class AssemblyContext:
    user_id: str
    account_number: Optional[str] = None
    default_account: str = "default-account"
    # instrument root -> commission per contract, applied when the row reports none
    commission_defaults: Mapping[str, float] = field(default_factory=dict)
    platform: Optional[str] = None


@dataclass(frozen=True)
class DroppedRow:
    index: int
    reason: DropReason
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "reason": self.reason.value, "detail": self.detail}


@dataclass
class AssemblyReport:
    trades: List[Trade] = field(default_factory=list)
    dropped: List[DroppedRow] = field(default_factory=list)


def _js_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return str(value)


def trade_hash(
    user_id: str,
    account_number: Optional[str],
    instrument: Optional[str],
    entry_date: Optional[str],
    close_date: Optional[str],
    quantity: Optional[float],
    entry_id: Optional[str],
    close_id: Optional[str],
    time_in_position: Optional[float],
) -> str:
    """Deterministic, non-cryptographic trade id; equal inputs give equal ids across imports."""
    parts = (
        user_id,
        account_number,
        instrument,
        entry_date,
        close_date,
        quantity if quantity is not None else 0,
        entry_id,
        close_id,
        time_in_position if time_in_position is not None else 0,
    )
    return "-".join(_js_str(p) for p in parts)


def infer_side(
    token: Optional[str],
    pnl: Optional[float],
    entry_price: Optional[float],
    close_price: Optional[float],
    entry_date: Optional[str],
    close_date: Optional[str],
) -> Optional[Side]:
    raw = (token or "").strip()
    if raw == "B":
        return Side.LONG
    if raw == "S":
        return Side.SHORT
    if raw.lower() in _LONG_TOKENS:
        return Side.LONG
    if raw.lower() in _SHORT_TOKENS:
        return Side.SHORT

    if pnl is None or entry_price is None or close_price is None:
        return None
    if pnl > 0:
        return Side.LONG if entry_price <= close_price else Side.SHORT
    if pnl < 0:
        return Side.SHORT if entry_price <= close_price else Side.LONG
    entry = to_datetime(entry_date)
    close = to_datetime(close_date)
    if entry is not None and close is not None and entry < close:
        return Side.LONG
    return Side.SHORT


def default_commission(instrument: str, quantity: float, defaults: Mapping[str, float]) -> float:
    root = instrument.upper()
    for key, per_contract in defaults.items():
        if root.startswith(key.upper()):
            return per_contract * abs(quantity)
    return 0.0


def _check(values: Dict[F, Any], account: Optional[str]) -> Optional[DropReason]:
    if not account:
        return DropReason.MISSING_ACCOUNT
    if not values.get(F.INSTRUMENT):
        return DropReason.MISSING_INSTRUMENT
    if not values.get(F.QUANTITY):
        return DropReason.ZERO_QUANTITY
    if values.get(F.ENTRY_PRICE) is None and values.get(F.CLOSE_PRICE) is None:
        return DropReason.MISSING_PRICE
    if not values.get(F.ENTRY_DATE) and not values.get(F.CLOSE_DATE):
        return DropReason.MISSING_DATE
    return None


def _drop(report: AssemblyReport, row: MappedRow, reason: DropReason, detail: str, ctx: AssemblyContext) -> None:
    report.dropped.append(DroppedRow(row.index, reason, detail))
    logger.info(
        "row dropped",
        extra=log_extra(platform=ctx.platform, row_index=row.index, reason=reason.value, detail=detail),
    )


def assemble_row(row: MappedRow, ctx: AssemblyContext) -> Trade:
    v = row.values
    account = v.get(F.ACCOUNT_NUMBER) or ctx.account_number or ctx.default_account
    instrument = str(v[F.INSTRUMENT])
    quantity = float(v[F.QUANTITY])
    pnl = float(v.get(F.PNL) or 0.0)
    commission = abs(float(v.get(F.COMMISSION) or 0.0))
    if commission == 0 and ctx.commission_defaults:
        commission = default_commission(instrument, quantity, ctx.commission_defaults)
    time_in_position = max(0.0, float(v.get(F.TIME_IN_POSITION) or 0))
    entry_date = v.get(F.ENTRY_DATE)
    close_date = v.get(F.CLOSE_DATE)
    entry_id = v.get(F.ENTRY_ID)
    close_id = v.get(F.CLOSE_ID)

    side = infer_side(
        v.get(F.SIDE),
        v.get(F.PNL),
        v.get(F.ENTRY_PRICE),
        v.get(F.CLOSE_PRICE),
        entry_date,
        close_date,
    )
    trade_id = trade_hash(
        ctx.user_id, account, instrument, entry_date, close_date, quantity, entry_id, close_id, time_in_position
    )
    return Trade(
        id=trade_id,
        user_id=ctx.user_id,
        account_number=str(account),
        instrument=instrument,
        quantity=quantity,
        entry_price=v.get(F.ENTRY_PRICE),
        close_price=v.get(F.CLOSE_PRICE),
        entry_date=entry_date,
        close_date=close_date,
        pnl=pnl,
        commission=commission,
        time_in_position=time_in_position,
        side=side,
        entry_id=entry_id,
        close_id=close_id,
    )


def assemble(rows: Sequence[MappedRow], ctx: AssemblyContext) -> AssemblyReport:
    report = AssemblyReport()
    for row in rows:
        if row.empty:
            _drop(report, row, DropReason.EMPTY_ROW, "", ctx)
            continue
        if row.error is not None:
            _drop(report, row, DropReason.PNL_UNPARSEABLE, str(row.error), ctx)
            continue
        account = row.values.get(F.ACCOUNT_NUMBER) or ctx.account_number or ctx.default_account
        reason = _check(row.values, account)
        if reason is not None:
            _drop(report, row, reason, "", ctx)
            continue
        report.trades.append(assemble_row(row, ctx))
    return report
