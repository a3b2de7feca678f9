"""
Canonical records shared by the importer and the risk engine.

A ``Trade`` is what every platform import is normalized into; an
``AccountConfig`` (plus its ``Payout`` events) is what the risk engine
evaluates those trades against. Both are plain immutable records: no I/O,
no persistence concerns.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Side(str, Enum):
    LONG = "long"
    SHORT = "short"


class PayoutStatus(str, Enum):
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    REFUSED = "REFUSED"
    PAID = "PAID"


def to_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 instant (``Z`` suffix allowed) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class Trade:
    """Normalized closed trade.

    ``id`` is the content hash built by the assembler; two imports of the same
    source row produce the same id, which is how the store de-duplicates.
    """

    id: str
    user_id: str
    account_number: str
    instrument: str
    quantity: float
    entry_price: Optional[float] = None
    close_price: Optional[float] = None
    entry_date: Optional[str] = None
    close_date: Optional[str] = None
    pnl: float = 0.0
    commission: float = 0.0
    time_in_position: float = 0.0
    side: Optional[Side] = None
    entry_id: Optional[str] = None
    close_id: Optional[str] = None

    @property
    def net_pnl(self) -> float:
        return self.pnl - self.commission

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["side"] = self.side.value if self.side else None
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Trade":
        side = d.get("side")
        return cls(
            id=str(d["id"]),
            user_id=str(d.get("user_id") or ""),
            account_number=str(d["account_number"]),
            instrument=str(d["instrument"]),
            quantity=float(d["quantity"]),
            entry_price=_opt_float(d.get("entry_price")),
            close_price=_opt_float(d.get("close_price")),
            entry_date=d.get("entry_date") or None,
            close_date=d.get("close_date") or None,
            pnl=float(d.get("pnl") or 0.0),
            commission=float(d.get("commission") or 0.0),
            time_in_position=float(d.get("time_in_position") or 0.0),
            side=Side(side) if side else None,
            entry_id=d.get("entry_id") or None,
            close_id=d.get("close_id") or None,
        )


@dataclass(frozen=True)
class Payout:
    date: datetime
    amount: float
    status: PayoutStatus = PayoutStatus.PENDING
    id: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.status == PayoutStatus.PAID


@dataclass(frozen=True)
class AccountConfig:
    """Prop-firm account rules. Read-only input to the risk engine."""

    number: str
    starting_balance: float = 0.0
    profit_target: float = 0.0
    drawdown_threshold: float = 0.0
    trailing_drawdown: bool = False
    trailing_stop_profit: Optional[float] = None
    consistency_percentage: float = 30.0
    reset_date: Optional[datetime] = None
    payouts: Tuple[Payout, ...] = field(default_factory=tuple)
    # profit that must be banked before trades count toward the evaluation
    buffer: float = 0.0
    consider_buffer: bool = True
    min_pnl_to_count_as_day: float = 0.0


def _opt_float(x: Any) -> Optional[float]:
    if x is None or x == "":
        return None
    try:
        return float(x)
    except (TypeError, ValueError):
        return None
