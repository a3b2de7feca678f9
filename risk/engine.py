"""
Account risk engine
-------------------
``compute_account_metrics(config, trades)`` derives the full prop-firm
snapshot for one account from its configuration and the trade list:

 - trade selection (account, reset date) and optional buffer filtering
 - balance / high-water mark fold, PAID payouts withdrawn at the end
 - drawdown floor (fixed, trailing, or locked trailing)
 - consistency rule, trading-day counts and per-day metrics

Nothing is persisted; every call recomputes from its inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.models import AccountConfig, Payout, Trade, to_datetime
from risk.balance import reduce_balance
from risk.consistency import daily_pnl, evaluate_consistency, trading_days
from risk.drawdown import evaluate_drawdown
from risk.taxonomy import Consistency
from utils.logger import log_extra, setup_logger

logger = setup_logger(__name__)


@dataclass
class DailyMetric:
    date: str
    pnl: float
    total_balance: float
    percentage_of_target: float
    is_consistent: bool
    payout: Optional[Payout] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "pnl": self.pnl,
            "total_balance": self.total_balance,
            "percentage_of_target": self.percentage_of_target,
            "is_consistent": self.is_consistent,
            "payout": (
                {
                    "id": self.payout.id,
                    "amount": self.payout.amount,
                    "date": self.payout.date.isoformat(),
                    "status": self.payout.status.value,
                }
                if self.payout
                else None
            ),
        }


@dataclass
class RiskSnapshot:
    account_number: str
    running_balance: float
    highest_balance: float
    drawdown_level: float
    remaining_loss: float
    drawdown_progress_pct: float
    max_allowed_daily_profit: Optional[float]
    consistency: Consistency
    highest_profit_day: float
    total_profit: float
    has_profitable_data: bool
    is_configured: bool
    current_profit: float
    progress_pct: float
    remaining_to_target: float
    above_buffer: float = 0.0
    daily_pnl: Dict[str, float] = field(default_factory=dict)
    total_profitable_days: int = 0
    total_trading_days: int = 0
    valid_trading_days: int = 0
    daily_metrics: List[DailyMetric] = field(default_factory=list)
    trade_ids: List[str] = field(default_factory=list)

    @property
    def current_balance(self) -> float:
        return self.running_balance

    @property
    def is_consistent(self) -> Optional[bool]:
        if self.consistency == Consistency.NOT_APPLICABLE:
            return None
        return self.consistency == Consistency.CONSISTENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_number": self.account_number,
            "running_balance": self.running_balance,
            "current_balance": self.current_balance,
            "highest_balance": self.highest_balance,
            "drawdown_level": self.drawdown_level,
            "remaining_loss": self.remaining_loss,
            "drawdown_progress_pct": self.drawdown_progress_pct,
            "max_allowed_daily_profit": self.max_allowed_daily_profit,
            "consistency": self.consistency.value,
            "is_consistent": self.is_consistent,
            "highest_profit_day": self.highest_profit_day,
            "total_profit": self.total_profit,
            "has_profitable_data": self.has_profitable_data,
            "is_configured": self.is_configured,
            "current_profit": self.current_profit,
            "progress_pct": self.progress_pct,
            "remaining_to_target": self.remaining_to_target,
            "above_buffer": self.above_buffer,
            "daily_pnl": dict(self.daily_pnl),
            "total_profitable_days": self.total_profitable_days,
            "total_trading_days": self.total_trading_days,
            "valid_trading_days": self.valid_trading_days,
            "daily_metrics": [d.to_dict() for d in self.daily_metrics],
            "trade_ids": list(self.trade_ids),
        }


def select_trades(config: AccountConfig, trades: Sequence[Trade]) -> List[Trade]:
    """Trades of this account with a parseable entry date on/after the reset date, oldest first."""
    reset = to_datetime(config.reset_date) if config.reset_date else None
    keyed = []
    for t in trades:
        if t.account_number != config.number:
            continue
        entry = to_datetime(t.entry_date)
        if entry is None or (reset is not None and entry < reset):
            continue
        keyed.append((entry, t))
    keyed.sort(key=lambda pair: pair[0])
    return [t for _, t in keyed]


def apply_buffer(config: AccountConfig, trades: Sequence[Trade]) -> Tuple[List[Trade], float]:
    """Keep only trades made once accumulated profit reached the buffer.

    The trade that crosses the buffer counts. PAID payouts reduce the
    accumulated profit and can push the account back under the buffer.
    Returns the kept trades and the profit above the buffer.
    """
    if not config.consider_buffer or config.buffer <= 0:
        return list(trades), 0.0

    events: List[Tuple[Any, int, Any]] = [(to_datetime(t.entry_date), 0, t) for t in trades]
    events += [(to_datetime(p.date), 1, p) for p in config.payouts if p.is_paid]
    events.sort(key=lambda e: e[0])

    kept: List[Trade] = []
    acc = 0.0
    threshold = config.buffer
    for _, kind, item in events:
        if kind == 1:
            acc -= item.amount
            continue
        nxt = acc + item.net_pnl
        if acc >= threshold or nxt >= threshold:
            kept.append(item)
        acc = nxt
    return kept, max(0.0, acc - threshold)


def build_daily_metrics(
    config: AccountConfig,
    daily: Dict[str, float],
    total_profit: float,
) -> List[DailyMetric]:
    payouts_by_date: Dict[str, Payout] = {}
    for p in config.payouts:
        payouts_by_date.setdefault(to_datetime(p.date).date().isoformat(), p)

    pct = config.consistency_percentage or 30.0
    target = config.profit_target
    balance = config.starting_balance
    out: List[DailyMetric] = []
    for date in sorted(set(daily) | set(payouts_by_date)):
        pnl = daily.get(date, 0.0)
        balance += pnl
        consistent = True if total_profit <= 0 else pnl <= total_profit * pct / 100
        payout = payouts_by_date.get(date)
        if payout is not None and payout.is_paid:
            balance -= payout.amount
        out.append(
            DailyMetric(
                date=date,
                pnl=pnl,
                total_balance=balance,
                percentage_of_target=(total_profit / target * 100) if target > 0 else 0.0,
                is_consistent=consistent,
                payout=payout,
            )
        )
    return out


def compute_account_metrics(config: AccountConfig, trades: Sequence[Trade]) -> RiskSnapshot:
    selected = select_trades(config, trades)
    counted, above_buffer = apply_buffer(config, selected)

    daily = daily_pnl(counted)
    total_profit = sum(daily.values())
    is_configured = config.profit_target > 0 or config.drawdown_threshold > 0

    consistency = evaluate_consistency(daily, total_profit, config.profit_target, config.consistency_percentage)
    if not is_configured:
        consistency.max_allowed_daily_profit = None
        consistency.status = Consistency.NOT_APPLICABLE

    bal = reduce_balance(counted, config.payouts, config.starting_balance)
    dd = evaluate_drawdown(bal.highest_balance, bal.running_balance, config)

    current_profit = bal.running_balance - config.starting_balance
    target = config.profit_target
    days = trading_days(daily, config.min_pnl_to_count_as_day)

    snapshot = RiskSnapshot(
        account_number=config.number,
        running_balance=bal.running_balance,
        highest_balance=bal.highest_balance,
        drawdown_level=dd.drawdown_level,
        remaining_loss=dd.remaining_loss,
        drawdown_progress_pct=dd.drawdown_progress_pct,
        max_allowed_daily_profit=consistency.max_allowed_daily_profit,
        consistency=consistency.status,
        highest_profit_day=consistency.highest_profit_day,
        total_profit=total_profit,
        has_profitable_data=total_profit > 0,
        is_configured=is_configured,
        current_profit=current_profit,
        progress_pct=(current_profit / target * 100) if target > 0 else 0.0,
        remaining_to_target=max(0.0, target - current_profit) if target > 0 else 0.0,
        above_buffer=above_buffer,
        daily_pnl=daily,
        total_profitable_days=days["profitable"],
        total_trading_days=days["total"],
        valid_trading_days=days["valid"],
        daily_metrics=build_daily_metrics(config, daily, total_profit),
        trade_ids=[t.id for t in counted],
    )
    logger.debug(
        "account metrics computed",
        extra=log_extra(
            account=config.number,
            trades=len(counted),
            balance=snapshot.running_balance,
            consistency=snapshot.consistency.value,
        ),
    )
    return snapshot
