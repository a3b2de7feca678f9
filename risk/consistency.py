"""
Consistency rule
----------------
Caps the share of total profit any single trading day may contribute. The
cap is anchored to the profit target until the trader has already made more
than the target, then to actual profit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

import pandas as pd

from core.models import Trade, to_datetime
from risk.taxonomy import Consistency


@dataclass
class ConsistencyResult:
    max_allowed_daily_profit: Optional[float]
    highest_profit_day: float
    status: Consistency

    @property
    def is_consistent(self) -> Optional[bool]:
        if self.status == Consistency.NOT_APPLICABLE:
            return None
        return self.status == Consistency.CONSISTENT


def daily_pnl(trades: Sequence[Trade]) -> Dict[str, float]:
    """Net pnl (pnl - commission) per UTC entry date, keyed ``YYYY-MM-DD``, in date order."""
    rows = []
    for t in trades:
        dt = to_datetime(t.entry_date)
        if dt is None:
            continue
        rows.append({"date": dt.date().isoformat(), "net": t.net_pnl})
    if not rows:
        return {}
    df = pd.DataFrame(rows)
    daily = df.groupby("date", sort=True)["net"].sum()
    return {str(k): float(v) for k, v in daily.items()}


def trading_days(daily: Mapping[str, float], min_pnl_to_count_as_day: float = 0.0) -> Dict[str, int]:
    values = list(daily.values())
    return {
        "total": len(values),
        "valid": sum(1 for v in values if v >= min_pnl_to_count_as_day),
        "profitable": sum(1 for v in values if v > 0),
    }


def max_allowed_daily_profit(total_profit: float, profit_target: float, consistency_percentage: float) -> float:
    base = profit_target if total_profit <= profit_target else total_profit
    return base * consistency_percentage / 100


def evaluate_consistency(
    daily: Mapping[str, float],
    total_profit: float,
    profit_target: float,
    consistency_percentage: float,
) -> ConsistencyResult:
    highest = max(daily.values()) if daily else 0.0
    if total_profit <= 0 or consistency_percentage <= 0:
        return ConsistencyResult(None, highest, Consistency.NOT_APPLICABLE)
    cap = max_allowed_daily_profit(total_profit, profit_target, consistency_percentage)
    status = Consistency.CONSISTENT if highest <= cap else Consistency.INCONSISTENT
    return ConsistencyResult(cap, highest, status)
