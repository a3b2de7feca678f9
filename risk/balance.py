from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from core.models import Payout, Trade


@dataclass
class BalanceState:
    # balance after trades and PAID payouts
    running_balance: float
    # high-water mark of the trade-driven balance (payouts never lower it)
    highest_balance: float
    trade_balance: float
    paid_payouts: float = 0.0


def reduce_balance(
    trades: Sequence[Trade],
    payouts: Iterable[Payout],
    starting_balance: float,
) -> BalanceState:
    """Fold trades, ordered by entry date, into a running balance and high-water mark.

    Only PAID payouts are withdrawn, once, after the fold.
    """
    balance = starting_balance
    highest = starting_balance
    for t in trades:
        balance += t.net_pnl
        if balance > highest:
            highest = balance
    paid = sum(p.amount for p in payouts if p.is_paid)
    return BalanceState(
        running_balance=balance - paid,
        highest_balance=highest,
        trade_balance=balance,
        paid_payouts=paid,
    )
