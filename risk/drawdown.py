from __future__ import annotations

from dataclasses import dataclass

from core.models import AccountConfig


@dataclass
class DrawdownResult:
    drawdown_level: float
    remaining_loss: float
    drawdown_progress_pct: float


def drawdown_floor(highest_balance: float, config: AccountConfig) -> float:
    if not config.trailing_drawdown:
        return config.starting_balance - config.drawdown_threshold
    profit_made = max(0.0, highest_balance - config.starting_balance)
    if config.trailing_stop_profit and profit_made >= config.trailing_stop_profit:
        # floor locks once the trailing stop profit is reached
        return config.starting_balance + config.trailing_stop_profit - config.drawdown_threshold
    return highest_balance - config.drawdown_threshold


def evaluate_drawdown(highest_balance: float, running_balance: float, config: AccountConfig) -> DrawdownResult:
    level = drawdown_floor(highest_balance, config)
    remaining = max(0.0, running_balance - level)
    dd = config.drawdown_threshold
    progress = (dd - remaining) / dd * 100 if dd > 0 else 0.0
    return DrawdownResult(drawdown_level=level, remaining_loss=remaining, drawdown_progress_pct=progress)
