from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from api.models.imports import TradeOut
from core.models import AccountConfig, Payout, PayoutStatus, Side, Trade, to_datetime


# ---------------------------------------------------------
# Account configuration
# ---------------------------------------------------------
class PayoutIn(BaseModel):
    id: Optional[str] = None
    date: datetime = Field(..., description="Payout date; naive values are read as UTC")
    amount: float
    status: PayoutStatus = PayoutStatus.PENDING

    def to_payout(self) -> Payout:
        return Payout(date=to_datetime(self.date), amount=self.amount, status=self.status, id=self.id)


class AccountConfigIn(BaseModel):
    number: str = Field(..., description="Account number the trades are matched on")
    starting_balance: float = 0.0
    profit_target: float = 0.0
    drawdown_threshold: float = 0.0
    trailing_drawdown: bool = False
    trailing_stop_profit: Optional[float] = Field(None, description="Profit at which the trailing floor locks")
    consistency_percentage: float = Field(30.0, description="Max share of profit allowed on one day, in percent")
    reset_date: Optional[datetime] = Field(None, description="Trades before this instant are ignored")
    payouts: List[PayoutIn] = Field(default_factory=list)
    buffer: float = 0.0
    consider_buffer: bool = True
    min_pnl_to_count_as_day: float = 0.0

    def to_config(self) -> AccountConfig:
        payouts = sorted((p.to_payout() for p in self.payouts), key=lambda p: p.date)
        return AccountConfig(
            number=self.number,
            starting_balance=self.starting_balance,
            profit_target=self.profit_target,
            drawdown_threshold=self.drawdown_threshold,
            trailing_drawdown=self.trailing_drawdown,
            trailing_stop_profit=self.trailing_stop_profit,
            consistency_percentage=self.consistency_percentage,
            reset_date=to_datetime(self.reset_date) if self.reset_date else None,
            payouts=tuple(payouts),
            buffer=self.buffer,
            consider_buffer=self.consider_buffer,
            min_pnl_to_count_as_day=self.min_pnl_to_count_as_day,
        )


class RiskRequest(BaseModel):
    account: AccountConfigIn
    trades: Optional[List[TradeOut]] = Field(None, description="Trades to evaluate; stored trades when omitted")

    def to_trades(self) -> List[Trade]:
        out = []
        for t in self.trades or []:
            d = t.model_dump()
            d["side"] = Side(d["side"]) if d.get("side") else None
            out.append(Trade(**d))
        return out


# ---------------------------------------------------------
# Snapshot
# ---------------------------------------------------------
class DailyMetricOut(BaseModel):
    date: str
    pnl: float
    total_balance: float
    percentage_of_target: float
    is_consistent: bool
    payout: Optional[Dict[str, object]] = None


class RiskSnapshotOut(BaseModel):
    account_number: str
    running_balance: float = Field(..., description="Balance after trades and PAID payouts")
    current_balance: float
    highest_balance: float = Field(..., description="Trade-driven high-water mark")
    drawdown_level: float = Field(..., description="Balance floor that must not be breached")
    remaining_loss: float
    drawdown_progress_pct: float
    max_allowed_daily_profit: Optional[float] = None
    consistency: str = Field(..., description="CONSISTENT, INCONSISTENT or NOT_APPLICABLE")
    is_consistent: Optional[bool] = None
    highest_profit_day: float
    total_profit: float
    has_profitable_data: bool
    is_configured: bool
    current_profit: float
    progress_pct: float
    remaining_to_target: float
    above_buffer: float
    daily_pnl: Dict[str, float]
    total_profitable_days: int
    total_trading_days: int
    valid_trading_days: int
    daily_metrics: List[DailyMetricOut]
    trade_ids: List[str]
