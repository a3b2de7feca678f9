from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, Request

from api.core.trade_store import TradeStore
from api.models.accounts import AccountConfigIn, RiskRequest, RiskSnapshotOut
from risk.engine import compute_account_metrics
from utils.config import load_account_configs
from utils.settings import get_settings

router = APIRouter(prefix="/accounts", tags=["accounts"])


def _get_store(request: Request) -> TradeStore:
    return request.app.state.services.trade_store


@router.post("/risk", response_model=RiskSnapshotOut)
async def account_risk(body: RiskRequest, request: Request):
    config = body.account.to_config()
    if body.trades is None:
        trades = _get_store(request).list_trades(account_number=config.number)
    else:
        trades = body.to_trades()
    return compute_account_metrics(config, trades).to_dict()


@router.get("", response_model=List[AccountConfigIn])
async def configured_accounts():
    """Accounts declared in the accounts YAML file."""
    path = get_settings().ACCOUNTS_CONFIG_PATH
    try:
        configs = load_account_configs(path)
    except FileNotFoundError:
        return []
    return [
        {
            **{k: getattr(c, k) for k in AccountConfigIn.model_fields if k != "payouts"},
            "payouts": [{"id": p.id, "date": p.date, "amount": p.amount, "status": p.status} for p in c.payouts],
        }
        for c in configs
    ]


@router.get("/{number}/risk", response_model=RiskSnapshotOut)
async def configured_account_risk(number: str, request: Request):
    path = get_settings().ACCOUNTS_CONFIG_PATH
    try:
        configs = load_account_configs(path)
    except FileNotFoundError:
        configs = []
    config = next((c for c in configs if c.number == number), None)
    if config is None:
        raise HTTPException(status_code=404, detail=f"account '{number}' is not configured")
    trades = _get_store(request).list_trades(account_number=number)
    return compute_account_metrics(config, trades).to_dict()
