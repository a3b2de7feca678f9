import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from api.core.trade_store import TradeStore
from core.models import Trade
from utils.settings import get_settings

ACCOUNT = {
    "number": "APEX-1",
    "starting_balance": 50000,
    "profit_target": 3000,
    "drawdown_threshold": 2500,
    "trailing_drawdown": True,
    "consistency_percentage": 30,
}


def _trade(tid, entry_date, pnl, account="APEX-1"):
    return {
        "id": tid,
        "user_id": "u1",
        "account_number": account,
        "instrument": "ES",
        "quantity": 1,
        "entry_price": 4500,
        "close_price": 4510,
        "entry_date": entry_date,
        "close_date": entry_date,
        "pnl": pnl,
        "commission": 0,
        "side": "long",
    }


TRADES = [
    _trade("t1", "2024-01-15T14:30:00.000Z", 780),
    _trade("t2", "2024-01-16T14:30:00.000Z", 500),
]


@pytest.fixture
def accounts_file(monkeypatch):
    monkeypatch.setenv("ACCOUNTS_CONFIG_PATH", "config/accounts.example.yaml")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_risk_with_inline_trades():
    client = TestClient(create_app(trade_store=TradeStore()))
    r = client.post("/accounts/risk", json={"account": ACCOUNT, "trades": TRADES})
    assert r.status_code == 200
    data = r.json()
    assert data["running_balance"] == 51280
    assert data["highest_balance"] == 51280
    assert data["drawdown_level"] == 48780
    assert data["max_allowed_daily_profit"] == pytest.approx(900)
    assert data["consistency"] == "CONSISTENT"
    assert data["is_consistent"] is True
    assert data["daily_pnl"] == {"2024-01-15": 780.0, "2024-01-16": 500.0}
    assert data["trade_ids"] == ["t1", "t2"]


def test_risk_uses_stored_trades_when_omitted():
    store = TradeStore()
    store.save_trades([Trade.from_dict(t) for t in TRADES + [_trade("x", "2024-01-15T10:00:00Z", 9999, "OTHER")]])
    client = TestClient(create_app(trade_store=store))
    account = dict(ACCOUNT, payouts=[{"date": "2024-01-17T00:00:00Z", "amount": 200, "status": "PAID"}])
    data = client.post("/accounts/risk", json={"account": account}).json()
    assert data["trade_ids"] == ["t1", "t2"]
    assert data["running_balance"] == 51080
    assert data["daily_metrics"][-1]["payout"]["status"] == "PAID"


def test_risk_inconsistent_and_unconfigured():
    client = TestClient(create_app(trade_store=TradeStore()))
    tight = dict(ACCOUNT, profit_target=1000)
    assert client.post("/accounts/risk", json={"account": tight, "trades": TRADES}).json()["consistency"] == "INCONSISTENT"

    bare = {"number": "APEX-1", "starting_balance": 50000}
    data = client.post("/accounts/risk", json={"account": bare, "trades": TRADES}).json()
    assert data["consistency"] == "NOT_APPLICABLE"
    assert data["is_consistent"] is None
    assert data["is_configured"] is False


def test_risk_rejects_bad_payout_status():
    client = TestClient(create_app(trade_store=TradeStore()))
    account = dict(ACCOUNT, payouts=[{"date": "2024-01-17T00:00:00Z", "amount": 200, "status": "LOST"}])
    assert client.post("/accounts/risk", json={"account": account, "trades": []}).status_code == 422


def test_configured_accounts(accounts_file):
    store = TradeStore()
    store.save_trades([Trade.from_dict(_trade("t1", "2024-01-15T14:30:00Z", 700, "APEX-50K-001"))])
    client = TestClient(create_app(trade_store=store))

    listed = client.get("/accounts").json()
    assert [a["number"] for a in listed] == ["APEX-50K-001", "EVAL-100K"]
    assert listed[0]["payouts"][0]["status"] == "PAID"

    r = client.get("/accounts/APEX-50K-001/risk")
    assert r.status_code == 200
    # 700 profit, minus the 1500 PAID payout
    assert r.json()["running_balance"] == 49200
    assert r.json()["highest_balance"] == 50700

    assert client.get("/accounts/NOPE/risk").status_code == 404


def test_malformed_accounts_file_is_422(tmp_path, monkeypatch):
    p = tmp_path / "accounts.yaml"
    p.write_text("accounts:\n  - number: A\n    payouts:\n      - date: 2024-01-01\n        status: LOST\n", encoding="utf-8")
    monkeypatch.setenv("ACCOUNTS_CONFIG_PATH", str(p))
    get_settings.cache_clear()
    try:
        client = TestClient(create_app(trade_store=TradeStore()))
        for path in ("/accounts", "/accounts/A/risk"):
            r = client.get(path)
            assert r.status_code == 422
            assert r.json()["error"] == "ConfigError"
            assert "LOST" in r.json()["detail"]
    finally:
        get_settings.cache_clear()
