import json

from api.core.trade_store import TradeStore
from core.models import Side, Trade
from importer.errors import SaveError


def _trade(tid, account="ACC-1", user="u1"):
    return Trade(
        id=tid,
        user_id=user,
        account_number=account,
        instrument="ES",
        quantity=1.0,
        entry_price=4500.0,
        close_price=4510.0,
        entry_date="2024-01-15T14:30:00.000Z",
        close_date="2024-01-15T14:45:00.000Z",
        pnl=500.0,
        side=Side.LONG,
    )


def test_save_reports_added_and_duplicates():
    store = TradeStore()
    res = store.save_trades([_trade("a"), _trade("b")])
    assert res.number_of_trades_added == 2 and res.error is None

    partial = store.save_trades([_trade("b"), _trade("c")])
    assert partial.number_of_trades_added == 1 and partial.error is None

    dup = store.save_trades([_trade("a")])
    assert dup.number_of_trades_added == 0
    assert dup.error == SaveError.DUPLICATE_TRADES
    assert dup.to_dict() == {"number_of_trades_added": 0, "error": "DUPLICATE_TRADES"}

    assert store.save_trades([]).error == SaveError.NO_TRADES_ADDED


def test_list_trades_filters():
    store = TradeStore()
    store.save_trades([_trade("a"), _trade("b", account="ACC-2"), _trade("c", user="u2")])
    assert {t.id for t in store.list_trades()} == {"a", "b", "c"}
    assert {t.id for t in store.list_trades(account_number="ACC-1")} == {"a", "c"}
    assert {t.id for t in store.list_trades(user_id="u1", account_number="ACC-1")} == {"a"}


def test_json_persistence_roundtrip(tmp_path):
    path = tmp_path / "store" / "trades.json"
    TradeStore(path).save_trades([_trade("a")])
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["trades"][0]["side"] == "long"

    reopened = TradeStore(path)
    [t] = reopened.list_trades()
    assert t == _trade("a")
    assert reopened.save_trades([_trade("a")]).error == SaveError.DUPLICATE_TRADES

    reopened.clear()
    assert TradeStore(path).list_trades() == []
