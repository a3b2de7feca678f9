from fastapi import APIRouter, Request
from fastapi.responses import Response
from typing import Any, Dict, Optional
import csv
from io import StringIO

from api.contracts.trades_header import TRADES_HEADER
from core.models import Trade

router = APIRouter()


# ------------------------------------------------------------
# Utility – map a trade into the canonical CSV column order
# ------------------------------------------------------------
def map_trade_row(t: Trade) -> Dict[str, Any]:
    d = t.to_dict()
    return {k: ("" if d.get(k) is None else d.get(k)) for k in TRADES_HEADER}


# ------------------------------------------------------------
# /trades.csv
# ------------------------------------------------------------
@router.get("/trades.csv")
async def export_trades_csv(request: Request, account_number: Optional[str] = None) -> Response:
    store = request.app.state.services.trade_store
    trades = store.list_trades(account_number=account_number)
    trades.sort(key=lambda t: (t.entry_date or t.close_date or "", t.id))

    out = StringIO()
    writer = csv.writer(out)
    writer.writerow(TRADES_HEADER)
    for t in trades:
        row = map_trade_row(t)
        writer.writerow([row[k] for k in TRADES_HEADER])

    return Response(
        content=out.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="trades.csv"'},
    )
