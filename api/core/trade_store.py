"""
Trade store: the persistence boundary of the import pipeline.

Stores:
 - trades keyed by their content-hash id (re-imports are duplicates, not new rows)

Optionally mirrored to a JSON file so imported trades survive restarts.
"""

from __future__ import annotations
import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from core.models import Trade
from importer.errors import SaveError
from utils.logger import log_extra, setup_logger

logger = setup_logger(__name__)


@dataclass
class SaveResult:
    number_of_trades_added: int
    error: Optional[SaveError] = None

    def to_dict(self) -> dict:
        return {
            "number_of_trades_added": self.number_of_trades_added,
            "error": self.error.value if self.error else None,
        }


class TradeStore:
    def __init__(self, path: Optional[Path] = None):
        self.path = path
        self._trades: Dict[str, Trade] = {}
        self._loaded = False
        self._lock = threading.Lock()

    def _load(self) -> None:
        if self._loaded:
            return
        if self.path is not None and self.path.exists():
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            self._trades = {t["id"]: Trade.from_dict(t) for t in raw.get("trades", [])}
        self._loaded = True

    def _write(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"trades": [t.to_dict() for t in self._trades.values()]}
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    # ---- Public API ----

    def save_trades(self, trades: Iterable[Trade]) -> SaveResult:
        incoming = list(trades)
        if not incoming:
            return SaveResult(0, SaveError.NO_TRADES_ADDED)
        with self._lock:
            self._load()
            added = 0
            for t in incoming:
                if t.id in self._trades:
                    continue
                self._trades[t.id] = t
                added += 1
            if added == 0:
                logger.info("all trades already stored", extra=log_extra(received=len(incoming)))
                return SaveResult(0, SaveError.DUPLICATE_TRADES)
            self._write()
        logger.info(
            "trades saved",
            extra=log_extra(received=len(incoming), added=added, duplicates=len(incoming) - added),
        )
        return SaveResult(added)

    def list_trades(self, user_id: Optional[str] = None, account_number: Optional[str] = None) -> List[Trade]:
        with self._lock:
            self._load()
            trades = list(self._trades.values())
        return [
            t
            for t in trades
            if (user_id is None or t.user_id == user_id)
            and (account_number is None or t.account_number == account_number)
        ]

    def clear(self) -> None:
        with self._lock:
            self._trades = {}
            self._loaded = True
            self._write()
