import copy
import os
from typing import Any, Dict, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml  # type: ignore[import-untyped]

from core.models import AccountConfig, Payout, PayoutStatus, to_datetime


class ConfigError(ValueError):
    """A config file was read but its content is unusable."""


_CACHE: Dict[str, Dict[str, Any]] = {}
_MTIME: Dict[str, float] = {}

DEFAULT_IMPORT_CFG: Dict[str, Any] = {
    "default_account_number": "default-account",
    "batch_size": 500,
    "timezone": "UTC",
    # per-contract commission applied when the export reports none
    "commission_defaults": {"ZN": 1.94, "ZB": 2.08},
    "date_formats": [
        "%m/%d/%Y %H:%M:%S",
        "%m/%d/%Y %I:%M:%S %p",
        "%m/%d/%Y %H:%M",
        "%d/%m/%Y %H:%M:%S",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%dT%H:%M:%S",
    ],
}


def _merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)  # type: ignore[index]
        else:
            out[k] = v
    return out


def load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data or {}


def check_timezone(name: Any, source: str = "config") -> None:
    if not name or str(name).upper() in ("UTC", "Z"):
        return
    try:
        ZoneInfo(str(name))
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"{source}: unknown timezone {name!r}") from e


def get_import_cfg(path: str = "config/import.yaml") -> Dict[str, Any]:
    """Import settings merged over the built-in defaults, reloaded when the file changes."""
    try:
        st = os.stat(path)
        if path not in _CACHE or st.st_mtime > _MTIME.get(path, 0.0):
            cfg = _merge(DEFAULT_IMPORT_CFG, load_yaml(path))
            check_timezone(cfg.get("timezone"), path)
            _CACHE[path] = cfg
            _MTIME[path] = st.st_mtime
    except FileNotFoundError:
        _CACHE[path] = copy.deepcopy(DEFAULT_IMPORT_CFG)
        _MTIME.pop(path, None)
    return _CACHE[path]


def _parse_payout(raw: Dict[str, Any]) -> Payout:
    date = to_datetime(raw.get("date"))
    if date is None:
        raise ValueError(f"payout without a valid date: {raw!r}")
    status = str(raw.get("status", PayoutStatus.PENDING.value)).upper()
    return Payout(
        date=date,
        amount=float(raw.get("amount", 0.0)),
        status=PayoutStatus(status),
        id=str(raw["id"]) if raw.get("id") is not None else None,
    )


def account_from_dict(raw: Dict[str, Any]) -> AccountConfig:
    if not raw.get("number"):
        raise ValueError("account entry is missing 'number'")
    reset = raw.get("reset_date")
    reset_dt = to_datetime(reset) if reset is not None else None
    if reset is not None and reset_dt is None:
        raise ValueError(f"invalid reset_date for account {raw['number']}: {reset!r}")
    payouts = sorted((_parse_payout(p) for p in raw.get("payouts") or []), key=lambda p: p.date)
    tsp = raw.get("trailing_stop_profit")
    return AccountConfig(
        number=str(raw["number"]),
        starting_balance=float(raw.get("starting_balance", 0.0)),
        profit_target=float(raw.get("profit_target", 0.0)),
        drawdown_threshold=float(raw.get("drawdown_threshold", 0.0)),
        trailing_drawdown=bool(raw.get("trailing_drawdown", False)),
        trailing_stop_profit=float(tsp) if tsp is not None else None,
        consistency_percentage=float(raw.get("consistency_percentage", 30.0)),
        reset_date=reset_dt,
        payouts=tuple(payouts),
        buffer=float(raw.get("buffer", 0.0)),
        consider_buffer=bool(raw.get("consider_buffer", True)),
        min_pnl_to_count_as_day=float(raw.get("min_pnl_to_count_as_day", 0.0)),
    )


def load_account_configs(path: str = "config/accounts.yaml") -> List[AccountConfig]:
    try:
        raw = load_yaml(path)
        return [account_from_dict(a) for a in raw.get("accounts") or []]
    except (yaml.YAMLError, AttributeError, ValueError, TypeError) as e:
        raise ConfigError(f"{path}: {e}") from e
