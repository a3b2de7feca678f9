"""
Cell coercions
--------------
Every canonical field has one coercion turning a raw cell string into a
typed value. Coercions never raise: they return a ``CoercedValue`` whose
``error`` is set when the cell could not be used. Whether that error drops
the row (pnl) or falls back to a default (everything else) is decided by the
mapper.

Numeric parsing follows the lenient "longest numeric prefix" rule used by
broker exports (``"12 USD"`` -> 12.0), not ``float()``'s all-or-nothing one.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone, tzinfo
from typing import Callable, Dict, Optional, Sequence, Union
from zoneinfo import ZoneInfo

import pandas as pd

from importer.errors import CoercedValue, FieldCoercionError
from importer.fields import FIELD_SPECS, CanonicalField, Coercion

Coercer = Callable[[Optional[str]], CoercedValue]

_NUM_PREFIX = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_FRACTIONAL_SECONDS = re.compile(r"^\d+\.\d+$")
_MINUTES = re.compile(r"(\d+)min")
_SECONDS = re.compile(r"(\d+)sec")


def parse_number_prefix(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    m = _NUM_PREFIX.match(str(raw).strip())
    if not m:
        return None
    return float(m.group(0))


def format_pnl(raw: Optional[str]) -> CoercedValue[float]:
    """``"(123.45)"`` -> -123.45, ``"$1,234.50"`` -> 1234.5; empty or non-numeric is an error."""
    if raw is None or not str(raw).strip():
        return CoercedValue(0.0, FieldCoercionError("pnl", raw, "empty value"))
    s = str(raw).strip().replace("(", "-").replace(")", "")
    s = s.replace("$", "").replace(",", "")
    value = parse_number_prefix(s)
    if value is None:
        return CoercedValue(0.0, FieldCoercionError("pnl", raw, "not a number"))
    return CoercedValue(value)


def parse_float_or_zero(raw: Optional[str], field: str = "number") -> CoercedValue[float]:
    value = parse_number_prefix(raw)
    if value is None:
        return CoercedValue(0.0, FieldCoercionError(field, raw, "defaulted to 0"))
    return CoercedValue(value)


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def convert_time_in_position(raw: Optional[str]) -> int:
    """Seconds held: ``"45.7"`` -> 46, ``"2min30sec"`` -> 150, anything else -> 0."""
    s = (raw or "").strip()
    if not s:
        return 0
    if _FRACTIONAL_SECONDS.match(s):
        return _round_half_up(float(s))
    minutes = _MINUTES.search(s)
    seconds = _SECONDS.search(s)
    return (int(minutes.group(1)) * 60 if minutes else 0) + (int(seconds.group(1)) if seconds else 0)


def parse_currency(raw: Optional[str], field: str = "pnl") -> CoercedValue[float]:
    """Locale-aware amount: ``1,234.56``, ``1.234,56``, ``1 234,56 €``, ``(50.00)``, ``$12``."""
    if raw is None or not str(raw).strip():
        return CoercedValue(0.0, FieldCoercionError(field, raw, "empty value"))
    s = str(raw).strip()
    negative = s.startswith("(") and s.endswith(")")
    s = re.sub(r"[()$€\s]", "", s)

    if "," in s and "." in s:
        if s.index(",") < s.index("."):
            s = s.replace(",", "")
        else:
            s = s.replace(".", "").replace(",", ".", 1)
    elif "," in s:
        parts = s.split(",")
        # a comma followed by groups of exactly three digits is a thousands separator
        us_thousands = all(len(p) == 3 for p in parts[1:])
        s = s.replace(",", "") if us_thousands else s.replace(",", ".", 1)

    value = parse_number_prefix(s)
    if value is None:
        return CoercedValue(0.0, FieldCoercionError(field, raw, "not a number"))
    return CoercedValue(-value if negative else value)


def parse_price(raw: Optional[str]) -> Optional[float]:
    if raw is None or not str(raw).strip():
        return None
    s = str(raw).strip()
    if "," in s and "." in s:
        s = s.replace(",", "")
    else:
        s = s.replace(",", ".", 1)
    return parse_number_prefix(s)


def _resolve_tz(name: Union[str, tzinfo, None]) -> tzinfo:
    if isinstance(name, tzinfo):
        return name
    if not name or name.upper() in ("UTC", "Z"):
        return timezone.utc
    return ZoneInfo(name)


def to_iso_utc(dt: datetime) -> str:
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def normalize_date(
    raw: Optional[str], formats: Sequence[str] = (), tz: Union[str, tzinfo, None] = None
) -> Optional[str]:
    """Parse a broker timestamp into ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Explicit ``formats`` are tried in order, then ``pandas.to_datetime``.
    Naive timestamps are read in ``tz`` (UTC when unset). Returns None when
    nothing understands the value.
    """
    if raw is None or not str(raw).strip():
        return None
    s = str(raw).strip()
    dt: Optional[datetime] = None
    for fmt in formats:
        try:
            dt = datetime.strptime(s, fmt)
            break
        except ValueError:
            continue
    if dt is None:
        try:
            ts = pd.to_datetime(s)
        except (ValueError, TypeError, OverflowError):
            return None
        if pd.isna(ts):
            return None
        dt = ts.to_pydatetime()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=_resolve_tz(tz))
    return to_iso_utc(dt)


def _text(raw: Optional[str]) -> CoercedValue[Optional[str]]:
    s = (raw or "").strip()
    return CoercedValue(s or None)


def build_coercers(
    date_formats: Sequence[str] = (),
    tz: Optional[str] = None,
    locale_currency: bool = False,
) -> Dict[CanonicalField, Coercer]:
    """One coercion function per canonical field for a given import context.

    ``tz`` is resolved here, so an unknown zone name fails before any row is read.
    """
    zone = _resolve_tz(tz)

    def number(field: CanonicalField) -> Coercer:
        if locale_currency and field == CanonicalField.COMMISSION:
            return lambda raw: parse_currency(raw, field.value)
        return lambda raw: parse_float_or_zero(raw, field.value)

    def price(field: CanonicalField) -> Coercer:
        def _coerce(raw: Optional[str]) -> CoercedValue:
            value = parse_price(raw)
            if value is None and raw is not None and str(raw).strip():
                return CoercedValue(None, FieldCoercionError(field.value, raw, "not a price"))
            return CoercedValue(value)

        return _coerce

    def currency(field: CanonicalField) -> Coercer:
        if locale_currency:
            return lambda raw: parse_currency(raw, field.value)
        return format_pnl

    def duration(field: CanonicalField) -> Coercer:
        def _coerce(raw: Optional[str]) -> CoercedValue:
            value = convert_time_in_position(raw)
            if value == 0 and raw is not None and str(raw).strip() and not str(raw).strip().startswith("0"):
                return CoercedValue(0, FieldCoercionError(field.value, raw, "defaulted to 0"))
            return CoercedValue(value)

        return _coerce

    def date(field: CanonicalField) -> Coercer:
        def _coerce(raw: Optional[str]) -> CoercedValue:
            value = normalize_date(raw, date_formats, zone)
            if value is None and raw is not None and str(raw).strip():
                return CoercedValue(None, FieldCoercionError(field.value, raw, "unrecognized date"))
            return CoercedValue(value)

        return _coerce

    builders: Dict[Coercion, Callable[[CanonicalField], Coercer]] = {
        Coercion.TEXT: lambda field: _text,
        Coercion.SIDE: lambda field: _text,
        Coercion.NUMBER: number,
        Coercion.PRICE: price,
        Coercion.CURRENCY: currency,
        Coercion.DURATION: duration,
        Coercion.DATE: date,
    }
    return {field: builders[spec.coercion](field) for field, spec in FIELD_SPECS.items()}
