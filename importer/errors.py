"""
Import failure taxonomy
-----------------------
File-level problems are ``StructuralError`` subclasses: the whole file is
rejected and no trade from it is kept. Row-level problems never raise; they
surface as a ``DropReason`` on the dropped row, or as a ``FieldCoercionError``
value returned by a coercion.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ImportFailure(Exception):
    """Base for everything the import pipeline reports."""


class StructuralError(ImportFailure):
    def __init__(self, message: str, platform: Optional[str] = None, row_index: Optional[int] = None):
        super().__init__(message)
        self.platform = platform
        self.row_index = row_index

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "platform": self.platform,
            "row_index": self.row_index,
            "detail": str(self),
        }


class EmptyInputError(StructuralError):
    pass


class MissingSectionMarkerError(StructuralError):
    pass


class MissingHeaderError(StructuralError):
    pass


class UnknownPlatformError(StructuralError):
    pass


class UnsupportedPlatformError(StructuralError):
    """Platform exists but is fed by a direct sync, not by a file."""


class FieldCoercionError(ImportFailure):
    def __init__(self, field: str, raw: Any, reason: str):
        super().__init__(f"{field}: {reason} ({raw!r})")
        self.field = field
        self.raw = raw
        self.reason = reason


@dataclass(frozen=True)
class CoercedValue(Generic[T]):
    """Outcome of one cell coercion: a value, and an error when the cell was not usable."""

    value: T
    error: Optional[FieldCoercionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value


class DropReason(str, Enum):
    PNL_UNPARSEABLE = "PNL_UNPARSEABLE"
    MISSING_ACCOUNT = "MISSING_ACCOUNT"
    MISSING_INSTRUMENT = "MISSING_INSTRUMENT"
    ZERO_QUANTITY = "ZERO_QUANTITY"
    MISSING_PRICE = "MISSING_PRICE"
    MISSING_DATE = "MISSING_DATE"
    EMPTY_ROW = "EMPTY_ROW"
    MISSING_SIDE = "MISSING_SIDE"
    # order rows of a position still open at the end of the file
    OPEN_POSITION = "OPEN_POSITION"


class SaveError(str, Enum):
    DUPLICATE_TRADES = "DUPLICATE_TRADES"
    NO_TRADES_ADDED = "NO_TRADES_ADDED"
    UNKNOWN = "UNKNOWN"
