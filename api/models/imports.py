from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from importer.fields import CanonicalField


# ---------------------------------------------------------
# Request
# ---------------------------------------------------------
class ImportRequest(BaseModel):
    rows: List[List[str]] = Field(..., description="Parsed CSV rows, header rows included")
    user_id: str = Field(..., description="Owner of the imported trades")
    account_number: Optional[str] = Field(None, description="Account applied to rows that carry none")
    mapping: Optional[Dict[str, Optional[CanonicalField]]] = Field(
        None, description="Source header -> canonical field, for platforms without a fixed layout"
    )


# ---------------------------------------------------------
# Response pieces
# ---------------------------------------------------------
class TradeOut(BaseModel):
    id: str
    user_id: str
    account_number: str
    instrument: str
    quantity: float
    entry_price: Optional[float] = None
    close_price: Optional[float] = None
    entry_date: Optional[str] = None
    close_date: Optional[str] = None
    pnl: float = 0.0
    commission: float = 0.0
    time_in_position: float = 0.0
    side: Optional[str] = Field(None, description="long or short")
    entry_id: Optional[str] = None
    close_id: Optional[str] = None


class DroppedRowOut(BaseModel):
    index: int = Field(..., description="Row index in the submitted matrix")
    reason: str = Field(..., description="Drop reason code")
    detail: str = ""


class StructuralErrorOut(BaseModel):
    error: str = Field(..., description="Error class name")
    platform: Optional[str] = None
    row_index: Optional[int] = None
    detail: str = ""


class ImportPreview(BaseModel):
    platform: str
    trades: List[TradeOut]
    dropped: List[DroppedRowOut]
    error: Optional[StructuralErrorOut] = None
    rows_seen: int = 0
    cancelled: bool = False
    mapping: Dict[str, str] = Field(default_factory=dict, description="Mapping actually applied")


class ImportResult(BaseModel):
    number_of_trades_added: int
    error: Optional[str] = Field(None, description="DUPLICATE_TRADES, NO_TRADES_ADDED or UNKNOWN")
    dropped: List[DroppedRowOut] = Field(default_factory=list)


class PlatformOut(BaseModel):
    key: str
    label: str
    category: str
    file_based: bool
    fixed_layout: bool
    skip_header_selection: bool
    requires_account_selection: bool
    needs_weekend_warning: bool
