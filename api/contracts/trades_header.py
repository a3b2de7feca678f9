"""
Canonical header for trades.csv that the API must serve.
Keep this the single source of truth for downstream consumers.
"""

# Order of columns is contractually significant.
TRADES_HEADER = [
    "id",  # content hash, stable across re-imports
    "user_id",
    "account_number",
    "instrument",
    "side",  # long or short, empty when it could not be inferred
    "quantity",
    "entry_price",
    "close_price",
    "entry_date",  # ISO-8601 UTC instant
    "close_date",  # ISO-8601 UTC instant
    "pnl",  # gross realized PnL
    "commission",  # non-negative
    "time_in_position",  # seconds
    "entry_id",  # source order id when the export has one
    "close_id",
]

# Minimal types hint for exporters and validators.
TRADES_DTYPES = {
    "id": "str",
    "user_id": "str",
    "account_number": "str",
    "instrument": "str",
    "side": "str?",
    "quantity": "float",
    "entry_price": "float?",
    "close_price": "float?",
    "entry_date": "str?",
    "close_date": "str?",
    "pnl": "float",
    "commission": "float",
    "time_in_position": "float",
    "entry_id": "str?",
    "close_id": "str?",
}
