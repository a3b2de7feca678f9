"""
Risk Status Taxonomy
--------------------
Stable enumerations reported by the account risk engine:
 - consistency rule outcome (a tri-state, never a plain bool)
"""

from __future__ import annotations
from enum import Enum


class Consistency(str, Enum):
    CONSISTENT = "CONSISTENT"
    INCONSISTENT = "INCONSISTENT"
    # no profitable data, account not configured, or no consistency percentage
    NOT_APPLICABLE = "NOT_APPLICABLE"


__all__ = ["Consistency"]
