from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AccountValue:
    key: str
    value: str
    currency: str
    account: str


@dataclass(frozen=True)
class PositionSnapshot:
    account: str
    symbol: str
    sec_type: str
    exchange: str
    currency: str
    qty: float
    avg_cost: Optional[float] = None
    con_id: Optional[int] = None
