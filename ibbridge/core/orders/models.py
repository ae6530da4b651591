from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    MARKET = "MARKET"
    STOP = "STOP"


TERMINAL_ORDER_STATUSES = frozenset({"filled", "cancelled", "apicancelled", "inactive"})


@dataclass(frozen=True)
class OrderSpec:
    symbol: str
    qty: int
    side: OrderSide
    order_type: OrderType = OrderType.MARKET
    aux_price: Optional[float] = None
    tif: str = "DAY"


@dataclass(frozen=True)
class OrderStatusUpdate:
    order_id: Optional[int]
    status: Optional[str]
    filled: float = 0.0
    remaining: float = 0.0
    avg_fill_price: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return (self.status or "").strip().lower() in TERMINAL_ORDER_STATUSES

    @property
    def is_filled(self) -> bool:
        return (self.status or "").strip().lower() == "filled"


@dataclass(frozen=True)
class StopLeg:
    price: float
    qty: int


@dataclass(frozen=True)
class BracketRequest:
    ticker: str
    qty: int
    stop_price: float
    entry_price: float
    action: OrderSide | str


@dataclass(frozen=True)
class BracketResult:
    success: bool
    message: str
    avg_fill_price: Optional[float] = None
    legs_submitted: int = 0

    def as_tuple(self) -> tuple[bool, str]:
        return self.success, self.message
