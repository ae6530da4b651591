from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ibbridge.core.orders.models import BracketRequest, OrderSpec, StopLeg


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OrderIntent:
    spec: OrderSpec
    timestamp: datetime

    @classmethod
    def now(cls, spec: OrderSpec) -> "OrderIntent":
        return cls(spec=spec, timestamp=_now())


@dataclass(frozen=True)
class OrderSent:
    spec: OrderSpec
    order_id: Optional[int]
    timestamp: datetime

    @classmethod
    def now(cls, spec: OrderSpec, order_id: Optional[int]) -> "OrderSent":
        return cls(spec=spec, order_id=order_id, timestamp=_now())


@dataclass(frozen=True)
class OrderStatusChanged:
    spec: OrderSpec
    order_id: Optional[int]
    status: Optional[str]
    timestamp: datetime

    @classmethod
    def now(
        cls,
        spec: OrderSpec,
        *,
        order_id: Optional[int],
        status: Optional[str],
    ) -> "OrderStatusChanged":
        return cls(spec=spec, order_id=order_id, status=status, timestamp=_now())


@dataclass(frozen=True)
class OrderFilled:
    spec: OrderSpec
    order_id: Optional[int]
    filled_qty: Optional[float]
    avg_fill_price: Optional[float]
    timestamp: datetime

    @classmethod
    def now(
        cls,
        spec: OrderSpec,
        *,
        order_id: Optional[int],
        filled_qty: Optional[float],
        avg_fill_price: Optional[float],
    ) -> "OrderFilled":
        return cls(
            spec=spec,
            order_id=order_id,
            filled_qty=filled_qty,
            avg_fill_price=avg_fill_price,
            timestamp=_now(),
        )


@dataclass(frozen=True)
class StopLegSubmitted:
    symbol: str
    leg_index: int
    leg: StopLeg
    order_id: Optional[int]
    timestamp: datetime

    @classmethod
    def now(
        cls,
        *,
        symbol: str,
        leg_index: int,
        leg: StopLeg,
        order_id: Optional[int],
    ) -> "StopLegSubmitted":
        return cls(symbol=symbol, leg_index=leg_index, leg=leg, order_id=order_id, timestamp=_now())


@dataclass(frozen=True)
class StopLegFailed:
    symbol: str
    leg_index: int
    leg: StopLeg
    error: str
    live_legs: int
    timestamp: datetime

    @classmethod
    def now(
        cls,
        *,
        symbol: str,
        leg_index: int,
        leg: StopLeg,
        error: str,
        live_legs: int,
    ) -> "StopLegFailed":
        return cls(
            symbol=symbol,
            leg_index=leg_index,
            leg=leg,
            error=error,
            live_legs=live_legs,
            timestamp=_now(),
        )


@dataclass(frozen=True)
class BracketCompleted:
    request: BracketRequest
    success: bool
    message: str
    legs_submitted: int
    timestamp: datetime

    @classmethod
    def now(
        cls,
        request: BracketRequest,
        *,
        success: bool,
        message: str,
        legs_submitted: int,
    ) -> "BracketCompleted":
        return cls(
            request=request,
            success=success,
            message=message,
            legs_submitted=legs_submitted,
            timestamp=_now(),
        )
