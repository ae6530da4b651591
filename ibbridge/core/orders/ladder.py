from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ibbridge.core.orders.models import OrderSide, StopLeg

STOP_LADDER_SIZE = 3


def round_price(price: float) -> float:
    if not math.isfinite(price):
        return price
    try:
        return float(Decimal(str(price)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError):
        return price


def split_quantity(qty: int) -> list[int]:
    """Split qty into three legs; the last leg absorbs the remainder."""
    if qty <= 0:
        raise ValueError("qty must be greater than zero")
    third = qty // STOP_LADDER_SIZE
    return [third, third, qty - 2 * third]


def stop_prices(side: OrderSide, stop_price: float, avg_fill_price: float) -> list[float]:
    """Stop prices ordered from closest-to-entry to the original stop."""
    if side == OrderSide.BUY:
        price_diff = avg_fill_price - stop_price
        sign = 1.0
    else:
        price_diff = stop_price - avg_fill_price
        sign = -1.0
    return [
        round_price(stop_price + sign * price_diff * 2.0 / 3.0),
        round_price(stop_price + sign * price_diff * 1.0 / 3.0),
        round_price(stop_price),
    ]


def build_stop_ladder(
    side: OrderSide,
    qty: int,
    stop_price: float,
    avg_fill_price: float,
) -> list[StopLeg]:
    return [
        StopLeg(price=price, qty=leg_qty)
        for price, leg_qty in zip(
            stop_prices(side, stop_price, avg_fill_price),
            split_quantity(qty),
        )
    ]
