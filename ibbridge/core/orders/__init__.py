from ibbridge.core.orders.events import (
    BracketCompleted,
    OrderFilled,
    OrderIntent,
    OrderSent,
    OrderStatusChanged,
    StopLegFailed,
    StopLegSubmitted,
)
from ibbridge.core.orders.ladder import build_stop_ladder, split_quantity, stop_prices
from ibbridge.core.orders.models import (
    BracketRequest,
    BracketResult,
    OrderSide,
    OrderSpec,
    OrderStatusUpdate,
    OrderType,
    StopLeg,
)
from ibbridge.core.orders.service import (
    BracketOrderService,
    BracketPolicy,
    OrderValidationError,
)

__all__ = [
    "BracketCompleted",
    "BracketOrderService",
    "BracketPolicy",
    "BracketRequest",
    "BracketResult",
    "OrderFilled",
    "OrderIntent",
    "OrderSent",
    "OrderSide",
    "OrderSpec",
    "OrderStatusChanged",
    "OrderStatusUpdate",
    "OrderType",
    "OrderValidationError",
    "StopLeg",
    "StopLegFailed",
    "StopLegSubmitted",
    "build_stop_ladder",
    "split_quantity",
    "stop_prices",
]
