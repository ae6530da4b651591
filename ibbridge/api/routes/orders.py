from fastapi import APIRouter, Depends, Query

from ibbridge.api.deps import get_bracket_service
from ibbridge.core.orders.models import BracketRequest
from ibbridge.core.orders.service import BracketOrderService

router = APIRouter(tags=["Orders"])


@router.post("/order", response_model=tuple[bool, str])
async def order(
    ticker: str = Query(..., description="The ticker symbol to trade"),
    qty: int = Query(..., description="Quantity of shares to order"),
    stop_price: float = Query(..., description="Stop price for the order"),
    entry_price: float = Query(..., description="Entry price for the order"),
    action: str = Query(..., description="Action type: BUY or SELL"),
    service: BracketOrderService = Depends(get_bracket_service),
) -> tuple[bool, str]:
    """
    Market entry followed by three stop orders at 2/3, 1/3 and 0 of the
    distance between the fill and stop_price. Logical failures are
    returned as [false, message] with status 200.
    """
    result = await service.submit_bracket(
        BracketRequest(
            ticker=ticker,
            qty=qty,
            stop_price=stop_price,
            entry_price=entry_price,
            action=action,
        )
    )
    return result.as_tuple()
