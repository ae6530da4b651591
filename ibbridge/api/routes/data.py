from typing import Optional

from fastapi import APIRouter, Depends, Query

from ibbridge.api.deps import get_account_service, get_market_data_service
from ibbridge.core.account.service import AccountService
from ibbridge.core.market_data.service import MarketDataService

router = APIRouter(tags=["Data"])


@router.get("/get_account_values", response_model=Optional[list[str]])
async def get_account_values(
    service: AccountService = Depends(get_account_service),
) -> Optional[list[str]]:
    return await service.account_values()


@router.get("/get_positions", response_model=Optional[list[str]])
async def get_positions(
    service: AccountService = Depends(get_account_service),
) -> Optional[list[str]]:
    return await service.positions()


@router.get("/market_data", response_model=Optional[float])
async def get_market_data(
    ticker: str = Query(..., min_length=1, description="The ticker symbol for the market data"),
    service: MarketDataService = Depends(get_market_data_service),
) -> Optional[float]:
    """Current price for the ticker, or null when none arrives in time."""
    return await service.acquire_quote(ticker)


@router.get("/get_lod_hod", response_model=tuple[float, float])
async def get_lod_hod(
    ticker: str = Query(..., min_length=1, description="The ticker symbol for the market data"),
    service: MarketDataService = Depends(get_market_data_service),
) -> tuple[float, float]:
    """Lowest and highest price of the day."""
    day_range = await service.day_range(ticker)
    return day_range.as_tuple()
