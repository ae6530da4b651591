from __future__ import annotations

import asyncio
from typing import Optional

from loguru import logger

from ibbridge.core.market_data.models import Bar, DayRange
from ibbridge.core.market_data.quotes import QuotePolicy, Sleep, acquire_quote
from ibbridge.core.ops.ports import EventBus
from ibbridge.core.session.errors import SessionError
from ibbridge.core.session.manager import SessionManager
from ibbridge.core.session.models import normalize_symbol, select_contract


class MarketDataService:
    def __init__(
        self,
        sessions: SessionManager,
        *,
        quote_policy: Optional[QuotePolicy] = None,
        event_bus: Optional[EventBus] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._sessions = sessions
        self._quote_policy = quote_policy or QuotePolicy()
        self._event_bus = event_bus
        self._sleep = sleep

    async def acquire_quote(self, symbol: str) -> Optional[float]:
        async with self._sessions.session() as session:
            return await acquire_quote(
                session,
                symbol,
                policy=self._quote_policy,
                sleep=self._sleep,
                event_bus=self._event_bus,
            )

    async def day_range(self, symbol: str) -> DayRange:
        """Lowest low and highest high of today's regular-hours 1 minute bars."""
        symbol = normalize_symbol(symbol)
        async with self._sessions.session() as session:
            if session is None:
                logger.warning(f"Day range for {symbol} requested while not connected")
                return DayRange.empty()
            try:
                contract = select_contract(await session.resolve_contract(symbol), symbol)
                if contract is None:
                    logger.warning(f"No contract matches {symbol} exactly")
                    return DayRange.empty()
                bars = await session.historical_bars(
                    contract,
                    duration="1 D",
                    bar_size="1 min",
                    use_rth=True,
                )
            except SessionError as exc:
                logger.warning(f"Historical bars for {symbol} failed: {exc}")
                return DayRange.empty()
        return day_range_from_bars(bars)


def day_range_from_bars(bars: list[Bar]) -> DayRange:
    if not bars:
        return DayRange.empty()
    return DayRange(
        low=min(bar.low for bar in bars),
        high=max(bar.high for bar in bars),
    )
