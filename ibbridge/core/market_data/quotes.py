from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from loguru import logger

from ibbridge.core.market_data.events import QuoteAcquired, QuoteUnavailable
from ibbridge.core.ops.ports import EventBus
from ibbridge.core.session.errors import ResolutionError, SubscriptionReadError
from ibbridge.core.session.models import normalize_symbol, select_contract
from ibbridge.core.session.ports import QuoteSubscription, TradingSession

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class QuotePolicy:
    warmup_seconds: float = 1.0
    attempts: int = 10
    retry_delay_seconds: float = 0.5
    tick_timeout_seconds: float = 2.0

    @classmethod
    def from_env(cls) -> "QuotePolicy":
        return cls(
            warmup_seconds=float(os.getenv("QUOTE_WARMUP_SECONDS", "1.0")),
            attempts=int(os.getenv("QUOTE_ATTEMPTS", "10")),
            retry_delay_seconds=float(os.getenv("QUOTE_RETRY_DELAY_SECONDS", "0.5")),
            tick_timeout_seconds=float(os.getenv("QUOTE_TICK_TIMEOUT_SECONDS", "2.0")),
        )


@dataclass(frozen=True)
class _PollOutcome:
    price: Optional[float]
    attempts: int
    error: Optional[str] = None


async def acquire_quote(
    session: Optional[TradingSession],
    symbol: str,
    *,
    policy: QuotePolicy = QuotePolicy(),
    sleep: Sleep = asyncio.sleep,
    event_bus: Optional[EventBus] = None,
) -> Optional[float]:
    """Return the first positive price streamed for the symbol, or None.

    The subscription is released on every exit path.
    """
    symbol = normalize_symbol(symbol)
    if session is None or not session.is_connected():
        logger.warning(f"Market data for {symbol} requested while not connected")
        _publish(event_bus, QuoteUnavailable.now(symbol=symbol, reason="not_connected", attempts=0))
        return None

    try:
        candidates = await session.resolve_contract(symbol)
    except ResolutionError as exc:
        logger.warning(f"Error getting contract details for {symbol}: {exc}")
        _publish(
            event_bus,
            QuoteUnavailable.now(symbol=symbol, reason="resolution_failed", attempts=0, error=str(exc)),
        )
        return None
    contract = select_contract(candidates, symbol)
    if contract is None:
        logger.warning(f"No contract matches {symbol} exactly ({len(candidates)} candidates)")
        _publish(event_bus, QuoteUnavailable.now(symbol=symbol, reason="no_matching_contract", attempts=0))
        return None

    try:
        async with session.subscribe_quote(contract) as subscription:
            await sleep(policy.warmup_seconds)
            outcome = await _poll_for_price(subscription, symbol, policy=policy, sleep=sleep)
    except SubscriptionReadError as exc:
        outcome = _PollOutcome(price=None, attempts=0, error=str(exc))

    if outcome.price is not None:
        _publish(
            event_bus,
            QuoteAcquired.now(symbol=symbol, price=outcome.price, attempts=outcome.attempts),
        )
        return outcome.price

    if outcome.error:
        logger.warning(f"Quote stream for {symbol} failed: {outcome.error}")
        reason = "read_failed"
    else:
        logger.info(f"No price for {symbol} after {outcome.attempts} attempts")
        reason = "exhausted"
    _publish(
        event_bus,
        QuoteUnavailable.now(symbol=symbol, reason=reason, attempts=outcome.attempts, error=outcome.error),
    )
    return None


async def _poll_for_price(
    subscription: QuoteSubscription,
    symbol: str,
    *,
    policy: QuotePolicy,
    sleep: Sleep,
) -> _PollOutcome:
    attempts = 0
    try:
        for _ in range(policy.attempts):
            attempts += 1
            price = await _read_price(subscription, symbol, timeout=policy.tick_timeout_seconds)
            if price is not None:
                return _PollOutcome(price=price, attempts=attempts)
            await sleep(policy.retry_delay_seconds)
        attempts += 1
        price = await _read_price(subscription, symbol, timeout=policy.tick_timeout_seconds)
        if price is not None:
            return _PollOutcome(price=price, attempts=attempts)
    except SubscriptionReadError as exc:
        return _PollOutcome(price=None, attempts=attempts, error=str(exc))
    return _PollOutcome(price=None, attempts=attempts)


async def _read_price(
    subscription: QuoteSubscription,
    symbol: str,
    *,
    timeout: float,
) -> Optional[float]:
    tick = await subscription.next_tick(timeout=timeout)
    if tick is None:
        logger.debug(f"No tick for {symbol} within {timeout}s")
        return None
    price = tick.usable_price
    if price is None:
        logger.debug(f"Other tick data received for {symbol}: {tick.kind.value} {tick.value}")
        return None
    logger.debug(f"Current price for {symbol}: {price}")
    return price


def _publish(event_bus: Optional[EventBus], event: object) -> None:
    if event_bus:
        event_bus.publish(event)
