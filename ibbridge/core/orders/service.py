from __future__ import annotations

import asyncio
import math
import os
from dataclasses import dataclass, replace
from typing import Optional, Type, TypeVar

from loguru import logger

from ibbridge.core.orders.events import (
    BracketCompleted,
    OrderFilled,
    OrderIntent,
    OrderSent,
    OrderStatusChanged,
    StopLegFailed,
    StopLegSubmitted,
)
from ibbridge.core.orders.ladder import STOP_LADDER_SIZE, build_stop_ladder
from ibbridge.core.orders.models import (
    BracketRequest,
    BracketResult,
    OrderSide,
    OrderSpec,
    OrderStatusUpdate,
    OrderType,
    StopLeg,
)
from ibbridge.core.ops.ports import EventBus
from ibbridge.core.session.errors import ResolutionError, SessionError
from ibbridge.core.session.manager import SessionManager
from ibbridge.core.session.models import ContractRef, normalize_symbol, select_contract
from ibbridge.core.session.ports import OrderStatusStream, TradingSession

_EnumT = TypeVar("_EnumT", bound=object)

NOT_CONNECTED_MESSAGE = "Not connected"
NOT_FILLED_MESSAGE = "Market order was not filled."


class OrderValidationError(ValueError):
    """Raised when a BracketRequest fails validation."""


@dataclass(frozen=True)
class BracketPolicy:
    fill_timeout_seconds: Optional[float] = 30.0
    stop_tif: str = "GTC"

    @classmethod
    def from_env(cls) -> "BracketPolicy":
        timeout = float(os.getenv("BRACKET_FILL_TIMEOUT_SECONDS", "30"))
        return cls(
            fill_timeout_seconds=timeout if timeout > 0 else None,
            stop_tif=os.getenv("BRACKET_STOP_TIF", "GTC").strip().upper() or "GTC",
        )


class BracketOrderService:
    """Market entry followed by a three-leg stop ladder."""

    def __init__(
        self,
        sessions: SessionManager,
        event_bus: Optional[EventBus] = None,
        *,
        policy: Optional[BracketPolicy] = None,
    ) -> None:
        self._sessions = sessions
        self._event_bus = event_bus
        self._policy = policy or BracketPolicy()

    async def submit_bracket(self, request: BracketRequest) -> BracketResult:
        try:
            normalized = self._normalize(request)
            self._validate(normalized)
        except OrderValidationError as exc:
            return self._finish(request, BracketResult(success=False, message=str(exc)))

        async with self._sessions.session() as session:
            if session is None:
                return self._finish(
                    normalized,
                    BracketResult(success=False, message=NOT_CONNECTED_MESSAGE),
                )
            try:
                result = await self._submit(session, normalized)
            except SessionError as exc:
                logger.error(f"Bracket for {normalized.ticker} failed: {exc}")
                result = BracketResult(success=False, message=f"Error placing order: {exc}")
            except Exception as exc:
                logger.exception(f"Unexpected error while submitting bracket for {normalized.ticker}")
                result = BracketResult(success=False, message=f"Error placing order: {exc}")
        return self._finish(normalized, result)

    async def _submit(self, session: TradingSession, request: BracketRequest) -> BracketResult:
        side = OrderSide(request.action)
        contract = await self._resolve(session, request.ticker)
        if contract is None:
            return BracketResult(
                success=False,
                message=f"Could not resolve contract for {request.ticker}",
            )

        entry = OrderSpec(
            symbol=request.ticker,
            qty=request.qty,
            side=side,
            order_type=OrderType.MARKET,
        )
        self._publish(OrderIntent.now(entry))
        fill = await self._wait_for_fill(session, contract, entry)
        if fill is None or not fill.is_filled:
            logger.warning(
                f"Market {side.value} {request.qty} {request.ticker} not filled "
                f"(status={fill.status if fill else None})"
            )
            return BracketResult(success=False, message=NOT_FILLED_MESSAGE)
        if fill.avg_fill_price is None or not math.isfinite(fill.avg_fill_price) or fill.avg_fill_price <= 0:
            return BracketResult(
                success=False,
                message="Market order filled without an average fill price; no stop orders submitted.",
            )
        avg_fill_price = fill.avg_fill_price
        self._publish(
            OrderFilled.now(
                entry,
                order_id=fill.order_id,
                filled_qty=fill.filled,
                avg_fill_price=avg_fill_price,
            )
        )

        ladder = build_stop_ladder(side, request.qty, request.stop_price, avg_fill_price)
        logger.info(
            f"{side.value} {request.qty} {request.ticker} filled @ {avg_fill_price:.2f}; "
            f"stop ladder {[(leg.price, leg.qty) for leg in ladder]}"
        )
        submitted = 0
        for index, leg in enumerate(ladder, start=1):
            if leg.qty <= 0:
                logger.info(f"Stop leg {index} for {request.ticker} has zero quantity; skipped")
                continue
            try:
                order_id = self._place_stop_leg(session, contract, side, leg)
            except SessionError as exc:
                self._publish(
                    StopLegFailed.now(
                        symbol=request.ticker,
                        leg_index=index,
                        leg=leg,
                        error=str(exc),
                        live_legs=submitted,
                    )
                )
                logger.error(f"Stop leg {index} for {request.ticker} failed: {exc}")
                return BracketResult(
                    success=False,
                    message=(
                        f"{side.value} {request.qty} shares of {request.ticker} at ${avg_fill_price:.2f}, "
                        f"but stop leg {index} of {STOP_LADDER_SIZE} failed: {exc}. "
                        f"{submitted} stop-loss order(s) remain live; no rollback performed."
                    ),
                    avg_fill_price=avg_fill_price,
                    legs_submitted=submitted,
                )
            submitted += 1
            self._publish(
                StopLegSubmitted.now(
                    symbol=request.ticker,
                    leg_index=index,
                    leg=leg,
                    order_id=order_id,
                )
            )

        return BracketResult(
            success=True,
            message=(
                f"{side.value} {request.qty} shares of {request.ticker} at ${avg_fill_price:.2f}. "
                f"{submitted} stop-loss orders submitted."
            ),
            avg_fill_price=avg_fill_price,
            legs_submitted=submitted,
        )

    async def _resolve(self, session: TradingSession, symbol: str) -> Optional[ContractRef]:
        try:
            candidates = await session.resolve_contract(symbol)
        except ResolutionError as exc:
            logger.warning(f"Error getting contract details for {symbol}: {exc}")
            return None
        return select_contract(candidates, symbol)

    async def _wait_for_fill(
        self,
        session: TradingSession,
        contract: ContractRef,
        entry: OrderSpec,
    ) -> Optional[OrderStatusUpdate]:
        stream = session.place_order(contract, entry)
        self._publish(OrderSent.now(entry, stream.order_id))
        timeout = self._policy.fill_timeout_seconds
        try:
            if timeout and timeout > 0:
                return await asyncio.wait_for(self._terminal_status(entry, stream), timeout=timeout)
            return await self._terminal_status(entry, stream)
        except asyncio.TimeoutError:
            logger.warning(f"Market order {stream.order_id} for {entry.symbol} not terminal after {timeout}s")
            return None

    async def _terminal_status(
        self,
        entry: OrderSpec,
        stream: OrderStatusStream,
    ) -> Optional[OrderStatusUpdate]:
        async for update in stream:
            self._publish(
                OrderStatusChanged.now(entry, order_id=update.order_id, status=update.status)
            )
            if update.is_terminal:
                return update
        return None

    def _place_stop_leg(
        self,
        session: TradingSession,
        contract: ContractRef,
        side: OrderSide,
        leg: StopLeg,
    ) -> Optional[int]:
        # Same action as the entry; see DESIGN.md before changing.
        spec = OrderSpec(
            symbol=contract.symbol,
            qty=leg.qty,
            side=side,
            order_type=OrderType.STOP,
            aux_price=leg.price,
            tif=self._policy.stop_tif,
        )
        stream = session.place_order(contract, spec)
        self._publish(OrderSent.now(spec, stream.order_id))
        return stream.order_id

    def _normalize(self, request: BracketRequest) -> BracketRequest:
        side = _coerce_enum(OrderSide, request.action, "action")
        ticker = normalize_symbol(request.ticker or "")
        return replace(request, ticker=ticker, action=side)

    def _validate(self, request: BracketRequest) -> None:
        if not request.ticker:
            raise OrderValidationError("ticker is required")
        if request.qty <= 0:
            raise OrderValidationError("qty must be greater than zero")
        if not math.isfinite(request.stop_price) or request.stop_price <= 0:
            raise OrderValidationError("stop_price must be greater than zero")

    def _finish(self, request: BracketRequest, result: BracketResult) -> BracketResult:
        self._publish(
            BracketCompleted.now(
                request,
                success=result.success,
                message=result.message,
                legs_submitted=result.legs_submitted,
            )
        )
        return result

    def _publish(self, event: object) -> None:
        if self._event_bus:
            self._event_bus.publish(event)


def _coerce_enum(enum_cls: Type[_EnumT], value: object, name: str) -> _EnumT:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        normalized = value.strip().upper()
        try:
            return enum_cls(normalized)  # type: ignore[arg-type]
        except ValueError:
            pass
    raise OrderValidationError(f"invalid {name}: {value}")
