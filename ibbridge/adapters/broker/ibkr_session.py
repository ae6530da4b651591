from __future__ import annotations

import asyncio
import math
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Optional, Union

from loguru import logger

from ibbridge.adapters.broker._ib_client import (
    IB,
    BarData,
    Contract,
    MarketOrder,
    Stock,
    StopOrder,
    TickData,
    Trade,
    UNSET_DOUBLE,
    parse_ib_datetime,
)
from ibbridge.adapters.broker.ibkr_connection import IBKRConnection, IBKRConnectionConfig, OpsSink
from ibbridge.core.account.models import AccountValue, PositionSnapshot
from ibbridge.core.market_data.models import Bar, Tick, TickKind
from ibbridge.core.ops.events import GatewayEndpoint
from ibbridge.core.orders.models import OrderSpec, OrderStatusUpdate, OrderType
from ibbridge.core.session.errors import (
    NotConnectedError,
    OrderSubmissionError,
    ResolutionError,
    SubscriptionReadError,
)
from ibbridge.core.session.models import ContractRef
from ibbridge.core.session.ports import AccountUpdate, SessionConnector, TradingSession

# bid, ask, last, high, low, close, open, mark and their delayed variants
_PRICE_TICK_TYPES = frozenset({1, 2, 4, 6, 7, 9, 14, 37, 66, 67, 68, 72, 73, 75, 76})
_SIZE_TICK_TYPES = frozenset({0, 3, 5, 8, 69, 70, 71, 74})
# Errors that end a market data request for good.
_FATAL_MARKET_DATA_CODES = frozenset({200, 300, 321, 354, 10089, 10090, 10091, 10168, 10186, 10197})


class IBKRSessionConnector(SessionConnector):
    def __init__(
        self,
        config: IBKRConnectionConfig,
        *,
        ib_factory: Callable[[], IB] = IB,
        ops_sink: Optional[OpsSink] = None,
    ) -> None:
        self._config = config
        self._ib_factory = ib_factory
        self._ops_sink = ops_sink

    async def connect(self, host: str, port: int, client_id: int) -> "IBKRTradingSession":
        connection = IBKRConnection(self._config, self._ib_factory(), ops_sink=self._ops_sink)
        await connection.connect(GatewayEndpoint(host=host, port=port, client_id=client_id))
        return IBKRTradingSession(connection)


class IBKRTradingSession(TradingSession):
    def __init__(self, connection: IBKRConnection) -> None:
        self._connection = connection
        self._ib: IB = connection.ib

    @property
    def connection(self) -> IBKRConnection:
        return self._connection

    def is_connected(self) -> bool:
        return self._ib.isConnected()

    def disconnect(self) -> None:
        self._connection.disconnect()

    async def account_updates(self, account: str = "") -> AsyncIterator[AccountUpdate]:
        self._require_connected()
        acct = account or self._default_account()
        try:
            await asyncio.wait_for(self._ib.reqAccountUpdatesAsync(acct), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise SubscriptionReadError(f"Timed out waiting for account updates for {acct or 'default account'}") from exc
        except ConnectionError as exc:
            raise SubscriptionReadError(str(exc)) from exc

        for value in self._ib.accountValues(acct):
            yield AccountValue(
                key=str(value.tag),
                value=str(value.value),
                currency=str(value.currency),
                account=str(value.account),
            )
        for item in self._ib.portfolio(acct):
            snapshot = _to_position_snapshot(item, acct, avg_cost_attr="averageCost")
            if snapshot:
                yield snapshot

    async def positions(self) -> AsyncIterator[PositionSnapshot]:
        self._require_connected()
        try:
            positions = await asyncio.wait_for(self._ib.reqPositionsAsync(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise SubscriptionReadError("Timed out waiting for IBKR positions snapshot") from exc
        except ConnectionError as exc:
            raise SubscriptionReadError(str(exc)) from exc
        for item in positions:
            snapshot = _to_position_snapshot(item, "", avg_cost_attr="avgCost")
            if snapshot:
                yield snapshot

    async def resolve_contract(self, symbol: str) -> list[ContractRef]:
        self._require_connected()
        try:
            details = await asyncio.wait_for(
                self._ib.reqContractDetailsAsync(Stock(symbol, "SMART", "USD")),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ResolutionError(f"Timed out resolving {symbol}") from exc
        except Exception as exc:
            raise ResolutionError(f"{type(exc).__name__}: {exc}") from exc
        return [
            _to_contract_ref(detail.contract)
            for detail in details or []
            if getattr(detail, "contract", None) is not None
        ]

    def subscribe_quote(self, contract: ContractRef) -> "IBKRQuoteSubscription":
        return IBKRQuoteSubscription(self._ib, contract)

    async def historical_bars(
        self,
        contract: ContractRef,
        *,
        duration: str = "1 D",
        bar_size: str = "1 min",
        use_rth: bool = True,
    ) -> list[Bar]:
        self._require_connected()
        try:
            bars = await self._ib.reqHistoricalDataAsync(
                _ib_contract(contract),
                endDateTime="",
                durationStr=duration,
                barSizeSetting=bar_size,
                whatToShow="TRADES",
                useRTH=use_rth,
                formatDate=2,
            )
        except Exception as exc:
            raise SubscriptionReadError(f"Historical data request failed: {exc}") from exc
        return [_to_bar(bar) for bar in bars or []]

    def place_order(self, contract: ContractRef, spec: OrderSpec) -> "IBKROrderStatusStream":
        if not self._ib.isConnected():
            raise OrderSubmissionError("IBKR is not connected")
        order = _to_ib_order(spec)
        try:
            trade = self._ib.placeOrder(_ib_contract(contract), order)
        except Exception as exc:
            raise OrderSubmissionError(f"{type(exc).__name__}: {exc}") from exc
        logger.info(
            f"{spec.side.value} {spec.symbol} x{spec.qty} {spec.order_type.value}"
            f"{f' @ {spec.aux_price}' if spec.aux_price is not None else ''} "
            f"(orderId={trade.order.orderId})"
        )
        return IBKROrderStatusStream(self._ib, trade)

    @property
    def _timeout(self) -> float:
        return max(self._connection.config.timeout, 1.0)

    def _require_connected(self) -> None:
        if not self._ib.isConnected():
            raise NotConnectedError("IBKR is not connected")

    def _default_account(self) -> str:
        accounts = [acct for acct in self._ib.managedAccounts() if acct]
        return accounts[0] if accounts else ""


class IBKRQuoteSubscription:
    """Streaming market data for one contract, released by cancel() or on exit."""

    def __init__(self, ib: IB, contract: ContractRef) -> None:
        self._ib = ib
        self._contract = contract
        self._ib_contract = _ib_contract(contract)
        self._queue: asyncio.Queue[Union[Tick, SubscriptionReadError]] = asyncio.Queue()
        self._ticker = None
        self._cancelled = False

    async def __aenter__(self) -> "IBKRQuoteSubscription":
        if not self._ib.isConnected():
            raise SubscriptionReadError("IBKR is not connected")
        try:
            self._ticker = self._ib.reqMktData(self._ib_contract, "", False, False)
        except Exception as exc:
            raise SubscriptionReadError(f"Market data request failed: {exc}") from exc
        self._ticker.updateEvent += self._on_update
        self._ib.errorEvent += self._on_error
        self._ib.disconnectedEvent += self._on_disconnect
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cancel()

    async def next_tick(self, *, timeout: Optional[float] = None) -> Optional[Tick]:
        if self._ticker is None or self._cancelled:
            raise SubscriptionReadError("Quote subscription is not active")
        try:
            if timeout and timeout > 0:
                item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
            else:
                item = await self._queue.get()
        except asyncio.TimeoutError:
            return None
        if isinstance(item, SubscriptionReadError):
            # Keep the stream failed for any later reads.
            self._queue.put_nowait(item)
            raise item
        return item

    async def cancel(self) -> None:
        if self._ticker is None or self._cancelled:
            return
        self._cancelled = True
        self._ticker.updateEvent -= self._on_update
        self._ib.errorEvent -= self._on_error
        self._ib.disconnectedEvent -= self._on_disconnect
        if not self._ib.isConnected():
            return
        try:
            self._ib.cancelMktData(self._ib_contract)
        except Exception as exc:
            logger.warning(f"cancelMktData for {self._contract.symbol} failed: {exc}")

    def _on_update(self, ticker: object) -> None:
        for tick in getattr(ticker, "ticks", None) or []:
            self._queue.put_nowait(_to_tick(tick))

    def _on_error(self, req_id: int, code: int, message: str, contract: object = None, *_: object) -> None:
        if code not in _FATAL_MARKET_DATA_CODES:
            return
        con_id = getattr(contract, "conId", None)
        if contract is None or (self._contract.con_id and con_id != self._contract.con_id):
            return
        self._queue.put_nowait(SubscriptionReadError(f"IBKR error {code}: {message}"))

    def _on_disconnect(self) -> None:
        self._queue.put_nowait(SubscriptionReadError("IBKR disconnected"))


class IBKROrderStatusStream:
    def __init__(self, ib: IB, trade: Trade) -> None:
        self._ib = ib
        self._trade = trade

    @property
    def order_id(self) -> Optional[int]:
        return getattr(self._trade.order, "orderId", None) or None

    def __aiter__(self) -> AsyncIterator[OrderStatusUpdate]:
        return self._updates()

    async def _updates(self) -> AsyncIterator[OrderStatusUpdate]:
        queue: asyncio.Queue[Optional[OrderStatusUpdate]] = asyncio.Queue()

        def _on_status(trade: Trade) -> None:
            queue.put_nowait(_to_status_update(trade))

        def _on_disconnect() -> None:
            queue.put_nowait(None)

        self._trade.statusEvent += _on_status
        self._ib.disconnectedEvent += _on_disconnect
        try:
            current = _to_status_update(self._trade)
            yield current
            if current.is_terminal:
                return
            while True:
                update = await queue.get()
                if update is None:
                    raise SubscriptionReadError("IBKR disconnected while waiting for order status")
                yield update
                if update.is_terminal:
                    return
        finally:
            self._trade.statusEvent -= _on_status
            self._ib.disconnectedEvent -= _on_disconnect


def _ib_contract(contract: ContractRef) -> Contract:
    raw = contract.raw
    if isinstance(raw, Contract):
        return raw
    ib_contract = Stock(contract.symbol, contract.exchange, contract.currency)
    if contract.con_id:
        ib_contract.conId = contract.con_id
    return ib_contract


def _to_contract_ref(contract: Contract) -> ContractRef:
    return ContractRef(
        symbol=str(getattr(contract, "symbol", "") or ""),
        con_id=_maybe_int(getattr(contract, "conId", None)),
        sec_type=str(getattr(contract, "secType", "") or "STK"),
        exchange=str(getattr(contract, "exchange", "") or "SMART"),
        currency=str(getattr(contract, "currency", "") or "USD"),
        raw=contract,
    )


def _to_ib_order(spec: OrderSpec) -> object:
    if spec.order_type == OrderType.MARKET:
        return MarketOrder(spec.side.value, spec.qty, tif=spec.tif)
    if spec.order_type == OrderType.STOP:
        if spec.aux_price is None:
            raise OrderSubmissionError("aux_price is required for stop orders")
        return StopOrder(spec.side.value, spec.qty, spec.aux_price, tif=spec.tif)
    raise OrderSubmissionError(f"Unsupported order type: {spec.order_type}")


def _to_tick(tick: TickData) -> Tick:
    tick_type = _maybe_int(getattr(tick, "tickType", None))
    timestamp = parse_ib_datetime(getattr(tick, "time", None) or datetime.now(timezone.utc))
    if tick_type in _PRICE_TICK_TYPES:
        kind, value = TickKind.PRICE, getattr(tick, "price", None)
    elif tick_type in _SIZE_TICK_TYPES:
        kind, value = TickKind.SIZE, getattr(tick, "size", None)
    else:
        kind, value = TickKind.OTHER, getattr(tick, "price", None)
    return Tick(kind=kind, value=_clean_float(value), timestamp=timestamp, tick_type=tick_type)


def _to_status_update(trade: Trade) -> OrderStatusUpdate:
    status = trade.orderStatus
    return OrderStatusUpdate(
        order_id=getattr(trade.order, "orderId", None) or None,
        status=getattr(status, "status", None) or None,
        filled=_clean_float(getattr(status, "filled", None)),
        remaining=_clean_float(getattr(status, "remaining", None)),
        avg_fill_price=_maybe_price(getattr(status, "avgFillPrice", None)),
    )


def _to_bar(bar: BarData) -> Bar:
    volume = _maybe_float(getattr(bar, "volume", None))
    return Bar(
        timestamp=parse_ib_datetime(bar.date),
        open=float(bar.open),
        high=float(bar.high),
        low=float(bar.low),
        close=float(bar.close),
        volume=volume if volume is not None and volume >= 0 else None,
    )


def _to_position_snapshot(item: object, account_hint: str, *, avg_cost_attr: str) -> Optional[PositionSnapshot]:
    contract = getattr(item, "contract", None)
    if contract is None:
        return None
    symbol = getattr(contract, "symbol", None) or getattr(contract, "localSymbol", None) or ""
    return PositionSnapshot(
        account=str(getattr(item, "account", None) or account_hint),
        symbol=str(symbol),
        sec_type=str(getattr(contract, "secType", None) or ""),
        exchange=str(getattr(contract, "exchange", None) or getattr(contract, "primaryExchange", None) or ""),
        currency=str(getattr(contract, "currency", None) or ""),
        qty=_maybe_float(getattr(item, "position", None)) or 0.0,
        avg_cost=_maybe_float(getattr(item, avg_cost_attr, None)),
        con_id=_maybe_int(getattr(contract, "conId", None)),
    )


def _maybe_float(value: object) -> Optional[float]:
    if value is None:
        return None
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(as_float) or as_float == UNSET_DOUBLE:
        return None
    return as_float


def _maybe_price(value: object) -> Optional[float]:
    price = _maybe_float(value)
    if price is None or price <= 0:
        return None
    return price


def _clean_float(value: object) -> float:
    as_float = _maybe_float(value)
    return as_float if as_float is not None else 0.0


def _maybe_int(value: object) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
