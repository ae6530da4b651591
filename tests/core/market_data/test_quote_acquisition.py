from __future__ import annotations

import asyncio
import math
from datetime import datetime, timezone
from typing import Optional, Union

from ibbridge.core.market_data.events import QuoteAcquired, QuoteUnavailable
from ibbridge.core.market_data.models import Tick, TickKind
from ibbridge.core.market_data.quotes import QuotePolicy, acquire_quote
from ibbridge.core.market_data.service import MarketDataService
from ibbridge.core.session.errors import ResolutionError, SubscriptionReadError
from ibbridge.core.session.manager import SessionManager
from ibbridge.core.session.models import ContractRef

Script = list[Union[Tick, None, Exception]]


def _price(value: float) -> Tick:
    return Tick(kind=TickKind.PRICE, value=value, timestamp=datetime.now(timezone.utc), tick_type=4)


def _size(value: float) -> Tick:
    return Tick(kind=TickKind.SIZE, value=value, timestamp=datetime.now(timezone.utc), tick_type=5)


class _FakeSubscription:
    def __init__(self, script: Script, *, enter_error: Optional[Exception] = None) -> None:
        self._script = list(script)
        self._enter_error = enter_error
        self.reads = 0
        self.cancel_calls = 0
        self.timeouts: list[Optional[float]] = []

    async def __aenter__(self) -> "_FakeSubscription":
        if self._enter_error is not None:
            raise self._enter_error
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cancel()

    async def next_tick(self, *, timeout: Optional[float] = None) -> Optional[Tick]:
        self.reads += 1
        self.timeouts.append(timeout)
        if not self._script:
            return None
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def cancel(self) -> None:
        self.cancel_calls += 1


class _StalledSubscription(_FakeSubscription):
    """Delivers nothing until the session drops, then fails the read."""

    def __init__(self, alive) -> None:
        super().__init__([])
        self._alive = alive

    async def next_tick(self, *, timeout: Optional[float] = None) -> Optional[Tick]:
        self.reads += 1
        while self._alive():
            await asyncio.sleep(0.01)
        raise SubscriptionReadError("IBKR disconnected")


class _FakeSession:
    def __init__(
        self,
        subscription: Optional[_FakeSubscription] = None,
        *,
        contracts: Optional[list[ContractRef]] = None,
        resolve_error: bool = False,
        connected: bool = True,
    ) -> None:
        self.subscription = subscription or _FakeSubscription([])
        self.subscribed: list[ContractRef] = []
        self._contracts = contracts
        self._resolve_error = resolve_error
        self._connected = connected

    def is_connected(self) -> bool:
        return self._connected

    def disconnect(self) -> None:
        self._connected = False

    async def resolve_contract(self, symbol: str) -> list[ContractRef]:
        if self._resolve_error:
            raise ResolutionError("timeout")
        if self._contracts is not None:
            return self._contracts
        return [ContractRef(symbol=symbol, con_id=1)]

    def subscribe_quote(self, contract: ContractRef) -> _FakeSubscription:
        self.subscribed.append(contract)
        return self.subscription


class _FakeConnector:
    def __init__(self, session: _FakeSession) -> None:
        self._session = session

    async def connect(self, host: str, port: int, client_id: int) -> _FakeSession:
        return self._session


class _SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class _RecordingBus:
    def __init__(self) -> None:
        self.events: list[object] = []

    def publish(self, event: object) -> None:
        self.events.append(event)

    def subscribe(self, event_type, handler):
        raise NotImplementedError


def _run(coro):
    return asyncio.run(coro)


def test_quote_returns_first_price_and_stops_reading() -> None:
    subscription = _FakeSubscription([None, _size(100), _price(101.5), _price(999.0)])
    session = _FakeSession(subscription)
    sleep = _SleepRecorder()

    price = _run(acquire_quote(session, "aapl", sleep=sleep))

    assert price == 101.5
    assert subscription.reads == 3
    assert sleep.calls == [1.0, 0.5, 0.5]
    assert subscription.cancel_calls == 1
    assert session.subscribed[0].symbol == "AAPL"


def test_quote_exhaustion_reads_eleven_times() -> None:
    subscription = _FakeSubscription([])
    sleep = _SleepRecorder()
    bus = _RecordingBus()

    price = _run(acquire_quote(_FakeSession(subscription), "AAPL", sleep=sleep, event_bus=bus))

    assert price is None
    assert subscription.reads == 11
    assert sleep.calls == [1.0] + [0.5] * 10
    assert subscription.cancel_calls == 1
    assert isinstance(bus.events[-1], QuoteUnavailable)
    assert bus.events[-1].reason == "exhausted"
    assert bus.events[-1].attempts == 11


def test_quote_final_read_without_delay_can_succeed() -> None:
    subscription = _FakeSubscription([None] * 10 + [_price(42.0)])
    sleep = _SleepRecorder()

    price = _run(acquire_quote(_FakeSession(subscription), "AAPL", sleep=sleep))

    assert price == 42.0
    assert subscription.reads == 11
    assert len(sleep.calls) == 11


def test_quote_ignores_non_positive_and_non_finite_prices() -> None:
    subscription = _FakeSubscription([_price(0.0), _price(-1.0), _price(math.nan), _price(5.25)])

    price = _run(acquire_quote(_FakeSession(subscription), "AAPL", sleep=_SleepRecorder()))

    assert price == 5.25
    assert subscription.reads == 4


def test_quote_without_exact_match_never_subscribes() -> None:
    session = _FakeSession(contracts=[ContractRef(symbol="AAPLX"), ContractRef(symbol="AAP")])
    sleep = _SleepRecorder()

    assert _run(acquire_quote(session, "AAPL", sleep=sleep)) is None
    assert session.subscribed == []
    assert sleep.calls == []


def test_quote_resolution_error_returns_none() -> None:
    session = _FakeSession(resolve_error=True)
    bus = _RecordingBus()

    assert _run(acquire_quote(session, "AAPL", sleep=_SleepRecorder(), event_bus=bus)) is None
    assert session.subscribed == []
    assert bus.events[-1].reason == "resolution_failed"


def test_quote_read_error_stops_polling_and_cancels() -> None:
    subscription = _FakeSubscription([None, SubscriptionReadError("IBKR disconnected"), _price(10.0)])
    bus = _RecordingBus()

    price = _run(acquire_quote(_FakeSession(subscription), "AAPL", sleep=_SleepRecorder(), event_bus=bus))

    assert price is None
    assert subscription.reads == 2
    assert subscription.cancel_calls == 1
    assert bus.events[-1].reason == "read_failed"
    assert bus.events[-1].error == "IBKR disconnected"


def test_quote_subscription_start_failure_returns_none() -> None:
    subscription = _FakeSubscription([], enter_error=SubscriptionReadError("market data request failed"))

    assert _run(acquire_quote(_FakeSession(subscription), "AAPL", sleep=_SleepRecorder())) is None
    assert subscription.reads == 0


def test_quote_not_connected() -> None:
    sleep = _SleepRecorder()

    assert _run(acquire_quote(None, "AAPL", sleep=sleep)) is None
    assert _run(acquire_quote(_FakeSession(connected=False), "AAPL", sleep=sleep)) is None
    assert sleep.calls == []


def test_quote_policy_controls_timing() -> None:
    subscription = _FakeSubscription([])
    sleep = _SleepRecorder()
    policy = QuotePolicy(warmup_seconds=0.0, attempts=2, retry_delay_seconds=0.1, tick_timeout_seconds=0.25)
    bus = _RecordingBus()

    _run(acquire_quote(_FakeSession(subscription), "AAPL", policy=policy, sleep=sleep, event_bus=bus))

    assert sleep.calls == [0.0, 0.1, 0.1]
    assert subscription.reads == 3
    assert subscription.timeouts == [0.25, 0.25, 0.25]


def test_quote_publishes_acquired_event() -> None:
    bus = _RecordingBus()

    _run(acquire_quote(_FakeSession(_FakeSubscription([_price(7.0)])), "msft", sleep=_SleepRecorder(), event_bus=bus))

    assert len(bus.events) == 1
    event = bus.events[0]
    assert isinstance(event, QuoteAcquired)
    assert (event.symbol, event.price, event.attempts) == ("MSFT", 7.0, 1)


def test_quote_disconnect_fails_pending_read() -> None:
    async def scenario() -> None:
        session = _FakeSession()
        subscription = _StalledSubscription(session.is_connected)
        session.subscription = subscription
        manager = SessionManager(_FakeConnector(session))
        assert await manager.connect("127.0.0.1", 7497, 1)
        service = MarketDataService(manager, sleep=_SleepRecorder())

        task = asyncio.create_task(service.acquire_quote("AAPL"))
        while subscription.reads == 0:
            await asyncio.sleep(0.01)
        await asyncio.wait_for(manager.disconnect(), timeout=1.0)

        assert await asyncio.wait_for(task, timeout=1.0) is None
        assert subscription.cancel_calls == 1

    _run(scenario())
