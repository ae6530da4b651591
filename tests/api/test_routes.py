from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi.testclient import TestClient

from ibbridge.api.main import create_app
from ibbridge.core.account.models import AccountValue
from ibbridge.core.market_data.models import Bar, Tick, TickKind
from ibbridge.core.market_data.quotes import QuotePolicy
from ibbridge.core.orders.models import OrderSpec, OrderStatusUpdate, OrderType
from ibbridge.core.orders.service import BracketPolicy
from ibbridge.core.session.manager import SessionManager
from ibbridge.core.session.models import ContractRef


class _FakeSubscription:
    async def __aenter__(self) -> "_FakeSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cancel()

    async def next_tick(self, *, timeout: Optional[float] = None) -> Optional[Tick]:
        return Tick(kind=TickKind.PRICE, value=187.42, timestamp=datetime.now(timezone.utc), tick_type=4)

    async def cancel(self) -> None:
        return None


class _FakeStream:
    def __init__(self, order_id: int, updates: list[OrderStatusUpdate]) -> None:
        self._order_id = order_id
        self._updates = updates

    @property
    def order_id(self) -> Optional[int]:
        return self._order_id

    async def __aiter__(self):
        for update in self._updates:
            yield update


class _FakeSession:
    def __init__(self) -> None:
        self.connected = True
        self.placed: list[OrderSpec] = []
        self.held: list[object] = []

    def is_connected(self) -> bool:
        return self.connected

    def disconnect(self) -> None:
        self.connected = False

    async def account_updates(self, account: str = ""):
        yield AccountValue(key="NetLiquidation", value="1000.50", currency="USD", account="DU1")

    async def positions(self):
        for position in self.held:
            yield position

    async def resolve_contract(self, symbol: str) -> list[ContractRef]:
        return [ContractRef(symbol=symbol, con_id=1)]

    def subscribe_quote(self, contract: ContractRef) -> _FakeSubscription:
        return _FakeSubscription()

    async def historical_bars(self, contract, *, duration="1 D", bar_size="1 min", use_rth=True) -> list[Bar]:
        ts = datetime(2024, 5, 1, 13, 30, tzinfo=timezone.utc)
        return [
            Bar(timestamp=ts, open=10.0, high=10.5, low=9.8, close=10.2),
            Bar(timestamp=ts, open=10.2, high=11.0, low=10.1, close=10.9),
        ]

    def place_order(self, contract: ContractRef, spec: OrderSpec) -> _FakeStream:
        self.placed.append(spec)
        order_id = len(self.placed)
        if spec.order_type == OrderType.MARKET:
            return _FakeStream(order_id, [OrderStatusUpdate(order_id, "Filled", filled=spec.qty, avg_fill_price=11.0)])
        return _FakeStream(order_id, [])


class _FakeConnector:
    def __init__(self, session: _FakeSession, *, fail: bool = False) -> None:
        self.session = session
        self._fail = fail

    async def connect(self, host: str, port: int, client_id: int) -> _FakeSession:
        if self._fail:
            raise ConnectionRefusedError("connection refused")
        return self.session


def _client(*, fail: bool = False) -> tuple[TestClient, _FakeSession]:
    session = _FakeSession()
    app = create_app(
        SessionManager(_FakeConnector(session, fail=fail)),
        quote_policy=QuotePolicy(warmup_seconds=0.0, retry_delay_seconds=0.0),
        bracket_policy=BracketPolicy(fill_timeout_seconds=1.0),
    )
    return TestClient(app), session


def _connect(client: TestClient) -> bool:
    response = client.post("/connect", params={"address": "127.0.0.1", "port": 7497, "client_id": 1})
    assert response.status_code == 200
    return response.json()


def test_connection_lifecycle() -> None:
    client, session = _client()
    with client:
        assert client.get("/is_connected").json() is False
        assert _connect(client) is True
        assert client.get("/is_connected").json() is True

        response = client.post("/disconnect")
        assert response.status_code == 200
        assert response.json() is None
        assert client.get("/is_connected").json() is False
        assert session.connected is False


def test_connect_failure_is_false() -> None:
    client, _ = _client(fail=True)
    with client:
        assert _connect(client) is False


def test_data_routes_when_not_connected() -> None:
    client, _ = _client()
    with client:
        assert client.get("/get_account_values").json() is None
        assert client.get("/get_positions").json() is None
        assert client.get("/market_data", params={"ticker": "AAPL"}).json() is None
        assert client.get("/get_lod_hod", params={"ticker": "AAPL"}).json() == [0.0, 0.0]


def test_data_routes_when_connected() -> None:
    client, _ = _client()
    with client:
        _connect(client)
        assert client.get("/get_account_values").json() == [
            "key: NetLiquidation, value: 1000.50, currency: USD, account: DU1"
        ]
        assert client.get("/get_positions").json() == []
        assert client.get("/market_data", params={"ticker": "aapl"}).json() == 187.42
        assert client.get("/get_lod_hod", params={"ticker": "AAPL"}).json() == [9.8, 11.0]


def test_order_route() -> None:
    client, session = _client()
    params = {"ticker": "AAPL", "qty": 100, "stop_price": 10.0, "entry_price": 11.0, "action": "BUY"}
    with client:
        assert client.post("/order", params=params).json() == [False, "Not connected"]
        _connect(client)
        response = client.post("/order", params=params)

    assert response.status_code == 200
    assert response.json() == [True, "BUY 100 shares of AAPL at $11.00. 3 stop-loss orders submitted."]
    assert len(session.placed) == 4


def test_order_route_invalid_action_is_logical_failure() -> None:
    client, _ = _client()
    params = {"ticker": "AAPL", "qty": 10, "stop_price": 10.0, "entry_price": 11.0, "action": "HOLD"}
    with client:
        response = client.post("/order", params=params)

    assert response.status_code == 200
    assert response.json() == [False, "invalid action: HOLD"]


def test_missing_query_parameter_is_rejected() -> None:
    client, _ = _client()
    with client:
        assert client.get("/market_data").status_code == 422


def test_docs_and_health() -> None:
    client, _ = _client()
    with client:
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/swagger-ui").status_code == 200
        spec = client.get("/api-docs/openapi.json").json()

    for path in ("/connect", "/is_connected", "/disconnect", "/get_account_values", "/get_positions", "/market_data", "/get_lod_hod", "/order"):
        assert path in spec["paths"]
