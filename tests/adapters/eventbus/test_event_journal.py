from __future__ import annotations

import asyncio
import json

from ibbridge.adapters.eventbus.in_process import InProcessEventBus
from ibbridge.adapters.logging.jsonl_logger import JsonlEventLogger
from ibbridge.core.market_data.events import QuoteAcquired
from ibbridge.core.orders.events import OrderSent
from ibbridge.core.orders.models import OrderSide, OrderSpec, OrderType


def test_bus_dispatches_by_type_without_loop() -> None:
    bus = InProcessEventBus()
    received: list[object] = []
    unsubscribe = bus.subscribe(QuoteAcquired, received.append)

    event = QuoteAcquired.now(symbol="AAPL", price=187.5, attempts=2)
    bus.publish(event)
    bus.publish(OrderSent.now(OrderSpec(symbol="AAPL", qty=1, side=OrderSide.BUY), 3))
    unsubscribe()
    bus.publish(event)

    assert received == [event]


def test_bus_isolates_failing_handlers_inside_loop() -> None:
    bus = InProcessEventBus()
    received: list[object] = []

    def _broken(event: object) -> None:
        raise RuntimeError("handler failed")

    async def _async_handler(event: object) -> None:
        received.append(("async", event))

    bus.subscribe(object, _broken)
    bus.subscribe(object, received.append)
    bus.subscribe(object, _async_handler)

    async def scenario() -> None:
        bus.publish("tick")
        await asyncio.sleep(0)
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert received == ["tick", ("async", "tick")]


def test_journal_writes_one_json_object_per_event(tmp_path) -> None:
    path = tmp_path / "journal" / "events.jsonl"
    journal = JsonlEventLogger(str(path))
    spec = OrderSpec(
        symbol="AAPL",
        qty=33,
        side=OrderSide.SELL,
        order_type=OrderType.STOP,
        aux_price=101.0,
        tif="GTC",
    )

    journal.handle(OrderSent.now(spec, 12))
    journal.handle(QuoteAcquired.now(symbol="AAPL", price=100.5, attempts=1))

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["event_type"] for line in lines] == ["OrderSent", "QuoteAcquired"]
    assert lines[0]["event"]["spec"] == {
        "symbol": "AAPL",
        "qty": 33,
        "side": "SELL",
        "order_type": "STOP",
        "aux_price": 101.0,
        "tif": "GTC",
    }
    assert lines[0]["event"]["order_id"] == 12
    assert lines[1]["event"]["price"] == 100.5


def test_journal_stream_name_and_non_finite_prices(tmp_path) -> None:
    path = tmp_path / "ops.jsonl"
    journal = JsonlEventLogger(str(path))

    journal.handle(QuoteAcquired.now(symbol="AAPL", price=float("nan"), attempts=1))

    record = json.loads(path.read_text(encoding="utf-8"))
    assert journal.stream == "ops"
    assert record["stream"] == "ops"
    assert record["event"]["price"] is None
    assert record["logged_at"].endswith("+00:00")
