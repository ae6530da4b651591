from __future__ import annotations

from typing import TYPE_CHECKING, AsyncIterator, Optional, Protocol, Union

from ibbridge.core.session.models import ContractRef

if TYPE_CHECKING:
    # Annotation-only: the account and orders packages import this module at load time.
    from ibbridge.core.account.models import AccountValue, PositionSnapshot
    from ibbridge.core.market_data.models import Bar, Tick
    from ibbridge.core.orders.models import OrderSpec, OrderStatusUpdate

AccountUpdate = Union["AccountValue", "PositionSnapshot"]


class QuoteSubscription(Protocol):
    async def __aenter__(self) -> "QuoteSubscription":
        raise NotImplementedError

    async def __aexit__(self, exc_type, exc, tb) -> None:
        raise NotImplementedError

    async def next_tick(self, *, timeout: Optional[float] = None) -> Optional[Tick]:
        """Return the next tick, None on timeout.

        Raises SubscriptionReadError when the stream fails or has been closed.
        """
        raise NotImplementedError

    async def cancel(self) -> None:
        """Stop the subscription. Safe to call more than once."""
        raise NotImplementedError


class OrderStatusStream(Protocol):
    @property
    def order_id(self) -> Optional[int]:
        raise NotImplementedError

    def __aiter__(self) -> AsyncIterator[OrderStatusUpdate]:
        raise NotImplementedError


class TradingSession(Protocol):
    def is_connected(self) -> bool:
        raise NotImplementedError

    def disconnect(self) -> None:
        raise NotImplementedError

    def account_updates(self, account: str = "") -> AsyncIterator[AccountUpdate]:
        """Yield account values (and other account updates) until the snapshot ends."""
        raise NotImplementedError

    def positions(self) -> AsyncIterator[PositionSnapshot]:
        """Yield the current positions across managed accounts."""
        raise NotImplementedError

    async def resolve_contract(self, symbol: str) -> list[ContractRef]:
        """Return every contract the broker resolves the symbol to."""
        raise NotImplementedError

    def subscribe_quote(self, contract: ContractRef) -> QuoteSubscription:
        """Return a quote subscription; it starts streaming when entered."""
        raise NotImplementedError

    async def historical_bars(
        self,
        contract: ContractRef,
        *,
        duration: str = "1 D",
        bar_size: str = "1 min",
        use_rth: bool = True,
    ) -> list[Bar]:
        raise NotImplementedError

    def place_order(self, contract: ContractRef, spec: OrderSpec) -> OrderStatusStream:
        """Transmit the order and return its status stream.

        Raises OrderSubmissionError when the order cannot be transmitted.
        """
        raise NotImplementedError


class SessionConnector(Protocol):
    async def connect(self, host: str, port: int, client_id: int) -> TradingSession:
        raise NotImplementedError
