"""IBKR adapters built on ib_insync."""

from ibbridge.adapters.broker.ibkr_connection import (
    IBKRConnection,
    IBKRConnectionConfig,
)
from ibbridge.adapters.broker.ibkr_session import (
    IBKROrderStatusStream,
    IBKRQuoteSubscription,
    IBKRSessionConnector,
    IBKRTradingSession,
)

__all__ = [
    "IBKRConnection",
    "IBKRConnectionConfig",
    "IBKROrderStatusStream",
    "IBKRQuoteSubscription",
    "IBKRSessionConnector",
    "IBKRTradingSession",
]
