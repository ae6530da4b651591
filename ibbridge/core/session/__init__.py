"""Trading session ownership and the collaborator ports."""

from ibbridge.core.session.errors import (
    NotConnectedError,
    OrderSubmissionError,
    ResolutionError,
    SessionError,
    SubscriptionReadError,
)
from ibbridge.core.session.manager import AsyncReadWriteLock, SessionManager
from ibbridge.core.session.models import ContractRef, select_contract
from ibbridge.core.session.ports import (
    OrderStatusStream,
    QuoteSubscription,
    SessionConnector,
    TradingSession,
)

__all__ = [
    "AsyncReadWriteLock",
    "ContractRef",
    "NotConnectedError",
    "OrderStatusStream",
    "OrderSubmissionError",
    "QuoteSubscription",
    "ResolutionError",
    "SessionConnector",
    "SessionError",
    "SessionManager",
    "SubscriptionReadError",
    "TradingSession",
    "select_contract",
]
