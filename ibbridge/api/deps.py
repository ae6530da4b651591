from typing import Optional

from fastapi import Request

from ibbridge.core.account.service import AccountService
from ibbridge.core.market_data.quotes import QuotePolicy
from ibbridge.core.market_data.service import MarketDataService
from ibbridge.core.ops.ports import EventBus
from ibbridge.core.orders.service import BracketOrderService, BracketPolicy
from ibbridge.core.session.manager import SessionManager


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def _event_bus(request: Request) -> Optional[EventBus]:
    return getattr(request.app.state, "event_bus", None)


def get_account_service(request: Request) -> AccountService:
    return AccountService(get_session_manager(request))


def get_market_data_service(request: Request) -> MarketDataService:
    policy: QuotePolicy = request.app.state.quote_policy
    return MarketDataService(
        get_session_manager(request),
        quote_policy=policy,
        event_bus=_event_bus(request),
    )


def get_bracket_service(request: Request) -> BracketOrderService:
    policy: BracketPolicy = request.app.state.bracket_policy
    return BracketOrderService(
        get_session_manager(request),
        event_bus=_event_bus(request),
        policy=policy,
    )
