import sys
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ibbridge.adapters.broker.ibkr_connection import IBKRConnectionConfig
from ibbridge.adapters.broker.ibkr_session import IBKRSessionConnector
from ibbridge.adapters.eventbus.in_process import InProcessEventBus
from ibbridge.adapters.logging.jsonl_logger import JsonlEventLogger
from ibbridge.api import settings
from ibbridge.api.routes import connection, data, orders
from ibbridge.core.market_data.quotes import QuotePolicy
from ibbridge.core.ops.ports import EventBus
from ibbridge.core.orders.service import BracketPolicy
from ibbridge.core.session.manager import SessionManager


def _configure_logging() -> None:
    logger.remove()
    logger.add(sys.stdout, level=settings.LOG_LEVEL)


def _default_session_manager(ops_log: Optional[JsonlEventLogger]) -> SessionManager:
    connector = IBKRSessionConnector(
        IBKRConnectionConfig.from_env(),
        ops_sink=ops_log.handle if ops_log else None,
    )
    return SessionManager(connector)


def create_app(
    session_manager: Optional[SessionManager] = None,
    *,
    event_bus: Optional[EventBus] = None,
    quote_policy: Optional[QuotePolicy] = None,
    bracket_policy: Optional[BracketPolicy] = None,
) -> FastAPI:
    _configure_logging()
    app = FastAPI(
        title="IBKR REST bridge",
        docs_url="/swagger-ui",
        openapi_url="/api-docs/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if event_bus is None:
        event_bus = InProcessEventBus()
        if settings.EVENT_LOG_PATH:
            journal = JsonlEventLogger(settings.EVENT_LOG_PATH)
            event_bus.subscribe(object, journal.handle)
            logger.info(f"Event journal: {journal.path}")

    if session_manager is None:
        ops_log = JsonlEventLogger(settings.OPS_LOG_PATH) if settings.OPS_LOG_PATH else None
        session_manager = _default_session_manager(ops_log)

    app.state.session_manager = session_manager
    app.state.event_bus = event_bus
    app.state.quote_policy = quote_policy or QuotePolicy.from_env()
    app.state.bracket_policy = bracket_policy or BracketPolicy.from_env()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        # Release the gateway client id before the process exits.
        await app.state.session_manager.disconnect()

    @app.get("/health", tags=["health"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(connection.router)
    app.include_router(data.router)
    app.include_router(orders.router)

    return app


app = create_app()
