from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from loguru import logger

from ibbridge.core.session.ports import SessionConnector, TradingSession


class AsyncReadWriteLock:
    """Many concurrent readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._writers_waiting == 0)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def writer_active(self) -> bool:
        return self._writer


class SessionManager:
    """Owns the single trading session of the process."""

    def __init__(self, connector: SessionConnector) -> None:
        self._connector = connector
        self._session: Optional[TradingSession] = None
        self._lock = AsyncReadWriteLock()

    async def connect(self, host: str, port: int, client_id: int) -> bool:
        async with self._lock.write():
            if self._session is not None:
                logger.info("Closing existing IBKR session before reconnecting")
                self._close_locked()
            logger.info(f"Connecting IB {host}:{port} clientId={client_id} ...")
            try:
                session = await self._connector.connect(host, port, client_id)
            except Exception as exc:
                logger.error(f"IBKR connect to {host}:{port} failed: {type(exc).__name__}: {exc}")
                return False
            if not session.is_connected():
                logger.error(f"IBKR connect to {host}:{port} returned a disconnected session")
                return False
            self._session = session
            logger.success("Connected.")
            return True

    def is_connected(self) -> bool:
        session = self._session
        return session is not None and session.is_connected()

    async def disconnect(self) -> None:
        async with self._lock.write():
            if self._session is None:
                return
            self._close_locked()
            logger.info("Disconnected from IBKR")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Optional[TradingSession]]:
        """Borrow the session for a data operation; yields None when not connected.

        The read lock covers the handle lookup only. A disconnect does not wait
        for borrowers; their pending calls on the dropped session fail.
        """
        async with self._lock.read():
            session = self._session
        if session is not None and not session.is_connected():
            session = None
        yield session

    def _close_locked(self) -> None:
        session = self._session
        self._session = None
        if session is None:
            return
        try:
            session.disconnect()
        except Exception as exc:
            logger.warning(f"IBKR disconnect raised {type(exc).__name__}: {exc}")
