from __future__ import annotations

from typing import Optional

from loguru import logger

from ibbridge.core.account.models import AccountValue, PositionSnapshot
from ibbridge.core.session.errors import SessionError
from ibbridge.core.session.manager import SessionManager


class AccountService:
    def __init__(self, sessions: SessionManager, *, account: str = "") -> None:
        self._sessions = sessions
        self._account = account

    async def account_values(self) -> Optional[list[str]]:
        async with self._sessions.session() as session:
            if session is None:
                return None
            results: list[str] = []
            try:
                async for update in session.account_updates(self._account):
                    if isinstance(update, AccountValue):
                        results.append(format_account_value(update))
                    else:
                        logger.debug(f"Other account update: {update!r}")
            except SessionError as exc:
                logger.warning(f"Account updates failed: {exc}")
                return None
        return results

    async def positions(self) -> Optional[list[str]]:
        async with self._sessions.session() as session:
            if session is None:
                return None
            results: list[str] = []
            try:
                async for position in session.positions():
                    results.append(format_position(position))
            except SessionError as exc:
                logger.warning(f"Positions request failed: {exc}")
                return []
        return results


def format_account_value(value: AccountValue) -> str:
    return (
        f"key: {value.key}, value: {value.value}, "
        f"currency: {value.currency}, account: {value.account}"
    )


def format_position(position: PositionSnapshot) -> str:
    contract = " ".join(
        part
        for part in (position.symbol, position.sec_type, position.exchange, position.currency)
        if part
    )
    return (
        f"Account: {position.account}, Contract: {contract}, "
        f"Position: {position.qty:g}, Avg cost: {position.avg_cost}"
    )
