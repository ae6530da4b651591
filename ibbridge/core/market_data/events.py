from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class QuoteAcquired:
    symbol: str
    price: float
    attempts: int
    timestamp: datetime

    @classmethod
    def now(cls, *, symbol: str, price: float, attempts: int) -> "QuoteAcquired":
        return cls(symbol=symbol, price=price, attempts=attempts, timestamp=_now())


@dataclass(frozen=True)
class QuoteUnavailable:
    symbol: str
    reason: str
    attempts: int
    timestamp: datetime
    error: Optional[str] = None

    @classmethod
    def now(
        cls,
        *,
        symbol: str,
        reason: str,
        attempts: int,
        error: Optional[str] = None,
    ) -> "QuoteUnavailable":
        return cls(symbol=symbol, reason=reason, attempts=attempts, timestamp=_now(), error=error)
