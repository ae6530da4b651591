from __future__ import annotations

from datetime import date, datetime, timezone

from ib_insync import (
    IB,
    BarData,
    Contract,
    MarketOrder,
    Stock,
    StopOrder,
    TickData,
    Trade,
)
from ib_insync.util import UNSET_DOUBLE, parseIBDatetime


def parse_ib_datetime(value: object) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    parsed = parseIBDatetime(str(value))
    if isinstance(parsed, datetime):
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed
    return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)


__all__ = [
    "IB",
    "BarData",
    "Contract",
    "MarketOrder",
    "Stock",
    "StopOrder",
    "TickData",
    "Trade",
    "UNSET_DOUBLE",
    "parse_ib_datetime",
]
