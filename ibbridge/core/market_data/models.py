from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class TickKind(str, Enum):
    PRICE = "PRICE"
    SIZE = "SIZE"
    OTHER = "OTHER"


@dataclass(frozen=True)
class Tick:
    kind: TickKind
    value: float
    timestamp: datetime
    tick_type: Optional[int] = None

    @property
    def usable_price(self) -> Optional[float]:
        if self.kind != TickKind.PRICE:
            return None
        if not math.isfinite(self.value) or self.value <= 0:
            return None
        return self.value


@dataclass(frozen=True)
class Bar:
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None


@dataclass(frozen=True)
class DayRange:
    low: float
    high: float

    @classmethod
    def empty(cls) -> "DayRange":
        return cls(low=0.0, high=0.0)

    def as_tuple(self) -> tuple[float, float]:
        return self.low, self.high
