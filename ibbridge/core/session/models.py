from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional


@dataclass(frozen=True)
class ContractRef:
    symbol: str
    con_id: Optional[int] = None
    sec_type: str = "STK"
    exchange: str = "SMART"
    currency: str = "USD"
    raw: object = field(default=None, compare=False, repr=False)


def normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


def select_contract(candidates: Iterable[ContractRef], symbol: str) -> Optional[ContractRef]:
    """Return the first candidate whose symbol exactly matches the requested one."""
    wanted = normalize_symbol(symbol)
    for candidate in candidates:
        if candidate.symbol == wanted:
            return candidate
    return None
