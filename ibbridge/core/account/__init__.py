"""Account values and positions."""

from ibbridge.core.account.models import AccountValue, PositionSnapshot
from ibbridge.core.account.service import AccountService

__all__ = [
    "AccountService",
    "AccountValue",
    "PositionSnapshot",
]
