from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class GatewayEndpoint:
    """Where a session points: gateway address plus the API client id."""

    host: str
    port: int
    client_id: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port} clientId={self.client_id}"


@dataclass(frozen=True)
class SessionConnecting:
    endpoint: GatewayEndpoint
    readonly: bool
    timestamp: datetime

    @classmethod
    def now(cls, endpoint: GatewayEndpoint, *, readonly: bool) -> "SessionConnecting":
        return cls(endpoint=endpoint, readonly=readonly, timestamp=_now())


@dataclass(frozen=True)
class SessionConnected:
    endpoint: GatewayEndpoint
    readonly: bool
    server_version: Optional[int]
    timestamp: datetime

    @classmethod
    def now(
        cls,
        endpoint: GatewayEndpoint,
        *,
        readonly: bool,
        server_version: Optional[int],
    ) -> "SessionConnected":
        return cls(
            endpoint=endpoint,
            readonly=readonly,
            server_version=server_version,
            timestamp=_now(),
        )


@dataclass(frozen=True)
class SessionConnectFailed:
    endpoint: GatewayEndpoint
    error_type: str
    message: str
    timestamp: datetime

    @classmethod
    def now(cls, endpoint: GatewayEndpoint, error: BaseException) -> "SessionConnectFailed":
        return cls(
            endpoint=endpoint,
            error_type=type(error).__name__,
            message=str(error),
            timestamp=_now(),
        )


@dataclass(frozen=True)
class SessionClosed:
    endpoint: GatewayEndpoint
    reason: str
    timestamp: datetime

    @classmethod
    def now(cls, endpoint: GatewayEndpoint, *, reason: str) -> "SessionClosed":
        return cls(endpoint=endpoint, reason=reason, timestamp=_now())


@dataclass(frozen=True)
class GatewayMessage:
    """An error/info message pushed by TWS or IB Gateway."""

    endpoint: GatewayEndpoint
    req_id: Optional[int]
    code: Optional[int]
    message: Optional[str]
    suppressed: bool
    timestamp: datetime

    @classmethod
    def now(
        cls,
        endpoint: GatewayEndpoint,
        *,
        req_id: Optional[int],
        code: Optional[int],
        message: Optional[str],
        suppressed: bool,
    ) -> "GatewayMessage":
        return cls(
            endpoint=endpoint,
            req_id=req_id,
            code=code,
            message=message,
            suppressed=suppressed,
            timestamp=_now(),
        )
