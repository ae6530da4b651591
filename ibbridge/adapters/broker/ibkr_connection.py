from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Callable, Optional

from loguru import logger

from ibbridge.adapters.broker._ib_client import IB
from ibbridge.core.ops.events import (
    GatewayEndpoint,
    GatewayMessage,
    SessionClosed,
    SessionConnectFailed,
    SessionConnected,
    SessionConnecting,
)

OpsSink = Callable[[object], None]

# 162 "query cancelled" follows every cancelMktData / cancelHistoricalData.
_QUIET_GATEWAY_CODES = {162: "query cancelled"}


@dataclass(frozen=True)
class IBKRConnectionConfig:
    host: str
    port: int
    client_id: int
    readonly: bool
    timeout: float
    paper_only: bool
    paper_port: int
    live_port: int

    @classmethod
    def from_env(cls) -> "IBKRConnectionConfig":
        return cls(
            host=os.getenv("IB_HOST", "127.0.0.1"),
            port=int(os.getenv("IB_PORT", "7497")),
            client_id=int(os.getenv("IB_CLIENT_ID", "1001")),
            readonly=os.getenv("IB_READONLY", "0") == "1",
            timeout=float(os.getenv("IB_TIMEOUT", "5")),
            paper_only=os.getenv("PAPER_ONLY", "1") == "1",
            paper_port=int(os.getenv("IB_PAPER_PORT", "7497")),
            live_port=int(os.getenv("IB_LIVE_PORT", "7496")),
        )

    @property
    def endpoint(self) -> GatewayEndpoint:
        return GatewayEndpoint(host=self.host, port=self.port, client_id=self.client_id)

    def pointed_at(self, endpoint: GatewayEndpoint) -> "IBKRConnectionConfig":
        return replace(self, host=endpoint.host, port=endpoint.port, client_id=endpoint.client_id)


class IBKRConnection:
    """One ib_insync client bound to one gateway endpoint."""

    def __init__(
        self,
        config: IBKRConnectionConfig,
        ib: Optional[IB] = None,
        *,
        ops_sink: Optional[OpsSink] = None,
    ) -> None:
        self._config = config
        self._ib = ib or IB()
        self._ops_sink = ops_sink
        _silence_ib_insync_logger()
        _GatewayErrorFilter.install(self._ib, self)

    @property
    def ib(self) -> IB:
        return self._ib

    @property
    def config(self) -> IBKRConnectionConfig:
        return self._config

    async def connect(self, endpoint: GatewayEndpoint) -> GatewayEndpoint:
        if self._config.paper_only and endpoint.port != self._config.paper_port:
            raise RuntimeError(
                f"PAPER_ONLY=1 refuses port {endpoint.port}; paper port is {self._config.paper_port}"
            )
        if self._ib.isConnected():
            self._close("reconnect")

        self._emit(SessionConnecting.now(endpoint, readonly=self._config.readonly))
        try:
            await self._ib.connectAsync(
                endpoint.host,
                endpoint.port,
                clientId=endpoint.client_id,
                timeout=self._config.timeout,
                readonly=self._config.readonly,
            )
        except Exception as exc:
            self._emit(SessionConnectFailed.now(endpoint, exc))
            raise

        self._config = self._config.pointed_at(endpoint)
        # connectAsync may swap the wrapper's bound methods.
        _GatewayErrorFilter.install(self._ib, self)
        self._emit(
            SessionConnected.now(
                endpoint,
                readonly=self._config.readonly,
                server_version=_server_version(self._ib),
            )
        )
        return endpoint

    def disconnect(self) -> None:
        if self._ib.isConnected():
            self._close("disconnect")

    def _close(self, reason: str) -> None:
        self._ib.disconnect()
        self._emit(SessionClosed.now(self._config.endpoint, reason=reason))

    def _emit(self, event: object) -> None:
        if self._ops_sink:
            self._ops_sink(event)


class _GatewayErrorFilter:
    """Wraps ``ib.wrapper.error``: journals every message, drops the noisy ones."""

    def __init__(self, original: Callable[..., None], connection: IBKRConnection) -> None:
        self._original = original
        self._connection = connection

    @classmethod
    def install(cls, ib: IB, connection: IBKRConnection) -> None:
        wrapper = getattr(ib, "wrapper", None)
        current = getattr(wrapper, "error", None)
        if not callable(current) or isinstance(current, cls):
            return
        wrapper.error = cls(current, connection)

    def __call__(self, *args, **kwargs) -> None:
        if len(args) >= 3:
            req_id, code, message = _maybe_int(args[0]), _maybe_int(args[1]), args[2]
        else:
            req_id = _maybe_int(kwargs.get("reqId"))
            code = _maybe_int(kwargs.get("errorCode"))
            message = kwargs.get("errorString")
        text = str(message) if message is not None else None
        suppressed = _is_quiet(code, text)
        self._connection._emit(
            GatewayMessage.now(
                self._connection.config.endpoint,
                req_id=req_id,
                code=code,
                message=text,
                suppressed=suppressed,
            )
        )
        if suppressed:
            return
        logger.debug(f"IB gateway {code} (reqId={req_id}): {text}")
        self._original(*args, **kwargs)


def _is_quiet(code: Optional[int], message: Optional[str]) -> bool:
    marker = _QUIET_GATEWAY_CODES.get(code) if code is not None else None
    if marker is None:
        return False
    return not message or marker in message.lower()


def _server_version(ib: IB) -> Optional[int]:
    try:
        return int(ib.client.serverVersion())
    except Exception:
        return None


def _silence_ib_insync_logger() -> None:
    ib_logger = logging.getLogger("ib_insync")
    ib_logger.setLevel(logging.CRITICAL)
    ib_logger.propagate = False
    if not ib_logger.handlers:
        ib_logger.addHandler(logging.NullHandler())


def _maybe_int(value: object) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
