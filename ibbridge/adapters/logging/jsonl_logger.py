from __future__ import annotations

import json
import math
import os
from dataclasses import fields, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class JsonlEventLogger:
    """Append-only JSON-lines journal; one record per published event.

    Records look like ``{"logged_at", "stream", "event_type", "event"}``.
    Non-finite floats (IB's unset prices) are written as null so every line
    stays valid JSON.
    """

    def __init__(self, path: str, *, stream: Optional[str] = None) -> None:
        self._path = path
        self._stream = stream or os.path.splitext(os.path.basename(path))[0]

    @property
    def path(self) -> str:
        return self._path

    @property
    def stream(self) -> str:
        return self._stream

    def handle(self, event: object) -> None:
        record = {
            "logged_at": _iso(datetime.now(timezone.utc)),
            "stream": self._stream,
            "event_type": type(event).__name__,
            "event": _to_jsonable(event),
        }
        line = json.dumps(record, allow_nan=False)
        directory = os.path.dirname(self._path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self._path, "a", encoding="utf-8") as handle:
            handle.write(line + "\n")


def _to_jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        # repr=False fields hold broker objects (e.g. ContractRef.raw).
        return {f.name: _to_jsonable(getattr(value, f.name)) for f in fields(value) if f.repr}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return _iso(value)
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (str, int, bool)) or value is None:
        return value
    return repr(value)


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")
