"""
Serialization of handler results for storage.

Stores only ever hold serialized text, so a cached value can never be
mutated through a reference handed out to a caller.
"""

import json
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel


class CodecError(ValueError):
    """Raised when a result cannot be serialized or decoded."""


def _default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class JsonCodec:
    """JSON codec used by every store."""

    def dumps(self, value: Any) -> str:
        try:
            return json.dumps(value, default=_default, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise CodecError(str(exc)) from exc

    def loads(self, payload: str) -> Any:
        try:
            return json.loads(payload)
        except (TypeError, json.JSONDecodeError) as exc:
            raise CodecError(str(exc)) from exc
