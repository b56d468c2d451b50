from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_ERROR = "error"

ERROR_NETWORK = "network"
ERROR_BACKEND = "backend"
ERROR_FORBIDDEN = "forbidden"
ERROR_VALIDATION = "validation"
ERROR_UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class GatewayResult(Generic[T]):
    """Outcome of one gateway call.

    ``empty`` means the backend answered with nothing (no rows, student not
    found); ``error`` means the call itself failed. ``fallback`` is the value
    the lenient view reports for an error, matching the historical sentinels
    (``[]`` for reads, ``False`` for writes, ``None`` for lookups).
    """

    status: str
    data: Optional[T] = None
    error: str = ""
    detail: str = ""
    fallback: Any = None

    @classmethod
    def ok(cls, data: T) -> "GatewayResult[T]":
        return cls(status=STATUS_OK, data=data)

    @classmethod
    def empty(cls, data: Optional[T] = None) -> "GatewayResult[T]":
        return cls(status=STATUS_EMPTY, data=data, fallback=data)

    @classmethod
    def failed(cls, kind: str, detail: str = "", *, fallback: Any = None) -> "GatewayResult[T]":
        return cls(status=STATUS_ERROR, error=kind, detail=str(detail or ""), fallback=fallback)

    @classmethod
    def from_rows(cls, rows: Any) -> "GatewayResult[T]":
        return cls.ok(rows) if rows else cls.empty(rows if rows is not None else [])

    @property
    def is_ok(self) -> bool:
        return self.status == STATUS_OK

    @property
    def is_empty(self) -> bool:
        return self.status == STATUS_EMPTY

    @property
    def is_error(self) -> bool:
        return self.status == STATUS_ERROR

    def lenient(self) -> Any:
        if self.is_error:
            return self.fallback
        return self.data
