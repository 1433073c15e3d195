from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


class ResultCode:
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_HTTP_STATUS = {
    ResultCode.UNAUTHORIZED: 403,
    ResultCode.NOT_FOUND: 404,
    ResultCode.INVALID_STATE: 400,
    ResultCode.VALIDATION_ERROR: 400,
    ResultCode.RATE_LIMITED: 429,
}


@dataclass(frozen=True)
class TransitionResult:
    success: bool
    error: str | None = None
    code: str | None = None
    field: str | None = None
    record: Dict[str, Any] | None = None

    @classmethod
    def ok(cls, record: Dict[str, Any] | None = None) -> "TransitionResult":
        return cls(success=True, record=record)

    @classmethod
    def failure(cls, code: str, error: str, field: str | None = None) -> "TransitionResult":
        return cls(success=False, error=error, code=code, field=field)

    def to_payload(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.record}
        payload: Dict[str, Any] = {"success": False, "error": self.error, "code": self.code}
        if self.field:
            payload["field"] = self.field
        return payload


def http_status_for(code: str | None) -> int:
    if code is None:
        return 200
    return _HTTP_STATUS.get(code, 500)
