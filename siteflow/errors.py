from __future__ import annotations

from typing import Any, Dict

from siteflow.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True
    result_code = "INTERNAL_ERROR"

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "The operation could not be completed.")
        return error_message(self.message_key, fallback)

    def describe(self) -> str:
        return self.details or self.user_message()

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.code,
            "code": self.result_code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "action_invalid"
    default_http_status = 400
    default_critical = False
    result_code = "VALIDATION_ERROR"


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message_key = "validation_error"
    default_http_status = 400
    default_critical = False
    result_code = "VALIDATION_ERROR"

    @property
    def field(self) -> str | None:
        value = self.payload.get("field")
        return str(value) if value else None


class PermissionError(UserActionError):
    default_code = "permission_denied"
    default_message_key = "permission_denied"
    default_http_status = 403
    default_critical = False
    result_code = "UNAUTHORIZED"


class AuthenticationRequiredError(PermissionError):
    default_code = "auth_required"
    default_message_key = "auth_required"
    default_http_status = 401


class ForbiddenError(PermissionError):
    default_code = "transition_forbidden"
    default_message_key = "transition_forbidden"


class NotFoundError(UserActionError):
    default_code = "request_not_found"
    default_message_key = "request_not_found"
    default_http_status = 404
    result_code = "NOT_FOUND"


class InvalidStateError(UserActionError):
    default_code = "invalid_state"
    default_message_key = "action_not_allowed_for_status"
    default_http_status = 400
    result_code = "INVALID_STATE"


class StatusConflictError(InvalidStateError):
    """Raised by a conditional update when the stored status no longer matches."""

    default_code = "status_conflict"
    default_message_key = "status_conflict"


class RateLimitError(UserActionError):
    default_code = "rate_limit_exceeded"
    default_message_key = "rate_limit_exceeded"
    default_http_status = 429
    result_code = "RATE_LIMITED"


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True
    result_code = "INTERNAL_ERROR"
