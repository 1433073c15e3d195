from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


@dataclass(frozen=True)
class Caller:
    user_id: int | None
    role: str
    email: str | None = None


@dataclass(frozen=True)
class ApproveInput:
    approved: bool
    approved_quantity: Any = None
    approval_comments: str | None = None
    rejection_reason: str | None = None


@dataclass(frozen=True)
class IssueInput:
    issued_quantity: Any
    issuance_comments: str | None = None


@dataclass(frozen=True)
class AcknowledgeInput:
    acknowledged_quantity: Any
    acknowledgment_comments: str | None = None


@dataclass(frozen=True)
class CompleteInput:
    completion_comments: str | None = None


@dataclass(frozen=True)
class CancelInput:
    reason: str | None = None


@dataclass(frozen=True)
class RequestCreateInput:
    project_id: Any
    resource_id: Any
    requested_quantity: Any
    justification: str | None
    urgency: str | None = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RequestListFilters:
    status: str | None = None
    project_id: int | None = None
    resource_id: int | None = None
    requested_by_id: int | None = None
    search: str | None = None
    created_from: str | None = None
    created_before: str | None = None
    page: int = 1
    limit: int = 50


@dataclass(frozen=True)
class AuthLoginInput:
    email: str
    password: str


@dataclass(frozen=True)
class AuthUser:
    id: int
    email: str
    display_name: str
    role: str
