"""Request lifecycle engine shared by fuel and material requests.

Every transition runs the same sequence against a freshly loaded record:
load, status check, actor check, input validation, then exactly one
conditional update guarded by the status that was read. Expected failures
come back as tagged ``TransitionResult`` objects; nothing raises across the
public methods.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping

from siteflow.domain.contracts import Caller
from siteflow.errors import AppError, InvalidStateError, NotFoundError, ValidationError
from siteflow.observability import observe_workflow_transition
from siteflow.workflow.adapters import ResourceAdapter
from siteflow.workflow.guard import authorize
from siteflow.workflow.ledger import require_quantity
from siteflow.workflow.results import ResultCode, TransitionResult
from siteflow.workflow.states import (
    RequestStatus,
    Transition,
    TransitionRule,
    expected_statuses_text,
    rule_for,
)


logger = logging.getLogger("siteflow.workflow")

DEFAULT_CANCEL_REASON = "Cancelled by user"
INTERNAL_ERROR_MESSAGE = "Internal error while processing the request."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _input_values(data: Any) -> Dict[str, Any]:
    if data is None:
        return {}
    if is_dataclass(data) and not isinstance(data, type):
        return asdict(data)
    if isinstance(data, Mapping):
        return dict(data)
    raise TypeError(f"Unsupported transition input: {type(data).__name__}")


def _pick(values: Mapping[str, Any], api_name: str) -> Any:
    if api_name in values:
        return values[api_name]
    return values.get(_snake_case(api_name))


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


class RequestWorkflowEngine:
    def __init__(
        self,
        gateway,
        adapter: ResourceAdapter,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.gateway = gateway
        self.adapter = adapter
        self._clock = clock or _utcnow

    def approve(self, request_id, data, caller: Caller) -> TransitionResult:
        try:
            values = _input_values(data)
        except TypeError as exc:
            return self._unexpected(Transition.APPROVE, request_id, exc)
        transition = Transition.APPROVE if _truthy(values.get("approved")) else Transition.REJECT
        return self._run(transition, request_id, values, caller)

    def issue(self, request_id, data, caller: Caller) -> TransitionResult:
        return self._dispatch(Transition.ISSUE, request_id, data, caller)

    def acknowledge(self, request_id, data, caller: Caller) -> TransitionResult:
        return self._dispatch(Transition.ACKNOWLEDGE, request_id, data, caller)

    def complete(self, request_id, data, caller: Caller) -> TransitionResult:
        return self._dispatch(Transition.COMPLETE, request_id, data, caller)

    def cancel(self, request_id, data, caller: Caller) -> TransitionResult:
        return self._dispatch(Transition.CANCEL, request_id, data, caller)

    def _dispatch(self, transition: Transition, request_id, data, caller: Caller) -> TransitionResult:
        try:
            values = _input_values(data)
        except TypeError as exc:
            return self._unexpected(transition, request_id, exc)
        return self._run(transition, request_id, values, caller)

    def _run(
        self,
        transition: Transition,
        request_id,
        values: Mapping[str, Any],
        caller: Caller,
    ) -> TransitionResult:
        rule = rule_for(transition)
        from_status = None
        try:
            record = self._load(request_id)
            from_status = record.get("status")
            self._check_status(rule, record)
            authorize(transition, caller, record, self.adapter.actor_overrides)
            patch = self._build_patch(rule, record, values, caller)
            updated = self.gateway.update_conditional(record["id"], from_status, patch)
        except AppError as exc:
            if exc.result_code == ResultCode.INTERNAL_ERROR:
                return self._unexpected(transition, request_id, exc)
            return self._expected_failure(transition, request_id, from_status, exc)
        except Exception as exc:
            return self._unexpected(transition, request_id, exc)

        logger.info(
            "workflow transition applied",
            extra={
                "request_kind": self.adapter.kind,
                "record_id": request_id,
                "transition": transition.value,
                "from_status": from_status,
                "to_status": rule.to_status.value,
                "actor_user_id": caller.user_id,
            },
        )
        observe_workflow_transition(self.adapter.kind, transition.value, "SUCCESS")
        return TransitionResult.ok(updated)

    def _load(self, request_id) -> Dict[str, Any]:
        record = self.gateway.find_by_id(request_id)
        if record is None:
            raise NotFoundError(details=f"{self.adapter.entity_label} {request_id} not found.")
        return dict(record)

    def _check_status(self, rule: TransitionRule, record: Mapping[str, Any]) -> None:
        current = RequestStatus.parse(record.get("status"))
        if current in rule.from_statuses:
            return
        current_text = current.value if current else str(record.get("status"))
        raise InvalidStateError(
            details=(
                f"Cannot {rule.transition.value.lower()} a request in status {current_text}; "
                f"expected {expected_statuses_text(rule.transition)}."
            ),
            payload={"current_status": current_text},
        )

    def _build_patch(
        self,
        rule: TransitionRule,
        record: Mapping[str, Any],
        values: Mapping[str, Any],
        caller: Caller,
    ) -> Dict[str, Any]:
        now = self._clock().isoformat()
        patch: Dict[str, Any] = {"status": rule.to_status.value}

        if rule.transition == Transition.REJECT:
            reason = _clean_text(_pick(values, "rejectionReason"))
            if reason is None:
                raise ValidationError(
                    details="rejectionReason is required",
                    payload={"field": "rejectionReason"},
                )
            patch["rejection_reason"] = reason

        if rule.quantity_field:
            ceiling = None
            if rule.ceiling_column:
                # A missing prior-stage quantity bounds the next stage at zero.
                ceiling = record.get(rule.ceiling_column) or 0
            patch[rule.quantity_column] = require_quantity(
                rule.quantity_field,
                _pick(values, rule.quantity_field),
                ceiling,
                rule.ceiling_stage,
            )

        if rule.transition == Transition.CANCEL:
            patch["cancellation_reason"] = _clean_text(_pick(values, "reason")) or DEFAULT_CANCEL_REASON

        if rule.actor_column:
            patch[rule.actor_column] = caller.user_id
        if rule.date_column:
            patch[rule.date_column] = now
        if rule.comments_column:
            patch[rule.comments_column] = _clean_text(_pick(values, rule.comments_field))

        patch.update(self.adapter.build_extra_patch(rule.transition, record, patch))
        return patch

    def _expected_failure(
        self,
        transition: Transition,
        request_id,
        from_status,
        exc: AppError,
    ) -> TransitionResult:
        field = exc.payload.get("field")
        logger.warning(
            "workflow transition refused",
            extra={
                "request_kind": self.adapter.kind,
                "record_id": request_id,
                "transition": transition.value,
                "from_status": from_status,
                "result_code": exc.result_code,
                "reason": exc.describe(),
            },
        )
        observe_workflow_transition(self.adapter.kind, transition.value, exc.result_code)
        return TransitionResult.failure(exc.result_code, exc.describe(), field=field)

    def _unexpected(self, transition: Transition, request_id, exc: Exception) -> TransitionResult:
        logger.error(
            "workflow transition failed",
            exc_info=exc,
            extra={
                "request_kind": self.adapter.kind,
                "record_id": request_id,
                "transition": transition.value,
                "result_code": ResultCode.INTERNAL_ERROR,
            },
        )
        observe_workflow_transition(self.adapter.kind, transition.value, ResultCode.INTERNAL_ERROR)
        return TransitionResult.failure(ResultCode.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE)
