from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Tuple


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ISSUED = "ISSUED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value) -> "RequestStatus | None":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            return None


class Transition(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    ISSUE = "ISSUE"
    ACKNOWLEDGE = "ACKNOWLEDGE"
    COMPLETE = "COMPLETE"
    CANCEL = "CANCEL"


INITIAL_STATUS = RequestStatus.PENDING
TERMINAL_STATUSES: FrozenSet[RequestStatus] = frozenset(
    {RequestStatus.REJECTED, RequestStatus.COMPLETED, RequestStatus.CANCELLED}
)


STAGE_FIELDS: Dict[str, Tuple[str, ...]] = {
    "approval": (
        "approved_by_id",
        "approval_date",
        "approved_quantity",
        "approval_comments",
        "rejection_reason",
    ),
    "issuance": ("issued_by_id", "issuance_date", "issued_quantity", "issuance_comments"),
    "acknowledgment": (
        "acknowledged_by_id",
        "acknowledgment_date",
        "acknowledged_quantity",
        "acknowledgment_comments",
    ),
    "completion": ("completed_by_id", "completion_date", "completion_comments"),
    "cancellation": ("cancellation_reason", "cancelled_at"),
}


@dataclass(frozen=True)
class TransitionRule:
    """Static description of one transition.

    ``quantity_field`` is the API name of the quantity the transition records
    and ``ceiling_stage`` names the prior stage whose recorded quantity bounds
    it. Both are ``None`` when the transition records no quantity.
    """

    transition: Transition
    from_statuses: FrozenSet[RequestStatus]
    to_status: RequestStatus
    stage: str
    actor_column: str | None = None
    date_column: str | None = None
    quantity_field: str | None = None
    quantity_column: str | None = None
    ceiling_stage: str | None = None
    ceiling_column: str | None = None
    comments_field: str | None = None
    comments_column: str | None = None
    success_key: str = ""


TRANSITION_POLICY: Dict[Transition, TransitionRule] = {
    Transition.APPROVE: TransitionRule(
        transition=Transition.APPROVE,
        from_statuses=frozenset({RequestStatus.PENDING}),
        to_status=RequestStatus.APPROVED,
        stage="approval",
        actor_column="approved_by_id",
        date_column="approval_date",
        quantity_field="approvedQuantity",
        quantity_column="approved_quantity",
        comments_field="approvalComments",
        comments_column="approval_comments",
        success_key="request_approved",
    ),
    Transition.REJECT: TransitionRule(
        transition=Transition.REJECT,
        from_statuses=frozenset({RequestStatus.PENDING}),
        to_status=RequestStatus.REJECTED,
        stage="approval",
        actor_column="approved_by_id",
        date_column="approval_date",
        comments_field="approvalComments",
        comments_column="approval_comments",
        success_key="request_rejected",
    ),
    Transition.ISSUE: TransitionRule(
        transition=Transition.ISSUE,
        from_statuses=frozenset({RequestStatus.APPROVED}),
        to_status=RequestStatus.ISSUED,
        stage="issuance",
        actor_column="issued_by_id",
        date_column="issuance_date",
        quantity_field="issuedQuantity",
        quantity_column="issued_quantity",
        ceiling_stage="approved",
        ceiling_column="approved_quantity",
        comments_field="issuanceComments",
        comments_column="issuance_comments",
        success_key="request_issued",
    ),
    Transition.ACKNOWLEDGE: TransitionRule(
        transition=Transition.ACKNOWLEDGE,
        from_statuses=frozenset({RequestStatus.ISSUED}),
        to_status=RequestStatus.ACKNOWLEDGED,
        stage="acknowledgment",
        actor_column="acknowledged_by_id",
        date_column="acknowledgment_date",
        quantity_field="acknowledgedQuantity",
        quantity_column="acknowledged_quantity",
        ceiling_stage="issued",
        ceiling_column="issued_quantity",
        comments_field="acknowledgmentComments",
        comments_column="acknowledgment_comments",
        success_key="request_acknowledged",
    ),
    Transition.COMPLETE: TransitionRule(
        transition=Transition.COMPLETE,
        from_statuses=frozenset({RequestStatus.ACKNOWLEDGED}),
        to_status=RequestStatus.COMPLETED,
        stage="completion",
        actor_column="completed_by_id",
        date_column="completion_date",
        comments_field="completionComments",
        comments_column="completion_comments",
        success_key="request_completed",
    ),
    Transition.CANCEL: TransitionRule(
        transition=Transition.CANCEL,
        from_statuses=frozenset({RequestStatus.PENDING, RequestStatus.APPROVED}),
        to_status=RequestStatus.CANCELLED,
        stage="cancellation",
        date_column="cancelled_at",
        success_key="request_cancelled",
    ),
}


LIFECYCLE: List[Dict[str, str]] = [
    {"key": RequestStatus.PENDING.value, "label": "Requested"},
    {"key": RequestStatus.APPROVED.value, "label": "Approved"},
    {"key": RequestStatus.ISSUED.value, "label": "Issued"},
    {"key": RequestStatus.ACKNOWLEDGED.value, "label": "Acknowledged"},
    {"key": RequestStatus.COMPLETED.value, "label": "Completed"},
]


def rule_for(transition: Transition | str) -> TransitionRule:
    return TRANSITION_POLICY[Transition(transition)]


def allowed_transitions(status: RequestStatus | str | None) -> List[Transition]:
    parsed = RequestStatus.parse(status)
    if parsed is None:
        return []
    return [
        transition
        for transition, rule in TRANSITION_POLICY.items()
        if parsed in rule.from_statuses
    ]


def transition_allowed(status: RequestStatus | str | None, transition: Transition | str) -> bool:
    parsed = RequestStatus.parse(status)
    if parsed is None:
        return False
    return parsed in rule_for(transition).from_statuses


def is_terminal(status: RequestStatus | str | None) -> bool:
    return RequestStatus.parse(status) in TERMINAL_STATUSES


def expected_statuses_text(transition: Transition | str) -> str:
    statuses = sorted(status.value for status in rule_for(transition).from_statuses)
    return " or ".join(statuses)


def _lifecycle_index(status: RequestStatus | None) -> int:
    for idx, item in enumerate(LIFECYCLE):
        if status is not None and item["key"] == status.value:
            return idx
    return -1


def build_lifecycle_steps(status: RequestStatus | str | None) -> List[Dict[str, str]]:
    parsed = RequestStatus.parse(status)
    # Rejected and cancelled requests stop at the last step they reached.
    if parsed == RequestStatus.REJECTED:
        current_idx = 0
    elif parsed == RequestStatus.CANCELLED:
        current_idx = -1
    else:
        current_idx = _lifecycle_index(parsed)

    steps: List[Dict[str, str]] = []
    for idx, item in enumerate(LIFECYCLE):
        state = "future"
        if idx < current_idx or (idx == current_idx and parsed in TERMINAL_STATUSES):
            state = "completed"
        elif idx == current_idx:
            state = "current"
        steps.append({"key": item["key"], "label": item["label"], "state": state})
    return steps


def flow_meta(status: RequestStatus | str | None) -> Dict[str, object]:
    parsed = RequestStatus.parse(status)
    return {
        "status": parsed.value if parsed else None,
        "terminal": is_terminal(parsed),
        "allowed_transitions": [transition.value for transition in allowed_transitions(parsed)],
    }
