from __future__ import annotations

from typing import Dict, List


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "request": [
        {
            "key": "PENDING",
            "label": "Pending",
            "description": "Waiting for a project manager decision.",
        },
        {
            "key": "APPROVED",
            "label": "Approved",
            "description": "Approved quantity recorded, waiting for the store to issue.",
        },
        {
            "key": "REJECTED",
            "label": "Rejected",
            "description": "Closed without approval.",
        },
        {
            "key": "ISSUED",
            "label": "Issued",
            "description": "Issued by the store, waiting for the requester to confirm receipt.",
        },
        {
            "key": "ACKNOWLEDGED",
            "label": "Acknowledged",
            "description": "Receipt confirmed by the requester.",
        },
        {
            "key": "COMPLETED",
            "label": "Completed",
            "description": "Request closed after receipt.",
        },
        {
            "key": "CANCELLED",
            "label": "Cancelled",
            "description": "Withdrawn before issue.",
        },
    ],
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "request_created": "Request created successfully.",
        "request_approved": "Request approved successfully.",
        "request_rejected": "Request rejected successfully.",
        "request_issued": "Request issued successfully.",
        "request_acknowledged": "Receipt acknowledged successfully.",
        "request_completed": "Request completed successfully.",
        "request_cancelled": "Request cancelled successfully.",
        "logged_out": "Signed out.",
    },
    "error": {
        "action_invalid": "Invalid action for this operation.",
        "action_not_allowed_for_status": "This action is not allowed for the current status.",
        "auth_required": "Authentication required.",
        "auth_invalid_credentials": "Invalid credentials. Try again.",
        "auth_missing_credentials": "Email and password are required.",
        "equipment_not_found": "Equipment not found.",
        "equipment_not_operational": "Equipment is not operational.",
        "insufficient_stock": "Insufficient stock available.",
        "material_not_found": "Material not found.",
        "permission_denied": "You do not have permission to perform this action.",
        "project_not_active": "Project is not active.",
        "project_not_found": "Project not found.",
        "rate_limit_exceeded": "Too many requests. Try again shortly.",
        "request_not_found": "Request not found.",
        "status_conflict": "The request was changed by someone else. Reload and try again.",
        "transition_forbidden": "You are not allowed to perform this transition.",
        "unexpected_error": "The operation could not be completed. Try again shortly.",
        "validation_error": "Some fields are invalid.",
    },
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def build_status_labels() -> Dict[str, str]:
    labels: Dict[str, str] = {}
    for group_items in STATUS_GROUPS.values():
        for item in group_items:
            labels[item["key"]] = item["label"]
    return labels


STATUS_LABELS = build_status_labels()


def status_label(status: str | None) -> str:
    key = str(status or "").strip().upper()
    return STATUS_LABELS.get(key, key)


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)
