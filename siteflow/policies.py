from __future__ import annotations

import re
from typing import Set


ADMIN = "admin"
PROJECT_MANAGER = "project_manager"
STORE_MANAGER = "store_manager"
EMPLOYEE = "employee"

VALID_ROLES: Set[str] = {ADMIN, PROJECT_MANAGER, STORE_MANAGER, EMPLOYEE}

ROLE_LABELS = {
    ADMIN: "Admin",
    PROJECT_MANAGER: "Project Manager",
    STORE_MANAGER: "Store Manager",
    EMPLOYEE: "Employee",
}


def normalize_role(role: str | None, default: str = EMPLOYEE) -> str:
    # "Project Manager", "project-manager" and "PROJECT_MANAGER" are the same role.
    normalized = re.sub(r"[\s\-]+", "_", str(role or "").strip().lower())
    if normalized in VALID_ROLES:
        return normalized
    return default if default in VALID_ROLES else ""


def role_label(role: str | None) -> str:
    return ROLE_LABELS.get(normalize_role(role, default=""), str(role or ""))


ANALYTICS_ROLES: Set[str] = {ADMIN, PROJECT_MANAGER, STORE_MANAGER}


def can_view_analytics(role: str | None) -> bool:
    return normalize_role(role, default="") in ANALYTICS_ROLES
