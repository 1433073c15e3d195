from __future__ import annotations

from typing import Any, Dict

from siteflow import create_app
from siteflow.config import Config
from siteflow.db import get_db
from siteflow.errors import StatusConflictError
from siteflow.repositories.inventory_repository import InventoryRepository
from siteflow.repositories.reference_repository import ReferenceRepository
from siteflow.repositories.user_repository import UserRepository
from tests.helpers.temp_db import TempDbSandbox


class _TestConfig(Config):
    TESTING = True
    AUTH_ENABLED = True
    LOG_JSON = False
    RATE_LIMIT_ENABLED = False
    SECRET_KEY = "test-secret"


def build_app(sandbox: TempDbSandbox, **overrides):
    return create_app(sandbox.make_config(_TestConfig, **overrides))


USERS = {
    "admin": ("admin@test.local", "Admin"),
    "pm": ("pm@test.local", "Project Manager"),
    "store": ("store@test.local", "Store Manager"),
    "requester": ("requester@test.local", "Employee"),
    "other": ("other@test.local", "Employee"),
}


STORE_STOCK = 50


def seed_references(app) -> Dict[str, Any]:
    """Create users, projects, equipment and stocked materials; return their ids."""
    ids: Dict[str, Any] = {"users": {}}
    with app.app_context():
        db = get_db()
        users = UserRepository()
        for key, (email, role) in USERS.items():
            ids["users"][key] = users.create_user(
                db,
                email=email,
                password="secret123",
                display_name=key.title(),
                role=role.lower().replace(" ", "_"),
            )
        references = ReferenceRepository()
        ids["project"] = references.upsert_project(db, code="P-1", name="Bridge", status="ACTIVE")
        ids["project_on_hold"] = references.upsert_project(db, code="P-2", name="Depot", status="ON_HOLD")
        ids["equipment"] = references.upsert_equipment(db, code="E-1", name="Excavator")
        ids["equipment_down"] = references.upsert_equipment(
            db, code="E-2", name="Generator", status="MAINTENANCE"
        )
        ids["material"] = references.upsert_material(db, code="M-1", name="Cement", unit="bag", unit_cost=9.5)
        InventoryRepository().add_stock(db, ids["material"], STORE_STOCK)
        db.commit()
    return ids


def login_as(client, user_id: int, role: str, email: str = "user@test.local") -> None:
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["user_role"] = role
        sess["user_email"] = email


class FakeGateway:
    """In-memory persistence gateway honouring the conditional update contract."""

    def __init__(self, records: Dict[int, Dict[str, Any]] | None = None) -> None:
        self.records: Dict[int, Dict[str, Any]] = {
            int(key): dict(value) for key, value in (records or {}).items()
        }
        self.update_calls: list[tuple] = []
        self.fail_with: Exception | None = None

    def find_by_id(self, request_id):
        record = self.records.get(int(request_id))
        return dict(record) if record is not None else None

    def create(self, data: Dict[str, Any], number_for=None) -> Dict[str, Any]:
        new_id = max(self.records, default=0) + 1
        record = {"id": new_id, **data}
        if number_for is not None:
            record["request_number"] = number_for(new_id)
        self.records[new_id] = record
        return dict(record)

    def update_conditional(self, request_id, expected_status, patch):
        self.update_calls.append((request_id, expected_status, dict(patch)))
        if self.fail_with is not None:
            raise self.fail_with
        current = self.records.get(int(request_id))
        if current is None or current.get("status") != expected_status:
            raise StatusConflictError()
        current.update(patch)
        return dict(current)
