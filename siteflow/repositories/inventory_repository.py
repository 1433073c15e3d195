from __future__ import annotations

from typing import Any, Mapping

from siteflow.errors import ValidationError
from siteflow.repositories.base import BaseRepository


STORE = "STORE"
SITE = "SITE"


class InventoryRepository(BaseRepository):
    """Stock levels per material and location, plus the movement log."""

    def find_stock(
        self, db, material_id: int, location_type: str, project_id: int | None = None
    ) -> dict | None:
        if project_id is None:
            row = db.execute(
                """
                SELECT id, material_id, location_type, project_id, current_stock
                FROM material_inventory
                WHERE material_id = ? AND location_type = ? AND project_id IS NULL
                LIMIT 1
                """,
                (material_id, location_type),
            ).fetchone()
        else:
            row = db.execute(
                """
                SELECT id, material_id, location_type, project_id, current_stock
                FROM material_inventory
                WHERE material_id = ? AND location_type = ? AND project_id = ?
                LIMIT 1
                """,
                (material_id, location_type, project_id),
            ).fetchone()
        return self.row_to_dict(row)

    def stock_level(
        self, db, material_id: int, location_type: str = STORE, project_id: int | None = None
    ) -> float:
        stock = self.find_stock(db, material_id, location_type, project_id)
        if stock is None:
            return 0.0
        return float(stock["current_stock"] or 0)

    def add_stock(
        self,
        db,
        material_id: int,
        quantity: float,
        location_type: str = STORE,
        project_id: int | None = None,
    ) -> int:
        stock = self.find_stock(db, material_id, location_type, project_id)
        if stock:
            db.execute(
                """
                UPDATE material_inventory
                SET current_stock = current_stock + ?, last_updated = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (quantity, stock["id"]),
            )
            return int(stock["id"])
        cursor = db.execute(
            """
            INSERT INTO material_inventory (material_id, location_type, project_id, current_stock)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            (material_id, location_type, project_id, quantity),
        )
        return self.inserted_id(cursor)

    def take_from_store(
        self, db, material_id: int, quantity: float, field: str = "issuedQuantity"
    ) -> None:
        stock = self.find_stock(db, material_id, STORE)
        if stock is not None:
            cursor = db.execute(
                """
                UPDATE material_inventory
                SET current_stock = current_stock - ?, last_updated = CURRENT_TIMESTAMP
                WHERE id = ? AND current_stock >= ?
                """,
                (quantity, stock["id"], quantity),
            )
            if cursor.rowcount == 1:
                return
        available = float(stock["current_stock"] or 0) if stock else 0.0
        raise ValidationError(
            code="insufficient_stock",
            message_key="insufficient_stock",
            details=f"Insufficient stock available: {available:g} in store, {quantity:g} requested.",
            payload={"field": field},
        )

    def record_transaction(self, db, **values: Any) -> int:
        cursor = db.execute(
            """
            INSERT INTO material_transactions (
                material_id, transaction_type, reference_type, reference_id,
                from_location_type, to_location_type, to_project_id,
                quantity, unit_cost, total_cost, performed_by_id, notes
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                values["material_id"],
                values.get("transaction_type", "ISSUE"),
                values.get("reference_type", "REQUEST"),
                values.get("reference_id"),
                values.get("from_location_type"),
                values.get("to_location_type"),
                values.get("to_project_id"),
                values["quantity"],
                values.get("unit_cost"),
                values.get("total_cost"),
                values.get("performed_by_id"),
                values.get("notes"),
            ),
        )
        return self.inserted_id(cursor)

    def list_transactions(self, db, material_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM material_transactions
            WHERE material_id = ?
            ORDER BY id DESC
            """,
            (material_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def issue_request(self, db, record: Mapping[str, Any]) -> None:
        """Move the issued quantity of a material request out of the store."""
        material_id = int(record["material_id"])
        quantity = float(record["issued_quantity"])
        self.take_from_store(db, material_id, quantity)

        destination = str(record.get("delivery_location") or SITE).upper()
        to_project_id = None
        if destination == SITE:
            to_project_id = record.get("project_id")
            self.add_stock(db, material_id, quantity, SITE, to_project_id)

        unit_cost = record.get("unit_cost")
        self.record_transaction(
            db,
            material_id=material_id,
            reference_id=record.get("id"),
            from_location_type=STORE,
            to_location_type=destination,
            to_project_id=to_project_id,
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=round(float(unit_cost) * quantity, 2) if unit_cost is not None else None,
            performed_by_id=record.get("issued_by_id"),
            notes=record.get("issuance_comments"),
        )
