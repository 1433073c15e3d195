from __future__ import annotations

from siteflow.repositories.base import BaseRepository


class ReferenceRepository(BaseRepository):
    def get_project(self, db, project_id: int) -> dict | None:
        row = db.execute(
            "SELECT id, code, name, status FROM projects WHERE id = ? LIMIT 1",
            (project_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def get_equipment(self, db, equipment_id: int) -> dict | None:
        row = db.execute(
            "SELECT id, code, name, status FROM equipment WHERE id = ? LIMIT 1",
            (equipment_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def get_material(self, db, material_id: int) -> dict | None:
        row = db.execute(
            "SELECT id, code, name, unit, unit_cost FROM materials WHERE id = ? LIMIT 1",
            (material_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def upsert_project(self, db, *, code: str, name: str, status: str = "ACTIVE") -> int:
        existing = db.execute("SELECT id FROM projects WHERE code = ?", (code,)).fetchone()
        if existing:
            db.execute("UPDATE projects SET name = ?, status = ? WHERE code = ?", (name, status, code))
            return int(self.scalar(existing, "id"))
        cursor = db.execute(
            "INSERT INTO projects (code, name, status) VALUES (?, ?, ?) RETURNING id",
            (code, name, status),
        )
        return self.inserted_id(cursor)

    def upsert_equipment(self, db, *, code: str, name: str, status: str = "OPERATIONAL") -> int:
        existing = db.execute("SELECT id FROM equipment WHERE code = ?", (code,)).fetchone()
        if existing:
            db.execute("UPDATE equipment SET name = ?, status = ? WHERE code = ?", (name, status, code))
            return int(self.scalar(existing, "id"))
        cursor = db.execute(
            "INSERT INTO equipment (code, name, status) VALUES (?, ?, ?) RETURNING id",
            (code, name, status),
        )
        return self.inserted_id(cursor)

    def upsert_material(
        self,
        db,
        *,
        code: str,
        name: str,
        unit: str = "unit",
        unit_cost: float | None = None,
    ) -> int:
        existing = db.execute("SELECT id FROM materials WHERE code = ?", (code,)).fetchone()
        if existing:
            db.execute(
                "UPDATE materials SET name = ?, unit = ?, unit_cost = ? WHERE code = ?",
                (name, unit, unit_cost, code),
            )
            return int(self.scalar(existing, "id"))
        cursor = db.execute(
            "INSERT INTO materials (code, name, unit, unit_cost) VALUES (?, ?, ?, ?) RETURNING id",
            (code, name, unit, unit_cost),
        )
        return self.inserted_id(cursor)
