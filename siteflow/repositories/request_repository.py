from __future__ import annotations

import uuid
from typing import Any, Callable, Dict, List, Tuple

from siteflow.domain.contracts import RequestListFilters
from siteflow.errors import StatusConflictError
from siteflow.repositories.base import BaseRepository
from siteflow.repositories.status_event_repository import StatusEventRepository
from siteflow.workflow.adapters import ResourceAdapter
from siteflow.workflow.states import STAGE_FIELDS


_UPDATABLE_COLUMNS = {"status", "total_cost"} | {
    column for columns in STAGE_FIELDS.values() for column in columns
}

# Requests whose quantity has left the store.
ISSUED_STATUSES = ("ISSUED", "ACKNOWLEDGED", "COMPLETED")

_CREATE_COLUMNS = (
    "request_number",
    "status",
    "project_id",
    "equipment_id",
    "material_id",
    "fuel_type",
    "requested_quantity",
    "odometer_km",
    "urgency",
    "delivery_location",
    "required_date",
    "justification",
    "unit_cost",
    "total_cost",
    "requested_by_id",
    "created_at",
    "updated_at",
)


class RequestRepository(BaseRepository):
    def __init__(self, adapter: ResourceAdapter, status_events: StatusEventRepository | None = None) -> None:
        self.adapter = adapter
        self.status_events = status_events or StatusEventRepository()

    @property
    def table(self) -> str:
        return self.adapter.table

    def find_by_id(self, db, request_id) -> dict | None:
        row = db.execute(
            f"SELECT * FROM {self.table} WHERE id = ? LIMIT 1",
            (request_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def create(self, db, data: Dict[str, Any]) -> int:
        columns = [column for column in _CREATE_COLUMNS if column in data]
        placeholders = ", ".join("?" for _ in columns)
        cursor = db.execute(
            f"""
            INSERT INTO {self.table} ({", ".join(columns)})
            VALUES ({placeholders})
            RETURNING id
            """,
            tuple(data[column] for column in columns),
        )
        return self.inserted_id(cursor)

    def update_conditional(self, db, request_id, expected_status: str, patch: Dict[str, Any]) -> None:
        unknown = set(patch) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns not updatable on {self.table}: {', '.join(sorted(unknown))}")
        if not patch:
            raise ValueError("Empty patch.")

        updates = [f"{key} = ?" for key in patch.keys()]
        params = list(patch.values())
        params.extend([request_id, expected_status])
        cursor = db.execute(
            f"""
            UPDATE {self.table}
            SET {", ".join(updates)}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND status = ?
            """,
            tuple(params),
        )
        if cursor.rowcount != 1:
            raise StatusConflictError(
                details=f"{self.adapter.entity_label} {request_id} is no longer {expected_status}.",
            )

    def _filter_clause(self, filters: RequestListFilters) -> Tuple[str, List[Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if filters.status:
            clauses.append("r.status = ?")
            params.append(filters.status)
        if filters.project_id is not None:
            clauses.append("r.project_id = ?")
            params.append(filters.project_id)
        if filters.resource_id is not None:
            clauses.append(f"r.{self.adapter.resource_field} = ?")
            params.append(filters.resource_id)
        if filters.requested_by_id is not None:
            clauses.append("r.requested_by_id = ?")
            params.append(filters.requested_by_id)
        if filters.search:
            clauses.append("(LOWER(r.request_number) LIKE ? OR LOWER(r.justification) LIKE ?)")
            pattern = f"%{filters.search.strip().lower()}%"
            params.extend([pattern, pattern])
        if filters.created_from:
            clauses.append("r.created_at >= ?")
            params.append(filters.created_from)
        if filters.created_before:
            clauses.append("r.created_at < ?")
            params.append(filters.created_before)
        if not clauses:
            return "", params
        return "WHERE " + " AND ".join(clauses), params

    def list_requests(self, db, filters: RequestListFilters) -> list[dict]:
        where, params = self._filter_clause(filters)
        offset = max(0, (filters.page - 1) * filters.limit)
        rows = db.execute(
            f"""
            SELECT r.*,
                   p.name AS project_name,
                   res.name AS resource_name,
                   u.display_name AS requested_by_name
            FROM {self.table} r
            LEFT JOIN projects p ON p.id = r.project_id
            LEFT JOIN {self.adapter.resource_table} res ON res.id = r.{self.adapter.resource_field}
            LEFT JOIN users u ON u.id = r.requested_by_id
            {where}
            ORDER BY r.id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, int(filters.limit), int(offset)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def count(self, db, filters: RequestListFilters) -> int:
        where, params = self._filter_clause(filters)
        row = db.execute(
            f"SELECT COUNT(*) AS total FROM {self.table} r {where}",
            tuple(params),
        ).fetchone()
        return int(self.scalar(row, "total"))

    def _group_counts(self, db, column: str, filters: RequestListFilters | None = None) -> Dict[str, int]:
        where, params = self._filter_clause(filters or RequestListFilters())
        rows = db.execute(
            f"""
            SELECT r.{column} AS bucket, COUNT(*) AS total
            FROM {self.table} r
            {where}
            GROUP BY r.{column}
            """,
            tuple(params),
        ).fetchall()
        return {str(row["bucket"]): int(row["total"]) for row in rows}

    def status_counts(self, db, filters: RequestListFilters | None = None) -> Dict[str, int]:
        return self._group_counts(db, "status", filters)

    def urgency_counts(self, db, filters: RequestListFilters | None = None) -> Dict[str, int]:
        return self._group_counts(db, "urgency", filters)

    def issued_totals(self, db, column: str, filters: RequestListFilters | None = None) -> list[dict]:
        """Count and issued quantity of requests that reached the issue stage, per ``column``."""
        where, params = self._filter_clause(filters or RequestListFilters())
        issued = ", ".join("?" for _ in ISSUED_STATUSES)
        where = f"{where} AND" if where else "WHERE"
        rows = db.execute(
            f"""
            SELECT r.{column} AS bucket,
                   COUNT(*) AS total,
                   COALESCE(SUM(r.issued_quantity), 0) AS issued_quantity
            FROM {self.table} r
            {where} r.status IN ({issued})
            GROUP BY r.{column}
            ORDER BY r.{column}
            """,
            (*params, *ISSUED_STATUSES),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def project_names(self, db, project_ids) -> Dict[int, str]:
        ids = [int(project_id) for project_id in project_ids if project_id is not None]
        if not ids:
            return {}
        rows = db.execute(
            f"SELECT id, name FROM projects WHERE id IN ({', '.join('?' for _ in ids)})",
            tuple(ids),
        ).fetchall()
        return {int(row["id"]): row["name"] for row in rows}

    def creation_rows(self, db, filters: RequestListFilters | None = None) -> list[dict]:
        where, params = self._filter_clause(filters or RequestListFilters())
        rows = db.execute(
            f"SELECT r.created_at, r.issued_quantity FROM {self.table} r {where}",
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def assign_number(self, db, request_id: int, request_number: str) -> None:
        db.execute(
            f"UPDATE {self.table} SET request_number = ? WHERE id = ?",
            (request_number, request_id),
        )

    def completed_durations(self, db, filters: RequestListFilters | None = None) -> list[dict]:
        where, params = self._filter_clause(filters or RequestListFilters())
        where = f"{where} AND" if where else "WHERE"
        rows = db.execute(
            f"""
            SELECT r.created_at, r.completion_date
            FROM {self.table} r
            {where} r.status = 'COMPLETED' AND r.completion_date IS NOT NULL
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)


class RequestGateway:
    """Persistence calls for one connection, each committed on its own."""

    def __init__(self, db, repository: RequestRepository) -> None:
        self.db = db
        self.repository = repository

    @property
    def adapter(self) -> ResourceAdapter:
        return self.repository.adapter

    def find_by_id(self, request_id) -> dict | None:
        return self.repository.find_by_id(self.db, request_id)

    def create(self, data: Dict[str, Any], number_for: Callable[[int], str] | None = None) -> dict:
        """Insert a request and its first status event.

        With ``number_for`` the request number is derived from the new row id.
        """
        if number_for is not None:
            data = dict(data, request_number=f"{self.adapter.number_prefix}-NEW-{uuid.uuid4().hex}")
        try:
            request_id = self.repository.create(self.db, data)
            if number_for is not None:
                self.repository.assign_number(self.db, request_id, number_for(request_id))
            self.repository.status_events.add_event(
                self.db,
                entity=self.adapter.event_entity,
                entity_id=request_id,
                from_status=None,
                to_status=data.get("status"),
                reason=None,
                actor_user_id=data.get("requested_by_id"),
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return self.find_by_id(request_id)

    def update_conditional(self, request_id, expected_status: str, patch: Dict[str, Any]) -> dict:
        try:
            self.repository.update_conditional(self.db, request_id, expected_status, patch)
            updated = self.repository.find_by_id(self.db, request_id)
            self.adapter.on_status_change(self.db, updated, patch)
            self.repository.status_events.add_event(
                self.db,
                entity=self.adapter.event_entity,
                entity_id=int(request_id),
                from_status=expected_status,
                to_status=patch.get("status"),
                reason=patch.get("rejection_reason") or patch.get("cancellation_reason"),
                actor_user_id=_actor_from_patch(patch),
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return self.find_by_id(request_id)


def _actor_from_patch(patch: Dict[str, Any]) -> int | None:
    for column in ("approved_by_id", "issued_by_id", "acknowledged_by_id", "completed_by_id"):
        if patch.get(column) is not None:
            return patch[column]
    return None
