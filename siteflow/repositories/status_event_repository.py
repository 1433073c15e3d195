from __future__ import annotations

from siteflow.repositories.base import BaseRepository


class StatusEventRepository(BaseRepository):
    def add_event(
        self,
        db,
        *,
        entity: str,
        entity_id: int,
        from_status: str | None,
        to_status: str | None,
        reason: str | None,
        actor_user_id: int | None = None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO status_events (entity, entity_id, from_status, to_status, reason, actor_user_id)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (entity, entity_id, from_status, to_status, reason, actor_user_id),
        )
        return self.inserted_id(cursor)

    def list_for_entity(self, db, *, entity: str, entity_id: int, limit: int = 120) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, entity, entity_id, from_status, to_status, reason, actor_user_id, occurred_at
            FROM status_events
            WHERE entity = ? AND entity_id = ?
            ORDER BY id DESC
            LIMIT ?
            """,
            (entity, entity_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
