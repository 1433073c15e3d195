from __future__ import annotations

from werkzeug.security import generate_password_hash

from siteflow.repositories.base import BaseRepository


class UserRepository(BaseRepository):
    def find_by_email(self, db, email: str) -> dict | None:
        row = db.execute(
            """
            SELECT id, email, password_hash, display_name, role
            FROM users
            WHERE email = ?
            """,
            (email,),
        ).fetchone()
        return self.row_to_dict(row)

    def find_by_id(self, db, user_id: int) -> dict | None:
        row = db.execute(
            "SELECT id, email, display_name, role FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def create_user(
        self,
        db,
        *,
        email: str,
        password: str,
        display_name: str | None,
        role: str,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO users (email, password_hash, display_name, role)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            (email, generate_password_hash(password), display_name, role),
        )
        user_id = self.inserted_id(cursor)
        db.commit()
        return user_id
