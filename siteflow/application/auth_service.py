from __future__ import annotations

import logging
from typing import Iterable

from werkzeug.security import check_password_hash

from siteflow.domain.contracts import AuthLoginInput, AuthUser
from siteflow.errors import ValidationError
from siteflow.policies import normalize_role
from siteflow.repositories.user_repository import UserRepository


logger = logging.getLogger("siteflow.auth")


class AuthService:
    def __init__(self, repository: UserRepository | None = None) -> None:
        self.repository = repository or UserRepository()

    def login(self, db, auth_input: AuthLoginInput, raw_users: object) -> AuthUser | None:
        email = (auth_input.email or "").strip().lower()
        password = auth_input.password or ""
        if not email or not password:
            raise ValidationError(
                code="auth_missing_credentials",
                message_key="auth_missing_credentials",
                payload={"field": "email" if not email else "password"},
            )

        db_user = self.repository.find_by_email(db, email)
        if db_user:
            if not check_password_hash(db_user["password_hash"], password):
                return None
            return self._to_auth_user(db_user)

        # Configured users are written to the users table on first login.
        for user in self.parse_users(raw_users):
            if user["email"] == email and user["password"] == password:
                user_id = self.repository.create_user(
                    db,
                    email=user["email"],
                    password=user["password"],
                    display_name=user["display_name"],
                    role=user["role"],
                )
                logger.info("bootstrap user created", extra={"user_email": email, "user_role": user["role"]})
                return AuthUser(
                    id=user_id,
                    email=user["email"],
                    display_name=user["display_name"],
                    role=user["role"],
                )
        return None

    def ensure_configured_users(self, db, raw_users: object) -> int:
        created = 0
        for user in self.parse_users(raw_users):
            if self.repository.find_by_email(db, user["email"]):
                continue
            self.repository.create_user(
                db,
                email=user["email"],
                password=user["password"],
                display_name=user["display_name"],
                role=user["role"],
            )
            created += 1
        return created

    @staticmethod
    def _to_auth_user(row: dict) -> AuthUser:
        return AuthUser(
            id=int(row["id"]),
            email=row["email"],
            display_name=row.get("display_name") or row["email"].split("@")[0],
            role=normalize_role(row.get("role")),
        )

    @staticmethod
    def parse_users(raw_users: object) -> Iterable[dict]:
        """Parse ``email:password:display name:role`` entries.

        Entries are separated by commas, semicolons or newlines. Display name
        and role are optional; the role defaults to employee.
        """
        if not raw_users:
            return []
        if isinstance(raw_users, str):
            entries = []
            for chunk in raw_users.replace("\n", ",").replace(";", ",").split(","):
                entry = chunk.strip()
                if entry:
                    entries.append(entry)
        elif isinstance(raw_users, (list, tuple, set)):
            entries = [str(item).strip() for item in raw_users if str(item).strip()]
        else:
            return []

        users = []
        for entry in entries:
            parts = [part.strip() for part in entry.split(":")]
            if len(parts) < 2 or not parts[0] or not parts[1]:
                continue
            email, password = parts[0].lower(), parts[1]
            display_name = parts[2] if len(parts) > 2 and parts[2] else email.split("@")[0]
            role = normalize_role(parts[3] if len(parts) > 3 else None)
            users.append(
                {
                    "email": email,
                    "password": password,
                    "display_name": display_name,
                    "role": role,
                }
            )
        return users
