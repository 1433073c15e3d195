from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request, session

from siteflow.application.auth_service import AuthService
from siteflow.db import get_db
from siteflow.domain.contracts import AuthLoginInput
from siteflow.errors import AuthenticationRequiredError, PermissionError as AppPermissionError
from siteflow.policies import normalize_role, role_label
from siteflow.repositories.user_repository import UserRepository
from siteflow.ui_strings import success_message


logger = logging.getLogger("siteflow.auth")

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

_AUTH_SERVICE = AuthService()
_USERS = UserRepository()
_PUBLIC_PATHS = {"/health", "/metrics", "/api/auth/login", "/api/auth/logout"}


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)

    @app.before_request
    def _require_login():
        if not app.config.get("AUTH_ENABLED", True):
            return None

        path = request.path or "/"
        if path in _PUBLIC_PATHS or not path.startswith("/api/"):
            return None
        if session.get("user_id"):
            return None
        raise AuthenticationRequiredError()


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        payload = {}
    auth_input = AuthLoginInput(
        email=str(payload.get("email") or ""),
        password=str(payload.get("password") or ""),
    )
    user = _AUTH_SERVICE.login(get_db(), auth_input, current_app.config.get("APP_USERS"))
    if user is None:
        logger.warning("login refused", extra={"user_email": auth_input.email.strip().lower()})
        raise AppPermissionError(
            code="auth_invalid_credentials",
            message_key="auth_invalid_credentials",
            http_status=401,
        )

    session.clear()
    session["user_id"] = user.id
    session["user_email"] = user.email
    session["display_name"] = user.display_name
    session["user_role"] = user.role
    logger.info("login succeeded", extra={"user_email": user.email, "user_role": user.role})
    return jsonify({"success": True, "data": _session_user()})


@auth_bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"success": True, "message": success_message("logged_out")})


@auth_bp.route("/me", methods=["GET"])
def me():
    if not session.get("user_id"):
        raise AuthenticationRequiredError()
    # The stored account wins over whatever the session cached at login.
    user = _USERS.find_by_id(get_db(), session["user_id"])
    if user is None:
        session.clear()
        raise AuthenticationRequiredError()
    session["user_email"] = user["email"]
    session["display_name"] = user["display_name"]
    session["user_role"] = user["role"]
    return jsonify({"success": True, "data": _session_user()})


def _session_user() -> dict:
    role = normalize_role(session.get("user_role"))
    return {
        "id": session.get("user_id"),
        "email": session.get("user_email"),
        "displayName": session.get("display_name"),
        "role": role,
        "roleLabel": role_label(role),
    }
