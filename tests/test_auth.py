import unittest

from siteflow.application.auth_service import AuthService
from siteflow.db import close_db, get_db
from tests.helpers.fixtures import build_app, login_as, seed_references
from tests.helpers.temp_db import TempDbSandbox


class ParseUsersTest(unittest.TestCase):
    def test_entries_with_optional_parts(self) -> None:
        users = AuthService.parse_users(
            "Boss@Site.local:pw1:The Boss:Project Manager; crew@site.local:pw2\nbroken-entry"
        )
        self.assertEqual(len(users), 2)
        self.assertEqual(users[0]["email"], "boss@site.local")
        self.assertEqual(users[0]["display_name"], "The Boss")
        self.assertEqual(users[0]["role"], "project_manager")
        self.assertEqual(users[1]["display_name"], "crew")
        self.assertEqual(users[1]["role"], "employee")

    def test_empty_or_unsupported_input(self) -> None:
        self.assertEqual(AuthService.parse_users(None), [])
        self.assertEqual(AuthService.parse_users(42), [])


class AuthRoutesTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="auth_routes")
        self.app = build_app(
            self._temp_db,
            APP_USERS="lead@site.local:lead-pass:Site Lead:store manager",
        )
        self.ids = seed_references(self.app)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_login_with_stored_user(self) -> None:
        response = self.client.post(
            "/api/auth/login", json={"email": "PM@test.local", "password": "secret123"}
        )
        self.assertEqual(response.status_code, 200)
        data = response.get_json()["data"]
        self.assertEqual(data["id"], self.ids["users"]["pm"])
        self.assertEqual(data["role"], "project_manager")
        self.assertEqual(data["roleLabel"], "Project Manager")

        me = self.client.get("/api/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.get_json()["data"]["email"], "pm@test.local")

    def test_configured_user_is_bootstrapped_on_first_login(self) -> None:
        first = self.client.post(
            "/api/auth/login", json={"email": "lead@site.local", "password": "lead-pass"}
        )
        self.assertEqual(first.status_code, 200)
        user_id = first.get_json()["data"]["id"]
        self.assertEqual(first.get_json()["data"]["role"], "store_manager")

        self.client.post("/api/auth/logout")
        second = self.client.post(
            "/api/auth/login", json={"email": "lead@site.local", "password": "lead-pass"}
        )
        self.assertEqual(second.get_json()["data"]["id"], user_id)

    def test_wrong_password_is_rejected(self) -> None:
        response = self.client.post(
            "/api/auth/login", json={"email": "pm@test.local", "password": "nope"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"], "auth_invalid_credentials")

    def test_missing_credentials(self) -> None:
        response = self.client.post("/api/auth/login", json={"email": "pm@test.local"})
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "auth_missing_credentials")
        self.assertEqual(payload["field"], "password")

    def test_logout_clears_the_session(self) -> None:
        self.client.post("/api/auth/login", json={"email": "pm@test.local", "password": "secret123"})
        logout = self.client.post("/api/auth/logout")
        self.assertEqual(logout.status_code, 200)

        me = self.client.get("/api/auth/me")
        self.assertEqual(me.status_code, 401)

    def test_me_reads_the_stored_account(self) -> None:
        self.client.post("/api/auth/login", json={"email": "pm@test.local", "password": "secret123"})
        with self.app.app_context():
            db = get_db()
            db.execute("UPDATE users SET role = ? WHERE id = ?", ("admin", self.ids["users"]["pm"]))
            db.commit()

        me = self.client.get("/api/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.get_json()["data"]["role"], "admin")
        self.assertEqual(me.get_json()["data"]["roleLabel"], "Admin")

    def test_me_for_removed_account_signs_out(self) -> None:
        login_as(self.client, 9999, "admin", "ghost@test.local")
        me = self.client.get("/api/auth/me")
        self.assertEqual(me.status_code, 401)
        with self.client.session_transaction() as sess:
            self.assertNotIn("user_id", sess)

    def test_logged_in_session_reaches_request_api(self) -> None:
        self.client.post("/api/auth/login", json={"email": "requester@test.local", "password": "secret123"})
        response = self.client.get("/api/fuel-requests")
        self.assertEqual(response.status_code, 200)


if __name__ == "__main__":
    unittest.main()
