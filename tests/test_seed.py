import unittest

from siteflow.db import close_db, get_db
from tests.helpers.fixtures import build_app
from tests.helpers.temp_db import TempDbSandbox


class SeedDemoCommandTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="seed_demo")
        self.app = build_app(self._temp_db, APP_USERS="boss@site.local:pw:Boss:admin")

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_seed_demo_is_idempotent(self) -> None:
        runner = self.app.test_cli_runner()

        first = runner.invoke(args=["seed-demo"])
        self.assertEqual(first.exit_code, 0, msg=first.output)
        self.assertIn("4 new users", first.output)

        second = runner.invoke(args=["seed-demo"])
        self.assertEqual(second.exit_code, 0, msg=second.output)
        self.assertIn("0 new users", second.output)

        with self.app.app_context():
            db = get_db()
            projects = db.execute("SELECT COUNT(*) FROM projects").fetchone()[0]
            store_rows = db.execute(
                "SELECT COUNT(*) FROM material_inventory WHERE location_type = 'STORE'"
            ).fetchone()[0]
            roles = {
                row["email"]: row["role"]
                for row in db.execute("SELECT email, role FROM users").fetchall()
            }
        self.assertEqual(projects, 3)
        self.assertEqual(store_rows, 3)
        self.assertEqual(roles["boss@site.local"], "admin")
        self.assertEqual(roles["store@siteflow.local"], "store_manager")

    def test_seeded_user_can_sign_in(self) -> None:
        self.app.test_cli_runner().invoke(args=["seed-demo"])
        client = self.app.test_client()
        response = client.post(
            "/api/auth/login", json={"email": "worker@siteflow.local", "password": "demo123"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["data"]["role"], "employee")


if __name__ == "__main__":
    unittest.main()
