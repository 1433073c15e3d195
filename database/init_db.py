import os

from siteflow import create_app
from siteflow.db import get_db, init_db
from siteflow.seed import seed_demo_data


app = create_app()


if __name__ == "__main__":
    with app.app_context():
        init_db()
        if os.environ.get("SEED_DEMO", "0").strip().lower() in {"1", "true", "yes"}:
            summary = seed_demo_data(get_db(), app.config.get("APP_USERS"))
            print(f"Seeded demo data: {summary}")
    print("Database initialized.")
