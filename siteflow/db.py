import sqlite3
from typing import Iterable

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g


REQUEST_STATUSES = (
    "PENDING",
    "APPROVED",
    "REJECTED",
    "ISSUED",
    "ACKNOWLEDGED",
    "COMPLETED",
    "CANCELLED",
)
STATUS_EVENT_ENTITIES = ("fuel_request", "material_request")


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def _connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 is not installed.")
        conn = psycopg2.connect(db_path)
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = _connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    if db.backend == "postgres":
        _init_db_postgres(db)
        return

    _init_db_sqlite(db)


def _sql_values(values: Iterable[str]) -> str:
    return ",".join(f"'{value}'" for value in values)


def _stage_columns(timestamp_type: str) -> str:
    return f"""
            approved_by_id INTEGER,
            approval_date {timestamp_type},
            approved_quantity REAL,
            approval_comments TEXT,
            rejection_reason TEXT,
            issued_by_id INTEGER,
            issuance_date {timestamp_type},
            issued_quantity REAL,
            issuance_comments TEXT,
            acknowledged_by_id INTEGER,
            acknowledgment_date {timestamp_type},
            acknowledged_quantity REAL,
            acknowledgment_comments TEXT,
            completed_by_id INTEGER,
            completion_date {timestamp_type},
            completion_comments TEXT,
            cancellation_reason TEXT,
            cancelled_at {timestamp_type},
    """


def _create_tables(db: Database, id_type: str, timestamp_type: str) -> None:
    statuses = _sql_values(REQUEST_STATUSES)

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS users (
            id {id_type},
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            display_name TEXT,
            role TEXT NOT NULL DEFAULT 'employee' CHECK (
                role IN ('admin','project_manager','store_manager','employee')
            ),
            created_at {timestamp_type} NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at {timestamp_type} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS projects (
            id {id_type},
            code TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'ACTIVE' CHECK (
                status IN ('PLANNING','ACTIVE','ON_HOLD','COMPLETED','CANCELLED')
            ),
            created_at {timestamp_type} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS equipment (
            id {id_type},
            code TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'OPERATIONAL' CHECK (
                status IN ('OPERATIONAL','MAINTENANCE','OUT_OF_SERVICE','RETIRED')
            ),
            created_at {timestamp_type} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS materials (
            id {id_type},
            code TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            unit TEXT NOT NULL DEFAULT 'unit',
            unit_cost REAL,
            created_at {timestamp_type} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS fuel_requests (
            id {id_type},
            request_number TEXT NOT NULL UNIQUE,
            status TEXT NOT NULL DEFAULT 'PENDING' CHECK (status IN ({statuses})),
            project_id INTEGER NOT NULL REFERENCES projects(id),
            equipment_id INTEGER NOT NULL REFERENCES equipment(id),
            fuel_type TEXT NOT NULL CHECK (fuel_type IN ('DIESEL','PETROL','KEROSENE')),
            requested_quantity REAL NOT NULL,
            odometer_km REAL,
            urgency TEXT NOT NULL DEFAULT 'NORMAL' CHECK (
                urgency IN ('LOW','NORMAL','HIGH','URGENT')
            ),
            justification TEXT NOT NULL,
            requested_by_id INTEGER NOT NULL,
            {_stage_columns(timestamp_type)}
            created_at {timestamp_type} NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at {timestamp_type} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS material_requests (
            id {id_type},
            request_number TEXT NOT NULL UNIQUE,
            status TEXT NOT NULL DEFAULT 'PENDING' CHECK (status IN ({statuses})),
            project_id INTEGER NOT NULL REFERENCES projects(id),
            material_id INTEGER NOT NULL REFERENCES materials(id),
            requested_quantity REAL NOT NULL,
            urgency TEXT NOT NULL DEFAULT 'NORMAL' CHECK (
                urgency IN ('LOW','NORMAL','HIGH','CRITICAL')
            ),
            delivery_location TEXT NOT NULL DEFAULT 'SITE' CHECK (
                delivery_location IN ('STORE','SITE')
            ),
            required_date TEXT,
            justification TEXT NOT NULL,
            unit_cost REAL,
            total_cost REAL,
            requested_by_id INTEGER NOT NULL,
            {_stage_columns(timestamp_type)}
            created_at {timestamp_type} NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at {timestamp_type} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS status_events (
            id {id_type},
            entity TEXT NOT NULL CHECK (
                entity IN ({_sql_values(STATUS_EVENT_ENTITIES)})
            ),
            entity_id INTEGER NOT NULL,
            from_status TEXT,
            to_status TEXT NOT NULL,
            reason TEXT,
            actor_user_id INTEGER,
            occurred_at {timestamp_type} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS material_inventory (
            id {id_type},
            material_id INTEGER NOT NULL REFERENCES materials(id),
            location_type TEXT NOT NULL CHECK (location_type IN ('STORE','SITE')),
            project_id INTEGER REFERENCES projects(id),
            current_stock REAL NOT NULL DEFAULT 0 CHECK (current_stock >= 0),
            last_updated {timestamp_type} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db.execute(
        f"""
        CREATE TABLE IF NOT EXISTS material_transactions (
            id {id_type},
            material_id INTEGER NOT NULL REFERENCES materials(id),
            transaction_type TEXT NOT NULL CHECK (transaction_type IN ('RECEIPT','ISSUE','ADJUSTMENT')),
            reference_type TEXT,
            reference_id INTEGER,
            from_location_type TEXT,
            to_location_type TEXT,
            to_project_id INTEGER,
            quantity REAL NOT NULL,
            unit_cost REAL,
            total_cost REAL,
            performed_by_id INTEGER,
            notes TEXT,
            created_at {timestamp_type} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    for table in ("fuel_requests", "material_requests"):
        db.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_status ON {table} (status)")
        db.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_project ON {table} (project_id)")
        db.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{table}_requested_by ON {table} (requested_by_id)"
        )
    db.execute(
        "CREATE INDEX IF NOT EXISTS idx_status_events_entity ON status_events (entity, entity_id)"
    )
    db.execute(
        "CREATE INDEX IF NOT EXISTS idx_material_inventory_location "
        "ON material_inventory (material_id, location_type, project_id)"
    )
    db.execute(
        "CREATE INDEX IF NOT EXISTS idx_material_transactions_material ON material_transactions (material_id)"
    )


def _init_db_sqlite(db: Database) -> None:
    _create_tables(db, "INTEGER PRIMARY KEY AUTOINCREMENT", "TEXT")
    db.commit()


def _init_db_postgres(db: Database) -> None:
    _create_tables(db, "SERIAL PRIMARY KEY", "TIMESTAMP")
    db.commit()

