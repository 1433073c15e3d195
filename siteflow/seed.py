from __future__ import annotations

import click
from flask import Flask

from siteflow.application.auth_service import AuthService
from siteflow.db import get_db, init_db
from siteflow.repositories.inventory_repository import STORE, InventoryRepository
from siteflow.repositories.reference_repository import ReferenceRepository


DEMO_USERS = (
    "pm@siteflow.local:demo123:Paula Manager:Project Manager",
    "store@siteflow.local:demo123:Sam Storekeeper:Store Manager",
    "worker@siteflow.local:demo123:Eli Worker:Employee",
)

DEMO_PROJECTS = (
    {"code": "PRJ-001", "name": "Riverside Bridge", "status": "ACTIVE"},
    {"code": "PRJ-002", "name": "North Depot Extension", "status": "ACTIVE"},
    {"code": "PRJ-003", "name": "Harbour Road Resurfacing", "status": "ON_HOLD"},
)

DEMO_EQUIPMENT = (
    {"code": "EXC-01", "name": "Excavator CAT 320", "status": "OPERATIONAL"},
    {"code": "LDR-02", "name": "Wheel Loader 950", "status": "OPERATIONAL"},
    {"code": "GEN-03", "name": "Generator 100 kVA", "status": "MAINTENANCE"},
)

DEMO_MATERIALS = (
    {"code": "CEM-50", "name": "Cement 50kg bag", "unit": "bag", "unit_cost": 9.5},
    {"code": "RBR-12", "name": "Rebar 12mm", "unit": "bar", "unit_cost": 14.25},
    {"code": "AGG-20", "name": "Aggregate 20mm", "unit": "ton", "unit_cost": 38.0},
)

DEMO_STORE_STOCK = {"CEM-50": 400, "RBR-12": 250, "AGG-20": 60}


def seed_demo_data(db, raw_users: object) -> dict:
    references = ReferenceRepository()
    for project in DEMO_PROJECTS:
        references.upsert_project(db, **project)
    for equipment in DEMO_EQUIPMENT:
        references.upsert_equipment(db, **equipment)
    inventory = InventoryRepository()
    for material in DEMO_MATERIALS:
        material_id = references.upsert_material(db, **material)
        # Opening balance only; later runs leave issued stock alone.
        if inventory.find_stock(db, material_id, STORE) is None:
            inventory.add_stock(db, material_id, DEMO_STORE_STOCK.get(material["code"], 0))
    db.commit()

    auth_service = AuthService()
    users_created = auth_service.ensure_configured_users(db, raw_users)
    users_created += auth_service.ensure_configured_users(db, list(DEMO_USERS))
    return {
        "projects": len(DEMO_PROJECTS),
        "equipment": len(DEMO_EQUIPMENT),
        "materials": len(DEMO_MATERIALS),
        "users_created": users_created,
    }


def register_seed_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    def seed_demo() -> None:
        """Create the schema if needed and load demo reference data."""
        init_db()
        summary = seed_demo_data(get_db(), app.config.get("APP_USERS"))
        click.echo(
            "Seeded {projects} projects, {equipment} equipment, {materials} materials, "
            "{users_created} new users.".format(**summary)
        )
