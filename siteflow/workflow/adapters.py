"""Per-kind differences between fuel and material requests.

The workflow itself is shared; an adapter only names the table, the
referenced resource, the few extra columns a kind recomputes on a
transition and any stock movement that must commit with the status change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping

from siteflow.repositories.inventory_repository import InventoryRepository
from siteflow.workflow.guard import ActorSet
from siteflow.workflow.states import RequestStatus, Transition


ExtraPatch = Callable[[Transition, Mapping[str, Any], Dict[str, Any]], Dict[str, Any]]
# Runs on the gateway connection after the conditional update, before commit.
StatusHook = Callable[[Any, Mapping[str, Any], Dict[str, Any]], None]


def _no_extra_patch(
    transition: Transition, record: Mapping[str, Any], patch: Dict[str, Any]
) -> Dict[str, Any]:
    return {}


def _no_status_hook(db, record: Mapping[str, Any], patch: Dict[str, Any]) -> None:
    return None


@dataclass(frozen=True)
class ResourceAdapter:
    kind: str
    table: str
    resource_table: str
    resource_field: str
    resource_api_field: str
    number_prefix: str
    entity_label: str
    event_entity: str
    actor_overrides: Mapping[Transition, ActorSet] = field(default_factory=dict)
    extra_patch: ExtraPatch = _no_extra_patch
    on_status_change: StatusHook = _no_status_hook

    def build_extra_patch(
        self, transition: Transition, record: Mapping[str, Any], patch: Dict[str, Any]
    ) -> Dict[str, Any]:
        return dict(self.extra_patch(transition, record, patch) or {})


def _material_total_cost(
    transition: Transition, record: Mapping[str, Any], patch: Dict[str, Any]
) -> Dict[str, Any]:
    if transition != Transition.APPROVE:
        return {}
    unit_cost = record.get("unit_cost")
    quantity = patch.get("approved_quantity")
    if unit_cost is None or quantity is None:
        return {}
    return {"total_cost": round(float(unit_cost) * float(quantity), 2)}


_INVENTORY = InventoryRepository()


def _material_stock_movement(db, record: Mapping[str, Any], patch: Dict[str, Any]) -> None:
    if patch.get("status") == RequestStatus.ISSUED.value:
        _INVENTORY.issue_request(db, record)


FUEL_REQUESTS = ResourceAdapter(
    kind="fuel",
    table="fuel_requests",
    resource_table="equipment",
    resource_field="equipment_id",
    resource_api_field="equipmentId",
    number_prefix="FR",
    entity_label="Fuel request",
    event_entity="fuel_request",
)

MATERIAL_REQUESTS = ResourceAdapter(
    kind="material",
    table="material_requests",
    resource_table="materials",
    resource_field="material_id",
    resource_api_field="materialId",
    number_prefix="MR",
    entity_label="Material request",
    event_entity="material_request",
    extra_patch=_material_total_cost,
    on_status_change=_material_stock_movement,
)

ADAPTERS: Dict[str, ResourceAdapter] = {
    FUEL_REQUESTS.kind: FUEL_REQUESTS,
    MATERIAL_REQUESTS.kind: MATERIAL_REQUESTS,
    "fuel-requests": FUEL_REQUESTS,
    "material-requests": MATERIAL_REQUESTS,
}


def adapter_for(kind: str) -> ResourceAdapter:
    return ADAPTERS[str(kind or "").strip().lower()]
