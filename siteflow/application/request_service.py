from __future__ import annotations

import math
import secrets
import string
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping

from siteflow.domain.contracts import Caller, RequestCreateInput, RequestListFilters, ServiceOutput
from siteflow.errors import NotFoundError, ValidationError
from siteflow.repositories.reference_repository import ReferenceRepository
from siteflow.repositories.request_repository import RequestGateway, RequestRepository
from siteflow.ui_strings import status_label, success_message
from siteflow.workflow.adapters import FUEL_REQUESTS, ResourceAdapter
from siteflow.workflow.engine import RequestWorkflowEngine
from siteflow.workflow.ledger import coerce_quantity, quantity_error
from siteflow.workflow.results import http_status_for
from siteflow.workflow.states import (
    INITIAL_STATUS,
    RequestStatus,
    Transition,
    build_lifecycle_steps,
    flow_meta,
    rule_for,
)


MAX_REQUESTED_QUANTITY = 10000
MAX_PAGE_SIZE = 200
TREND_MONTHS = 12

FUEL_TYPES = {"DIESEL", "PETROL", "KEROSENE"}
FUEL_URGENCIES = {"LOW", "NORMAL", "HIGH", "URGENT"}
MATERIAL_URGENCIES = {"LOW", "NORMAL", "HIGH", "CRITICAL"}
DELIVERY_LOCATIONS = {"STORE", "SITE"}

_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def _invalid(field: str, reason: str) -> ValidationError:
    return ValidationError(details=f"{field} {reason}", payload={"field": field})


def _positive_id(field: str, value: Any) -> int:
    if isinstance(value, bool):
        raise _invalid(field, "is required")
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        raise _invalid(field, "is required") from None
    if parsed <= 0:
        raise _invalid(field, "is required")
    return parsed


def _choice(field: str, value: Any, allowed: set[str], default: str | None = None) -> str | None:
    raw = str(value or "").strip().upper()
    if not raw:
        if default is None:
            raise _invalid(field, "is required")
        return default
    if raw not in allowed:
        raise _invalid(field, "must be one of " + ", ".join(sorted(allowed)))
    return raw


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = str(value).strip()
        if not raw:
            return None
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_day(field: str, value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if value is None or isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        raise _invalid(field, "must be a date (YYYY-MM-DD)") from None


def fuel_request_number(now: datetime | None = None) -> str:
    moment = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(_NUMBER_ALPHABET) for _ in range(6))
    return f"FR-{int(moment.timestamp() * 1000)}-{suffix}"


def material_request_number(request_id: int) -> str:
    return f"MR-{int(request_id):04d}"


class RequestService:
    def __init__(
        self,
        adapter: ResourceAdapter,
        repository: RequestRepository | None = None,
        references: ReferenceRepository | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.adapter = adapter
        self.repository = repository or RequestRepository(adapter)
        self.references = references or ReferenceRepository()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def is_fuel(self) -> bool:
        return self.adapter.kind == FUEL_REQUESTS.kind

    def gateway(self, db) -> RequestGateway:
        return RequestGateway(db, self.repository)

    def engine(self, db) -> RequestWorkflowEngine:
        return RequestWorkflowEngine(self.gateway(db), self.adapter, clock=self._clock)

    def create_request(self, db, create_input: RequestCreateInput, caller: Caller) -> ServiceOutput:
        if caller.user_id is None:
            raise _invalid("requestedById", "is required")

        project_id = _positive_id("projectId", create_input.project_id)
        resource_id = _positive_id(self.adapter.resource_api_field, create_input.resource_id)

        reason = quantity_error(create_input.requested_quantity, MAX_REQUESTED_QUANTITY, "maximum")
        if reason is not None:
            raise _invalid("requestedQuantity", reason)
        requested_quantity = coerce_quantity(create_input.requested_quantity)

        justification = str(create_input.justification or "").strip()
        if not justification:
            raise _invalid("justification", "is required")

        project = self.references.get_project(db, project_id)
        if project is None:
            raise NotFoundError(
                code="project_not_found",
                message_key="project_not_found",
                details=f"Project {project_id} not found.",
            )
        if str(project.get("status") or "").upper() != "ACTIVE":
            raise ValidationError(
                code="project_not_active",
                message_key="project_not_active",
                details=f"Project {project_id} is not active.",
                payload={"field": "projectId"},
            )

        now = self._clock()
        data: Dict[str, Any] = {
            "status": INITIAL_STATUS.value,
            "project_id": project_id,
            "requested_quantity": requested_quantity,
            "justification": justification,
            "requested_by_id": caller.user_id,
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }
        number_for = None
        if self.is_fuel:
            data.update(self._fuel_fields(db, resource_id, create_input))
            data["request_number"] = fuel_request_number(now)
        else:
            data.update(self._material_fields(db, resource_id, create_input, requested_quantity))
            number_for = material_request_number

        record = self.gateway(db).create(data, number_for=number_for)
        return ServiceOutput(
            payload={
                "success": True,
                "message": success_message("request_created"),
                "data": record,
            },
            status_code=201,
        )

    def _fuel_fields(self, db, equipment_id: int, create_input: RequestCreateInput) -> Dict[str, Any]:
        equipment = self.references.get_equipment(db, equipment_id)
        if equipment is None:
            raise NotFoundError(
                code="equipment_not_found",
                message_key="equipment_not_found",
                details=f"Equipment {equipment_id} not found.",
            )
        if str(equipment.get("status") or "").upper() != "OPERATIONAL":
            raise ValidationError(
                code="equipment_not_operational",
                message_key="equipment_not_operational",
                details=f"Equipment {equipment_id} is not operational.",
                payload={"field": "equipmentId"},
            )

        extra = create_input.extra or {}
        odometer = extra.get("odometerKm", extra.get("odometer_km"))
        odometer_km = None
        if odometer is not None and str(odometer).strip() != "":
            odometer_km = coerce_quantity(odometer)
            if odometer_km is None or not math.isfinite(odometer_km) or odometer_km < 0:
                raise _invalid("odometerKm", "must be 0 or greater")

        return {
            "equipment_id": equipment_id,
            "fuel_type": _choice("fuelType", extra.get("fuelType", extra.get("fuel_type")), FUEL_TYPES),
            "urgency": _choice("urgency", create_input.urgency, FUEL_URGENCIES, default="NORMAL"),
            "odometer_km": odometer_km,
        }

    def _material_fields(
        self,
        db,
        material_id: int,
        create_input: RequestCreateInput,
        requested_quantity: float,
    ) -> Dict[str, Any]:
        material = self.references.get_material(db, material_id)
        if material is None:
            raise NotFoundError(
                code="material_not_found",
                message_key="material_not_found",
                details=f"Material {material_id} not found.",
            )

        extra = create_input.extra or {}
        required_date = extra.get("requiredDate", extra.get("required_date"))
        if required_date:
            try:
                required_date = date.fromisoformat(str(required_date).strip()[:10]).isoformat()
            except ValueError:
                raise _invalid("requiredDate", "must be a date (YYYY-MM-DD)") from None
        else:
            required_date = None

        unit_cost = material.get("unit_cost")
        total_cost = None
        if unit_cost is not None:
            total_cost = round(float(unit_cost) * requested_quantity, 2)

        return {
            "material_id": material_id,
            "urgency": _choice("urgency", create_input.urgency, MATERIAL_URGENCIES, default="NORMAL"),
            "delivery_location": _choice(
                "deliveryLocation",
                extra.get("deliveryLocation", extra.get("delivery_location")),
                DELIVERY_LOCATIONS,
                default="SITE",
            ),
            "required_date": required_date,
            "unit_cost": unit_cost,
            "total_cost": total_cost,
        }

    def list_requests(self, db, filters: RequestListFilters) -> ServiceOutput:
        if filters.status and RequestStatus.parse(filters.status) is None:
            raise _invalid("status", "is not a known status")
        limit = min(max(1, int(filters.limit or 1)), MAX_PAGE_SIZE)
        page = max(1, int(filters.page or 1))
        normalized = RequestListFilters(
            status=RequestStatus.parse(filters.status).value if filters.status else None,
            project_id=filters.project_id,
            resource_id=filters.resource_id,
            requested_by_id=filters.requested_by_id,
            search=(filters.search or "").strip() or None,
            page=page,
            limit=limit,
        )
        total = self.repository.count(db, normalized)
        items = self.repository.list_requests(db, normalized)
        total_pages = max(1, math.ceil(total / limit)) if total else 0
        return ServiceOutput(
            payload={
                "success": True,
                "data": items,
                "pagination": {
                    "page": page,
                    "pageSize": limit,
                    "total": total,
                    "totalPages": total_pages,
                    "hasNext": page < total_pages,
                    "hasPrev": page > 1,
                },
            }
        )

    def get_request(self, db, request_id: int) -> ServiceOutput:
        record = self.repository.find_by_id(db, request_id)
        if record is None:
            raise NotFoundError(details=f"{self.adapter.entity_label} {request_id} not found.")
        history = self.repository.status_events.list_for_entity(
            db,
            entity=self.adapter.event_entity,
            entity_id=int(request_id),
        )
        return ServiceOutput(
            payload={
                "success": True,
                "data": record,
                "statusLabel": status_label(record.get("status")),
                "history": history,
                "lifecycle": build_lifecycle_steps(record.get("status")),
                "flow": flow_meta(record.get("status")),
            }
        )

    def request_stats(self, db, start_date: Any = None, end_date: Any = None) -> ServiceOutput:
        start = _parse_day("startDate", start_date)
        end = _parse_day("endDate", end_date)
        if start and end and end < start:
            raise _invalid("endDate", "must not be before startDate")
        filters = RequestListFilters(
            created_from=start.isoformat() if start else None,
            created_before=(end + timedelta(days=1)).isoformat() if end else None,
        )

        by_status = {status.value: 0 for status in RequestStatus}
        by_status.update(self.repository.status_counts(db, filters))

        durations = []
        for row in self.repository.completed_durations(db, filters):
            created = _parse_timestamp(row.get("created_at"))
            completed = _parse_timestamp(row.get("completion_date"))
            if created is None or completed is None:
                continue
            durations.append((completed - created).total_seconds())

        average_days = 0.0
        if durations:
            average_days = sum(durations) / len(durations) / 86400.0

        data: Dict[str, Any] = {
            "total": sum(by_status.values()),
            "byStatus": by_status,
            "byUrgency": self.repository.urgency_counts(db, filters),
            "averageProcessingTime": round(average_days, 2),
            "byProject": self._issued_by_project(db, filters),
            "monthlyTrends": self._monthly_trends(db, filters),
            "period": {
                "startDate": start.isoformat() if start else None,
                "endDate": end.isoformat() if end else None,
            },
        }
        if self.is_fuel:
            data["byFuelType"] = {
                str(row["bucket"]): {
                    "count": int(row["total"]),
                    "issuedQuantity": float(row["issued_quantity"] or 0),
                }
                for row in self.repository.issued_totals(db, "fuel_type", filters)
            }
        return ServiceOutput(payload={"success": True, "data": data})

    def _issued_by_project(self, db, filters: RequestListFilters) -> list[dict]:
        rows = self.repository.issued_totals(db, "project_id", filters)
        names = self.repository.project_names(db, [row["bucket"] for row in rows])
        return [
            {
                "projectId": row["bucket"],
                "projectName": names.get(int(row["bucket"])),
                "count": int(row["total"]),
                "issuedQuantity": float(row["issued_quantity"] or 0),
            }
            for row in rows
        ]

    def _monthly_trends(self, db, filters: RequestListFilters) -> list[dict]:
        """Requests and issued quantity per calendar month over the last twelve months."""
        today = self._clock().date()
        month_index = today.year * 12 + today.month - 1 - (TREND_MONTHS - 1)
        window_start = date(month_index // 12, month_index % 12 + 1, 1).isoformat()
        if filters.created_from and filters.created_from > window_start:
            window_start = filters.created_from
        window = RequestListFilters(created_from=window_start, created_before=filters.created_before)

        months: Dict[str, Dict[str, Any]] = {}
        for row in self.repository.creation_rows(db, window):
            created = _parse_timestamp(row.get("created_at"))
            if created is None:
                continue
            key = created.strftime("%Y-%m")
            bucket = months.setdefault(key, {"month": key, "totalRequests": 0, "totalIssued": 0.0})
            bucket["totalRequests"] += 1
            bucket["totalIssued"] += float(row.get("issued_quantity") or 0)
        return [months[key] for key in sorted(months)]

    def transition(
        self,
        db,
        transition: Transition | str,
        request_id: int,
        data: Mapping[str, Any] | None,
        caller: Caller,
    ) -> ServiceOutput:
        engine = self.engine(db)
        action = Transition(transition)
        handlers = {
            Transition.APPROVE: engine.approve,
            Transition.ISSUE: engine.issue,
            Transition.ACKNOWLEDGE: engine.acknowledge,
            Transition.COMPLETE: engine.complete,
            Transition.CANCEL: engine.cancel,
        }
        result = handlers[action](request_id, data or {}, caller)
        payload = result.to_payload()
        if result.success:
            status = (result.record or {}).get("status")
            applied = Transition.REJECT if status == RequestStatus.REJECTED.value else action
            payload["message"] = success_message(rule_for(applied).success_key)
        return ServiceOutput(payload=payload, status_code=http_status_for(result.code))
