from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request, session

from siteflow.application.request_service import RequestService
from siteflow.db import get_db
from siteflow.domain.contracts import Caller, RequestCreateInput, RequestListFilters
from siteflow.errors import AuthenticationRequiredError, PermissionError as AppPermissionError, ValidationError
from siteflow.policies import can_view_analytics, normalize_role
from siteflow.workflow.adapters import adapter_for
from siteflow.workflow.states import Transition


requests_bp = Blueprint("requests", __name__, url_prefix="/api")

_KINDS = "any('fuel-requests', 'material-requests')"
_ACTIONS = "any(approve, issue, acknowledge, complete, cancel)"

_SERVICES: Dict[str, RequestService] = {}


def _service(kind: str) -> RequestService:
    adapter = adapter_for(kind)
    service = _SERVICES.get(adapter.kind)
    if service is None:
        service = RequestService(adapter)
        _SERVICES[adapter.kind] = service
    return service


def current_caller() -> Caller:
    user_id = session.get("user_id")
    if not user_id:
        raise AuthenticationRequiredError()
    return Caller(
        user_id=int(user_id),
        role=normalize_role(session.get("user_role")),
        email=session.get("user_email"),
    )


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError(details="Request body must be a JSON object.")
    return payload


def _optional_int(name: str) -> int | None:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(details=f"{name} must be an integer", payload={"field": name}) from None


def _first(payload: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


@requests_bp.route(f"/<{_KINDS}:kind>", methods=["GET"])
def list_requests(kind: str):
    caller = current_caller()
    default_limit = int(current_app.config.get("REQUEST_PAGE_SIZE_DEFAULT", 50) or 50)
    requested_by_id = _optional_int("requestedById")
    if (request.args.get("mine") or "").strip().lower() in {"1", "true", "yes"}:
        requested_by_id = caller.user_id
    filters = RequestListFilters(
        status=(request.args.get("status") or "").strip() or None,
        project_id=_optional_int("projectId"),
        resource_id=_optional_int(adapter_for(kind).resource_api_field),
        requested_by_id=requested_by_id,
        search=(request.args.get("search") or "").strip() or None,
        page=_optional_int("page") or 1,
        limit=_optional_int("limit") or default_limit,
    )
    result = _service(kind).list_requests(get_db(), filters)
    return jsonify(result.payload), result.status_code


@requests_bp.route(f"/<{_KINDS}:kind>", methods=["POST"])
def create_request(kind: str):
    caller = current_caller()
    payload = _json_body()
    service = _service(kind)
    resource_api_field = service.adapter.resource_api_field
    create_input = RequestCreateInput(
        project_id=_first(payload, "projectId", "project_id"),
        resource_id=_first(payload, resource_api_field, service.adapter.resource_field),
        requested_quantity=_first(payload, "requestedQuantity", "requested_quantity"),
        justification=payload.get("justification"),
        urgency=payload.get("urgency"),
        extra={
            key: value
            for key, value in payload.items()
            if key
            in {
                "fuelType",
                "fuel_type",
                "odometerKm",
                "odometer_km",
                "deliveryLocation",
                "delivery_location",
                "requiredDate",
                "required_date",
            }
        },
    )
    result = service.create_request(get_db(), create_input, caller)
    return jsonify(result.payload), result.status_code


@requests_bp.route(f"/<{_KINDS}:kind>/stats", methods=["GET"])
def request_stats(kind: str):
    caller = current_caller()
    if not can_view_analytics(caller.role):
        raise AppPermissionError(details="Not authorized to view request analytics.")
    result = _service(kind).request_stats(
        get_db(),
        start_date=request.args.get("startDate"),
        end_date=request.args.get("endDate"),
    )
    return jsonify(result.payload), result.status_code


@requests_bp.route(f"/<{_KINDS}:kind>/<int:request_id>", methods=["GET"])
def get_request(kind: str, request_id: int):
    current_caller()
    result = _service(kind).get_request(get_db(), request_id)
    return jsonify(result.payload), result.status_code


@requests_bp.route(f"/<{_KINDS}:kind>/<int:request_id>/<{_ACTIONS}:action>", methods=["PATCH"])
def transition_request(kind: str, request_id: int, action: str):
    caller = current_caller()
    result = _service(kind).transition(
        get_db(),
        Transition(action.upper()),
        request_id,
        _json_body(),
        caller,
    )
    return jsonify(result.payload), result.status_code
