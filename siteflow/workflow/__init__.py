from siteflow.workflow.adapters import FUEL_REQUESTS, MATERIAL_REQUESTS, ResourceAdapter, adapter_for
from siteflow.workflow.engine import RequestWorkflowEngine
from siteflow.workflow.results import ResultCode, TransitionResult, http_status_for
from siteflow.workflow.states import RequestStatus, Transition

__all__ = [
    "FUEL_REQUESTS",
    "MATERIAL_REQUESTS",
    "RequestStatus",
    "RequestWorkflowEngine",
    "ResourceAdapter",
    "ResultCode",
    "Transition",
    "TransitionResult",
    "adapter_for",
    "http_status_for",
]
