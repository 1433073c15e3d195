import unittest
from datetime import datetime, timezone

from siteflow.domain.contracts import (
    AcknowledgeInput,
    ApproveInput,
    Caller,
    CancelInput,
    CompleteInput,
    IssueInput,
)
from siteflow.errors import SystemError as AppSystemError
from siteflow.workflow import FUEL_REQUESTS, MATERIAL_REQUESTS, RequestWorkflowEngine
from tests.helpers.fixtures import FakeGateway


FIXED_NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)

ADMIN = Caller(1, "Admin")
PM = Caller(2, "Project Manager")
STORE = Caller(3, "Store Manager")
REQUESTER = Caller(7, "Employee")
OTHER = Caller(8, "Employee")


def _pending(**extra):
    record = {
        "id": 1,
        "request_number": "FR-1",
        "status": "PENDING",
        "requested_by_id": 7,
        "requested_quantity": 100,
    }
    record.update(extra)
    return record


class WorkflowEngineTest(unittest.TestCase):
    def setUp(self) -> None:
        self.gateway = FakeGateway({1: _pending()})
        self.engine = RequestWorkflowEngine(self.gateway, FUEL_REQUESTS, clock=lambda: FIXED_NOW)

    def _status(self) -> str:
        return self.gateway.records[1]["status"]

    def test_full_lifecycle_with_quantity_ceiling(self) -> None:
        result = self.engine.approve(1, {"approved": True, "approvedQuantity": 80}, PM)
        self.assertTrue(result.success)
        self.assertEqual(self._status(), "APPROVED")
        self.assertEqual(result.record["approved_quantity"], 80.0)
        self.assertEqual(result.record["approved_by_id"], 2)
        self.assertEqual(result.record["approval_date"], FIXED_NOW.isoformat())

        result = self.engine.issue(1, {"issuedQuantity": 80}, STORE)
        self.assertTrue(result.success)
        self.assertEqual(self._status(), "ISSUED")

        result = self.engine.acknowledge(1, {"acknowledgedQuantity": 85}, REQUESTER)
        self.assertFalse(result.success)
        self.assertEqual(result.code, "VALIDATION_ERROR")
        self.assertEqual(result.field, "acknowledgedQuantity")
        self.assertIn("cannot exceed issued quantity", result.error)
        self.assertEqual(self._status(), "ISSUED")

        result = self.engine.acknowledge(1, {"acknowledgedQuantity": 80}, REQUESTER)
        self.assertTrue(result.success)
        self.assertEqual(self._status(), "ACKNOWLEDGED")

        result = self.engine.complete(1, {"completionComments": "  done "}, REQUESTER)
        self.assertTrue(result.success)
        self.assertEqual(self._status(), "COMPLETED")
        self.assertEqual(result.record["completion_comments"], "done")

    def test_dataclass_inputs_are_accepted(self) -> None:
        result = self.engine.approve(1, ApproveInput(approved=True, approved_quantity=50), PM)
        self.assertTrue(result.success)
        result = self.engine.issue(1, IssueInput(issued_quantity=50), ADMIN)
        self.assertTrue(result.success)
        result = self.engine.acknowledge(1, AcknowledgeInput(acknowledged_quantity=40), REQUESTER)
        self.assertTrue(result.success)
        self.assertEqual(self.gateway.records[1]["acknowledged_quantity"], 40.0)
        result = self.engine.complete(1, CompleteInput(completion_comments=" handed over "), ADMIN)
        self.assertTrue(result.success)
        self.assertEqual(result.record["completion_comments"], "handed over")

    def test_cancel_input_carries_the_reason(self) -> None:
        result = self.engine.cancel(1, CancelInput(reason="Plant moved off site"), REQUESTER)
        self.assertTrue(result.success)
        self.assertEqual(result.record["cancellation_reason"], "Plant moved off site")

    def test_unsupported_input_type_is_an_internal_error(self) -> None:
        result = self.engine.issue(1, ["issuedQuantity", 5], STORE)
        self.assertFalse(result.success)
        self.assertEqual(result.code, "INTERNAL_ERROR")

    def test_second_approve_is_invalid_state(self) -> None:
        self.assertTrue(self.engine.approve(1, {"approved": True, "approvedQuantity": 80}, PM).success)
        result = self.engine.approve(1, {"approved": True, "approvedQuantity": 90}, PM)
        self.assertFalse(result.success)
        self.assertEqual(result.code, "INVALID_STATE")
        self.assertEqual(self.gateway.records[1]["approved_quantity"], 80.0)

    def test_reject_requires_reason(self) -> None:
        result = self.engine.approve(1, {"approved": False}, PM)
        self.assertFalse(result.success)
        self.assertEqual(result.code, "VALIDATION_ERROR")
        self.assertEqual(result.field, "rejectionReason")
        self.assertEqual(self._status(), "PENDING")
        self.assertEqual(self.gateway.update_calls, [])

        result = self.engine.approve(1, {"approved": False, "rejectionReason": "Budget"}, PM)
        self.assertTrue(result.success)
        self.assertEqual(self._status(), "REJECTED")
        self.assertEqual(result.record["rejection_reason"], "Budget")
        self.assertNotIn("approved_quantity", self.gateway.update_calls[-1][2])

    def test_rejected_request_accepts_no_further_transition(self) -> None:
        self.engine.approve(1, {"approved": False, "rejectionReason": "Duplicate"}, PM)
        self.assertEqual(self.engine.issue(1, {"issuedQuantity": 1}, STORE).code, "INVALID_STATE")
        self.assertEqual(self.engine.complete(1, {}, ADMIN).code, "INVALID_STATE")
        self.assertEqual(self.engine.cancel(1, {}, REQUESTER).code, "INVALID_STATE")
        self.assertEqual(self._status(), "REJECTED")

    def test_completed_record_keeps_ordered_quantities(self) -> None:
        self.engine.approve(1, {"approved": True, "approvedQuantity": 90}, PM)
        self.engine.issue(1, {"issuedQuantity": 70}, STORE)
        self.engine.acknowledge(1, {"acknowledgedQuantity": 70}, REQUESTER)
        self.engine.complete(1, {}, ADMIN)

        record = self.gateway.records[1]
        self.assertEqual(record["status"], "COMPLETED")
        self.assertGreaterEqual(record["approved_quantity"], record["issued_quantity"])
        self.assertGreaterEqual(record["issued_quantity"], record["acknowledged_quantity"])
        self.assertEqual(len(self.gateway.update_calls), 4)

    def test_approve_requires_positive_quantity(self) -> None:
        for quantity in (None, 0, -3, "abc"):
            with self.subTest(quantity=quantity):
                result = self.engine.approve(1, {"approved": True, "approvedQuantity": quantity}, PM)
                self.assertEqual(result.code, "VALIDATION_ERROR")
                self.assertEqual(result.field, "approvedQuantity")

    def test_oversized_quantity_is_a_validation_error(self) -> None:
        result = self.engine.approve(1, {"approved": True, "approvedQuantity": 10**400}, PM)
        self.assertFalse(result.success)
        self.assertEqual(result.code, "VALIDATION_ERROR")
        self.assertEqual(result.field, "approvedQuantity")
        self.assertEqual(self.gateway.update_calls, [])

    def test_issue_cannot_exceed_approved_quantity(self) -> None:
        self.engine.approve(1, {"approved": True, "approvedQuantity": 80}, PM)
        result = self.engine.issue(1, {"issuedQuantity": 81}, STORE)
        self.assertEqual(result.code, "VALIDATION_ERROR")
        self.assertIn("cannot exceed approved quantity", result.error)

    def test_missing_prior_quantity_bounds_at_zero(self) -> None:
        self.gateway.records[1].update({"status": "APPROVED", "approved_quantity": None})
        result = self.engine.issue(1, {"issuedQuantity": 1}, STORE)
        self.assertEqual(result.code, "VALIDATION_ERROR")

    def test_store_manager_cannot_approve(self) -> None:
        result = self.engine.approve(1, {"approved": True, "approvedQuantity": 80}, STORE)
        self.assertFalse(result.success)
        self.assertEqual(result.code, "UNAUTHORIZED")
        self.assertEqual(self._status(), "PENDING")

    def test_admin_cannot_acknowledge_for_requester(self) -> None:
        self.gateway.records[1].update({"status": "ISSUED", "approved_quantity": 80, "issued_quantity": 80})
        result = self.engine.acknowledge(1, {"acknowledgedQuantity": 80}, ADMIN)
        self.assertFalse(result.success)
        self.assertEqual(result.code, "UNAUTHORIZED")
        self.assertEqual(self._status(), "ISSUED")

    def test_status_checked_before_actor(self) -> None:
        self.gateway.records[1]["status"] = "COMPLETED"
        result = self.engine.approve(1, {"approved": True, "approvedQuantity": 80}, OTHER)
        self.assertEqual(result.code, "INVALID_STATE")

    def test_actor_checked_before_input(self) -> None:
        result = self.engine.approve(1, {"approved": True, "approvedQuantity": -1}, OTHER)
        self.assertEqual(result.code, "UNAUTHORIZED")

    def test_cancel_by_requester_uses_default_reason(self) -> None:
        result = self.engine.cancel(1, {}, REQUESTER)
        self.assertTrue(result.success)
        self.assertEqual(self._status(), "CANCELLED")
        self.assertEqual(result.record["cancellation_reason"], "Cancelled by user")
        self.assertEqual(result.record["cancelled_at"], FIXED_NOW.isoformat())

    def test_cancel_by_other_employee_is_unauthorized(self) -> None:
        result = self.engine.cancel(1, {"reason": "No longer needed"}, OTHER)
        self.assertEqual(result.code, "UNAUTHORIZED")

    def test_cancel_after_issue_is_invalid_state(self) -> None:
        self.gateway.records[1].update({"status": "ISSUED"})
        result = self.engine.cancel(1, {"reason": "Too late"}, ADMIN)
        self.assertFalse(result.success)
        self.assertEqual(result.code, "INVALID_STATE")
        self.assertEqual(self._status(), "ISSUED")

    def test_complete_requires_acknowledged(self) -> None:
        self.gateway.records[1].update({"status": "ISSUED"})
        result = self.engine.complete(1, {}, ADMIN)
        self.assertEqual(result.code, "INVALID_STATE")

    def test_missing_record_is_not_found(self) -> None:
        result = self.engine.approve(99, {"approved": True, "approvedQuantity": 1}, PM)
        self.assertEqual(result.code, "NOT_FOUND")
        self.assertIn("99", result.error)

    def test_concurrent_status_change_is_reported_as_invalid_state(self) -> None:
        original_find = self.gateway.find_by_id

        def stale_find(request_id):
            record = original_find(request_id)
            # Another writer approves between our read and our update.
            self.gateway.records[1]["status"] = "APPROVED"
            return record

        self.gateway.find_by_id = stale_find
        result = self.engine.approve(1, {"approved": True, "approvedQuantity": 80}, PM)
        self.assertFalse(result.success)
        self.assertEqual(result.code, "INVALID_STATE")
        self.assertEqual(self.gateway.update_calls[-1][1], "PENDING")

    def test_gateway_failure_is_internal_error(self) -> None:
        self.gateway.fail_with = RuntimeError("disk full")
        result = self.engine.approve(1, {"approved": True, "approvedQuantity": 80}, PM)
        self.assertFalse(result.success)
        self.assertEqual(result.code, "INTERNAL_ERROR")
        self.assertNotIn("disk full", result.error)

    def test_system_error_is_internal_error(self) -> None:
        self.gateway.fail_with = AppSystemError(details="connection lost")
        result = self.engine.cancel(1, {}, ADMIN)
        self.assertEqual(result.code, "INTERNAL_ERROR")

    def test_results_serialize_for_the_api(self) -> None:
        result = self.engine.approve(1, {"approved": False}, PM)
        payload = result.to_payload()
        self.assertEqual(payload["success"], False)
        self.assertEqual(payload["code"], "VALIDATION_ERROR")
        self.assertEqual(payload["field"], "rejectionReason")


class MaterialWorkflowTest(unittest.TestCase):
    def test_approval_recomputes_total_cost(self) -> None:
        gateway = FakeGateway({1: _pending(request_number="MR-0001", unit_cost=9.5, total_cost=950.0)})
        engine = RequestWorkflowEngine(gateway, MATERIAL_REQUESTS, clock=lambda: FIXED_NOW)

        result = engine.approve(1, {"approved": True, "approvedQuantity": 10}, PM)

        self.assertTrue(result.success)
        self.assertEqual(result.record["total_cost"], 95.0)

    def test_issue_does_not_touch_total_cost(self) -> None:
        gateway = FakeGateway(
            {1: _pending(status="APPROVED", approved_quantity=10, unit_cost=9.5, total_cost=95.0)}
        )
        engine = RequestWorkflowEngine(gateway, MATERIAL_REQUESTS, clock=lambda: FIXED_NOW)

        result = engine.issue(1, {"issuedQuantity": 4}, STORE)

        self.assertTrue(result.success)
        self.assertNotIn("total_cost", gateway.update_calls[-1][2])


if __name__ == "__main__":
    unittest.main()
