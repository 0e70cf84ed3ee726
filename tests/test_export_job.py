"""Tests for atlas_prov.resources.export_job."""

from __future__ import annotations

from unittest.mock import MagicMock

from atlas_prov.gateway.errors import ApiError
from atlas_prov.resources.export_job import ExportJobModel, ExportJobPolicy, build_request
from atlas_prov.state.models import ErrorCategory, OperationStatus
from atlas_prov.workflow.controller import ProvisioningController


def _model(**overrides):
    model = {
        "GroupId": "p1",
        "ClusterName": "c0",
        "SnapshotId": "snap-1",
        "ExportBucketId": "bucket-1",
    }
    model.update(overrides)
    return model


def _setup():
    gateway = MagicMock()
    gateway.create.return_value = {"id": "exp-1", "state": "Queued"}
    return ProvisioningController(ExportJobPolicy(gateway)), gateway


class TestBuildRequest:
    def test_custom_data(self):
        desired = ExportJobModel.model_validate(
            _model(CustomDataSet=[{"Key": "team", "Value": "data"}])
        )
        assert build_request(desired) == {
            "snapshotId": "snap-1",
            "exportBucketId": "bucket-1",
            "customData": [{"key": "team", "value": "data"}],
        }


class TestCreate:
    def test_first_step(self):
        controller, gateway = _setup()
        outcome = controller.step("create", None, _model())
        assert outcome.status == OperationStatus.IN_PROGRESS
        assert outcome.callback_delay_seconds == 65
        assert outcome.message == "Create export snapshots : exp-1"
        assert outcome.callback_context["exportId"] == "exp-1"
        assert outcome.callback_context["phase"] == "EXPORTING"
        gateway.create.assert_called_once_with(
            "p1", "c0", {"snapshotId": "snap-1", "exportBucketId": "bucket-1"}
        )

    def test_polling_then_success(self):
        controller, gateway = _setup()
        ctx = controller.step("create", None, _model()).callback_context

        gateway.get.return_value = {"id": "exp-1", "state": "InProgress"}
        outcome = controller.step("create", ctx, _model())
        assert outcome.status == OperationStatus.IN_PROGRESS
        assert outcome.callback_delay_seconds == 35

        gateway.get.return_value = {
            "id": "exp-1",
            "state": "Successful",
            "prefix": "exported_snapshots/org/proj/c0",
            "finishedAt": "2026-10-17T11:00:00Z",
            "exportStatus": {"exportedCollections": 4, "totalCollections": 4},
            "components": [{"replicaSetName": "rs0", "exportId": "exp-1a"}],
        }
        outcome = controller.step("create", ctx, _model())
        assert outcome.status == OperationStatus.SUCCESS
        assert outcome.model["ExportId"] == "exp-1"
        assert outcome.model["State"] == "Successful"
        assert outcome.model["ExportStatus"] == {"ExportedCollections": 4, "TotalCollections": 4}
        assert outcome.model["Components"] == [{"ReplicaSetName": "rs0", "ExportID": "exp-1a"}]

    def test_cancelled_is_terminal(self):
        controller, gateway = _setup()
        ctx = controller.step("create", None, _model()).callback_context
        gateway.get.return_value = {"id": "exp-1", "state": "Cancelled"}
        outcome = controller.step("create", ctx, _model())
        assert outcome.status == OperationStatus.FAILED
        assert outcome.retryable is False
        assert "Cancelled" in outcome.message

    def test_failed_is_terminal(self):
        controller, gateway = _setup()
        ctx = controller.step("create", None, _model()).callback_context
        gateway.get.return_value = {"id": "exp-1", "state": "Failed"}
        assert controller.step("create", ctx, _model()).status == OperationStatus.FAILED

    def test_create_rejected(self):
        controller, gateway = _setup()
        gateway.create.side_effect = ApiError(400, "snapshot not found")
        outcome = controller.step("create", None, _model())
        assert outcome.error_category == ErrorCategory.INVALID_REQUEST


class TestDelete:
    def test_absent_job(self):
        controller, gateway = _setup()
        gateway.get.side_effect = ApiError(404, "gone")
        outcome = controller.step("delete", None, _model(ExportId="exp-1"))
        assert outcome.status == OperationStatus.SUCCESS

    def test_existing_job_released(self):
        controller, gateway = _setup()
        gateway.get.return_value = {"id": "exp-1", "state": "Successful"}
        outcome = controller.step("delete", None, _model(ExportId="exp-1"))
        assert outcome.status == OperationStatus.SUCCESS
        assert outcome.model is None

    def test_without_export_id(self):
        controller, gateway = _setup()
        assert controller.step("delete", None, _model()).status == OperationStatus.SUCCESS
        gateway.get.assert_not_called()

    def test_delete_context_is_fatal(self):
        controller, gateway = _setup()
        ctx = controller.step("create", None, _model()).callback_context
        ctx["operation"] = "delete"
        outcome = controller.step("delete", ctx, _model(ExportId="exp-1"))
        assert outcome.status == OperationStatus.FAILED
        assert outcome.error_category == ErrorCategory.INTERNAL_FAILURE
        gateway.get.assert_not_called()

    def test_update_not_supported(self):
        controller, gateway = _setup()
        outcome = controller.step("update", None, _model())
        assert outcome.error_category == ErrorCategory.INVALID_REQUEST


class TestReadList:
    def test_read_requires_export_id(self):
        controller, _ = _setup()
        outcome = controller.read(_model())
        assert outcome.message == "The next fields are required: ExportId"

    def test_list(self):
        controller, gateway = _setup()
        gateway.list.return_value = [
            {"id": "a", "state": "Successful", "snapshotId": "s1"},
            {"id": "b", "state": "Queued", "snapshotId": "s2"},
        ]
        outcome = controller.list({"GroupId": "p1", "ClusterName": "c0"})
        assert [(m["ExportId"], m["SnapshotId"]) for m in outcome.models] == [("a", "s1"), ("b", "s2")]
        assert outcome.message == "List complete"
