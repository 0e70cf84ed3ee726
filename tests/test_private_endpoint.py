"""Tests for atlas_prov.resources.private_endpoint."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from atlas_prov.gateway.errors import ApiError
from atlas_prov.resources.private_endpoint import (
    PrivateEndpointPolicy,
    ensure_atlas_region,
    ensure_aws_region,
)
from atlas_prov.state.models import ErrorCategory, OperationStatus
from atlas_prov.workflow.controller import ProvisioningController

SERVICE_NAME = "com.amazonaws.vpce.us-east-1.vpce-svc-0abc"


def _model(**overrides):
    model = {
        "GroupId": "p1",
        "Region": "us-east-1",
        "VpcId": "vpc-1",
        "SubnetId": "subnet-1",
    }
    model.update(overrides)
    return model


def _setup():
    """Return (controller, atlas gateway mock, ec2 gateway mock, factory mock)."""
    gateway = MagicMock()
    ec2 = MagicMock()
    factory = MagicMock(return_value=ec2)
    policy = PrivateEndpointPolicy(gateway, factory)
    return ProvisioningController(policy), gateway, ec2, factory


# ── region helpers ───────────────────────────────────────────────────


class TestRegions:
    @pytest.mark.parametrize("value", ["us-east-1", "US_EAST_1", "Us-East_1"])
    def test_atlas_form(self, value):
        assert ensure_atlas_region(value) == "US_EAST_1"

    @pytest.mark.parametrize("value", ["us-east-1", "US_EAST_1"])
    def test_aws_form(self, value):
        assert ensure_aws_region(value) == "us-east-1"


# ── validation ───────────────────────────────────────────────────────


class TestValidation:
    def test_required(self):
        controller, gateway, _, _ = _setup()
        outcome = controller.step("create", None, {"GroupId": "p1"})
        assert outcome.error_category == ErrorCategory.INVALID_REQUEST
        assert outcome.message == "The next fields are required: Region, VpcId"
        gateway.create_service.assert_not_called()

    def test_subnet_required(self):
        controller, _, _, _ = _setup()
        model = _model()
        del model["SubnetId"]
        assert "SubnetId" in controller.step("create", None, model).message

    def test_update_not_supported(self):
        controller, gateway, _, _ = _setup()
        outcome = controller.step("update", None, _model())
        assert outcome.error_category == ErrorCategory.INVALID_REQUEST
        assert gateway.method_calls == []


# ── create ───────────────────────────────────────────────────────────


class TestCreate:
    def test_three_steps_single_interface(self):
        controller, gateway, ec2, factory = _setup()
        gateway.create_service.return_value = {"id": "svc1", "status": "INITIATING"}

        outcome = controller.step("create", None, _model())
        assert outcome.status == OperationStatus.IN_PROGRESS
        assert outcome.callback_delay_seconds == 10
        ctx = outcome.callback_context
        assert ctx["phase"] == "CREATING_SERVICE"
        assert ctx["region"] == "US_EAST_1"
        assert ctx["endpointServiceId"] == "svc1"
        gateway.create_service.assert_called_once_with("p1", "US_EAST_1")

        gateway.get_service.return_value = {
            "id": "svc1",
            "status": "AVAILABLE",
            "endpointServiceName": SERVICE_NAME,
        }
        ec2.create_interface_endpoint.return_value = "vpce-1"
        gateway.add_interface.return_value = {"interfaceEndpointId": "vpce-1"}
        outcome = controller.step("create", ctx, _model())
        assert outcome.callback_context["phase"] == "CREATING_INTERFACE"
        assert outcome.callback_context["interfaceEndpointId"] == "vpce-1"
        factory.assert_called_once_with("us-east-1")
        ec2.create_interface_endpoint.assert_called_once_with("vpc-1", SERVICE_NAME, ["subnet-1"])
        gateway.add_interface.assert_called_once_with("p1", "svc1", "vpce-1")

        gateway.get_interface.return_value = {"connectionStatus": "AVAILABLE"}
        outcome = controller.step("create", outcome.callback_context, _model())
        assert outcome.status == OperationStatus.SUCCESS
        assert outcome.model["Id"] == "svc1"
        assert outcome.model["InterfaceEndpoints"] == ["vpce-1"]
        assert outcome.model["Region"] == "us-east-1"
        ec2.create_interface_endpoint.assert_called_once()

    def test_service_initiating_waits(self):
        controller, gateway, ec2, _ = _setup()
        gateway.create_service.return_value = {"id": "svc1"}
        ctx = controller.step("create", None, _model()).callback_context
        gateway.get_service.return_value = {"status": "INITIATING"}
        outcome = controller.step("create", ctx, _model())
        assert outcome.status == OperationStatus.IN_PROGRESS
        assert outcome.callback_context == ctx
        ec2.create_interface_endpoint.assert_not_called()

    def test_service_failed(self):
        controller, gateway, _, _ = _setup()
        gateway.create_service.return_value = {"id": "svc1"}
        ctx = controller.step("create", None, _model()).callback_context
        gateway.get_service.return_value = {"status": "FAILED", "errorMessage": "quota"}
        outcome = controller.step("create", ctx, _model())
        assert outcome.status == OperationStatus.FAILED
        assert outcome.message.startswith("Error creating private endpoint in status : FAILED")
        assert outcome.retryable is False

    def test_interface_pending_acceptance_waits(self):
        controller, gateway, ec2, _ = _setup()
        gateway.create_service.return_value = {"id": "svc1"}
        ctx = controller.step("create", None, _model()).callback_context
        gateway.get_service.return_value = {"status": "AVAILABLE", "endpointServiceName": SERVICE_NAME}
        ec2.create_interface_endpoint.return_value = "vpce-1"
        gateway.add_interface.return_value = {}
        ctx = controller.step("create", ctx, _model()).callback_context
        assert ctx["interfaceEndpointId"] == "vpce-1"

        gateway.get_interface.return_value = {"awsConnectionStatus": "PENDING_ACCEPTANCE"}
        assert controller.step("create", ctx, _model()).status == OperationStatus.IN_PROGRESS

        gateway.get_interface.return_value = {"connectionStatus": "REJECTED"}
        outcome = controller.step("create", ctx, _model())
        assert outcome.status == OperationStatus.FAILED
        assert "REJECTED" in outcome.message

    def test_attach_failure_names_vpc_endpoint(self):
        controller, gateway, ec2, _ = _setup()
        gateway.create_service.return_value = {"id": "svc1"}
        ctx = controller.step("create", None, _model()).callback_context
        gateway.get_service.return_value = {"status": "AVAILABLE", "endpointServiceName": SERVICE_NAME}
        ec2.create_interface_endpoint.return_value = "vpce-9"
        gateway.add_interface.side_effect = ApiError(400, "bad id")
        outcome = controller.step("create", ctx, _model())
        assert outcome.status == OperationStatus.FAILED
        assert outcome.error_category == ErrorCategory.INVALID_REQUEST
        assert "vpce-9" in outcome.message

    def test_create_context_in_delete_phase_is_fatal(self):
        controller, gateway, ec2, _ = _setup()
        gateway.create_service.return_value = {"id": "svc1"}
        ctx = controller.step("create", None, _model()).callback_context
        ctx["phase"] = "DELETING_SERVICE"
        gateway.get_service.side_effect = ApiError(404, "gone")
        outcome = controller.step("create", ctx, _model())
        assert outcome.status == OperationStatus.FAILED
        assert outcome.error_category == ErrorCategory.INTERNAL_FAILURE
        gateway.get_service.assert_not_called()
        gateway.delete_service.assert_not_called()

    def test_service_conflict(self):
        controller, gateway, _, _ = _setup()
        gateway.create_service.side_effect = ApiError(409, "Resource already exists")
        outcome = controller.step("create", None, _model())
        assert outcome.error_category == ErrorCategory.ALREADY_EXISTS


# ── delete ───────────────────────────────────────────────────────────


class TestDelete:
    def test_full_delete(self):
        controller, gateway, ec2, factory = _setup()
        model = _model(Id="svc1")
        gateway.get_service.return_value = {
            "id": "svc1",
            "regionName": "US_EAST_1",
            "interfaceEndpoints": ["vpce-1"],
        }
        outcome = controller.step("delete", None, model)
        ctx = outcome.callback_context
        assert ctx["phase"] == "DETACHING_INTERFACES"
        assert ctx["vpcEndpointIds"] == "vpce-1"
        assert outcome.callback_delay_seconds == 20
        gateway.delete_interface.assert_called_once_with("p1", "svc1", "vpce-1")

        gateway.get_service.return_value = {"id": "svc1", "interfaceEndpoints": []}
        ec2.delete.return_value = []
        ctx = controller.step("delete", ctx, model).callback_context
        assert ctx["phase"] == "DELETING_VPC_ENDPOINTS"
        ec2.delete.assert_called_once_with(["vpce-1"])
        factory.assert_called_with("us-east-1")

        ec2.pending.return_value = ["vpce-1"]
        assert controller.step("delete", ctx, model).callback_context == ctx

        ec2.pending.return_value = []
        ctx = controller.step("delete", ctx, model).callback_context
        assert ctx["phase"] == "DELETING_SERVICE"
        gateway.delete_service.assert_called_once_with("p1", "svc1")

        gateway.get_service.side_effect = ApiError(404, "gone")
        outcome = controller.step("delete", ctx, model)
        assert outcome.status == OperationStatus.SUCCESS
        assert outcome.model is None

    def test_delete_without_interfaces(self):
        controller, gateway, _, _ = _setup()
        gateway.get_service.return_value = {"id": "svc1", "interfaceEndpoints": []}
        outcome = controller.step("delete", None, _model(Id="svc1"))
        assert outcome.callback_context["phase"] == "DELETING_SERVICE"
        gateway.delete_interface.assert_not_called()

    def test_delete_absent(self):
        controller, gateway, _, _ = _setup()
        gateway.get_service.side_effect = ApiError(404, "gone")
        outcome = controller.step("delete", None, _model(Id="svc1"))
        assert outcome.status == OperationStatus.SUCCESS

    def test_vpc_endpoint_delete_failure(self):
        controller, gateway, ec2, _ = _setup()
        gateway.get_service.return_value = {"interfaceEndpoints": ["vpce-1"]}
        ctx = controller.step("delete", None, _model(Id="svc1")).callback_context
        gateway.get_service.return_value = {"interfaceEndpoints": []}
        ec2.delete.return_value = ["vpce-1"]
        outcome = controller.step("delete", ctx, _model(Id="svc1"))
        assert outcome.status == OperationStatus.FAILED
        assert "vpce-1" in outcome.message


# ── read / list ──────────────────────────────────────────────────────


class TestReadList:
    def test_read(self):
        controller, gateway, _, _ = _setup()
        gateway.get_service.return_value = {
            "id": "svc1",
            "regionName": "US_EAST_1",
            "endpointServiceName": SERVICE_NAME,
            "status": "AVAILABLE",
            "interfaceEndpoints": ["vpce-1"],
        }
        outcome = controller.read({"GroupId": "p1", "Id": "svc1"})
        assert outcome.model["EndpointServiceName"] == SERVICE_NAME
        assert outcome.model["InterfaceEndpoints"] == ["vpce-1"]
        assert outcome.model["Region"] == "US_EAST_1"

    def test_list(self):
        controller, gateway, _, _ = _setup()
        gateway.list_services.return_value = [{"id": "a"}, {"id": "b"}]
        outcome = controller.list({"GroupId": "p1"})
        assert [m["Id"] for m in outcome.models] == ["a", "b"]
