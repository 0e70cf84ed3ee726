"""Tests for atlas_prov.gateway.ec2 and botocore error translation."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from atlas_prov.gateway.ec2 import VpcEndpointGateway
from atlas_prov.gateway.errors import ApiError, from_boto_error
from atlas_prov.state.models import ErrorCategory


def _client_error(code, status=400, op="DescribeVpcEndpoints"):
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} happened"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        op,
    )


def _gateway(ec2=None):
    ec2 = ec2 or MagicMock()
    return VpcEndpointGateway(MagicMock(), client=ec2), ec2


# ===================================================================
# TestFromBotoError
# ===================================================================


class TestFromBotoError:
    def test_not_found_suffix(self):
        err = from_boto_error(_client_error("InvalidVpcEndpointId.NotFound"))
        assert err.status_code == 404
        assert err.is_not_found
        assert err.error_code == "InvalidVpcEndpointId.NotFound"

    def test_other_not_found_suffix(self):
        assert from_boto_error(_client_error("InvalidRouteTableId.NotFound")).status_code == 404

    def test_throttling(self):
        err = from_boto_error(_client_error("RequestLimitExceeded", status=503))
        assert err.status_code == 429
        assert err.category == ErrorCategory.THROTTLING

    def test_unauthorized(self):
        err = from_boto_error(_client_error("UnauthorizedOperation", status=403))
        assert err.category == ErrorCategory.ACCESS_DENIED

    def test_unknown_code_keeps_http_status(self):
        err = from_boto_error(_client_error("SomethingOdd", status=500))
        assert err.status_code == 500
        assert err.message == "SomethingOdd happened"

    def test_transport(self):
        err = from_boto_error(EndpointConnectionError(endpoint_url="https://ec2.test"))
        assert err.status_code == 0
        assert err.category == ErrorCategory.SERVICE_INTERNAL_ERROR


# ===================================================================
# TestVpcEndpointGateway
# ===================================================================


class TestCreate:
    def test_create_interface_endpoint(self):
        gw, ec2 = _gateway()
        ec2.create_vpc_endpoint.return_value = {"VpcEndpoint": {"VpcEndpointId": "vpce-1"}}
        assert gw.create_interface_endpoint("vpc-1", "com.amazonaws.vpce.svc", ["s1", "s2"]) == "vpce-1"
        ec2.create_vpc_endpoint.assert_called_once_with(
            VpcEndpointType="Interface",
            VpcId="vpc-1",
            ServiceName="com.amazonaws.vpce.svc",
            SubnetIds=["s1", "s2"],
        )

    def test_create_error_is_api_error(self):
        gw, ec2 = _gateway()
        ec2.create_vpc_endpoint.side_effect = _client_error("InvalidVpcId.NotFound")
        with pytest.raises(ApiError) as info:
            gw.create_interface_endpoint("vpc-x", "svc", ["s1"])
        assert info.value.status_code == 404

    def test_lazy_client_from_context(self):
        aws = MagicMock()
        gw = VpcEndpointGateway(aws)
        assert gw.ec2 is aws.client.return_value
        aws.client.assert_called_once_with("ec2")


class TestDescribeAndPending:
    def test_empty_ids_skip_call(self):
        gw, ec2 = _gateway()
        assert gw.describe([]) == []
        ec2.describe_vpc_endpoints.assert_not_called()

    def test_pending_filters_gone_states(self):
        gw, ec2 = _gateway()
        ec2.describe_vpc_endpoints.return_value = {
            "VpcEndpoints": [
                {"VpcEndpointId": "vpce-1", "State": "deleting"},
                {"VpcEndpointId": "vpce-2", "State": "deleted"},
                {"VpcEndpointId": "vpce-3", "State": "Available"},
            ]
        }
        assert gw.pending(["vpce-1", "vpce-2", "vpce-3"]) == ["vpce-1", "vpce-3"]

    def test_not_found_means_none_pending(self):
        gw, ec2 = _gateway()
        ec2.describe_vpc_endpoints.side_effect = _client_error("InvalidVpcEndpointId.NotFound")
        assert gw.pending(["vpce-1"]) == []

    def test_other_errors_raise(self):
        gw, ec2 = _gateway()
        ec2.describe_vpc_endpoints.side_effect = _client_error("UnauthorizedOperation", 403)
        with pytest.raises(ApiError):
            gw.pending(["vpce-1"])


class TestDelete:
    def test_delete_reports_failures(self):
        gw, ec2 = _gateway()
        ec2.delete_vpc_endpoints.return_value = {
            "Unsuccessful": [
                {"ResourceId": "vpce-1", "Error": {"Code": "InvalidVpcEndpoint.NotFound"}},
                {"ResourceId": "vpce-2", "Error": {"Code": "InvalidState"}},
            ]
        }
        assert gw.delete(["vpce-1", "vpce-2"]) == ["vpce-2"]

    def test_delete_not_found(self):
        gw, ec2 = _gateway()
        ec2.delete_vpc_endpoints.side_effect = _client_error("InvalidVpcEndpointId.NotFound")
        assert gw.delete(["vpce-1"]) == []

    def test_delete_nothing(self):
        gw, ec2 = _gateway()
        assert gw.delete([]) == []
        ec2.delete_vpc_endpoints.assert_not_called()
