"""Remote API gateways (Atlas Admin API and AWS EC2)."""

from atlas_prov.gateway.atlas import AtlasClient
from atlas_prov.gateway.clusters import ClusterGateway
from atlas_prov.gateway.context import (
    AtlasCredentials,
    AWSContext,
    CredentialsError,
    resolve_region,
)
from atlas_prov.gateway.ec2 import VpcEndpointGateway
from atlas_prov.gateway.errors import TRANSPORT_FAILURE, ApiError, from_boto_error
from atlas_prov.gateway.exports import ExportJobGateway
from atlas_prov.gateway.private_endpoints import PROVIDER_NAME, PrivateEndpointGateway
from atlas_prov.gateway.streams import StreamProcessorGateway

__all__ = [
    "ApiError",
    "AtlasClient",
    "AtlasCredentials",
    "AWSContext",
    "ClusterGateway",
    "CredentialsError",
    "ExportJobGateway",
    "PROVIDER_NAME",
    "PrivateEndpointGateway",
    "StreamProcessorGateway",
    "TRANSPORT_FAILURE",
    "VpcEndpointGateway",
    "from_boto_error",
    "resolve_region",
]
