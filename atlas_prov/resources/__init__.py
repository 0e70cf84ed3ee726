"""Phase policies, one per resource family."""

from __future__ import annotations

from typing import Optional

from atlas_prov.config.models import ProvisionerConfig
from atlas_prov.gateway.atlas import AtlasClient
from atlas_prov.gateway.clusters import ClusterGateway
from atlas_prov.gateway.context import AWSContext
from atlas_prov.gateway.ec2 import VpcEndpointGateway
from atlas_prov.gateway.exports import ExportJobGateway
from atlas_prov.gateway.private_endpoints import PrivateEndpointGateway
from atlas_prov.gateway.streams import StreamProcessorGateway
from atlas_prov.resources.base import (
    PhasePolicy,
    TransitionRejected,
    UnknownPhaseError,
    missing_fields,
)
from atlas_prov.resources.cluster import ClusterPolicy
from atlas_prov.resources.export_job import ExportJobPolicy
from atlas_prov.resources.private_endpoint import PrivateEndpointPolicy
from atlas_prov.resources.stream_processor import StreamProcessorPolicy

FAMILIES = (
    ClusterPolicy.family,
    ExportJobPolicy.family,
    PrivateEndpointPolicy.family,
    StreamProcessorPolicy.family,
)


def build_policy(
    family: str,
    client: AtlasClient,
    aws: Optional[AWSContext] = None,
    config: Optional[ProvisionerConfig] = None,
) -> PhasePolicy:
    """Wire the policy for *family* to its gateways.

    Raises:
        ValueError: *family* is not one of :data:`FAMILIES`.
    """
    config = config or ProvisionerConfig()
    if family == ClusterPolicy.family:
        return ClusterPolicy(ClusterGateway(client), config)
    if family == StreamProcessorPolicy.family:
        return StreamProcessorPolicy(StreamProcessorGateway(client), config)
    if family == ExportJobPolicy.family:
        return ExportJobPolicy(ExportJobGateway(client), config)
    if family == PrivateEndpointPolicy.family:
        profile = aws.profile if aws else None

        def vpc_endpoints(region: str) -> VpcEndpointGateway:
            return VpcEndpointGateway(AWSContext.build(region, profile))

        return PrivateEndpointPolicy(PrivateEndpointGateway(client), vpc_endpoints, config)
    raise ValueError(f"Unknown resource family {family!r}; expected one of {', '.join(FAMILIES)}")


__all__ = [
    "ClusterPolicy",
    "ExportJobPolicy",
    "FAMILIES",
    "PhasePolicy",
    "PrivateEndpointPolicy",
    "StreamProcessorPolicy",
    "TransitionRejected",
    "UnknownPhaseError",
    "build_policy",
    "missing_fields",
]
