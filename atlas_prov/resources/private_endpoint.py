"""AWS PrivateLink endpoint for an Atlas project.

Three external resources across two control planes::

    Atlas endpoint service ─▶ AWS interface VPC endpoint ─▶ Atlas interface attachment

Create phases:

``CREATING_SERVICE``
    Wait for the Atlas service: ``INITIATING`` → wait, ``AVAILABLE`` → create
    the VPC endpoint for its ``endpointServiceName`` and attach it, anything
    else fails.
``CREATING_INTERFACE``
    Wait for the attachment: ``PENDING`` / ``PENDING_ACCEPTANCE`` → wait,
    ``AVAILABLE`` → done, anything else fails.

Delete runs in reverse: ``DETACHING_INTERFACES`` → ``DELETING_VPC_ENDPOINTS``
→ ``DELETING_SERVICE``.  A resource that is already gone is never an error.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from atlas_prov.config.models import ProvisionerConfig
from atlas_prov.gateway.ec2 import VpcEndpointGateway
from atlas_prov.gateway.errors import ApiError
from atlas_prov.gateway.private_endpoints import PrivateEndpointGateway
from atlas_prov.resources.base import PhasePolicy
from atlas_prov.state.context import ContinuationContext
from atlas_prov.state.models import Completed, Operation, Transition

logger = logging.getLogger(__name__)

FAMILY = "private-endpoint"

# Service statuses
INITIATING = "INITIATING"
AVAILABLE = "AVAILABLE"
DELETING = "DELETING"

# Interface connection statuses
PENDING = "PENDING"
PENDING_ACCEPTANCE = "PENDING_ACCEPTANCE"

ABSENT = "__absent__"

VpcEndpointFactory = Callable[[str], VpcEndpointGateway]


class PrivateEndpointPhase(str, Enum):
    CREATING_SERVICE = "CREATING_SERVICE"
    CREATING_INTERFACE = "CREATING_INTERFACE"
    DETACHING_INTERFACES = "DETACHING_INTERFACES"
    DELETING_VPC_ENDPOINTS = "DELETING_VPC_ENDPOINTS"
    DELETING_SERVICE = "DELETING_SERVICE"


DELETE_PHASES = (
    PrivateEndpointPhase.DETACHING_INTERFACES,
    PrivateEndpointPhase.DELETING_VPC_ENDPOINTS,
    PrivateEndpointPhase.DELETING_SERVICE,
)


def ensure_atlas_region(region: str) -> str:
    """``us-east-1`` or ``US_EAST_1`` → ``US_EAST_1``."""
    return region.replace("-", "_").upper()


def ensure_aws_region(region: str) -> str:
    """``us-east-1`` or ``US_EAST_1`` → ``us-east-1``."""
    return region.replace("_", "-").lower()


def normalize_status(status: Any) -> str:
    return str(status or "").replace("-", "_").upper()


def split_ids(joined: Optional[str]) -> List[str]:
    return [item for item in (joined or "").split(",") if item]


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class PrivateEndpointModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    profile: Optional[str] = Field(default=None, alias="Profile")
    group_id: Optional[str] = Field(default=None, alias="GroupId")
    region: Optional[str] = Field(default=None, alias="Region")
    vpc_id: Optional[str] = Field(default=None, alias="VpcId")
    subnet_id: Optional[str] = Field(default=None, alias="SubnetId")
    subnet_ids: Optional[List[str]] = Field(default=None, alias="SubnetIds")
    id: Optional[str] = Field(default=None, alias="Id")
    endpoint_service_name: Optional[str] = Field(default=None, alias="EndpointServiceName")
    error_message: Optional[str] = Field(default=None, alias="ErrorMessage")
    status: Optional[str] = Field(default=None, alias="Status")
    interface_endpoints: Optional[List[str]] = Field(default=None, alias="InterfaceEndpoints")

    @property
    def all_subnet_ids(self) -> List[str]:
        ids = list(self.subnet_ids or [])
        if self.subnet_id and self.subnet_id not in ids:
            ids.insert(0, self.subnet_id)
        return ids


class PrivateEndpointContext(ContinuationContext):
    phase: PrivateEndpointPhase
    project_id: str = Field(alias="projectId")
    region: str
    endpoint_service_id: str = Field(alias="endpointServiceId")
    interface_endpoint_id: Optional[str] = Field(default=None, alias="interfaceEndpointId")
    vpc_endpoint_ids: Optional[str] = Field(default=None, alias="vpcEndpointIds")


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class PrivateEndpointPolicy(PhasePolicy):
    family = FAMILY
    resource_label = "private endpoint"
    desired_cls = PrivateEndpointModel
    context_cls = PrivateEndpointContext
    phase_enum = PrivateEndpointPhase
    required_fields = {
        "create": ("GroupId", "Region", "VpcId"),
        "delete": ("GroupId", "Id"),
        "read": ("GroupId", "Id"),
        "list": ("GroupId",),
    }
    phases_by_operation = {
        Operation.CREATE: frozenset({
            PrivateEndpointPhase.CREATING_SERVICE,
            PrivateEndpointPhase.CREATING_INTERFACE,
        }),
        Operation.DELETE: frozenset(DELETE_PHASES),
    }

    def __init__(
        self,
        gateway: PrivateEndpointGateway,
        vpc_endpoints: VpcEndpointFactory,
        config: Optional[ProvisionerConfig] = None,
    ) -> None:
        super().__init__(config)
        self.gateway = gateway
        self.vpc_endpoints = vpc_endpoints

    def check_model(self, operation: Any, desired: PrivateEndpointModel) -> Optional[str]:
        name = getattr(operation, "value", operation)
        if name == "update":
            return "Update is not supported for private endpoints"
        if name == "create" and not desired.all_subnet_ids:
            return "The next fields are required: SubnetId"
        return None

    # -- begin --------------------------------------------------------------

    def begin(self, operation: Operation, model: Mapping[str, Any]):
        desired = self.parse(model)
        region = ensure_atlas_region(desired.region or self.config.aws_region or "")

        if operation == Operation.CREATE:
            service = self.gateway.create_service(desired.group_id, region)
            return Transition(
                PrivateEndpointPhase.CREATING_SERVICE.value,
                "Creating private endpoint service",
                {
                    "project_id": desired.group_id,
                    "region": region,
                    "endpoint_service_id": service["id"],
                },
            )

        # delete
        try:
            service = self.gateway.get_service(desired.group_id, desired.id)
        except ApiError as exc:
            if exc.is_not_found:
                return Completed(None, "Delete success")
            raise
        region = ensure_atlas_region(service.get("regionName") or region)
        ids = {
            "project_id": desired.group_id,
            "region": region,
            "endpoint_service_id": desired.id,
        }
        interfaces = list(service.get("interfaceEndpoints") or [])
        for endpoint_id in desired.interface_endpoints or []:
            if endpoint_id not in interfaces:
                interfaces.append(endpoint_id)
        if interfaces:
            for endpoint_id in interfaces:
                self._detach(desired.group_id, desired.id, endpoint_id)
            return Transition(
                PrivateEndpointPhase.DETACHING_INTERFACES.value,
                "Delete in progress",
                {**ids, "vpc_endpoint_ids": ",".join(interfaces)},
            )
        return self._delete_service(desired.group_id, desired.id, ids)

    # -- resume -------------------------------------------------------------

    def fetch(self, ctx: PrivateEndpointContext) -> Dict[str, Any]:
        if ctx.phase == PrivateEndpointPhase.CREATING_INTERFACE:
            return self.gateway.get_interface(
                ctx.project_id, ctx.endpoint_service_id, ctx.interface_endpoint_id
            )
        if ctx.phase == PrivateEndpointPhase.DELETING_VPC_ENDPOINTS:
            ec2 = self.vpc_endpoints(ensure_aws_region(ctx.region))
            return {"pendingVpcEndpoints": ec2.pending(split_ids(ctx.vpc_endpoint_ids))}
        try:
            return self.gateway.get_service(ctx.project_id, ctx.endpoint_service_id)
        except ApiError as exc:
            if exc.is_not_found and ctx.phase in DELETE_PHASES:
                return {"status": ABSENT}
            raise

    def is_terminal_success(
        self, ctx: PrivateEndpointContext, remote: Mapping[str, Any]
    ) -> bool:
        if ctx.phase == PrivateEndpointPhase.CREATING_SERVICE:
            return normalize_status(remote.get("status")) == AVAILABLE
        if ctx.phase == PrivateEndpointPhase.CREATING_INTERFACE:
            return _connection_status(remote) == AVAILABLE
        if ctx.phase == PrivateEndpointPhase.DETACHING_INTERFACES:
            return remote.get("status") == ABSENT or not remote.get("interfaceEndpoints")
        if ctx.phase == PrivateEndpointPhase.DELETING_VPC_ENDPOINTS:
            return not remote.get("pendingVpcEndpoints")
        if ctx.phase == PrivateEndpointPhase.DELETING_SERVICE:
            return remote.get("status") == ABSENT
        raise self.unknown_phase(ctx)

    def failure_reason(
        self, ctx: PrivateEndpointContext, remote: Mapping[str, Any]
    ) -> Optional[str]:
        if ctx.phase == PrivateEndpointPhase.CREATING_SERVICE:
            status = normalize_status(remote.get("status"))
            if status != INITIATING:
                detail = remote.get("errorMessage")
                message = f"Error creating private endpoint in status : {status}"
                return f"{message} ({detail})" if detail else message
        elif ctx.phase == PrivateEndpointPhase.CREATING_INTERFACE:
            status = _connection_status(remote)
            if status not in (PENDING, PENDING_ACCEPTANCE):
                detail = remote.get("errorMessage")
                message = f"Resource is in status : {status}"
                return f"{message} ({detail})" if detail else message
        elif ctx.phase == PrivateEndpointPhase.DELETING_SERVICE:
            status = normalize_status(remote.get("status"))
            if status == "FAILED":
                return "Private endpoint service deletion failed"
        return None

    def advance(
        self,
        ctx: PrivateEndpointContext,
        remote: Mapping[str, Any],
        model: Mapping[str, Any],
    ):
        if ctx.phase == PrivateEndpointPhase.CREATING_SERVICE:
            desired = self.parse(model)
            ec2 = self.vpc_endpoints(ensure_aws_region(ctx.region))
            vpc_endpoint_id = ec2.create_interface_endpoint(
                desired.vpc_id, remote["endpointServiceName"], desired.all_subnet_ids
            )
            try:
                attached = self.gateway.add_interface(
                    ctx.project_id, ctx.endpoint_service_id, vpc_endpoint_id
                )
            except ApiError as exc:
                raise ApiError(
                    exc.status_code,
                    f"VPC endpoint {vpc_endpoint_id} was created but attaching it "
                    f"to the Atlas service failed: {exc.message}",
                    exc.error_code,
                ) from exc
            interface_id = (
                attached.get("interfaceEndpointId") or attached.get("id") or vpc_endpoint_id
            )
            return Transition(
                PrivateEndpointPhase.CREATING_INTERFACE.value,
                "Creating private endpoint interface",
                {"interface_endpoint_id": interface_id, "vpc_endpoint_ids": vpc_endpoint_id},
            )
        if ctx.phase == PrivateEndpointPhase.DETACHING_INTERFACES:
            ec2 = self.vpc_endpoints(ensure_aws_region(ctx.region))
            failed = ec2.delete(split_ids(ctx.vpc_endpoint_ids))
            if failed:
                raise ApiError(
                    500, f"Error deleting VPC endpoints: {', '.join(failed)}"
                )
            return Transition(
                PrivateEndpointPhase.DELETING_VPC_ENDPOINTS.value, "Deleting VPC endpoints"
            )
        if ctx.phase == PrivateEndpointPhase.DELETING_VPC_ENDPOINTS:
            return self._delete_service(ctx.project_id, ctx.endpoint_service_id)
        if ctx.phase in (
            PrivateEndpointPhase.CREATING_INTERFACE,
            PrivateEndpointPhase.DELETING_SERVICE,
        ):
            return None
        raise self.unknown_phase(ctx)

    def finalize(
        self,
        ctx: PrivateEndpointContext,
        remote: Mapping[str, Any],
        model: Mapping[str, Any],
    ) -> Optional[Dict[str, Any]]:
        if ctx.phase in DELETE_PHASES:
            return None
        desired = self.parse(model)
        merged = desired.model_copy(
            update={
                "id": ctx.endpoint_service_id,
                "interface_endpoints": [ctx.interface_endpoint_id],
                "status": _connection_status(remote) or desired.status,
            }
        )
        return merged.model_dump(by_alias=True, exclude_none=True)

    def delay_for(self, ctx: PrivateEndpointContext, first: bool = False) -> int:
        if ctx.operation == Operation.DELETE:
            return self.config.delays.private_endpoint_delete
        return self.config.delays.private_endpoint

    # -- read / list --------------------------------------------------------

    def read(self, model: Mapping[str, Any]) -> Dict[str, Any]:
        desired = self.parse(model)
        service = self.gateway.get_service(desired.group_id, desired.id)
        return self._complete(desired, service)

    def list(self, model: Mapping[str, Any]) -> List[Dict[str, Any]]:
        desired = self.parse(model)
        return [
            self._complete(desired, service)
            for service in self.gateway.list_services(desired.group_id)
        ]

    # -- internals ----------------------------------------------------------

    def _complete(
        self, desired: PrivateEndpointModel, service: Mapping[str, Any]
    ) -> Dict[str, Any]:
        merged = desired.model_copy(
            update={
                "id": service.get("id"),
                "endpoint_service_name": service.get("endpointServiceName"),
                "error_message": service.get("errorMessage"),
                "interface_endpoints": list(service.get("interfaceEndpoints") or []),
                "status": service.get("status"),
            }
        )
        if service.get("regionName"):
            merged.region = service["regionName"]
        return merged.model_dump(by_alias=True, exclude_none=True)

    def _detach(self, project_id: str, service_id: str, endpoint_id: str) -> None:
        try:
            self.gateway.delete_interface(project_id, service_id, endpoint_id)
        except ApiError as exc:
            if not exc.is_not_found:
                raise

    def _delete_service(
        self,
        project_id: str,
        service_id: str,
        updates: Optional[Dict[str, Any]] = None,
    ):
        try:
            self.gateway.delete_service(project_id, service_id)
        except ApiError as exc:
            if exc.is_not_found:
                return Completed(None, "Delete success")
            raise
        return Transition(
            PrivateEndpointPhase.DELETING_SERVICE.value, "Delete in progress", updates or {}
        )


def _connection_status(remote: Mapping[str, Any]) -> str:
    return normalize_status(
        remote.get("connectionStatus") or remote.get("awsConnectionStatus")
    )
