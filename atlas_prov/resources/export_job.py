"""Cloud-backup snapshot export job.

Create starts the export and polls it in the ``EXPORTING`` phase until the
job reports ``Successful``.  ``Cancelled`` and ``Failed`` are terminal.

Atlas offers no way to remove an export job, so delete only checks that
the job exists and releases it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from atlas_prov.config.models import ProvisionerConfig
from atlas_prov.gateway.errors import ApiError
from atlas_prov.gateway.exports import ExportJobGateway
from atlas_prov.resources.base import PhasePolicy
from atlas_prov.state.context import ContinuationContext
from atlas_prov.state.models import Completed, Operation, Transition

logger = logging.getLogger(__name__)

FAMILY = "export-job"

SUCCESSFUL = "Successful"
FAILED_STATES = ("Cancelled", "Failed")


class ExportJobPhase(str, Enum):
    EXPORTING = "EXPORTING"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class _Aliased(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CustomData(_Aliased):
    key: Optional[str] = Field(default=None, alias="Key")
    value: Optional[str] = Field(default=None, alias="Value")


class ExportStatus(_Aliased):
    exported_collections: Optional[int] = Field(default=None, alias="ExportedCollections")
    total_collections: Optional[int] = Field(default=None, alias="TotalCollections")


class ExportComponent(_Aliased):
    replica_set_name: Optional[str] = Field(default=None, alias="ReplicaSetName")
    export_id: Optional[str] = Field(default=None, alias="ExportID")


class ExportJobModel(_Aliased):
    profile: Optional[str] = Field(default=None, alias="Profile")
    group_id: Optional[str] = Field(default=None, alias="GroupId")
    cluster_name: Optional[str] = Field(default=None, alias="ClusterName")
    snapshot_id: Optional[str] = Field(default=None, alias="SnapshotId")
    export_bucket_id: Optional[str] = Field(default=None, alias="ExportBucketId")
    custom_data_set: Optional[List[CustomData]] = Field(default=None, alias="CustomDataSet")
    # read-only
    export_id: Optional[str] = Field(default=None, alias="ExportId")
    state: Optional[str] = Field(default=None, alias="State")
    created_at: Optional[str] = Field(default=None, alias="CreatedAt")
    finished_at: Optional[str] = Field(default=None, alias="FinishedAt")
    prefix: Optional[str] = Field(default=None, alias="Prefix")
    export_status: Optional[ExportStatus] = Field(default=None, alias="ExportStatus")
    components: Optional[List[ExportComponent]] = Field(default=None, alias="Components")


class ExportJobContext(ContinuationContext):
    phase: ExportJobPhase
    project_id: str = Field(alias="projectId")
    cluster_name: str = Field(alias="clusterName")
    export_id: str = Field(alias="exportId")


def build_request(desired: ExportJobModel) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "snapshotId": desired.snapshot_id,
        "exportBucketId": desired.export_bucket_id,
    }
    if desired.custom_data_set:
        body["customData"] = [
            {"key": item.key, "value": item.value} for item in desired.custom_data_set
        ]
    return body


def model_from_remote(
    remote: Mapping[str, Any], desired: ExportJobModel
) -> Dict[str, Any]:
    """Copy of *desired* carrying the job's server-side fields."""
    updates: Dict[str, Any] = {
        "export_id": remote.get("id") or desired.export_id,
        "export_bucket_id": remote.get("exportBucketId") or desired.export_bucket_id,
        "snapshot_id": remote.get("snapshotId") or desired.snapshot_id,
        "state": remote.get("state"),
        "created_at": remote.get("createdAt"),
        "finished_at": remote.get("finishedAt"),
        "prefix": remote.get("prefix"),
    }
    status = remote.get("exportStatus")
    if status:
        updates["export_status"] = ExportStatus(
            exported_collections=status.get("exportedCollections"),
            total_collections=status.get("totalCollections"),
        )
    if remote.get("customData"):
        updates["custom_data_set"] = [
            CustomData(key=item.get("key"), value=item.get("value"))
            for item in remote["customData"]
        ]
    if remote.get("components"):
        updates["components"] = [
            ExportComponent(
                replica_set_name=item.get("replicaSetName"),
                export_id=item.get("exportId"),
            )
            for item in remote["components"]
        ]
    merged = desired.model_copy(update=updates)
    return merged.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class ExportJobPolicy(PhasePolicy):
    family = FAMILY
    resource_label = "export job"
    desired_cls = ExportJobModel
    context_cls = ExportJobContext
    phase_enum = ExportJobPhase
    required_fields = {
        "create": ("GroupId", "ClusterName", "SnapshotId", "ExportBucketId"),
        "delete": ("GroupId", "ClusterName"),
        "read": ("GroupId", "ClusterName", "ExportId"),
        "list": ("GroupId", "ClusterName"),
    }
    phases_by_operation = {Operation.CREATE: frozenset({ExportJobPhase.EXPORTING})}

    def __init__(
        self,
        gateway: ExportJobGateway,
        config: Optional[ProvisionerConfig] = None,
    ) -> None:
        super().__init__(config)
        self.gateway = gateway

    def check_model(self, operation: Any, desired: ExportJobModel) -> Optional[str]:
        if getattr(operation, "value", operation) == "update":
            return "Update is not supported for export jobs"
        return None

    def begin(self, operation: Operation, model: Mapping[str, Any]):
        desired = self.parse(model)

        if operation == Operation.CREATE:
            job = self.gateway.create(
                desired.group_id, desired.cluster_name, build_request(desired)
            )
            export_id = job["id"]
            return Transition(
                ExportJobPhase.EXPORTING.value,
                f"Create export snapshots : {export_id}",
                {
                    "project_id": desired.group_id,
                    "cluster_name": desired.cluster_name,
                    "export_id": export_id,
                },
            )

        # delete
        if not desired.export_id:
            return Completed(None, "Delete success")
        try:
            self.gateway.get(desired.group_id, desired.cluster_name, desired.export_id)
        except ApiError as exc:
            if exc.is_not_found:
                return Completed(None, "Delete success")
            raise
        logger.info(
            "Export job %s cannot be removed from Atlas; releasing it", desired.export_id
        )
        return Completed(None, "Delete success")

    def fetch(self, ctx: ExportJobContext) -> Dict[str, Any]:
        return self.gateway.get(ctx.project_id, ctx.cluster_name, ctx.export_id)

    def is_terminal_success(
        self, ctx: ExportJobContext, remote: Mapping[str, Any]
    ) -> bool:
        if ctx.phase == ExportJobPhase.EXPORTING:
            return remote.get("state") == SUCCESSFUL
        raise self.unknown_phase(ctx)

    def failure_reason(
        self, ctx: ExportJobContext, remote: Mapping[str, Any]
    ) -> Optional[str]:
        state = remote.get("state")
        if state in FAILED_STATES:
            return f"Export job {ctx.export_id} finished in state {state}"
        return None

    def finalize(
        self,
        ctx: ExportJobContext,
        remote: Mapping[str, Any],
        model: Mapping[str, Any],
    ) -> Dict[str, Any]:
        return model_from_remote(remote, self.parse(model))

    def delay_for(self, ctx: ExportJobContext, first: bool = False) -> int:
        if first:
            return self.config.delays.export_job_create
        return self.config.delays.export_job_poll

    def read(self, model: Mapping[str, Any]) -> Dict[str, Any]:
        desired = self.parse(model)
        remote = self.gateway.get(desired.group_id, desired.cluster_name, desired.export_id)
        return model_from_remote(remote, desired)

    def list(self, model: Mapping[str, Any]) -> List[Dict[str, Any]]:
        desired = self.parse(model)
        base = desired.model_copy(update={"custom_data_set": None})
        return [
            model_from_remote(item, base)
            for item in self.gateway.list(desired.group_id, desired.cluster_name)
        ]
