"""Atlas advanced cluster lifecycle.

Create and update wait for ``stateName == IDLE``, then apply the follow-up
settings Atlas does not accept on the initial request, one call per
invocation:

1. ``AdvancedSettings`` (process args) → ``CONFIGURING``
2. ``Paused`` when it differs from the remote → ``PAUSING``

Delete waits until the cluster is gone; a 404 counts as ``DELETED``.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from atlas_prov.config.models import ProvisionerConfig
from atlas_prov.gateway.clusters import ClusterGateway
from atlas_prov.gateway.errors import ApiError
from atlas_prov.resources.base import PhasePolicy
from atlas_prov.state.context import ContinuationContext
from atlas_prov.state.models import Completed, ErrorCategory, Operation, Transition

logger = logging.getLogger(__name__)

FAMILY = "cluster"

IDLE = "IDLE"
DELETING = "DELETING"
DELETED = "DELETED"

PROVIDER_NAME = "AWS"

LABEL_ERROR = (
    "you should not set `{key}` label, it is used for internal purposes"
)

# PascalCase model keys whose Atlas spelling is not a simple lower-first.
_ATLAS_KEYS = {
    "ID": "id",
    "AdvancedRegionConfigs": "regionConfigs",
    "DiskGB": "diskGB",
    "DiskIOPS": "diskIOPS",
    "DiskSizeGB": "diskSizeGB",
    "MinimumEnabledTLSProtocol": "minimumEnabledTlsProtocol",
    "MongoDBMajorVersion": "mongoDBMajorVersion",
    "MongoDBVersion": "mongoDBVersion",
    "OplogSizeMB": "oplogSizeMB",
    "SampleRefreshIntervalBIConnector": "sampleRefreshIntervalBIConnector",
    "SampleSizeBIConnector": "sampleSizeBIConnector",
}
_MODEL_KEYS = {v: k for k, v in _ATLAS_KEYS.items()}


class ClusterPhase(str, Enum):
    CREATING = "CREATING"
    UPDATING = "UPDATING"
    CONFIGURING = "CONFIGURING"
    PAUSING = "PAUSING"
    DELETING = "DELETING"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class Label(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: Optional[str] = Field(default=None, alias="Key")
    value: Optional[str] = Field(default=None, alias="Value")


class ReplicationSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(default=None, alias="ID")
    num_shards: Optional[int] = Field(default=None, alias="NumShards")
    zone_name: Optional[str] = Field(default=None, alias="ZoneName")
    advanced_region_configs: List[Dict[str, Any]] = Field(
        default_factory=list, alias="AdvancedRegionConfigs"
    )


class ClusterTimeouts(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    create: Optional[str] = Field(default=None, alias="Create")
    update: Optional[str] = Field(default=None, alias="Update")
    delete: Optional[str] = Field(default=None, alias="Delete")


class ClusterModel(BaseModel):
    """Desired cluster; read-only fields are filled on success."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    profile: Optional[str] = Field(default=None, alias="Profile")
    project_id: Optional[str] = Field(default=None, alias="ProjectId")
    name: Optional[str] = Field(default=None, alias="Name")
    id: Optional[str] = Field(default=None, alias="Id")
    cluster_type: Optional[str] = Field(default=None, alias="ClusterType")
    backup_enabled: Optional[bool] = Field(default=None, alias="BackupEnabled")
    bi_connector: Optional[Dict[str, Any]] = Field(default=None, alias="BiConnector")
    disk_size_gb: Optional[float] = Field(default=None, alias="DiskSizeGB")
    encryption_at_rest_provider: Optional[str] = Field(
        default=None, alias="EncryptionAtRestProvider"
    )
    labels: Optional[List[Label]] = Field(default=None, alias="Labels")
    mongodb_major_version: Optional[Union[str, float]] = Field(
        default=None, alias="MongoDBMajorVersion"
    )
    pit_enabled: Optional[bool] = Field(default=None, alias="PitEnabled")
    replication_specs: Optional[List[ReplicationSpec]] = Field(
        default=None, alias="ReplicationSpecs"
    )
    root_cert_type: Optional[str] = Field(default=None, alias="RootCertType")
    version_release_system: Optional[str] = Field(
        default=None, alias="VersionReleaseSystem"
    )
    termination_protection_enabled: Optional[bool] = Field(
        default=None, alias="TerminationProtectionEnabled"
    )
    paused: Optional[bool] = Field(default=None, alias="Paused")
    advanced_settings: Optional[Dict[str, Any]] = Field(
        default=None, alias="AdvancedSettings"
    )
    timeouts: Optional[ClusterTimeouts] = Field(default=None, alias="Timeouts")

    # read-only
    state_name: Optional[str] = Field(default=None, alias="StateName")
    connection_strings: Optional[Dict[str, Any]] = Field(
        default=None, alias="ConnectionStrings"
    )
    created_date: Optional[str] = Field(default=None, alias="CreatedDate")
    mongodb_version: Optional[str] = Field(default=None, alias="MongoDBVersion")


class ClusterContext(ContinuationContext):
    phase: ClusterPhase
    project_id: str = Field(alias="projectId")
    cluster_name: str = Field(alias="clusterName")


# ---------------------------------------------------------------------------
# Key / value mapping
# ---------------------------------------------------------------------------


def to_atlas(value: Any) -> Any:
    """Recursively rename PascalCase model keys to Atlas camelCase."""
    if isinstance(value, Mapping):
        out = {}
        for key, item in value.items():
            atlas_key = _ATLAS_KEYS.get(key) or key[:1].lower() + key[1:]
            if key == "DiskIOPS" and isinstance(item, str) and item.isdigit():
                item = int(item)
            out[atlas_key] = to_atlas(item)
        return out
    if isinstance(value, list):
        return [to_atlas(item) for item in value]
    return value


def from_atlas(value: Any) -> Any:
    """Inverse of :func:`to_atlas` for responses."""
    if isinstance(value, Mapping):
        return {
            (_MODEL_KEYS.get(key) or key[:1].upper() + key[1:]): from_atlas(item)
            for key, item in value.items()
            if key != "links"
        }
    if isinstance(value, list):
        return [from_atlas(item) for item in value]
    return value


def format_major_version(version: Any) -> str:
    """``"6"`` → ``"6.0"``; dotted versions pass through unchanged."""
    text = str(version)
    if "." in text:
        return text
    return f"{float(text):.1f}"


def expand_replication_specs(specs: List[ReplicationSpec]) -> List[Dict[str, Any]]:
    out = []
    for spec in specs:
        region_configs = []
        for cfg in spec.advanced_region_configs:
            region = to_atlas(cfg)
            region["providerName"] = PROVIDER_NAME
            region_configs.append(region)
        item: Dict[str, Any] = {
            "numShards": spec.num_shards or 0,
            "regionConfigs": region_configs,
        }
        if spec.id:
            item["id"] = spec.id
        if spec.zone_name:
            item["zoneName"] = spec.zone_name
        out.append(item)
    return out


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class ClusterPolicy(PhasePolicy):
    family = FAMILY
    resource_label = "cluster"
    desired_cls = ClusterModel
    context_cls = ClusterContext
    phase_enum = ClusterPhase
    required_fields = {
        "create": ("ProjectId", "Name"),
        "update": ("ProjectId", "Name"),
        "delete": ("ProjectId", "Name"),
        "read": ("ProjectId", "Name"),
        "list": ("ProjectId",),
    }
    phases_by_operation = {
        Operation.CREATE: frozenset({
            ClusterPhase.CREATING, ClusterPhase.CONFIGURING, ClusterPhase.PAUSING,
        }),
        Operation.UPDATE: frozenset({
            ClusterPhase.UPDATING, ClusterPhase.CONFIGURING, ClusterPhase.PAUSING,
        }),
        Operation.DELETE: frozenset({ClusterPhase.DELETING}),
    }
    failure_category = ErrorCategory.NOT_STABILIZED

    def __init__(
        self,
        gateway: ClusterGateway,
        config: Optional[ProvisionerConfig] = None,
    ) -> None:
        super().__init__(config)
        self.gateway = gateway

    # -- validation ---------------------------------------------------------

    def check_model(self, operation: Any, desired: ClusterModel) -> Optional[str]:
        if desired.replication_specs:
            if not desired.cluster_type:
                return "ClusterType should be set when `ReplicationSpecs` is set"
            for spec in desired.replication_specs:
                if spec.num_shards is None:
                    return "NumShards should be set when `ReplicationSpecs` is set"
        reserved = set(self.config.reserved_label_keys)
        for label in desired.labels or []:
            if label.key in reserved:
                return LABEL_ERROR.format(key=label.key)
        return None

    # -- request building ---------------------------------------------------

    def build_request(self, desired: ClusterModel, create: bool) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if create:
            body["name"] = desired.name
        if desired.cluster_type:
            body["clusterType"] = desired.cluster_type
        if desired.replication_specs:
            body["replicationSpecs"] = expand_replication_specs(desired.replication_specs)
        if desired.backup_enabled is not None:
            body["backupEnabled"] = desired.backup_enabled
        if desired.bi_connector is not None:
            body["biConnector"] = to_atlas(desired.bi_connector)
        if desired.disk_size_gb is not None:
            body["diskSizeGB"] = desired.disk_size_gb
        if desired.encryption_at_rest_provider:
            body["encryptionAtRestProvider"] = desired.encryption_at_rest_provider
        if desired.labels or create:
            labels = [
                {"key": label.key, "value": label.value or ""}
                for label in desired.labels or []
            ]
            labels.extend(
                {"key": label.key, "value": label.value}
                for label in self.config.reserved_labels
            )
            body["labels"] = labels
        if desired.mongodb_major_version:
            body["mongoDBMajorVersion"] = format_major_version(desired.mongodb_major_version)
        if desired.pit_enabled is not None:
            body["pitEnabled"] = desired.pit_enabled
        if desired.root_cert_type:
            body["rootCertType"] = desired.root_cert_type
        if desired.version_release_system:
            body["versionReleaseSystem"] = desired.version_release_system
        if desired.termination_protection_enabled is not None:
            body["terminationProtectionEnabled"] = desired.termination_protection_enabled
        return body

    # -- begin --------------------------------------------------------------

    def begin(self, operation: Operation, model: Mapping[str, Any]):
        desired = self.parse(model)
        ids = {"project_id": desired.project_id, "cluster_name": desired.name}

        if operation == Operation.CREATE:
            cluster = self.gateway.create(
                desired.project_id, self.build_request(desired, create=True)
            )
            state = cluster.get("stateName", "CREATING")
            return Transition(ClusterPhase.CREATING.value, f"Create Cluster `{state}`", ids)

        if operation == Operation.UPDATE:
            cluster = self.gateway.update(
                desired.project_id, desired.name, self.build_request(desired, create=False)
            )
            state = cluster.get("stateName", "UPDATING")
            return Transition(ClusterPhase.UPDATING.value, f"Update Cluster `{state}`", ids)

        try:
            self.gateway.delete(desired.project_id, desired.name)
        except ApiError as exc:
            if not exc.is_not_found:
                raise
            logger.info("Cluster %s already absent", desired.name)
            return Completed(None, "Delete Complete")
        return Transition(ClusterPhase.DELETING.value, "Delete in progress", ids)

    def time_bounds(
        self, operation: Operation, model: Mapping[str, Any]
    ) -> Optional[Tuple[Optional[str], bool]]:
        desired = self.parse(model)
        if desired.timeouts is None:
            return None
        timeout = getattr(desired.timeouts, operation.value)
        if not timeout:
            return None
        return timeout, False

    # -- resume -------------------------------------------------------------

    def fetch(self, ctx: ClusterContext) -> Dict[str, Any]:
        try:
            return self.gateway.get(ctx.project_id, ctx.cluster_name)
        except ApiError as exc:
            if exc.is_not_found:
                return {"stateName": DELETED}
            raise

    def is_terminal_success(self, ctx: ClusterContext, remote: Mapping[str, Any]) -> bool:
        if ctx.phase not in tuple(ClusterPhase):
            raise self.unknown_phase(ctx)
        target = DELETED if ctx.phase == ClusterPhase.DELETING else IDLE
        return remote.get("stateName") == target

    def failure_reason(
        self, ctx: ClusterContext, remote: Mapping[str, Any]
    ) -> Optional[str]:
        state = remote.get("stateName")
        if ctx.phase != ClusterPhase.DELETING and state in (DELETING, DELETED):
            return f"Cluster {ctx.cluster_name} is {state.lower()}"
        return None

    def advance(
        self,
        ctx: ClusterContext,
        remote: Mapping[str, Any],
        model: Mapping[str, Any],
    ):
        if ctx.phase in (ClusterPhase.DELETING, ClusterPhase.PAUSING):
            return None
        desired = self.parse(model)
        if ctx.phase in (ClusterPhase.CREATING, ClusterPhase.UPDATING):
            if desired.advanced_settings:
                self.gateway.update_process_args(
                    ctx.project_id, ctx.cluster_name, to_atlas(desired.advanced_settings)
                )
                return Transition(ClusterPhase.CONFIGURING.value, "Applying advanced settings")
        if desired.paused is not None and desired.paused != bool(remote.get("paused")):
            self.gateway.update(ctx.project_id, ctx.cluster_name, {"paused": desired.paused})
            verb = "Pausing" if desired.paused else "Resuming"
            return Transition(ClusterPhase.PAUSING.value, f"{verb} cluster")
        return None

    def finalize(
        self,
        ctx: ClusterContext,
        remote: Mapping[str, Any],
        model: Mapping[str, Any],
    ) -> Optional[Dict[str, Any]]:
        if ctx.phase == ClusterPhase.DELETING:
            return None
        return self._merge(self.parse(model), remote)

    def delay_for(self, ctx: ClusterContext, first: bool = False) -> int:
        delays = self.config.delays
        if first and ctx.operation == Operation.CREATE:
            return delays.cluster_create
        if first and ctx.operation == Operation.UPDATE:
            return delays.cluster_update
        return delays.cluster_poll

    # -- read / list --------------------------------------------------------

    def read(self, model: Mapping[str, Any]) -> Dict[str, Any]:
        desired = self.parse(model)
        remote = self.gateway.get(desired.project_id, desired.name)
        merged = self._merge(desired, remote)
        if desired.advanced_settings is not None:
            args = self.gateway.get_process_args(desired.project_id, desired.name)
            merged["AdvancedSettings"] = from_atlas(args)
        return merged

    def list(self, model: Mapping[str, Any]) -> List[Dict[str, Any]]:
        desired = self.parse(model)
        results = []
        for remote in self.gateway.list(desired.project_id):
            item = ClusterModel(
                profile=desired.profile,
                project_id=desired.project_id,
                name=remote.get("name"),
            )
            results.append(self._merge(item, remote, full=True))
        return results

    # -- internals ----------------------------------------------------------

    def _merge(
        self, desired: ClusterModel, remote: Mapping[str, Any], full: bool = False
    ) -> Dict[str, Any]:
        """Copy of *desired* with remote values for the fields it tracks.

        Read-only fields are always taken from *remote*; other fields only
        when set on *desired* (or when *full*).
        """
        reserved = set(self.config.reserved_label_keys)
        updates: Dict[str, Any] = {
            "id": remote.get("id") or desired.id,
            "project_id": remote.get("groupId") or desired.project_id,
            "name": remote.get("name") or desired.name,
            "state_name": remote.get("stateName"),
            "created_date": remote.get("createDate"),
            "mongodb_version": remote.get("mongoDBVersion"),
        }
        if remote.get("connectionStrings"):
            updates["connection_strings"] = from_atlas(remote["connectionStrings"])

        tracked = {
            "cluster_type": remote.get("clusterType"),
            "backup_enabled": remote.get("backupEnabled"),
            "disk_size_gb": remote.get("diskSizeGB"),
            "encryption_at_rest_provider": remote.get("encryptionAtRestProvider"),
            "mongodb_major_version": remote.get("mongoDBMajorVersion"),
            "paused": remote.get("paused"),
            "pit_enabled": remote.get("pitEnabled"),
            "root_cert_type": remote.get("rootCertType"),
            "version_release_system": remote.get("versionReleaseSystem"),
            "termination_protection_enabled": remote.get("terminationProtectionEnabled"),
        }
        for field_name, value in tracked.items():
            if value is not None and (full or getattr(desired, field_name) is not None):
                updates[field_name] = value

        if remote.get("biConnector") is not None and (full or desired.bi_connector is not None):
            updates["bi_connector"] = from_atlas(remote["biConnector"])
        if remote.get("labels") is not None and (full or desired.labels is not None):
            updates["labels"] = [
                Label(key=label.get("key"), value=label.get("value"))
                for label in remote["labels"]
                if label.get("key") not in reserved
            ]
        if remote.get("replicationSpecs") is not None and (
            full or desired.replication_specs is not None
        ):
            updates["replication_specs"] = [
                ReplicationSpec.model_validate(from_atlas(spec))
                for spec in remote["replicationSpecs"]
            ]
        return desired.model_copy(update=updates).model_dump(by_alias=True, exclude_none=True)
