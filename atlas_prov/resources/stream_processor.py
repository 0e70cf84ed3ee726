"""Stream processor lifecycle.

Remote states: ``INIT`` → ``CREATING`` → ``CREATED`` ⇄ ``STARTED`` / ``STOPPED``,
plus the terminal ``DROPPED`` and ``FAILED``.

Create::

    create ─▶ CREATING ──(CREATED, start wanted)──▶ start ─▶ STARTING ─▶ done
                       └─(CREATED | STARTED)──────────────────────────▶ done

Update (the remote is read and the transition checked before any call)::

    STARTED remote ─▶ stop ─▶ STOPPING ─▶ update ─▶ UPDATING ─▶ [start ─▶ STARTING] ─▶ done
    otherwise      ─────────────────────▶ update ─▶ UPDATING ─▶ [start ─▶ STARTING] ─▶ done

Delete is a single call; a processor that is already gone counts as deleted.
Only create is time-bounded; on overrun the half-created processor is
deleted when ``DeleteOnCreateTimeout`` is true (the default).
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from atlas_prov.config.models import ProvisionerConfig
from atlas_prov.gateway.errors import ApiError
from atlas_prov.gateway.streams import StreamProcessorGateway
from atlas_prov.resources.base import PhasePolicy, TransitionRejected
from atlas_prov.state.context import ContinuationContext
from atlas_prov.state.models import Completed, Operation, Transition

logger = logging.getLogger(__name__)

FAMILY = "stream-processor"

# Remote states
INIT = "INIT"
CREATING = "CREATING"
CREATED = "CREATED"
STARTED = "STARTED"
STOPPED = "STOPPED"
DROPPED = "DROPPED"
FAILED = "FAILED"

CREATE_STATES = (CREATED, STARTED)


class StreamProcessorPhase(str, Enum):
    CREATING = "CREATING"
    STARTING = "STARTING"
    STOPPING = "STOPPING"
    UPDATING = "UPDATING"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class Timeouts(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    create: Optional[str] = Field(default=None, alias="Create")


class StreamProcessorModel(BaseModel):
    """Desired stream processor."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    profile: Optional[str] = Field(default=None, alias="Profile")
    project_id: Optional[str] = Field(default=None, alias="ProjectId")
    workspace_name: Optional[str] = Field(default=None, alias="WorkspaceName")
    instance_name: Optional[str] = Field(default=None, alias="InstanceName")
    processor_name: Optional[str] = Field(default=None, alias="ProcessorName")
    pipeline: Optional[str] = Field(default=None, alias="Pipeline")
    state: Optional[str] = Field(default=None, alias="State")
    options: Optional[Dict[str, Any]] = Field(default=None, alias="Options")
    timeouts: Optional[Timeouts] = Field(default=None, alias="Timeouts")
    delete_on_create_timeout: Optional[bool] = Field(
        default=None, alias="DeleteOnCreateTimeout"
    )
    id: Optional[str] = Field(default=None, alias="Id")
    stats: Optional[str] = Field(default=None, alias="Stats")

    @property
    def workspace(self) -> str:
        """``WorkspaceName``, falling back to the deprecated ``InstanceName``."""
        return self.workspace_name or self.instance_name or ""


class StreamProcessorContext(ContinuationContext):
    phase: StreamProcessorPhase
    project_id: str = Field(alias="projectId")
    workspace_name: str = Field(alias="workspaceName")
    processor_name: str = Field(alias="processorName")
    needs_starting: bool = Field(default=False, alias="needsStarting")
    planned_state: Optional[str] = Field(default=None, alias="plannedState")


# ---------------------------------------------------------------------------
# Request / response mapping
# ---------------------------------------------------------------------------


def parse_pipeline(pipeline: Optional[str]) -> List[Dict[str, Any]]:
    """Decode the JSON pipeline string into a list of stages.

    Raises :class:`ValueError` when it is not a JSON array.
    """
    if not pipeline:
        return []
    stages = json.loads(pipeline)
    if not isinstance(stages, list):
        raise ValueError("Pipeline must be a JSON array of stages")
    return stages


def build_request(desired: StreamProcessorModel) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "name": desired.processor_name,
        "pipeline": parse_pipeline(desired.pipeline),
    }
    dlq = (desired.options or {}).get("Dlq")
    if dlq:
        body["options"] = {
            "dlq": {
                "connectionName": dlq.get("ConnectionName"),
                "db": dlq.get("Db"),
                "coll": dlq.get("Coll"),
            }
        }
    return body


def model_from_remote(
    remote: Mapping[str, Any], desired: StreamProcessorModel
) -> Dict[str, Any]:
    """Merge server-assigned fields from *remote* into a copy of *desired*."""
    updates: Dict[str, Any] = {
        "id": remote.get("_id") or remote.get("id") or desired.id,
        "processor_name": remote.get("name") or desired.processor_name,
        "state": remote.get("state") or desired.state,
        "delete_on_create_timeout": None,
    }
    if "pipeline" in remote:
        updates["pipeline"] = json.dumps(remote["pipeline"], separators=(",", ":"))
    if remote.get("stats") is not None:
        updates["stats"] = json.dumps(remote["stats"], separators=(",", ":"))
    dlq = (remote.get("options") or {}).get("dlq")
    if dlq:
        updates["options"] = {
            "Dlq": {
                "ConnectionName": dlq.get("connectionName"),
                "Db": dlq.get("db"),
                "Coll": dlq.get("coll"),
            }
        }
    merged = desired.model_copy(update=updates)
    # keep both workspace spellings in sync
    merged.workspace_name = desired.workspace or None
    merged.instance_name = desired.workspace or None
    return merged.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class StreamProcessorPolicy(PhasePolicy):
    family = FAMILY
    resource_label = "stream processor"
    desired_cls = StreamProcessorModel
    context_cls = StreamProcessorContext
    phase_enum = StreamProcessorPhase
    required_fields = {
        "create": ("ProjectId", "ProcessorName", "Pipeline"),
        "update": ("ProjectId", "ProcessorName", "Pipeline"),
        "delete": ("ProjectId", "ProcessorName"),
        "read": ("ProjectId", "ProcessorName"),
        "list": ("ProjectId",),
    }
    # delete completes in a single call
    phases_by_operation = {
        Operation.CREATE: frozenset({
            StreamProcessorPhase.CREATING, StreamProcessorPhase.STARTING,
        }),
        Operation.UPDATE: frozenset({
            StreamProcessorPhase.STOPPING,
            StreamProcessorPhase.UPDATING,
            StreamProcessorPhase.STARTING,
        }),
    }

    def __init__(
        self,
        gateway: StreamProcessorGateway,
        config: Optional[ProvisionerConfig] = None,
    ) -> None:
        super().__init__(config)
        self.gateway = gateway

    # -- validation ---------------------------------------------------------

    def check_model(self, operation: Any, desired: StreamProcessorModel) -> Optional[str]:
        name = getattr(operation, "value", operation)
        if not desired.workspace:
            return "Either WorkspaceName or InstanceName must be provided"
        if name == "create" and desired.state and desired.state not in CREATE_STATES:
            return (
                "When creating a stream processor, the only valid states are "
                "CREATED and STARTED"
            )
        if name in ("create", "update"):
            try:
                parse_pipeline(desired.pipeline)
            except ValueError as exc:
                return f"Invalid Pipeline: {exc}"
        return None

    def validate_transition(self, current: str, target: str) -> None:
        if target == FAILED:
            raise TransitionRejected(
                f"Stream Processor cannot be set to {FAILED} state"
            )
        if current == target:
            return
        if target == STOPPED and current != STARTED:
            raise TransitionRejected(
                f"Stream Processor must be in {STARTED} state to transition "
                f"to {STOPPED} state"
            )
        if target == CREATED and current != CREATED:
            raise TransitionRejected(
                f"Stream Processor cannot transition from {current} to {CREATED}"
            )

    # -- begin --------------------------------------------------------------

    def begin(self, operation: Operation, model: Mapping[str, Any]):
        desired = self.parse(model)
        ids = {
            "project_id": desired.project_id,
            "workspace_name": desired.workspace,
            "processor_name": desired.processor_name,
        }

        if operation == Operation.CREATE:
            self.gateway.create(desired.project_id, desired.workspace, build_request(desired))
            return Transition(
                StreamProcessorPhase.CREATING.value,
                "Creating stream processor",
                {**ids, "needs_starting": desired.state == STARTED},
            )

        if operation == Operation.UPDATE:
            remote = self.gateway.get(
                desired.project_id, desired.workspace, desired.processor_name
            )
            current = remote.get("state", "")
            # no State in the model keeps the processor where it is
            planned = desired.state or current
            self.validate_transition(current, planned)
            updates = {**ids, "planned_state": planned}
            if current == STARTED:
                self.gateway.stop(
                    desired.project_id, desired.workspace, desired.processor_name
                )
                return Transition(
                    StreamProcessorPhase.STOPPING.value,
                    "Stopping stream processor",
                    updates,
                )
            self.gateway.update(
                desired.project_id,
                desired.workspace,
                desired.processor_name,
                build_request(desired),
            )
            return Transition(
                StreamProcessorPhase.UPDATING.value,
                "Updating stream processor",
                updates,
            )

        try:
            self.gateway.delete(
                desired.project_id, desired.workspace, desired.processor_name
            )
        except ApiError as exc:
            if not exc.is_not_found:
                raise
            logger.info("Stream processor %s already absent", desired.processor_name)
        return Completed(None, "Delete Completed")

    def time_bounds(
        self, operation: Operation, model: Mapping[str, Any]
    ) -> Optional[Tuple[Optional[str], bool]]:
        if operation != Operation.CREATE:
            return None
        desired = self.parse(model)
        timeout = desired.timeouts.create if desired.timeouts else None
        delete = desired.delete_on_create_timeout
        if delete is None:
            delete = self.config.delete_on_create_timeout
        return timeout, delete

    # -- resume -------------------------------------------------------------

    def fetch(self, ctx: StreamProcessorContext) -> Dict[str, Any]:
        return self.gateway.get(ctx.project_id, ctx.workspace_name, ctx.processor_name)

    def is_terminal_success(
        self, ctx: StreamProcessorContext, remote: Mapping[str, Any]
    ) -> bool:
        state = remote.get("state")
        if ctx.phase == StreamProcessorPhase.CREATING:
            return state in CREATE_STATES
        if ctx.phase == StreamProcessorPhase.STARTING:
            return state == STARTED
        if ctx.phase in (StreamProcessorPhase.STOPPING, StreamProcessorPhase.UPDATING):
            return state in (STOPPED, CREATED)
        raise self.unknown_phase(ctx)

    def failure_reason(
        self, ctx: StreamProcessorContext, remote: Mapping[str, Any]
    ) -> Optional[str]:
        state = remote.get("state")
        if state == FAILED:
            return "Stream processor entered FAILED state"
        if state == DROPPED:
            return "Stream processor was dropped"
        if ctx.phase == StreamProcessorPhase.CREATING and state not in (INIT, CREATING):
            return f"Unexpected state during creation: {state}"
        return None

    def advance(
        self,
        ctx: StreamProcessorContext,
        remote: Mapping[str, Any],
        model: Mapping[str, Any],
    ):
        state = remote.get("state")
        if ctx.phase == StreamProcessorPhase.CREATING:
            if state == CREATED and ctx.needs_starting:
                self._start(ctx)
                return Transition(StreamProcessorPhase.STARTING.value, "Starting stream processor")
            return None
        if ctx.phase == StreamProcessorPhase.STOPPING:
            desired = self.parse(model)
            self.gateway.update(
                ctx.project_id,
                ctx.workspace_name,
                ctx.processor_name,
                build_request(desired),
            )
            return Transition(StreamProcessorPhase.UPDATING.value, "Updating stream processor")
        if ctx.phase == StreamProcessorPhase.UPDATING:
            if ctx.planned_state == STARTED:
                self._start(ctx)
                return Transition(StreamProcessorPhase.STARTING.value, "Starting stream processor")
            return None
        if ctx.phase == StreamProcessorPhase.STARTING:
            return None
        raise self.unknown_phase(ctx)

    def finalize(
        self,
        ctx: StreamProcessorContext,
        remote: Mapping[str, Any],
        model: Mapping[str, Any],
    ) -> Dict[str, Any]:
        return model_from_remote(remote, self.parse(model))

    def cleanup(self, ctx: StreamProcessorContext) -> None:
        try:
            self.gateway.delete(ctx.project_id, ctx.workspace_name, ctx.processor_name)
        except ApiError as exc:
            if not exc.is_not_found:
                raise

    def delay_for(self, ctx: StreamProcessorContext, first: bool = False) -> int:
        return self.config.delays.stream_processor

    # -- read / list --------------------------------------------------------

    def read(self, model: Mapping[str, Any]) -> Dict[str, Any]:
        desired = self.parse(model)
        remote = self.gateway.get(
            desired.project_id, desired.workspace, desired.processor_name
        )
        return model_from_remote(remote, desired)

    def list(self, model: Mapping[str, Any]) -> List[Dict[str, Any]]:
        desired = self.parse(model)
        return [
            model_from_remote(item, desired)
            for item in self.gateway.list(desired.project_id, desired.workspace)
        ]

    # -- internals ----------------------------------------------------------

    def _start(self, ctx: StreamProcessorContext) -> None:
        self.gateway.start(ctx.project_id, ctx.workspace_name, ctx.processor_name)
