"""Phase policy base class shared by every resource family.

A policy owns everything family-specific: the desired-model schema, the
continuation-context record, the phase enum, the remote calls that start
and advance an operation, and the predicates that say whether a phase has
finished or failed.  The controller owns the control flow.

Contract, per phase of a running operation::

    fetch(ctx)                      -> remote state (idempotent read)
    is_terminal_success(ctx, rs)    -> phase target reached?
    advance(ctx, rs, model)         -> next Transition, Completed, or None
    failure_reason(ctx, rs)         -> message when the phase cannot finish
    finalize(ctx, rs, model)        -> authoritative model on success
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import AbstractSet, Any, Dict, List, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel, ValidationError

from atlas_prov.config.models import ProvisionerConfig
from atlas_prov.state.context import ContextCodec, ContinuationContext
from atlas_prov.state.models import Completed, ErrorCategory, Operation, Transition

logger = logging.getLogger(__name__)

BeginResult = Union[Transition, Completed]


class TransitionRejected(Exception):
    """The requested state change is not legal from the current remote state."""


class UnknownPhaseError(Exception):
    """A decoded phase has no handler for the running operation."""


def missing_fields(model: Mapping[str, Any], required: Tuple[str, ...]) -> List[str]:
    """Return dotted field paths from *required* that are absent or empty.

    >>> missing_fields({"ApiKeys": {"PublicKey": "x"}}, ("ApiKeys.PrivateKey",))
    ['ApiKeys.PrivateKey']
    """
    missing = []
    for path in required:
        node: Any = model
        for part in path.split("."):
            node = node.get(part) if isinstance(node, Mapping) else None
            if node is None:
                break
        if node is None or node == "" or node == []:
            missing.append(path)
    return missing


class PhasePolicy:
    """Base class; subclasses set the class attributes and override hooks."""

    #: Wire name of the family, stored in every context as ``family``.
    family: str = ""
    #: Human label used in log lines and timeout messages.
    resource_label: str = "resource"
    desired_cls: Type[BaseModel] = BaseModel
    context_cls: Type[ContinuationContext] = ContinuationContext
    phase_enum: Type[Enum] = Enum
    #: Required desired-model fields keyed by operation name, including
    #: ``read`` and ``list``.  Dotted paths reach into nested objects.
    required_fields: Dict[str, Tuple[str, ...]] = {}
    #: Phases each operation may be resumed in.  A context whose phase is not
    #: listed for its operation is rejected as malformed.
    phases_by_operation: Dict[Operation, AbstractSet[Enum]] = {}
    #: Category attached to remote-state failures.
    failure_category: ErrorCategory = ErrorCategory.GENERAL_SERVICE_EXCEPTION

    def __init__(self, config: Optional[ProvisionerConfig] = None) -> None:
        self.config = config or ProvisionerConfig()
        self.codec: ContextCodec = ContextCodec(
            self.family, self.context_cls, self.phase_enum, self.phases_by_operation
        )

    # -- model handling -----------------------------------------------------

    def parse(self, model: Mapping[str, Any]) -> Any:
        """Parse the raw desired model into :attr:`desired_cls`."""
        return self.desired_cls.model_validate(dict(model or {}))

    def dump(self, desired: BaseModel) -> Dict[str, Any]:
        return desired.model_dump(by_alias=True, exclude_none=True)

    def validate_model(
        self, operation: Union[Operation, str], model: Mapping[str, Any]
    ) -> Optional[str]:
        """Return a problem description, or ``None`` when *model* is usable."""
        name = getattr(operation, "value", operation)
        missing = missing_fields(model or {}, self.required_fields.get(name, ()))
        if missing:
            return f"The next fields are required: {', '.join(missing)}"
        try:
            desired = self.parse(model)
        except ValidationError as exc:
            return f"Invalid {self.resource_label} model: {exc}"
        return self.check_model(operation, desired)

    def check_model(self, operation: Union[Operation, str], desired: Any) -> Optional[str]:
        """Family-specific consistency rules beyond field presence."""
        return None

    # -- operation hooks ----------------------------------------------------

    def begin(self, operation: Operation, model: Mapping[str, Any]) -> BeginResult:
        raise NotImplementedError

    def time_bounds(
        self, operation: Operation, model: Mapping[str, Any]
    ) -> Optional[Tuple[Optional[str], bool]]:
        """``(timeout, delete_on_timeout)`` for time-bounded operations."""
        return None

    def fetch(self, ctx: ContinuationContext) -> Dict[str, Any]:
        raise NotImplementedError

    def is_terminal_success(
        self, ctx: ContinuationContext, remote: Mapping[str, Any]
    ) -> bool:
        raise NotImplementedError

    def failure_reason(
        self, ctx: ContinuationContext, remote: Mapping[str, Any]
    ) -> Optional[str]:
        return None

    def advance(
        self,
        ctx: ContinuationContext,
        remote: Mapping[str, Any],
        model: Mapping[str, Any],
    ) -> Optional[BeginResult]:
        return None

    def finalize(
        self,
        ctx: ContinuationContext,
        remote: Mapping[str, Any],
        model: Mapping[str, Any],
    ) -> Optional[Dict[str, Any]]:
        return dict(model or {})

    def validate_transition(self, current: str, target: str) -> None:
        """Raise :class:`TransitionRejected` for an illegal state change."""

    def cleanup(self, ctx: ContinuationContext) -> None:
        """Compensating delete after a timed-out create."""

    def delay_for(self, ctx: ContinuationContext, first: bool = False) -> int:
        """Seconds the caller should wait before re-invoking.

        *first* is true for the InProgress outcome of the initial call.
        """
        raise NotImplementedError

    # -- read / list --------------------------------------------------------

    def read(self, model: Mapping[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def list(self, model: Mapping[str, Any]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    # -- helpers ------------------------------------------------------------

    def unknown_phase(self, ctx: ContinuationContext) -> UnknownPhaseError:
        return UnknownPhaseError(
            f"{self.resource_label} {ctx.operation.value} has no handler for "
            f"phase {getattr(ctx.phase, 'value', ctx.phase)!r}"
        )
