"""Provisioning controller: one invocation, one unit of work.

::

    step(operation, context, model)
      │
      ├─ no context ─▶ validate ─▶ policy.begin ─▶ InProgress(new context) | Success
      │
      └─ context ──▶ decode ─▶ validate ─▶ fetch ─▶ overrun? ─▶ Failed(NotStabilized)
                                                ├─ phase done ─▶ advance ─▶ InProgress(next phase) | Success
                                                ├─ phase failed ─▶ Failed
                                                └─ otherwise ─▶ InProgress(same context)

A fetch that fails after the deadline is reported as the overrun, not as
the gateway error.

This is the only place where exceptions become :class:`Outcome` failures.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union

from atlas_prov.config.models import ProvisionerConfig
from atlas_prov.gateway.errors import ApiError
from atlas_prov.resources.base import PhasePolicy, TransitionRejected, UnknownPhaseError
from atlas_prov.state.context import ContinuationContext, MalformedContextError
from atlas_prov.state.models import (
    Completed,
    ErrorCategory,
    Operation,
    Outcome,
    Transition,
)
from atlas_prov.workflow.supervisor import OverrunCheck, TimeoutSupervisor

logger = logging.getLogger(__name__)


class ProvisioningController:
    """Drives one resource family through its phases.

    Args:
        policy: Family-specific phase policy.
        config: Provisioner configuration; defaults to the policy's.
        supervisor: Timeout supervisor; built from ``config.default_timeout``
            when omitted.
    """

    def __init__(
        self,
        policy: PhasePolicy,
        *,
        config: Optional[ProvisionerConfig] = None,
        supervisor: Optional[TimeoutSupervisor] = None,
    ) -> None:
        self.policy = policy
        self.config = config or policy.config
        self.supervisor = supervisor or TimeoutSupervisor(self.config.default_timeout)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def step(
        self,
        operation: Union[Operation, str],
        context: Optional[Mapping[str, Any]],
        model: Optional[Mapping[str, Any]],
    ) -> Outcome:
        """Run one invocation of *operation* and return its outcome."""
        model = dict(model or {})
        try:
            operation = Operation(operation)
        except ValueError:
            return Outcome.failed(
                f"Unsupported operation: {operation!r}", ErrorCategory.INVALID_REQUEST
            )

        try:
            ctx = self.policy.codec.decode(context)
        except MalformedContextError as exc:
            logger.error("Rejecting %s context: %s", self.policy.family, exc)
            return Outcome.failed(str(exc), ErrorCategory.INTERNAL_FAILURE, retryable=False)

        if ctx is not None and ctx.operation != operation:
            message = (
                f"Continuation context was issued for {ctx.operation.value}, "
                f"not {operation.value}"
            )
            logger.error(message)
            return Outcome.failed(message, ErrorCategory.INTERNAL_FAILURE, retryable=False)

        try:
            if ctx is None:
                return self._start(operation, model)
            return self._resume(ctx, model)
        except TransitionRejected as exc:
            return Outcome.failed(str(exc), ErrorCategory.INVALID_REQUEST)
        except UnknownPhaseError as exc:
            logger.error("%s", exc)
            return Outcome.failed(str(exc), ErrorCategory.INTERNAL_FAILURE, retryable=False)
        except ApiError as exc:
            logger.warning(
                "%s %s failed: %s", self.policy.resource_label, operation.value, exc
            )
            return Outcome.failed(exc.message, exc.category)

    def read(self, model: Optional[Mapping[str, Any]]) -> Outcome:
        model = dict(model or {})
        problem = self.policy.validate_model("read", model)
        if problem:
            return Outcome.failed(problem, ErrorCategory.INVALID_REQUEST)
        try:
            return Outcome.success(self.policy.read(model))
        except ApiError as exc:
            return Outcome.failed(exc.message, exc.category)

    def list(self, model: Optional[Mapping[str, Any]]) -> Outcome:
        model = dict(model or {})
        problem = self.policy.validate_model("list", model)
        if problem:
            return Outcome.failed(problem, ErrorCategory.INVALID_REQUEST)
        try:
            return Outcome.success(models=self.policy.list(model), message="List complete")
        except ApiError as exc:
            return Outcome.failed(exc.message, exc.category)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start(self, operation: Operation, model: Dict[str, Any]) -> Outcome:
        problem = self.policy.validate_model(operation, model)
        if problem:
            return Outcome.failed(problem, ErrorCategory.INVALID_REQUEST)

        logger.info("Starting %s %s", self.policy.resource_label, operation.value)
        result = self.policy.begin(operation, model)
        if isinstance(result, Completed):
            return Outcome.success(result.model, result.message)

        fields: Dict[str, Any] = dict(result.updates)
        bounds = self.policy.time_bounds(operation, model)
        if bounds is not None:
            fields.update(self.supervisor.stamp(*bounds))
        ctx = self.policy.context_cls(
            family=self.policy.family,
            operation=operation,
            phase=result.phase,
            **fields,
        )
        return Outcome.in_progress(
            self.policy.codec.encode(ctx),
            self.policy.delay_for(ctx, first=True),
            result.message or "Pending",
            model=model,
        )

    def _resume(self, ctx: ContinuationContext, model: Dict[str, Any]) -> Outcome:
        # later phases parse the model again
        problem = self.policy.validate_model(ctx.operation, model)
        if problem:
            return Outcome.failed(problem, ErrorCategory.INVALID_REQUEST)

        try:
            remote = self.policy.fetch(ctx)
        except ApiError:
            check = self.supervisor.check_overrun(ctx)
            if check.overrun:
                return self._overrun(ctx, check)
            raise

        check = self.supervisor.check_overrun(ctx)
        if check.overrun:
            return self._overrun(ctx, check)

        if self.policy.is_terminal_success(ctx, remote):
            result = self.policy.advance(ctx, remote, model)
            if result is None:
                return Outcome.success(self.policy.finalize(ctx, remote, model))
            if isinstance(result, Completed):
                return Outcome.success(result.model, result.message)
            return self._transition(ctx, result, model)

        reason = self.policy.failure_reason(ctx, remote)
        if reason:
            logger.error(
                "%s %s failed: %s", self.policy.resource_label, ctx.operation.value, reason
            )
            return Outcome.failed(reason, self.policy.failure_category, retryable=False)

        return Outcome.in_progress(
            self.policy.codec.encode(ctx),
            self.policy.delay_for(ctx),
            model=model,
        )

    def _overrun(self, ctx: ContinuationContext, check: OverrunCheck) -> Outcome:
        logger.warning(
            "%s %s exceeded its budget (%s elapsed of %s)",
            self.policy.resource_label,
            ctx.operation.value,
            check.elapsed,
            check.budget,
        )
        return self.supervisor.handle_overrun(
            ctx, self.policy.cleanup, self.policy.resource_label
        )

    def _transition(
        self, ctx: ContinuationContext, result: Transition, model: Dict[str, Any]
    ) -> Outcome:
        logger.info(
            "%s %s: %s -> %s",
            self.policy.resource_label,
            ctx.operation.value,
            getattr(ctx.phase, "value", ctx.phase),
            result.phase,
        )
        fields = {**ctx.model_dump(), **result.updates, "phase": result.phase}
        next_ctx = self.policy.context_cls(**fields)
        return Outcome.in_progress(
            self.policy.codec.encode(next_ctx),
            self.policy.delay_for(next_ctx),
            result.message or "Pending",
            model=model,
        )
