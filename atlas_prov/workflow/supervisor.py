"""Wall-clock budget enforcement for time-bounded operations.

The start time and the timeout travel inside the continuation context, so
the budget holds across invocations without any process-local state.  On
overrun the supervisor optionally runs the family's compensating delete
(best effort) and produces a terminal ``NotStabilized`` failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from atlas_prov.state.context import (
    ContinuationContext,
    format_timestamp,
    parse_duration,
    parse_timestamp,
)
from atlas_prov.state.models import ErrorCategory, Outcome, Primitive

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = "20m"

Clock = Callable[[], datetime]

_NOUNS = {"create": "creation", "update": "update", "delete": "deletion"}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OverrunCheck:
    """Result of :meth:`TimeoutSupervisor.check_overrun`."""

    overrun: bool
    elapsed: timedelta = timedelta()
    budget: Optional[timedelta] = None


class TimeoutSupervisor:
    """Stamps new contexts and checks elapsed time on resume.

    Args:
        default_timeout: Budget used when a context carries no timeout or an
            unparseable one.
        clock: Returns the current aware datetime; injectable for tests.
    """

    def __init__(
        self,
        default_timeout: str = DEFAULT_TIMEOUT,
        clock: Optional[Clock] = None,
    ) -> None:
        self.default_timeout = default_timeout
        self._default_budget = parse_duration(default_timeout)
        self._clock = clock or _utc_now

    def now(self) -> datetime:
        return self._clock()

    # -- context stamping ---------------------------------------------------

    def stamp(
        self,
        timeout: Optional[str] = None,
        delete_on_timeout: bool = False,
    ) -> Dict[str, Primitive]:
        """Fields to merge into a new time-bounded context."""
        return {
            "start_time": format_timestamp(self.now()),
            "timeout": timeout or self.default_timeout,
            "delete_on_timeout": bool(delete_on_timeout),
        }

    def budget_for(self, timeout: Optional[str]) -> timedelta:
        """Parse *timeout*, falling back to the default with a warning."""
        if not timeout:
            return self._default_budget
        try:
            return parse_duration(timeout)
        except ValueError:
            logger.warning(
                "Invalid timeout %r, using default %s", timeout, self.default_timeout
            )
            return self._default_budget

    # -- overrun detection --------------------------------------------------

    def check_overrun(self, ctx: ContinuationContext) -> OverrunCheck:
        """An operation has overrun once ``elapsed >= budget``.

        Contexts without a start time are not time-bounded.
        """
        if not ctx.start_time:
            return OverrunCheck(overrun=False)
        started = parse_timestamp(ctx.start_time)
        elapsed = self.now() - started
        budget = self.budget_for(ctx.timeout)
        return OverrunCheck(overrun=elapsed >= budget, elapsed=elapsed, budget=budget)

    def handle_overrun(
        self,
        ctx: ContinuationContext,
        cleanup: Optional[Callable[[ContinuationContext], None]],
        resource: str = "resource",
    ) -> Outcome:
        """Run cleanup if requested and return the terminal failure.

        Cleanup errors are logged and never change the outcome.
        """
        verb = _NOUNS.get(ctx.operation.value, ctx.operation.value)
        head = f"Timeout reached when waiting for {resource} {verb}."
        if ctx.delete_on_timeout and cleanup is not None:
            try:
                cleanup(ctx)
            except Exception as exc:  # noqa: BLE001
                logger.error("Cleanup after %s %s timeout failed: %s", resource, verb, exc)
                message = (
                    f"{head} Cleanup was attempted because delete_on_create_timeout "
                    f"is true, but it failed: {exc}"
                )
            else:
                logger.info("Cleaned up %s after %s timeout", resource, verb)
                message = (
                    f"{head} Resource has been deleted because "
                    "delete_on_create_timeout is true. If you suspect a transient "
                    "error when waiting for state transition, increase the timeout."
                )
        else:
            message = (
                f"{head} Cleanup was not performed because "
                "delete_on_create_timeout is false."
            )
        return Outcome.failed(message, ErrorCategory.NOT_STABILIZED, retryable=False)
