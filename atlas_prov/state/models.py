"""Outcome and error-category models returned by every provisioning step.

An :class:`Outcome` is the only thing a caller ever receives from the
controller.  Its wire form (:meth:`Outcome.to_response`)::

    {
      "status": "SUCCESS|IN_PROGRESS|FAILED",
      "message": "human readable",
      "model": { ... } | null,
      "models": [ ... ] | null,
      "retryDelaySeconds": 10 | null,
      "continuationContext": { ... } | null,
      "errorCategory": "NotFound" | null,
      "retryable": false
    }

Error categories reuse the CloudFormation handler error-code vocabulary so the
host layer can forward them without translation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

# Continuation-context values are restricted to these primitives.
Primitive = Union[str, int, float, bool]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OperationStatus(str, Enum):
    """Status of a single invocation."""

    SUCCESS = "SUCCESS"
    IN_PROGRESS = "IN_PROGRESS"
    FAILED = "FAILED"


class Operation(str, Enum):
    """Verb being driven through the controller."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ErrorCategory(str, Enum):
    """Coarse failure category attached to every FAILED outcome."""

    INVALID_REQUEST = "InvalidRequest"
    ALREADY_EXISTS = "AlreadyExists"
    NOT_FOUND = "NotFound"
    ACCESS_DENIED = "AccessDenied"
    THROTTLING = "Throttling"
    SERVICE_INTERNAL_ERROR = "ServiceInternalError"
    GENERAL_SERVICE_EXCEPTION = "GeneralServiceException"
    NOT_STABILIZED = "NotStabilized"
    INTERNAL_FAILURE = "InternalFailure"


#: Categories whose failure may succeed if the caller simply re-invokes later.
RETRYABLE_CATEGORIES = frozenset({
    ErrorCategory.THROTTLING,
    ErrorCategory.SERVICE_INTERNAL_ERROR,
})


def category_for_status(status_code: int) -> ErrorCategory:
    """Map an HTTP-style status code to an :class:`ErrorCategory`.

    ``0`` is used by the gateways for transport failures (no response).
    """
    if status_code == 404:
        return ErrorCategory.NOT_FOUND
    if status_code == 409:
        return ErrorCategory.ALREADY_EXISTS
    if status_code in (401, 403):
        return ErrorCategory.ACCESS_DENIED
    if status_code == 429:
        return ErrorCategory.THROTTLING
    if status_code == 400:
        return ErrorCategory.INVALID_REQUEST
    if status_code == 0 or status_code >= 500:
        return ErrorCategory.SERVICE_INTERNAL_ERROR
    return ErrorCategory.GENERAL_SERVICE_EXCEPTION


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


@dataclass
class Outcome:
    """Result of one invocation: Success, InProgress or Failed."""

    status: OperationStatus
    message: str = ""
    model: Optional[Dict[str, Any]] = None
    models: Optional[List[Dict[str, Any]]] = None
    callback_context: Optional[Dict[str, Primitive]] = None
    callback_delay_seconds: Optional[int] = None
    error_category: Optional[ErrorCategory] = None
    retryable: bool = False

    # -- constructors -------------------------------------------------------

    @classmethod
    def success(
        cls,
        model: Optional[Dict[str, Any]] = None,
        message: str = "Complete",
        *,
        models: Optional[List[Dict[str, Any]]] = None,
    ) -> "Outcome":
        return cls(
            status=OperationStatus.SUCCESS,
            message=message,
            model=model,
            models=models,
        )

    @classmethod
    def in_progress(
        cls,
        context: Dict[str, Primitive],
        delay_seconds: int,
        message: str = "Pending",
        *,
        model: Optional[Dict[str, Any]] = None,
    ) -> "Outcome":
        return cls(
            status=OperationStatus.IN_PROGRESS,
            message=message,
            model=model,
            callback_context=context,
            callback_delay_seconds=delay_seconds,
        )

    @classmethod
    def failed(
        cls,
        message: str,
        category: ErrorCategory,
        *,
        retryable: Optional[bool] = None,
    ) -> "Outcome":
        if retryable is None:
            retryable = category in RETRYABLE_CATEGORIES
        return cls(
            status=OperationStatus.FAILED,
            message=message,
            error_category=category,
            retryable=retryable,
        )

    # -- helpers -------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """True for SUCCESS and FAILED."""
        return self.status != OperationStatus.IN_PROGRESS

    def to_response(self) -> Dict[str, Any]:
        """Serialise to the invocation-interface mapping."""
        return {
            "status": self.status.value,
            "message": self.message,
            "model": self.model,
            "models": self.models,
            "retryDelaySeconds": self.callback_delay_seconds,
            "continuationContext": self.callback_context,
            "errorCategory": (
                self.error_category.value if self.error_category else None
            ),
            "retryable": self.retryable,
        }


# ---------------------------------------------------------------------------
# Step results produced by phase policies
# ---------------------------------------------------------------------------


@dataclass
class Transition:
    """A phase action was performed; resume later in *phase*.

    *updates* are merged into the continuation context (identifiers learned
    from the action, e.g. a server-assigned export id).
    """

    phase: str
    message: str = ""
    updates: Dict[str, Primitive] = field(default_factory=dict)


@dataclass
class Completed:
    """The operation finished inside the current invocation."""

    model: Optional[Dict[str, Any]] = None
    message: str = "Complete"
