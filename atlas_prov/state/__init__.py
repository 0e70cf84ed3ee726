"""Outcomes, error categories and the continuation-context codec."""

from atlas_prov.state.context import (
    CONTEXT_VERSION,
    ContextCodec,
    ContinuationContext,
    MalformedContextError,
    format_timestamp,
    parse_duration,
    parse_timestamp,
)
from atlas_prov.state.models import (
    RETRYABLE_CATEGORIES,
    Completed,
    ErrorCategory,
    Operation,
    OperationStatus,
    Outcome,
    Transition,
    category_for_status,
)

__all__ = [
    "CONTEXT_VERSION",
    "Completed",
    "ContextCodec",
    "ContinuationContext",
    "ErrorCategory",
    "MalformedContextError",
    "Operation",
    "OperationStatus",
    "Outcome",
    "RETRYABLE_CATEGORIES",
    "Transition",
    "category_for_status",
    "format_timestamp",
    "parse_duration",
    "parse_timestamp",
]
