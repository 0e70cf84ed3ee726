"""Continuation context records and their codec.

The context is the only state that survives between invocations.  It is a
flat mapping of primitive values handed back to the caller, who returns it
verbatim on the next call::

    {
      "v": 1,
      "family": "stream-processor",
      "operation": "create",
      "phase": "CREATING",
      "projectId": "5f1f...",
      "workspaceName": "ws1",
      "processorName": "p1",
      "needsStarting": true,
      "startTime": "2026-10-17T10:00:00+00:00",
      "timeout": "20m",
      "deleteOnTimeout": true
    }

Decoding is strict: a wrong family, an unsupported version, an unknown key,
a nested value, an unknown phase, or a phase the context's operation never
enters raises :class:`MalformedContextError`.
An empty or missing mapping decodes to ``None`` (first invocation).
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import AbstractSet, Any, Dict, Generic, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from atlas_prov.state.models import Operation, Primitive

logger = logging.getLogger(__name__)

#: Current schema version written into every encoded context.
CONTEXT_VERSION = 1

SUPPORTED_VERSIONS = frozenset({1})

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(h|ms|m|s)")


class MalformedContextError(ValueError):
    """The continuation context cannot be trusted to resume the operation."""


# ---------------------------------------------------------------------------
# Timestamp / duration helpers
# ---------------------------------------------------------------------------


def format_timestamp(moment: datetime) -> str:
    """Render *moment* as ISO-8601 with an explicit UTC offset."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="seconds")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Raises :class:`ValueError` on anything unparseable.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as ``20m``, ``1h30m``, ``90s`` or ``45``.

    A bare number is seconds.  Raises :class:`ValueError` when *value* is not
    a duration.

    Examples:
        >>> parse_duration("20m")
        datetime.timedelta(seconds=1200)
        >>> parse_duration("1h30m")
        datetime.timedelta(seconds=5400)
    """
    text = (value or "").strip().lower()
    if not text:
        raise ValueError("empty duration")
    if re.fullmatch(r"\d+(?:\.\d+)?", text):
        return timedelta(seconds=float(text))

    total = timedelta()
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration: {value!r}")
        amount = float(match.group(1))
        unit = match.group(2)
        if unit == "h":
            total += timedelta(hours=amount)
        elif unit == "m":
            total += timedelta(minutes=amount)
        elif unit == "s":
            total += timedelta(seconds=amount)
        else:
            total += timedelta(milliseconds=amount)
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


# ---------------------------------------------------------------------------
# Context records
# ---------------------------------------------------------------------------


class ContinuationContext(BaseModel):
    """Fields shared by every family's context.

    Subclasses add the identifiers needed to re-locate the remote resource
    and narrow ``phase`` to the family's phase enum.
    """

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        use_enum_values=False,
    )

    v: int = CONTEXT_VERSION
    family: str
    operation: Operation
    phase: str
    start_time: Optional[str] = Field(default=None, alias="startTime")
    timeout: Optional[str] = None
    delete_on_timeout: bool = Field(default=False, alias="deleteOnTimeout")

    @field_validator("start_time")
    @classmethod
    def _check_start_time(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            parse_timestamp(value)
        return value

    @property
    def is_time_bounded(self) -> bool:
        return bool(self.start_time)


ContextT = TypeVar("ContextT", bound=ContinuationContext)


class ContextCodec(Generic[ContextT]):
    """Typed encode/decode boundary for one resource family.

    *phases* maps each operation to the phases it may be resumed in.  When
    given, a context whose phase is not listed for its operation is
    malformed.
    """

    def __init__(
        self,
        family: str,
        context_cls: Type[ContextT],
        phase_enum: Type[Enum],
        phases: Optional[Mapping[Operation, AbstractSet[Enum]]] = None,
    ) -> None:
        self.family = family
        self.context_cls = context_cls
        self.phase_enum = phase_enum
        self.phases = phases

    def decode(self, raw: Optional[Mapping[str, Any]]) -> Optional[ContextT]:
        """Return the typed context, or ``None`` on the first invocation."""
        if not raw:
            return None

        for key, value in raw.items():
            if not isinstance(value, (str, int, float, bool)):
                raise MalformedContextError(
                    f"Continuation context field {key!r} is not a primitive value"
                )

        family = raw.get("family")
        if family != self.family:
            raise MalformedContextError(
                f"Continuation context belongs to family {family!r}, "
                f"expected {self.family!r}"
            )

        version = raw.get("v")
        if version not in SUPPORTED_VERSIONS:
            raise MalformedContextError(
                f"Unsupported continuation context version: {version!r}"
            )

        phase = raw.get("phase")
        try:
            self.phase_enum(phase)
        except ValueError as exc:
            raise MalformedContextError(
                f"Unknown {self.family} phase in continuation context: {phase!r}"
            ) from exc

        try:
            ctx = self.context_cls.model_validate(dict(raw))
        except ValidationError as exc:
            raise MalformedContextError(
                f"Invalid {self.family} continuation context: {exc}"
            ) from exc

        if self.phases is not None:
            allowed = {p.value for p in self.phases.get(ctx.operation, ())}
            if phase not in allowed:
                raise MalformedContextError(
                    f"{self.family} {ctx.operation.value} never enters phase {phase!r}"
                )
        return ctx

    def encode(self, context: ContextT) -> Dict[str, Primitive]:
        """Flatten *context* to the primitive mapping handed to the caller."""
        return context.model_dump(mode="json", by_alias=True, exclude_none=True)
