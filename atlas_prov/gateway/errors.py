"""Gateway error type shared by the Atlas and EC2 gateways."""

from __future__ import annotations

from typing import Any, Optional

from botocore.exceptions import ClientError

from atlas_prov.state.models import ErrorCategory, category_for_status

# Status code used when no HTTP response was received.
TRANSPORT_FAILURE = 0

# botocore error codes that carry no HTTP status we can trust
_AWS_CODE_STATUS = {
    "Throttling": 429,
    "ThrottlingException": 429,
    "RequestLimitExceeded": 429,
    "UnauthorizedOperation": 403,
    "AccessDenied": 403,
    "AccessDeniedException": 403,
    "InvalidVpcEndpointId.NotFound": 404,
    "InvalidVpcId.NotFound": 404,
    "InvalidSubnetID.NotFound": 404,
    "ResourceNotFoundException": 404,
    "InvalidParameterValue": 400,
    "InvalidParameter": 400,
    "ValidationException": 400,
}


class ApiError(Exception):
    """A remote call failed.

    Attributes:
        status_code: HTTP status of the failed call, ``0`` for transport
            failures.
        message: Human-readable detail from the remote.
        error_code: Remote error code (Atlas ``errorCode`` or AWS error code).
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error_code = error_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409

    @property
    def category(self) -> ErrorCategory:
        return category_for_status(self.status_code)

    def __str__(self) -> str:
        if self.error_code:
            return f"{self.message} (status {self.status_code}, {self.error_code})"
        return f"{self.message} (status {self.status_code})"

    def __repr__(self) -> str:
        return (
            f"ApiError(status_code={self.status_code!r}, "
            f"message={self.message!r}, error_code={self.error_code!r})"
        )


def _error_code(exc: Any) -> str:
    """Extract the AWS error code string from a botocore ClientError."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "")
    return ""


def from_boto_error(exc: Exception) -> ApiError:
    """Convert a botocore exception into an :class:`ApiError`."""
    if isinstance(exc, ClientError):
        code = _error_code(exc)
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
        if code in _AWS_CODE_STATUS:
            status = _AWS_CODE_STATUS[code]
        elif code.endswith(".NotFound"):
            status = 404
        message = exc.response.get("Error", {}).get("Message", "") or str(exc)
        return ApiError(int(status), message, code or None)
    # BotoCoreError: endpoint unreachable, credentials missing, ...
    return ApiError(TRANSPORT_FAILURE, str(exc))
