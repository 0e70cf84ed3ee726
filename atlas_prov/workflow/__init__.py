"""Provisioning controller and timeout supervision."""

from atlas_prov.workflow.controller import ProvisioningController
from atlas_prov.workflow.supervisor import (
    DEFAULT_TIMEOUT,
    OverrunCheck,
    TimeoutSupervisor,
)

__all__ = [
    "DEFAULT_TIMEOUT",
    "OverrunCheck",
    "ProvisioningController",
    "TimeoutSupervisor",
]
