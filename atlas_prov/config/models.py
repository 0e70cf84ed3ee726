"""Pydantic models for provisioner configuration.

Structure of the YAML file::

    provisioner:
      atlas:
        base_url: https://cloud.mongodb.com/api/atlas/v2
        api_version: "2023-02-01"
      delays:
        cluster_create: 20
        stream_processor: 3
      default_timeout: 20m
      delete_on_create_timeout: true
      reserved_labels:
        - key: Infrastructure Tool
          value: MongoDB Atlas Terraform Provider
      log_level: INFO

Every field has a default, so an empty or missing file yields a usable
configuration.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from atlas_prov.state.context import parse_duration

DEFAULT_BASE_URL = "https://cloud.mongodb.com/api/atlas/v2"
DEFAULT_API_VERSION = "2023-02-01"
DEFAULT_TIMEOUT = "20m"
DEFAULT_SECRET_PREFIX = "cfn/atlas/profile/"
RESERVED_LABEL_KEY = "Infrastructure Tool"
RESERVED_LABEL_VALUE = "MongoDB Atlas Terraform Provider"


class AtlasApiConfig(BaseModel):
    """Connection settings for the Atlas Admin API."""

    base_url: str = Field(default=DEFAULT_BASE_URL)
    api_version: str = Field(default=DEFAULT_API_VERSION)
    user_agent: str = Field(default="mongodb-atlas-provisioner")
    request_timeout_seconds: float = Field(default=60.0, gt=0)
    page_size: int = Field(default=100, ge=1, le=500)

    @property
    def accept_header(self) -> str:
        return f"application/vnd.atlas.{self.api_version}+json"


class CallbackDelays(BaseModel):
    """Requested re-invocation delay (seconds) per family and step."""

    cluster_create: int = Field(default=20, ge=0)
    cluster_update: int = Field(default=65, ge=0)
    cluster_poll: int = Field(default=60, ge=0)
    stream_processor: int = Field(default=3, ge=0)
    private_endpoint: int = Field(default=10, ge=0)
    private_endpoint_delete: int = Field(default=20, ge=0)
    export_job_create: int = Field(default=65, ge=0)
    export_job_poll: int = Field(default=35, ge=0)


class ReservedLabel(BaseModel):
    """A label the provisioner owns; callers may not set its key."""

    key: str
    value: str = ""


class ProvisionerConfig(BaseModel):
    """Root configuration passed explicitly to controllers and policies."""

    atlas: AtlasApiConfig = Field(default_factory=AtlasApiConfig)
    delays: CallbackDelays = Field(default_factory=CallbackDelays)
    default_timeout: str = Field(default=DEFAULT_TIMEOUT)
    delete_on_create_timeout: bool = Field(default=True)
    reserved_labels: List[ReservedLabel] = Field(
        default_factory=lambda: [
            ReservedLabel(key=RESERVED_LABEL_KEY, value=RESERVED_LABEL_VALUE)
        ]
    )
    secret_prefix: str = Field(default=DEFAULT_SECRET_PREFIX)
    aws_region: Optional[str] = Field(default=None)
    log_level: str = Field(default="INFO")

    @field_validator("default_timeout")
    @classmethod
    def _check_timeout(cls, value: str) -> str:
        parse_duration(value)
        return value

    @property
    def reserved_label_keys(self) -> List[str]:
        return [label.key for label in self.reserved_labels]


class ConfigFile(BaseModel):
    """Root model wrapping the ``provisioner:`` key."""

    provisioner: ProvisionerConfig = Field(default_factory=ProvisionerConfig)
