"""Credentials and session wiring for the Atlas and AWS gateways.

Atlas API keys are resolved in this order:

1. Explicit ``ApiKeys`` on the desired model (``PublicKey`` / ``PrivateKey``)
2. A named profile: the Secrets Manager secret ``<secret_prefix><profile>``
   holding ``{"PublicKey": ..., "PrivateKey": ...}``
3. ``ATLAS_PUBLIC_KEY`` / ``ATLAS_PRIVATE_KEY`` environment variables

The AWS region for EC2 and Secrets Manager calls comes from the explicit
argument, then ``AWS_DEFAULT_REGION`` / ``AWS_REGION``, then ``us-east-1``.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from atlas_prov.config.models import DEFAULT_SECRET_PREFIX

logger = logging.getLogger(__name__)

_DEFAULT_REGION = "us-east-1"


class CredentialsError(RuntimeError):
    """Atlas API keys could not be resolved."""


def resolve_region(region: Optional[str] = None) -> str:
    """Return the AWS region string.

    Precedence: *region* → ``AWS_DEFAULT_REGION`` → ``AWS_REGION`` → fallback.
    """
    return (
        region
        or os.environ.get("AWS_DEFAULT_REGION")
        or os.environ.get("AWS_REGION")
        or _DEFAULT_REGION
    )


# ---------------------------------------------------------------------------
# AWSContext
# ---------------------------------------------------------------------------


@dataclass
class AWSContext:
    """Region-scoped boto3 session factory.

    Attributes:
        region: AWS region (e.g. ``us-east-1``).
        profile: Optional AWS CLI profile; ``None`` uses the default chain.
    """

    region: str
    profile: Optional[str] = None
    _session: Any = field(default=None, repr=False, compare=False)

    @classmethod
    def build(
        cls, region: Optional[str] = None, profile: Optional[str] = None
    ) -> "AWSContext":
        return cls(region=resolve_region(region), profile=profile or None)

    @property
    def session(self) -> boto3.Session:
        """Return the cached :class:`boto3.Session`."""
        if self._session is None:
            self._session = boto3.Session(
                profile_name=self.profile, region_name=self.region
            )
        return self._session

    def client(self, service: str, **kwargs: Any) -> Any:
        """Create a boto3 client for *service*."""
        return self.session.client(service, **kwargs)


# ---------------------------------------------------------------------------
# Atlas credentials
# ---------------------------------------------------------------------------


@dataclass
class AtlasCredentials:
    """Atlas programmatic API key pair."""

    public_key: str
    private_key: str = field(repr=False)
    base_url: Optional[str] = None

    @classmethod
    def from_model(cls, model: Mapping[str, Any]) -> Optional["AtlasCredentials"]:
        keys = model.get("ApiKeys") or {}
        public_key = keys.get("PublicKey")
        private_key = keys.get("PrivateKey")
        if public_key and private_key:
            return cls(public_key=public_key, private_key=private_key)
        return None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> Optional["AtlasCredentials"]:
        env = os.environ if env is None else env
        public_key = env.get("ATLAS_PUBLIC_KEY")
        private_key = env.get("ATLAS_PRIVATE_KEY")
        if public_key and private_key:
            return cls(public_key=public_key, private_key=private_key)
        return None

    @classmethod
    def from_profile(
        cls,
        profile: str,
        aws: AWSContext,
        secret_prefix: str = DEFAULT_SECRET_PREFIX,
    ) -> "AtlasCredentials":
        """Load the key pair stored in Secrets Manager for *profile*.

        Raises :class:`CredentialsError` when the secret is missing or
        malformed.
        """
        secret_id = f"{secret_prefix}{profile}"
        sm = aws.client("secretsmanager")
        try:
            resp = sm.get_secret_value(SecretId=secret_id)
        except (BotoCoreError, ClientError) as exc:
            raise CredentialsError(
                f"Could not read Atlas profile secret {secret_id}: {exc}"
            ) from exc

        try:
            payload: Dict[str, Any] = json.loads(resp.get("SecretString") or "{}")
        except ValueError as exc:
            raise CredentialsError(
                f"Atlas profile secret {secret_id} is not valid JSON"
            ) from exc

        public_key = payload.get("PublicKey")
        private_key = payload.get("PrivateKey")
        if not public_key or not private_key:
            raise CredentialsError(
                f"Atlas profile secret {secret_id} lacks PublicKey/PrivateKey"
            )
        logger.debug("Loaded Atlas credentials from profile %s", profile)
        return cls(
            public_key=public_key,
            private_key=private_key,
            base_url=payload.get("BaseUrl") or None,
        )

    @classmethod
    def resolve(
        cls,
        model: Mapping[str, Any],
        aws: AWSContext,
        secret_prefix: str = DEFAULT_SECRET_PREFIX,
        env: Optional[Mapping[str, str]] = None,
    ) -> "AtlasCredentials":
        """Apply the resolution order from the module docstring."""
        creds = cls.from_model(model)
        if creds is not None:
            return creds
        profile = model.get("Profile")
        if profile:
            return cls.from_profile(profile, aws, secret_prefix)
        creds = cls.from_env(env)
        if creds is not None:
            return creds
        raise CredentialsError(
            "No Atlas API keys: set ApiKeys or Profile on the model, "
            "or export ATLAS_PUBLIC_KEY and ATLAS_PRIVATE_KEY."
        )
