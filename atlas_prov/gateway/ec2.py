"""AWS EC2 interface VPC endpoint operations.

Errors from botocore are converted into :class:`ApiError` so the
controller maps them the same way as Atlas failures.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from atlas_prov.gateway.context import AWSContext
from atlas_prov.gateway.errors import from_boto_error

logger = logging.getLogger(__name__)

# States after which an endpoint no longer blocks service deletion.
GONE_STATES = frozenset({"deleted", "rejected", "failed", "expired"})


class VpcEndpointGateway:
    """Create, describe and delete interface VPC endpoints."""

    def __init__(self, aws: AWSContext, client: Optional[Any] = None) -> None:
        self.aws = aws
        self._client = client

    @property
    def ec2(self) -> Any:
        if self._client is None:
            self._client = self.aws.client("ec2")
        return self._client

    def create_interface_endpoint(
        self, vpc_id: str, service_name: str, subnet_ids: Sequence[str]
    ) -> str:
        """Create an ``Interface`` endpoint and return its ``VpcEndpointId``."""
        logger.info(
            "Creating VPC endpoint in %s for %s (subnets %s)",
            vpc_id,
            service_name,
            ",".join(subnet_ids),
        )
        try:
            resp = self.ec2.create_vpc_endpoint(
                VpcEndpointType="Interface",
                VpcId=vpc_id,
                ServiceName=service_name,
                SubnetIds=list(subnet_ids),
            )
        except (BotoCoreError, ClientError) as exc:
            raise from_boto_error(exc) from exc
        endpoint_id = resp["VpcEndpoint"]["VpcEndpointId"]
        logger.info("Created VPC endpoint %s", endpoint_id)
        return endpoint_id

    def describe(self, endpoint_ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Return the endpoints among *endpoint_ids* that EC2 still knows about."""
        if not endpoint_ids:
            return []
        try:
            resp = self.ec2.describe_vpc_endpoints(VpcEndpointIds=list(endpoint_ids))
        except (BotoCoreError, ClientError) as exc:
            err = from_boto_error(exc)
            if err.is_not_found:
                return []
            raise err from exc
        return list(resp.get("VpcEndpoints") or [])

    def pending(self, endpoint_ids: Sequence[str]) -> List[str]:
        """Ids among *endpoint_ids* that are not yet deleted."""
        return [
            ep["VpcEndpointId"]
            for ep in self.describe(endpoint_ids)
            if str(ep.get("State", "")).lower() not in GONE_STATES
        ]

    def delete(self, endpoint_ids: Sequence[str]) -> List[str]:
        """Delete endpoints; returns ids EC2 reported as unsuccessful."""
        if not endpoint_ids:
            return []
        logger.info("Deleting VPC endpoints %s", ",".join(endpoint_ids))
        try:
            resp = self.ec2.delete_vpc_endpoints(VpcEndpointIds=list(endpoint_ids))
        except (BotoCoreError, ClientError) as exc:
            err = from_boto_error(exc)
            if err.is_not_found:
                return []
            raise err from exc
        failed = []
        for item in resp.get("Unsuccessful") or []:
            code = (item.get("Error") or {}).get("Code", "")
            if code.endswith(".NotFound"):
                continue
            failed.append(item.get("ResourceId", ""))
        return failed
