"""Atlas private-endpoint service and interface-endpoint endpoints (AWS only)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from atlas_prov.gateway.atlas import AtlasClient

logger = logging.getLogger(__name__)

PROVIDER_NAME = "AWS"


class PrivateEndpointGateway:
    """``/groups/{projectId}/privateEndpoint`` operations."""

    def __init__(self, client: AtlasClient) -> None:
        self.client = client

    @staticmethod
    def _service_path(project_id: str, service_id: str = "") -> str:
        base = f"/groups/{project_id}/privateEndpoint/{PROVIDER_NAME}/endpointService"
        return f"{base}/{service_id}" if service_id else base

    def create_service(self, project_id: str, region: str) -> Dict[str, Any]:
        """Create the Atlas-side endpoint service.  *region* is in Atlas form."""
        logger.info("Creating private endpoint service in %s for %s", region, project_id)
        return self.client.post(
            f"/groups/{project_id}/privateEndpoint/endpointService",
            {"providerName": PROVIDER_NAME, "region": region},
        )

    def get_service(self, project_id: str, service_id: str) -> Dict[str, Any]:
        return self.client.get(self._service_path(project_id, service_id))

    def delete_service(self, project_id: str, service_id: str) -> None:
        logger.info("Deleting private endpoint service %s", service_id)
        self.client.delete(self._service_path(project_id, service_id))

    def list_services(self, project_id: str) -> List[Dict[str, Any]]:
        body = self.client.get(self._service_path(project_id))
        return list(body.get("results") or [])

    def add_interface(
        self, project_id: str, service_id: str, endpoint_id: str
    ) -> Dict[str, Any]:
        """Register an AWS VPC endpoint with the Atlas service."""
        logger.info("Attaching interface endpoint %s to service %s", endpoint_id, service_id)
        return self.client.post(
            f"{self._service_path(project_id, service_id)}/endpoint",
            {"id": endpoint_id},
        )

    def get_interface(
        self, project_id: str, service_id: str, endpoint_id: str
    ) -> Dict[str, Any]:
        return self.client.get(
            f"{self._service_path(project_id, service_id)}/endpoint/{endpoint_id}"
        )

    def delete_interface(
        self, project_id: str, service_id: str, endpoint_id: str
    ) -> None:
        logger.info("Detaching interface endpoint %s from service %s", endpoint_id, service_id)
        self.client.delete(
            f"{self._service_path(project_id, service_id)}/endpoint/{endpoint_id}"
        )
