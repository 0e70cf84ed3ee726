"""Atlas advanced-cluster endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from atlas_prov.gateway.atlas import AtlasClient

logger = logging.getLogger(__name__)


class ClusterGateway:
    """``/groups/{projectId}/clusters`` operations."""

    def __init__(self, client: AtlasClient) -> None:
        self.client = client

    @staticmethod
    def _path(project_id: str, name: str = "") -> str:
        base = f"/groups/{project_id}/clusters"
        return f"{base}/{name}" if name else base

    def create(self, project_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Creating cluster %s in project %s", body.get("name"), project_id)
        return self.client.post(self._path(project_id), body)

    def get(self, project_id: str, name: str) -> Dict[str, Any]:
        return self.client.get(self._path(project_id, name))

    def update(self, project_id: str, name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Updating cluster %s in project %s", name, project_id)
        return self.client.patch(self._path(project_id, name), body)

    def delete(self, project_id: str, name: str) -> None:
        logger.info("Deleting cluster %s in project %s", name, project_id)
        self.client.delete(self._path(project_id, name))

    def list(self, project_id: str) -> List[Dict[str, Any]]:
        return self.client.paginate(self._path(project_id))

    def get_process_args(self, project_id: str, name: str) -> Dict[str, Any]:
        return self.client.get(f"{self._path(project_id, name)}/processArgs")

    def update_process_args(
        self, project_id: str, name: str, body: Dict[str, Any]
    ) -> Dict[str, Any]:
        logger.info("Updating process args for cluster %s", name)
        return self.client.patch(f"{self._path(project_id, name)}/processArgs", body)
