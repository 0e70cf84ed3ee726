"""Atlas cloud-backup snapshot export-job endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from atlas_prov.gateway.atlas import AtlasClient

logger = logging.getLogger(__name__)


class ExportJobGateway:
    """``/groups/{projectId}/clusters/{cluster}/backup/exports`` operations."""

    def __init__(self, client: AtlasClient) -> None:
        self.client = client

    @staticmethod
    def _path(project_id: str, cluster_name: str, export_id: str = "") -> str:
        base = f"/groups/{project_id}/clusters/{cluster_name}/backup/exports"
        return f"{base}/{export_id}" if export_id else base

    def create(
        self, project_id: str, cluster_name: str, body: Dict[str, Any]
    ) -> Dict[str, Any]:
        logger.info(
            "Creating export of snapshot %s for cluster %s",
            body.get("snapshotId"),
            cluster_name,
        )
        return self.client.post(self._path(project_id, cluster_name), body)

    def get(self, project_id: str, cluster_name: str, export_id: str) -> Dict[str, Any]:
        return self.client.get(self._path(project_id, cluster_name, export_id))

    def list(self, project_id: str, cluster_name: str) -> List[Dict[str, Any]]:
        return self.client.paginate(self._path(project_id, cluster_name))
