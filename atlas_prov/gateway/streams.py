"""Atlas stream-processing processor endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from atlas_prov.gateway.atlas import AtlasClient

logger = logging.getLogger(__name__)


class StreamProcessorGateway:
    """``/groups/{projectId}/streams/{workspace}/processor`` operations."""

    def __init__(self, client: AtlasClient) -> None:
        self.client = client

    @staticmethod
    def _base(project_id: str, workspace: str) -> str:
        return f"/groups/{project_id}/streams/{workspace}"

    def _path(self, project_id: str, workspace: str, name: str) -> str:
        return f"{self._base(project_id, workspace)}/processor/{name}"

    def create(
        self, project_id: str, workspace: str, body: Dict[str, Any]
    ) -> Dict[str, Any]:
        logger.info(
            "Creating stream processor %s in workspace %s", body.get("name"), workspace
        )
        return self.client.post(f"{self._base(project_id, workspace)}/processor", body)

    def get(self, project_id: str, workspace: str, name: str) -> Dict[str, Any]:
        return self.client.get(self._path(project_id, workspace, name))

    def update(
        self, project_id: str, workspace: str, name: str, body: Dict[str, Any]
    ) -> Dict[str, Any]:
        logger.info("Updating stream processor %s", name)
        return self.client.patch(self._path(project_id, workspace, name), body)

    def delete(self, project_id: str, workspace: str, name: str) -> None:
        logger.info("Deleting stream processor %s", name)
        self.client.delete(self._path(project_id, workspace, name))

    def start(self, project_id: str, workspace: str, name: str) -> None:
        logger.info("Starting stream processor %s", name)
        self.client.post(f"{self._path(project_id, workspace, name)}:start")

    def stop(self, project_id: str, workspace: str, name: str) -> None:
        logger.info("Stopping stream processor %s", name)
        self.client.post(f"{self._path(project_id, workspace, name)}:stop")

    def list(self, project_id: str, workspace: str) -> List[Dict[str, Any]]:
        return self.client.paginate(f"{self._base(project_id, workspace)}/processors")
