"""
Target runtime client.

pouchd speaks a Docker-compatible API on its unix socket, so the docker
SDK's low-level client is pointed at it directly.
"""

import logging
from typing import Any

import docker

from .docker_client import is_not_found

logger = logging.getLogger(__name__)

POUCH_API_VERSION = "1.24"


class PouchClient:
    """Start and remove containers on pouchd."""

    def __init__(self, socket_path: str = "/var/run/pouchd.sock", api: Any = None):
        self.api = api if api is not None else docker.APIClient(
            base_url=f"unix://{socket_path}", version=POUCH_API_VERSION
        )

    def start_container(self, container_id: str) -> None:
        logger.info(f"Starting container {container_id} on pouch")
        self.api.start(container_id)

    def remove_container(self, container_id: str, force: bool = True) -> bool:
        """
        Remove a container; a container that is already gone is not an error.

        Returns:
            True if a container was removed
        """
        try:
            self.api.remove_container(container_id, force=force)
        except docker.errors.APIError as e:
            if is_not_found(e) or "not found" in str(e).lower():
                logger.info(f"Container {container_id} already removed from pouch")
                return False
            raise
        logger.info(f"Removed container {container_id} from pouch")
        return True
