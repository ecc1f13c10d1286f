"""
Source runtime client.

Wraps the low-level docker SDK client so the migrator works on the raw API
JSON the translator consumes.
"""

import logging
from typing import Any, Dict, List

import docker
from docker.errors import APIError, DockerException, NotFound
from requests.exceptions import RequestException

logger = logging.getLogger(__name__)

# Errors a daemon call can raise: API errors and transport failures on the socket.
API_ERRORS = (DockerException, RequestException)

DOCKER_API_VERSION = "1.24"


def is_not_found(error: Exception) -> bool:
    """True for docker SDK errors meaning the object does not exist."""
    if isinstance(error, NotFound):
        return True
    return isinstance(error, APIError) and "no such" in str(error).lower()


class DockerClient:
    """List, inspect, stop and start containers on the Docker daemon."""

    def __init__(self, base_url: str = "unix:///var/run/docker.sock",
                 version: str = DOCKER_API_VERSION, api: Any = None):
        self.api = api if api is not None else docker.APIClient(base_url=base_url, version=version)

    def info(self) -> Dict[str, Any]:
        return self.api.info()

    def list_containers(self) -> List[Dict[str, Any]]:
        """Return the summaries of all containers, stopped ones included."""
        return self.api.containers(all=True)

    def inspect(self, container_id: str) -> Dict[str, Any]:
        return self.api.inspect_container(container_id)

    def inspect_image(self, ref: str) -> Dict[str, Any]:
        return self.api.inspect_image(ref)

    def list_volumes(self) -> List[Dict[str, Any]]:
        return self.api.volumes().get("Volumes") or []

    def inspect_volume(self, name: str) -> Dict[str, Any]:
        return self.api.inspect_volume(name)

    def stop(self, container_id: str, timeout: int = 1) -> None:
        logger.info(f"Stopping container {container_id}")
        self.api.stop(container_id, timeout=timeout)

    def start(self, container_id: str) -> None:
        logger.info(f"Starting container {container_id}")
        self.api.start(container_id)
