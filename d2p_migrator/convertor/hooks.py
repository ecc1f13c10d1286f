"""
Post-convert hooks.

A deployment can register one ContainerPlugin to adjust every translated
record before it is prepared and written to disk.
"""

import logging
from typing import Optional

from .types import ContainerRecord

logger = logging.getLogger(__name__)

_container_plugin: Optional["ContainerPlugin"] = None


class ContainerPlugin:
    """Hook called after a container has been translated."""

    def post_convert(self, docker_home_dir: str, record: ContainerRecord) -> None:
        raise NotImplementedError


def register_container_plugin(plugin: Optional[ContainerPlugin]) -> None:
    """Install (or with None, remove) the container plugin."""
    global _container_plugin
    _container_plugin = plugin


def get_container_plugin() -> Optional[ContainerPlugin]:
    return _container_plugin


def run_post_convert(docker_home_dir: str, record: ContainerRecord) -> None:
    if _container_plugin is None:
        return
    logger.debug(f"Running post-convert hook for {record.id}")
    _container_plugin.post_convert(docker_home_dir, record)
