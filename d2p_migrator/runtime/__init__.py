"""
Runtime collaborators of the migrator.

This module provides the Docker (source) and pouch (target) API clients,
the containerd client and daemon handle, image reference helpers and host
service control.
"""

from .containerd import CtrdClient, DaemonHandle, Mount, start_containerd
from .docker_client import DockerClient, is_not_found
from .pouch_client import PouchClient

__all__ = [
    'CtrdClient', 'DaemonHandle', 'Mount', 'start_containerd',
    'DockerClient', 'is_not_found', 'PouchClient',
]
