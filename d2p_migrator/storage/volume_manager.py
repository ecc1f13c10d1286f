#!/usr/bin/env python3
"""
Volume registration for the target runtime.

Writes the translated volumes, with the IDs of the containers using them,
into pouch's volume store.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..convertor.types import VolumeRecord
from ..convertor.volumes import REF_KEY, SIZE_INSPECT_DRIVERS, volume_size_from_status
from ..runtime.docker_client import API_ERRORS, DockerClient
from .meta_store import DBStore

VOLUME_BUCKET = "volume"


class VolumeManager:
    """Registers volumes in <home>/volume/volume.db."""

    def __init__(self, home_dir: str):
        self.home_dir = Path(home_dir)
        self.db_path = self.home_dir / "volume" / "volume.db"
        self.logger = logging.getLogger(__name__)

    def lookup_size(self, docker: DockerClient, name: str) -> Tuple[str, Optional[str]]:
        """
        Ask the source daemon for a volume's size.

        Returns:
            Tuple of (size, error); size is "" when unknown
        """
        try:
            info = docker.inspect_volume(name)
        except API_ERRORS + (OSError,) as e:
            return "", f"failed to inspect volume {name}: {e}"
        return volume_size_from_status(info.get("Status") or {}), None

    def prepare_volumes(self, volumes: List[VolumeRecord], refs: Dict[str, str],
                        docker: DockerClient) -> int:
        """
        Store every volume with its reference list.

        Returns:
            Number of volumes written
        """
        count = 0
        with DBStore(str(self.db_path), VOLUME_BUCKET) as store:
            for volume in volumes:
                if volume.driver in SIZE_INSPECT_DRIVERS:
                    size, error = self.lookup_size(docker, volume.name)
                    if error:
                        self.logger.warning(error)
                    volume.spec.size = size

                ref = refs.get(volume.name, "")
                if ref:
                    volume.spec.extra[REF_KEY] = ref

                store.put(volume.name, volume.to_json())
                self.logger.info(f"Registered volume {volume.name} (refs: {ref or 'none'})")
                count += 1
        return count
