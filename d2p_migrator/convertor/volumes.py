"""
Volume translation and reference counting.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from ..errors import PreconditionError
from .types import ContainerRecord, ObjectMeta, VolumeRecord, VolumeSpec, VolumeStatus

logger = logging.getLogger(__name__)

LOCAL_DRIVER = "local"
ALILOCAL_DRIVER = "alilocal"
REMOTE_DISK_DRIVER = "ultron"

SUPPORTED_VOLUME_DRIVERS = [LOCAL_DRIVER, ALILOCAL_DRIVER, REMOTE_DISK_DRIVER]
# Drivers that leave the size out of bulk listings.
SIZE_INSPECT_DRIVERS = [ALILOCAL_DRIVER]

VOLUME_CLAIMER = "pouch"
VOLUME_NAMESPACE = "pouch"
VOLUME_GENERATION = "PreCreate"
MOUNT_KEY = "mount"
REF_KEY = "ref"

SIZE_STATUS_KEYS = ["size", "opt.size", "Size", "opt.Size"]


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def to_volume(volume: Dict[str, Any]) -> VolumeRecord:
    """Translate one volume from the Docker volume list."""
    now = _now()
    mount_point = volume.get("Mountpoint") or ""
    return VolumeRecord(
        meta=ObjectMeta(
            name=volume.get("Name") or "",
            claimer=VOLUME_CLAIMER,
            namespace=VOLUME_NAMESPACE,
            uid=str(uuid.uuid4()),
            generation=VOLUME_GENERATION,
            labels=dict(volume.get("Labels") or {}),
            creation_timestamp=now,
            modify_timestamp=now,
        ),
        spec=VolumeSpec(
            backend=volume.get("Driver") or "",
            extra={MOUNT_KEY: mount_point},
        ),
        status=VolumeStatus(mount_point=mount_point),
    )


def check_volume_drivers(volumes: Iterable[Dict[str, Any]], allow_remote: bool) -> None:
    """
    Reject hosts whose volumes cannot be carried over.

    Raises:
        PreconditionError: On an unsupported driver, or a remote disk when not allowed
    """
    for volume in volumes:
        driver = volume.get("Driver") or ""
        name = volume.get("Name") or ""
        if driver not in SUPPORTED_VOLUME_DRIVERS:
            raise PreconditionError(f"volume {name} uses unsupported driver {driver!r}")
        if driver == REMOTE_DISK_DRIVER and not allow_remote:
            raise PreconditionError(
                f"volume {name} is a remote disk ({driver}), migration not supported"
            )


def to_volumes(volumes: Iterable[Dict[str, Any]]) -> List[VolumeRecord]:
    """
    Translate the local volumes of a host.

    Remote disk volumes have no local directory and are left out.
    """
    records = []
    for volume in volumes:
        driver = volume.get("Driver") or ""
        if driver not in SUPPORTED_VOLUME_DRIVERS:
            raise PreconditionError(f"volume {volume.get('Name')} uses unsupported driver {driver!r}")
        if driver == REMOTE_DISK_DRIVER:
            logger.info(f"Skipping remote disk volume {volume.get('Name')}")
            continue
        records.append(to_volume(volume))
    return records


def add_volume_refs(refs: Dict[str, str], record: ContainerRecord) -> None:
    """Add a container to the reference list of every volume it mounts."""
    for mount in record.mounts:
        if not mount.driver:
            continue
        current = refs.get(mount.name, "")
        if not current:
            refs[mount.name] = record.id
        elif record.id not in current:
            refs[mount.name] = current + "," + record.id


def volume_size_from_status(status: Dict[str, Any]) -> str:
    """Pick the size out of a volume's driver status, "" when absent."""
    for key in SIZE_STATUS_KEYS:
        value = status.get(key)
        if value:
            return str(value)
    return ""
