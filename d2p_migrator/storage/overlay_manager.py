#!/usr/bin/env python3
"""
Snapshot and writable layer preparation.

For every container the image is pulled into containerd, a fresh active
snapshot keyed by the container ID is created on top of it, and the
snapshot's overlay upper/work directories are quota-limited and recorded
as the destination of the container's Docker upper directory.
"""

import logging
from typing import Optional, Set, Tuple

from ..convertor.core import DISK_QUOTA_LABEL, SNAPSHOTTER_NAME
from ..convertor.types import ContainerRecord, DriverData
from ..errors import CtrdError, MigratorError, PreparationError
from ..migration.job import MigrationJob, UpperDirMapping
from ..runtime.containerd import CtrdClient, Mount
from ..runtime.image import DEFAULT_NAMESPACE, DEFAULT_REGISTRY, normalize_image_ref
from .quota import QuotaDriver, QuotaSpec, set_dir_disk_quota

UPPER_DIR_KEY = "UpperDir"


def get_overlay_dirs(mounts: list) -> Tuple[str, str]:
    """
    Extract upperdir and workdir from the single mount of an active snapshot.

    Raises:
        ValueError: If there is not exactly one mount or a directory is missing
    """
    if len(mounts) != 1:
        raise ValueError(f"expected exactly one mount, got {len(mounts)}")

    mount: Mount = mounts[0]
    upper_dir = work_dir = ""
    for option in mount.options:
        if option.startswith("upperdir="):
            upper_dir = option[len("upperdir="):]
        elif option.startswith("workdir="):
            work_dir = option[len("workdir="):]

    if not upper_dir or not work_dir:
        raise ValueError(f"mount options {mount.options} lack upperdir or workdir")
    return upper_dir, work_dir


class OverlayManager:
    """Prepares the target snapshot of each container."""

    def __init__(self, ctrd: CtrdClient, quota_driver: Optional[QuotaDriver] = None,
                 manifest_only: bool = False, repull_images: Optional[Set[str]] = None,
                 default_registry: str = DEFAULT_REGISTRY,
                 default_namespace: str = DEFAULT_NAMESPACE):
        """
        Args:
            ctrd: Client of the migrator's containerd
            quota_driver: Driver used to apply disk quotas
            manifest_only: Pull only image metadata unless an image is in repull_images
            repull_images: Images that are always pulled in full
            default_registry: Registry for references without one
            default_namespace: Namespace for single-component names
        """
        self.ctrd = ctrd
        self.quota_driver = quota_driver or QuotaDriver()
        self.manifest_only = manifest_only
        self.repull_images = set(repull_images or ())
        self.default_registry = default_registry
        self.default_namespace = default_namespace
        self.logger = logging.getLogger(__name__)

    def normalize(self, image: str) -> str:
        return normalize_image_ref(image, self.default_registry, self.default_namespace)

    def pull_image(self, image: str, job: MigrationJob) -> str:
        """
        Pull an image once per run.

        Returns:
            The normalized reference
        """
        if image in job.pulled_images:
            self.logger.info(f"Image {image} already pulled, skip pull")
            return job.pulled_images[image]

        ref = self.normalize(image)
        if self.manifest_only and image not in self.repull_images and ref not in self.repull_images:
            self.ctrd.pull_manifest_only(ref)
        else:
            self.ctrd.pull(ref)
        job.pulled_images[image] = ref
        return ref

    def prepare(self, record: ContainerRecord, job: MigrationJob) -> UpperDirMapping:
        """
        Run the whole preparation for one container.

        Safe to repeat: an existing snapshot for the container is replaced
        and its mapping overwritten.

        Raises:
            PreparationError: If any step fails
        """
        container_id = record.id
        try:
            return self._prepare(record, job)
        except PreparationError:
            raise
        except (MigratorError, ValueError, OSError) as e:
            raise PreparationError(container_id, str(e)) from e

    def _prepare(self, record: ContainerRecord, job: MigrationJob) -> UpperDirMapping:
        container_id = record.id
        image = record.config.image or record.image
        if not image:
            raise PreparationError(container_id, "container has no image")

        ref = self.pull_image(image, job)
        image_info = self.ctrd.get_image(ref)

        if self.ctrd.snapshot_exists(container_id):
            self.logger.info(f"Snapshot {container_id} exists, removing it")
            self.ctrd.remove_snapshot(container_id)
        try:
            self.ctrd.create_snapshot(container_id, image_info.chain_id)
        except CtrdError as e:
            raise PreparationError(container_id, f"failed to create snapshot: {e}") from e

        upper_dir, work_dir = get_overlay_dirs(self.ctrd.get_mounts(container_id))

        src_upper = record.graph_driver.data.get(UPPER_DIR_KEY, "") if record.graph_driver else ""
        record.snapshotter = DriverData(name=SNAPSHOTTER_NAME, data={UPPER_DIR_KEY: upper_dir})

        disk_quota = record.config.labels.get(DISK_QUOTA_LABEL, "")
        for target_dir in (upper_dir, work_dir):
            set_dir_disk_quota(self.quota_driver, QuotaSpec(
                quota_id=record.config.quota_id,
                size_limit=disk_quota,
                target_dir=target_dir,
            ))

        mapping = UpperDirMapping(container_id=container_id, src=src_upper, dst=upper_dir)
        job.add_mapping(mapping)
        self.logger.info(f"Prepared snapshot for {container_id}: {src_upper} -> {upper_dir}")
        return mapping
