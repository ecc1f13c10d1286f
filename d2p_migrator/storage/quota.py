#!/usr/bin/env python3
"""
Project quota management for container writable layers.

Limits are enforced with filesystem project quotas: the directory tree is
tagged with a project ID and a block limit is set for that project on the
filesystem holding it. ext4 (mounted with prjquota) and xfs (prjquota or
pquota) are supported.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import psutil

from ..errors import CommandError, QuotaError
from ..utils.exec_utils import exec_command, run_command
from ..utils.file_utils import parse_size

MAX_QUOTA_ID = 2 ** 32 - 1
SUPPORTED_FILESYSTEMS = ("ext4", "xfs")


@dataclass
class QuotaSpec:
    """Quota request for one directory, as read from container labels."""
    quota_id: str
    size_limit: str
    target_dir: str


def parse_quota_size(value: str) -> str:
    """
    Pick the root filesystem size out of a DiskQuota label.

    The label is either a bare size ("10g") or a list of
    "<path>=<size>" pairs separated by ";", where "/" or ".*" names the
    container root.
    """
    if "=" not in value:
        return value.strip()
    sizes: Dict[str, str] = {}
    for entry in value.split(";"):
        path, _, size = entry.partition("=")
        if size:
            sizes[path.strip()] = size.strip()
    for key in ("/", ".*"):
        if key in sizes:
            return sizes[key]
    return next(iter(sizes.values()), "")


class QuotaDriver:
    """Applies project quotas through the host's quota tools."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._started: Dict[str, str] = {}

    def _find_mount(self, path: str) -> Any:
        path = os.path.realpath(path)
        best = None
        for part in psutil.disk_partitions(all=True):
            mountpoint = part.mountpoint
            if path == mountpoint or path.startswith(mountpoint.rstrip("/") + "/"):
                if best is None or len(mountpoint) > len(best.mountpoint):
                    best = part
        if best is None:
            raise QuotaError(path, "no mount point found")
        return best

    def start_quota_driver(self, path: str) -> str:
        """
        Make sure project quotas are on for the filesystem holding path.

        Returns:
            The filesystem's mount point
        """
        part = self._find_mount(path)
        if part.mountpoint in self._started:
            return part.mountpoint

        options = part.opts.split(",")
        if part.fstype not in SUPPORTED_FILESYSTEMS:
            raise QuotaError(path, f"filesystem {part.fstype} does not support project quota")
        if "prjquota" not in options and "pquota" not in options:
            raise QuotaError(path, f"{part.mountpoint} is not mounted with prjquota")

        if part.fstype == "ext4":
            returncode, output = run_command(["quotaon", "-P", part.mountpoint])
            if returncode != 0 and "busy" not in output.lower():
                raise QuotaError(path, f"quotaon failed: {output.strip()}")

        self._started[part.mountpoint] = part.fstype
        self.logger.info(f"Quota driver ready on {part.mountpoint} ({part.fstype})")
        return part.mountpoint

    def _fstype(self, mountpoint: str) -> str:
        return self._started.get(mountpoint, "ext4")

    def set_subtree(self, path: str, mountpoint: str, quota_id: int) -> None:
        """Bind quota_id to the directory and make new children inherit it."""
        if self._fstype(mountpoint) == "xfs":
            exec_command(["xfs_quota", "-x", "-c",
                          f"project -s -p {path} {quota_id}", mountpoint])
        else:
            exec_command(["chattr", "-p", str(quota_id), "+P", path])

    def set_disk_quota(self, mountpoint: str, size: str, quota_id: int) -> None:
        """Set the block hard limit of a project."""
        limit = parse_size(size)
        if self._fstype(mountpoint) == "xfs":
            exec_command(["xfs_quota", "-x", "-c",
                          f"limit -p bhard={limit} {quota_id}", mountpoint])
        else:
            # setquota takes 1KiB blocks
            exec_command(["setquota", "-P", str(quota_id), "0",
                          str((limit + 1023) // 1024), "0", "0", mountpoint])

    def set_file_attr(self, path: str, mountpoint: str, quota_id: int) -> None:
        """Tag one existing file or directory with the project ID."""
        if self._fstype(mountpoint) == "xfs":
            # project -s already tagged the whole tree
            return
        if os.path.islink(path):
            return
        exec_command(["chattr", "-p", str(quota_id), path])


def set_dir_disk_quota(driver: QuotaDriver, spec: QuotaSpec) -> Optional[int]:
    """
    Apply a project quota to a directory tree.

    Nothing happens when no quota ID is configured or the ID is not
    positive. A positive ID without a size is refused rather than leaving
    the directory unbounded.

    Returns:
        The quota ID applied, or None when no quota was set

    Raises:
        QuotaError: On an invalid ID, a missing size or a failing quota tool
    """
    if not spec.quota_id:
        return None

    try:
        quota_id = int(spec.quota_id)
    except ValueError:
        raise QuotaError(spec.target_dir, f"invalid quota id {spec.quota_id!r}") from None
    if quota_id <= 0:
        return None
    if quota_id > MAX_QUOTA_ID:
        raise QuotaError(spec.target_dir, f"quota id {quota_id} out of range")

    size = parse_quota_size(spec.size_limit or "")
    if not size:
        raise QuotaError(spec.target_dir, f"quota id {quota_id} set without a disk quota size")

    def walk_error(error: OSError) -> None:
        raise error

    try:
        parse_size(size)
        mountpoint = driver.start_quota_driver(spec.target_dir)
        driver.set_subtree(spec.target_dir, mountpoint, quota_id)
        driver.set_disk_quota(mountpoint, size, quota_id)
        for root, dirs, files in os.walk(spec.target_dir, onerror=walk_error):
            driver.set_file_attr(root, mountpoint, quota_id)
            for name in files:
                driver.set_file_attr(os.path.join(root, name), mountpoint, quota_id)
    except (CommandError, OSError, ValueError) as e:
        raise QuotaError(spec.target_dir, str(e)) from e

    return quota_id
