"""
containerd integration for the migrator.

The migrator runs its own containerd instance rooted in the pouch home
directory, so that images and snapshots it prepares are the ones pouchd
finds after the swap. The instance is driven with `ctr` over a private
socket.
"""

import json
import logging
import os
import platform
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import psutil

from ..errors import CommandError, CtrdError, CtrdNotFoundError
from ..utils.exec_utils import exec_command
from .image import chain_id
from .service import wait_for_socket

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"
DEFAULT_SNAPSHOTTER = "overlayfs"
RUNTIME_V1_LINUX = "io.containerd.runtime.v1.linux"
DOCKER_RUNC = "docker-runc"

INDEX_MEDIA_TYPES = (
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.index.v1+json",
)

_ARCH_MAP = {"x86_64": "amd64", "aarch64": "arm64", "armv7l": "arm", "i686": "386"}


@dataclass
class Mount:
    """One mount of a snapshot, as `mount -t <type> <source> -o <options>`."""
    type: str
    source: str
    options: List[str] = field(default_factory=list)


@dataclass
class ImageInfo:
    name: str
    digest: str
    diff_ids: List[str] = field(default_factory=list)

    @property
    def chain_id(self) -> str:
        return chain_id(self.diff_ids)


class DaemonHandle:
    """
    An external process owned by the migrator.

    release() stops the process and cleans up after it; it may be called
    any number of times, also on a handle that never started anything.
    """

    def __init__(self, pid: int = 0, release_fn: Optional[Callable[[], None]] = None):
        self.pid = pid
        self._release_fn = release_fn
        self._released = False
        self._lock = threading.Lock()

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
        if self._release_fn is not None:
            self._release_fn()

    @property
    def released(self) -> bool:
        return self._released


def start_containerd(binary: str, address: str, home_dir: str, debug: bool = False,
                     timeout: float = 30) -> DaemonHandle:
    """
    Launch containerd with its root and state under <home_dir>/containerd.

    Args:
        binary: containerd executable
        address: Unix socket the daemon listens on
        home_dir: pouch home directory
        debug: Run containerd with debug logging
        timeout: Seconds to wait for the socket

    Returns:
        Handle owning the daemon process
    """
    argv = [
        binary,
        "-a", address,
        "--root", os.path.join(home_dir, "containerd", "root"),
        "--state", os.path.join(home_dir, "containerd", "state"),
        "-l", "debug" if debug else "info",
    ]
    env = {k: v for k, v in os.environ.items() if k != "NOTIFY_SOCKET"}

    logger.info(f"Starting containerd: {' '.join(argv)}")
    process = subprocess.Popen(
        argv,
        env=env,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )

    def wait_exit():
        code = process.wait()
        logger.info(f"containerd (pid {process.pid}) exited with {code}")

    waiter = threading.Thread(target=wait_exit, name="containerd-wait", daemon=True)
    waiter.start()

    def release():
        try:
            psutil.Process(process.pid).kill()
        except psutil.NoSuchProcess:
            pass
        waiter.join(timeout=10)
        if os.path.exists(address):
            os.remove(address)
        logger.info("containerd stopped")

    handle = DaemonHandle(process.pid, release)
    try:
        wait_for_socket(address, timeout)
    except TimeoutError:
        handle.release()
        raise
    return handle


def parse_mounts(output: str) -> List[Mount]:
    """Parse the `mount -t ...` lines printed by `ctr snapshots mounts`."""
    mounts = []
    for line in output.splitlines():
        fields = line.split()
        if len(fields) < 3 or fields[0] != "mount" or "-t" not in fields:
            continue
        i = fields.index("-t")
        options: List[str] = []
        if "-o" in fields and fields.index("-o") + 1 < len(fields):
            options = fields[fields.index("-o") + 1].split(",")
        mounts.append(Mount(type=fields[i + 1], source=fields[i + 2], options=options))
    return mounts


class CtrdClient:
    """Client for the migrator's containerd, built on the ctr CLI."""

    def __init__(self, address: str, ctr_binary: str = "ctr",
                 namespace: str = DEFAULT_NAMESPACE,
                 snapshotter: str = DEFAULT_SNAPSHOTTER,
                 image_proxy: str = ""):
        self.address = address
        self.ctr_binary = ctr_binary
        self.namespace = namespace
        self.snapshotter = snapshotter
        self.image_proxy = image_proxy

    def _ctr(self, args: List[str], env: Optional[Dict[str, str]] = None) -> str:
        argv = [self.ctr_binary, "-a", self.address, "-n", self.namespace] + args
        try:
            return exec_command(argv, env=env)
        except CommandError as e:
            if "not found" in e.output.lower():
                raise CtrdNotFoundError(f"{' '.join(args[:3])}: not found", e.output) from e
            raise CtrdError(f"ctr {' '.join(args)} failed", e.output) from e

    def _pull_env(self) -> Optional[Dict[str, str]]:
        if not self.image_proxy:
            return None
        env = dict(os.environ)
        for key in ("HTTP_PROXY", "HTTPS_PROXY", "http_proxy", "https_proxy"):
            env[key] = self.image_proxy
        return env

    def pull(self, ref: str) -> None:
        """Pull an image with all of its layers and unpack it."""
        logger.info(f"Pulling image {ref}")
        self._ctr(["images", "pull", "--snapshotter", self.snapshotter, ref], env=self._pull_env())

    def pull_manifest_only(self, ref: str) -> None:
        """Fetch only the manifest and config of an image."""
        logger.info(f"Pulling manifest of {ref}")
        self._ctr(["content", "fetch", "--metadata-only", ref], env=self._pull_env())

    def image_exists(self, ref: str) -> bool:
        return ref in self._ctr(["images", "ls", "-q"]).split()

    def _content(self, digest: str) -> Dict[str, Any]:
        try:
            return json.loads(self._ctr(["content", "get", digest]))
        except json.JSONDecodeError as e:
            raise CtrdError(f"content {digest} is not JSON: {e}") from e

    def get_image(self, ref: str) -> ImageInfo:
        """
        Look up an image and resolve its layer diff IDs.

        Raises:
            CtrdNotFoundError: If containerd has no such image
        """
        digest = ""
        for line in self._ctr(["images", "ls", f"name=={ref}"]).splitlines()[1:]:
            fields = line.split()
            if len(fields) >= 3 and fields[0] == ref:
                digest = fields[2]
                break
        if not digest:
            raise CtrdNotFoundError(f"image {ref}: not found")

        manifest = self._content(digest)
        if manifest.get("mediaType") in INDEX_MEDIA_TYPES or "manifests" in manifest:
            manifest = self._content(self._platform_manifest(ref, manifest))

        config_digest = (manifest.get("config") or {}).get("digest")
        if not config_digest:
            raise CtrdError(f"image {ref} has no config")
        config = self._content(config_digest)
        diff_ids = list((config.get("rootfs") or {}).get("diff_ids") or [])
        return ImageInfo(name=ref, digest=digest, diff_ids=diff_ids)

    def _platform_manifest(self, ref: str, index: Dict[str, Any]) -> str:
        arch = _ARCH_MAP.get(platform.machine(), platform.machine())
        for entry in index.get("manifests") or []:
            plat = entry.get("platform") or {}
            if plat.get("os", "linux") == "linux" and plat.get("architecture") == arch:
                return entry["digest"]
        raise CtrdError(f"image {ref} has no manifest for linux/{arch}")

    def create_snapshot(self, key: str, parent: str) -> None:
        self._ctr(["snapshots", "--snapshotter", self.snapshotter, "prepare", key, parent])

    def get_snapshot(self, key: str) -> Dict[str, Any]:
        output = self._ctr(["snapshots", "--snapshotter", self.snapshotter, "info", key])
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise CtrdError(f"snapshot {key} info is not JSON: {e}") from e

    def snapshot_exists(self, key: str) -> bool:
        try:
            self.get_snapshot(key)
        except CtrdNotFoundError:
            return False
        return True

    def remove_snapshot(self, key: str) -> None:
        self._ctr(["snapshots", "--snapshotter", self.snapshotter, "rm", key])

    def get_mounts(self, key: str) -> List[Mount]:
        output = self._ctr(["snapshots", "--snapshotter", self.snapshotter, "mounts", "/", key])
        return parse_mounts(output)

    def create_container_record(self, container_id: str, rootfs: str,
                                runtime: str = RUNTIME_V1_LINUX,
                                runc_binary: str = DOCKER_RUNC) -> None:
        """Register a container whose rootfs already exists on the host."""
        self._ctr([
            "containers", "create",
            "--runtime", runtime,
            "--runc-binary", runc_binary,
            "--rootfs", rootfs, container_id,
        ])

    def get_container_record(self, container_id: str) -> Dict[str, Any]:
        output = self._ctr(["containers", "info", container_id])
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise CtrdError(f"container {container_id} info is not JSON: {e}") from e

    def delete_container_record(self, container_id: str) -> None:
        self._ctr(["containers", "delete", container_id])
