"""
Helpers shared by the migrators: host validation, metadata persistence,
network state hand-off and container stop/start.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..convertor.types import ContainerRecord
from ..errors import CommandError, CutoverError, PreconditionError
from ..runtime.docker_client import API_ERRORS, DockerClient, is_not_found
from ..storage.meta_store import DIR_MODE, LocalStore
from ..utils.file_utils import copy_file, ensure_directory

logger = logging.getLogger(__name__)

SUPPORTED_STORAGE_DRIVERS = ("overlay", "overlay2")
NETWORK_DB_DIR = os.path.join("network", "files")
NETWORK_DB_FILE = "local-kv.db"
MARKER_FILE = "d2p-migrator.txt"


def get_pouch_home_dir(docker_root_dir: str) -> str:
    """Pouch home lives next to Docker's: /var/lib/docker -> /var/lib/pouch."""
    root = docker_root_dir.rstrip("/")
    if root.endswith("docker"):
        root = root[:-len("docker")]
    return os.path.join(root, "pouch")


def validate_docker_info(info: Dict[str, Any]) -> str:
    """
    Check that the Docker daemon can be migrated.

    Returns:
        Docker's root directory

    Raises:
        PreconditionError: If the root dir is unknown or the storage driver unsupported
    """
    root_dir = info.get("DockerRootDir") or ""
    if not root_dir:
        raise PreconditionError("docker root dir is empty")
    driver = info.get("Driver") or ""
    if driver not in SUPPORTED_STORAGE_DRIVERS:
        raise PreconditionError(f"storage driver {driver!r} not supported, need overlay or overlay2")
    return root_dir


def prepare_config_for_pouch(home_dir: str, config_file: str) -> None:
    """Create the pouch home and point pouchd's config at it."""
    ensure_directory(home_dir)
    path = Path(config_file)
    if not path.exists():
        logger.warning(f"{config_file} not found, leaving pouch home-dir at its default")
        return
    with open(path, 'r') as f:
        config = json.load(f)
    config["home-dir"] = home_dir
    with open(path, 'w') as f:
        json.dump(config, f, indent=4)
    logger.info(f"Set home-dir of {config_file} to {home_dir}")


def save_to_disk(home_dir: str, record: ContainerRecord) -> str:
    """
    Write a container's meta.json under <home>/containers/<id>.

    Returns:
        Path of the written file
    """
    store = LocalStore(os.path.join(home_dir, "containers"))
    store.put(record.id, record.to_json())
    return str(store.path_for(record.id))


def migrate_network_file(docker_home_dir: str, pouch_home_dir: str) -> None:
    """
    Copy Docker's network state database into the pouch home.

    Raises:
        CutoverError: If the source database is missing or the copy fails
    """
    src = os.path.join(docker_home_dir, NETWORK_DB_DIR, NETWORK_DB_FILE)
    if not os.path.isfile(src):
        raise CutoverError(f"network db {src} not found")

    dst_dir = os.path.join(pouch_home_dir, NETWORK_DB_DIR)
    ensure_directory(dst_dir, mode=DIR_MODE)
    dst = os.path.join(dst_dir, NETWORK_DB_FILE)
    if os.path.exists(dst):
        os.remove(dst)

    try:
        copy_file(src, dst)
    except CommandError as e:
        raise CutoverError(f"failed to copy network db {src} to {dst}: {e}") from e
    logger.info(f"Copied network db to {dst}")


def write_marker(directory: str) -> Optional[str]:
    """
    Drop the migration marker file into a directory.

    Returns:
        None on success, an error message otherwise
    """
    try:
        Path(directory, MARKER_FILE).touch()
    except OSError as e:
        return f"failed to write marker in {directory}: {e}"
    return None


def remove_marker(directory: str) -> None:
    try:
        os.remove(os.path.join(directory, MARKER_FILE))
    except FileNotFoundError:
        pass


def stop_containers(docker: DockerClient, container_ids: Iterable[str], timeout: int) -> None:
    """
    Stop containers, ignoring ones that no longer exist.

    Raises:
        CutoverError: On any other stop failure
    """
    for container_id in container_ids:
        try:
            docker.stop(container_id, timeout=timeout)
        except API_ERRORS as e:
            if is_not_found(e):
                logger.info(f"Container {container_id} not found, skip stop")
                continue
            raise CutoverError(f"failed to stop container {container_id}: {e}") from e


def list_container_ids(docker: DockerClient) -> List[str]:
    return [c["Id"] for c in docker.list_containers()]


def find_deleted_containers(all_containers: Dict[str, bool], current_ids: Iterable[str]) -> List[str]:
    """
    Mark containers still present and return the ones deleted meanwhile.
    """
    for container_id in current_ids:
        if container_id in all_containers:
            all_containers[container_id] = True
    return [cid for cid, present in all_containers.items() if not present]
