"""
CRI sandbox registration.

Each pause container becomes a sandbox entry in pouch's CRI store, with
its own sandbox directory holding the pod's resolv.conf.
"""

import logging
import os
import shutil
from typing import List, Optional

from ..convertor.core import CONTAINER_TYPE_SANDBOX, POUCH_TYPE_LABEL
from ..convertor.cri import to_sandbox_meta
from ..convertor.types import ContainerRecord
from ..errors import MigratorError
from ..storage.meta_store import DIR_MODE, FILE_MODE, LocalStore
from ..utils.file_utils import ensure_directory

logger = logging.getLogger(__name__)

SANDBOX_META_DIR = "sandboxes-meta"
SANDBOX_DIR = "sandboxes"
RESOLV_CONF = "resolv.conf"
HOST_RESOLV_CONF = "/etc/resolv.conf"


def is_sandbox(record: ContainerRecord) -> bool:
    return record.config.labels.get(POUCH_TYPE_LABEL) == CONTAINER_TYPE_SANDBOX


def setup_sandbox_files(home_dir: str, record: ContainerRecord,
                        host_resolv_conf: str = HOST_RESOLV_CONF) -> Optional[str]:
    """
    Create the sandbox directory and its resolv.conf.

    Returns:
        None on success, an error message otherwise
    """
    sandbox_dir = os.path.join(home_dir, SANDBOX_DIR, record.id)
    src = record.resolv_conf_path or host_resolv_conf
    dst = os.path.join(sandbox_dir, RESOLV_CONF)
    try:
        ensure_directory(sandbox_dir, mode=DIR_MODE)
        shutil.copyfile(src, dst)
        os.chmod(dst, FILE_MODE)
    except OSError as e:
        return f"failed to set up sandbox files for {record.id}: {e}"
    return None


def create_sandbox(store: LocalStore, home_dir: str, record: ContainerRecord) -> None:
    """
    Write the CRI metadata of one sandbox container.

    Raises:
        SandboxNameError: If the container name is not a sandbox name
        OSError: If the metadata cannot be written
    """
    meta = to_sandbox_meta(record)
    store.put(record.id, meta.to_json())

    error = setup_sandbox_files(home_dir, record)
    if error:
        logger.warning(error)
    logger.info(f"Created sandbox meta for {record.id}")


def generate_sandbox_meta(home_dir: str, records: List[ContainerRecord]) -> List[str]:
    """
    Register every sandbox container in the CRI store.

    Failures are logged and skipped.

    Returns:
        IDs of the sandboxes written
    """
    store = LocalStore(os.path.join(home_dir, SANDBOX_META_DIR))
    created = []
    for record in records:
        if not is_sandbox(record):
            continue
        try:
            create_sandbox(store, home_dir, record)
        except (MigratorError, OSError) as e:
            logger.error(f"Failed to create sandbox meta for {record.id}: {e}")
            continue
        created.append(record.id)
    return created
