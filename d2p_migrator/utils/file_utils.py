"""
File utilities for the migrator.
Provides directory hand-off, file copy and backup helpers.
"""

import logging
import os
import re
import shutil
from pathlib import Path
from typing import Optional

from .exec_utils import exec_command

logger = logging.getLogger(__name__)

_SIZE_RE = re.compile(r'^(\d+(?:\.\d+)?)\s*([kmgtp]?)(i?b)?$', re.IGNORECASE)
_SIZE_UNITS = {'': 1, 'k': 1 << 10, 'm': 1 << 20, 'g': 1 << 30, 't': 1 << 40, 'p': 1 << 50}


def ensure_directory(path: str, mode: Optional[int] = None) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to create
        mode: Permission bits for newly created directories

    Returns:
        Path object for the directory
    """
    dir_path = Path(path)
    if mode is None:
        dir_path.mkdir(parents=True, exist_ok=True)
    else:
        dir_path.mkdir(mode=mode, parents=True, exist_ok=True)
    return dir_path


def backup_file(file_path: str, backup_suffix: str = ".bk") -> Optional[str]:
    """
    Create a backup copy next to a file.

    Returns:
        Path to backup file, or None if original doesn't exist
    """
    source_path = Path(file_path)
    if not source_path.exists():
        return None

    backup_path = source_path.with_name(source_path.name + backup_suffix)
    shutil.copy2(source_path, backup_path)
    logger.info(f"Backed up {source_path} to {backup_path}")
    return str(backup_path)


def copy_file(src: str, dst: str) -> None:
    """Copy a file with `cp`, keeping mode and timestamps."""
    exec_command(["cp", "-p", src, dst])


def is_dir_empty(path: str) -> bool:
    """Return True when path is missing or has no entries."""
    try:
        with os.scandir(path) as it:
            return next(it, None) is None
    except FileNotFoundError:
        return True


def move_dir(src: str, dst: str) -> None:
    """
    Move every immediate child of src into dst.

    The directories themselves stay in place, only their contents change
    owner. Hidden entries are moved as well.

    Args:
        src: Directory whose contents are moved
        dst: Existing directory receiving the contents

    Raises:
        ValueError: If either path is empty
        FileNotFoundError: If src does not exist
        CommandError: If `mv` fails
    """
    if not src or not dst:
        raise ValueError(f"move dir: source {src!r} and destination {dst!r} must not be empty")

    children = sorted(os.listdir(src))
    if not children:
        logger.debug(f"Nothing to move from {src}")
        return

    exec_command(["mv", "-f", "-t", dst] + [os.path.join(src, name) for name in children])


def parse_size(size: str) -> int:
    """
    Parse a human size such as "10g", "512Mi" or "1024" into bytes.

    Units are binary multiples.

    Raises:
        ValueError: If the string is not a size
    """
    match = _SIZE_RE.match(size.strip())
    if not match:
        raise ValueError(f"invalid size: {size!r}")
    number, unit, _ = match.groups()
    return int(float(number) * _SIZE_UNITS[unit.lower()])
