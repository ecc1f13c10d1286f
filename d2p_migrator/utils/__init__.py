"""
Host helpers for the migrator: external command execution and
file/directory operations.
"""

from .exec_utils import exec_command, run_command
from .file_utils import (
    backup_file,
    copy_file,
    ensure_directory,
    is_dir_empty,
    move_dir,
    parse_size,
)

__all__ = [
    'exec_command', 'run_command', 'backup_file', 'copy_file',
    'ensure_directory', 'is_dir_empty', 'move_dir', 'parse_size',
]
