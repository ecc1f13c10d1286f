"""
Docker to PouchContainer metadata translation.

This module provides the container, CRI sandbox and volume translators and
the record types they produce.
"""

from .core import translate
from .cri import parse_sandbox_name, to_sandbox_meta
from .types import ContainerRecord, SandboxMeta, Status, VolumeRecord
from .volumes import add_volume_refs, to_volumes

__all__ = [
    'translate', 'parse_sandbox_name', 'to_sandbox_meta',
    'ContainerRecord', 'SandboxMeta', 'Status', 'VolumeRecord',
    'add_volume_refs', 'to_volumes',
]
