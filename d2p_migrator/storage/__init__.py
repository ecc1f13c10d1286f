"""
Storage preparation for migrated containers.

This module provides snapshot and writable layer preparation, project
quotas, the keyed metadata stores and volume registration.
"""

from .meta_store import DBStore, LocalStore
from .overlay_manager import OverlayManager, get_overlay_dirs
from .quota import QuotaDriver, QuotaSpec, set_dir_disk_quota
from .volume_manager import VolumeManager

__all__ = [
    'DBStore', 'LocalStore', 'OverlayManager', 'get_overlay_dirs',
    'QuotaDriver', 'QuotaSpec', 'set_dir_disk_quota', 'VolumeManager',
]
