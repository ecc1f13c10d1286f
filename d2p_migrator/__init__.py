"""
d2p_migrator - host-local Docker to PouchContainer migration.

Converts the containers managed by a Docker daemon into PouchContainer
metadata, prepares containerd snapshots and quotas for them and hands the
writable layers over to the new runtime.
"""

__version__ = "1.0.0"

__all__ = ['__version__']
