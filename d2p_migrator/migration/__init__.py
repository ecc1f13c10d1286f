"""
Docker to pouch migration phases.

This module provides the run state, the migrator interface and registry.
The cold and live strategies and the phase wrapper live in
cold_migrate, live_migrate and migrator.
"""

from .interface import MigrationContext, Migrator, new_migrator, register_migrator
from .job import MigrationJob, MigrationPhase, UpperDirMapping

__all__ = [
    'MigrationContext', 'Migrator', 'new_migrator', 'register_migrator',
    'MigrationJob', 'MigrationPhase', 'UpperDirMapping',
]
