"""
Migrator configuration.

This module provides the MigratorConfig dataclass and its JSON loader.
"""

from .migrator_config import (
    COLD_MIGRATE,
    LIVE_MIGRATE,
    MigratorConfig,
    load_config,
)

__all__ = ['COLD_MIGRATE', 'LIVE_MIGRATE', 'MigratorConfig', 'load_config']
