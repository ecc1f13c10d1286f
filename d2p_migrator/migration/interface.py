"""
Migrator interface and registry.

Every migration strategy implements the same four phases; the strategy
used for a run is looked up by name from the configuration.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Type

from ..config.migrator_config import MigratorConfig
from ..errors import ConfigError
from ..runtime.containerd import CtrdClient
from ..runtime.docker_client import DockerClient
from ..runtime.pouch_client import PouchClient
from .job import MigrationJob

logger = logging.getLogger(__name__)


@dataclass
class MigrationContext:
    """Collaborators and locations a migrator works with."""
    config: MigratorConfig
    docker: DockerClient
    ctrd: CtrdClient
    docker_home_dir: str
    pouch_home_dir: str
    pouch_client_factory: Callable[[str], PouchClient] = field(default=PouchClient)
    release_containerd: Optional[Callable[[], None]] = None


class Migrator(ABC):
    """A strategy for moving containers from Docker to pouch."""

    def __init__(self, ctx: MigrationContext):
        self.ctx = ctx
        self.config = ctx.config
        self.logger = logging.getLogger(self.__class__.__module__)

    @abstractmethod
    def pre_migrate(self, job: MigrationJob) -> None:
        """Translate containers and prepare everything that is not destructive."""

    @abstractmethod
    def migrate(self, job: MigrationJob) -> None:
        """Cut over: stop containers and hand their data to pouch."""

    @abstractmethod
    def post_migrate(self, job: MigrationJob) -> None:
        """Swap the runtimes and start the containers under pouch."""

    @abstractmethod
    def revert_migration(self, job: MigrationJob) -> None:
        """Undo migrate and bring the Docker containers back."""

    def cleanup(self) -> None:
        """Release resources held by the migrator."""


_migrators: Dict[str, Type[Migrator]] = {}


def register_migrator(name: str) -> Callable[[Type[Migrator]], Type[Migrator]]:
    """Class decorator adding a migrator to the registry under name."""
    def decorator(cls: Type[Migrator]) -> Type[Migrator]:
        _migrators[name] = cls
        return cls
    return decorator


def new_migrator(name: str, ctx: MigrationContext) -> Migrator:
    """
    Instantiate the migrator registered under name.

    Raises:
        ConfigError: If no migrator has that name
    """
    try:
        cls = _migrators[name]
    except KeyError:
        raise ConfigError(f"migrator {name!r} not registered") from None
    return cls(ctx)


def registered_migrators() -> Dict[str, Type[Migrator]]:
    return dict(_migrators)
