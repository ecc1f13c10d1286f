#!/usr/bin/env python3
"""
Migration orchestration.

D2pMigrator validates the host, owns the migrator's containerd and runs
the selected strategy phase by phase, refusing phases out of order.
run_migration() strings the phases together and decides when to revert.
"""

import logging
from typing import Iterable, Optional, Set

from ..config.migrator_config import MigratorConfig
from ..convertor.volumes import check_volume_drivers
from ..errors import CtrdError, MigratorError, PhaseError, PreconditionError
from ..runtime.containerd import CtrdClient, DaemonHandle, start_containerd
from ..runtime.docker_client import API_ERRORS, DockerClient
from ..runtime.image import normalize_image_ref
from . import cold_migrate, live_migrate  # noqa: F401  registers the strategies
from .interface import MigrationContext, Migrator, new_migrator
from .job import MigrationJob, MigrationPhase
from .utils import get_pouch_home_dir, prepare_config_for_pouch, validate_docker_info

logger = logging.getLogger(__name__)

_ALLOWED_FROM = {
    "PreMigrate": {MigrationPhase.INIT, MigrationPhase.PREPARED},
    "Migrate": {MigrationPhase.PREPARED, MigrationPhase.MIGRATED},
    "PostMigrate": {MigrationPhase.MIGRATED, MigrationPhase.POST_MIGRATED},
    "RevertMigration": {MigrationPhase.MIGRATED},
}


class D2pMigrator:
    """Runs one Docker to pouch migration on this host."""

    def __init__(self, config: MigratorConfig, migrator: Migrator, docker: DockerClient,
                 ctrd: CtrdClient, containerd: Optional[DaemonHandle] = None,
                 job: Optional[MigrationJob] = None):
        self.config = config
        self.migrator = migrator
        self.docker = docker
        self.ctrd = ctrd
        self.containerd = containerd or DaemonHandle()
        self.job = job or MigrationJob()
        self.logger = logging.getLogger(__name__)

    @classmethod
    def create(cls, config: MigratorConfig, docker: Optional[DockerClient] = None) -> "D2pMigrator":
        """
        Check the host and start the migrator's containerd.

        Raises:
            PreconditionError: If the host cannot be migrated
        """
        config.validate()
        docker = docker or DockerClient(base_url=config.docker_socket)

        try:
            info = docker.info()
            volumes = docker.list_volumes()
        except API_ERRORS as e:
            raise PreconditionError(f"failed to query docker daemon: {e}") from e

        docker_home = validate_docker_info(info)
        check_volume_drivers(volumes, config.allow_remote_volumes)

        pouch_home = get_pouch_home_dir(docker_home)
        prepare_config_for_pouch(pouch_home, config.pouch_config_file)
        logger.info(f"Docker home {docker_home}, pouch home {pouch_home}")

        handle = start_containerd(config.containerd_binary, config.containerd_socket,
                                  pouch_home, debug=config.debug)
        try:
            ctrd = CtrdClient(config.containerd_socket, ctr_binary=config.ctr_binary,
                              image_proxy=config.image_proxy)
            ctx = MigrationContext(
                config=config,
                docker=docker,
                ctrd=ctrd,
                docker_home_dir=docker_home,
                pouch_home_dir=pouch_home,
                release_containerd=handle.release,
            )
            migrator = new_migrator(config.migrator_type, ctx)
        except MigratorError:
            handle.release()
            raise
        return cls(config, migrator, docker, ctrd, handle)

    @property
    def phase(self) -> MigrationPhase:
        return self.job.phase

    def _enter(self, name: str, target: MigrationPhase) -> None:
        if self.job.phase not in _ALLOWED_FROM[name]:
            raise PhaseError(name, self.job.phase.value)
        self.job.phase = target

    def pre_migrate(self) -> None:
        if self.job.phase not in _ALLOWED_FROM["PreMigrate"]:
            raise PhaseError("PreMigrate", self.job.phase.value)
        self.migrator.pre_migrate(self.job)
        self.job.phase = MigrationPhase.PREPARED

    def migrate(self) -> None:
        # From here on the host is changed, a failure needs a revert.
        self._enter("Migrate", MigrationPhase.MIGRATED)
        self.migrator.migrate(self.job)

    def post_migrate(self) -> None:
        # Once started there is no way back to docker.
        self._enter("PostMigrate", MigrationPhase.POST_MIGRATED)
        self.migrator.post_migrate(self.job)

    def revert_migration(self) -> None:
        self._enter("RevertMigration", MigrationPhase.REVERTED)
        self.migrator.revert_migration(self.job)

    def prepare_images(self, repull_images: Optional[Iterable[str]] = None) -> Set[str]:
        """
        Pull the images of all containers into containerd ahead of time.

        Failures are logged per image.

        Returns:
            References pulled
        """
        repull = set(repull_images if repull_images is not None else self.config.repull_images)
        pulled: Set[str] = set()
        try:
            containers = self.docker.list_containers()
        except API_ERRORS as e:
            raise MigratorError(f"failed to list containers: {e}") from e

        for summary in containers:
            container_id = summary["Id"]
            try:
                meta = self.docker.inspect(container_id)
                image = self.docker.inspect_image(meta["Image"])
            except API_ERRORS + (KeyError,) as e:
                self.logger.error(f"Failed to inspect image of {container_id}: {e}")
                continue

            names = (image.get("RepoTags") or []) + (image.get("RepoDigests") or [])
            if not names:
                self.logger.warning(f"Image of {container_id} has no name, skipping")
                continue
            ref = normalize_image_ref(names[0], self.config.default_registry,
                                      self.config.default_namespace)
            if ref in pulled:
                continue

            try:
                if ref not in repull and names[0] not in repull and self.ctrd.image_exists(ref):
                    self.logger.info(f"Image {ref} already exists, skip pull")
                    continue
                self.ctrd.pull(ref)
            except CtrdError as e:
                self.logger.error(f"Failed to pull image {ref}: {e}")
                continue
            pulled.add(ref)
        return pulled

    def cleanup(self) -> None:
        self.migrator.cleanup()
        self.containerd.release()


def run_migration(d2p: D2pMigrator, config: MigratorConfig) -> None:
    """
    Run the migration flow.

    A failing Migrate is reverted and its error re-raised. A failing
    PostMigrate is only reported: the host then needs manual repair.
    """
    try:
        if config.pull_images_only:
            pulled = d2p.prepare_images()
            logger.info(f"Prepared {len(pulled)} images")
            return

        d2p.pre_migrate()
        if not config.migrate_all:
            logger.info("just prepare data, not migrating containers")
            return

        try:
            d2p.migrate()
        except Exception as e:
            logger.error(f"Migrate failed, reverting: {e}")
            try:
                d2p.revert_migration()
            except Exception as revert_error:
                logger.error(f"RevertMigration failed: {revert_error}")
            raise

        try:
            d2p.post_migrate()
        except Exception as e:
            logger.error(f"PostMigrate failed, need handle by manual!!! {e}")
            raise
        logger.info("done")
    finally:
        d2p.cleanup()
