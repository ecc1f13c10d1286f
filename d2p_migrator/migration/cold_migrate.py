"""
Cold migration: stop every container, move its writable layer into a
containerd snapshot and start it again under pouch.
"""

import os
import sqlite3
from typing import Any, Dict, List, Optional

from ..config.migrator_config import COLD_MIGRATE
from ..convertor.core import translate
from ..convertor.hooks import run_post_convert
from ..convertor.types import ContainerRecord
from ..convertor.volumes import add_volume_refs, to_volumes
from ..errors import (
    CommandError,
    CutoverError,
    MigratorError,
    PostMigrateError,
    PreparationError,
    RevertError,
)
from ..runtime import service
from ..runtime.docker_client import API_ERRORS
from ..storage.overlay_manager import OverlayManager
from ..storage.volume_manager import VolumeManager
from ..utils.file_utils import is_dir_empty, move_dir
from .cri_migrate import generate_sandbox_meta
from .interface import MigrationContext, Migrator, register_migrator
from .job import MigrationJob
from .utils import (
    find_deleted_containers,
    list_container_ids,
    migrate_network_file,
    remove_marker,
    save_to_disk,
    stop_containers,
    write_marker,
)

RUNTIME_STATE_DIR = os.path.join("containerd", "state", "io.containerd.runtime.v1.linux", "default")


@register_migrator(COLD_MIGRATE)
class ColdMigrator(Migrator):
    """Stops all containers for the cut-over and restarts them on pouch."""

    # pouch restarts containers itself after a cold migration
    teardown_bridge = True
    start_containers = True

    def __init__(self, ctx: MigrationContext, overlay_manager: Optional[OverlayManager] = None,
                 volume_manager: Optional[VolumeManager] = None):
        super().__init__(ctx)
        self.overlay = overlay_manager or OverlayManager(
            ctx.ctrd,
            manifest_only=self.config.pull_manifest_only,
            repull_images=self.config.repull_images,
            default_registry=self.config.default_registry,
            default_namespace=self.config.default_namespace,
        )
        self.volumes = volume_manager or VolumeManager(ctx.pouch_home_dir)
        self.records: Dict[str, ContainerRecord] = {}

    def rootfs_dir(self, container_id: str) -> str:
        return os.path.join(self.ctx.pouch_home_dir, RUNTIME_STATE_DIR, container_id, "rootfs")

    def _inspect(self, container_id: str) -> Dict[str, Any]:
        try:
            return self.ctx.docker.inspect(container_id)
        except API_ERRORS as e:
            raise PreparationError(container_id, f"failed to inspect container: {e}") from e

    def _translate(self, meta: Dict[str, Any]) -> ContainerRecord:
        record = translate(meta)
        run_post_convert(self.ctx.docker_home_dir, record)
        return record

    def _prepare_container(self, record: ContainerRecord, job: MigrationJob, running: bool) -> None:
        self.overlay.prepare(record, job)
        record.base_fs = self.rootfs_dir(record.id)
        record.rootfs_provided = False

    def pre_migrate(self, job: MigrationJob) -> None:
        self.logger.info("Start PreMigrate")
        try:
            containers = self.ctx.docker.list_containers()
        except API_ERRORS as e:
            raise MigratorError(f"failed to list containers: {e}") from e
        if not containers:
            self.logger.info("No containers on this host, nothing to prepare")
            return

        try:
            volumes = to_volumes(self.ctx.docker.list_volumes())
        except API_ERRORS as e:
            raise MigratorError(f"failed to list volumes: {e}") from e

        for summary in containers:
            container_id = summary["Id"]
            running = summary.get("State") == "running"
            job.add_container(container_id, running)
            self.logger.info(f"Preparing container {container_id} (running: {running})")

            record = self._translate(self._inspect(container_id))
            add_volume_refs(job.volume_refs, record)
            self._prepare_container(record, job, running)

            path = save_to_disk(self.ctx.pouch_home_dir, record)
            self.records[container_id] = record
            self.logger.info(f"Saved meta of {container_id} to {path}")

        self._prepare_volumes(volumes, job)
        job.sandboxes = generate_sandbox_meta(self.ctx.pouch_home_dir, list(self.records.values()))
        self.logger.info(f"PreMigrate done: {len(self.records)} containers, "
                         f"{len(job.mappings)} upper dirs, {len(job.sandboxes)} sandboxes")

    def _prepare_volumes(self, volumes: List[Any], job: MigrationJob) -> None:
        try:
            count = self.volumes.prepare_volumes(volumes, job.volume_refs, self.ctx.docker)
        except (MigratorError, OSError, sqlite3.Error) as e:
            # The volumes themselves stay on disk and can be re-registered.
            self.logger.error(f"Failed to register volumes: {e}")
            return
        self.logger.info(f"Registered {count} volumes")

    def migrate(self, job: MigrationJob) -> None:
        self.logger.info("Start Migrate")
        stop_containers(self.ctx.docker, job.running_containers, self.config.container_stop_timeout)
        migrate_network_file(self.ctx.docker_home_dir, self.ctx.pouch_home_dir)

        for mapping in job.upper_dir_mappings():
            error = write_marker(mapping.src)
            if error:
                self.logger.warning(error)
            try:
                move_dir(mapping.src, mapping.dst)
            except (ValueError, OSError, CommandError) as e:
                raise CutoverError(
                    f"failed to move {mapping.src!r} to {mapping.dst!r} "
                    f"for container {mapping.container_id}: {e}"
                ) from e
            self.logger.info(f"Moved {mapping.src} to {mapping.dst}")
        self.logger.info("Migrate done")

    def post_migrate(self, job: MigrationJob) -> None:
        self.logger.info("Start PostMigrate")
        config = self.config
        try:
            deleted = find_deleted_containers(job.all_containers, list_container_ids(self.ctx.docker))
        except API_ERRORS as e:
            raise PostMigrateError(f"failed to list containers: {e}") from e
        if deleted:
            self.logger.info(f"Containers deleted during migration: {deleted}")

        if self.ctx.release_containerd is not None:
            self.ctx.release_containerd()

        try:
            service.uninstall_docker(config.docker_pkg, retries=config.docker_stop_retries,
                                     dry_run=config.dry_run)
            service.install_pouch(config.pouch_pkg_path, config.pouch_socket,
                                  config.pouch_start_timeout, dry_run=config.dry_run)
        except (CommandError, TimeoutError) as e:
            raise PostMigrateError(f"failed to swap docker for pouch: {e}") from e

        pouch = self.ctx.pouch_client_factory(config.pouch_socket)
        try:
            for container_id in deleted:
                pouch.remove_container(container_id, force=True)
        except API_ERRORS as e:
            raise PostMigrateError(f"failed to remove deleted container: {e}") from e

        if self.teardown_bridge:
            error = service.delete_bridge()
            if error:
                self.logger.warning(f"Failed to delete docker0: {error}")

        if self.start_containers:
            for container_id in job.running_containers:
                if container_id in deleted:
                    continue
                try:
                    pouch.start_container(container_id)
                except API_ERRORS as e:
                    raise PostMigrateError(f"failed to start container {container_id}: {e}") from e
        self.logger.info("PostMigrate done!!!")

    def revert_migration(self, job: MigrationJob) -> None:
        self.logger.info("Start RevertMigration")
        failures = []
        for mapping in job.upper_dir_mappings():
            try:
                if not mapping.dst or not mapping.src or is_dir_empty(mapping.dst):
                    self.logger.info(f"Nothing to move back for {mapping.container_id}")
                else:
                    move_dir(mapping.dst, mapping.src)
                    self.logger.info(f"Moved {mapping.dst} back to {mapping.src}")
                if mapping.src:
                    remove_marker(mapping.src)
            except (ValueError, OSError, CommandError) as e:
                failures.append(f"{mapping.container_id}: {e}")

        for container_id in job.running_containers:
            try:
                self.ctx.docker.start(container_id)
            except API_ERRORS as e:
                failures.append(f"start {container_id}: {e}")

        if failures:
            raise RevertError(failures)
        self.logger.info("RevertMigration done")
