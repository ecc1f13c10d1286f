"""
Live migration: containers keep running through the swap.

Instead of snapshots, a containerd container record is created for each
running container so pouch can adopt the live process.
"""

from ..config.migrator_config import LIVE_MIGRATE
from ..convertor.types import ContainerRecord
from ..errors import CtrdError, CtrdNotFoundError, PreparationError
from ..runtime.containerd import DOCKER_RUNC, RUNTIME_V1_LINUX
from .cold_migrate import ColdMigrator
from .interface import register_migrator
from .job import MigrationJob
from .utils import migrate_network_file


@register_migrator(LIVE_MIGRATE)
class LiveMigrator(ColdMigrator):
    """Takes over running containers without stopping them."""

    teardown_bridge = False
    start_containers = False

    def _prepare_container(self, record: ContainerRecord, job: MigrationJob, running: bool) -> None:
        if not running:
            return
        ctrd = self.ctx.ctrd
        try:
            try:
                ctrd.get_container_record(record.id)
            except CtrdNotFoundError:
                pass
            else:
                self.logger.info(f"containerd container {record.id} exists, deleting it")
                ctrd.delete_container_record(record.id)

            ctrd.create_container_record(record.id, record.base_fs,
                                         runtime=RUNTIME_V1_LINUX, runc_binary=DOCKER_RUNC)
        except CtrdError as e:
            raise PreparationError(record.id, f"failed to create containerd container: {e}") from e
        self.logger.info(f"Created containerd container {record.id}")

    def migrate(self, job: MigrationJob) -> None:
        self.logger.info("Start Migrate")
        migrate_network_file(self.ctx.docker_home_dir, self.ctx.pouch_home_dir)
        self.logger.info("Migrate done")

    def revert_migration(self, job: MigrationJob) -> None:
        self.logger.info("Nothing to revert for live migration")
