"""
Run state shared by the migration phases.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List


class MigrationPhase(Enum):
    """Where a migration run stands."""
    INIT = "init"
    PREPARED = "prepared"
    MIGRATED = "migrated"
    POST_MIGRATED = "post-migrated"
    REVERTED = "reverted"


@dataclass
class UpperDirMapping:
    """Writable layer of a Docker container and the snapshot dir taking it over."""
    container_id: str
    src: str
    dst: str


@dataclass
class MigrationJob:
    """
    Mutable state of one run.

    Created per run and handed to every phase; it is only touched from the
    orchestrating thread and never persisted.

    Attributes:
        all_containers: Container IDs seen at prepare time, True once seen again afterwards
        running_containers: IDs of containers running at prepare time, in listing order
        pulled_images: Raw image string to the normalized reference pulled for it
        mappings: Upper dir mapping per container ID, in preparation order
        volume_refs: Volume name to comma-joined IDs of the containers using it
        sandboxes: IDs of the sandbox containers found
    """
    all_containers: Dict[str, bool] = field(default_factory=dict)
    running_containers: List[str] = field(default_factory=list)
    pulled_images: Dict[str, str] = field(default_factory=dict)
    mappings: Dict[str, UpperDirMapping] = field(default_factory=dict)
    volume_refs: Dict[str, str] = field(default_factory=dict)
    sandboxes: List[str] = field(default_factory=list)
    phase: MigrationPhase = MigrationPhase.INIT

    def add_container(self, container_id: str, running: bool) -> None:
        self.all_containers[container_id] = False
        if running and container_id not in self.running_containers:
            self.running_containers.append(container_id)

    def add_mapping(self, mapping: UpperDirMapping) -> None:
        """Record a mapping, replacing an earlier one for the same container."""
        self.mappings[mapping.container_id] = mapping

    def upper_dir_mappings(self) -> List[UpperDirMapping]:
        return list(self.mappings.values())
