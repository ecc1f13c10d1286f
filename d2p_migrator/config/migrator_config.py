#!/usr/bin/env python3
"""
Configuration for the d2p migrator.
Handles defaults, JSON config files and validation.
"""

import dataclasses
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Set

from ..errors import ConfigError

logger = logging.getLogger(__name__)

COLD_MIGRATE = "cold-migrate"
LIVE_MIGRATE = "live-migrate"


@dataclass
class MigratorConfig:
    """Options for one migration run."""
    migrator_type: str = COLD_MIGRATE
    docker_pkg: str = "docker"
    pouch_pkg_path: str = "pouch"
    migrate_all: bool = False
    pull_images_only: bool = False
    image_proxy: str = ""
    repull_images: Set[str] = field(default_factory=set)
    pull_manifest_only: bool = False
    allow_remote_volumes: bool = False
    dry_run: bool = False
    debug: bool = False

    docker_socket: str = "unix:///var/run/docker.sock"
    pouch_socket: str = "/var/run/pouchd.sock"
    pouch_config_file: str = "/etc/pouch/config.json"
    containerd_binary: str = "containerd"
    ctr_binary: str = "ctr"
    containerd_socket: str = "/tmp/containerd-migrator.socket"

    default_registry: str = "docker.io"
    default_namespace: str = "library"

    pouch_start_timeout: float = 120
    container_stop_timeout: int = 1
    docker_stop_retries: int = 3

    def validate(self) -> None:
        """
        Check option values.

        Raises:
            ConfigError: If an option is out of range
        """
        if self.migrator_type not in (COLD_MIGRATE, LIVE_MIGRATE):
            raise ConfigError(f"unknown migrator type: {self.migrator_type!r}")
        if self.pouch_start_timeout <= 0:
            raise ConfigError("pouch_start_timeout must be positive")
        if self.container_stop_timeout < 0:
            raise ConfigError("container_stop_timeout must not be negative")
        if self.docker_stop_retries < 1:
            raise ConfigError("docker_stop_retries must be at least 1")

    def update(self, options: Dict[str, Any]) -> None:
        """Override fields from a mapping, ignoring unknown keys."""
        known = {f.name for f in dataclasses.fields(self)}
        for key, value in options.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config option: {key}")
                continue
            if key == "repull_images":
                value = parse_image_list(value)
            setattr(self, key, value)


def parse_image_list(value: Any) -> Set[str]:
    """
    Normalize an image list given as a comma separated string or a list.

    Raises:
        ConfigError: If value is neither
    """
    if not value:
        return set()
    if isinstance(value, str):
        value = value.split(",")
    elif not isinstance(value, (list, tuple, set)):
        raise ConfigError(f"repull_images must be a list or a comma separated string, "
                          f"got {type(value).__name__}")
    images = set()
    for entry in value:
        if not isinstance(entry, str):
            raise ConfigError(f"repull_images entries must be strings, got {entry!r}")
        if entry.strip():
            images.add(entry.strip())
    return images


def load_config(config_path: Optional[str] = None) -> MigratorConfig:
    """
    Build a MigratorConfig, optionally overridden from a JSON file.

    Args:
        config_path: Path to a JSON object of option overrides

    Returns:
        The loaded configuration
    """
    config = MigratorConfig()
    if not config_path:
        return config

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    try:
        with open(path, 'r') as f:
            options = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid config file {path}: {e}") from e

    if not isinstance(options, dict):
        raise ConfigError(f"config file {path} must hold a JSON object")

    config.update(options)
    return config
