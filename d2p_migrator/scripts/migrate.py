#!/usr/bin/env python3
"""
Docker to PouchContainer migration tool.

Run on the host to migrate; by default only prepares data (images,
snapshots and metadata) and leaves Docker untouched. Pass --migrate-all to
cut over.
"""

import argparse
import logging
import sys
from typing import List, Optional

from .. import __version__
from ..config.migrator_config import COLD_MIGRATE, LIVE_MIGRATE, load_config, parse_image_list
from ..errors import MigratorError
from ..migration.migrator import D2pMigrator, run_migration


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Migrate Docker containers to PouchContainer")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="JSON file with migrator options")
    parser.add_argument("--debug", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--docker-pkg", help="Docker package to uninstall")
    parser.add_argument("--pouch-pkg-path", help="Pouch package to install")
    parser.add_argument("--migrate-all", action="store_true",
                        help="Cut over to pouch instead of only preparing data")
    parser.add_argument("--live-migrate", action="store_true",
                        help="Take over running containers without stopping them")
    parser.add_argument("--image-proxy", help="HTTP proxy used to pull images")
    parser.add_argument("--pull-images", action="store_true",
                        help="Only pull the images of existing containers")
    parser.add_argument("--repull-images", action="append", default=[],
                        help="Image to always pull in full (repeatable, comma separated)")
    parser.add_argument("--manifest-only", action="store_true",
                        help="Pull only image manifests unless listed in --repull-images")
    parser.add_argument("--allow-remote-volumes", action="store_true",
                        help="Skip remote disk volumes instead of refusing to migrate")
    parser.add_argument("--dry-run", action="store_true",
                        help="Do not remove or install packages")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, MigratorError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    overrides = {
        "debug": args.debug or None,
        "docker_pkg": args.docker_pkg,
        "pouch_pkg_path": args.pouch_pkg_path,
        "migrate_all": args.migrate_all or None,
        "migrator_type": LIVE_MIGRATE if args.live_migrate else None,
        "image_proxy": args.image_proxy,
        "pull_images_only": args.pull_images or None,
        "pull_manifest_only": args.manifest_only or None,
        "allow_remote_volumes": args.allow_remote_volumes or None,
        "dry_run": args.dry_run or None,
    }
    config.update({k: v for k, v in overrides.items() if v is not None})
    for entry in args.repull_images:
        config.repull_images.update(parse_image_list(entry))

    setup_logging(config.debug)
    logger = logging.getLogger(__name__)
    logger.info(f"d2p-migrator {__version__} ({config.migrator_type or COLD_MIGRATE})")

    try:
        d2p = D2pMigrator.create(config)
        run_migration(d2p, config)
    except MigratorError as e:
        logger.error(f"Migration failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
