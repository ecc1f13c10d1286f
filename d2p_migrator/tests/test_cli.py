#!/usr/bin/env python3
"""
Tests for the d2p-migrator command line.
"""

import io
import json
import os
import shutil
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest.mock import patch

from d2p_migrator import __version__
from d2p_migrator.config.migrator_config import LIVE_MIGRATE
from d2p_migrator.errors import CutoverError, PreconditionError
from d2p_migrator.scripts.migrate import main


@patch('d2p_migrator.scripts.migrate.setup_logging')
@patch('d2p_migrator.scripts.migrate.run_migration')
@patch('d2p_migrator.scripts.migrate.D2pMigrator')
class TestMain(unittest.TestCase):
    """Test cases for main()."""

    def test_flags(self, mock_d2p, mock_run, mock_logging):
        """Test flags are folded into the config."""
        code = main([
            "--migrate-all", "--live-migrate", "--dry-run", "--manifest-only",
            "--docker-pkg", "docker-ce", "--image-proxy", "http://proxy:3128",
            "--repull-images", "busybox,nginx", "--repull-images", "redis",
        ])
        self.assertEqual(code, 0)
        config = mock_d2p.create.call_args[0][0]
        self.assertTrue(config.migrate_all)
        self.assertTrue(config.dry_run)
        self.assertTrue(config.pull_manifest_only)
        self.assertEqual(config.migrator_type, LIVE_MIGRATE)
        self.assertEqual(config.docker_pkg, "docker-ce")
        self.assertEqual(config.image_proxy, "http://proxy:3128")
        self.assertEqual(config.repull_images, {"busybox", "nginx", "redis"})
        mock_run.assert_called_once_with(mock_d2p.create.return_value, config)

    def test_config_file(self, mock_d2p, mock_run, mock_logging):
        """Test file values are kept unless a flag overrides them."""
        temp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, temp_dir, True)
        path = os.path.join(temp_dir, "migrator.json")
        with open(path, 'w') as f:
            json.dump({"docker_pkg": "docker-engine", "migrate_all": True}, f)

        self.assertEqual(main(["--config", path, "--debug"]), 0)
        config = mock_d2p.create.call_args[0][0]
        self.assertEqual(config.docker_pkg, "docker-engine")
        self.assertTrue(config.migrate_all)
        mock_logging.assert_called_once_with(True)

    def test_missing_config(self, mock_d2p, mock_run, mock_logging):
        """Test a missing config file fails early."""
        with redirect_stderr(io.StringIO()):
            self.assertEqual(main(["--config", "/nonexistent/migrator.json"]), 1)
        mock_d2p.create.assert_not_called()

    def test_precondition_failure(self, mock_d2p, mock_run, mock_logging):
        """Test a refused host exits non-zero."""
        mock_d2p.create.side_effect = PreconditionError("storage driver 'devicemapper' not supported")
        self.assertEqual(main([]), 1)
        mock_run.assert_not_called()

    def test_migration_failure(self, mock_d2p, mock_run, mock_logging):
        """Test a failed run exits non-zero."""
        mock_run.side_effect = CutoverError("failed to stop container c1")
        self.assertEqual(main(["--migrate-all"]), 1)

    def test_version(self, mock_d2p, mock_run, mock_logging):
        """Test --version prints the version."""
        out = io.StringIO()
        with redirect_stdout(out):
            with self.assertRaises(SystemExit):
                main(["--version"])
        self.assertIn(__version__, out.getvalue())


if __name__ == '__main__':
    unittest.main()
