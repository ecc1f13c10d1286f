#!/usr/bin/env python3
"""
Tests for metadata stores and post-convert hooks.
"""

import os
import shutil
import sqlite3
import stat
import tempfile
import unittest

from d2p_migrator.convertor.core import translate
from d2p_migrator.convertor.hooks import (
    ContainerPlugin,
    get_container_plugin,
    register_container_plugin,
    run_post_convert,
)
from d2p_migrator.storage.meta_store import DBStore, LocalStore
from d2p_migrator.tests.fakes import make_container_meta


class TestDBStore(unittest.TestCase):
    """Test cases for DBStore."""

    def setUp(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.path = os.path.join(self.temp_dir, "volume", "volume.db")

    def tearDown(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def read_bucket(self, bucket):
        """Rows of one bucket as a dict."""
        conn = sqlite3.connect(self.path)
        try:
            rows = conn.execute("SELECT key, value FROM kv WHERE bucket = ?", (bucket,))
            return dict(rows)
        finally:
            conn.close()

    def test_put(self):
        """Test values persist across opens and buckets are separate."""
        with DBStore(self.path, "volume") as store:
            store.put("data", '{"v": 1}')
            store.put("logs", '{"v": 3}')
        with DBStore(self.path, "volume") as store:
            store.put("data", '{"v": 2}')
        with DBStore(self.path, "other") as store:
            store.put("cache", '{"v": 4}')

        self.assertEqual(self.read_bucket("volume"), {"data": '{"v": 2}', "logs": '{"v": 3}'})
        self.assertEqual(self.read_bucket("other"), {"cache": '{"v": 4}'})

    def test_closed_store(self):
        """Test use without opening is an error."""
        with self.assertRaises(RuntimeError):
            DBStore(self.path, "volume").put("data", "{}")


class TestLocalStore(unittest.TestCase):
    """Test cases for LocalStore."""

    def setUp(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.store = LocalStore(os.path.join(self.temp_dir, "containers"))

    def tearDown(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_put(self):
        """Test entries land in <key>/meta.json."""
        self.store.put("c1", '{"Id":"c1"}')
        self.store.put("c1", '{"Id":"c1","Name":"web"}')
        path = self.store.path_for("c1")
        self.assertEqual(path.name, "meta.json")
        self.assertEqual(stat.S_IMODE(os.stat(path).st_mode) & 0o600, 0o600)
        self.assertEqual(path.read_text(), '{"Id":"c1","Name":"web"}')
        self.assertEqual(os.listdir(self.store.base_dir), ["c1"])


class RenamePlugin(ContainerPlugin):
    def post_convert(self, docker_home_dir, record):
        record.config.labels["migrated-from"] = docker_home_dir


class TestContainerPlugin(unittest.TestCase):
    """Test cases for the post-convert hook."""

    def tearDown(self):
        register_container_plugin(None)

    def test_no_plugin(self):
        """Test records pass through unchanged without a plugin."""
        record = translate(make_container_meta("c1", "web", False, "/upper"))
        run_post_convert("/var/lib/docker", record)
        self.assertNotIn("migrated-from", record.config.labels)

    def test_plugin(self):
        """Test a registered plugin sees every record."""
        plugin = RenamePlugin()
        register_container_plugin(plugin)
        self.assertIs(get_container_plugin(), plugin)
        record = translate(make_container_meta("c1", "web", False, "/upper"))
        run_post_convert("/var/lib/docker", record)
        self.assertEqual(record.config.labels["migrated-from"], "/var/lib/docker")


if __name__ == '__main__':
    unittest.main()
