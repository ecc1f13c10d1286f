#!/usr/bin/env python3
"""
Tests for volume translation, reference counting and registration.
"""

import json
import os
import shutil
import sqlite3
import tempfile
import unittest

from d2p_migrator.convertor.core import translate
from d2p_migrator.convertor.volumes import (
    add_volume_refs,
    check_volume_drivers,
    to_volumes,
    volume_size_from_status,
)
from d2p_migrator.errors import PreconditionError
from d2p_migrator.storage.volume_manager import VOLUME_BUCKET, VolumeManager
from d2p_migrator.tests.fakes import FakeDocker, make_container_meta

VOLUMES = [
    {"Name": "data", "Driver": "local", "Mountpoint": "/var/lib/docker/volumes/data/_data",
     "Labels": {"app": "web"}},
    {"Name": "logs", "Driver": "alilocal", "Mountpoint": "/mnt/alilocal/logs", "Labels": None},
    {"Name": "disk", "Driver": "ultron", "Mountpoint": ""},
]


def _mount(name, driver):
    return {"Type": "volume", "Name": name, "Source": f"/v/{name}",
            "Destination": f"/{name}", "Driver": driver, "RW": True}


class TestVolumeConversion(unittest.TestCase):
    """Test cases for volume translation."""

    def test_to_volumes_skips_remote(self):
        """Test remote disk volumes are left out."""
        records = to_volumes(VOLUMES)
        self.assertEqual([r.name for r in records], ["data", "logs"])
        data = records[0]
        self.assertEqual(data.driver, "local")
        self.assertEqual(data.spec.extra["mount"], "/var/lib/docker/volumes/data/_data")
        self.assertEqual(data.status.mount_point, "/var/lib/docker/volumes/data/_data")
        self.assertEqual(data.meta.claimer, "pouch")
        self.assertEqual(data.meta.generation, "PreCreate")
        self.assertEqual(data.meta.labels, {"app": "web"})

    def test_unsupported_driver(self):
        """Test an unknown volume driver stops the migration."""
        with self.assertRaises(PreconditionError):
            to_volumes([{"Name": "x", "Driver": "convoy"}])
        with self.assertRaises(PreconditionError):
            check_volume_drivers([{"Name": "x", "Driver": "convoy"}], allow_remote=True)

    def test_remote_disk_precondition(self):
        """Test remote disks are refused unless allowed."""
        with self.assertRaises(PreconditionError):
            check_volume_drivers(VOLUMES, allow_remote=False)
        check_volume_drivers(VOLUMES, allow_remote=True)

    def test_refs(self):
        """Test every container mounting a volume is listed once."""
        refs = {}
        c1 = translate(make_container_meta("c1", "a", True, "/u1", mounts=[_mount("data", "local")]))
        c2 = translate(make_container_meta("c2", "b", True, "/u2",
                                           mounts=[_mount("data", "local"), _mount("logs", "alilocal")]))
        bind = translate(make_container_meta("c3", "c", True, "/u3", mounts=[
            {"Type": "bind", "Source": "/etc", "Destination": "/etc", "RW": False}]))
        for record in (c1, c2, c2, bind):
            add_volume_refs(refs, record)
        self.assertEqual(refs, {"data": "c1,c2", "logs": "c2"})

    def test_size_from_status(self):
        """Test the size keys are looked up in order."""
        self.assertEqual(volume_size_from_status({"opt.size": "10g"}), "10g")
        self.assertEqual(volume_size_from_status({"size": "5g", "Size": "1g"}), "5g")
        self.assertEqual(volume_size_from_status({}), "")


class TestVolumeManager(unittest.TestCase):
    """Test cases for VolumeManager."""

    def setUp(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.volume_manager = VolumeManager(self.temp_dir)
        self.docker = FakeDocker([], volumes=VOLUMES)
        self.docker.volume_status["logs"] = {"opt.size": "20g"}

    def tearDown(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_init(self):
        """Test the volume db location."""
        self.assertEqual(str(self.volume_manager.db_path),
                         os.path.join(self.temp_dir, "volume", "volume.db"))

    def test_prepare_volumes(self):
        """Test volumes are stored with refs and looked-up sizes."""
        count = self.volume_manager.prepare_volumes(
            to_volumes(VOLUMES), {"data": "c1,c2"}, self.docker)
        self.assertEqual(count, 2)

        conn = sqlite3.connect(str(self.volume_manager.db_path))
        try:
            rows = dict(conn.execute("SELECT key, value FROM kv WHERE bucket = ?", (VOLUME_BUCKET,)))
        finally:
            conn.close()
        self.assertEqual(sorted(rows), ["data", "logs"])
        data = json.loads(rows["data"])
        logs = json.loads(rows["logs"])

        self.assertEqual(data["Name"], "data")
        self.assertEqual(data["Spec"]["extra"]["ref"], "c1,c2")
        self.assertEqual(data["Spec"]["backend"], "local")
        self.assertEqual(logs["Spec"]["size"], "20g")
        self.assertNotIn("ref", logs["Spec"]["extra"])

    def test_lookup_size_failure(self):
        """Test a failing inspect is reported, not raised."""
        def broken(name):
            raise OSError("connection refused")
        self.docker.inspect_volume = broken
        size, error = self.volume_manager.lookup_size(self.docker, "logs")
        self.assertEqual(size, "")
        self.assertIn("connection refused", error)


if __name__ == '__main__':
    unittest.main()
