#!/usr/bin/env python3
"""
Tests for project quota application.
"""

import os
import shutil
import tempfile
import unittest
from collections import namedtuple
from unittest.mock import MagicMock, Mock, call, patch

from d2p_migrator.errors import QuotaError
from d2p_migrator.storage.quota import (
    QuotaDriver,
    QuotaSpec,
    parse_quota_size,
    set_dir_disk_quota,
)

Partition = namedtuple("Partition", "device mountpoint fstype opts")


class TestSetDirDiskQuota(unittest.TestCase):
    """Test cases for set_dir_disk_quota()."""

    def setUp(self):
        """Set up a directory tree and a mocked driver."""
        self.temp_dir = tempfile.mkdtemp()
        os.makedirs(os.path.join(self.temp_dir, "etc"))
        with open(os.path.join(self.temp_dir, "etc", "hosts"), 'w') as f:
            f.write("127.0.0.1 localhost\n")
        self.driver = MagicMock(spec=QuotaDriver)
        self.driver.start_quota_driver.return_value = "/"

    def tearDown(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_no_quota_id(self):
        """Test nothing happens without a quota ID."""
        self.assertIsNone(set_dir_disk_quota(self.driver, QuotaSpec("", "10g", self.temp_dir)))
        self.driver.start_quota_driver.assert_not_called()

    def test_non_positive_quota_id(self):
        """Test a zero or negative quota ID is ignored."""
        self.assertIsNone(set_dir_disk_quota(self.driver, QuotaSpec("0", "10g", self.temp_dir)))
        self.assertIsNone(set_dir_disk_quota(self.driver, QuotaSpec("-1", "", self.temp_dir)))
        self.driver.start_quota_driver.assert_not_called()

    def test_quota_id_without_size(self):
        """Test a quota ID without size fails closed."""
        with self.assertRaises(QuotaError):
            set_dir_disk_quota(self.driver, QuotaSpec("100", "", self.temp_dir))
        self.driver.start_quota_driver.assert_not_called()

    def test_invalid_quota_id(self):
        """Test a non-numeric or too large quota ID is an error."""
        with self.assertRaises(QuotaError):
            set_dir_disk_quota(self.driver, QuotaSpec("abc", "10g", self.temp_dir))
        with self.assertRaises(QuotaError):
            set_dir_disk_quota(self.driver, QuotaSpec(str(2 ** 32), "10g", self.temp_dir))

    def test_apply(self):
        """Test the subtree, limit and every file are tagged."""
        result = set_dir_disk_quota(self.driver, QuotaSpec("100", "10g", self.temp_dir))
        self.assertEqual(result, 100)
        self.driver.start_quota_driver.assert_called_once_with(self.temp_dir)
        self.driver.set_subtree.assert_called_once_with(self.temp_dir, "/", 100)
        self.driver.set_disk_quota.assert_called_once_with("/", "10g", 100)

        tagged = {c.args[0] for c in self.driver.set_file_attr.call_args_list}
        self.assertEqual(tagged, {
            self.temp_dir,
            os.path.join(self.temp_dir, "etc"),
            os.path.join(self.temp_dir, "etc", "hosts"),
        })

    def test_driver_failure_wrapped(self):
        """Test driver errors surface as QuotaError."""
        self.driver.set_subtree.side_effect = OSError("operation not supported")
        with self.assertRaises(QuotaError):
            set_dir_disk_quota(self.driver, QuotaSpec("100", "10g", self.temp_dir))

    def test_parse_quota_size(self):
        """Test bare sizes and per-path label values."""
        self.assertEqual(parse_quota_size("10g"), "10g")
        self.assertEqual(parse_quota_size("/=10g;/data=20g"), "10g")
        self.assertEqual(parse_quota_size(".*=5g"), "5g")
        self.assertEqual(parse_quota_size("/data=20g"), "20g")
        self.assertEqual(parse_quota_size(""), "")


class TestQuotaDriver(unittest.TestCase):
    """Test cases for QuotaDriver."""

    def setUp(self):
        """Set up the driver."""
        self.driver = QuotaDriver()

    @patch('d2p_migrator.storage.quota.run_command', return_value=(0, ""))
    @patch('psutil.disk_partitions')
    def test_start_ext4(self, mock_parts, mock_run):
        """Test quotas are switched on for the deepest ext4 mount."""
        mock_parts.return_value = [
            Partition("/dev/sda1", "/", "ext4", "rw"),
            Partition("/dev/sdb1", "/home", "ext4", "rw,prjquota"),
        ]
        self.assertEqual(self.driver.start_quota_driver("/home/pouch/snap/fs"), "/home")
        mock_run.assert_called_once_with(["quotaon", "-P", "/home"])

        # Started once per filesystem.
        self.driver.start_quota_driver("/home/other")
        self.assertEqual(mock_run.call_count, 1)

    @patch('psutil.disk_partitions')
    def test_start_without_prjquota(self, mock_parts):
        """Test a filesystem without project quota is refused."""
        mock_parts.return_value = [Partition("/dev/sda1", "/", "ext4", "rw")]
        with self.assertRaises(QuotaError):
            self.driver.start_quota_driver("/var/lib")

    @patch('psutil.disk_partitions')
    def test_start_unsupported_fs(self, mock_parts):
        """Test filesystems other than ext4 and xfs are refused."""
        mock_parts.return_value = [Partition("tmpfs", "/", "tmpfs", "rw,prjquota")]
        with self.assertRaises(QuotaError):
            self.driver.start_quota_driver("/var/lib")

    @patch('d2p_migrator.storage.quota.exec_command')
    def test_ext4_commands(self, mock_exec):
        """Test chattr and setquota invocations on ext4."""
        self.driver._started["/home"] = "ext4"
        self.driver.set_subtree("/home/d", "/home", 7)
        self.driver.set_disk_quota("/home", "10m", 7)
        mock_exec.assert_has_calls([
            call(["chattr", "-p", "7", "+P", "/home/d"]),
            call(["setquota", "-P", "7", "0", str(10 * 1024), "0", "0", "/home"]),
        ])

    @patch('d2p_migrator.storage.quota.exec_command')
    def test_xfs_commands(self, mock_exec):
        """Test xfs_quota invocations on xfs."""
        self.driver._started["/data"] = "xfs"
        self.driver.set_subtree("/data/d", "/data", 7)
        self.driver.set_disk_quota("/data", "1g", 7)
        self.driver.set_file_attr("/data/d/f", "/data", 7)
        mock_exec.assert_has_calls([
            call(["xfs_quota", "-x", "-c", "project -s -p /data/d 7", "/data"]),
            call(["xfs_quota", "-x", "-c", f"limit -p bhard={1024 ** 3} 7", "/data"]),
        ])
        self.assertEqual(mock_exec.call_count, 2)


if __name__ == '__main__':
    unittest.main()
