#!/usr/bin/env python3
"""
Tests for CRI sandbox translation.
"""

import json
import os
import shutil
import tempfile
import unittest

from d2p_migrator.convertor.core import translate
from d2p_migrator.convertor.cri import (
    parse_dns_options,
    parse_sandbox_name,
    to_dns_config,
    to_sandbox_meta,
)
from d2p_migrator.convertor.types import NamespaceMode
from d2p_migrator.errors import SandboxNameError
from d2p_migrator.tests.fakes import make_container_meta

UID = "6f3b1c2d-aaaa-bbbb-cccc-0123456789ab"


class TestParseSandboxName(unittest.TestCase):
    """Test cases for parse_sandbox_name()."""

    def test_valid_name(self):
        """Test a well-formed sandbox name parses into its parts."""
        meta = parse_sandbox_name(f"k8s_POD_nginx_default_{UID}_0")
        self.assertEqual(meta.name, "nginx")
        self.assertEqual(meta.namespace, "default")
        self.assertEqual(meta.uid, UID)
        self.assertEqual(meta.attempt, 0)

    def test_too_few_fields(self):
        """Test a name with fewer than six fields is rejected."""
        with self.assertRaises(SandboxNameError):
            parse_sandbox_name("k8s_POD_nginx_default_0")

    def test_non_numeric_attempt(self):
        """Test a non-numeric attempt is rejected."""
        with self.assertRaises(SandboxNameError):
            parse_sandbox_name(f"k8s_POD_nginx_default_{UID}_x")

    def test_wrong_prefix(self):
        """Test a name without the k8s_POD_ prefix is rejected."""
        with self.assertRaises(SandboxNameError):
            parse_sandbox_name(f"k8s_nginx_nginx_default_{UID}_0")

    def test_attempt_overflow(self):
        """Test an attempt beyond 32 bits is rejected."""
        with self.assertRaises(SandboxNameError):
            parse_sandbox_name(f"k8s_POD_nginx_default_{UID}_4294967296")


class TestSandboxMeta(unittest.TestCase):
    """Test cases for to_sandbox_meta()."""

    def setUp(self):
        """Set up a sandbox container with a resolv.conf."""
        self.temp_dir = tempfile.mkdtemp()
        self.resolv = os.path.join(self.temp_dir, "resolv.conf")
        with open(self.resolv, 'w') as f:
            f.write("search default.svc.cluster.local  svc.cluster.local\n"
                    "nameserver 10.96.0.10\n"
                    "options ndots:5\n")

        meta = make_container_meta("sb1", f"k8s_POD_nginx_default_{UID}_1", True, "/u")
        meta["ResolvConfPath"] = self.resolv
        meta["Config"]["Labels"] = {
            "io.kubernetes.docker.type": "podsandbox",
            "io.kubernetes.pod.name": "nginx",
            "annotation.kubernetes.io/config.seen": "2018-11-27",
        }
        meta["HostConfig"]["CgroupParent"] = "/kubepods/besteffort"
        self.record = translate(meta)

    def tearDown(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_sandbox_meta(self):
        """Test the sandbox metadata fields."""
        sandbox = to_sandbox_meta(self.record)
        self.assertEqual(sandbox.id, "sb1")
        self.assertEqual(sandbox.runtime, "runc")
        self.assertEqual(sandbox.net_ns, "/proc/4242/ns/net")

        config = sandbox.config
        self.assertEqual(config.metadata.attempt, 1)
        self.assertEqual(config.log_directory, f"/var/log/pods/{UID}")
        self.assertEqual(config.dns_config.servers, ["10.96.0.10"])
        self.assertEqual(config.dns_config.searches, ["default.svc.cluster.local", "svc.cluster.local"])
        self.assertEqual(config.dns_config.options, ["ndots:5"])
        self.assertEqual(config.labels, {"io.kubernetes.pod.name": "nginx"})
        self.assertEqual(config.annotations, {"kubernetes.io/config.seen": "2018-11-27"})
        self.assertEqual(config.linux.cgroup_parent, "/kubepods/besteffort")
        ns = config.linux.security_context.namespace_options
        self.assertEqual(ns.pid, NamespaceMode.CONTAINER)
        self.assertEqual(ns.network, NamespaceMode.POD)

    def test_host_network(self):
        """Test a host network sandbox shares the node namespaces."""
        self.record.network_settings.networks = {"host": self.record.network_settings.networks["bridge"]}
        ns = to_sandbox_meta(self.record).config.linux.security_context.namespace_options
        self.assertEqual(ns.network, NamespaceMode.NODE)
        self.assertEqual(ns.pid, NamespaceMode.NODE)
        self.assertEqual(ns.ipc, NamespaceMode.NODE)

    def test_stopped_sandbox_has_no_netns(self):
        """Test no netns path is set without a pid."""
        self.record.state.pid = 0
        self.assertEqual(to_sandbox_meta(self.record).net_ns, "")

    def test_json_keys(self):
        """Test the stored JSON uses the CRI field names."""
        doc = json.loads(to_sandbox_meta(self.record).to_json())
        self.assertEqual(doc["ID"], "sb1")
        self.assertEqual(doc["Config"]["metadata"]["name"], "nginx")
        self.assertEqual(doc["Config"]["dns_config"]["servers"], ["10.96.0.10"])
        self.assertEqual(doc["Config"]["linux"]["security_context"]["namespace_options"]["pid"], 1)

    def test_bad_name(self):
        """Test a non-sandbox name fails sandbox generation."""
        self.record.name = "web"
        with self.assertRaises(SandboxNameError):
            to_sandbox_meta(self.record)


class TestDNSConfig(unittest.TestCase):
    """Test cases for resolv.conf parsing."""

    def test_no_path(self):
        """Test an empty path yields no DNS config."""
        self.assertIsNone(to_dns_config(""))

    def test_parse_lines(self):
        """Test unknown lines and extra spaces are ignored."""
        dns = parse_dns_options(["# comment", "nameserver  1.1.1.1 ", "domain x", "", "nameserver 8.8.8.8"])
        self.assertEqual(dns.servers, ["1.1.1.1", "8.8.8.8"])
        self.assertEqual(dns.searches, [])


if __name__ == '__main__':
    unittest.main()
