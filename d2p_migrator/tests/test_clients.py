#!/usr/bin/env python3
"""
Tests for the Docker and pouch API clients.
"""

import unittest
from unittest.mock import MagicMock

from docker.errors import APIError, NotFound

from d2p_migrator.runtime.docker_client import DockerClient, is_not_found
from d2p_migrator.runtime.pouch_client import PouchClient


class TestDockerClient(unittest.TestCase):
    """Test cases for DockerClient."""

    def setUp(self):
        """Set up the client over a mocked API."""
        self.api = MagicMock()
        self.client = DockerClient(api=self.api)

    def test_list_all(self):
        """Test stopped containers are listed too."""
        self.api.containers.return_value = [{"Id": "c1"}]
        self.assertEqual(self.client.list_containers(), [{"Id": "c1"}])
        self.api.containers.assert_called_once_with(all=True)

    def test_list_volumes(self):
        """Test the volume list is unwrapped."""
        self.api.volumes.return_value = {"Volumes": None, "Warnings": None}
        self.assertEqual(self.client.list_volumes(), [])
        self.api.volumes.return_value = {"Volumes": [{"Name": "v1"}]}
        self.assertEqual(self.client.list_volumes(), [{"Name": "v1"}])

    def test_stop(self):
        """Test the stop timeout is passed on."""
        self.client.stop("c1", timeout=5)
        self.api.stop.assert_called_once_with("c1", timeout=5)

    def test_is_not_found(self):
        """Test not-found detection."""
        self.assertTrue(is_not_found(NotFound("No such container: c1")))
        self.assertTrue(is_not_found(APIError("No such container: c1")))
        self.assertFalse(is_not_found(APIError("conflict")))
        self.assertFalse(is_not_found(ValueError("No such thing")))


class TestPouchClient(unittest.TestCase):
    """Test cases for PouchClient."""

    def setUp(self):
        """Set up the client over a mocked API."""
        self.api = MagicMock()
        self.client = PouchClient(api=self.api)

    def test_remove(self):
        """Test containers are force removed."""
        self.assertTrue(self.client.remove_container("c1"))
        self.api.remove_container.assert_called_once_with("c1", force=True)

    def test_remove_missing(self):
        """Test removing a missing container is not an error."""
        self.api.remove_container.side_effect = APIError("container: c1: not found")
        self.assertFalse(self.client.remove_container("c1"))

    def test_remove_failure(self):
        """Test other API errors propagate."""
        self.api.remove_container.side_effect = APIError("device busy")
        with self.assertRaises(APIError):
            self.client.remove_container("c1")

    def test_start(self):
        """Test containers are started by ID."""
        self.client.start_container("c1")
        self.api.start.assert_called_once_with("c1")


if __name__ == '__main__':
    unittest.main()
