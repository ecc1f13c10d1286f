"""
Host service and package control.

Thin wrappers around systemctl, yum, rpm and ip, plus the socket readiness
wait used for daemons started outside this process.
"""

import logging
import socket
import threading
import time
from typing import List, Optional

from ..errors import CommandError
from ..utils.exec_utils import exec_command, run_command
from ..utils.file_utils import backup_file

logger = logging.getLogger(__name__)

DOCKER_CONFIG_FILES = ["/etc/sysconfig/docker", "/etc/docker/daemon.json"]
POUCH_SERVICE = "pouch"
DOCKER_SERVICE = "docker"
DOCKER_BRIDGE = "docker0"


def check_socket(path: str, timeout: float = 1.0) -> bool:
    """Return True if a unix socket at path accepts a connection."""
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(timeout)
    try:
        sock.connect(path)
        return True
    except OSError:
        return False
    finally:
        sock.close()


def wait_for_socket(path: str, timeout: float, interval: float = 0.1) -> None:
    """
    Block until a unix socket accepts connections.

    A background thread polls the socket; whichever comes first of the
    socket answering or the timeout expiring decides the outcome.

    Raises:
        TimeoutError: If the socket is not ready within timeout seconds
    """
    ready = threading.Event()
    stop = threading.Event()

    def poll():
        while not stop.is_set():
            if check_socket(path):
                ready.set()
                return
            time.sleep(interval)

    poller = threading.Thread(target=poll, name=f"wait-{path}", daemon=True)
    poller.start()

    if not ready.wait(timeout):
        stop.set()
        raise TimeoutError(f"timeout waiting for {path} after {timeout}s")
    logger.info(f"{path} is ready")


def stop_service(name: str, retries: int = 3) -> None:
    """
    Stop a systemd service, retrying a few times.

    Raises:
        CommandError: If the last attempt still fails
    """
    last_error: Optional[CommandError] = None
    for attempt in range(1, retries + 1):
        try:
            exec_command(["systemctl", "stop", name])
            logger.info(f"Stopped {name} service")
            return
        except CommandError as e:
            logger.warning(f"Failed to stop {name} (attempt {attempt}/{retries}): {e}")
            last_error = e
    raise last_error


def start_service(name: str) -> None:
    exec_command(["systemctl", "start", name])
    logger.info(f"Started {name} service")


def uninstall_docker(package: str, retries: int = 3, dry_run: bool = False,
                     config_files: Optional[List[str]] = None) -> None:
    """
    Stop the docker service and remove its package.

    Config files are backed up with a .bk suffix first so the daemon
    settings can be recovered by hand.
    """
    for path in config_files if config_files is not None else DOCKER_CONFIG_FILES:
        backup_file(path)

    stop_service(DOCKER_SERVICE, retries=retries)

    if dry_run:
        logger.info(f"Dry run, keeping package {package}")
        return
    exec_command(["yum", "remove", "-y", package])
    logger.info(f"Removed package {package}")


def install_pouch(package_path: str, socket_path: str, timeout: float,
                  dry_run: bool = False) -> None:
    """
    Install the pouch package, start pouchd and wait for its API socket.

    Raises:
        CommandError: If installing or starting fails
        TimeoutError: If pouchd does not answer in time
    """
    if dry_run:
        logger.info(f"Dry run, not installing {package_path}")
    else:
        exec_command(["rpm", "-Uvh", package_path])
        logger.info(f"Installed {package_path}")

    start_service(POUCH_SERVICE)
    wait_for_socket(socket_path, timeout)


def delete_bridge(name: str = DOCKER_BRIDGE) -> Optional[str]:
    """
    Remove the docker bridge device.

    Returns:
        None on success, otherwise the command output describing the failure
    """
    try:
        returncode, output = run_command(["ip", "link", "del", name])
    except OSError as e:
        return f"ip link del {name}: {e}"
    if returncode != 0:
        return output.strip() or f"ip link del {name} exited with {returncode}"
    return None
