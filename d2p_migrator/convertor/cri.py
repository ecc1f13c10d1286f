"""
CRI pod sandbox translation.

Builds the SandboxMeta PouchContainer's CRI manager keeps for each pause
container, so pods created by the kubelet under Docker stay manageable
after the runtime swap.
"""

import logging
from typing import Dict, List, Optional

from ..errors import SandboxNameError
from .core import (
    DOCKER_TYPE_LABEL,
    POUCH_TYPE_LABEL,
    SANDBOX_NAME_RE,
)
from .types import (
    ContainerRecord,
    DNSConfig,
    LinuxPodSandboxConfig,
    LinuxSandboxSecurityContext,
    NamespaceMode,
    NamespaceOption,
    PodSandboxConfig,
    PodSandboxMetadata,
    PortMapping,
    SandboxMeta,
)

logger = logging.getLogger(__name__)

ANNOTATION_PREFIX = "annotation."
POD_LOG_ROOT = "/var/log/pods"
HOST_NETWORK = "host"

_PROTOCOLS = {"tcp": 0, "udp": 1, "sctp": 2}
_MAX_ATTEMPT = 2 ** 32 - 1


def parse_sandbox_name(name: str) -> PodSandboxMetadata:
    """
    Parse a sandbox container name of the form
    k8s_POD_<name>_<namespace>_<uid>_<attempt>.

    Raises:
        SandboxNameError: If the name does not follow that form
    """
    if not SANDBOX_NAME_RE.match(name):
        raise SandboxNameError(name)

    parts = name.split("_")
    if len(parts) != 6:
        raise SandboxNameError(name)

    try:
        attempt = int(parts[5])
    except ValueError:
        raise SandboxNameError(name, "invalid attempt in sandbox name") from None
    if attempt > _MAX_ATTEMPT:
        raise SandboxNameError(name, "attempt out of range in sandbox name")

    return PodSandboxMetadata(name=parts[2], namespace=parts[3], uid=parts[4], attempt=attempt)


def parse_dns_options(lines: List[str]) -> DNSConfig:
    """Collect nameserver, search and options entries from resolv.conf lines."""
    servers: List[str] = []
    searches: List[str] = []
    options: List[str] = []

    for line in lines:
        fields = line.split()
        if not fields:
            continue
        if fields[0] == "nameserver":
            servers.extend(fields[1:])
        elif fields[0] == "search":
            searches.extend(fields[1:])
        elif fields[0] == "options":
            options.extend(fields[1:])

    return DNSConfig(servers=servers, searches=searches, options=options)


def to_dns_config(resolv_conf_path: str) -> Optional[DNSConfig]:
    """
    Read a container's resolv.conf into a DNSConfig.

    Returns:
        None when the container has no resolv.conf path
    """
    if not resolv_conf_path:
        return None
    with open(resolv_conf_path, 'r') as f:
        return parse_dns_options(f.read().splitlines())


def _to_port_mappings(record: ContainerRecord) -> List[PortMapping]:
    mappings = []
    for port, bindings in record.host_config.port_bindings.items():
        number, _, proto = port.partition("/")
        try:
            container_port = int(number)
        except ValueError:
            logger.warning(f"Skipping malformed port {port!r} of {record.id}")
            continue
        for binding in bindings:
            host_port = int(binding.host_port) if binding.host_port.isdigit() else 0
            mappings.append(PortMapping(
                protocol=_PROTOCOLS.get(proto or "tcp", 0),
                container_port=container_port,
                host_port=host_port,
                host_ip=binding.host_ip,
            ))
    return mappings


def to_pod_sandbox_config(record: ContainerRecord) -> PodSandboxConfig:
    metadata = parse_sandbox_name(record.name)

    annotations: Dict[str, str] = dict(record.config.spec_annotation or {})
    labels: Dict[str, str] = {}
    for key, value in record.config.labels.items():
        if key.startswith(ANNOTATION_PREFIX):
            annotations[key[len(ANNOTATION_PREFIX):]] = value
        elif key not in (POUCH_TYPE_LABEL, DOCKER_TYPE_LABEL):
            labels[key] = value

    host_network = record.network_settings is not None and \
        HOST_NETWORK in record.network_settings.networks
    node_or_pod = NamespaceMode.NODE if host_network else NamespaceMode.POD
    namespace_options = NamespaceOption(
        network=node_or_pod,
        pid=NamespaceMode.NODE if host_network else NamespaceMode.CONTAINER,
        ipc=node_or_pod,
    )

    return PodSandboxConfig(
        metadata=metadata,
        hostname=record.config.hostname,
        log_directory=f"{POD_LOG_ROOT}/{metadata.uid}",
        dns_config=to_dns_config(record.resolv_conf_path),
        port_mappings=_to_port_mappings(record),
        labels=labels,
        annotations=annotations,
        linux=LinuxPodSandboxConfig(
            cgroup_parent=record.host_config.resources.cgroup_parent,
            security_context=LinuxSandboxSecurityContext(
                namespace_options=namespace_options,
                privileged=record.host_config.privileged,
            ),
            sysctls=dict(record.host_config.sysctls),
        ),
    )


def to_sandbox_meta(record: ContainerRecord) -> SandboxMeta:
    """
    Build the CRI sandbox metadata for a sandbox container.

    Raises:
        SandboxNameError: If the container name is not a sandbox name
        OSError: If the container's resolv.conf cannot be read
    """
    pid = record.state.pid if record.state else 0
    return SandboxMeta(
        id=record.id,
        config=to_pod_sandbox_config(record),
        runtime=record.host_config.runtime,
        lxcfs_enabled=record.host_config.enable_lxcfs,
        net_ns=f"/proc/{pid}/ns/net" if pid > 0 else "",
    )
