"""
Record types written to the target runtime's metadata stores.

Every dataclass field carries the JSON key used on disk. Fields flagged
omitempty are dropped when they hold a zero value (None, "", 0, False or an
empty collection); nested records are always written.
"""

import dataclasses
import json
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


def jfield(name: str, default: Any = None, factory: Any = None,
           omitempty: bool = True, inline: bool = False) -> Any:
    """Declare a dataclass field with its JSON key."""
    metadata = {"json": name, "omitempty": omitempty, "inline": inline}
    if factory is not None:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, (bool, int, float, str)):
        return not value
    if isinstance(value, (list, dict, tuple)):
        return len(value) == 0
    return False


def to_json_dict(obj: Any) -> Any:
    """Convert a record (or any nesting of records, lists and dicts) to plain JSON data."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        out: Dict[str, Any] = {}
        for f in dataclasses.fields(obj):
            value = getattr(obj, f.name)
            if f.metadata.get("inline"):
                if value is not None:
                    out.update(to_json_dict(value))
                continue
            if f.metadata.get("omitempty", True) and _is_empty(value):
                continue
            out[f.metadata.get("json", f.name)] = to_json_dict(value)
        return out
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: to_json_dict(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_json_dict(v) for v in obj]
    return obj


def to_json(obj: Any) -> str:
    """Encode a record the way it is stored on disk: compact, key order preserved."""
    return json.dumps(to_json_dict(obj), separators=(",", ":"))


class Status(str, Enum):
    """Container status; UNKNOWN is the zero value for unrecognised states."""
    UNKNOWN = ""
    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    DEAD = "dead"


@dataclass
class ContainerState:
    status: Status = jfield("Status", Status.UNKNOWN)
    running: bool = jfield("Running", False)
    paused: bool = jfield("Paused", False)
    restarting: bool = jfield("Restarting", False)
    oom_killed: bool = jfield("OOMKilled", False)
    dead: bool = jfield("Dead", False)
    pid: int = jfield("Pid", 0)
    exit_code: int = jfield("ExitCode", 0)
    error: str = jfield("Error", "")
    started_at: str = jfield("StartedAt", "")
    finished_at: str = jfield("FinishedAt", "")


@dataclass
class RestartPolicy:
    name: str = jfield("Name", "")
    maximum_retry_count: int = jfield("MaximumRetryCount", 0)


@dataclass
class LogConfig:
    log_driver: str = jfield("Type", "")
    log_opts: Dict[str, str] = jfield("Config", factory=dict)


@dataclass
class ThrottleDevice:
    path: str = jfield("Path", "")
    rate: int = jfield("Rate", 0)


@dataclass
class WeightDevice:
    path: str = jfield("Path", "")
    weight: int = jfield("Weight", 0)


@dataclass
class DeviceMapping:
    path_on_host: str = jfield("PathOnHost", "")
    path_in_container: str = jfield("PathInContainer", "")
    cgroup_permissions: str = jfield("CgroupPermissions", "")


@dataclass
class Ulimit:
    name: str = jfield("Name", "")
    soft: int = jfield("Soft", 0)
    hard: int = jfield("Hard", 0)


@dataclass
class Resources:
    """Resource limits, written inline into the host config."""
    cgroup_parent: str = jfield("CgroupParent", "")
    blkio_weight: int = jfield("BlkioWeight", 0)
    blkio_weight_device: List[WeightDevice] = jfield("BlkioWeightDevice", factory=list)
    blkio_device_read_bps: List[ThrottleDevice] = jfield("BlkioDeviceReadBps", factory=list)
    blkio_device_write_bps: List[ThrottleDevice] = jfield("BlkioDeviceWriteBps", factory=list)
    blkio_device_read_iops: List[ThrottleDevice] = jfield("BlkioDeviceReadIOps", factory=list)
    blkio_device_write_iops: List[ThrottleDevice] = jfield("BlkioDeviceWriteIOps", factory=list)
    cpu_shares: int = jfield("CpuShares", 0)
    cpu_period: int = jfield("CpuPeriod", 0)
    cpu_quota: int = jfield("CpuQuota", 0)
    cpuset_cpus: str = jfield("CpusetCpus", "")
    cpuset_mems: str = jfield("CpusetMems", "")
    cpu_count: int = jfield("CpuCount", 0)
    cpu_percent: int = jfield("CpuPercent", 0)
    nano_cpus: int = jfield("NanoCpus", 0)
    devices: List[DeviceMapping] = jfield("Devices", factory=list)
    kernel_memory: int = jfield("KernelMemory", 0)
    memory: int = jfield("Memory", 0)
    memory_reservation: int = jfield("MemoryReservation", 0)
    memory_swap: int = jfield("MemorySwap", 0)
    memory_swappiness: Optional[int] = jfield("MemorySwappiness")
    oom_kill_disable: Optional[bool] = jfield("OomKillDisable")
    pids_limit: Optional[int] = jfield("PidsLimit")
    ulimits: List[Ulimit] = jfield("Ulimits", factory=list)
    io_maximum_iops: int = jfield("IOMaximumIOps", 0)
    io_maximum_bandwidth: int = jfield("IOMaximumBandwidth", 0)


@dataclass
class PortBinding:
    host_ip: str = jfield("HostIp", "")
    host_port: str = jfield("HostPort", "")


@dataclass
class HostConfig:
    binds: List[str] = jfield("Binds", factory=list)
    container_id_file: str = jfield("ContainerIDFile", "")
    log_config: Optional[LogConfig] = jfield("LogConfig")
    network_mode: str = jfield("NetworkMode", "")
    port_bindings: Dict[str, List[PortBinding]] = jfield("PortBindings", factory=dict)
    restart_policy: Optional[RestartPolicy] = jfield("RestartPolicy")
    auto_remove: bool = jfield("AutoRemove", False)
    volume_driver: str = jfield("VolumeDriver", "")
    volumes_from: List[str] = jfield("VolumesFrom", factory=list)
    cap_add: List[str] = jfield("CapAdd", factory=list)
    cap_drop: List[str] = jfield("CapDrop", factory=list)
    dns: List[str] = jfield("Dns", factory=list)
    dns_options: List[str] = jfield("DnsOptions", factory=list)
    dns_search: List[str] = jfield("DnsSearch", factory=list)
    extra_hosts: List[str] = jfield("ExtraHosts", factory=list)
    group_add: List[str] = jfield("GroupAdd", factory=list)
    ipc_mode: str = jfield("IpcMode", "")
    cgroup: str = jfield("Cgroup", "")
    links: List[str] = jfield("Links", factory=list)
    oom_score_adj: int = jfield("OomScoreAdj", 0)
    pid_mode: str = jfield("PidMode", "")
    privileged: bool = jfield("Privileged", False)
    publish_all_ports: bool = jfield("PublishAllPorts", False)
    readonly_rootfs: bool = jfield("ReadonlyRootfs", False)
    security_opt: List[str] = jfield("SecurityOpt", factory=list)
    storage_opt: Dict[str, str] = jfield("StorageOpt", factory=dict)
    tmpfs: Dict[str, str] = jfield("Tmpfs", factory=dict)
    uts_mode: str = jfield("UTSMode", "")
    userns_mode: str = jfield("UsernsMode", "")
    shm_size: Optional[int] = jfield("ShmSize")
    sysctls: Dict[str, str] = jfield("Sysctls", factory=dict)
    runtime: str = jfield("Runtime", "")
    enable_lxcfs: bool = jfield("EnableLxcfs", False)
    resources: Resources = jfield("Resources", factory=Resources, inline=True)


@dataclass
class ContainerConfig:
    hostname: str = jfield("Hostname", "")
    domainname: str = jfield("Domainname", "")
    user: str = jfield("User", "")
    attach_stdin: bool = jfield("AttachStdin", False)
    attach_stdout: bool = jfield("AttachStdout", False)
    attach_stderr: bool = jfield("AttachStderr", False)
    exposed_ports: Dict[str, Any] = jfield("ExposedPorts", factory=dict)
    tty: bool = jfield("Tty", False)
    open_stdin: bool = jfield("OpenStdin", False)
    stdin_once: bool = jfield("StdinOnce", False)
    env: List[str] = jfield("Env", factory=list, omitempty=False)
    cmd: List[str] = jfield("Cmd", factory=list, omitempty=False)
    args_escaped: bool = jfield("ArgsEscaped", False)
    image: str = jfield("Image", "", omitempty=False)
    volumes: Dict[str, Any] = jfield("Volumes", factory=dict)
    working_dir: str = jfield("WorkingDir", "")
    entrypoint: List[str] = jfield("Entrypoint", factory=list, omitempty=False)
    network_disabled: bool = jfield("NetworkDisabled", False)
    mac_address: str = jfield("MacAddress", "")
    on_build: List[str] = jfield("OnBuild", factory=list)
    labels: Dict[str, str] = jfield("Labels", factory=dict)
    stop_signal: str = jfield("StopSignal", "")
    stop_timeout: Optional[int] = jfield("StopTimeout")
    shell: List[str] = jfield("Shell", factory=list)
    disk_quota: Dict[str, str] = jfield("DiskQuota", factory=dict)
    spec_annotation: Optional[Dict[str, str]] = jfield("SpecAnnotation")
    quota_id: str = jfield("QuotaID", "")


@dataclass
class MountPoint:
    type: str = jfield("Type", "")
    name: str = jfield("Name", "")
    source: str = jfield("Source", "")
    destination: str = jfield("Destination", "")
    driver: str = jfield("Driver", "")
    mode: str = jfield("Mode", "")
    rw: bool = jfield("RW", False)
    propagation: str = jfield("Propagation", "")
    named: bool = jfield("Named", False)


@dataclass
class IPAMConfig:
    ipv4_address: str = jfield("IPv4Address", "")
    ipv6_address: str = jfield("IPv6Address", "")
    link_local_ips: List[str] = jfield("LinkLocalIPs", factory=list)


@dataclass
class EndpointSettings:
    ipam_config: Optional[IPAMConfig] = jfield("IPAMConfig")
    links: List[str] = jfield("Links", factory=list)
    aliases: List[str] = jfield("Aliases", factory=list)
    network_id: str = jfield("NetworkID", "")
    endpoint_id: str = jfield("EndpointID", "")
    gateway: str = jfield("Gateway", "")
    ip_address: str = jfield("IPAddress", "")
    ip_prefix_len: int = jfield("IPPrefixLen", 0)
    ipv6_gateway: str = jfield("IPv6Gateway", "")
    global_ipv6_address: str = jfield("GlobalIPv6Address", "")
    global_ipv6_prefix_len: int = jfield("GlobalIPv6PrefixLen", 0)
    mac_address: str = jfield("MacAddress", "")
    driver_opts: Dict[str, str] = jfield("DriverOpts", factory=dict)


@dataclass
class NetworkSettings:
    bridge: str = jfield("Bridge", "")
    hairpin_mode: bool = jfield("HairpinMode", False)
    link_local_ipv6_address: str = jfield("LinkLocalIPv6Address", "")
    link_local_ipv6_prefix_len: int = jfield("LinkLocalIPv6PrefixLen", 0)
    networks: Dict[str, EndpointSettings] = jfield("Networks", factory=dict)
    ports: Dict[str, List[PortBinding]] = jfield("Ports", factory=dict)
    sandbox_id: str = jfield("SandboxID", "")
    sandbox_key: str = jfield("SandboxKey", "")


@dataclass
class DriverData:
    """Storage driver name plus its directory data (graph driver or snapshotter)."""
    name: str = jfield("Name", "", omitempty=False)
    data: Dict[str, str] = jfield("Data", factory=dict, omitempty=False)


@dataclass
class ContainerRecord:
    """A container as the target runtime stores it in meta.json."""
    id: str = jfield("Id", "")
    name: str = jfield("Name", "")
    created: str = jfield("Created", "")
    path: str = jfield("Path", "")
    args: List[str] = jfield("Args", factory=list, omitempty=False)
    config: Optional[ContainerConfig] = jfield("Config")
    host_config: Optional[HostConfig] = jfield("HostConfig")
    state: Optional[ContainerState] = jfield("State")
    image: str = jfield("Image", "")
    driver: str = jfield("Driver", "")
    graph_driver: Optional[DriverData] = jfield("GraphDriver")
    snapshotter: Optional[DriverData] = jfield("Snapshotter")
    mounts: List[MountPoint] = jfield("Mounts", factory=list, omitempty=False)
    network_settings: Optional[NetworkSettings] = jfield("NetworkSettings")
    hostname_path: str = jfield("HostnamePath", "")
    hosts_path: str = jfield("HostsPath", "")
    resolv_conf_path: str = jfield("ResolvConfPath", "")
    log_path: str = jfield("LogPath", "")
    restart_count: int = jfield("RestartCount", 0)
    mount_label: str = jfield("MountLabel", "")
    process_label: str = jfield("ProcessLabel", "")
    app_armor_profile: str = jfield("AppArmorProfile", "")
    exec_ids: List[str] = jfield("ExecIDs", factory=list)
    size_rw: int = jfield("SizeRw", 0)
    size_root_fs: int = jfield("SizeRootFs", 0)
    base_fs: str = jfield("BaseFS", "")
    rootfs_provided: bool = jfield("RootFSProvided", False, omitempty=False)
    detach_keys: str = jfield("DetachKeys", "", omitempty=False)

    def to_json(self) -> str:
        return to_json(self)


class NamespaceMode(IntEnum):
    POD = 0
    CONTAINER = 1
    NODE = 2


@dataclass
class PodSandboxMetadata:
    name: str = jfield("name", "")
    uid: str = jfield("uid", "")
    namespace: str = jfield("namespace", "")
    attempt: int = jfield("attempt", 0)


@dataclass
class DNSConfig:
    servers: List[str] = jfield("servers", factory=list)
    searches: List[str] = jfield("searches", factory=list)
    options: List[str] = jfield("options", factory=list)


@dataclass
class PortMapping:
    protocol: int = jfield("protocol", 0)
    container_port: int = jfield("container_port", 0)
    host_port: int = jfield("host_port", 0)
    host_ip: str = jfield("host_ip", "")


@dataclass
class NamespaceOption:
    network: NamespaceMode = jfield("network", NamespaceMode.POD)
    pid: NamespaceMode = jfield("pid", NamespaceMode.POD)
    ipc: NamespaceMode = jfield("ipc", NamespaceMode.POD)


@dataclass
class LinuxSandboxSecurityContext:
    namespace_options: Optional[NamespaceOption] = jfield("namespace_options")
    privileged: bool = jfield("privileged", False)


@dataclass
class LinuxPodSandboxConfig:
    cgroup_parent: str = jfield("cgroup_parent", "")
    security_context: Optional[LinuxSandboxSecurityContext] = jfield("security_context")
    sysctls: Dict[str, str] = jfield("sysctls", factory=dict)


@dataclass
class PodSandboxConfig:
    metadata: Optional[PodSandboxMetadata] = jfield("metadata")
    hostname: str = jfield("hostname", "")
    log_directory: str = jfield("log_directory", "")
    dns_config: Optional[DNSConfig] = jfield("dns_config")
    port_mappings: List[PortMapping] = jfield("port_mappings", factory=list)
    labels: Dict[str, str] = jfield("labels", factory=dict)
    annotations: Dict[str, str] = jfield("annotations", factory=dict)
    linux: Optional[LinuxPodSandboxConfig] = jfield("linux")


@dataclass
class SandboxMeta:
    """CRI pod sandbox metadata kept in the sandbox store."""
    id: str = jfield("ID", "", omitempty=False)
    config: Optional[PodSandboxConfig] = jfield("Config", omitempty=False)
    runtime: str = jfield("Runtime", "", omitempty=False)
    lxcfs_enabled: bool = jfield("LxcfsEnabled", False, omitempty=False)
    net_ns: str = jfield("NetNS", "", omitempty=False)

    def to_json(self) -> str:
        return to_json(self)


@dataclass
class ObjectMeta:
    name: str = jfield("Name", "")
    claimer: str = jfield("Claimer", "")
    namespace: str = jfield("Namespace", "")
    uid: str = jfield("UID", "")
    generation: str = jfield("Generation", "")
    labels: Dict[str, str] = jfield("Labels", factory=dict)
    annotations: Dict[str, str] = jfield("Annotations", factory=dict)
    creation_timestamp: str = jfield("CreationTimestamp", "")
    modify_timestamp: str = jfield("ModifyTimestamp", "")


@dataclass
class VolumeSpec:
    backend: str = jfield("backend", "")
    extra: Dict[str, str] = jfield("extra", factory=dict)
    selector: List[Dict[str, Any]] = jfield("selector", factory=list, omitempty=False)
    size: str = jfield("size", "", omitempty=False)


@dataclass
class VolumeStatus:
    mount_point: str = jfield("mountpoint", "")


@dataclass
class VolumeRecord:
    """A named volume as the target volume store keeps it."""
    meta: ObjectMeta = jfield("ObjectMeta", factory=ObjectMeta, inline=True)
    spec: Optional[VolumeSpec] = jfield("Spec")
    status: Optional[VolumeStatus] = jfield("Status")

    @property
    def name(self) -> str:
        return self.meta.name

    @property
    def driver(self) -> str:
        return self.spec.backend if self.spec else ""

    def to_json(self) -> str:
        return to_json(self)
