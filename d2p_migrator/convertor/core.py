"""
Container metadata translator.

Maps the JSON a Docker daemon returns for `GET /containers/{id}/json` onto
the ContainerRecord PouchContainer keeps in meta.json. The translation is
pure: the same input always produces the same record.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ..errors import TranslationError
from .types import (
    ContainerConfig,
    ContainerRecord,
    ContainerState,
    DeviceMapping,
    DriverData,
    EndpointSettings,
    HostConfig,
    IPAMConfig,
    LogConfig,
    MountPoint,
    NetworkSettings,
    PortBinding,
    Resources,
    RestartPolicy,
    Status,
    ThrottleDevice,
    Ulimit,
    WeightDevice,
)

logger = logging.getLogger(__name__)

# Capabilities every migrated container is granted.
DEFAULT_CAP_ADD = [
    "SYS_RESOURCE", "SYS_MODULE", "SYS_PTRACE", "SYS_PACCT", "NET_ADMIN", "SYS_ADMIN",
]
# Volume drivers whose mounts are named volumes rather than binds.
NAMED_VOLUME_DRIVERS = ["alilocal", "ultron"]

DEFAULT_RUNTIME = "runc"
DEFAULT_LOG_DRIVER = "json-file"
SNAPSHOTTER_NAME = "overlayfs"
TARGET_DRIVER = "overlay2"

QUOTA_ID_LABEL = "QuotaId"
DISK_QUOTA_LABEL = "DiskQuota"

RUN_MODE_ENV = "ali_run_mode"
RUN_MODE_VM = "vm"
LD_PRELOAD_ENV = "LD_PRELOAD"

# CRI labels and annotations.
POUCH_TYPE_LABEL = "io.kubernetes.pouch.type"
DOCKER_TYPE_LABEL = "io.kubernetes.docker.type"
SANDBOX_ID_LABEL = "io.kubernetes.sandbox.id"
CONTAINER_TYPE_SANDBOX = "sandbox"
CONTAINER_TYPE_CONTAINER = "container"
ANNOTATION_CONTAINER_TYPE = "io.kubernetes.cri.container-type"
ANNOTATION_SANDBOX_ID = "io.kubernetes.cri.sandbox-id"
ANNOTATION_SANDBOX_NAME = "io.kubernetes.cri.sandbox-name"

SANDBOX_NAME_RE = re.compile(r'^k8s_POD_([^_]+_){3}[0-9]+$')

_STATUS_MAP = {
    "running": Status.RUNNING,
    "exited": Status.STOPPED,
    "created": Status.CREATED,
    "paused": Status.PAUSED,
    "dead": Status.DEAD,
}

_TIME_RE = re.compile(
    r'^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$'
)


def convert_time(value: str) -> str:
    """
    Normalize an RFC3339 timestamp with up to nanosecond precision to UTC.

    Trailing zeros of the fraction are dropped. Values that do not parse
    are returned unchanged.
    """
    match = _TIME_RE.match(value or "")
    if not match:
        return value
    base, fraction, zone = match.groups()
    try:
        parsed = datetime.strptime(base, "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        return value

    if zone != "Z":
        sign = 1 if zone[0] == "+" else -1
        offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        try:
            parsed = parsed - sign * offset
        except OverflowError:
            return value
    parsed = parsed.replace(tzinfo=timezone.utc)

    fraction = (fraction or "")[:9].rstrip("0")
    out = parsed.strftime("%Y-%m-%dT%H:%M:%S")
    if parsed.year < 1000:
        out = f"{parsed.year:04d}" + out[out.index("-"):]
    if fraction:
        out += "." + fraction
    return out + "Z"


def convert_status(status: Optional[str]) -> Status:
    """Map a Docker state string onto the closed status set."""
    return _STATUS_MAP.get(status or "", Status.UNKNOWN)


def parse_env(env: List[str]) -> Dict[str, str]:
    """Split KEY=VALUE entries; entries without exactly one '=' are skipped."""
    parsed = {}
    for entry in env:
        parts = entry.split("=")
        if len(parts) != 2:
            continue
        parsed[parts[0]] = parts[1]
    return parsed


def is_sandbox_name(name: str) -> bool:
    return bool(SANDBOX_NAME_RE.match(name))


def translate(meta: Optional[Dict[str, Any]]) -> ContainerRecord:
    """
    Translate one Docker container into a ContainerRecord.

    Args:
        meta: Container inspect JSON from the Docker API

    Returns:
        The translated record

    Raises:
        TranslationError: If the container or its config is absent or malformed
    """
    if not isinstance(meta, dict):
        raise TranslationError("<unknown>", "got an empty container")

    container_id = meta.get("Id") or ""
    if not container_id:
        raise TranslationError("<unknown>", "container has no ID")

    config = _to_container_config(container_id, meta.get("Config"))
    host_config = _to_host_config(container_id, meta.get("HostConfig"))
    graph_data = dict((meta.get("GraphDriver") or {}).get("Data") or {})

    record = ContainerRecord(
        id=container_id,
        name=_strip_name(meta.get("Name") or ""),
        created=convert_time(meta.get("Created") or ""),
        path=meta.get("Path") or "",
        args=list(meta.get("Args") or []),
        config=config,
        host_config=host_config,
        state=_to_state(meta.get("State") or {}),
        image=meta.get("Image") or "",
        driver=TARGET_DRIVER,
        graph_driver=DriverData(name=(meta.get("GraphDriver") or {}).get("Name") or "",
                                data=dict(graph_data)),
        snapshotter=DriverData(name=SNAPSHOTTER_NAME, data=graph_data),
        mounts=[_to_mount(m) for m in meta.get("Mounts") or []],
        network_settings=_to_network_settings(meta.get("NetworkSettings")),
        hostname_path=meta.get("HostnamePath") or "",
        hosts_path=meta.get("HostsPath") or "",
        resolv_conf_path=meta.get("ResolvConfPath") or "",
        log_path=meta.get("LogPath") or "",
        restart_count=meta.get("RestartCount") or 0,
        mount_label=meta.get("MountLabel") or "",
        process_label=meta.get("ProcessLabel") or "",
        app_armor_profile=meta.get("AppArmorProfile") or "",
        exec_ids=list(meta.get("ExecIDs") or []),
        size_rw=meta.get("SizeRw") or 0,
        size_root_fs=meta.get("SizeRootFs") or 0,
        base_fs=graph_data.get("MergedDir", ""),
        rootfs_provided=True,
    )

    if not host_config.log_config.log_driver and record.log_path:
        host_config.log_config.log_driver = DEFAULT_LOG_DRIVER

    _mark_cri_type(record)
    _add_ld_preload_bind(record)
    return record


def _strip_name(name: str) -> str:
    if name.startswith("/"):
        return name[1:]
    return name


def _to_state(state: Dict[str, Any]) -> ContainerState:
    return ContainerState(
        status=convert_status(state.get("Status")),
        running=bool(state.get("Running")),
        paused=bool(state.get("Paused")),
        restarting=bool(state.get("Restarting")),
        oom_killed=bool(state.get("OOMKilled")),
        dead=bool(state.get("Dead")),
        pid=state.get("Pid") or 0,
        exit_code=state.get("ExitCode") or 0,
        error=state.get("Error") or "",
        started_at=convert_time(state.get("StartedAt") or ""),
        finished_at=convert_time(state.get("FinishedAt") or ""),
    )


def _to_container_config(container_id: str, config: Any) -> ContainerConfig:
    if config is None:
        raise TranslationError(container_id, "got an empty ContainerConfig")
    if not isinstance(config, dict):
        raise TranslationError(container_id, f"malformed ContainerConfig: {type(config).__name__}")

    labels = dict(config.get("Labels") or {})
    env = list(config.get("Env") or [])

    run_mode = parse_env(env).get(RUN_MODE_ENV)
    if run_mode is not None and run_mode != RUN_MODE_VM:
        old = f"{RUN_MODE_ENV}={run_mode}"
        for i, entry in enumerate(env):
            if entry == old:
                env[i] = f"{RUN_MODE_ENV}={RUN_MODE_VM}"
                break

    return ContainerConfig(
        hostname=config.get("Hostname") or "",
        domainname=config.get("Domainname") or "",
        user=config.get("User") or "",
        attach_stdin=bool(config.get("AttachStdin")),
        attach_stdout=bool(config.get("AttachStdout")),
        attach_stderr=bool(config.get("AttachStderr")),
        exposed_ports=dict(config.get("ExposedPorts") or {}),
        tty=bool(config.get("Tty")),
        open_stdin=bool(config.get("OpenStdin")),
        stdin_once=bool(config.get("StdinOnce")),
        env=env,
        cmd=list(config.get("Cmd") or []),
        args_escaped=bool(config.get("ArgsEscaped")),
        image=config.get("Image") or "",
        volumes={k: {} for k in (config.get("Volumes") or {})},
        working_dir=config.get("WorkingDir") or "",
        entrypoint=list(config.get("Entrypoint") or []),
        network_disabled=bool(config.get("NetworkDisabled")),
        mac_address=config.get("MacAddress") or "",
        on_build=list(config.get("OnBuild") or []),
        labels=labels,
        stop_signal=config.get("StopSignal") or "",
        stop_timeout=config.get("StopTimeout"),
        shell=list(config.get("Shell") or []),
        quota_id=labels.get(QUOTA_ID_LABEL, ""),
    )


def _to_host_config(container_id: str, host: Any) -> HostConfig:
    if not isinstance(host, dict):
        raise TranslationError(container_id, "got an empty or malformed HostConfig")

    cap_add = list(host.get("CapAdd") or [])
    for cap in DEFAULT_CAP_ADD:
        if cap not in cap_add:
            cap_add.append(cap)

    log = host.get("LogConfig") or {}
    restart = host.get("RestartPolicy") or {}

    return HostConfig(
        binds=list(host.get("Binds") or []),
        container_id_file=host.get("ContainerIDFile") or "",
        log_config=LogConfig(log_driver=log.get("Type") or "",
                             log_opts=dict(log.get("Config") or {})),
        network_mode=host.get("NetworkMode") or "",
        port_bindings=_to_port_map(host.get("PortBindings")),
        restart_policy=RestartPolicy(name=restart.get("Name") or "",
                                     maximum_retry_count=restart.get("MaximumRetryCount") or 0),
        auto_remove=bool(host.get("AutoRemove")),
        volume_driver=host.get("VolumeDriver") or "",
        volumes_from=list(host.get("VolumesFrom") or []),
        cap_add=cap_add,
        cap_drop=list(host.get("CapDrop") or []),
        dns=list(host.get("Dns") or []),
        dns_options=list(host.get("DnsOptions") or []),
        dns_search=list(host.get("DnsSearch") or []),
        extra_hosts=list(host.get("ExtraHosts") or []),
        group_add=list(host.get("GroupAdd") or []),
        ipc_mode=host.get("IpcMode") or "",
        cgroup=host.get("Cgroup") or "",
        links=list(host.get("Links") or []),
        oom_score_adj=host.get("OomScoreAdj") or 0,
        pid_mode=host.get("PidMode") or "",
        privileged=bool(host.get("Privileged")),
        publish_all_ports=bool(host.get("PublishAllPorts")),
        readonly_rootfs=bool(host.get("ReadonlyRootfs")),
        security_opt=list(host.get("SecurityOpt") or []),
        storage_opt=dict(host.get("StorageOpt") or {}),
        tmpfs=dict(host.get("Tmpfs") or {}),
        uts_mode=host.get("UTSMode") or "",
        userns_mode=host.get("UsernsMode") or "",
        shm_size=host.get("ShmSize"),
        sysctls=dict(host.get("Sysctls") or {}),
        runtime=DEFAULT_RUNTIME,
        resources=_to_resources(host),
    )


def _throttle(devices: Optional[List[Dict[str, Any]]]) -> List[ThrottleDevice]:
    return [ThrottleDevice(path=d.get("Path") or "", rate=d.get("Rate") or 0)
            for d in devices or []]


def _to_resources(host: Dict[str, Any]) -> Resources:
    return Resources(
        cgroup_parent=host.get("CgroupParent") or "",
        blkio_weight=host.get("BlkioWeight") or 0,
        blkio_weight_device=[WeightDevice(path=d.get("Path") or "", weight=d.get("Weight") or 0)
                             for d in host.get("BlkioWeightDevice") or []],
        blkio_device_read_bps=_throttle(host.get("BlkioDeviceReadBps")),
        blkio_device_write_bps=_throttle(host.get("BlkioDeviceWriteBps")),
        blkio_device_read_iops=_throttle(host.get("BlkioDeviceReadIOps")),
        blkio_device_write_iops=_throttle(host.get("BlkioDeviceWriteIOps")),
        cpu_shares=host.get("CpuShares") or 0,
        cpu_period=host.get("CpuPeriod") or 0,
        cpu_quota=host.get("CpuQuota") or 0,
        cpuset_cpus=host.get("CpusetCpus") or "",
        cpuset_mems=host.get("CpusetMems") or "",
        cpu_count=host.get("CpuCount") or 0,
        cpu_percent=host.get("CpuPercent") or 0,
        nano_cpus=host.get("NanoCpus") or 0,
        devices=[DeviceMapping(path_on_host=d.get("PathOnHost") or "",
                               path_in_container=d.get("PathInContainer") or "",
                               cgroup_permissions=d.get("CgroupPermissions") or "")
                 for d in host.get("Devices") or []],
        kernel_memory=host.get("KernelMemory") or 0,
        memory=host.get("Memory") or 0,
        memory_reservation=host.get("MemoryReservation") or 0,
        memory_swap=host.get("MemorySwap") or 0,
        memory_swappiness=host.get("MemorySwappiness"),
        oom_kill_disable=host.get("OomKillDisable"),
        pids_limit=host.get("PidsLimit"),
        ulimits=[Ulimit(name=u.get("Name") or "", soft=u.get("Soft") or 0, hard=u.get("Hard") or 0)
                 for u in host.get("Ulimits") or []],
        io_maximum_iops=host.get("IOMaximumIOps") or 0,
        io_maximum_bandwidth=host.get("IOMaximumBandwidth") or 0,
    )


def _to_port_map(ports: Optional[Dict[str, Any]]) -> Dict[str, List[PortBinding]]:
    port_map = {}
    for port, bindings in (ports or {}).items():
        port_map[port] = [PortBinding(host_ip=b.get("HostIp") or "", host_port=b.get("HostPort") or "")
                          for b in bindings or []]
    return port_map


def _to_mount(mount: Dict[str, Any]) -> MountPoint:
    driver = mount.get("Driver") or ""
    return MountPoint(
        type=mount.get("Type") or "",
        name=mount.get("Name") or "",
        source=mount.get("Source") or "",
        destination=mount.get("Destination") or "",
        driver=driver,
        mode=mount.get("Mode") or "",
        rw=bool(mount.get("RW")),
        propagation=mount.get("Propagation") or "",
        named=driver in NAMED_VOLUME_DRIVERS,
    )


def _to_network_settings(settings: Optional[Dict[str, Any]]) -> Optional[NetworkSettings]:
    if settings is None:
        return None

    networks = {}
    for name, endpoint in (settings.get("Networks") or {}).items():
        endpoint = endpoint or {}
        ipam = endpoint.get("IPAMConfig")
        networks[name] = EndpointSettings(
            ipam_config=IPAMConfig(
                ipv4_address=ipam.get("IPv4Address") or "",
                ipv6_address=ipam.get("IPv6Address") or "",
                link_local_ips=list(ipam.get("LinkLocalIPs") or []),
            ) if ipam else None,
            links=list(endpoint.get("Links") or []),
            aliases=list(endpoint.get("Aliases") or []),
            network_id=endpoint.get("NetworkID") or "",
            endpoint_id=endpoint.get("EndpointID") or "",
            gateway=endpoint.get("Gateway") or "",
            ip_address=endpoint.get("IPAddress") or "",
            ip_prefix_len=endpoint.get("IPPrefixLen") or 0,
            ipv6_gateway=endpoint.get("IPv6Gateway") or "",
            global_ipv6_address=endpoint.get("GlobalIPv6Address") or "",
            global_ipv6_prefix_len=endpoint.get("GlobalIPv6PrefixLen") or 0,
            mac_address=endpoint.get("MacAddress") or "",
            driver_opts=dict(endpoint.get("DriverOpts") or {}),
        )

    return NetworkSettings(
        bridge=settings.get("Bridge") or "",
        hairpin_mode=bool(settings.get("HairpinMode")),
        link_local_ipv6_address=settings.get("LinkLocalIPv6Address") or "",
        link_local_ipv6_prefix_len=settings.get("LinkLocalIPv6PrefixLen") or 0,
        networks=networks,
        ports=_to_port_map(settings.get("Ports")),
        sandbox_id=settings.get("SandboxID") or "",
        sandbox_key=settings.get("SandboxKey") or "",
    )


def _mark_cri_type(record: ContainerRecord) -> None:
    config = record.config
    labels = config.labels

    if is_sandbox_name(record.name):
        labels[POUCH_TYPE_LABEL] = CONTAINER_TYPE_SANDBOX

    if labels.get(DOCKER_TYPE_LABEL) == CONTAINER_TYPE_CONTAINER:
        labels[POUCH_TYPE_LABEL] = CONTAINER_TYPE_CONTAINER
        if config.spec_annotation is None:
            config.spec_annotation = {ANNOTATION_CONTAINER_TYPE: CONTAINER_TYPE_CONTAINER}

        sandbox_id = labels.get(SANDBOX_ID_LABEL)
        if sandbox_id is not None:
            config.spec_annotation[ANNOTATION_SANDBOX_NAME] = sandbox_id
            config.spec_annotation[ANNOTATION_SANDBOX_ID] = sandbox_id


def _add_ld_preload_bind(record: ContainerRecord) -> None:
    # The preload library has to be visible inside the container.
    preload = parse_env(record.config.env).get(LD_PRELOAD_ENV, "")
    if not preload:
        return
    bind = f"{preload}:{preload}:ro"
    if bind not in record.host_config.binds:
        record.host_config.binds.append(bind)
