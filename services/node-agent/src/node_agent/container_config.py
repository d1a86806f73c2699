from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from docker.types import LogConfig

from shared.contracts import MountSpec, ServerSpec

CONTAINER_HOME = "/home/container"
CONTAINER_PREFIX = "gameplane_"

LABEL_SERVER_ID = "gameplane.server.id"
LABEL_SERVER_UUID = "gameplane.server.uuid"
LABEL_MANAGED = "gameplane.managed"

CPU_PERIOD = 100_000
BLKIO_WEIGHT = 500


def container_name(server_id: str) -> str:
    return f"{CONTAINER_PREFIX}{server_id}"


def parse_mount(value: str) -> MountSpec:
    """Parse `source:target` or `source:target:ro`."""
    parts = value.split(":")
    if len(parts) not in (2, 3) or not parts[0] or not parts[1]:
        raise ValueError(f"Invalid mount {value!r}, expected source:target[:ro]")
    read_only = len(parts) == 3 and parts[2] == "ro"  # noqa: PLR2004
    return MountSpec(source=parts[0], target=parts[1], read_only=read_only)


@dataclass
class ServerContainerConfig:
    """Translate a ServerSpec into docker-py create() arguments."""

    spec: ServerSpec
    data_path: str
    user: str = "container"
    network: str = "bridge"
    dns: list[str] = field(default_factory=list)
    extra_mounts: list[str] = field(default_factory=list)

    @property
    def data_dir(self) -> Path:
        return Path(self.data_path) / self.spec.id

    def to_env_vars(self) -> dict[str, str]:
        env = dict(self.spec.environment)
        env["SERVER_MEMORY"] = str(self.spec.memory_limit)
        primary = self.spec.primary_allocation
        if primary is not None:
            env["SERVER_IP"] = primary.ip
            env["SERVER_PORT"] = str(primary.port)
        return env

    def to_port_bindings(self) -> dict[str, tuple[str, int]]:
        """Every allocation is published for both TCP and UDP."""
        ports = {}
        for allocation in self.spec.allocations:
            for proto in ("tcp", "udp"):
                ports[f"{allocation.port}/{proto}"] = (allocation.ip, allocation.port)
        return ports

    def to_volume_mounts(self) -> dict[str, dict[str, str]]:
        volumes = {str(self.data_dir): {"bind": CONTAINER_HOME, "mode": "rw"}}
        mounts = list(self.spec.mounts) + [parse_mount(m) for m in self.extra_mounts]
        for mount in mounts:
            volumes[mount.source] = {
                "bind": mount.target,
                "mode": "ro" if mount.read_only else "rw",
            }
        return volumes

    def to_labels(self) -> dict[str, str]:
        return {
            LABEL_SERVER_ID: self.spec.id,
            LABEL_SERVER_UUID: self.spec.uuid_short,
            LABEL_MANAGED: "true",
        }

    def to_docker_create_kwargs(self) -> dict[str, Any]:
        memory = self.spec.memory_limit
        kwargs = {
            "name": container_name(self.spec.id),
            "hostname": self.spec.uuid_short,
            "tty": True,
            "stdin_open": True,
            "user": self.user,
            "working_dir": CONTAINER_HOME,
            "environment": self.to_env_vars(),
            "labels": self.to_labels(),
            "ports": self.to_port_bindings(),
            "volumes": self.to_volume_mounts(),
            # Limits
            "mem_limit": f"{memory}m",
            "memswap_limit": f"{memory * 2}m",
            "cpu_period": CPU_PERIOD,
            "cpu_quota": self.spec.cpu_limit * 1000,
            "blkio_weight": BLKIO_WEIGHT,
            "restart_policy": {"Name": "unless-stopped"},
            "log_config": LogConfig(
                type=LogConfig.types.JSON, config={"max-size": "10m", "max-file": "3"}
            ),
            "network": self.network,
        }
        if self.spec.startup_cmd:
            kwargs["command"] = ["/bin/bash", "-c", self.spec.startup_cmd]
        if self.dns:
            kwargs["dns"] = list(self.dns)
        return kwargs
