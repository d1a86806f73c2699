"""Container supervisor: the node-local half of every server lifecycle operation."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import docker.errors
import structlog

from shared.contracts import ConsoleLogs, ServerSpec, ServerState, ServerStats, SystemInfo

from .config import AgentSettings
from .container_config import (
    LABEL_MANAGED,
    LABEL_SERVER_ID,
    ServerContainerConfig,
    container_name,
)
from .docker_ops import DockerClientWrapper
from .errors import ContainerRuntimeError, ServerNotFound, ServerNotRunning
from .registry import ServerEntry, ServerRegistry
from .stats import compute_stats, parse_docker_time

logger = structlog.get_logger()


class ServerManager:
    """
    Manages server containers on this node.

    Lifecycle operations hold the server's entry lock for their whole
    duration, so two operations on one server never interleave while
    operations on different servers run concurrently.
    """

    def __init__(
        self,
        docker_client: DockerClientWrapper,
        settings: AgentSettings,
        registry: ServerRegistry | None = None,
    ):
        self.docker = docker_client
        self.settings = settings
        self.registry = registry or ServerRegistry()
        # ConsoleBridge; wired up in the app lifespan
        self.console = None

    def _container_config(self, spec: ServerSpec) -> ServerContainerConfig:
        return ServerContainerConfig(
            spec=spec,
            data_path=self.settings.data_path,
            user=self.settings.container_user,
            network=self.settings.docker_network,
            dns=self.settings.docker_dns,
            extra_mounts=self.settings.extra_mounts,
        )

    @asynccontextmanager
    async def _locked(self, server_id: str) -> AsyncIterator[ServerEntry]:
        entry = self.registry.get(server_id)
        async with entry.lock:
            # Deleted (or a failed create rolled back) while we waited
            if self.registry.find(server_id) is not entry or entry.container_id is None:
                raise ServerNotFound(f"Server {server_id} not found")
            entry.generation += 1
            try:
                yield entry
            except docker.errors.NotFound as e:
                raise ContainerRuntimeError(
                    f"Container for server {server_id} is missing: {e}"
                ) from e

    async def _attach_console(self, entry: ServerEntry) -> None:
        if self.console is not None and entry.container_id:
            await self.console.attach(entry.id, entry.container_id)

    async def _detach_console(self, server_id: str) -> None:
        if self.console is not None:
            await self.console.detach(server_id)

    async def ensure_image(self, image: str) -> None:
        if not await self.docker.image_exists(image):
            await self.docker.pull_image(image)

    async def _create_container(self, spec: ServerSpec) -> str:
        config = self._container_config(spec)
        try:
            # ImageNotFound from a pull is a NotFound too
            await self.ensure_image(spec.docker_image)
            config.data_dir.mkdir(parents=True, exist_ok=True)
            container = await self.docker.create_container(
                spec.docker_image, **config.to_docker_create_kwargs()
            )
        except docker.errors.NotFound as e:
            raise ContainerRuntimeError(str(e)) from e
        return container.id

    # --- lifecycle ---

    async def create_server(self, spec: ServerSpec) -> ServerState:
        """Pull the image if needed and create (not start) the container."""
        entry = ServerEntry(id=spec.id, spec=spec)
        async with entry.lock:
            await self.registry.insert(entry)
            logger.info("creating_server", server_id=spec.id, image=spec.docker_image)
            try:
                entry.container_id = await self._create_container(spec)
            except Exception:
                await self.registry.remove(spec.id)
                raise
            entry.status = "created"

        logger.info("server_created", server_id=spec.id, container_id=entry.container_id)
        return entry.to_state()

    async def start(self, server_id: str) -> ServerState:
        async with self._locked(server_id) as entry:
            await self.docker.start_container(entry.container_id)
            entry.status = "running"
            entry.started_at = datetime.now(UTC)
            await self._attach_console(entry)
        logger.info("server_started", server_id=server_id)
        return entry.to_state()

    async def stop(self, server_id: str, timeout: int | None = None) -> ServerState:
        """SIGTERM, wait up to `timeout` seconds, then docker sends SIGKILL."""
        timeout = self.settings.stop_timeout if timeout is None else timeout
        async with self._locked(server_id) as entry:
            await self.docker.stop_container(entry.container_id, timeout=timeout)
            entry.status = "exited"
            entry.started_at = None
            await self._detach_console(server_id)
        logger.info("server_stopped", server_id=server_id, timeout=timeout)
        return entry.to_state()

    async def kill(self, server_id: str) -> ServerState:
        async with self._locked(server_id) as entry:
            attrs = await self.docker.inspect_container(entry.container_id)
            # Docker refuses to kill a container that is not running
            if (attrs.get("State") or {}).get("Running"):
                await self.docker.kill_container(entry.container_id)
            entry.status = "exited"
            entry.started_at = None
            await self._detach_console(server_id)
        logger.info("server_killed", server_id=server_id)
        return entry.to_state()

    async def restart(self, server_id: str, timeout: int | None = None) -> ServerState:
        timeout = self.settings.stop_timeout if timeout is None else timeout
        async with self._locked(server_id) as entry:
            await self._detach_console(server_id)
            await self.docker.restart_container(entry.container_id, timeout=timeout)
            entry.status = "running"
            entry.started_at = datetime.now(UTC)
            await self._attach_console(entry)
        logger.info("server_restarted", server_id=server_id)
        return entry.to_state()

    async def send_command(self, server_id: str, command: str) -> None:
        """Start `command` in the container's shell without waiting for it.

        Output shows up on the console. The entry lock only covers the
        running check, so a slow command never holds up stop or kill.
        """
        async with self._locked(server_id) as entry:
            if not entry.is_running:
                raise ServerNotRunning(f"Server {server_id} is not running")
            container_id = entry.container_id
        try:
            await self.docker.exec_in_container(
                container_id,
                ["/bin/bash", "-c", command],
                user=self.settings.container_user,
                detach=True,
            )
        except docker.errors.NotFound as e:
            raise ContainerRuntimeError(
                f"Container for server {server_id} is missing: {e}"
            ) from e
        logger.debug("server_command_sent", server_id=server_id)

    async def delete(self, server_id: str) -> None:
        """Force-remove the container and forget the server.

        A removal failure is logged; the entry is evicted regardless.
        """
        entry = self.registry.get(server_id)
        async with entry.lock:
            await self._detach_console(server_id)
            try:
                await self.docker.remove_container(
                    entry.container_id or container_name(server_id), force=True, v=True
                )
            except ContainerRuntimeError as e:
                logger.error(
                    "server_container_remove_failed",
                    server_id=server_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            finally:
                await self.registry.remove(server_id)
        logger.info("server_deleted", server_id=server_id)

    async def reinstall(self, server_id: str, spec: ServerSpec) -> ServerState:
        """Recreate the container from `spec`, keeping the data directory."""
        if server_id not in self.registry:
            return await self.create_server(spec)

        async with self._locked(server_id) as entry:
            await self._detach_console(server_id)
            await self.docker.remove_container(entry.container_id, force=True)
            entry.container_id = None
            entry.status = "created"
            entry.started_at = None
            entry.spec = spec
            try:
                entry.container_id = await self._create_container(spec)
            except Exception:
                await self.registry.remove(server_id)
                raise
        logger.info("server_reinstalled", server_id=server_id, container_id=entry.container_id)
        return entry.to_state()

    async def load_servers(self, known_specs: list[ServerSpec]) -> int:
        """Rebuild the registry from labelled containers after an agent restart."""
        specs = {spec.id: spec for spec in known_specs}
        containers = await self.docker.list_containers(
            filters={"label": f"{LABEL_MANAGED}=true"}, all=True
        )

        loaded = 0
        for container in containers:
            server_id = (container.labels or {}).get(LABEL_SERVER_ID)
            if not server_id:
                continue
            state = container.attrs.get("State") or {}
            status = state.get("Status") or container.status
            entry = ServerEntry(
                id=server_id,
                spec=specs.get(server_id),
                container_id=container.id,
                status=status,
                started_at=parse_docker_time(state.get("StartedAt")) if status == "running" else None,
            )
            await self.registry.put(entry)
            loaded += 1
            if server_id not in specs:
                logger.warning("unknown_server_container", server_id=server_id, container_id=container.id)
            if entry.is_running:
                await self._attach_console(entry)

        logger.info("servers_loaded", loaded=loaded, known=len(specs))
        return loaded

    # --- reads ---

    async def list_states(self) -> list[ServerState]:
        entries = await self.registry.snapshot()
        return [entry.to_state() for entry in sorted(entries, key=lambda e: e.id)]

    def get_state(self, server_id: str) -> ServerState:
        return self.registry.get(server_id).to_state()

    async def logs(self, server_id: str, lines: int = 100) -> ConsoleLogs:
        entry = self.registry.get(server_id)
        if entry.container_id is None:
            return ConsoleLogs(id=server_id)
        try:
            raw = await self.docker.container_logs(entry.container_id, tail=lines)
        except docker.errors.NotFound as e:
            raise ContainerRuntimeError(f"Container for server {server_id} is missing: {e}") from e
        return ConsoleLogs(id=server_id, lines=raw.decode("utf-8", errors="replace").splitlines())

    async def stats(self, server_id: str) -> ServerStats:
        entry = self.registry.get(server_id)
        if not entry.is_running:
            return ServerStats()
        try:
            return await self.refresh_stats(entry)
        except docker.errors.NotFound as e:
            raise ContainerRuntimeError(f"Container for server {server_id} is missing: {e}") from e

    async def system_info(self) -> SystemInfo:
        info = await self.docker.info()
        return SystemInfo(
            architecture=info.get("Architecture", ""),
            cpu_count=info.get("NCPU", 0),
            memory_total_bytes=info.get("MemTotal", 0),
            os=info.get("OperatingSystem", ""),
            kernel_version=info.get("KernelVersion", ""),
            docker_version=info.get("ServerVersion", ""),
            containers_total=info.get("Containers", 0),
            containers_running=info.get("ContainersRunning", 0),
            managed_servers=len(self.registry),
        )

    # --- loop hooks ---

    def _writable(self, entry: ServerEntry, generation: int) -> bool:
        # A lifecycle call in progress, or one that finished after our docker
        # read started, has written the authoritative value itself
        return (
            not entry.lock.locked()
            and entry.generation == generation
            and self.registry.find(entry.id) is entry
        )

    async def refresh_status(self, entry: ServerEntry) -> str:
        """Overwrite only `status` from a fresh inspect."""
        if entry.container_id is None:
            return entry.status
        generation = entry.generation
        attrs = await self.docker.inspect_container(entry.container_id)
        status = (attrs.get("State") or {}).get("Status", entry.status)
        if self._writable(entry, generation):
            async with entry.lock:
                entry.status = status
        return status

    async def refresh_stats(self, entry: ServerEntry) -> ServerStats:
        """Overwrite only `stats` from one docker stats sample."""
        if entry.container_id is None or not entry.is_running:
            return entry.stats
        generation = entry.generation
        sample = await self.docker.container_stats(entry.container_id)
        stats = compute_stats(sample, entry.started_at)
        if self._writable(entry, generation):
            async with entry.lock:
                entry.stats = stats
        return stats
