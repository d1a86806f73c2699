import asyncio
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import docker
import docker.errors
import structlog

from .errors import ContainerRuntimeError

logger = structlog.get_logger()


class DockerClientWrapper:
    """
    Async wrapper around the blocking docker-py client.

    Every call runs in a thread pool under a timeout. docker.errors.NotFound
    passes through so callers can tell a missing container apart; any other
    docker failure becomes ContainerRuntimeError with docker's message.
    """

    def __init__(
        self,
        timeout: float = 60.0,
        max_workers: int = 8,
        client: docker.DockerClient | None = None,
    ):
        self.timeout = timeout
        self._client = client or docker.from_env(timeout=int(timeout))
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="docker")

    async def _run(self, func, *args, call_timeout: float | None = None, **kwargs):
        """Run blocking function in thread pool."""
        loop = asyncio.get_running_loop()
        limit = call_timeout if call_timeout is not None else self.timeout
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._executor, lambda: func(*args, **kwargs)), limit
            )
        except docker.errors.NotFound:
            raise
        except docker.errors.DockerException as e:
            raise ContainerRuntimeError(str(e)) from e
        except TimeoutError as e:
            name = getattr(func, "__name__", "call")
            raise ContainerRuntimeError(f"Docker {name} timed out after {limit}s") from e

    async def image_exists(self, image: str) -> bool:
        """Check if an image exists locally."""
        try:
            await self._run(self._client.images.get, image)
            return True
        except docker.errors.ImageNotFound:
            return False

    async def pull_image(self, image: str) -> Any:
        logger.info("pulling_image", image=image)
        # Pulls can legitimately take longer than a single API call
        return await self._run(self._client.images.pull, image, call_timeout=self.timeout * 10)

    async def create_container(self, image: str, **kwargs) -> Any:
        """Create (but do not start) a container."""
        return await self._run(self._client.containers.create, image, **kwargs)

    async def get_container(self, container_id: str) -> Any:
        """Get a container by ID or name."""
        return await self._run(self._client.containers.get, container_id)

    async def list_containers(
        self, filters: dict[str, Any] | None = None, all: bool = False
    ) -> list[Any]:
        return await self._run(self._client.containers.list, all=all, filters=filters)

    async def start_container(self, container_id: str) -> None:
        container = await self.get_container(container_id)
        await self._run(container.start)

    async def stop_container(self, container_id: str, timeout: int = 30) -> None:
        """SIGTERM, then docker escalates to SIGKILL after `timeout` seconds."""
        container = await self.get_container(container_id)
        await self._run(container.stop, timeout=timeout, call_timeout=self.timeout + timeout)

    async def kill_container(self, container_id: str, signal: str = "SIGKILL") -> None:
        container = await self.get_container(container_id)
        await self._run(container.kill, signal=signal)

    async def restart_container(self, container_id: str, timeout: int = 30) -> None:
        container = await self.get_container(container_id)
        await self._run(container.restart, timeout=timeout, call_timeout=self.timeout + timeout)

    async def remove_container(self, container_id: str, force: bool = False, v: bool = False) -> None:
        """Remove a container; one that is already gone is not an error."""
        try:
            container = await self.get_container(container_id)
            await self._run(container.remove, force=force, v=v)
        except docker.errors.NotFound:
            pass

    async def inspect_container(self, container_id: str) -> dict[str, Any]:
        # get() fetches a fresh object, so attrs are current
        container = await self.get_container(container_id)
        return container.attrs

    async def container_stats(self, container_id: str) -> dict[str, Any]:
        """One stats sample (includes precpu_stats for the CPU delta)."""
        container = await self.get_container(container_id)
        return await self._run(container.stats, stream=False)

    async def container_logs(self, container_id: str, tail: int = 100) -> bytes:
        container = await self.get_container(container_id)
        return await self._run(container.logs, stdout=True, stderr=True, tail=tail)

    async def exec_in_container(
        self,
        container_id: str,
        command: list[str],
        user: str | None = None,
        detach: bool = False,
    ) -> tuple[int | None, bytes]:
        """
        Execute a command in a running container.

        With `detach=True` docker starts the exec and returns at once; the
        exit code is then None and the output empty.

        Returns:
            Tuple of (exit_code, output_bytes)
        """
        container = await self.get_container(container_id)
        kwargs = {"cmd": command, "detach": detach}
        if user:
            kwargs["user"] = user
        exit_code, output = await self._run(container.exec_run, **kwargs)
        return exit_code, output or b""

    async def follow_logs(self, container_id: str, since: int) -> Iterator[bytes]:
        """Open a blocking log stream; iterate it from a worker thread."""
        container = await self.get_container(container_id)
        return await self._run(
            container.logs, stdout=True, stderr=True, stream=True, follow=True, since=since
        )

    async def info(self) -> dict[str, Any]:
        return await self._run(self._client.info)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._client.close()
