"""Turn a raw docker stats sample into ServerStats."""

from datetime import UTC, datetime
from typing import Any

from shared.contracts import ServerStats


def cpu_percent(sample: dict[str, Any]) -> float:
    """(container delta / system delta) x online CPUs x 100."""
    cpu = sample.get("cpu_stats") or {}
    precpu = sample.get("precpu_stats") or {}

    cpu_delta = (cpu.get("cpu_usage") or {}).get("total_usage", 0) - (
        precpu.get("cpu_usage") or {}
    ).get("total_usage", 0)
    system_delta = cpu.get("system_cpu_usage", 0) - precpu.get("system_cpu_usage", 0)
    if cpu_delta <= 0 or system_delta <= 0:
        return 0.0

    online = cpu.get("online_cpus") or len((cpu.get("cpu_usage") or {}).get("percpu_usage") or [])
    return round(cpu_delta / system_delta * (online or 1) * 100.0, 2)


def memory_usage(sample: dict[str, Any]) -> tuple[int, int]:
    """(used bytes excluding page cache, limit bytes)."""
    memory = sample.get("memory_stats") or {}
    detail = memory.get("stats") or {}
    # cgroup v2 reports inactive_file, v1 reports cache
    cache = detail.get("inactive_file", detail.get("cache", 0))
    used = max(memory.get("usage", 0) - cache, 0)
    return used, memory.get("limit", 0)


def network_usage(sample: dict[str, Any]) -> tuple[int, int]:
    rx = tx = 0
    for interface in (sample.get("networks") or {}).values():
        rx += interface.get("rx_bytes", 0)
        tx += interface.get("tx_bytes", 0)
    return rx, tx


def uptime_seconds(started_at: datetime | None, now: datetime | None = None) -> int:
    if started_at is None:
        return 0
    now = now or datetime.now(UTC)
    return max(int((now - started_at).total_seconds()), 0)


def compute_stats(sample: dict[str, Any], started_at: datetime | None) -> ServerStats:
    used, limit = memory_usage(sample)
    rx, tx = network_usage(sample)
    return ServerStats(
        cpu_percent=cpu_percent(sample),
        memory_bytes=used,
        memory_limit_bytes=limit,
        network_rx_bytes=rx,
        network_tx_bytes=tx,
        uptime_seconds=uptime_seconds(started_at),
    )


def parse_docker_time(value: str | None) -> datetime | None:
    """Parse docker's RFC 3339 timestamps (nanosecond precision, `Z` suffix)."""
    if not value or value.startswith("0001-01-01"):
        return None
    head, _, rest = value.rstrip("Z").partition(".")
    fraction = rest[:6]
    text = f"{head}.{fraction}" if fraction else head
    return datetime.fromisoformat(text).replace(tzinfo=UTC)
