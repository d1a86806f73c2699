from pydantic import ValidationError
import pytest

from shared.contracts import AllocationSpec, NodeRegistration, ServerSpec


def _spec(**overrides):
    data = {
        "id": "6f1c2d9e-0000-4000-8000-000000000001",
        "uuid_short": "6f1c2d9e",
        "docker_image": "ghcr.io/gameplane/minecraft:java17",
        "startup_cmd": "java -Xmx{{SERVER_MEMORY}}M -jar server.jar",
        "memory_limit": 2048,
        "disk_limit": 10240,
        "cpu_limit": 200,
        "allocations": [
            {"ip": "0.0.0.0", "port": 25566},
            {"ip": "0.0.0.0", "port": 25565, "is_primary": True},
        ],
    }
    data.update(overrides)
    return ServerSpec.model_validate(data)


def test_primary_allocation_prefers_flag():
    assert _spec().primary_allocation == AllocationSpec(ip="0.0.0.0", port=25565, is_primary=True)


def test_primary_allocation_falls_back_to_first():
    spec = _spec(allocations=[{"ip": "10.0.0.2", "port": 27015}])
    assert spec.primary_allocation.port == 27015  # noqa: PLR2004


def test_primary_allocation_empty():
    assert _spec(allocations=[]).primary_allocation is None


def test_spec_rejects_non_positive_limits():
    with pytest.raises(ValidationError):
        _spec(memory_limit=0)


def test_registration_port_bounds():
    with pytest.raises(ValidationError):
        NodeRegistration(node_id="n1", token="t", listen_port=70000)
