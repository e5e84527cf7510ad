from datetime import datetime, timezone
from types import SimpleNamespace

import docker
import pytest

from clusterkit.config import ClusterkitConfig
from clusterkit.modules.engine import flatten_settings, nest_settings
from clusterkit.modules.errors import NotFoundError
from clusterkit.modules.models import Registry
from clusterkit.modules.registry import DockerRegistryController, parse_docker_time


class FakeContainer:

    def __init__(self, name, host_port=5000, status="running", networks=("bridge",)):
        self.name = name
        self.id = f"{name}-id"
        self.status = status
        self.removed = False
        self.started = False
        self.attrs = {
            "Name": f"/{name}",
            "Created": "2024-05-01T12:00:00.123456789Z",
            "NetworkSettings": {
                "IPAddress": "172.17.0.2",
                "Ports": {"5000/tcp": [{"HostIp": "127.0.0.1", "HostPort": str(host_port)}]},
                "Networks": {n: {"IPAddress": "172.17.0.2"} for n in networks},
            },
        }

    def start(self):
        self.started = True
        self.status = "running"

    def remove(self, force=False):
        self.removed = True

    def reload(self):
        pass


class FakeContainers:

    def __init__(self, containers=None):
        self.containers = {c.name: c for c in containers or []}
        self.run_calls = []

    def list(self, all=False, filters=None):
        return list(self.containers.values())

    def get(self, name):
        container = self.containers.get(name)
        if container is None or container.removed:
            raise docker.errors.NotFound(f"No such container: {name}")
        return container

    def run(self, image, name=None, ports=None, **kwargs):
        self.run_calls.append((image, name, ports, kwargs))
        binding = ports["5000/tcp"]
        container = FakeContainer(name, host_port=binding[1] if len(binding) > 1 else 32768)
        self.containers[name] = container
        return container


class FakeEngine:

    def __init__(self, containers=None):
        self.client = SimpleNamespace(containers=FakeContainers(containers))


def _controller(containers=None):
    engine = FakeEngine(containers)
    return DockerRegistryController(engine, ClusterkitConfig()), engine.client.containers


def test_parse_docker_time():
    parsed = parse_docker_time("2024-05-01T12:00:00.123456789Z")
    assert parsed == datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
    assert parse_docker_time("") is None
    assert parse_docker_time("yesterday") is None


def test_registry_list():
    ctl, _ = _controller([FakeContainer("zz-registry", 5002), FakeContainer("kind-registry", 5001)])
    registries = ctl.list()
    assert [r.name for r in registries.items] == ["kind-registry", "zz-registry"]
    first = registries.items[0]
    assert first.status.host_port == 5001
    assert first.status.container_port == 5000
    assert first.status.ip_address == "172.17.0.2"
    assert first.status.networks == ["bridge"]


def test_registry_get():
    ctl, _ = _controller([FakeContainer("kind-registry")])
    assert ctl.get("kind-registry").name == "kind-registry"
    with pytest.raises(NotFoundError):
        ctl.get("other")


def test_registry_apply_creates():
    ctl, containers = _controller()
    registry = ctl.apply(Registry(name="kind-registry", port=5001))

    image, name, ports, kwargs = containers.run_calls[0]
    assert image == "registry:2"
    assert name == "kind-registry"
    assert ports == {"5000/tcp": ("127.0.0.1", 5001)}
    assert kwargs["restart_policy"] == {"Name": "always"}
    assert registry.status.host_port == 5001


def test_registry_apply_starts_stopped():
    stopped = FakeContainer("kind-registry", status="exited")
    ctl, containers = _controller([stopped])

    ctl.apply(Registry(name="kind-registry"))

    assert stopped.started
    assert containers.run_calls == []


def test_registry_apply_recreates_on_port_change():
    existing = FakeContainer("kind-registry", host_port=5001)
    ctl, containers = _controller([existing])

    registry = ctl.apply(Registry(name="kind-registry", port=5002))

    assert existing.removed
    assert registry.status.host_port == 5002


def test_settings_views():
    raw = {"vm": {"resources": {"cpus": {"value": 4}}, "kubernetes": {"enabled": {"value": True}}}}
    flat = flatten_settings(raw)
    assert flat == {"cpu": 4, "k8sEnabled": True}
    assert nest_settings({"cpu": 6}) == {"vm": {"resources": {"cpus": {"value": 6}}}}
