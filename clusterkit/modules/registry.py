"""Local image registry coordinator.

The Controller only needs apply/list/get. DockerRegistryController is the
default: registries are plain registry containers labelled with their role.
"""
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import docker
from docker.models.containers import Container

from ..config import ClusterkitConfig, get_config
from .engine import DockerEngineClient
from .errors import NotFoundError
from .models import Registry, RegistryList, RegistryStatus
from .selector import REGISTRY_FIELDS, FieldSelector, registry_fields

logger = logging.getLogger("clusterkit.registry")

ROLE_LABEL = "dev.clusterkit.role"
ROLE_REGISTRY = "registry"


class RegistryController(ABC):
    """Realizes and reads local registries by name."""

    @abstractmethod
    def apply(self, desired: Registry) -> Registry:
        """Make sure the registry exists and is running; return it with status."""
        ...

    @abstractmethod
    def list(self, field_selector: str = '') -> RegistryList:
        ...

    def get(self, name: str) -> Registry:
        registries = self.list(field_selector=f"name={name}")
        if not registries.items:
            raise NotFoundError("registry", name)
        return registries.items[0]


def parse_docker_time(value: str) -> Optional[datetime]:
    """Parse the engine's RFC 3339 timestamps, which carry nanoseconds."""
    if not value:
        return None
    match = re.match(r'^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})?$', value)
    if not match:
        return None
    base, fraction, tz = match.groups()
    micros = (fraction or '.0')[1:7].ljust(6, '0')
    parsed = datetime.strptime(f"{base}.{micros}", "%Y-%m-%dT%H:%M:%S.%f")
    if not tz or tz == 'Z':
        return parsed.replace(tzinfo=timezone.utc)
    return datetime.fromisoformat(f"{parsed.isoformat()}{tz}")


class DockerRegistryController(RegistryController):
    """Registries running as containers on the local Docker engine."""

    def __init__(self, engine: Optional[DockerEngineClient] = None, config: Optional[ClusterkitConfig] = None):
        self.engine = engine or DockerEngineClient()
        self.config = (config or get_config()).registry

    def list(self, field_selector: str = '') -> RegistryList:
        selector = FieldSelector.parse(field_selector, allowed=REGISTRY_FIELDS)
        containers = self.engine.client.containers.list(
            all=True, filters={"label": f"{ROLE_LABEL}={ROLE_REGISTRY}"})
        result = RegistryList()
        for container in containers:
            registry = self._registry_from_container(container)
            if selector.matches(registry_fields(registry)):
                result.items.append(registry)
        result.items.sort(key=lambda r: r.name)
        return result

    def apply(self, desired: Registry) -> Registry:
        try:
            container = self.engine.client.containers.get(desired.name)
        except docker.errors.NotFound:
            container = None

        if container is not None:
            existing = self._registry_from_container(container)
            if desired.port and existing.status.host_port and desired.port != existing.status.host_port:
                logger.info(
                    f"Recreating registry {desired.name}: desired port {desired.port} "
                    f"does not match current {existing.status.host_port}")
                container.remove(force=True)
                container = None
            elif container.status != "running":
                logger.info(f"Starting registry {desired.name}")
                container.start()

        if container is None:
            container = self._run(desired)

        container.reload()
        return self._registry_from_container(container)

    def _run(self, desired: Registry) -> Container:
        port_key = f"{self.config.container_port}/tcp"
        binding = ("127.0.0.1", desired.port) if desired.port else ("127.0.0.1",)
        logger.info(f"Creating registry {desired.name} from {self.config.image}")
        return self.engine.client.containers.run(
            self.config.image,
            name=desired.name,
            detach=True,
            restart_policy={"Name": "always"},
            ports={port_key: binding},
            labels={ROLE_LABEL: ROLE_REGISTRY},
        )

    def _registry_from_container(self, container: Container) -> Registry:
        attrs: Dict[str, Any] = container.attrs or {}
        net = attrs.get('NetworkSettings') or {}
        networks = net.get('Networks') or {}

        host_port = 0
        port_key = f"{self.config.container_port}/tcp"
        for binding in (net.get('Ports') or {}).get(port_key) or []:
            if binding.get('HostPort'):
                host_port = int(binding['HostPort'])
                break

        ip_address = net.get('IPAddress') or (networks.get('bridge') or {}).get('IPAddress', '')
        name = container.name or attrs.get('Name', '').lstrip('/')

        return Registry(
            name=name,
            port=host_port,
            status=RegistryStatus(
                creation_timestamp=parse_docker_time(attrs.get('Created', '')),
                host_port=host_port,
                container_port=self.config.container_port,
                ip_address=ip_address or '',
                container_id=container.id or '',
                networks=sorted(networks.keys()),
            ),
        )
