"""Backend adapter interface and helpers shared by the adapters."""
import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import docker

from ...utils.kube import ClusterClient
from ..engine import DockerEngineClient
from ..errors import NotInstalledError
from ..models import Cluster, LocalRegistryHosting, Registry

logger = logging.getLogger("clusterkit.admin")

LOCAL_REGISTRY_HOSTING_NAMESPACE = "kube-public"
LOCAL_REGISTRY_HOSTING_NAME = "local-registry-hosting"
LOCAL_REGISTRY_HOSTING_KEY = "localRegistryHosting.v1"

ClientFactory = Callable[[str], ClusterClient]


class Admin(ABC):
    """Native lifecycle operations for one cluster product."""

    def validate(self, desired: Cluster) -> None:
        """Reject a desired cluster this product can never create. No I/O."""
        pass

    @abstractmethod
    def ensure_installed(self) -> None:
        """Raise NotInstalledError if the product's tool is missing."""
        ...

    @abstractmethod
    def create(self, desired: Cluster, registry: Optional[Registry]) -> None:
        """Create the cluster and record its context.

        On return the context ``desired.name`` is recorded and the cluster
        answers as a Kubernetes API endpoint. When ``registry`` is given the
        cluster can pull from it.
        """
        ...

    @abstractmethod
    def delete(self, cluster: Cluster) -> None:
        """Delete the cluster. Deleting a missing cluster is not an error."""
        ...

    @abstractmethod
    def local_registry_hosting(self, registry: Registry) -> LocalRegistryHosting:
        """Describe how to reach ``registry`` from this product. No I/O."""
        ...


def ensure_tool(tool: str, hint: str = '') -> str:
    path = shutil.which(tool)
    if not path:
        raise NotInstalledError(tool, hint)
    return path


def run_tool(args: List[str], input: Optional[str] = None) -> subprocess.CompletedProcess:
    """Run a native tool, streaming its output. Non-zero exits raise."""
    logger.info(f"Running: {' '.join(args)}")
    return subprocess.run(args, input=input, text=True, check=True)


def connect_registry(engine: DockerEngineClient, registry: Registry, network: str) -> None:
    """Attach the registry container to a docker network, if not already on it."""
    if network in registry.status.networks:
        return
    logger.info(f"Connecting registry {registry.name} to network {network}")
    try:
        engine.client.networks.get(network).connect(registry.status.container_id or registry.name)
    except docker.errors.APIError as e:
        # Raced with another connect
        if "already exists" not in str(e):
            raise
    registry.status.networks = sorted(set(registry.status.networks) | {network})


def publish_local_registry_hosting(client: ClusterClient, hosting: LocalRegistryHosting) -> None:
    """Write the well-known ConfigMap that tells cluster tooling where the registry is."""
    client.apply_config_map(
        LOCAL_REGISTRY_HOSTING_NAMESPACE,
        LOCAL_REGISTRY_HOSTING_NAME,
        {LOCAL_REGISTRY_HOSTING_KEY: hosting.to_yaml()},
    )


def read_local_registry_hosting(client: ClusterClient) -> Optional[LocalRegistryHosting]:
    data = client.read_config_map(LOCAL_REGISTRY_HOSTING_NAMESPACE, LOCAL_REGISTRY_HOSTING_NAME)
    if not data or not data.get(LOCAL_REGISTRY_HOSTING_KEY):
        return None
    return LocalRegistryHosting.from_yaml(data[LOCAL_REGISTRY_HOSTING_KEY])
