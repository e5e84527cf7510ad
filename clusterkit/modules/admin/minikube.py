"""Minikube backend, using the docker driver so registries share a network."""
import logging
from typing import Optional

from ...config import ClusterkitConfig, get_config
from ..engine import DockerEngineClient
from ..models import Cluster, LocalRegistryHosting, Registry
from .base import (
    Admin,
    ClientFactory,
    connect_registry,
    ensure_tool,
    publish_local_registry_hosting,
    run_tool,
)

logger = logging.getLogger("clusterkit.admin.minikube")


class MinikubeAdmin(Admin):

    def __init__(
        self,
        engine: DockerEngineClient,
        client_factory: ClientFactory,
        config: Optional[ClusterkitConfig] = None,
    ):
        self.engine = engine
        self.client_factory = client_factory
        self.config = config or get_config()

    def ensure_installed(self) -> None:
        ensure_tool("minikube", "Install it from https://minikube.sigs.k8s.io/docs/start/")

    def create(self, desired: Cluster, registry: Optional[Registry]) -> None:
        args = ["minikube", "start", "-p", desired.name, "--driver=docker"]
        if desired.kubernetes_version:
            args.append(f"--kubernetes-version={desired.kubernetes_version}")
        if registry is not None:
            args.append(f"--insecure-registry={registry.name}:{registry.status.container_port}")

        run_tool(args)

        if registry is not None:
            # The docker driver names the network after the profile
            connect_registry(self.engine, registry, desired.name)
            publish_local_registry_hosting(
                self.client_factory(desired.name), self.local_registry_hosting(registry))

    def delete(self, cluster: Cluster) -> None:
        run_tool(["minikube", "delete", "-p", cluster.name])

    def local_registry_hosting(self, registry: Registry) -> LocalRegistryHosting:
        return LocalRegistryHosting(
            host=f"localhost:{registry.status.host_port}",
            host_from_container_runtime=f"{registry.name}:{registry.status.container_port}",
            help=self.config.registry.help_url,
        )
