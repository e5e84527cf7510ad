"""KIND backend: clusters as docker containers, created with the ``kind`` CLI."""
import logging
from typing import Any, Dict, Optional

import yaml

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

logger = logging.getLogger("clusterkit.admin.kind")

CONTEXT_PREFIX = "kind-"
KIND_NETWORK = "kind"


def kind_cluster_name(context_name: str) -> str:
    """Strip the ``kind-`` prefix kind adds to its context names."""
    if not context_name.startswith(CONTEXT_PREFIX):
        raise ValueError(f"kind cluster names must start with {CONTEXT_PREFIX!r}, got {context_name!r}")
    return context_name[len(CONTEXT_PREFIX):]


class KindAdmin(Admin):

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
        ensure_tool("kind", "Install it from https://kind.sigs.k8s.io/docs/user/quick-start/")

    def validate(self, desired: Cluster) -> None:
        kind_cluster_name(desired.name)

    def kind_config(self, registry: Optional[Registry]) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            'kind': 'Cluster',
            'apiVersion': 'kind.x-k8s.io/v1alpha4',
        }
        if registry is not None:
            mirror = f"localhost:{registry.status.host_port}"
            endpoint = f"http://{registry.name}:{registry.status.container_port}"
            config['containerdConfigPatches'] = [
                f'[plugins."io.containerd.grpc.v1.cri".registry.mirrors."{mirror}"]\n'
                f'  endpoint = ["{endpoint}"]'
            ]
        return config

    def create(self, desired: Cluster, registry: Optional[Registry]) -> None:
        name = kind_cluster_name(desired.name)
        args = ["kind", "create", "cluster", "--name", name, "--config", "-"]
        if desired.kubernetes_version:
            args += ["--image", f"{self.config.kube.kind_node_image}:{desired.kubernetes_version}"]

        run_tool(args, input=yaml.safe_dump(self.kind_config(registry), sort_keys=False))

        if registry is not None:
            connect_registry(self.engine, registry, KIND_NETWORK)
            publish_local_registry_hosting(
                self.client_factory(desired.name), self.local_registry_hosting(registry))

    def delete(self, cluster: Cluster) -> None:
        run_tool(["kind", "delete", "cluster", "--name", kind_cluster_name(cluster.name)])

    def local_registry_hosting(self, registry: Registry) -> LocalRegistryHosting:
        return LocalRegistryHosting(
            host=f"localhost:{registry.status.host_port}",
            host_from_cluster_network=f"{registry.name}:{registry.status.container_port}",
            help=self.config.registry.help_url,
        )
