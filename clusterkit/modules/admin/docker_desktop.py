"""Docker Desktop's built-in Kubernetes.

There is nothing to install and nothing to name: the cluster is a toggle in
Docker Desktop's settings, reconciled by DockerMachine before create runs.
"""
import logging
from typing import Optional

from ...config import ClusterkitConfig, get_config
from ...utils import RetryError, wait_until
from ..engine import SETTING_K8S_ENABLED
from ..errors import EngineUnavailableError, NotInstalledError
from ..machine import DockerMachine
from ..models import Cluster, LocalRegistryHosting, Registry
from .base import Admin, ClientFactory

logger = logging.getLogger("clusterkit.admin.docker_desktop")


class DockerDesktopAdmin(Admin):

    def __init__(
        self,
        machine: DockerMachine,
        client_factory: ClientFactory,
        config: Optional[ClusterkitConfig] = None,
    ):
        self.machine = machine
        self.client_factory = client_factory
        self.config = config or get_config()

    def ensure_installed(self) -> None:
        if not self.machine.is_desktop_platform():
            raise NotInstalledError(
                "Docker Desktop", "docker-desktop clusters are only available on macOS and Windows")

    def validate(self, desired: Cluster) -> None:
        if desired.kubernetes_version:
            raise ValueError(
                "Docker Desktop does not support choosing a Kubernetes version. "
                "Remove kubernetesVersion or pick another product.")
        if desired.registry:
            raise ValueError("Connecting a registry to docker-desktop is not supported")

    def create(self, desired: Cluster, registry: Optional[Registry]) -> None:
        self.validate(desired)
        if registry is not None:
            raise ValueError("Connecting a registry to docker-desktop is not supported")

        logger.info("Resetting Docker Desktop Kubernetes cluster")
        self.machine.desktop.reset_kubernetes()

        def api_ready() -> bool:
            self.client_factory(desired.name).server_version()
            return True

        try:
            wait_until(
                api_ready,
                attempts=self.config.engine.restart_wait_attempts,
                interval=self.config.engine.poll_interval,
                sleep=self.machine.sleep,
                cancel=self.machine.cancel,
                description="Docker Desktop Kubernetes API",
            )
        except RetryError as e:
            raise EngineUnavailableError(str(e)) from e

    def delete(self, cluster: Cluster) -> None:
        settings = self.machine.desktop.read_settings()
        if settings.get(SETTING_K8S_ENABLED) is not True:
            logger.info("Docker Desktop Kubernetes already disabled")
            return
        self.machine.desktop.reset_kubernetes()
        self.machine.disable_k8s()

    def local_registry_hosting(self, registry: Registry) -> LocalRegistryHosting:
        return LocalRegistryHosting(
            host=f"localhost:{registry.status.host_port}",
            help=self.config.registry.help_url,
        )
