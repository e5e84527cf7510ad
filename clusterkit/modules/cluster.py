"""Cluster controller.

Reconciles a desired Cluster against the clusters recorded in kubeconfig,
driving the product backend, the Docker machine and the registry
coordinator. Apply is idempotent: running it twice with the same desired cluster
creates at most one cluster and writes Docker Desktop settings at most once.
"""
import logging
import sys
from typing import Any, Dict, Optional, TextIO

from ..config import ClusterkitConfig, get_config
from ..utils import RetryError, wait_until
from ..utils.kube import ClientCache, ClusterClient, KubeconfigStore
from .admin import Admin, DockerDesktopAdmin, KindAdmin, MinikubeAdmin, read_local_registry_hosting
from .engine import DockerDesktopClient, DockerEngineClient
from .errors import ClusterUnavailableError, NotFoundError, NotSupportedError
from .machine import DockerMachine
from .models import (
    ApplyProgress,
    ApplyStage,
    Cluster,
    ClusterList,
    ClusterStatus,
    Product,
    Registry,
)
from .registry import DockerRegistryController, RegistryController
from .selector import FieldSelector, Requirement, cluster_fields

logger = logging.getLogger("clusterkit.cluster")


def product_from_context(context: Dict[str, Any], cluster: Dict[str, Any]) -> Product:
    """Infer the product that created a kubeconfig context from its shape."""
    cluster_name = context.get('cluster', '')
    if cluster_name in ('docker-desktop', 'docker-for-desktop'):
        return Product.DOCKER_DESKTOP
    if cluster_name.startswith('kind-'):
        return Product.KIND
    if cluster_name == 'microk8s-cluster':
        return Product.MICROK8S
    for ext in cluster.get('extensions') or []:
        provider = (ext.get('extension') or {}).get('provider', '')
        if provider == 'minikube.sigs.k8s.io':
            return Product.MINIKUBE
    if cluster_name == 'minikube':
        return Product.MINIKUBE
    return Product.UNKNOWN


def _same_version(a: str, b: str) -> bool:
    return a.lstrip('v') == b.lstrip('v')


class Controller:
    """Lists, reads, applies and deletes local clusters."""

    def __init__(
        self,
        store: KubeconfigStore,
        machine: DockerMachine,
        registry_ctl: RegistryController,
        admins: Optional[Dict[Product, Admin]] = None,
        client_cache: Optional[ClientCache] = None,
        err_out: Optional[TextIO] = None,
        config: Optional[ClusterkitConfig] = None,
    ):
        self.store = store
        self.machine = machine
        self.registry_ctl = registry_ctl
        self.admins: Dict[Product, Admin] = dict(admins or {})
        # An empty cache is falsy
        self.client_cache = client_cache if client_cache is not None else ClientCache()
        self.err_out = err_out if err_out is not None else sys.stderr
        self.config = config or get_config()
        self.kubeconfig = store.load()
        self._progress: Dict[str, ApplyProgress] = {}

    def admin(self, product: str) -> Admin:
        admin = self.admins.get(Product.from_string(product))
        if admin is None:
            raise NotSupportedError(product)
        return admin

    def client(self, name: str) -> ClusterClient:
        return self.client_cache.get(self.kubeconfig, name)

    def fresh_client(self, name: str) -> ClusterClient:
        """Client for a context a native tool may have just rewritten."""
        self._reload(name)
        return self.client(name)

    def progress(self, name: str) -> Optional[ApplyProgress]:
        return self._progress.get(name)

    def _reload(self, name: str) -> None:
        self.kubeconfig = self.store.load()
        self.client_cache.evict(name)

    def _announce(self, message: str) -> None:
        logger.info(message)
        self.err_out.write(f"{message}\n")

    def populate_cluster(self, cluster: Cluster, registries_by_host: Optional[Dict[str, str]] = None) -> None:
        """Fill in observed status from the cluster itself.

        Raises whatever the API client raises; callers decide whether that is fatal.
        """
        client = self.client(cluster.name)
        version = client.server_version()
        timestamps = client.node_creation_timestamps()

        cluster.kubernetes_version = version
        cluster.status.creation_timestamp = min(timestamps) if timestamps else None
        if Product.from_string(cluster.product).runs_on_docker():
            cluster.status.cpus = self.machine.engine_cpus()

        try:
            hosting = read_local_registry_hosting(client)
        except Exception as e:
            logger.debug(f"Reading local-registry-hosting off cluster {cluster.name}: {e}")
            hosting = None
        if hosting is not None:
            cluster.status.local_registry_hosting = hosting
            if registries_by_host and hosting.host in registries_by_host:
                cluster.registry = registries_by_host[hosting.host]

    def _registries_by_host(self) -> Dict[str, str]:
        try:
            registries = self.registry_ctl.list()
        except Exception as e:
            logger.debug(f"Listing registries: {e}")
            return {}
        return {f"localhost:{r.status.host_port}": r.name for r in registries.items if r.status.host_port}

    def _list(self, selector: FieldSelector) -> ClusterList:
        result = ClusterList()
        registries_by_host = None
        for name in sorted(self.kubeconfig.contexts):
            context = self.kubeconfig.contexts[name]
            cluster_body = self.kubeconfig.clusters.get(context.get('cluster', '')) or {}
            cluster = Cluster(
                name=name,
                product=product_from_context(context, cluster_body).value,
                status=ClusterStatus(current=(name == self.kubeconfig.current_context)),
            )
            if not selector.matches(cluster_fields(cluster)):
                continue
            result.items.append(cluster)

            if registries_by_host is None:
                registries_by_host = self._registries_by_host()
            try:
                self.populate_cluster(cluster, registries_by_host)
            except Exception as e:
                logger.warning(f"Reading info off cluster {name}: {e}")
        return result

    def list(self, field_selector: str = '') -> ClusterList:
        """All recorded clusters, sorted by name, with best-effort status."""
        return self._list(FieldSelector.parse(field_selector))

    def get(self, name: str) -> Cluster:
        clusters = self._list(FieldSelector([Requirement(field="name", value=name)]))
        if not clusters.items:
            raise NotFoundError("cluster", name)
        return clusters.items[0]

    def _get_or_none(self, name: str) -> Optional[Cluster]:
        try:
            return self.get(name)
        except NotFoundError:
            return None

    def _wait_for_healthy(self, cluster: Cluster) -> Cluster:
        """Poll a recorded but unreachable cluster until its API answers.

        Raises:
            ClusterUnavailableError: the cluster never answered
        """
        name = cluster.name
        logger.info(f"Cluster {name} is recorded but not answering, waiting for it")

        def healthy() -> Optional[Cluster]:
            self.client_cache.evict(name)
            observed = self.get(name)
            return observed if observed.status.creation_timestamp is not None else None

        try:
            return wait_until(
                healthy,
                attempts=self.config.kube.healthy_wait_attempts,
                interval=self.config.engine.poll_interval,
                sleep=self.machine.sleep,
                cancel=self.machine.cancel,
                description=f"cluster {name} to become healthy",
            )
        except RetryError as e:
            raise ClusterUnavailableError(
                f"Cluster {name} exists but is not reachable. Start it, or delete it with "
                f"'clusterkit delete cluster {name}' and apply again") from e

    def _delete_with(self, admin: Admin, cluster: Cluster) -> None:
        admin.delete(cluster)
        self._reload(cluster.name)
        if cluster.name in self.kubeconfig.contexts:
            self.store.remove_context(cluster.name)
            self._reload(cluster.name)

    def delete(self, name: str) -> Cluster:
        """Delete a recorded cluster with its product's backend."""
        cluster = self.get(name)
        self._delete_with(self.admin(cluster.product), cluster)
        logger.info(f"Deleted cluster {name}")
        return cluster

    def _progress_for(self, desired: Cluster) -> ApplyProgress:
        progress = self._progress.get(desired.name)
        if progress is None or progress.desired != desired:
            progress = ApplyProgress(desired=desired.deep_copy())
            self._progress[desired.name] = progress
        elif progress.stage != ApplyStage.NOT_STARTED:
            logger.info(f"Resuming apply of {desired.name} after stage {progress.stage.value}")
        return progress

    def apply(self, desired: Cluster) -> Cluster:
        """Create or update a cluster to match ``desired``.

        Returns:
            Cluster: the desired cluster with freshly observed status

        Raises:
            NotSupportedError: no backend for the product
            NotInstalledError: the product's tool is missing
            EngineUnavailableError: the Docker engine never answered
            ClusterUnavailableError: the cluster is recorded but never answered
        """
        if not desired.product:
            raise ValueError("product field must be non-empty")

        desired = desired.deep_copy()
        desired.status = ClusterStatus()
        product = Product.from_string(desired.product)
        if not desired.name:
            desired.name = product.default_cluster_name()

        admin = self.admin(desired.product)
        admin.validate(desired)
        progress = self._progress_for(desired)
        self.kubeconfig = self.store.load()
        try:
            result = self._apply(desired, product, admin, progress)
        except Exception as e:
            progress.add_error(str(e))
            raise
        self._progress.pop(desired.name, None)
        return result

    def _apply(self, desired: Cluster, product: Product, admin: Admin, progress: ApplyProgress) -> Cluster:
        if not progress.reached(ApplyStage.TOOL_INSTALLED):
            admin.ensure_installed()
            progress.update_stage(ApplyStage.TOOL_INSTALLED)

        if not progress.reached(ApplyStage.ENGINE_READY):
            if product.runs_on_docker():
                self.machine.start()
                self.machine.reconcile(desired)
            progress.update_stage(ApplyStage.ENGINE_READY)

        # A recorded context is never created over, only waited on or replaced
        existing = self._get_or_none(desired.name)
        if (existing is not None and existing.product == desired.product
                and existing.status.creation_timestamp is None):
            existing = self._wait_for_healthy(existing)

        if existing is not None and existing.product != desired.product:
            if existing.product == Product.UNKNOWN.value:
                raise ValueError(
                    f"Cluster {desired.name} already exists and was not created by a known product")
            self._announce(
                f"Deleting cluster {desired.name} because desired product ({desired.product}) "
                f"does not match current ({existing.product})")
            self._delete_with(self.admin(existing.product), existing)
            existing = None
        elif (existing is not None and desired.kubernetes_version and existing.kubernetes_version
              and not _same_version(desired.kubernetes_version, existing.kubernetes_version)):
            self._announce(
                f"Deleting cluster {desired.name} because desired Kubernetes version "
                f"({desired.kubernetes_version}) does not match current ({existing.kubernetes_version})")
            self._delete_with(admin, existing)
            existing = None

        if existing is not None:
            progress.update_stage(ApplyStage.STATUS_POPULATED)
            return self._merge(desired, existing)

        # Repeated on resume, the container may be gone
        if desired.registry:
            progress.registry = self.registry_ctl.apply(Registry(name=desired.registry))
        progress.update_stage(ApplyStage.REGISTRY_READY)

        registry = progress.registry
        admin.create(desired, registry)
        self._reload(desired.name)
        progress.update_stage(ApplyStage.CLUSTER_EXISTS)

        result = self._merge(desired, self.get(desired.name))
        if registry is not None:
            result.registry = registry.name
            result.status.local_registry_hosting = admin.local_registry_hosting(registry)
        progress.update_stage(ApplyStage.STATUS_POPULATED)
        return result

    def _merge(self, desired: Cluster, observed: Cluster) -> Cluster:
        result = desired.deep_copy()
        result.status = observed.status
        result.kubernetes_version = desired.kubernetes_version or observed.kubernetes_version
        result.registry = desired.registry or observed.registry
        return result


def default_controller(err_out: Optional[TextIO] = None) -> Controller:
    """Controller wired to the real kubeconfig, Docker engine and product tools."""
    engine = DockerEngineClient()
    machine = DockerMachine(engine, DockerDesktopClient(), err_out=err_out)
    controller = Controller(
        store=KubeconfigStore(),
        machine=machine,
        registry_ctl=DockerRegistryController(engine),
        err_out=err_out,
    )
    controller.admins = {
        Product.KIND: KindAdmin(engine, controller.fresh_client),
        Product.DOCKER_DESKTOP: DockerDesktopAdmin(machine, controller.fresh_client),
        Product.MINIKUBE: MinikubeAdmin(engine, controller.fresh_client),
    }
    return controller
