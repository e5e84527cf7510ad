"""In-memory fakes for every collaborator of the cluster Controller."""
import copy
import io
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from clusterkit.config import ClusterkitConfig
from clusterkit.modules.admin import Admin
from clusterkit.modules.cluster import Controller
from clusterkit.modules.engine import DesktopClient, EngineClient, EngineInfo
from clusterkit.modules.errors import NotInstalledError
from clusterkit.modules.machine import DockerMachine
from clusterkit.modules.models import (
    Cluster,
    LocalRegistryHosting,
    Product,
    Registry,
    RegistryList,
    RegistryStatus,
)
from clusterkit.modules.registry import RegistryController
from clusterkit.utils.kube import ClientCache, ClusterClient, Kubeconfig

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeEngineClient(EngineClient):

    def __init__(self, started: bool = False, ncpu: int = 1):
        self.started = started
        self.ncpu = ncpu

    def server_version(self) -> str:
        if not self.started:
            raise RuntimeError("not started")
        return "24.0.7"

    def info(self) -> EngineInfo:
        if not self.started:
            raise RuntimeError("not started")
        return EngineInfo(ncpu=self.ncpu)


class FakeDesktopClient(DesktopClient):

    def __init__(self, engine: FakeEngineClient, launch_starts_engine: bool = True):
        self.engine = engine
        self.launch_starts_engine = launch_starts_engine
        self.settings: Dict = {}
        self.launched = False
        self.write_count = 0
        self.reset_count = 0

    def read_settings(self) -> Dict:
        return dict(self.settings)

    def write_settings(self, settings: Dict) -> None:
        self.settings = dict(settings)
        self.engine.ncpu = settings.get("cpu", self.engine.ncpu)
        self.write_count += 1

    def reset_kubernetes(self) -> None:
        self.reset_count += 1

    def launch(self) -> None:
        self.launched = True
        self.settings = {"cpu": self.engine.ncpu}
        if self.launch_starts_engine:
            self.engine.started = True


class FakeClusterClient(ClusterClient):

    def __init__(self, timestamps: Optional[List[datetime]] = None, version: str = "v1.19.1",
                 fail: bool = False, fail_calls: int = 0):
        self.timestamps = list(timestamps or [])
        self.version = version
        self.fail = fail
        # server_version fails this many times before answering
        self.fail_calls = fail_calls
        self.config_maps: Dict = {}

    def node_creation_timestamps(self) -> List[datetime]:
        if self.fail:
            raise RuntimeError("connection refused")
        return list(self.timestamps)

    def server_version(self) -> str:
        if self.fail:
            raise RuntimeError("connection refused")
        if self.fail_calls:
            self.fail_calls -= 1
            raise RuntimeError("connection refused")
        return self.version

    def read_config_map(self, namespace: str, name: str):
        return self.config_maps.get((namespace, name))

    def apply_config_map(self, namespace: str, name: str, data: Dict[str, str]) -> None:
        self.config_maps[(namespace, name)] = dict(data)


class FakeKubeconfigStore:

    def __init__(self, kubeconfig: Kubeconfig):
        self.kubeconfig = kubeconfig
        self.load_count = 0

    def load(self) -> Kubeconfig:
        self.load_count += 1
        return copy.deepcopy(self.kubeconfig)

    def add_context(self, name: str, cluster: str, server: str = '') -> None:
        self.kubeconfig.contexts[name] = {'cluster': cluster, 'user': name}
        self.kubeconfig.clusters[cluster] = {'server': server or f"https://{name}.localhost"}
        self.kubeconfig.current_context = name

    def remove_context(self, name: str) -> bool:
        if name not in self.kubeconfig.contexts:
            return False
        del self.kubeconfig.contexts[name]
        if self.kubeconfig.current_context == name:
            self.kubeconfig.current_context = ''
        return True


class FakeAdmin(Admin):
    """Records calls; create records a context backed by a running fake cluster."""

    def __init__(self, fixture: 'Fixture', product: Product, installed: bool = True, fail_create: int = 0):
        self.fixture = fixture
        self.product = product
        self.installed = installed
        self.fail_create = fail_create
        self.install_checks = 0
        self.created: Optional[Cluster] = None
        self.created_registry: Optional[Registry] = None
        self.create_count = 0
        self.deleted: Optional[Cluster] = None

    def ensure_installed(self) -> None:
        self.install_checks += 1
        if not self.installed:
            raise NotInstalledError(self.product.value)

    def create(self, desired: Cluster, registry: Optional[Registry]) -> None:
        if self.fail_create:
            self.fail_create -= 1
            raise RuntimeError("create failed")
        self.fixture.events.append(f"create:{desired.name}")
        self.created = desired.deep_copy()
        self.created_registry = registry.deep_copy() if registry else None
        self.create_count += 1

        cluster_name = "docker-desktop" if self.product is Product.DOCKER_DESKTOP else desired.name
        self.fixture.store.add_context(desired.name, cluster_name)
        self.fixture.clients[desired.name] = FakeClusterClient(
            timestamps=[NOW], version=desired.kubernetes_version or "v1.19.1")

    def delete(self, cluster: Cluster) -> None:
        self.fixture.events.append(f"delete:{cluster.name}")
        self.deleted = cluster.deep_copy()
        self.fixture.store.remove_context(cluster.name)

    def local_registry_hosting(self, registry: Registry) -> LocalRegistryHosting:
        return LocalRegistryHosting(
            host=f"localhost:{registry.status.host_port}",
            help="https://github.com/clusterkit/clusterkit",
        )


class FakeRegistryController(RegistryController):

    def __init__(self, events: List[str]):
        self.events = events
        self.last_apply: Optional[Registry] = None

    def list(self, field_selector: str = '') -> RegistryList:
        result = RegistryList()
        if self.last_apply is not None:
            result.items.append(self._realized(self.last_apply))
        return result

    def apply(self, desired: Registry) -> Registry:
        self.events.append(f"registry.apply:{desired.name}")
        self.last_apply = desired.deep_copy()
        return self._realized(desired)

    @staticmethod
    def _realized(desired: Registry) -> Registry:
        realized = desired.deep_copy()
        realized.status = RegistryStatus(
            container_port=5000,
            container_id="fake-container-id",
            host_port=5000,
            ip_address="172.0.0.2",
            networks=["bridge"],
        )
        return realized


class Fixture:

    def __init__(self, os_name: str = "darwin"):
        self.events: List[str] = []
        self.err_out = io.StringIO()
        self.sleeps: List[float] = []
        self.config = ClusterkitConfig()

        self.engine = FakeEngineClient(ncpu=1)
        self.desktop = FakeDesktopClient(self.engine)
        self.machine = DockerMachine(
            self.engine,
            self.desktop,
            os_name=os_name,
            sleep=self.sleeps.append,
            err_out=self.err_out,
            config=self.config,
        )

        self.store = FakeKubeconfigStore(Kubeconfig(
            current_context="microk8s",
            contexts={
                "microk8s": {"cluster": "microk8s-cluster", "user": "admin"},
                "docker-desktop": {"cluster": "docker-desktop", "user": "docker-desktop"},
            },
            clusters={
                "microk8s-cluster": {"server": "http://microk8s.localhost/"},
                "docker-desktop": {"server": "http://docker-desktop.localhost/"},
            },
        ))
        self.clients: Dict[str, FakeClusterClient] = {
            "microk8s": FakeClusterClient(timestamps=[NOW]),
            "docker-desktop": FakeClusterClient(timestamps=[NOW]),
        }
        self.loaded_clients: List[str] = []
        self.client_cache = ClientCache(self._load_client)
        self.registry_ctl = FakeRegistryController(self.events)
        self.controller = Controller(
            store=self.store,
            machine=self.machine,
            registry_ctl=self.registry_ctl,
            client_cache=self.client_cache,
            err_out=self.err_out,
            config=self.config,
        )

    def _load_client(self, kubeconfig: Kubeconfig, name: str) -> ClusterClient:
        self.loaded_clients.append(name)
        return self.clients.setdefault(name, FakeClusterClient())

    def new_fake_admin(self, product: Product, **kwargs) -> FakeAdmin:
        admin = FakeAdmin(self, product, **kwargs)
        self.controller.admins[product] = admin
        return admin


@pytest.fixture
def f():
    return Fixture()


@pytest.fixture
def linux_fixture():
    return Fixture(os_name="linux")
