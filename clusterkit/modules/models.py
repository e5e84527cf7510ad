"""Data models for local cluster and registry management."""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

API_VERSION = "clusterkit.dev/v1alpha1"


class Product(str, Enum):
    """Supported cluster products."""
    KIND = 'kind'
    DOCKER_DESKTOP = 'docker-desktop'
    MINIKUBE = 'minikube'
    MICROK8S = 'microk8s'
    UNKNOWN = 'unknown'

    @classmethod
    def from_string(cls, value: str) -> 'Product':
        for product in cls:
            if product.value == value:
                return product
        return cls.UNKNOWN

    def default_cluster_name(self) -> str:
        """The context name a product uses when the caller gives none."""
        if self is Product.KIND:
            return 'kind-kind'
        return self.value

    def runs_on_docker(self) -> bool:
        """Whether the product needs a running Docker engine on this machine."""
        return self in (Product.KIND, Product.DOCKER_DESKTOP, Product.MINIKUBE)


class ApplyStage(str, Enum):
    """Stages of an apply, in the order they complete."""
    NOT_STARTED = 'not_started'
    TOOL_INSTALLED = 'tool_installed'
    ENGINE_READY = 'engine_ready'
    REGISTRY_READY = 'registry_ready'
    CLUSTER_EXISTS = 'cluster_exists'
    STATUS_POPULATED = 'status_populated'


_STAGE_ORDER = list(ApplyStage)


@dataclass
class LocalRegistryHosting:
    """The localRegistryHosting.v1 discovery document."""
    host: str = ''
    help: str = ''
    host_from_container_runtime: str = ''
    host_from_cluster_network: str = ''

    def to_dict(self) -> Dict[str, str]:
        result = {'host': self.host}
        if self.host_from_container_runtime:
            result['hostFromContainerRuntime'] = self.host_from_container_runtime
        if self.host_from_cluster_network:
            result['hostFromClusterNetwork'] = self.host_from_cluster_network
        if self.help:
            result['help'] = self.help
        return result

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, text: str) -> 'LocalRegistryHosting':
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError("localRegistryHosting.v1 must be a mapping")
        return cls(
            host=data.get('host', ''),
            help=data.get('help', ''),
            host_from_container_runtime=data.get('hostFromContainerRuntime', ''),
            host_from_cluster_network=data.get('hostFromClusterNetwork', ''),
        )


@dataclass
class ClusterStatus:
    """Observed cluster state. Recomputed on every read, never persisted."""
    creation_timestamp: Optional[datetime] = None
    current: bool = False
    cpus: int = 0
    local_registry_hosting: Optional[LocalRegistryHosting] = None


@dataclass
class Cluster:
    """A local Kubernetes cluster, keyed by its kubeconfig context name."""
    product: str = ''
    name: str = ''
    min_cpus: int = 0
    kubernetes_version: str = ''
    registry: str = ''
    status: ClusterStatus = field(default_factory=ClusterStatus)

    def deep_copy(self) -> 'Cluster':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {'current': self.status.current}
        if self.status.creation_timestamp:
            status['creationTimestamp'] = self.status.creation_timestamp.isoformat()
        if self.status.cpus:
            status['cpus'] = self.status.cpus
        if self.status.local_registry_hosting:
            status['localRegistryHosting'] = self.status.local_registry_hosting.to_dict()

        result: Dict[str, Any] = {
            'apiVersion': API_VERSION,
            'kind': 'Cluster',
            'name': self.name,
            'product': self.product,
        }
        if self.min_cpus:
            result['minCPUs'] = self.min_cpus
        if self.kubernetes_version:
            result['kubernetesVersion'] = self.kubernetes_version
        if self.registry:
            result['registry'] = self.registry
        result['status'] = status
        return result


@dataclass
class RegistryStatus:
    """Observed registry container state."""
    creation_timestamp: Optional[datetime] = None
    host_port: int = 0
    container_port: int = 0
    ip_address: str = ''
    container_id: str = ''
    networks: List[str] = field(default_factory=list)


@dataclass
class Registry:
    """A local image registry running as a container."""
    name: str
    port: int = 0
    status: RegistryStatus = field(default_factory=RegistryStatus)

    def deep_copy(self) -> 'Registry':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {
            'hostPort': self.status.host_port,
            'containerPort': self.status.container_port,
            'ipAddress': self.status.ip_address,
            'containerId': self.status.container_id,
            'networks': list(self.status.networks),
        }
        if self.status.creation_timestamp:
            status['creationTimestamp'] = self.status.creation_timestamp.isoformat()
        result: Dict[str, Any] = {
            'apiVersion': API_VERSION,
            'kind': 'Registry',
            'name': self.name,
        }
        if self.port:
            result['port'] = self.port
        result['status'] = status
        return result


@dataclass
class ClusterList:
    items: List[Cluster] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'apiVersion': API_VERSION,
            'kind': 'ClusterList',
            'items': [c.to_dict() for c in self.items],
        }


@dataclass
class RegistryList:
    items: List[Registry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'apiVersion': API_VERSION,
            'kind': 'RegistryList',
            'items': [r.to_dict() for r in self.items],
        }


@dataclass
class ApplyProgress:
    """Tracks how far an apply got for one cluster name.

    A retried apply with the same desired cluster resumes after the last
    completed stage instead of repeating it.
    """
    desired: Optional[Cluster] = None
    stage: ApplyStage = ApplyStage.NOT_STARTED
    registry: Optional[Registry] = None
    errors: List[str] = field(default_factory=list)

    def reached(self, stage: ApplyStage) -> bool:
        return _STAGE_ORDER.index(self.stage) >= _STAGE_ORDER.index(stage)

    def update_stage(self, stage: ApplyStage) -> None:
        """Advance to a stage. Never moves backwards."""
        if not self.reached(stage):
            self.stage = stage

    def add_error(self, error: str) -> None:
        self.errors.append(error)
