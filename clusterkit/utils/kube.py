"""Kubeconfig context store and cached Kubernetes API clients."""
import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from kubernetes import client as k8s_client
from kubernetes.client.rest import ApiException
from kubernetes.config import new_client_from_config_dict

from ..config import get_config

logger = logging.getLogger("clusterkit.kube")

DEFAULT_KUBECONFIG = "~/.kube/config"


@dataclass
class Kubeconfig:
    """Merged view of the recorded kubeconfig contexts.

    Each mapping keeps the entry body as it appears in the file, so
    contexts[name] holds ``cluster``, ``user`` and optionally ``namespace``.
    """
    current_context: str = ''
    contexts: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    clusters: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    users: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    sources: Dict[str, Path] = field(default_factory=dict)

    def server(self, context_name: str) -> str:
        ct = self.contexts.get(context_name) or {}
        return (self.clusters.get(ct.get('cluster', '')) or {}).get('server', '')

    def to_dict(self) -> Dict[str, Any]:
        """Render as a kubeconfig document the kubernetes client can load."""
        return {
            'apiVersion': 'v1',
            'kind': 'Config',
            'current-context': self.current_context,
            'contexts': [{'name': n, 'context': c} for n, c in self.contexts.items()],
            'clusters': [{'name': n, 'cluster': c} for n, c in self.clusters.items()],
            'users': [{'name': n, 'user': u} for n, u in self.users.items()],
        }


def kubeconfig_paths(path: Optional[str] = None) -> List[Path]:
    """Resolve kubeconfig files: explicit path, then $KUBECONFIG, then the default."""
    path = path or get_config().kube.kubeconfig
    if path:
        return [Path(os.path.expanduser(path))]
    env = os.environ.get("KUBECONFIG", "")
    if env:
        return [Path(os.path.expanduser(p)) for p in env.split(os.pathsep) if p]
    return [Path(os.path.expanduser(DEFAULT_KUBECONFIG))]


class KubeconfigStore:
    """Reads and edits the recorded kubeconfig contexts.

    Multiple files merge the way kubectl merges them: the first file to
    define a name wins.
    """

    def __init__(self, paths: Optional[List[Path]] = None):
        self.paths = paths if paths is not None else kubeconfig_paths()

    def load(self) -> Kubeconfig:
        merged = Kubeconfig()
        for path in self.paths:
            data = self._read(path)
            if not merged.current_context and data.get('current-context'):
                merged.current_context = data['current-context']
            for section, target in (('contexts', merged.contexts),
                                    ('clusters', merged.clusters),
                                    ('users', merged.users)):
                body_key = section[:-1]
                for entry in data.get(section) or []:
                    name = entry.get('name')
                    if not name or name in target:
                        continue
                    target[name] = entry.get(body_key) or {}
                    if section == 'contexts':
                        merged.sources[name] = path
        return merged

    def remove_context(self, name: str) -> bool:
        """Delete a context from the file that records it.

        Returns:
            bool: True if a context was removed, False if it was already absent
        """
        for path in self.paths:
            data = self._read(path)
            contexts = data.get('contexts') or []
            remaining = [c for c in contexts if c.get('name') != name]
            if len(remaining) == len(contexts):
                continue
            data['contexts'] = remaining
            if data.get('current-context') == name:
                data['current-context'] = ''
            self._write(path, data)
            logger.info(f"Removed context {name} from {path}")
            return True
        return False

    @staticmethod
    def _read(path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Invalid kubeconfig {path}: expected a mapping")
        return data

    @staticmethod
    def _write(path: Path, data: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.chmod(path, 0o600)


class ClusterClient(ABC):
    """The subset of the Kubernetes API clusterkit uses."""

    @abstractmethod
    def node_creation_timestamps(self) -> List[datetime]:
        ...

    @abstractmethod
    def server_version(self) -> str:
        """Return the API server's git version, e.g. ``v1.27.3``."""
        ...

    @abstractmethod
    def read_config_map(self, namespace: str, name: str) -> Optional[Dict[str, str]]:
        """Return ConfigMap data, or None if it does not exist."""
        ...

    @abstractmethod
    def apply_config_map(self, namespace: str, name: str, data: Dict[str, str]) -> None:
        ...


class KubernetesClusterClient(ClusterClient):
    """ClusterClient backed by the official kubernetes client."""

    def __init__(self, api_client: k8s_client.ApiClient):
        self.api_client = api_client
        self.core = k8s_client.CoreV1Api(api_client)

    @classmethod
    def from_config(cls, kubeconfig: Kubeconfig, context: str) -> 'KubernetesClusterClient':
        api_client = new_client_from_config_dict(
            config_dict=kubeconfig.to_dict(), context=context, persist_config=False)
        return cls(api_client)

    def node_creation_timestamps(self) -> List[datetime]:
        nodes = self.core.list_node().items
        return [n.metadata.creation_timestamp for n in nodes if n.metadata.creation_timestamp]

    def server_version(self) -> str:
        return k8s_client.VersionApi(self.api_client).get_code().git_version

    def read_config_map(self, namespace: str, name: str) -> Optional[Dict[str, str]]:
        try:
            cm = self.core.read_namespaced_config_map(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return dict(cm.data or {})

    def apply_config_map(self, namespace: str, name: str, data: Dict[str, str]) -> None:
        body = k8s_client.V1ConfigMap(
            metadata=k8s_client.V1ObjectMeta(name=name, namespace=namespace),
            data=data,
        )
        try:
            self.core.replace_namespaced_config_map(name=name, namespace=namespace, body=body)
        except ApiException as e:
            if e.status != 404:
                raise
            self.core.create_namespaced_config_map(namespace=namespace, body=body)


ClientLoader = Callable[[Kubeconfig, str], ClusterClient]
_Fingerprint = Tuple[str, str, str]


class ClientCache:
    """One ClusterClient per context, built lazily under a lock.

    Entries are keyed by context name plus the resolved server and user, so a
    context that was recreated against a new endpoint gets a fresh client.
    """

    def __init__(self, client_loader: ClientLoader = KubernetesClusterClient.from_config):
        self.client_loader = client_loader
        self._clients: Dict[_Fingerprint, ClusterClient] = {}
        self._lock = threading.Lock()

    def get(self, kubeconfig: Kubeconfig, name: str) -> ClusterClient:
        if name not in kubeconfig.contexts:
            raise KeyError(f"context {name!r} not recorded")
        key = (name, kubeconfig.server(name), kubeconfig.contexts[name].get('user', ''))
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                client = self.client_loader(kubeconfig, name)
                self._clients[key] = client
            return client

    def evict(self, name: str) -> None:
        with self._lock:
            for key in [k for k in self._clients if k[0] == name]:
                del self._clients[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)
