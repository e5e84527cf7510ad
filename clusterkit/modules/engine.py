"""Container engine and Docker Desktop settings clients.

EngineClient covers the two engine calls clusterkit needs; DesktopClient
talks to Docker Desktop's private backend socket. Both have in-memory fakes
in the test suite.
"""
import logging
import os
import platform
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import docker
import httpx

from ..config import get_config

logger = logging.getLogger("clusterkit.engine")

# Keys of the flat settings view
SETTING_CPU = 'cpu'
SETTING_K8S_ENABLED = 'k8sEnabled'


@dataclass
class EngineInfo:
    """Engine details from ``docker info``."""
    ncpu: int = 0
    os_type: str = ''


class EngineClient(ABC):
    """The container engine API subset."""

    @abstractmethod
    def server_version(self) -> str:
        """Return the engine version. Raises if the engine is unreachable."""
        ...

    @abstractmethod
    def info(self) -> EngineInfo:
        ...


class DockerEngineClient(EngineClient):
    """EngineClient backed by the docker SDK."""

    def __init__(self, client: Optional[docker.DockerClient] = None):
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        # from_env() fails when no engine is reachable, so connect lazily
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def server_version(self) -> str:
        return self.client.version().get('Version', '')

    def info(self) -> EngineInfo:
        data = self.client.info()
        return EngineInfo(ncpu=int(data.get('NCPU', 0)), os_type=data.get('OSType', ''))


class DesktopClient(ABC):
    """Docker Desktop's private settings interface."""

    @abstractmethod
    def read_settings(self) -> Dict[str, Any]:
        """Return the flat settings view with ``cpu`` and ``k8sEnabled`` keys."""
        ...

    @abstractmethod
    def write_settings(self, settings: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def reset_kubernetes(self) -> None:
        """Wipe and recreate the built-in Kubernetes cluster."""
        ...

    @abstractmethod
    def launch(self) -> None:
        """Start the Docker Desktop application. Returns without waiting."""
        ...


def host_os() -> str:
    """Normalized OS name: darwin, windows or linux."""
    return platform.system().lower()


class DockerDesktopClient(DesktopClient):
    """DesktopClient speaking HTTP over the Docker Desktop backend sockets."""

    def __init__(self, socket_dir: Optional[str] = None, timeout: float = 30.0, os_name: Optional[str] = None):
        socket_dir = socket_dir or get_config().engine.desktop_socket_dir
        self.native_socket = os.path.join(socket_dir, "backend.native.sock")
        self.backend_socket = os.path.join(socket_dir, "backend.sock")
        self.timeout = timeout
        self.os_name = os_name or host_os()

    def _client(self, socket_path: str) -> httpx.Client:
        transport = httpx.HTTPTransport(uds=socket_path)
        return httpx.Client(transport=transport, base_url="http://localhost", timeout=self.timeout)

    def read_settings(self) -> Dict[str, Any]:
        with self._client(self.native_socket) as client:
            resp = client.get("/settings")
            resp.raise_for_status()
            raw = resp.json()
        return flatten_settings(raw)

    def write_settings(self, settings: Dict[str, Any]) -> None:
        payload = nest_settings(settings)
        logger.debug(f"Writing Docker Desktop settings: {payload}")
        with self._client(self.native_socket) as client:
            resp = client.post("/settings", json=payload)
            resp.raise_for_status()

    def reset_kubernetes(self) -> None:
        with self._client(self.backend_socket) as client:
            resp = client.post("/kubernetes/reset")
            resp.raise_for_status()

    def launch(self) -> None:
        if self.os_name == "darwin":
            subprocess.run(["open", "-a", "Docker"], check=True)
        elif self.os_name == "windows":
            subprocess.run(
                ["cmd", "/C", "start", "", r"C:\Program Files\Docker\Docker\Docker Desktop.exe"],
                check=True,
            )
        else:
            raise RuntimeError(f"Cannot launch Docker Desktop on {self.os_name}")


def _value(raw: Dict[str, Any], *path: str) -> Any:
    node: Any = raw
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    if isinstance(node, dict):
        return node.get('value')
    return node


def flatten_settings(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map the nested backend payload onto the flat settings view."""
    settings: Dict[str, Any] = {}
    cpu = _value(raw, 'vm', 'resources', 'cpus')
    if cpu is not None:
        settings[SETTING_CPU] = int(cpu)
    enabled = _value(raw, 'vm', 'kubernetes', 'enabled')
    if enabled is not None:
        settings[SETTING_K8S_ENABLED] = bool(enabled)
    return settings


def nest_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Inverse of flatten_settings, for the keys that are set."""
    vm: Dict[str, Any] = {}
    if SETTING_CPU in settings:
        vm['resources'] = {'cpus': {'value': settings[SETTING_CPU]}}
    if SETTING_K8S_ENABLED in settings:
        vm['kubernetes'] = {'enabled': {'value': settings[SETTING_K8S_ENABLED]}}
    return {'vm': vm}
