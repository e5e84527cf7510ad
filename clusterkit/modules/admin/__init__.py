"""
Backend adapters, one per cluster product.
"""
from .base import Admin, read_local_registry_hosting
from .docker_desktop import DockerDesktopAdmin
from .kind import KindAdmin
from .minikube import MinikubeAdmin

__all__ = [
    'Admin',
    'DockerDesktopAdmin',
    'KindAdmin',
    'MinikubeAdmin',
    'read_local_registry_hosting',
]
