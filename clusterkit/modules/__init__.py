"""
Cluster and registry management modules.
"""
from .cluster import Controller, default_controller
from .models import Cluster, ClusterList, Product, Registry, RegistryList
from .registry import DockerRegistryController, RegistryController

__all__ = [
    'Cluster',
    'ClusterList',
    'Controller',
    'DockerRegistryController',
    'Product',
    'Registry',
    'RegistryController',
    'RegistryList',
    'default_controller',
]
