"""clusterkit - local Kubernetes clusters and registries."""

__version__ = "0.1.0"
