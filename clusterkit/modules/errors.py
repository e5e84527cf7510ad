"""Exceptions raised by cluster and registry operations."""


class ClusterkitError(Exception):
    """Base class for clusterkit errors."""
    pass


class NotFoundError(ClusterkitError):
    """The requested cluster or registry does not exist."""

    def __init__(self, kind: str, name: str):
        super().__init__(f'{kind} "{name}" not found')
        self.kind = kind
        self.name = name


class NotSupportedError(ClusterkitError):
    """No backend is registered for the requested product."""

    def __init__(self, product: str):
        super().__init__(f"unsupported product: {product!r}")
        self.product = product


class NotInstalledError(ClusterkitError):
    """The native tool for a product is missing."""

    def __init__(self, tool: str, hint: str = ''):
        message = f"{tool} not installed"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message)
        self.tool = tool


class EngineUnavailableError(ClusterkitError):
    """The container engine did not answer after all retries."""
    pass


class CancelledError(ClusterkitError):
    """A wait loop was cancelled by the caller."""
    pass


class ClusterUnavailableError(ClusterkitError):
    """A recorded cluster never answered as a Kubernetes API endpoint."""
    pass
