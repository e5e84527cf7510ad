from . import apply, create, delete, get

__all__ = ['apply', 'create', 'delete', 'get']
