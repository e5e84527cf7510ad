"""Field selectors over the fixed projection of cluster fields.

Supports ``key=value``, ``key==value`` and ``key!=value`` terms joined by
commas, e.g. ``product=kind,name!=kind-ci``.
"""
from dataclasses import dataclass
from typing import Dict, List

from .models import Cluster, Registry

CLUSTER_FIELDS = ("name", "product")
REGISTRY_FIELDS = ("name",)


@dataclass(frozen=True)
class Requirement:
    field: str
    value: str
    negate: bool = False

    def matches(self, fields: Dict[str, str]) -> bool:
        equal = fields.get(self.field, '') == self.value
        return not equal if self.negate else equal


class FieldSelector:
    """A parsed field selector. The empty selector matches everything."""

    def __init__(self, requirements: List[Requirement]):
        self.requirements = requirements

    @classmethod
    def parse(cls, text: str, allowed=CLUSTER_FIELDS) -> 'FieldSelector':
        requirements = []
        for term in (text or '').split(','):
            term = term.strip()
            if not term:
                continue
            if '!=' in term:
                key, value = term.split('!=', 1)
                negate = True
            elif '==' in term:
                key, value = term.split('==', 1)
                negate = False
            elif '=' in term:
                key, value = term.split('=', 1)
                negate = False
            else:
                raise ValueError(f"invalid field selector term: {term!r}")
            key = key.strip()
            if key not in allowed:
                raise ValueError(
                    f"field label not supported: {key!r} (supported: {', '.join(allowed)})")
            requirements.append(Requirement(field=key, value=value.strip(), negate=negate))
        return cls(requirements)

    def empty(self) -> bool:
        return not self.requirements

    def matches(self, fields: Dict[str, str]) -> bool:
        return all(r.matches(fields) for r in self.requirements)


def cluster_fields(cluster: Cluster) -> Dict[str, str]:
    return {"name": cluster.name, "product": cluster.product}


def registry_fields(registry: Registry) -> Dict[str, str]:
    return {"name": registry.name}
