# clusterkit/utils/normalize.py
"""Load Cluster and Registry documents from YAML files."""
import sys
from typing import Any, Dict, List, Union

import yaml
from jsonschema import ValidationError, validate

from ..modules.models import API_VERSION, Cluster, Product, Registry

CLUSTER_SCHEMA = {
    "type": "object",
    "properties": {
        "apiVersion": {"type": "string", "const": API_VERSION},
        "kind": {"type": "string", "const": "Cluster"},
        "name": {"type": "string"},
        "product": {"type": "string", "enum": [p.value for p in Product if p is not Product.UNKNOWN]},
        "minCPUs": {"type": "integer", "minimum": 0},
        "kubernetesVersion": {"type": "string"},
        "registry": {"type": "string"},
        "status": {"type": "object"},
    },
    "required": ["kind", "product"],
    "additionalProperties": False,
}

REGISTRY_SCHEMA = {
    "type": "object",
    "properties": {
        "apiVersion": {"type": "string", "const": API_VERSION},
        "kind": {"type": "string", "const": "Registry"},
        "name": {"type": "string", "minLength": 1},
        "port": {"type": "integer", "minimum": 0, "maximum": 65535},
        "status": {"type": "object"},
    },
    "required": ["kind", "name"],
    "additionalProperties": False,
}

Resource = Union[Cluster, Registry]


def normalize_cluster_doc(doc: Dict[str, Any]) -> Cluster:
    validate(instance=doc, schema=CLUSTER_SCHEMA)
    return Cluster(
        name=doc.get("name", ""),
        product=doc["product"],
        min_cpus=doc.get("minCPUs", 0),
        kubernetes_version=doc.get("kubernetesVersion", ""),
        registry=doc.get("registry", ""),
    )


def normalize_registry_doc(doc: Dict[str, Any]) -> Registry:
    validate(instance=doc, schema=REGISTRY_SCHEMA)
    return Registry(name=doc["name"], port=doc.get("port", 0))


def normalize_doc(doc: Any) -> Resource:
    if not isinstance(doc, dict):
        raise ValueError(f"❌ Expected a mapping, got {type(doc).__name__}")
    kind = doc.get("kind")
    if kind == "Cluster":
        return normalize_cluster_doc(doc)
    if kind == "Registry":
        return normalize_registry_doc(doc)
    raise ValueError(f"❌ Unknown kind {kind!r}; expected Cluster or Registry")


def load_resources(text: str) -> List[Resource]:
    """Parse every YAML document in ``text``, skipping empty ones."""
    return [normalize_doc(doc) for doc in yaml.safe_load_all(text) if doc is not None]


def load_resource_file(path: str) -> List[Resource]:
    if path == "-":
        return load_resources(sys.stdin.read())
    with open(path) as f:
        return load_resources(f.read())


# Optional CLI entrypoint
if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python -m clusterkit.utils.normalize <path-to-cluster.yaml>")
        sys.exit(1)
    try:
        for resource in load_resource_file(sys.argv[1]):
            print(yaml.safe_dump(resource.to_dict(), sort_keys=False), end="---\n")
    except (ValidationError, ValueError) as e:
        print(f"❌ {getattr(e, 'message', e)}")
        sys.exit(1)
