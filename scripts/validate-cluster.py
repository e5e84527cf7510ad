#!/usr/bin/env python3
import sys, re
import yaml
from jsonschema import ValidationError

from clusterkit.modules.models import Cluster, Product
from clusterkit.utils import setup_logging
from clusterkit.utils.normalize import normalize_doc

logger = setup_logging("clusterkit.validate")

def fail(msg):
    print(f"❌ {msg}")
    sys.exit(1)

if len(sys.argv) != 2:
    fail("Usage: validate-cluster.py <path/to/cluster.yaml>")

yaml_path = sys.argv[1]

try:
    with open(yaml_path) as f:
        docs = [d for d in yaml.safe_load_all(f) if d is not None]
except (OSError, yaml.YAMLError) as e:
    fail(f"Invalid YAML: {e}")

resources = []
for doc in docs:
    try:
        resources.append(normalize_doc(doc))
    except ValidationError as e:
        fail(f"Schema validation error: {e.message}")
    except ValueError as e:
        fail(str(e))

# Context name rules
name_re = re.compile(r"^[a-z0-9]([a-z0-9.-]*[a-z0-9])?$")
names = []
for resource in resources:
    if resource.name and not name_re.match(resource.name):
        fail(f"Invalid name: {resource.name} (must be lowercase alphanumeric, '.' or '-')")
    if not isinstance(resource, Cluster):
        continue
    names.append(resource.name or Product.from_string(resource.product).default_cluster_name())
    if resource.product == Product.KIND.value and resource.name and not resource.name.startswith("kind-"):
        fail(f"kind cluster names must start with 'kind-': {resource.name}")
    if resource.product == Product.DOCKER_DESKTOP.value and (resource.kubernetes_version or resource.registry):
        fail("docker-desktop clusters support neither kubernetesVersion nor registry")

if len(names) != len(set(names)):
    fail("Duplicate cluster names found")

logger.info(f"Validated {len(resources)} document(s) from {yaml_path}")
print("✅ cluster.yaml validation passed.")
