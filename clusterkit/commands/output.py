"""Rendering for command output: tables, YAML and JSON."""
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import typer
import yaml

from clusterkit.modules.models import Cluster, ClusterList, Registry, RegistryList

OUTPUT_FORMATS = ("table", "yaml", "json", "name")


def short_duration(start: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Age in the kubectl style: 45s, 12m, 5h, 3d."""
    if start is None:
        return "unknown"
    now = now or datetime.now(timezone.utc)
    seconds = int((now - start).total_seconds())
    if seconds < 0:
        seconds = 0
    if seconds < 120:
        return f"{seconds}s"
    minutes = seconds // 60
    if minutes < 120:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 48:
        return f"{hours}h"
    return f"{hours // 24}d"


def render_table(headers: Sequence[str], rows: List[Sequence[str]]) -> str:
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))
    lines = []
    for row in [headers] + rows:
        lines.append("   ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip())
    return "\n".join(lines)


def clusters_table(clusters: List[Cluster], now: Optional[datetime] = None) -> str:
    rows = []
    for cluster in clusters:
        hosting = cluster.status.local_registry_hosting
        rows.append([
            "*" if cluster.status.current else "",
            cluster.name,
            cluster.product,
            short_duration(cluster.status.creation_timestamp, now),
            (hosting.host if hosting and hosting.host else "none"),
        ])
    return render_table(["CURRENT", "NAME", "PRODUCT", "AGE", "REGISTRY"], rows)


def registries_table(registries: List[Registry], now: Optional[datetime] = None) -> str:
    rows = []
    for registry in registries:
        status = registry.status
        host = f"localhost:{status.host_port}" if status.host_port else "none"
        container = "none"
        if status.container_port and status.ip_address:
            container = f"{status.ip_address}:{status.container_port}"
        rows.append([registry.name, host, container, short_duration(status.creation_timestamp, now)])
    return render_table(["NAME", "HOST ADDRESS", "CONTAINER ADDRESS", "AGE"], rows)


def render(obj: Any, output: str = "table") -> str:
    if output not in OUTPUT_FORMATS:
        raise typer.BadParameter(f"unsupported output format {output!r}; use one of {', '.join(OUTPUT_FORMATS)}")

    data: Dict[str, Any] = obj.to_dict()
    if output == "yaml":
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False).rstrip()
    if output == "json":
        return json.dumps(data, indent=2)

    items = getattr(obj, "items", None)
    if items is None:
        items = [obj]
    if output == "name":
        kind = "cluster" if isinstance(obj, (Cluster, ClusterList)) else "registry"
        return "\n".join(f"{kind}/{item.name}" for item in items)
    if not items:
        return "No resources found"
    if isinstance(obj, (Registry, RegistryList)):
        return registries_table(items)
    return clusters_table(items)


def echo_error(message: str) -> None:
    typer.echo(f"❌ {message}", err=True)
