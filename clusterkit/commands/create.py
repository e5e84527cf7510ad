import logging
import subprocess
import sys

import typer

from clusterkit.commands.output import echo_error, render
from clusterkit.modules.cluster import default_controller
from clusterkit.modules.errors import ClusterkitError
from clusterkit.modules.models import Cluster

app = typer.Typer()


@app.command("cluster")
def create_cluster_cmd(
    product: str = typer.Option(..., help="Cluster product: kind, docker-desktop or minikube"),
    name: str = typer.Option("", help="Cluster (context) name; defaults to the product's usual name"),
    min_cpus: int = typer.Option(0, "--min-cpus", help="Minimum CPUs for the Docker engine"),
    kubernetes_version: str = typer.Option("", "--kubernetes-version", help="Exact Kubernetes version, e.g. v1.27.3"),
    registry: str = typer.Option("", help="Name of a local registry to create and connect"),
    output: str = typer.Option("name", "--output", "-o", help="Output format: table, yaml, json or name"),
):
    """Create a cluster, or bring an existing one in line with the options."""
    desired = Cluster(
        product=product,
        name=name,
        min_cpus=min_cpus,
        kubernetes_version=kubernetes_version,
        registry=registry,
    )
    logging.info(f"🚀 Applying {product} cluster {name or '(default name)'}...")

    controller = default_controller(err_out=sys.stderr)
    try:
        result = controller.apply(desired)
    except (ClusterkitError, ValueError, subprocess.CalledProcessError) as e:
        echo_error(str(e))
        raise typer.Exit(code=1)

    typer.echo(render(result, output))
