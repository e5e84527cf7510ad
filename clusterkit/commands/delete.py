import subprocess
import sys

import typer

from clusterkit.commands.output import echo_error
from clusterkit.modules.cluster import default_controller
from clusterkit.modules.errors import ClusterkitError, NotFoundError

app = typer.Typer()


@app.command("cluster")
def delete_cluster_cmd(
    name: str = typer.Argument(..., help="Cluster (context) name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    ignore_not_found: bool = typer.Option(False, "--ignore-not-found", help="Exit 0 if the cluster does not exist"),
):
    """Delete a cluster and its kubeconfig context."""
    controller = default_controller(err_out=sys.stderr)
    try:
        cluster = controller.get(name)
    except NotFoundError as e:
        if ignore_not_found:
            raise typer.Exit(code=0)
        echo_error(str(e))
        raise typer.Exit(code=1)

    if not yes:
        confirm = typer.confirm(f"Are you sure you want to delete {cluster.product} cluster '{name}'?", default=False)
        if not confirm:
            typer.echo("❌ Deletion cancelled.")
            raise typer.Exit()

    try:
        controller.delete(name)
    except (ClusterkitError, ValueError, subprocess.CalledProcessError) as e:
        echo_error(str(e))
        raise typer.Exit(code=1)

    typer.echo(f"🗑️  cluster/{name} deleted")
