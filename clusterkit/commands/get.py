import sys

import typer

from clusterkit.commands.output import echo_error, render
from clusterkit.modules.cluster import default_controller
from clusterkit.modules.errors import NotFoundError
from clusterkit.modules.registry import DockerRegistryController

app = typer.Typer()


def _get(controller, name, field_selector, ignore_not_found, output, kind):
    try:
        if name:
            resource = controller.get(name)
        else:
            resource = controller.list(field_selector=field_selector)
    except NotFoundError as e:
        if ignore_not_found:
            raise typer.Exit(code=0)
        echo_error(str(e))
        raise typer.Exit(code=1)
    except ValueError as e:
        echo_error(f"List {kind}: {e}")
        raise typer.Exit(code=1)
    typer.echo(render(resource, output))


@app.command("cluster")
@app.command("clusters", hidden=True)
def get_clusters(
    name: str = typer.Argument(None, help="Cluster name (context name)"),
    field_selector: str = typer.Option("", "--field-selector", help="Filter on fields, e.g. product=kind,name!=kind-ci. Supports '=', '==' and '!='."),
    ignore_not_found: bool = typer.Option(False, "--ignore-not-found", help="Exit 0 if the requested cluster does not exist"),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table, yaml, json or name"),
):
    """Read the clusters recorded in kubeconfig."""
    _get(default_controller(err_out=sys.stderr), name, field_selector, ignore_not_found, output, "clusters")


@app.command("registry")
@app.command("registries", hidden=True)
def get_registries(
    name: str = typer.Argument(None, help="Registry name"),
    field_selector: str = typer.Option("", "--field-selector", help="Filter on fields, e.g. name=kind-registry"),
    ignore_not_found: bool = typer.Option(False, "--ignore-not-found", help="Exit 0 if the requested registry does not exist"),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table, yaml, json or name"),
):
    """Read the local registries."""
    _get(DockerRegistryController(), name, field_selector, ignore_not_found, output, "registries")
