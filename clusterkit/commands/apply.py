import subprocess
import sys

import typer
from jsonschema import ValidationError

from clusterkit.commands.output import echo_error
from clusterkit.modules.cluster import default_controller
from clusterkit.modules.errors import ClusterkitError
from clusterkit.modules.models import Registry
from clusterkit.modules.registry import DockerRegistryController
from clusterkit.utils.normalize import load_resource_file

app = typer.Typer()


@app.callback(invoke_without_command=True)
def apply_cmd(
    filename: str = typer.Option(..., "--filename", "-f", help="YAML file with Cluster and Registry documents, or - for stdin"),
):
    """Apply Cluster and Registry documents from a file."""
    try:
        resources = load_resource_file(filename)
    except ValidationError as e:
        echo_error(f"YAML validation error: {e.message}")
        raise typer.Exit(code=1)
    except (OSError, ValueError) as e:
        echo_error(str(e))
        raise typer.Exit(code=1)

    # Registries first, so clusters that reference them can connect
    registries = [r for r in resources if isinstance(r, Registry)]
    clusters = [r for r in resources if not isinstance(r, Registry)]

    try:
        if registries:
            registry_ctl = DockerRegistryController()
            for registry in registries:
                applied = registry_ctl.apply(registry)
                typer.echo(f"✅ registry/{applied.name} applied (localhost:{applied.status.host_port})")
        if clusters:
            controller = default_controller(err_out=sys.stderr)
            for cluster in clusters:
                applied = controller.apply(cluster)
                typer.echo(f"✅ cluster/{applied.name} applied")
    except (ClusterkitError, ValueError, subprocess.CalledProcessError) as e:
        echo_error(str(e))
        raise typer.Exit(code=1)
