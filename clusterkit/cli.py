import typer
import logging
import sys
from clusterkit.commands import apply, create, delete, get
from clusterkit.config import get_config

# Create a callback for global options
app = typer.Typer(help="clusterkit - local Kubernetes clusters and registries.")

# Global debug flag
debug_mode = False

# Configure logging
def setup_logging(debug_mode: bool = False):
    """Configure logging based on debug mode.

    Called once per process, before any controller is built.
    """
    config = get_config()
    log_level = logging.DEBUG if debug_mode else getattr(logging, config.logging.level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=config.logging.format,
        handlers=[
            logging.StreamHandler()
        ]
    )
    # Disable debug logging for noisy libraries
    if not debug_mode:
        for noisy in ('urllib3', 'docker', 'kubernetes', 'httpx', 'httpcore'):
            logging.getLogger(noisy).setLevel(logging.WARNING)

# Add all command groups
app.add_typer(get.app, name="get", help="Read clusters or registries")
app.add_typer(create.app, name="create", help="Create a cluster")
app.add_typer(apply.app, name="apply", help="Apply Cluster and Registry documents from a file")
app.add_typer(delete.app, name="delete", help="Delete a cluster")

# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """clusterkit - local Kubernetes clusters and registries."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug)
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.debug("Debug mode enabled")

if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)
