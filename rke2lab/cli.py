import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from rke2lab import __version__
from rke2lab.commands import create, delete, kubeconfig, status, validate
from rke2lab.logging import setup_logging

app = typer.Typer(help="Bootstrap a local RKE2 cluster on Multipass VMs.")

# Add all command groups
app.add_typer(create.app, name="create")
app.add_typer(delete.app, name="delete")
app.add_typer(status.app, name="status")
app.add_typer(validate.app, name="validate")
app.add_typer(kubeconfig.app, name="kubeconfig")


def _version_callback(value: bool):
    if value:
        typer.echo(f"rke2lab {__version__}")
        raise typer.Exit()


# Global options callback
@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML settings file"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """rke2lab - RKE2 on Multipass."""
    ctx.obj = {"debug": debug, "config": config}
    setup_logging(debug=debug)
    if debug:
        logging.getLogger("rke2lab").debug("Debug mode enabled")


def run():
    """Console entry point: unexpected errors become a one-line message and exit code 1."""
    try:
        app()
    except Exception as e:
        logger = logging.getLogger("rke2lab")
        if logger.isEnabledFor(logging.DEBUG):
            logger.exception(f"Unhandled exception: {e}")
        else:
            logger.error(f"❌ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
