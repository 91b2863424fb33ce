import logging

import typer

from rke2boot.commands import config, credentials, install, status
from rke2boot.logging import setup_logging

app = typer.Typer(help="Bootstrap a single-node RKE2 server.")

# Add all command groups
app.add_typer(install.app, name="install", help="Install and start an RKE2 server")
app.add_typer(config.app, name="config", help="Manage rke2boot settings")
app.add_typer(credentials.app, name="credentials", help="Show cluster credentials")
app.add_typer(status.app, name="status", help="Show service and node status")


# Global options callback
@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """rke2boot - single-node RKE2 bootstrap."""
    ctx.obj = {"debug": debug}
    setup_logging(debug)
    if debug:
        logging.getLogger("rke2boot").debug("Debug mode enabled")


if __name__ == "__main__":
    app()
