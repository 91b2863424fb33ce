import logging
from pathlib import Path
from typing import Optional

import typer

from rke2boot.commands.utils import load_settings, print_credentials
from rke2boot.exceptions import BootstrapError
from rke2boot.modules.rke2 import credentials

logger = logging.getLogger("rke2boot.commands.credentials")

app = typer.Typer()


@app.command("show")
def show_credentials_cmd(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="rke2boot settings file"),
    hide_secrets: bool = typer.Option(False, "--hide-secrets", help="Print file locations instead of contents"),
):
    """Print the node token and CA certificate of an existing server."""
    settings = load_settings(ctx, config)
    try:
        creds = credentials.read_credentials(settings.rke2)
    except BootstrapError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=1)
    print_credentials(creds, hide_secrets=hide_secrets)
