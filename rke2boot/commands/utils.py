"""Helpers shared by the typer command groups."""
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from rke2boot.config import BootstrapConfig
from rke2boot.exceptions import BootstrapError
from rke2boot.logging import setup_logging
from rke2boot.modules.rke2.models import Credentials

logger = logging.getLogger("rke2boot.commands")


def is_debug(ctx: Optional[typer.Context]) -> bool:
    obj = getattr(ctx, "obj", None) or {}
    return bool(obj.get("debug", False))


def load_settings(
    ctx: Optional[typer.Context],
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> BootstrapConfig:
    """Load settings and reconfigure logging from them.

    Exits with status 1 if the settings are invalid.
    """
    try:
        settings = BootstrapConfig.load(config_path, overrides=overrides)
    except BootstrapError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=1)
    setup_logging(is_debug(ctx), settings.logging)
    return settings


def print_credentials(creds: Credentials, hide_secrets: bool = False) -> None:
    """Print the node token and CA certificate to stdout.

    Both values are secrets; anyone holding the token can join nodes to the
    cluster.
    """
    typer.echo(f"Kubeconfig: {creds.kubeconfig_path}")
    if hide_secrets:
        typer.echo(f"Node token: {creds.node_token_path}")
        typer.echo(f"CA certificate: {creds.ca_certificate_path}")
        return

    logger.warning("⚠️  Printing the cluster join token and CA certificate; clear your terminal scrollback if it is shared")
    typer.echo("----- NODE TOKEN -----")
    typer.echo(creds.node_token.strip())
    typer.echo("----- CA CERTIFICATE -----")
    typer.echo(creds.ca_certificate.strip())
