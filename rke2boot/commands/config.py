import logging
from pathlib import Path
from typing import Optional

import typer
import yaml

from rke2boot.commands.utils import load_settings
from rke2boot.config import DEFAULT_CONFIG_PATHS, BootstrapConfig, find_config_file
from rke2boot.exceptions import BootstrapError
from rke2boot.modules import network
from rke2boot.modules.rke2 import configuration

logger = logging.getLogger("rke2boot.commands.config")

app = typer.Typer()


@app.command("show")
def show_config_cmd(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="rke2boot settings file"),
):
    """Show the effective settings and where they were loaded from."""
    settings = load_settings(ctx, config)
    source = find_config_file(config)
    typer.echo(f"# Loaded from: {source or 'default values'}")
    typer.echo(yaml.safe_dump(settings.model_dump(), default_flow_style=False, sort_keys=False), nl=False)
    typer.echo("# Environment overrides use RKE2BOOT_<SECTION>__<KEY>, e.g. RKE2BOOT_RKE2__VERBOSITY=5")


@app.command("create")
def create_config_cmd(
    output: Path = typer.Option(DEFAULT_CONFIG_PATHS[0], "--output", "-o", help="Where to write the settings file"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """Write a settings file populated with default values."""
    output = output.expanduser().absolute()
    if output.exists() and not force:
        logger.error(f"❌ File already exists: {output} (use --force to overwrite)")
        raise typer.Exit(code=1)
    try:
        path = BootstrapConfig().save(output)
    except OSError as e:
        logger.error(f"❌ Could not write {output}: {e}")
        raise typer.Exit(code=1)
    typer.echo(f"✅ Created settings file: {path}")


@app.command("validate")
def validate_config_cmd(
    path: Path = typer.Argument(..., help="Settings file to check"),
):
    """Validate a settings file."""
    try:
        BootstrapConfig.load(path, read_env=False)
    except BootstrapError as e:
        typer.echo(f"❌ Settings are invalid: {path}")
        typer.echo(f"  {e}")
        raise typer.Exit(code=1)

    typer.echo(f"✅ Settings are valid: {path}")
    if path.stat().st_mode & 0o077:
        typer.echo(f"  ⚠️  Insecure permissions. Recommended: chmod 600 {path}")


@app.command("render")
def render_config_cmd(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="rke2boot settings file"),
    public_ip: Optional[str] = typer.Option(None, "--public-ip", help="Address for tls-san (looked up if omitted)"),
):
    """Print the RKE2 config.yaml that a bootstrap would write."""
    settings = load_settings(ctx, config)
    try:
        ip = public_ip or network.get_public_ip(settings.network.ip_echo_url, timeout=settings.network.timeout)
        text = configuration.render_config(ip, settings.rke2)
    except BootstrapError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=1)
    typer.echo(text, nl=False)
