import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from rke2boot.commands.utils import is_debug, load_settings, print_credentials
from rke2boot.config import BootstrapConfig
from rke2boot.exceptions import BootstrapError, StepFailed
from rke2boot.modules.rke2.bootstrap import RKE2Bootstrapper

logger = logging.getLogger("rke2boot.commands.install")

app = typer.Typer()


@app.command("server")
def install_server_cmd(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="rke2boot settings file"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be done without changing the host"),
    verbosity: Optional[int] = typer.Option(None, "--verbosity", min=0, max=10, help="RKE2 log verbosity ('v' in config.yaml)"),
    version: Optional[str] = typer.Option(None, "--rke2-version", help="RKE2 version to install, e.g. v1.30.4+rke2r1"),
    public_ip: Optional[str] = typer.Option(None, "--public-ip", help="Skip the IP-echo lookup and use this address"),
    skip_node_wait: bool = typer.Option(False, "--skip-node-wait", help="Do not wait for the node to report Ready"),
    from_step: Optional[str] = typer.Option(None, "--from-step", help="Start at this step id"),
    skip: Optional[List[str]] = typer.Option(None, "--skip", help="Step id to skip (repeatable)"),
    hide_secrets: bool = typer.Option(False, "--hide-secrets", help="Print credential file locations instead of their contents"),
):
    """
    Bootstrap a single-node RKE2 server on this host.

    Disables swap, installs prerequisites, writes /etc/rancher/rke2/config.yaml,
    installs and starts rke2-server, then exports kubeconfig, node token and
    CA certificate. The first failing step aborts the run with exit code 1.
    """
    overrides: Dict[str, Any] = {}
    if verbosity is not None:
        overrides.setdefault("rke2", {})["verbosity"] = verbosity
    if version:
        overrides.setdefault("rke2", {})["version"] = version
    if skip_node_wait:
        overrides["readiness"] = {"wait_for_node": False}

    settings = load_settings(ctx, config, overrides)

    logger.info("🚀 Bootstrapping RKE2 server" + (" (dry run)" if dry_run else ""))
    bootstrapper = RKE2Bootstrapper(settings, dry_run=dry_run, public_ip=public_ip)
    try:
        state = bootstrapper.run(from_step=from_step, skip=skip or [])
    except StepFailed as e:
        # The pipeline has already logged the cause
        if is_debug(ctx):
            logger.exception(f"Bootstrap aborted at step {e.step_id}")
        else:
            logger.error(f"Bootstrap aborted at step {e.step_id}")
        raise typer.Exit(code=1)
    except BootstrapError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=1)

    if dry_run:
        return
    if state.node_token and state.ca_certificate:
        print_credentials(
            state.credentials(settings.rke2.node_token_path, settings.rke2.ca_cert_path),
            hide_secrets=hide_secrets,
        )


@app.command("steps")
def list_steps_cmd():
    """List bootstrap step ids in execution order."""
    for step in RKE2Bootstrapper(BootstrapConfig()).steps:
        typer.echo(f"{step.step_id:<20} {step.description}")