import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from rke2boot.commands.utils import load_settings
from rke2boot.modules.rke2 import service, verification
from rke2boot.modules.shell import CommandRunner

logger = logging.getLogger("rke2boot.commands.status")

app = typer.Typer()

console = Console()


@app.command("show")
def status_cmd(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="rke2boot settings file"),
):
    """Show the RKE2 server service state and the cluster's nodes."""
    settings = load_settings(ctx, config)
    rke2 = settings.rke2

    state = service.service_state(CommandRunner(), rke2.service_name)
    console.print(f"📡 {rke2.service_name}: {state}")
    if state != "active":
        raise typer.Exit(code=1)

    kubeconfig = os.environ.get("KUBECONFIG") or rke2.kubeconfig_path
    if not os.path.exists(kubeconfig):
        logger.error(f"❌ Kubeconfig not found: {kubeconfig}")
        raise typer.Exit(code=1)

    try:
        nodes = verification.list_nodes(kubeconfig)
    except Exception as e:
        logger.error(f"❌ Could not reach the API server: {e}")
        raise typer.Exit(code=1)

    table = Table(title="Nodes")
    table.add_column("Name")
    table.add_column("Ready")
    table.add_column("Version")
    table.add_column("Internal IP")
    for node in nodes:
        table.add_row(
            node["name"],
            "✅" if node["ready"] else "❌",
            node["version"],
            node["internal_ip"],
        )
    console.print(table)

    if not any(n["ready"] for n in nodes):
        raise typer.Exit(code=1)
