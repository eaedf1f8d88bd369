from pathlib import Path
from typing import Optional

import typer

from rke2lab.commands import console, fatal_errors, load_settings
from rke2lab.modules.environment import resolve_multipass
from rke2lab.modules.multipass import Multipass
from rke2lab.modules.rke2.deploy import ClusterDeployment

app = typer.Typer(help="Create clusters")


@app.command("cluster")
def create_cluster_cmd(
    ctx: typer.Context,
    agents: Optional[int] = typer.Option(None, min=0, help="Number of worker VMs [env: AGENTS]"),
    channel: Optional[str] = typer.Option(None, help="RKE2 install channel [env: INSTALL_RKE2_CHANNEL]"),
    version: Optional[str] = typer.Option(None, help="RKE2 version [env: INSTALL_RKE2_VERSION]"),
    out_dir: Optional[Path] = typer.Option(None, help="Directory for rke2.yaml [env: OUT_DIR]"),
    set_current_context: Optional[bool] = typer.Option(
        None, "--set-current-context/--keep-current-context",
        help="Switch ~/.kube/config to the new context [env: SET_CURRENT_CONTEXT]"
    ),
    merge: Optional[bool] = typer.Option(
        None, "--merge/--no-merge", help="Merge credentials into ~/.kube/config [env: MERGE_KUBECONFIG]"
    ),
    skip_host_checks: bool = typer.Option(False, help="Skip the systemd check and kubectl install"),
):
    """Launch the VMs, install RKE2, fetch and merge the kubeconfig, then list nodes."""
    with fatal_errors():
        settings = load_settings(
            ctx,
            agents=agents,
            channel=channel,
            version=version,
            out_dir=out_dir,
            set_current_context=set_current_context,
            merge_kubeconfig=merge,
        )
        deployment = ClusterDeployment(settings, Multipass(resolve_multipass()))
        try:
            report = deployment.up(check_host=not skip_host_checks)
            console.print(report.nodes_output, markup=False, highlight=False)
            console.print(deployment.next_steps(report), markup=False, highlight=False)
            console.print("[green]All done ✅[/green]")
        finally:
            console.print(f"[yellow]{deployment.cleanup_hint()}[/yellow]")
