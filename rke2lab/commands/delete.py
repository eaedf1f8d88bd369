from typing import Optional

import typer

from rke2lab.commands import console, fatal_errors, load_settings
from rke2lab.modules.environment import resolve_multipass
from rke2lab.modules.multipass import Multipass
from rke2lab.modules.rke2.deploy import ClusterDeployment

app = typer.Typer(help="Delete clusters")


@app.command("cluster")
def delete_cluster_cmd(
    ctx: typer.Context,
    agents: Optional[int] = typer.Option(None, min=0, help="Number of worker VMs to delete [env: AGENTS]"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    dry_run: bool = typer.Option(False, help="Show what would be deleted without removing"),
):
    """Delete the server and worker VMs and purge them."""
    with fatal_errors():
        settings = load_settings(ctx, agents=agents)
        deployment = ClusterDeployment(settings, Multipass(resolve_multipass()))
        names = deployment.node_names

        if dry_run:
            existing = set(deployment.mp.list_instances())
            for name in names:
                if name in existing:
                    console.print(f"🧪 Would delete multipass VM: {name}")
                else:
                    console.print(f"🔍 Not found: {name}")
            return

        if not yes:
            confirm = typer.confirm(f"Are you sure you want to delete {', '.join(names)}?", default=False)
            if not confirm:
                console.print("❌ Deletion cancelled.")
                raise typer.Exit()

        deleted = deployment.down()
        missing = [n for n in names if n not in deleted]
        if missing:
            console.print(f"🔍 Not found or already deleted: {', '.join(missing)}")
        console.print("✅ Cluster deletion complete.")
