from typing import Optional

import typer
from rich.table import Table

from rke2lab.commands import console, fatal_errors, load_settings
from rke2lab.modules.environment import resolve_multipass
from rke2lab.modules.multipass import Multipass
from rke2lab.modules.rke2.deploy import ClusterDeployment

app = typer.Typer(help="Inspect clusters")


def _service_label(active: Optional[bool]) -> str:
    if active is None:
        return "-"
    return "[green]active[/green]" if active else "[red]inactive[/red]"


@app.command("cluster")
def status_cluster(
    ctx: typer.Context,
    agents: Optional[int] = typer.Option(None, min=0, help="Number of worker VMs [env: AGENTS]"),
):
    """Show the VM and RKE2 service state of every cluster node."""
    with fatal_errors():
        settings = load_settings(ctx, agents=agents)
        deployment = ClusterDeployment(settings, Multipass(resolve_multipass()))
        report = deployment.status()

    table = Table(title="RKE2 nodes")
    table.add_column("Name")
    table.add_column("Role")
    table.add_column("VM state")
    table.add_column("IPv4")
    table.add_column("Service")
    table.add_column("Errors", style="red")
    for vm in report:
        table.add_row(
            vm.name,
            vm.role.value,
            vm.state or "[dim]absent[/dim]",
            vm.ip or "-",
            _service_label(vm.service_active),
            "\n".join(vm.errors),
        )
    console.print(table)

    if not all(vm.exists for vm in report):
        raise typer.Exit(code=1)
