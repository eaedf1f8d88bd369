from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from rke2lab.commands import console, fatal_errors, load_settings
from rke2lab.modules.rke2.health import list_nodes, validate_cluster

app = typer.Typer(help="Validate clusters")


@app.command("cluster")
def validate_cluster_cmd(
    ctx: typer.Context,
    kubeconfig: Optional[Path] = typer.Option(None, help="Kubeconfig to use (default: <out-dir>/rke2.yaml)"),
    expected: Optional[int] = typer.Option(None, min=1, help="Expected node count (default: agents + 1)"),
):
    """Check that every node is registered and Ready."""
    with fatal_errors():
        settings = load_settings(ctx)
        path = kubeconfig or settings.kubeconfig_path
        if expected is None:
            expected = settings.agents + 1
        try:
            nodes = list_nodes(path)
        except (FileNotFoundError, ValueError) as e:
            console.print(f"❌ {e}")
            raise typer.Exit(code=1)

    table = Table(title=f"Nodes ({path})")
    table.add_column("Name")
    table.add_column("Ready")
    table.add_column("Roles")
    table.add_column("Internal IP")
    table.add_column("Version")
    for node in nodes:
        table.add_row(
            node.name,
            "[green]True[/green]" if node.ready else "[red]False[/red]",
            ",".join(node.roles) or "<none>",
            node.internal_ip or "-",
            node.version or "-",
        )
    console.print(table)

    if not validate_cluster(nodes, expected=expected):
        raise typer.Exit(code=1)
