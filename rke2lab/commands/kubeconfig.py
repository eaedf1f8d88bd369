from pathlib import Path
from typing import Optional

import typer

from rke2lab.commands import console, fatal_errors, load_settings
from rke2lab.modules.environment import resolve_multipass
from rke2lab.modules.multipass import Multipass
from rke2lab.modules.rke2.kubeconfig import fetch_kubeconfig, merge_kubeconfig
from rke2lab.modules.rke2.models import SERVER_NAME

app = typer.Typer(help="Retrieve and merge cluster credentials")


@app.command("fetch")
def fetch_cmd(
    ctx: typer.Context,
    out_dir: Optional[Path] = typer.Option(None, help="Directory for rke2.yaml [env: OUT_DIR]"),
):
    """Copy the kubeconfig out of the server VM, pointing it at the VM's IP."""
    with fatal_errors():
        settings = load_settings(ctx, out_dir=out_dir)
        mp = Multipass(resolve_multipass())
        server_ip = mp.resolve_address(SERVER_NAME)
        path = fetch_kubeconfig(mp, SERVER_NAME, server_ip, settings.kubeconfig_path)
    console.print(f"export KUBECONFIG={path.resolve()}", markup=False, highlight=False)


@app.command("merge")
def merge_cmd(
    ctx: typer.Context,
    kubeconfig: Optional[Path] = typer.Option(None, help="Source kubeconfig (default: <out-dir>/rke2.yaml)"),
    server_ip: Optional[str] = typer.Option(None, help="Control-plane IP (default: looked up via multipass)"),
    set_current_context: Optional[bool] = typer.Option(
        None, "--set-current-context/--keep-current-context",
        help="Switch to the new context even if one is already current [env: SET_CURRENT_CONTEXT]"
    ),
):
    """Merge the fetched kubeconfig into ~/.kube/config as context rke2-<ip>."""
    with fatal_errors():
        settings = load_settings(ctx, set_current_context=set_current_context)
        source = kubeconfig or settings.kubeconfig_path
        if not server_ip:
            server_ip = Multipass(resolve_multipass()).resolve_address(SERVER_NAME)
        result = merge_kubeconfig(
            source,
            server_ip,
            kube_dir=settings.kube_dir,
            set_current=settings.set_current_context,
        )
    console.print(f"✅ Context {result.context} ({result.auth} auth) -> {result.server}")
    if result.switched:
        console.print(f"🔀 Current context is now {result.context}")
