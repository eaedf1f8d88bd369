import os
from pathlib import Path
from typing import Optional, Union

from kubernetes import client, config


def resolve_kubeconfig(path: Optional[Union[str, Path]] = None) -> Path:
    """
    Resolve a kubeconfig path, falling back to $KUBECONFIG.
    Raises FileNotFoundError if the file does not exist.
    """
    if not path:
        path = os.environ.get("KUBECONFIG")
    if not path:
        raise ValueError("No kubeconfig path provided and KUBECONFIG is not set.")

    resolved = Path(os.path.expanduser(str(path))).resolve()
    if not resolved.exists():
        raise FileNotFoundError(f"Kubeconfig not found: {resolved}")
    return resolved


def load_kubeconfig(path: Optional[Union[str, Path]] = None) -> client.ApiClient:
    """
    Build an API client bound to the given kubeconfig without touching the
    process-wide default configuration.
    """
    resolved = resolve_kubeconfig(path)
    return config.new_client_from_config(config_file=str(resolved))
