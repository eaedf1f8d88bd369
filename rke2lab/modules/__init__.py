"""
Cluster bootstrap modules.
"""
from .environment import resolve_multipass, require_systemd
from .dependencies import ensure_kubectl
from .multipass import Multipass

__all__ = [
    'resolve_multipass',
    'require_systemd',
    'ensure_kubectl',
    'Multipass',
]
