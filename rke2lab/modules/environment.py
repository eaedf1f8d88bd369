"""Host prerequisite checks: the Multipass binary and systemd."""
import logging
import os
import shutil
from typing import Optional

from rke2lab.errors import PrerequisiteError
from rke2lab.utils.process import run_command

logger = logging.getLogger("rke2lab.environment")

SNAP_MULTIPASS = "/snap/bin/multipass"


def resolve_multipass(fallback: str = SNAP_MULTIPASS) -> str:
    """Locate the multipass executable on PATH or at the snap install location."""
    found: Optional[str] = shutil.which("multipass")
    if found:
        logger.debug(f"Using multipass from PATH: {found}")
        return found
    if os.path.isfile(fallback) and os.access(fallback, os.X_OK):
        logger.debug(f"Using multipass at {fallback}")
        return fallback
    raise PrerequisiteError("multipass not found. Install: sudo snap install multipass")


def require_systemd() -> bool:
    """
    Fail if systemctl is missing; only warn if systemd reports a degraded state.
    Returns True when the system reports 'running'.
    """
    if not shutil.which("systemctl"):
        raise PrerequisiteError(
            "systemctl not available. Enable systemd (on WSL: set systemd=true in /etc/wsl.conf), "
            "restart the distro, then retry."
        )
    result = run_command(["systemctl", "is-system-running", "--quiet"], check=False)
    if result.returncode != 0:
        logger.warning(
            "⚠️  systemd may not be fully running (is-system-running != running). "
            "If multipass fails, enable systemd and restart."
        )
        return False
    return True
