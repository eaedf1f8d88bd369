"""Exceptions raised by rke2lab."""
from typing import List, Optional


class RKE2LabError(Exception):
    """Base class for all fatal rke2lab errors."""
    pass


class ConfigError(RKE2LabError):
    """Invalid cluster settings."""
    pass


class PrerequisiteError(RKE2LabError):
    """A host prerequisite (multipass, systemctl) is missing."""
    pass


class CredentialError(RKE2LabError):
    """The fetched kubeconfig has no usable credentials."""
    pass


class CommandError(RKE2LabError):
    """An external command failed."""

    def __init__(self, cmd: List[str], returncode: Optional[int], stderr: str = ""):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        if returncode is None:
            message = f"Command not found: {cmd[0] if cmd else '<empty>'}"
        else:
            message = f"Command '{' '.join(cmd)}' failed with exit code {returncode}{detail}"
        super().__init__(message)
