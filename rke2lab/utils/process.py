"""Subprocess helpers.

Commands are always argv lists; nothing here goes through a shell.
"""
import logging
import subprocess
from typing import List, Optional, Sequence

from ..errors import CommandError
from . import redact_command

logger = logging.getLogger("rke2lab.process")


def run_command(
    cmd: Sequence[str],
    check: bool = True,
    capture: bool = True,
    input: Optional[str] = None,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """Run an external command.

    Args:
        cmd: Command and arguments
        check: Raise CommandError on a non-zero exit status
        capture: Capture stdout/stderr as text instead of inheriting them
        input: Text fed to the command's stdin
        timeout: Seconds before the command is killed

    Returns:
        The completed process

    Raises:
        CommandError: If the executable is missing, times out, or fails with check=True
    """
    argv: List[str] = [str(c) for c in cmd]
    logger.debug(f"Running: {' '.join(redact_command(argv))}")
    try:
        result = subprocess.run(
            argv,
            input=input,
            capture_output=capture,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise CommandError(redact_command(argv), None) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(redact_command(argv), -1, f"timed out after {timeout}s") from e

    if check and result.returncode != 0:
        raise CommandError(redact_command(argv), result.returncode, result.stderr or "")
    return result
