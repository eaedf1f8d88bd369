"""Shared helpers for the typer command groups."""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator

import typer
from rich.console import Console

from rke2lab.config import ClusterSettings
from rke2lab.errors import RKE2LabError
from rke2lab.logging import setup_logging
from rke2lab.utils import redact_sensitive_data

console = Console()
logger = logging.getLogger("rke2lab.cli")


def load_settings(ctx: typer.Context, **overrides: Any) -> ClusterSettings:
    """Build settings from the global --config file, the environment and command options."""
    obj: Dict[str, Any] = ctx.obj or {}
    settings = ClusterSettings.load(obj.get("config"), **overrides)
    setup_logging(settings.log_level, debug=obj.get("debug", False), log_file=settings.log_file)
    logger.debug(f"Settings: {redact_sensitive_data(settings.model_dump(mode='json'))}")
    return settings


@contextmanager
def fatal_errors() -> Iterator[None]:
    """Turn rke2lab errors into a logged message and exit code 1."""
    try:
        yield
    except RKE2LabError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(code=1)
