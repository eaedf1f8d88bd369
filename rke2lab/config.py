"""Cluster settings for rke2lab.

Settings are loaded from multiple sources with the following precedence:
1. Explicitly passed overrides (CLI options)
2. Environment variables (a ``.env`` file in the working directory is honoured)
3. A YAML configuration file
4. Default values

The resulting ``ClusterSettings`` is immutable and built once at startup.
"""
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .utils import merge_dicts

logger = logging.getLogger("rke2lab.config")

DEFAULT_CONFIG_PATHS = [
    Path("~/.config/rke2lab/config.yaml"),
    Path("rke2lab.yaml"),
]

# Environment variable -> path inside the settings dictionary
ENV_VARS: Dict[str, Tuple[str, ...]] = {
    "SERVERS": ("servers",),
    "AGENTS": ("agents",),
    "INSTALL_RKE2_CHANNEL": ("channel",),
    "INSTALL_RKE2_VERSION": ("version",),
    "SERVER_CPUS": ("server", "cpus"),
    "SERVER_MEM": ("server", "memory_mb"),
    "SERVER_DISK": ("server", "disk"),
    "AGENT_CPUS": ("agent", "cpus"),
    "AGENT_MEM": ("agent", "memory_mb"),
    "AGENT_DISK": ("agent", "disk"),
    "OUT_DIR": ("out_dir",),
    "SET_CURRENT_CONTEXT": ("set_current_context",),
    "MERGE_KUBECONFIG": ("merge_kubeconfig",),
    "KUBE_DIR": ("kube_dir",),
    "LAUNCH_TIMEOUT": ("launch_timeout",),
    "MULTIPASS_IMAGE": ("image",),
    "LOG_LEVEL": ("log_level",),
    "LOG_FILE": ("log_file",),
}

DISK_SIZE_RE = re.compile(r"^\d+[KMG]?$")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class VMSize(BaseModel):
    """CPU, memory and disk sizing for one VM."""
    model_config = ConfigDict(frozen=True)

    cpus: int = Field(default=2, ge=1, description="Virtual CPUs")
    memory_mb: int = Field(default=4096, ge=512, description="Memory in MB")
    disk: str = Field(default="20G", description="Disk size (Multipass notation, e.g. 20G)")

    @field_validator("disk")
    @classmethod
    def check_disk(cls, v: str) -> str:
        v = str(v).strip().upper()
        if not DISK_SIZE_RE.match(v):
            raise ValueError(f"invalid disk size '{v}' (expected e.g. 20G)")
        return v

    @property
    def memory(self) -> str:
        """Memory in the notation Multipass expects."""
        return f"{self.memory_mb}M"


class ClusterSettings(BaseModel):
    """Immutable settings for one cluster run."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    servers: int = Field(default=1, description="Control-plane count (only 1 is supported)")
    agents: int = Field(default=2, ge=0, description="Number of worker VMs")
    channel: str = Field(default="stable", description="RKE2 install channel")
    version: str = Field(default="v1.31.3+rke2r1", description="RKE2 version to install")
    server: VMSize = Field(default_factory=VMSize)
    agent: VMSize = Field(default_factory=VMSize)
    out_dir: Path = Field(default=Path("./out"), description="Directory for the fetched kubeconfig")
    set_current_context: bool = Field(
        default=False,
        description="Make the merged context the current one in the shared kubeconfig"
    )
    merge_kubeconfig: bool = Field(default=True, description="Merge credentials into the shared kubeconfig")
    kube_dir: Path = Field(default=Path("~/.kube"), description="Directory holding the shared kubeconfig")
    launch_timeout: int = Field(default=600, ge=1, description="Multipass launch timeout in seconds")
    image: Optional[str] = Field(default=None, description="Multipass image (default image if unset)")
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)

    @field_validator("servers")
    @classmethod
    def single_server(cls, v: int) -> int:
        if v != 1:
            logger.warning("⚠️  Only a single control-plane node is supported (SERVERS=%s). Using 1.", v)
        return 1

    @field_validator("out_dir", "kube_dir")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        return Path(os.path.expanduser(str(v)))

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"invalid log level '{v}'")
        return v

    @field_validator("channel", "version")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @property
    def kubeconfig_path(self) -> Path:
        """Standalone kubeconfig written by the credential retriever."""
        return self.out_dir / "rke2.yaml"

    @property
    def shared_kubeconfig(self) -> Path:
        return self.kube_dir / "config"

    @classmethod
    def load(
        cls,
        config_path: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any
    ) -> "ClusterSettings":
        """Build settings from file, environment and explicit overrides.

        Args:
            config_path: YAML file to read. When omitted the default locations
                are searched and the first existing one is used.
            environ: Environment mapping. Defaults to ``os.environ`` after
                loading a ``.env`` file.
            **overrides: Top-level field values; ``None`` values are ignored.

        Raises:
            ConfigError: If the file cannot be read or a value is invalid.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        data: Dict[str, Any] = {}
        path = cls._find_config_file(config_path)
        if path is not None:
            data = cls._load_config_file(path)
            logger.debug(f"Loaded settings from {path}")

        data = merge_dicts(data, env_overrides(environ))
        data = merge_dicts(data, {k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid settings: {format_validation_error(e)}") from e

    @staticmethod
    def _find_config_file(config_path: Optional[Union[str, Path]]) -> Optional[Path]:
        if config_path:
            path = Path(config_path).expanduser()
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path
        for candidate in DEFAULT_CONFIG_PATHS:
            candidate = candidate.expanduser()
            if candidate.exists():
                return candidate
        return None

    @staticmethod
    def _load_config_file(path: Path) -> Dict[str, Any]:
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return data


def env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Translate known environment variables into a nested settings dict."""
    result: Dict[str, Any] = {}
    for var, keys in ENV_VARS.items():
        value = environ.get(var)
        if value is None or value == "":
            continue
        target = result
        for key in keys[:-1]:
            target = target.setdefault(key, {})
        target[keys[-1]] = value
    return result


def format_validation_error(error: ValidationError) -> str:
    parts: List[str] = []
    for err in error.errors():
        location = ".".join(str(p) for p in err["loc"])
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)
