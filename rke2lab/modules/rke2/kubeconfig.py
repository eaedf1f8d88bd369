"""Fetch the RKE2 kubeconfig and merge it into a shared kubeconfig."""
import base64
import binascii
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml
from jsonschema import ValidationError, validate

from rke2lab.errors import CredentialError
from rke2lab.modules.multipass import Multipass
from rke2lab.utils.process import run_command

logger = logging.getLogger("rke2lab.rke2.kubeconfig")

REMOTE_KUBECONFIG = "/etc/rancher/rke2/rke2.yaml"
API_PORT = 6443
LOOPBACK_SERVERS = (
    f"server: https://127.0.0.1:{API_PORT}",
    f"server: https://localhost:{API_PORT}",
)

KUBECONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "clusters": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "properties": {
                    "cluster": {
                        "type": "object",
                        "properties": {
                            "server": {"type": "string", "minLength": 1},
                            "certificate-authority-data": {"type": ["string", "null"]},
                        },
                        "required": ["server"],
                    },
                },
                "required": ["cluster"],
            },
        },
        "users": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "properties": {"user": {"type": ["object", "null"]}},
                "required": ["user"],
            },
        },
    },
    "required": ["clusters", "users"],
}

Runner = Callable[..., Any]


def rewrite_server_address(text: str, server_ip: str) -> str:
    """
    Point the kubeconfig at the VM instead of loopback.

    Only the two literal loopback forms are replaced; every other byte,
    including any other server entry, is left untouched.
    """
    target = f"server: https://{server_ip}:{API_PORT}"
    for loopback in LOOPBACK_SERVERS:
        text = text.replace(loopback, target)
    return text


def fetch_kubeconfig(mp: Multipass, server_name: str, server_ip: str, dest: Union[str, Path]) -> Path:
    """Copy the generated kubeconfig out of the server VM and rewrite its endpoint."""
    logger.info(f"📥 Fetching kubeconfig from {server_name}...")
    result = mp.exec(server_name, ["sudo", "cat", REMOTE_KUBECONFIG])
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(rewrite_server_address(result.stdout, server_ip))
    os.chmod(dest, 0o600)
    logger.info(f"✅ Wrote kubeconfig -> {dest}")
    return dest


def context_name(server_ip: str) -> str:
    return f"rke2-{server_ip}"


def user_name(context: str) -> str:
    return f"{context}-admin"


@dataclass
class Credentials:
    """Credentials extracted from a kubeconfig; either token or cert/key is set."""
    token: Optional[str] = None
    client_certificate: Optional[bytes] = None
    client_key: Optional[bytes] = None

    @property
    def auth(self) -> str:
        return "token" if self.token else "certificate"


@dataclass
class MergeResult:
    context: str
    user: str
    server: str
    auth: str
    ca_file: Optional[Path] = None
    client_certificate_file: Optional[Path] = None
    client_key_file: Optional[Path] = None
    switched: bool = False


def _decode(value: Any, what: str, source: Path) -> bytes:
    if not isinstance(value, str):
        raise CredentialError(f"Invalid {what} in {source}: expected a base64 string")
    try:
        # block scalars may wrap the data over several lines
        return base64.b64decode("".join(value.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise CredentialError(f"Invalid base64 {what} in {source}: {e}") from e


def load_source(source: Path) -> Dict[str, Any]:
    try:
        with open(source, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise CredentialError(f"Kubeconfig not found: {source}") from e
    except yaml.YAMLError as e:
        raise CredentialError(f"Invalid YAML in {source}: {e}") from e
    try:
        validate(instance=data, schema=KUBECONFIG_SCHEMA)
    except ValidationError as e:
        raise CredentialError(f"Malformed kubeconfig {source}: {e.message}") from e
    return data


def extract_credentials(user: Optional[Dict[str, Any]], source: Path) -> Credentials:
    """Prefer a bearer token, otherwise require a complete client cert/key pair."""
    user = user or {}
    token = user.get("token")
    if token:
        return Credentials(token=token)
    ccd = user.get("client-certificate-data")
    ckd = user.get("client-key-data")
    if not ccd or not ckd:
        raise CredentialError(
            f"No token and no client certificate/key found in {source}. Cannot merge credentials."
        )
    return Credentials(
        client_certificate=_decode(ccd, "client-certificate-data", source),
        client_key=_decode(ckd, "client-key-data", source),
    )


def merge_kubeconfig(
    source: Union[str, Path],
    server_ip: str,
    kube_dir: Union[str, Path] = "~/.kube",
    set_current: bool = False,
    kubectl: Runner = run_command,
) -> MergeResult:
    """
    Merge the cluster from ``source`` into ``<kube_dir>/config`` as context ``rke2-<ip>``.

    Everything is read and validated before any file is written, so a source
    without usable credentials leaves no partial files behind. Re-running with
    the same IP replaces the same cluster, user and context entries.

    Args:
        source: Kubeconfig fetched from the server
        server_ip: Control-plane IP; names the context
        kube_dir: Directory of the shared kubeconfig and credential files
        set_current: Switch to the new context even if one is already current
        kubectl: Command runner (injected in tests)

    Returns:
        MergeResult describing what was registered

    Raises:
        CredentialError: If the source has no usable credentials
    """
    source = Path(source).expanduser().resolve()
    kube_dir = Path(os.path.expanduser(str(kube_dir)))
    home_kc = kube_dir / "config"

    ctx = context_name(server_ip)
    user = user_name(ctx)
    ca_file = kube_dir / f"{ctx}-ca.crt"
    cert_file = kube_dir / f"{user}.crt"
    key_file = kube_dir / f"{user}.key"

    data = load_source(source)
    cluster = data["clusters"][0]["cluster"]
    server = cluster["server"]
    ca_data = cluster.get("certificate-authority-data")
    ca_bytes = _decode(ca_data, "certificate-authority-data", source) if ca_data else None
    creds = extract_credentials(data["users"][0].get("user"), source)

    kube_dir.mkdir(parents=True, exist_ok=True)
    result = MergeResult(context=ctx, user=user, server=server, auth=creds.auth)

    def kc(*args: str, check: bool = True):
        return kubectl(["kubectl", f"--kubeconfig={home_kc}", "config", *args], check=check)

    # Drop earlier entries so a re-merge never keeps stale CA or credential fields
    kc("delete-cluster", ctx, check=False)
    kc("delete-user", user, check=False)

    cluster_args: List[str] = ["set-cluster", ctx, f"--server={server}"]
    if ca_bytes is not None:
        ca_file.write_bytes(ca_bytes)
        cluster_args.append(f"--certificate-authority={ca_file}")
        result.ca_file = ca_file
    kc(*cluster_args)

    if creds.token:
        kc("set-credentials", user, f"--token={creds.token}")
    else:
        cert_file.write_bytes(creds.client_certificate)
        key_file.write_bytes(creds.client_key)
        os.chmod(key_file, 0o600)
        kc("set-credentials", user, f"--client-certificate={cert_file}", f"--client-key={key_file}")
        result.client_certificate_file = cert_file
        result.client_key_file = key_file

    kc("set-context", ctx, f"--cluster={ctx}", f"--user={user}")

    if set_current or kc("current-context", check=False).returncode != 0:
        result.switched = kc("use-context", ctx, check=False).returncode == 0

    logger.info(f"✅ Merged RKE2 cluster into {home_kc} as context: {ctx}")
    return result
