"""RKE2 provisioning of Multipass VMs.

Every remote step is an argv array run through ``multipass exec``. Config
files are rendered with PyYAML and written from stdin with ``sudo tee``, so
neither the server IP nor the join token is ever spliced into shell text.
"""
import logging
from typing import Any, Dict, List

import yaml

from rke2lab.config import ClusterSettings
from rke2lab.errors import RKE2LabError
from rke2lab.modules.multipass import Multipass
from rke2lab.utils import SERVICE_WAIT, RetryPolicy
from .models import Node, NodeRole, NodeState

logger = logging.getLogger("rke2lab.rke2.provision")

CONFIG_DIR = "/etc/rancher/rke2"
CONFIG_FILE = f"{CONFIG_DIR}/config.yaml"
NODE_TOKEN_FILE = "/var/lib/rancher/rke2/server/node-token"
INSTALL_SCRIPT_URL = "https://get.rke2.io"
INSTALL_SCRIPT_PATH = "/tmp/install-rke2.sh"
SUPERVISOR_PORT = 9345


def server_config() -> Dict[str, Any]:
    return {"write-kubeconfig-mode": "0644"}


def agent_config(server_ip: str, token: str) -> Dict[str, Any]:
    if not server_ip:
        raise ValueError("server_ip is required for agent configuration")
    if not token:
        raise ValueError("token is required for agent configuration")
    return {
        "server": f"https://{server_ip}:{SUPERVISOR_PORT}",
        "token": token,
    }


def install_env(settings: ClusterSettings, role: NodeRole) -> List[str]:
    """NAME=value pairs for the installer, passed as separate ``env`` arguments."""
    env = [
        f"INSTALL_RKE2_CHANNEL={settings.channel}",
        f"INSTALL_RKE2_VERSION={settings.version}",
    ]
    if role == NodeRole.AGENT:
        env.append("INSTALL_RKE2_TYPE=agent")
    return env


def _install(mp: Multipass, node: Node, config: Dict[str, Any], settings: ClusterSettings) -> None:
    mp.exec(node.name, ["sudo", "apt-get", "update", "-y"])
    mp.exec(node.name, ["sudo", "apt-get", "install", "-y", "curl"])
    mp.exec(node.name, ["sudo", "mkdir", "-p", CONFIG_DIR])
    mp.exec(
        node.name,
        ["sudo", "tee", CONFIG_FILE],
        input=yaml.safe_dump(config, default_flow_style=False, sort_keys=False),
    )
    mp.exec(node.name, ["curl", "-sfL", "-o", INSTALL_SCRIPT_PATH, INSTALL_SCRIPT_URL])
    mp.exec(node.name, ["sudo", "env", *install_env(settings, node.role), "sh", INSTALL_SCRIPT_PATH])
    mp.exec(node.name, ["sudo", "systemctl", "enable", node.service])
    mp.exec(node.name, ["sudo", "systemctl", "start", node.service])


def provision_server(
    mp: Multipass,
    node: Node,
    settings: ClusterSettings,
    policy: RetryPolicy = SERVICE_WAIT
) -> bool:
    """Install and start rke2-server, then wait for the unit to become active."""
    if node.role != NodeRole.SERVER:
        raise ValueError(f"{node.name} is not a server node")
    logger.info(f"🔧 Provisioning RKE2 server on {node.name}...")
    node.transition(NodeState.PROVISIONING)
    _install(mp, node, server_config(), settings)
    return wait_for_service(mp, node, policy)


def provision_agent(
    mp: Multipass,
    node: Node,
    server_ip: str,
    token: str,
    settings: ClusterSettings,
    policy: RetryPolicy = SERVICE_WAIT
) -> bool:
    """Install rke2-agent pointed at the server, then wait for the unit to become active."""
    if node.role != NodeRole.AGENT:
        raise ValueError(f"{node.name} is not an agent node")
    logger.info(f"🔧 Provisioning RKE2 agent on {node.name}...")
    config = agent_config(server_ip, token)
    node.transition(NodeState.PROVISIONING)
    _install(mp, node, config, settings)
    return wait_for_service(mp, node, policy)


def service_active(mp: Multipass, node: Node) -> bool:
    result = mp.exec(node.name, ["systemctl", "is-active", "--quiet", node.service], check=False)
    return result.returncode == 0


def wait_for_service(mp: Multipass, node: Node, policy: RetryPolicy = SERVICE_WAIT) -> bool:
    """Poll the node's RKE2 unit. A timeout is logged and the run continues."""
    node.transition(NodeState.SERVICE_ACTIVATING)
    logger.info(f"⏳ Waiting for {node.service} to be active on {node.name}...")
    if policy.poll(lambda: service_active(mp, node)):
        node.transition(NodeState.ACTIVE)
        logger.info(f"✅ {node.service} is active on {node.name}")
        return True
    node.transition(NodeState.TIMED_OUT)
    logger.warning(f"⚠️  {node.service} did not become active on {node.name}, continuing anyway.")
    return False


def read_join_token(mp: Multipass, server_name: str) -> str:
    """Read the node token generated by the control plane."""
    result = mp.exec(server_name, ["sudo", "cat", NODE_TOKEN_FILE])
    token = (result.stdout or "").strip()
    if not token:
        raise RKE2LabError(f"Join token on {server_name} is empty ({NODE_TOKEN_FILE})")
    logger.info(f"🔑 Retrieved join token from {server_name}")
    return token
