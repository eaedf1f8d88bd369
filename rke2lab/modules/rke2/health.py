"""RKE2 cluster validation against the fetched kubeconfig."""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from kubernetes import client
from kubernetes.client.rest import ApiException

from rke2lab.errors import RKE2LabError
from rke2lab.utils.kube import load_kubeconfig, resolve_kubeconfig
from rke2lab.utils.process import run_command

logger = logging.getLogger("rke2lab.rke2.health")

ROLE_LABEL_PREFIX = "node-role.kubernetes.io/"


@dataclass
class NodeStatus:
    name: str
    ready: bool
    roles: List[str] = field(default_factory=list)
    internal_ip: Optional[str] = None
    version: Optional[str] = None


def _node_status(node) -> NodeStatus:
    conditions = node.status.conditions or []
    ready = any(c.type == "Ready" and c.status == "True" for c in conditions)
    labels = node.metadata.labels or {}
    roles = sorted(
        label[len(ROLE_LABEL_PREFIX):]
        for label in labels
        if label.startswith(ROLE_LABEL_PREFIX)
    )
    internal_ip = next(
        (a.address for a in (node.status.addresses or []) if a.type == "InternalIP"),
        None
    )
    version = node.status.node_info.kubelet_version if node.status.node_info else None
    return NodeStatus(
        name=node.metadata.name,
        ready=ready,
        roles=roles,
        internal_ip=internal_ip,
        version=version,
    )


def list_nodes(kubeconfig: Union[str, Path], api: Optional[client.CoreV1Api] = None) -> List[NodeStatus]:
    """Read-only node listing. No retry: earlier stages already absorbed start-up delay."""
    if api is None:
        api = client.CoreV1Api(load_kubeconfig(kubeconfig))
    try:
        nodes = api.list_node().items
    except ApiException as e:
        raise RKE2LabError(f"Failed to list nodes: {e.reason}") from e
    return [_node_status(n) for n in nodes]


def show_nodes(kubeconfig: Union[str, Path], runner=run_command) -> str:
    """Output of ``kubectl get nodes -o wide`` for the operator."""
    path = resolve_kubeconfig(kubeconfig)
    result = runner(["kubectl", f"--kubeconfig={path}", "get", "nodes", "-o", "wide"])
    return result.stdout


def validate_cluster(nodes: List[NodeStatus], expected: Optional[int] = None) -> bool:
    """True when every node is Ready and, if given, the expected count is present."""
    not_ready = [n.name for n in nodes if not n.ready]
    if not_ready:
        logger.error(f"❌ Nodes not Ready: {', '.join(not_ready)}")
    if expected is not None and len(nodes) != expected:
        logger.error(f"❌ Expected {expected} node(s), found {len(nodes)}")
        return False
    if not nodes:
        logger.error("❌ No nodes registered")
        return False
    if not not_ready:
        logger.info(f"✅ All {len(nodes)} node(s) are Ready")
    return not not_ready
