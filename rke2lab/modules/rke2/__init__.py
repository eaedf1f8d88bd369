"""
RKE2 Cluster Management Module

This package bootstraps a single-server RKE2 cluster on Multipass VMs.

Key Features:
- Explicit per-node lifecycle state (created, booting, provisioning, active)
- Server and agent provisioning through argv-only remote commands
- Kubeconfig retrieval with loopback endpoint rewrite
- Idempotent merge into a shared kubeconfig as context ``rke2-<ip>``
- Read-only node validation through the Kubernetes API
"""

from .models import Node, NodeRole, NodeState, SERVER_NAME, worker_names, node_names
from .provision import provision_server, provision_agent, wait_for_service, read_join_token
from .kubeconfig import rewrite_server_address, fetch_kubeconfig, merge_kubeconfig, MergeResult
from .health import NodeStatus, list_nodes, show_nodes, validate_cluster
from .deploy import ClusterDeployment, ClusterReport, VMStatus

__all__ = [
    # Models
    'Node',
    'NodeRole',
    'NodeState',
    'SERVER_NAME',
    'worker_names',
    'node_names',

    # Provisioning
    'provision_server',
    'provision_agent',
    'wait_for_service',
    'read_join_token',

    # Credentials
    'rewrite_server_address',
    'fetch_kubeconfig',
    'merge_kubeconfig',
    'MergeResult',

    # Validation
    'NodeStatus',
    'list_nodes',
    'show_nodes',
    'validate_cluster',

    # Orchestration
    'ClusterDeployment',
    'ClusterReport',
    'VMStatus',
]
