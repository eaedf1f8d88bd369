"""RKE2 cluster deployment on Multipass VMs.

The run is strictly sequential: the control plane first, then each worker in
index order, then the kubeconfig. Slow boots and slow service start-up are
absorbed by bounded polling; anything else that fails stops the run.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from rke2lab.config import ClusterSettings
from rke2lab.errors import CommandError, RKE2LabError
from rke2lab.modules.dependencies import ensure_kubectl
from rke2lab.modules.environment import require_systemd
from rke2lab.modules.multipass import Multipass
from rke2lab.utils import BOOT_WAIT, SERVICE_WAIT, RetryPolicy
from rke2lab.utils.process import run_command
from .health import show_nodes
from .kubeconfig import fetch_kubeconfig, merge_kubeconfig
from .models import SERVER_NAME, Node, NodeRole, NodeState, worker_names
from .provision import provision_agent, provision_server, read_join_token, service_active

logger = logging.getLogger("rke2lab.rke2.deploy")


@dataclass
class ClusterReport:
    """Outcome of ``ClusterDeployment.up``."""
    server_ip: str
    kubeconfig: Path
    nodes: List[Node]
    context: Optional[str] = None
    nodes_output: str = ""

    @property
    def timed_out(self) -> List[str]:
        return [n.name for n in self.nodes if n.state == NodeState.TIMED_OUT]


@dataclass
class VMStatus:
    """Point-in-time view of one expected VM, as reported by ``status``."""
    name: str
    role: NodeRole
    state: Optional[str] = None
    ip: Optional[str] = None
    service_active: Optional[bool] = None
    errors: List[str] = field(default_factory=list)

    @property
    def exists(self) -> bool:
        return self.state is not None


class ClusterDeployment:
    """Creates, inspects and tears down the one-server, N-agent cluster."""

    def __init__(
        self,
        settings: ClusterSettings,
        multipass: Multipass,
        boot_policy: RetryPolicy = BOOT_WAIT,
        service_policy: RetryPolicy = SERVICE_WAIT,
        kubectl=run_command,
    ):
        self.settings = settings
        self.mp = multipass
        self.boot_policy = boot_policy
        self.service_policy = service_policy
        self.kubectl = kubectl
        self.nodes: List[Node] = [Node(SERVER_NAME, NodeRole.SERVER, settings.server)] + [
            Node(name, NodeRole.AGENT, settings.agent) for name in worker_names(settings.agents)
        ]

    @property
    def server(self) -> Node:
        return self.nodes[0]

    @property
    def workers(self) -> List[Node]:
        return self.nodes[1:]

    @property
    def node_names(self) -> List[str]:
        return [n.name for n in self.nodes]

    def up(self, check_host: bool = True) -> ClusterReport:
        """Bootstrap the whole cluster.

        Args:
            check_host: Verify systemd and install kubectl before creating VMs

        Returns:
            ClusterReport with the server IP, kubeconfig path and per-node states
        """
        s = self.settings
        logger.info(
            f"🚀 RKE2 setup: 1 server, {s.agents} agent(s), channel {s.channel}, version {s.version}"
        )
        if check_host:
            require_systemd()
            ensure_kubectl()

        server = self.server
        self._launch(server)
        server.ip = self.mp.resolve_address(server.name)
        provision_server(self.mp, server, s, self.service_policy)
        token = read_join_token(self.mp, server.name)

        for node in self.workers:
            self._launch(node)
            try:
                node.ip = self.mp.resolve_address(node.name)
            except RKE2LabError as e:
                logger.warning(f"⚠️  {e}")
            provision_agent(self.mp, node, server.ip, token, s, self.service_policy)

        kubeconfig = fetch_kubeconfig(self.mp, server.name, server.ip, s.kubeconfig_path)
        report = ClusterReport(server_ip=server.ip, kubeconfig=kubeconfig.resolve(), nodes=self.nodes)

        if s.merge_kubeconfig:
            merged = merge_kubeconfig(
                kubeconfig,
                server.ip,
                kube_dir=s.kube_dir,
                set_current=s.set_current_context,
                kubectl=self.kubectl,
            )
            report.context = merged.context

        if report.timed_out:
            logger.warning(f"⚠️  Nodes that never reported active: {', '.join(report.timed_out)}")

        logger.info("🔍 Validating cluster...")
        report.nodes_output = show_nodes(kubeconfig, runner=self.kubectl)
        return report

    def _launch(self, node: Node) -> None:
        self.mp.launch(node.name, node.size, timeout=self.settings.launch_timeout, image=self.settings.image)
        node.transition(NodeState.CREATED)
        node.transition(NodeState.BOOT_WAIT)
        self.mp.wait_for_cloud_init(node.name, self.boot_policy)

    def down(self) -> List[str]:
        """Delete every cluster VM and purge. Best effort; never raises."""
        logger.warning("⚠️  Deleting all cluster VMs...")
        deleted = [name for name in self.node_names if self.mp.delete(name)]
        self.mp.purge()
        logger.info("✅ Teardown completed.")
        return deleted

    def status(self) -> List[VMStatus]:
        """Report each expected VM: multipass state, address and RKE2 unit state."""
        report = []
        for node in self.nodes:
            vm = VMStatus(name=node.name, role=node.role, state=self.mp.state(node.name))
            if vm.state == "Running":
                try:
                    vm.ip = self.mp.resolve_address(node.name)
                except RKE2LabError as e:
                    vm.errors.append(str(e))
                try:
                    vm.service_active = service_active(self.mp, node)
                except CommandError as e:
                    vm.errors.append(str(e))
            report.append(vm)
        return report

    def cleanup_hint(self) -> str:
        binary = self.mp.binary
        return f"Tip: cleanup via: {binary} delete {' '.join(self.node_names)} && {binary} purge"

    def next_steps(self, report: ClusterReport) -> str:
        binary = self.mp.binary
        lines = ["Next steps:"]
        if report.context:
            lines += [
                f"  # Use the new merged context (created as: {report.context})",
                "  kubectl config get-contexts",
                f"  kubectl config use-context {report.context}",
                "  kubectl get nodes -o wide",
                "",
                "  # Or continue using the standalone kubeconfig:",
            ]
        lines += [
            f"  export KUBECONFIG={report.kubeconfig}",
            "  kubectl get nodes -o wide",
            "  kubectl -n kube-system get pods",
            "",
            "Teardown:",
            f"  {binary} list",
            f"  {binary} delete {' '.join(self.node_names)}",
            f"  {binary} purge",
        ]
        return "\n".join(lines)
