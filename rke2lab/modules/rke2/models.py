"""
Data models for RKE2 cluster nodes.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
import time

from rke2lab.config import VMSize

SERVER_NAME = "rke2-master"
WORKER_PREFIX = "rke2-worker"


class NodeRole(str, Enum):
    """Node roles in the RKE2 cluster."""
    SERVER = 'server'
    AGENT = 'agent'

    @property
    def service(self) -> str:
        """systemd unit installed by the RKE2 installer for this role."""
        return f"rke2-{self.value}.service"


class NodeState(str, Enum):
    """Lifecycle of a node. States only ever move forward."""
    PENDING = 'pending'
    CREATED = 'created'
    BOOT_WAIT = 'boot_wait'
    PROVISIONING = 'provisioning'
    SERVICE_ACTIVATING = 'service_activating'
    ACTIVE = 'active'
    TIMED_OUT = 'timed_out'

    @property
    def rank(self) -> int:
        # ACTIVE and TIMED_OUT are alternative terminal states
        return min(_STATE_ORDER.index(self), _STATE_ORDER.index(NodeState.ACTIVE))

    @property
    def terminal(self) -> bool:
        return self in (NodeState.ACTIVE, NodeState.TIMED_OUT)


_STATE_ORDER = list(NodeState)


@dataclass
class Node:
    """Represents a node (VM) in the cluster."""
    name: str
    role: NodeRole
    size: VMSize = field(default_factory=VMSize)
    ip: Optional[str] = None
    state: NodeState = NodeState.PENDING
    history: Dict[str, float] = field(default_factory=dict)

    @property
    def service(self) -> str:
        return self.role.service

    @property
    def service_active(self) -> bool:
        return self.state == NodeState.ACTIVE

    def transition(self, state: NodeState) -> None:
        """Move the node to a later state.

        Raises:
            ValueError: On a backward move or on leaving a terminal state.
        """
        if state == self.state:
            return
        if self.state.terminal or state.rank <= self.state.rank:
            raise ValueError(
                f"Invalid state transition for {self.name}: {self.state.value} -> {state.value}"
            )
        self.state = state
        self.history[state.value] = time.time()


def worker_names(count: int) -> List[str]:
    """Deterministic worker names: rke2-worker1 .. rke2-worker<count>."""
    if count < 0:
        raise ValueError("worker count must not be negative")
    return [f"{WORKER_PREFIX}{i}" for i in range(1, count + 1)]


def node_names(agents: int) -> List[str]:
    """All node names of a cluster, control plane first."""
    return [SERVER_NAME, *worker_names(agents)]
