"""
Data models for cluster profiles and nodes.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class OSSpec:
    """Operating system requested for a new node."""
    kind: str = "linux"
    version: str = ""
    extra: Dict[str, str] = field(default_factory=dict)


@dataclass
class Node:
    """Represents a node in the cluster."""
    name: str
    worker: bool = True
    control_plane: bool = False
    kubernetes_version: str = ""
    os: str = "linux"
    os_version: str = ""
    ip: str = ""

    @property
    def roles(self) -> List[str]:
        roles = []
        if self.worker:
            roles.append("worker")
        if self.control_plane:
            roles.append("control-plane")
        return roles

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class KubernetesConfig:
    """Kubernetes settings shared by every node of a cluster."""
    kubernetes_version: str = ""
    cni: str = ""
    network_plugin: str = ""

    @property
    def cni_disabled(self) -> bool:
        if self.network_plugin and self.network_plugin != "cni":
            return True
        return self.cni == "false"


@dataclass
class ClusterConfig:
    """Persisted configuration of one cluster (a profile)."""
    name: str
    driver: str
    nodes: List[Node] = field(default_factory=list)
    ha: bool = False
    multi_node_requested: bool = False
    memory: int = 6000
    memory_explicit: bool = False
    kubernetes_config: KubernetesConfig = field(default_factory=KubernetesConfig)
    kubeconfig: Optional[str] = None

    @property
    def is_ha(self) -> bool:
        return self.ha

    @property
    def cni_disabled(self) -> bool:
        return self.kubernetes_config.cni_disabled

    @property
    def primary(self) -> Node:
        return self.nodes[0]

    def machine_name(self, node: Node) -> str:
        """Name of the VM backing a node; the primary node uses the cluster name."""
        if node is self.primary or not node.name:
            return self.name
        return f"{self.name}-{node.name}"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["nodes"] = [n.to_dict() for n in self.nodes]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusterConfig":
        data = dict(data)
        nodes = [Node.from_dict(n) for n in data.pop("nodes", [])]
        kubernetes_config = KubernetesConfig(**(data.pop("kubernetes_config", None) or {}))
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(nodes=nodes, kubernetes_config=kubernetes_config, **known)
