from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

MIN_SCALE = 0.1
MAX_SCALE = 5.0


class NodeType(str, Enum):
    PERSON = "Contact"
    ORGANIZATION = "Account"
    DEAL = "Opportunity"
    EXTERNAL_PERSON = "External_Contact"
    SYNTHETIC_DESTINATION = "Moved_To_Company"

    @classmethod
    def parse(cls, value: Any) -> Optional["NodeType"]:
        try:
            return cls(value)
        except (TypeError, ValueError):
            return None


class EdgeType(str, Enum):
    ORG_RELATIONSHIP = "account_relationship"
    DEAL_ROLE = "opportunity_role"
    CO_OCCURRENCE = "co_occurrence"
    CROSS_ORG = "cross_account"
    HIERARCHY = "hierarchy"
    MOVED_TO = "moved_to"

    @classmethod
    def parse(cls, value: Any) -> Optional["EdgeType"]:
        try:
            return cls(value)
        except (TypeError, ValueError):
            return None


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"

    @property
    def rank(self) -> int:
        return 2 if self is Severity.HIGH else 1


@dataclass(eq=False)
class Node:
    id: str
    name: str
    node_type: NodeType
    classification: Optional[str] = None
    confidence: Optional[float] = None
    interaction_count: int = 0
    title: Optional[str] = None
    email: Optional[str] = None
    amount: Optional[float] = None
    close_date: Optional[str] = None
    account_name: Optional[str] = None
    is_hierarchy_member: bool = False
    hierarchy_level: Optional[str] = None
    has_moved: bool = False
    destination_name: Optional[str] = None
    destination_id: Optional[str] = None
    strength_factors: List[Dict[str, Any]] = field(default_factory=list)
    record_id: Optional[str] = None
    origin_id: Optional[str] = None
    cluster_id: int = -1
    radius: float = 10.0
    color: str = "#9e9e9e"

    @property
    def is_primary_organization(self) -> bool:
        return self.node_type is NodeType.ORGANIZATION and not self.is_hierarchy_member

    @property
    def navigation_id(self) -> Optional[str]:
        if self.node_type is NodeType.SYNTHETIC_DESTINATION:
            return self.record_id
        return self.record_id or self.id


@dataclass(eq=False)
class Edge:
    source: Node
    target: Node
    edge_type: EdgeType
    strength: Optional[float] = None
    interaction_count: int = 0
    label: Optional[str] = None


@dataclass(frozen=True)
class RiskAlert:
    severity: Severity
    risk_type: str
    message: str
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None


@dataclass
class Cluster:
    id: int
    members: List[Node]
    color: str
    label: str

    @property
    def size(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class Notice:
    level: str
    title: str
    message: str


@dataclass(frozen=True)
class ViewTransform:
    x: float = 0.0
    y: float = 0.0
    k: float = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "k", clamp_scale(self.k))

    def to_world(self, sx: float, sy: float) -> Tuple[float, float]:
        return (sx - self.x) / self.k, (sy - self.y) / self.k

    def to_screen(self, wx: float, wy: float) -> Tuple[float, float]:
        return wx * self.k + self.x, wy * self.k + self.y

    def zoomed(self, factor: float, pivot_x: float, pivot_y: float) -> "ViewTransform":
        """Rescale by ``factor`` keeping the screen-space pivot visually fixed."""
        new_k = clamp_scale(self.k * factor)
        ratio = new_k / self.k
        return ViewTransform(
            x=pivot_x - (pivot_x - self.x) * ratio,
            y=pivot_y - (pivot_y - self.y) * ratio,
            k=new_k,
        )

    def panned(self, dx: float, dy: float) -> "ViewTransform":
        return replace(self, x=self.x + dx, y=self.y + dy)


def clamp_scale(k: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, k))


@dataclass(frozen=True)
class ToggleState:
    hide_passive_nodes: bool = True
    show_external_nodes: bool = False
    show_hierarchy: bool = False
    min_interactions: int = 3

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hidePassive": self.hide_passive_nodes,
            "showExternalContacts": self.show_external_nodes,
            "showHierarchy": self.show_hierarchy,
            "minInteractions": self.min_interactions,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], defaults: Optional["ToggleState"] = None) -> "ToggleState":
        base = defaults or cls()
        return cls(
            hide_passive_nodes=bool(data.get("hidePassive", base.hide_passive_nodes)),
            show_external_nodes=bool(data.get("showExternalContacts", base.show_external_nodes)),
            show_hierarchy=bool(data.get("showHierarchy", base.show_hierarchy)),
            min_interactions=int(data.get("minInteractions", base.min_interactions)),
        )


@dataclass
class RenderModel:
    """
    Everything the layout and the renderer need for one load of the graph.

    Rebuilt wholesale on every load or refresh; positions live in the layout's
    position store, indexed by the order of ``nodes``.
    """

    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    clusters: Dict[int, Cluster] = field(default_factory=dict)
    risk_index: Dict[str, Severity] = field(default_factory=dict)
    risk_alerts: List[RiskAlert] = field(default_factory=list)
    notices: List[Notice] = field(default_factory=list)
    root_name: str = ""
    show_hierarchy: bool = False
    is_truncated: bool = False
    total_count: int = 0
    external_count: int = 0
    hierarchy_count: int = 0
    moved_count: int = 0

    def __post_init__(self) -> None:
        self._index: Dict[str, int] = {}
        self.reindex()

    def reindex(self) -> None:
        self._index = {node.id: idx for idx, node in enumerate(self.nodes)}

    def index_of(self, node_id: str) -> Optional[int]:
        return self._index.get(node_id)

    def node(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            return None
        idx = self._index.get(node_id)
        return self.nodes[idx] if idx is not None else None

    @property
    def anchor(self) -> Optional[Node]:
        if not self.show_hierarchy:
            return None
        for node in self.nodes:
            if node.is_primary_organization:
                return node
        return None

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def has_edge_type(self, edge_type: EdgeType) -> bool:
        return any(edge.edge_type is edge_type for edge in self.edges)
