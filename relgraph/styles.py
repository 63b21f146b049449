from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .model import EdgeType, Node, NodeType, RenderModel, Severity

CLASSIFICATION_COLORS: Dict[str, str] = {
    "Champion": "#2e7d32",
    "Economic Buyer": "#1565c0",
    "Technical Buyer": "#6a1b9a",
    "Blocker": "#c62828",
    "Influencer": "#ef6c00",
    "End User": "#78909c",
    "Detractor": "#b71c1c",
    "Unknown": "#9e9e9e",
}

NODE_TYPE_COLORS: Dict[NodeType, str] = {
    NodeType.ORGANIZATION: "#0176d3",
    NodeType.DEAL: "#ff9800",
    NodeType.EXTERNAL_PERSON: "#00897b",
}

NODE_SHAPES: Dict[NodeType, str] = {
    NodeType.ORGANIZATION: "diamond",
    NodeType.PERSON: "circle",
    NodeType.DEAL: "square",
    NodeType.EXTERNAL_PERSON: "hexagon",
    NodeType.SYNTHETIC_DESTINATION: "diamond",
}

CLUSTER_PALETTE = [
    "#2196F3",
    "#4CAF50",
    "#FF9800",
    "#9C27B0",
    "#009688",
    "#F44336",
    "#795548",
    "#3F51B5",
]
HULL_FILL_ALPHA = 0.08
HULL_STROKE_ALPHA = 0.15

MOVED_COLOR = "#bdbdbd"
SYNTHETIC_COLOR = "#e8e8e8"
DIMMED_COLOR = "#e0e0e0"
FALLBACK_COLOR = "#9e9e9e"
HIERARCHY_PARENT_COLOR = "#005FB2"
HIERARCHY_CHILD_COLOR = "#57A3E8"
ALERT_RED = "#c62828"
ALERT_ORANGE = "#ef6c00"
HIGHLIGHT_BLUE = "#0176d3"

SEVERITY_RING_COLORS: Dict[Severity, str] = {
    Severity.HIGH: ALERT_RED,
    Severity.MEDIUM: ALERT_ORANGE,
}

LABEL_MAX_CHARS = 15


@dataclass(frozen=True)
class EdgeStyle:
    color: Tuple[int, int, int, float]
    width: Optional[float]
    dash: Tuple[float, ...] = ()

    def line_width(self, strength: Optional[float]) -> float:
        if self.width is not None:
            return self.width
        return max(1.0, (strength or 0.1) * 4)


EDGE_STYLES: Dict[EdgeType, EdgeStyle] = {
    EdgeType.CO_OCCURRENCE: EdgeStyle((100, 100, 100, 0.3), None),
    EdgeType.DEAL_ROLE: EdgeStyle((255, 152, 0, 0.5), None),
    EdgeType.CROSS_ORG: EdgeStyle((0, 137, 123, 0.5), None, (6.0, 4.0)),
    EdgeType.HIERARCHY: EdgeStyle((1, 118, 211, 0.6), 3.0),
    EdgeType.MOVED_TO: EdgeStyle((198, 40, 40, 0.7), 2.5),
    EdgeType.ORG_RELATIONSHIP: EdgeStyle((50, 50, 50, 0.4), None),
}

LINK_DISTANCES: Dict[EdgeType, float] = {
    EdgeType.CO_OCCURRENCE: 80.0,
    EdgeType.DEAL_ROLE: 150.0,
    EdgeType.CROSS_ORG: 180.0,
    EdgeType.HIERARCHY: 200.0,
    EdgeType.MOVED_TO: 100.0,
    EdgeType.ORG_RELATIONSHIP: 120.0,
}


def node_radius(node: Node) -> float:
    node_type = node.node_type
    if node_type is NodeType.SYNTHETIC_DESTINATION:
        return 18.0
    if node_type is NodeType.ORGANIZATION:
        if node.is_hierarchy_member:
            return 30.0 if node.hierarchy_level == "parent" else 16.0
        return 24.0
    if node_type is NodeType.DEAL:
        return 14.0
    interactions = node.interaction_count or 0
    if node_type is NodeType.EXTERNAL_PERSON:
        return 8.0 + min(interactions / 5, 8.0)
    return 10.0 + min(interactions / 5, 12.0)


def node_color(node: Node, active_filters: Iterable[str] = ()) -> str:
    """Display colour for a node; moved people stay grey whatever the filters say."""
    if node.has_moved:
        return MOVED_COLOR
    node_type = node.node_type
    if node_type is NodeType.SYNTHETIC_DESTINATION:
        return SYNTHETIC_COLOR
    if node_type is NodeType.ORGANIZATION and node.is_hierarchy_member:
        return HIERARCHY_PARENT_COLOR if node.hierarchy_level == "parent" else HIERARCHY_CHILD_COLOR
    if node_type is not NodeType.PERSON:
        return NODE_TYPE_COLORS.get(node_type, FALLBACK_COLOR)

    filters = set(active_filters)
    if filters and node.classification not in filters:
        return DIMMED_COLOR
    return CLASSIFICATION_COLORS.get(node.classification or "Unknown", CLASSIFICATION_COLORS["Unknown"])


def truncate_label(name: str, max_chars: int = LABEL_MAX_CHARS) -> str:
    if len(name) > max_chars:
        return name[:max_chars] + "..."
    return name


def tooltip_lines(node: Node) -> List[str]:
    lines = [node.name]
    if node.node_type is NodeType.SYNTHETIC_DESTINATION:
        lines.append("Contact moved here")
    if node.title:
        lines.append(node.title)
    if node.has_moved:
        lines.append("❌ No longer at company")
        if node.destination_name:
            lines.append(f"Moved to: {node.destination_name}")
    if node.is_hierarchy_member:
        lines.append("Parent Account" if node.hierarchy_level == "parent" else "Child Account")

    if node.node_type is NodeType.EXTERNAL_PERSON and node.account_name:
        lines.append(f"Account: {node.account_name}")
    elif node.node_type is NodeType.DEAL and node.classification:
        lines.append(f"Stage: {node.classification}")
        if node.amount is not None:
            lines.append(f"${node.amount:,.0f}")
    elif node.classification and node.classification != "Unknown":
        lines.append(node.classification)

    if node.interaction_count:
        suffix = "shared interactions" if node.node_type is NodeType.EXTERNAL_PERSON else "interactions"
        lines.append(f"{node.interaction_count} {suffix}")
    return lines


def legend_items(model: RenderModel) -> List[Tuple[str, str]]:
    """(kind, label) pairs for the overlay kinds present in the current data only."""
    items: List[Tuple[str, str]] = []
    if model.risk_index:
        items.append(("ring", "At-risk (dashed ring)"))
    if model.moved_count > 0:
        items.append(("moved", "Left company"))
    if model.has_edge_type(EdgeType.MOVED_TO):
        items.append(("arrow", "Moved to (new company)"))
    return items


def cluster_color(cluster_id: int) -> str:
    return CLUSTER_PALETTE[cluster_id % len(CLUSTER_PALETTE)]
