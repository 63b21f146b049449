from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from .clustering import detect_clusters
from .config import LOG_NAME
from .model import Edge, EdgeType, Node, NodeType, Notice, RenderModel, RiskAlert, Severity
from .styles import node_color, node_radius

logger = logging.getLogger(LOG_NAME).getChild("processor")

MOVED_OFFSET = (120.0, -60.0)
MOVED_EDGE_STRENGTH = 0.5


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def _as_text(value: Any) -> Optional[str]:
    if value is None or value == "" or isinstance(value, (dict, list)):
        return None
    return str(value)


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def parse_node(raw: Dict[str, Any]) -> Optional[Node]:
    if not isinstance(raw, dict):
        return None
    node_id = raw.get("id")
    node_type = NodeType.parse(raw.get("nodeType"))
    if not node_id or node_type is None:
        return None
    return Node(
        id=str(node_id),
        name=str(raw.get("name") or ""),
        node_type=node_type,
        classification=_as_text(raw.get("classification")),
        confidence=_as_float(raw.get("confidence")),
        interaction_count=_as_int(raw.get("interactionCount")),
        title=_as_text(raw.get("title")),
        email=_as_text(raw.get("email")),
        amount=_as_float(raw.get("amount")),
        close_date=_as_text(raw.get("closeDate")),
        account_name=_as_text(raw.get("accountName")),
        is_hierarchy_member=raw.get("isHierarchyAccount") is True,
        hierarchy_level=_as_text(raw.get("hierarchyLevel")),
        has_moved=raw.get("hasMovedCompany") is True,
        destination_name=_as_text(raw.get("destinationName", raw.get("previousCompany"))),
        destination_id=_as_text(raw.get("destinationId", raw.get("previousCompanyId"))),
        strength_factors=list(_as_list(raw.get("strengthFactors"))),
        record_id=_as_text(raw.get("recordId")),
    )


def parse_risk_alert(raw: Dict[str, Any]) -> Optional[RiskAlert]:
    if not isinstance(raw, dict):
        return None
    try:
        severity = Severity(raw.get("severity"))
    except (TypeError, ValueError):
        return None
    subject_id = raw.get("subjectId", raw.get("contactId"))
    return RiskAlert(
        severity=severity,
        risk_type=str(raw.get("riskType") or ""),
        message=str(raw.get("message") or ""),
        subject_id=str(subject_id) if subject_id else None,
        subject_name=_as_text(raw.get("subjectName", raw.get("contactName"))),
    )


def build_risk_index(alerts: Iterable[RiskAlert]) -> Dict[str, Severity]:
    """Highest severity seen per subject; high wins over medium."""
    index: Dict[str, Severity] = {}
    for alert in alerts:
        if not alert.subject_id:
            continue
        existing = index.get(alert.subject_id)
        if existing is None or alert.severity.rank > existing.rank:
            index[alert.subject_id] = alert.severity
    return index


def _collect_notices(payload: Dict[str, Any], person_count: int) -> List[Notice]:
    notices: List[Notice] = []
    if payload.get("isTruncated"):
        total = payload.get("totalCount", payload.get("totalContactCount")) or 0
        notices.append(
            Notice(
                "warning",
                "Large Account",
                f"Showing {person_count} of {total}+ contacts. Use filters to focus.",
            )
        )
    warnings = [str(item) for item in _as_list(payload.get("warnings")) if item]
    if warnings:
        notices.append(Notice("info", "Info", "; ".join(warnings)))
    return notices


def process_payload(
    payload: Optional[Dict[str, Any]],
    show_hierarchy: bool = False,
    active_filters: Iterable[str] = (),
) -> RenderModel:
    """
    Normalise a raw graph payload into a render model.

    Malformed entries (no id, unknown type, duplicate id, self edge, dangling endpoint)
    are dropped rather than raised. A null payload or one without a node list yields
    an empty model.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("nodes"), list):
        return RenderModel(show_hierarchy=show_hierarchy)

    filters = list(active_filters)
    raw_nodes: List[Dict[str, Any]] = payload["nodes"]

    nodes: List[Node] = []
    seen: set = set()
    root_name = ""
    root_found = False
    external_count = hierarchy_count = moved_count = 0
    for raw in raw_nodes:
        node = parse_node(raw)
        if node is None:
            logger.debug("Dropping malformed node entry: %r", raw)
            continue
        if node.id in seen:
            logger.debug("Dropping duplicate node id %s", node.id)
            continue
        seen.add(node.id)
        if node.node_type is NodeType.SYNTHETIC_DESTINATION:
            # destinations are derived from moved flags below, never taken from the payload
            continue
        external_count += node.node_type is NodeType.EXTERNAL_PERSON
        hierarchy_count += node.is_hierarchy_member
        moved_count += node.has_moved
        if node.is_primary_organization:
            if not root_found:
                root_name = node.name
                root_found = True
            if not show_hierarchy:
                continue
        nodes.append(node)

    by_id = {node.id: node for node in nodes}
    edges: List[Edge] = []
    for raw in _as_list(payload.get("edges")):
        if not isinstance(raw, dict):
            continue
        edge_type = EdgeType.parse(raw.get("edgeType"))
        if edge_type is None:
            logger.debug("Dropping edge with unknown type: %r", raw)
            continue
        if edge_type is EdgeType.ORG_RELATIONSHIP and not show_hierarchy:
            continue
        source = by_id.get(str(raw.get("source")))
        target = by_id.get(str(raw.get("target")))
        if source is None or target is None or source is target:
            continue
        edges.append(
            Edge(
                source=source,
                target=target,
                edge_type=edge_type,
                strength=_as_float(raw.get("strength")),
                interaction_count=_as_int(raw.get("interactionCount")),
                label=_as_text(raw.get("label")),
            )
        )

    fallback_seq = 0
    for node in list(nodes):
        if not (node.has_moved and node.destination_name):
            continue
        dest_id = node.destination_id
        if not dest_id or dest_id in by_id:
            dest_id = f"moved_to_{fallback_seq}"
            fallback_seq += 1
            while dest_id in by_id:
                dest_id = f"moved_to_{fallback_seq}"
                fallback_seq += 1
        destination = Node(
            id=dest_id,
            name=node.destination_name,
            node_type=NodeType.SYNTHETIC_DESTINATION,
            record_id=node.destination_id,
            origin_id=node.id,
        )
        nodes.append(destination)
        by_id[dest_id] = destination
        edges.append(
            Edge(
                source=node,
                target=destination,
                edge_type=EdgeType.MOVED_TO,
                strength=MOVED_EDGE_STRENGTH,
                interaction_count=0,
            )
        )

    for node in nodes:
        node.radius = node_radius(node)
        node.color = node_color(node, filters)

    alerts = [alert for alert in (parse_risk_alert(raw) for raw in _as_list(payload.get("riskAlerts"))) if alert]
    clusters = detect_clusters(nodes, edges, root_name=root_name)
    person_count = sum(1 for node in nodes if node.node_type is NodeType.PERSON)

    model = RenderModel(
        nodes=nodes,
        edges=edges,
        clusters=clusters,
        risk_index=build_risk_index(alerts),
        risk_alerts=alerts,
        notices=_collect_notices(payload, person_count),
        root_name=root_name,
        show_hierarchy=show_hierarchy,
        is_truncated=bool(payload.get("isTruncated")),
        total_count=_as_int(payload.get("totalCount", payload.get("totalContactCount"))),
        external_count=external_count,
        hierarchy_count=hierarchy_count,
        moved_count=moved_count,
    )
    logger.info(
        "Processed graph payload: %d nodes, %d edges, %d clusters, %d risk subjects.",
        len(model.nodes),
        len(model.edges),
        len(model.clusters),
        len(model.risk_index),
    )
    return model


def recolor(model: RenderModel, active_filters: Iterable[str]) -> None:
    """Re-derive node colours after a filter change; positions and layout are untouched."""
    filters = list(active_filters)
    for node in model.nodes:
        node.color = node_color(node, filters)
