from __future__ import annotations

import random
from collections import Counter
from typing import Dict, Iterable, List, Sequence

import networkx as nx

from .model import Cluster, Edge, EdgeType, Node, NodeType
from .styles import cluster_color

MAX_PASSES = 10


def build_cooccurrence_graph(nodes: Sequence[Node], edges: Iterable[Edge]) -> nx.Graph:
    """Weighted co-occurrence graph over Person nodes; parallel edges accumulate weight."""
    graph = nx.Graph()
    for node in nodes:
        if node.node_type is NodeType.PERSON:
            graph.add_node(node.id)

    for edge in edges:
        if edge.edge_type is not EdgeType.CO_OCCURRENCE:
            continue
        src, dst = edge.source.id, edge.target.id
        if src == dst or src not in graph or dst not in graph:
            continue
        weight = edge.interaction_count if edge.interaction_count and edge.interaction_count > 0 else 1
        if graph.has_edge(src, dst):
            graph[src][dst]["weight"] += weight
        else:
            graph.add_edge(src, dst, weight=weight)
    return graph


def visit_rng(graph: nx.Graph) -> random.Random:
    """Shuffle source seeded from the graph itself: sorted person ids plus weighted edges."""
    parts = sorted(str(node_id) for node_id in graph.nodes)
    parts.extend(
        sorted(
            "{}~{}:{}".format(*sorted((str(src), str(dst))), attrs.get("weight", 1))
            for src, dst, attrs in graph.edges(data=True)
        )
    )
    return random.Random("\n".join(parts))


def propagate_labels(graph: nx.Graph, max_passes: int = MAX_PASSES) -> Dict[str, str]:
    """
    Weighted label propagation.

    Each node starts with its own id as label and repeatedly adopts the label carrying
    the most neighbour weight. A node keeps its current label whenever that label is
    tied for the maximum, so labels never flap between equally supported options;
    other ties go to the smallest label. Passes visit nodes in a shuffled order drawn
    from ``visit_rng``, so the same graph always yields the same grouping regardless of
    how the caller ordered or numbered its nodes.
    """
    rng = visit_rng(graph)
    labels = {node_id: node_id for node_id in graph.nodes}
    visit = sorted(graph.nodes)

    for _ in range(max_passes):
        changed = False
        rng.shuffle(visit)
        for node_id in visit:
            support: Dict[str, float] = {}
            for neighbour, attrs in graph.adj[node_id].items():
                label = labels[neighbour]
                support[label] = support.get(label, 0) + attrs.get("weight", 1)
            if not support:
                continue

            current = labels[node_id]
            best_weight = max(support.values())
            if support.get(current, 0) == best_weight:
                continue
            labels[node_id] = min(label for label, weight in support.items() if weight == best_weight)
            changed = True
        if not changed:
            break
    return labels


def detect_clusters(
    nodes: Sequence[Node],
    edges: Iterable[Edge],
    root_name: str = "",
) -> Dict[int, Cluster]:
    """
    Group Person nodes into communities and assign ``cluster_id`` on every node.

    Non-person nodes get ``-1``. Cluster ids are dense and follow first appearance in
    ``nodes``; the largest cluster is labelled with ``root_name`` when one is known.
    """
    persons = [node for node in nodes if node.node_type is NodeType.PERSON]
    graph = build_cooccurrence_graph(nodes, edges)
    labels = propagate_labels(graph)

    dense: Dict[int, int] = {}
    for node in persons:
        dense.setdefault(labels[node.id], len(dense))

    members: Dict[int, List[Node]] = {}
    for node in nodes:
        if node.node_type is NodeType.PERSON:
            node.cluster_id = dense[labels[node.id]]
            members.setdefault(node.cluster_id, []).append(node)
        else:
            node.cluster_id = -1

    clusters: Dict[int, Cluster] = {}
    for cluster_id in sorted(members):
        group = members[cluster_id]
        counts = Counter(node.classification or "Unknown" for node in group)
        dominant = counts.most_common(1)[0][0]
        clusters[cluster_id] = Cluster(
            id=cluster_id,
            members=group,
            color=cluster_color(cluster_id),
            label=f"{dominant} group ({len(group)})",
        )

    if clusters and root_name:
        largest = None
        for cluster in clusters.values():
            if largest is None or cluster.size > largest.size:
                largest = cluster
        largest.label = root_name
    return clusters


def partition(clusters: Dict[int, Cluster]) -> frozenset:
    """Cluster membership as a set of member-id sets, independent of id numbering."""
    return frozenset(frozenset(node.id for node in cluster.members) for cluster in clusters.values())
