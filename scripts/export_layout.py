#!/usr/bin/env python
"""
Utility to run the relationship graph layout headlessly and export node positions as JSON.

Usage:
    python scripts/export_layout.py --input data/sample_account_graph.json --output runtime/layout.json

The resulting JSON contains the settled position, cluster and colour of every node plus
the edge list, so another front end can draw the graph without running the solver.
"""

from __future__ import annotations

import argparse
import json
import pathlib
import sys

import numpy as np

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from relgraph.layout import LayoutEngine  # noqa: E402  pylint: disable=wrong-import-position
from relgraph.model import RenderModel, ToggleState  # noqa: E402  pylint: disable=wrong-import-position
from relgraph.providers import JsonFileProvider  # noqa: E402  pylint: disable=wrong-import-position
from relgraph.session import GraphSession  # noqa: E402  pylint: disable=wrong-import-position


def build_layout_payload(model: RenderModel, engine: LayoutEngine) -> dict:
    positions = engine.scene().positions()
    return {
        "rootName": model.root_name,
        "width": engine.width,
        "height": engine.height,
        "nodes": [
            {
                "id": node.id,
                "name": node.name,
                "nodeType": node.node_type.value,
                "x": round(positions[node.id][0], 2),
                "y": round(positions[node.id][1], 2),
                "radius": node.radius,
                "color": node.color,
                "cluster": node.cluster_id,
            }
            for node in model.nodes
        ],
        "edges": [
            {"source": edge.source.id, "target": edge.target.id, "edgeType": edge.edge_type.value}
            for edge in model.edges
        ],
        "clusters": [
            {"id": cluster.id, "label": cluster.label, "color": cluster.color, "members": [n.id for n in cluster.members]}
            for cluster in model.clusters.values()
        ],
    }


def export_layout(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    root_id: str,
    ticks: int,
    show_hierarchy: bool,
    seed: int,
) -> None:
    provider = JsonFileProvider(input_path)
    defaults = ToggleState(hide_passive_nodes=False, show_external_nodes=True, show_hierarchy=show_hierarchy)
    session = GraphSession(root_id, provider, defaults=defaults)
    session.load_config()
    model = session.load()
    if model is None:
        raise SystemExit(f"Failed to load graph payload from {input_path}; see the log for details.")

    engine = LayoutEngine()
    engine.start(model, 1200, 800, rng=np.random.default_rng(seed))
    done = engine.run(ticks)

    payload = build_layout_payload(model, engine)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote layout for {len(model.nodes)} nodes after {done} ticks to {output_path}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export a settled relationship graph layout as JSON.")
    parser.add_argument("--input", required=True, type=pathlib.Path, help="Path to the graph payload (.json).")
    parser.add_argument("--output", required=True, type=pathlib.Path, help="Destination JSON file for the layout.")
    parser.add_argument("--root-id", default="", help="Id of the account the graph is centred on.")
    parser.add_argument("--ticks", type=int, default=300, help="Maximum number of solver ticks to run.")
    parser.add_argument("--hierarchy", action="store_true", help="Include account hierarchy nodes.")
    parser.add_argument("--seed", type=int, default=7, help="Seed for the initial node positions.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    export_layout(args.input, args.output, args.root_id, args.ticks, args.hierarchy, args.seed)


if __name__ == "__main__":
    main()
