from __future__ import annotations

import json
import os
import pathlib
from typing import Any, Dict, List, Optional

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from relgraph.graph_processor import process_payload  # noqa: E402
from relgraph.model import RenderModel  # noqa: E402

DATA_DIR = pathlib.Path(__file__).resolve().parents[1] / "data"
SAMPLE_PATH = DATA_DIR / "sample_account_graph.json"


def person(node_id: str, name: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    node = {"id": node_id, "name": name or node_id, "nodeType": "Contact"}
    node.update(extra)
    return node


def org(node_id: str, name: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    node = {"id": node_id, "name": name or node_id, "nodeType": "Account"}
    node.update(extra)
    return node


def edge(source: str, target: str, edge_type: str, **extra: Any) -> Dict[str, Any]:
    raw = {"source": source, "target": target, "edgeType": edge_type}
    raw.update(extra)
    return raw


def payload(nodes: List[Dict[str, Any]], edges: Optional[List[Dict[str, Any]]] = None, **extra: Any) -> Dict[str, Any]:
    data = {"nodes": nodes, "edges": edges or []}
    data.update(extra)
    return data


@pytest.fixture
def two_pair_payload() -> Dict[str, Any]:
    """One organisation and four people forming two disconnected co-occurrence pairs."""
    return payload(
        [org("acc", "Acme"), person("p1"), person("p2"), person("p3"), person("p4")],
        [
            edge("p1", "acc", "account_relationship"),
            edge("p2", "acc", "account_relationship"),
            edge("p3", "acc", "account_relationship"),
            edge("p4", "acc", "account_relationship"),
            edge("p1", "p2", "co_occurrence", interactionCount=3),
            edge("p3", "p4", "co_occurrence", interactionCount=2),
        ],
    )


@pytest.fixture
def sample_graph() -> Dict[str, Any]:
    with SAMPLE_PATH.open("r", encoding="utf-8") as handle:
        return json.load(handle)["graph"]


@pytest.fixture
def sample_model(sample_graph) -> RenderModel:
    return process_payload(sample_graph)


@pytest.fixture(scope="session")
def qapp():
    from PyQt6 import QtWidgets

    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication([])
    yield app
