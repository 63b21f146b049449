from __future__ import annotations

from typing import Any, Dict, List

import pandas as pd

from .model import Node, RenderModel

RISK_COLUMNS = ["severity", "risk_type", "subject", "message", "subject_id"]
CLUSTER_COLUMNS = ["cluster", "label", "members", "dominant_classification", "interactions", "at_risk"]
FACTOR_COLUMNS = ["factor", "contribution", "share_of_max"]


def risk_alert_table(model: RenderModel) -> pd.DataFrame:
    """Risk alerts with high severity first; ``subject_id`` is kept for click-to-focus."""
    if not model.risk_alerts:
        return pd.DataFrame(columns=RISK_COLUMNS)
    rows = []
    for alert in model.risk_alerts:
        rows.append(
            {
                "severity": alert.severity.value,
                "risk_type": alert.risk_type,
                "subject": alert.subject_name or "",
                "message": alert.message,
                "subject_id": alert.subject_id,
                "_rank": alert.severity.rank,
            }
        )
    df = pd.DataFrame(rows)
    df = df.sort_values("_rank", ascending=False, kind="stable").drop(columns="_rank")
    return df.reset_index(drop=True)[RISK_COLUMNS]


def cluster_summary_table(model: RenderModel) -> pd.DataFrame:
    if not model.clusters:
        return pd.DataFrame(columns=CLUSTER_COLUMNS)
    rows: List[Dict[str, Any]] = []
    for cluster in model.clusters.values():
        classifications = pd.Series([node.classification or "Unknown" for node in cluster.members])
        rows.append(
            {
                "cluster": cluster.id,
                "label": cluster.label,
                "members": cluster.size,
                "dominant_classification": classifications.value_counts().index[0],
                "interactions": sum(node.interaction_count for node in cluster.members),
                "at_risk": sum(1 for node in cluster.members if node.id in model.risk_index),
            }
        )
    return pd.DataFrame(rows).sort_values("members", ascending=False, kind="stable").reset_index(drop=True)


def strength_factor_table(node: Node) -> pd.DataFrame:
    """Positive strength factors of a node, strongest first, with each one's share of the top factor."""
    rows = []
    for factor in node.strength_factors or []:
        try:
            contribution = float(factor.get("contribution") or 0)
        except (TypeError, ValueError, AttributeError):
            continue
        if contribution > 0:
            rows.append({"factor": str(factor.get("name") or factor.get("label") or ""), "contribution": contribution})
    if not rows:
        return pd.DataFrame(columns=FACTOR_COLUMNS)
    df = pd.DataFrame(rows).sort_values("contribution", ascending=False).reset_index(drop=True)
    top = max(df["contribution"].max(), 0.01)
    df["share_of_max"] = (df["contribution"] / top * 100).clip(upper=100).round(1)
    return df[FACTOR_COLUMNS]
