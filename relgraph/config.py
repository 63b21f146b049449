from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

LOG_NAME = "relationship_graph"

DEFAULT_CLASSIFICATIONS = [
    "Champion",
    "Economic Buyer",
    "Technical Buyer",
    "Blocker",
    "Influencer",
    "End User",
    "Detractor",
    "Unknown",
]

DEFAULT_ACTIVITY_THRESHOLD_DAYS = 90
DEFAULT_MIN_INTERACTIONS = 3
THRESHOLD_DEBOUNCE_MS = 500


@dataclass
class GraphConfig:
    """
    Settings served by the data provider's config endpoint.

    Every field has a built-in default so the view can render when the endpoint fails.
    """

    classifications: List[str] = field(default_factory=lambda: list(DEFAULT_CLASSIFICATIONS))
    activity_threshold_days: int = DEFAULT_ACTIVITY_THRESHOLD_DAYS
    min_interactions: Optional[int] = None
    cache_ttl_minutes: int = 30
    classification_provider: str = "Heuristic"

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> "GraphConfig":
        if not payload:
            return cls()
        config = cls()
        classifications = payload.get("classifications")
        if classifications:
            config.classifications = [str(item) for item in classifications]
        if payload.get("activityThresholdDays"):
            config.activity_threshold_days = int(payload["activityThresholdDays"])
        if payload.get("minInteractions"):
            config.min_interactions = int(payload["minInteractions"])
        ttl = payload.get("cacheTTLMinutes", payload.get("cacheTTL"))
        if ttl:
            config.cache_ttl_minutes = int(ttl)
        if payload.get("classificationProvider"):
            config.classification_provider = str(payload["classificationProvider"])
        return config
