from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from .config import LOG_NAME
from .model import ToggleState

logger = logging.getLogger(LOG_NAME).getChild("providers")

UNKNOWN_ERROR = "Unknown error"
TOGGLE_KEY_PREFIX = "relgraph_"


class ProviderError(Exception):
    """Raised by a data provider when a remote call fails; ``body`` carries the raw error payload."""

    def __init__(self, message: str, body: Any = None):
        super().__init__(message)
        self.message = message
        self.body = body


class PayloadError(Exception):
    """Raised when a graph payload file cannot be read or decoded."""


def extract_error_message(error: Any) -> str:
    """Best human-readable message for an error coming back from a provider call."""
    if isinstance(error, str):
        return error or UNKNOWN_ERROR
    body = getattr(error, "body", None)
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    if body is not None and getattr(body, "message", None):
        return str(body.message)
    message = getattr(error, "message", None)
    if message:
        return str(message)
    if isinstance(error, BaseException) and str(error):
        return str(error)
    return UNKNOWN_ERROR


@dataclass(frozen=True)
class LoadRequest:
    root_id: str
    hide_passive_nodes: bool
    min_interactions: int
    activity_threshold_days: int
    show_external_nodes: bool
    show_hierarchy: bool


class DataProvider(Protocol):
    def get_config(self) -> Dict[str, Any]:
        ...

    def load_graph(self, request: LoadRequest) -> Dict[str, Any]:
        ...

    def refresh_graph(self, request: LoadRequest) -> Dict[str, Any]:
        ...

    def override_classification(self, subject_id: str, root_id: str, classification: str) -> bool:
        ...


class Notifier(Protocol):
    def notify(self, level: str, title: str, message: str) -> None:
        ...


class Navigator(Protocol):
    def open_record(self, record_id: str) -> None:
        ...


class ToggleStore(Protocol):
    def load(self, root_id: str) -> Optional[ToggleState]:
        ...

    def save(self, root_id: str, state: ToggleState) -> None:
        ...


class JsonFileProvider:
    """
    Serves a graph payload from a JSON file on disk.

    The file holds either a bare payload or ``{"config": {...}, "graph": {...}}``.
    Filtering arguments are applied the way a backend would: passive people below the
    interaction threshold, external people and hierarchy accounts are removed when the
    request asks for it. Classification overrides are kept in memory and reapplied on
    every load.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._overrides: Dict[str, str] = {}

    def _read(self) -> Dict[str, Any]:
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except OSError as exc:
            raise PayloadError(f"Unable to read {self.path}: {exc.strerror or exc}") from exc
        except json.JSONDecodeError as exc:
            raise PayloadError(f"{self.path.name} is not valid JSON (line {exc.lineno}).") from exc
        if not isinstance(data, dict):
            raise PayloadError(f"{self.path.name} does not contain a JSON object.")
        return data

    def get_config(self) -> Dict[str, Any]:
        config = self._read().get("config")
        if config is None:
            raise ProviderError("No configuration in payload file")
        return dict(config)

    def load_graph(self, request: LoadRequest) -> Dict[str, Any]:
        data = self._read()
        payload = copy.deepcopy(data.get("graph", data))
        if "nodes" in payload:
            payload["nodes"] = [node for node in payload["nodes"] if self._keep(node, request)]
            for node in payload["nodes"]:
                override = self._overrides.get(str(node.get("id")))
                if override:
                    node["classification"] = override
                    node["confidence"] = 1.0
        logger.info("Loaded graph payload for %s from %s.", request.root_id, self.path)
        return payload

    def refresh_graph(self, request: LoadRequest) -> Dict[str, Any]:
        return self.load_graph(request)

    def override_classification(self, subject_id: str, root_id: str, classification: str) -> bool:
        if not subject_id:
            raise ProviderError("Missing subject id", body={"message": "A contact must be selected"})
        self._overrides[subject_id] = classification
        logger.info("Classification of %s on %s overridden to %s.", subject_id, root_id, classification)
        return True

    @staticmethod
    def _keep(node: Dict[str, Any], request: LoadRequest) -> bool:
        node_type = node.get("nodeType")
        if node_type == "External_Contact" and not request.show_external_nodes:
            return False
        if node.get("isHierarchyAccount") and not request.show_hierarchy:
            return False
        if node_type == "Contact" and request.hide_passive_nodes:
            return int(node.get("interactionCount") or 0) >= request.min_interactions
        return True


class InMemoryToggleStore:
    def __init__(self) -> None:
        self._states: Dict[str, ToggleState] = {}

    def load(self, root_id: str) -> Optional[ToggleState]:
        return self._states.get(root_id)

    def save(self, root_id: str, state: ToggleState) -> None:
        self._states[root_id] = state


class JsonToggleStore:
    """Persists toggle states in a single JSON file, one entry per root entity."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    @staticmethod
    def key(root_id: str) -> str:
        return f"{TOGGLE_KEY_PREFIX}{root_id}"

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError):
            logger.warning("Ignoring unreadable toggle store %s.", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, root_id: str) -> Optional[ToggleState]:
        entry = self._read_all().get(self.key(root_id))
        if not isinstance(entry, dict):
            return None
        try:
            return ToggleState.from_dict(entry)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed toggle state for %s.", root_id)
            return None

    def save(self, root_id: str, state: ToggleState) -> None:
        data = self._read_all()
        data[self.key(root_id)] = state.to_dict()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2)


class LoggingNotifier:
    LEVELS = {
        "info": logging.INFO,
        "success": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def __init__(self, log: Optional[logging.Logger] = None):
        self.logger = log or logger.getChild("notify")

    def notify(self, level: str, title: str, message: str) -> None:
        self.logger.log(self.LEVELS.get(level, logging.INFO), "%s: %s", title, message)


class LoggingNavigator:
    def __init__(self, log: Optional[logging.Logger] = None):
        self.logger = log or logger.getChild("navigate")

    def open_record(self, record_id: str) -> None:
        self.logger.info("Navigation requested for record %s.", record_id)
