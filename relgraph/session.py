from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, FrozenSet, Iterable, Optional

from .config import LOG_NAME, GraphConfig
from .graph_processor import process_payload, recolor
from .model import Node, NodeType, RenderModel, RiskAlert, ToggleState
from .providers import (
    DataProvider,
    InMemoryToggleStore,
    LoadRequest,
    LoggingNavigator,
    LoggingNotifier,
    Navigator,
    Notifier,
    ToggleStore,
    extract_error_message,
)
from .styles import node_color

LOAD_FAILED = "Failed to load graph data: "
REFRESH_FAILED = "Failed to refresh: "
OVERRIDE_FAILED = "Failed to override classification: "


@dataclass(frozen=True)
class LoadTicket:
    seq: int
    refresh: bool
    request: LoadRequest


class GraphSession:
    """
    Owns the current render model for one root entity and talks to the outside world.

    Provider calls may run on another thread: ``begin_load`` hands out a ticket, the
    caller fetches with it, then reports back through ``complete`` or ``fail``. Only
    the most recently issued ticket is allowed to replace the model, so a slow
    response can never overwrite a newer one.
    """

    def __init__(
        self,
        root_id: str,
        provider: DataProvider,
        notifier: Optional[Notifier] = None,
        navigator: Optional[Navigator] = None,
        toggle_store: Optional[ToggleStore] = None,
        defaults: Optional[ToggleState] = None,
    ):
        self.root_id = root_id
        self.provider = provider
        self.notifier = notifier or LoggingNotifier()
        self.navigator = navigator or LoggingNavigator()
        self.toggle_store = toggle_store or InMemoryToggleStore()
        self.logger = logging.getLogger(LOG_NAME).getChild("session")

        self.config = GraphConfig()
        self.toggles = defaults or ToggleState()
        self.model = RenderModel()
        self.active_filters: FrozenSet[str] = frozenset()
        self.selected_id: Optional[str] = None
        self.is_loading = False
        self._seq = 0
        self.restore_toggles()

    # persistence -----------------------------------------------------

    def restore_toggles(self) -> bool:
        saved = self.toggle_store.load(self.root_id)
        if saved is None:
            return False
        self.toggles = saved
        return True

    def save_toggles(self) -> None:
        try:
            self.toggle_store.save(self.root_id, self.toggles)
        except OSError:
            self.logger.warning("Unable to persist toggle state for %s.", self.root_id, exc_info=True)

    # config ----------------------------------------------------------

    def load_config(self) -> GraphConfig:
        try:
            payload = self.provider.get_config()
        except Exception as exc:  # pylint: disable=broad-except
            return self.config_failed(exc)
        return self.apply_config(payload)

    def apply_config(self, payload: Optional[Dict[str, Any]]) -> GraphConfig:
        try:
            self.config = GraphConfig.from_payload(payload)
        except (TypeError, ValueError, AttributeError) as exc:
            return self.config_failed(exc)
        if self.config.min_interactions:
            self.toggles = replace(self.toggles, min_interactions=self.config.min_interactions)
        return self.config

    def config_failed(self, error: Any) -> GraphConfig:
        """Config is optional: log and carry on with built-in defaults, no notification."""
        self.logger.warning("Failed to load config, using defaults: %s", extract_error_message(error))
        self.config = GraphConfig()
        return self.config

    # loading ---------------------------------------------------------

    def build_request(self) -> LoadRequest:
        return LoadRequest(
            root_id=self.root_id,
            hide_passive_nodes=self.toggles.hide_passive_nodes,
            min_interactions=self.toggles.min_interactions,
            activity_threshold_days=self.config.activity_threshold_days,
            show_external_nodes=self.toggles.show_external_nodes,
            show_hierarchy=self.toggles.show_hierarchy,
        )

    def begin_load(self, refresh: bool = False) -> LoadTicket:
        self._seq += 1
        self.is_loading = True
        return LoadTicket(self._seq, refresh, self.build_request())

    def is_current(self, ticket: LoadTicket) -> bool:
        return ticket.seq == self._seq

    def fetch(self, ticket: LoadTicket) -> Dict[str, Any]:
        if ticket.refresh:
            return self.provider.refresh_graph(ticket.request)
        return self.provider.load_graph(ticket.request)

    def complete(self, ticket: LoadTicket, payload: Optional[Dict[str, Any]]) -> Optional[RenderModel]:
        if not self.is_current(ticket):
            self.logger.debug("Discarding stale graph result #%d (latest is #%d).", ticket.seq, self._seq)
            return None
        try:
            model = process_payload(
                payload,
                show_hierarchy=ticket.request.show_hierarchy,
                active_filters=self.active_filters,
            )
        except Exception as exc:  # pylint: disable=broad-except
            self.logger.exception("Processing graph result #%d failed.", ticket.seq)
            self.fail(ticket, exc)
            return None
        self.is_loading = False
        self.model = model
        for notice in self.model.notices:
            self.notifier.notify(notice.level, notice.title, notice.message)
        if ticket.refresh:
            self.notifier.notify("success", "Success", "Graph data refreshed")
        if self.model.node(self.selected_id) is None:
            self.selected_id = None
        return self.model

    def fail(self, ticket: LoadTicket, error: Any) -> bool:
        if not self.is_current(ticket):
            self.logger.debug("Discarding stale graph failure #%d.", ticket.seq)
            return False
        self.is_loading = False
        prefix = REFRESH_FAILED if ticket.refresh else LOAD_FAILED
        self.notifier.notify("error", "Error", prefix + extract_error_message(error))
        return True

    def load(self, refresh: bool = False) -> Optional[RenderModel]:
        """Synchronous load for headless callers and tests."""
        ticket = self.begin_load(refresh=refresh)
        try:
            payload = self.fetch(ticket)
        except Exception as exc:  # pylint: disable=broad-except
            self.logger.exception("Graph %s failed.", "refresh" if refresh else "load")
            self.fail(ticket, exc)
            return None
        return self.complete(ticket, payload)

    # toggles ---------------------------------------------------------

    def _set_toggles(self, **changes: Any) -> ToggleState:
        self.toggles = replace(self.toggles, **changes)
        self.save_toggles()
        return self.toggles

    def toggle_hide_passive(self) -> ToggleState:
        return self._set_toggles(hide_passive_nodes=not self.toggles.hide_passive_nodes)

    def toggle_external_nodes(self) -> ToggleState:
        return self._set_toggles(show_external_nodes=not self.toggles.show_external_nodes)

    def toggle_hierarchy(self) -> ToggleState:
        return self._set_toggles(show_hierarchy=not self.toggles.show_hierarchy)

    def set_min_interactions(self, value: int) -> ToggleState:
        return self._set_toggles(min_interactions=max(0, int(value)))

    def set_filters(self, filters: Iterable[str]) -> None:
        """Colour-only update; the layout is left alone."""
        self.active_filters = frozenset(filters)
        recolor(self.model, self.active_filters)

    # selection, override, navigation ---------------------------------

    @property
    def selected_node(self) -> Optional[Node]:
        return self.model.node(self.selected_id)

    def select(self, node_id: Optional[str]) -> Optional[Node]:
        self.selected_id = node_id if self.model.node(node_id) is not None else None
        return self.selected_node

    def override_classification(self, classification: str) -> bool:
        node = self.selected_node
        if node is None:
            return False
        try:
            self.provider.override_classification(node.id, self.root_id, classification)
        except Exception as exc:  # pylint: disable=broad-except
            self.logger.exception("Classification override failed for %s.", node.id)
            self.override_failed(exc)
            return False
        self.override_succeeded(node.id, classification)
        return True

    def override_succeeded(self, node_id: str, classification: str) -> None:
        """Update the node in place; no reload is needed for a new classification."""
        node = self.model.node(node_id)
        if node is not None:
            node.classification = classification
            node.color = node_color(node, self.active_filters)
        self.notifier.notify("success", "Success", "Classification updated")

    def override_failed(self, error: Any) -> None:
        self.notifier.notify("error", "Error", OVERRIDE_FAILED + extract_error_message(error))

    def navigate(self, node_id: Optional[str] = None) -> bool:
        node = self.model.node(node_id or self.selected_id)
        if node is None or not node.navigation_id:
            return False
        self.navigator.open_record(node.navigation_id)
        return True

    def focus_alert(self, alert: RiskAlert) -> Optional[Node]:
        if not alert.subject_id:
            return None
        return self.select(alert.subject_id)

    @property
    def can_override(self) -> bool:
        node = self.selected_node
        return node is not None and node.node_type is NodeType.PERSON
