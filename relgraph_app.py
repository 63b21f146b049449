from __future__ import annotations

import argparse
import functools
import logging
import pathlib
import sys
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd
import pyqtgraph as pg
from PyQt6 import QtCore, QtGui, QtWidgets

from relgraph.config import LOG_NAME
from relgraph.interaction import (
    Click,
    DoubleClick,
    FocusNode,
    InteractionState,
    Navigate,
    PointerDown,
    PointerLeave,
    PointerMove,
    PointerUp,
    Recolor,
    Redraw,
    Resize,
    ScheduleReload,
    Select,
    SetCursor,
    SetThreshold,
    ThresholdChanged,
    ToggleFilter,
    Wheel,
    ZoomIn,
    ZoomOut,
    ZoomReset,
    reduce,
)
from relgraph.layout import LayoutEngine
from relgraph.model import Node, NodeType, RenderModel
from relgraph.providers import DataProvider, JsonFileProvider, JsonToggleStore, ToggleStore, extract_error_message
from relgraph.renderer import GraphRenderer
from relgraph.session import GraphSession, LoadTicket
from relgraph.styles import CLASSIFICATION_COLORS
from relgraph.summaries import cluster_summary_table, risk_alert_table, strength_factor_table

SAMPLE_PAYLOAD_PATH = pathlib.Path("data/sample_account_graph.json")
SAMPLE_ROOT_ID = "001SAMPLE0000001"
LOG_FILE_PATH = pathlib.Path.cwd() / "relationship_graph.log"
TOGGLE_STORE_PATH = pathlib.Path.home() / ".relationship_graph" / "toggles.json"
TICK_INTERVAL_MS = 16

CURSORS = {
    "default": QtCore.Qt.CursorShape.ArrowCursor,
    "pointer": QtCore.Qt.CursorShape.PointingHandCursor,
    "grabbing": QtCore.Qt.CursorShape.ClosedHandCursor,
}


def configure_logging() -> logging.Logger:
    logger = logging.getLogger(LOG_NAME)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        file_handler = logging.FileHandler(LOG_FILE_PATH, encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        logger.propagate = False
        logger.info("Logging initialised. Writing to %s", LOG_FILE_PATH)
    return logger


BASE_LOGGER = configure_logging()


class PandasTableModel(QtCore.QAbstractTableModel):
    def __init__(self, dataframe: Optional[pd.DataFrame] = None):
        super().__init__()
        self._dataframe = dataframe if dataframe is not None else pd.DataFrame()

    def set_dataframe(self, dataframe: pd.DataFrame):
        self.beginResetModel()
        self._dataframe = dataframe.copy()
        self.endResetModel()

    def row_value(self, row: int, column: str) -> Any:
        if column not in self._dataframe.columns or not 0 <= row < len(self._dataframe.index):
            return None
        value = self._dataframe[column].iloc[row]
        return None if pd.isna(value) else value

    def rowCount(self, parent: QtCore.QModelIndex = QtCore.QModelIndex()) -> int:  # type: ignore[override]
        if parent.isValid():
            return 0
        return len(self._dataframe.index)

    def columnCount(self, parent: QtCore.QModelIndex = QtCore.QModelIndex()) -> int:  # type: ignore[override]
        if parent.isValid():
            return 0
        return len(self._dataframe.columns)

    def data(self, index: QtCore.QModelIndex, role: int = QtCore.Qt.ItemDataRole.DisplayRole):  # type: ignore[override]
        if not index.isValid() or role not in (QtCore.Qt.ItemDataRole.DisplayRole, QtCore.Qt.ItemDataRole.ToolTipRole):
            return None
        value = self._dataframe.iat[index.row(), index.column()]
        if pd.isna(value):
            return ""
        return str(value)

    def headerData(  # type: ignore[override]
        self, section: int, orientation: QtCore.Qt.Orientation, role: int = QtCore.Qt.ItemDataRole.DisplayRole
    ):
        if role != QtCore.Qt.ItemDataRole.DisplayRole:
            return None
        if orientation == QtCore.Qt.Orientation.Horizontal:
            try:
                return str(self._dataframe.columns[section]).replace("_", " ").title()
            except IndexError:
                return None
        return str(section + 1)


class ProviderWorker(QtCore.QObject):
    """Runs one provider call off the GUI thread and reports back with the caller's token."""

    finished = QtCore.pyqtSignal(object, object)  # token, result
    failed = QtCore.pyqtSignal(object, object)  # token, exception

    def __init__(self, token: Any, call: Callable[[], Any]):
        super().__init__()
        self.token = token
        self.call = call
        self.logger = BASE_LOGGER.getChild("worker")

    def run(self) -> None:
        try:
            result = self.call()
        except Exception as exc:  # pylint: disable=broad-except
            self.logger.exception("Provider call failed for %r.", self.token)
            self.failed.emit(self.token, exc)
            return
        self.finished.emit(self.token, result)


class RelationshipGraphWidget(QtWidgets.QWidget):
    """
    Canvas for the relationship graph.

    Qt input events are translated into reducer events; the resulting effects drive the
    layout engine, repaints and the signals below. The physics tick runs on a QTimer
    only while the solver is hot.
    """

    selectionChanged = QtCore.pyqtSignal(object)
    navigationRequested = QtCore.pyqtSignal(str)
    filtersChanged = QtCore.pyqtSignal(object)
    thresholdChanged = QtCore.pyqtSignal(int)
    reloadRequested = QtCore.pyqtSignal()

    def __init__(self, parent: Optional[QtWidgets.QWidget] = None):
        super().__init__(parent)
        self.logger = BASE_LOGGER.getChild("canvas")
        self.setMouseTracking(True)
        self.setMinimumSize(480, 360)
        self.setFocusPolicy(QtCore.Qt.FocusPolicy.StrongFocus)

        self.model = RenderModel()
        self.renderer = GraphRenderer()
        self.engine = LayoutEngine(on_tick=self.update)
        self.state = InteractionState(width=float(self.width()), height=float(self.height()))
        self._last_pos: Optional[QtCore.QPointF] = None

        self._tick_timer = QtCore.QTimer(self)
        self._tick_timer.setInterval(TICK_INTERVAL_MS)
        self._tick_timer.timeout.connect(self._on_tick)

        self._debounce_timer = QtCore.QTimer(self)
        self._debounce_timer.setSingleShot(True)
        self._debounce_timer.timeout.connect(self.reloadRequested.emit)

    # model -----------------------------------------------------------
    def set_model(self, model: RenderModel, min_interactions: Optional[int] = None) -> None:
        self.model = model
        self.state = InteractionState(
            transform=self.state.transform,
            selected_id=self.state.selected_id if model.node(self.state.selected_id) else None,
            active_filters=self.state.active_filters,
            min_interactions=self.state.min_interactions if min_interactions is None else min_interactions,
            width=float(self.width()),
            height=float(self.height()),
        )
        self.engine.start(model, self.width(), self.height())
        self._ensure_ticking()
        self.update()

    def _ensure_ticking(self) -> None:
        if self.engine.running and not self._tick_timer.isActive():
            self._tick_timer.start()

    def _on_tick(self) -> None:
        if not self.engine.tick():
            self._tick_timer.stop()

    # reducer plumbing ------------------------------------------------
    def dispatch(self, event: Any) -> None:
        self.state, effects = reduce(self.state, event, self.engine.scene())
        for effect in effects:
            if self.engine.apply_effect(effect):
                self._ensure_ticking()
            elif isinstance(effect, Redraw):
                self.update()
            elif isinstance(effect, Select):
                self.selectionChanged.emit(effect.node_id)
            elif isinstance(effect, Navigate):
                self.navigationRequested.emit(effect.node_id)
            elif isinstance(effect, Recolor):
                self.filtersChanged.emit(effect.filters)
            elif isinstance(effect, ScheduleReload):
                self._debounce_timer.start(effect.delay_ms)
            elif isinstance(effect, SetThreshold):
                self.thresholdChanged.emit(effect.value)
            elif isinstance(effect, SetCursor):
                self.setCursor(CURSORS.get(effect.shape, QtCore.Qt.CursorShape.ArrowCursor))

    def zoom_in(self) -> None:
        self.dispatch(ZoomIn())

    def zoom_out(self) -> None:
        self.dispatch(ZoomOut())

    def zoom_reset(self) -> None:
        self.dispatch(ZoomReset())

    def toggle_filter(self, classification: str) -> None:
        self.dispatch(ToggleFilter(classification))

    def set_threshold(self, value: int) -> None:
        self.dispatch(ThresholdChanged(value))

    def focus_node(self, node_id: str) -> None:
        self.dispatch(FocusNode(node_id))

    # Qt events -------------------------------------------------------
    def paintEvent(self, event: QtGui.QPaintEvent) -> None:  # type: ignore[override]
        painter = QtGui.QPainter(self)
        try:
            self.renderer.paint(painter, self.model, self.engine.store, self.state, self.width(), self.height())
        finally:
            painter.end()

    def mousePressEvent(self, event: QtGui.QMouseEvent) -> None:  # type: ignore[override]
        if event.button() != QtCore.Qt.MouseButton.LeftButton:
            return
        pos = event.position()
        self._last_pos = pos
        self.dispatch(PointerDown(pos.x(), pos.y()))

    def mouseMoveEvent(self, event: QtGui.QMouseEvent) -> None:  # type: ignore[override]
        pos = event.position()
        last = self._last_pos or pos
        self._last_pos = pos
        self.dispatch(PointerMove(pos.x(), pos.y(), pos.x() - last.x(), pos.y() - last.y()))

    def mouseReleaseEvent(self, event: QtGui.QMouseEvent) -> None:  # type: ignore[override]
        if event.button() != QtCore.Qt.MouseButton.LeftButton:
            return
        pos = event.position()
        self.dispatch(PointerUp(pos.x(), pos.y()))
        self.dispatch(Click(pos.x(), pos.y()))

    def mouseDoubleClickEvent(self, event: QtGui.QMouseEvent) -> None:  # type: ignore[override]
        if event.button() != QtCore.Qt.MouseButton.LeftButton:
            return
        pos = event.position()
        self.dispatch(DoubleClick(pos.x(), pos.y()))

    def wheelEvent(self, event: QtGui.QWheelEvent) -> None:  # type: ignore[override]
        pos = event.position()
        self.dispatch(Wheel(pos.x(), pos.y(), event.angleDelta().y()))
        event.accept()

    def leaveEvent(self, event: QtCore.QEvent) -> None:  # type: ignore[override]
        self._last_pos = None
        self.dispatch(PointerLeave())
        super().leaveEvent(event)

    def resizeEvent(self, event: QtGui.QResizeEvent) -> None:  # type: ignore[override]
        size = event.size()
        self.engine.resize(size.width(), size.height())
        self.dispatch(Resize(size.width(), size.height()))
        super().resizeEvent(event)

    def shutdown(self) -> None:
        self._tick_timer.stop()
        self._debounce_timer.stop()
        self.engine.stop()
        self.logger.info("Canvas timers and solver stopped.")

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:  # type: ignore[override]
        self.shutdown()
        super().closeEvent(event)


class QtNotifier:
    def __init__(self, window: "RelationshipGraphApp"):
        self.window = window

    def notify(self, level: str, title: str, message: str) -> None:
        self.window.show_notice(level, title, message)


class QtNavigator:
    """Opens records through a URL template such as ``https://host/lightning/r/{record_id}/view``."""

    def __init__(self, url_template: Optional[str] = None):
        self.url_template = url_template
        self.logger = BASE_LOGGER.getChild("navigate")

    def open_record(self, record_id: str) -> None:
        if not self.url_template:
            self.logger.info("Navigation requested for %s; no record URL configured.", record_id)
            return
        url = QtCore.QUrl(self.url_template.format(record_id=record_id))
        self.logger.info("Opening %s", url.toString())
        QtGui.QDesktopServices.openUrl(url)


class RelationshipGraphApp(QtWidgets.QMainWindow):
    def __init__(
        self,
        provider: DataProvider,
        root_id: str,
        toggle_store: Optional[ToggleStore] = None,
        record_url: Optional[str] = None,
    ):
        super().__init__()
        self.setWindowTitle("Relationship Graph Explorer (PyQt)")
        self.resize(1480, 940)

        self.logger = BASE_LOGGER.getChild("ui")
        self.logger.info("RelationshipGraphApp initialising for %s.", root_id)

        self.session = GraphSession(
            root_id,
            provider,
            notifier=QtNotifier(self),
            navigator=QtNavigator(record_url),
            toggle_store=toggle_store,
        )
        self._threads: List[Tuple[QtCore.QThread, ProviderWorker]] = []
        self._filter_buttons: Dict[str, QtWidgets.QPushButton] = {}
        self.canvas: Optional[RelationshipGraphWidget] = None

        self._setup_palette()
        self._apply_theme()

        pg.setConfigOption("background", "transparent")
        pg.setConfigOption("foreground", "#3e4a5e")
        pg.setConfigOption("antialias", True)

        self._build_ui()
        self._sync_toggle_controls()
        self.start_config_load()

    # UI construction -----------------------------------------------------
    def _setup_palette(self) -> None:
        palette = QtGui.QPalette()
        base = QtGui.QColor("#f3f5f9")
        text = QtGui.QColor("#1c2333")
        highlight = QtGui.QColor("#0176d3")

        palette.setColor(QtGui.QPalette.ColorRole.Window, base)
        palette.setColor(QtGui.QPalette.ColorRole.Base, QtGui.QColor("#ffffff"))
        palette.setColor(QtGui.QPalette.ColorRole.AlternateBase, QtGui.QColor("#eef1f6"))
        palette.setColor(QtGui.QPalette.ColorRole.WindowText, text)
        palette.setColor(QtGui.QPalette.ColorRole.ButtonText, text)
        palette.setColor(QtGui.QPalette.ColorRole.Text, text)
        palette.setColor(QtGui.QPalette.ColorRole.Highlight, highlight)
        palette.setColor(QtGui.QPalette.ColorRole.HighlightedText, QtGui.QColor("#ffffff"))
        self.setPalette(palette)

    def _apply_theme(self) -> None:
        self.setStyleSheet(
            """
            QWidget {
                font-family: "Segoe UI", "Helvetica Neue", Arial;
                font-size: 12px;
            }
            QGroupBox {
                border: 1px solid #d8dde6;
                border-radius: 10px;
                margin-top: 14px;
                padding: 14px;
                background-color: #ffffff;
            }
            QGroupBox::title {
                subcontrol-origin: margin;
                left: 12px;
                padding: 0 6px;
                color: #3e4a5e;
                font-weight: 600;
            }
            QPushButton {
                background-color: #ffffff;
                border: 1px solid #c9d1dd;
                border-radius: 6px;
                padding: 6px 12px;
            }
            QPushButton:hover {
                border-color: #0176d3;
            }
            QPushButton:checked {
                background-color: #0176d3;
                border-color: #0176d3;
                color: #ffffff;
            }
            QPushButton#FilterBadge {
                border-radius: 11px;
                padding: 3px 10px;
            }
            QLabel#HeaderTitle {
                font-size: 24px;
                font-weight: 700;
            }
            QLabel#HeaderSubtitle {
                color: #5b667a;
                font-size: 13px;
            }
            QLabel#DetailName {
                font-size: 16px;
                font-weight: 600;
            }
            """
        )

    def _build_ui(self) -> None:
        central_widget = QtWidgets.QWidget()
        self.setCentralWidget(central_widget)
        root_layout = QtWidgets.QVBoxLayout(central_widget)
        root_layout.setContentsMargins(18, 18, 18, 18)
        root_layout.setSpacing(12)

        root_layout.addWidget(self._build_header())
        root_layout.addWidget(self._build_toolbar())
        root_layout.addWidget(self._build_filter_bar())

        splitter = QtWidgets.QSplitter(QtCore.Qt.Orientation.Horizontal)
        splitter.setChildrenCollapsible(False)
        splitter.addWidget(self._build_canvas())
        splitter.addWidget(self._build_side_panel())
        splitter.setStretchFactor(0, 1)
        splitter.setStretchFactor(1, 0)
        root_layout.addWidget(splitter, stretch=1)

        self.statusBar().showMessage(f"Loading graph... Logging to {LOG_FILE_PATH.name}.")

    def _build_header(self) -> QtWidgets.QWidget:
        frame = QtWidgets.QFrame()
        layout = QtWidgets.QHBoxLayout(frame)
        layout.setContentsMargins(0, 0, 0, 0)

        title = QtWidgets.QLabel("Relationship Graph")
        title.setObjectName("HeaderTitle")
        self.subtitle_label = QtWidgets.QLabel("")
        self.subtitle_label.setObjectName("HeaderSubtitle")

        layout.addWidget(title)
        layout.addStretch(1)
        layout.addWidget(self.subtitle_label)
        return frame

    def _build_toolbar(self) -> QtWidgets.QWidget:
        frame = QtWidgets.QFrame()
        layout = QtWidgets.QHBoxLayout(frame)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(8)

        self.hide_passive_button = QtWidgets.QPushButton("Hide Passive")
        self.hide_passive_button.setCheckable(True)
        self.hide_passive_button.clicked.connect(self._on_hide_passive_clicked)
        self.external_button = QtWidgets.QPushButton("External Contacts")
        self.external_button.setCheckable(True)
        self.external_button.clicked.connect(self._on_external_clicked)
        self.hierarchy_button = QtWidgets.QPushButton("Hierarchy")
        self.hierarchy_button.setCheckable(True)
        self.hierarchy_button.clicked.connect(self._on_hierarchy_clicked)

        self.threshold_spin = QtWidgets.QSpinBox()
        self.threshold_spin.setRange(0, 100)
        self.threshold_spin.setPrefix("Min interactions: ")
        self.threshold_spin.valueChanged.connect(self._on_threshold_changed)

        refresh_button = QtWidgets.QPushButton("Refresh")
        refresh_button.clicked.connect(self.refresh)

        zoom_in = QtWidgets.QPushButton("+")
        zoom_out = QtWidgets.QPushButton("−")
        zoom_reset = QtWidgets.QPushButton("Reset View")

        for widget in (self.hide_passive_button, self.external_button, self.hierarchy_button, self.threshold_spin):
            layout.addWidget(widget)
        layout.addStretch(1)
        for widget in (refresh_button, zoom_in, zoom_out, zoom_reset):
            layout.addWidget(widget)

        self._zoom_buttons = (zoom_in, zoom_out, zoom_reset)
        return frame

    def _build_filter_bar(self) -> QtWidgets.QWidget:
        self.filter_bar = QtWidgets.QFrame()
        self.filter_layout = QtWidgets.QHBoxLayout(self.filter_bar)
        self.filter_layout.setContentsMargins(0, 0, 0, 0)
        self.filter_layout.setSpacing(6)
        self._populate_filter_badges()
        return self.filter_bar

    def _populate_filter_badges(self) -> None:
        while self.filter_layout.count():
            item = self.filter_layout.takeAt(0)
            if item.widget() is not None:
                item.widget().deleteLater()
        self._filter_buttons.clear()

        self.filter_layout.addWidget(QtWidgets.QLabel("Filter:"))
        for classification in self.session.config.classifications:
            button = QtWidgets.QPushButton(classification)
            button.setObjectName("FilterBadge")
            button.setCheckable(True)
            button.setChecked(classification in self.session.active_filters)
            colour = CLASSIFICATION_COLORS.get(classification, CLASSIFICATION_COLORS["Unknown"])
            button.setStyleSheet(f"QPushButton#FilterBadge {{ border-left: 6px solid {colour}; }}")
            button.clicked.connect(functools.partial(self._on_filter_clicked, classification))
            self.filter_layout.addWidget(button)
            self._filter_buttons[classification] = button
        self.filter_layout.addStretch(1)

    def _build_canvas(self) -> QtWidgets.QWidget:
        try:
            canvas = RelationshipGraphWidget()
        except Exception as exc:  # pylint: disable=broad-except
            self.logger.exception("Renderer initialisation failed.")
            self.show_notice("error", "Error", f"Failed to initialise renderer: {extract_error_message(exc)}")
            placeholder = QtWidgets.QLabel("Graph view unavailable.")
            placeholder.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
            return placeholder

        canvas.selectionChanged.connect(self._on_selection_changed)
        canvas.navigationRequested.connect(self._on_navigation_requested)
        canvas.filtersChanged.connect(self._on_filters_changed)
        canvas.thresholdChanged.connect(self._on_threshold_committed)
        canvas.reloadRequested.connect(self.reload)
        zoom_in, zoom_out, zoom_reset = self._zoom_buttons
        zoom_in.clicked.connect(canvas.zoom_in)
        zoom_out.clicked.connect(canvas.zoom_out)
        zoom_reset.clicked.connect(canvas.zoom_reset)
        self.canvas = canvas
        return canvas

    def _build_side_panel(self) -> QtWidgets.QWidget:
        self.side_tabs = QtWidgets.QTabWidget()
        self.side_tabs.setMinimumWidth(360)
        self.side_tabs.setMaximumWidth(460)
        self.side_tabs.addTab(self._build_detail_tab(), "Details")

        self.risk_model = PandasTableModel()
        self.risk_table = QtWidgets.QTableView()
        self.risk_table.setModel(self.risk_model)
        self.risk_table.setSelectionBehavior(QtWidgets.QAbstractItemView.SelectionBehavior.SelectRows)
        self.risk_table.horizontalHeader().setStretchLastSection(True)
        self.risk_table.clicked.connect(self._on_risk_alert_clicked)
        self.side_tabs.addTab(self.risk_table, "Risks")

        cluster_tab = QtWidgets.QWidget()
        cluster_layout = QtWidgets.QVBoxLayout(cluster_tab)
        self.cluster_plot = pg.PlotWidget()
        self._configure_plot_widget(self.cluster_plot)
        self.cluster_plot.setMinimumHeight(200)
        cluster_layout.addWidget(self.cluster_plot)
        self.cluster_model = PandasTableModel()
        cluster_table = QtWidgets.QTableView()
        cluster_table.setModel(self.cluster_model)
        cluster_table.horizontalHeader().setStretchLastSection(True)
        cluster_layout.addWidget(cluster_table, stretch=1)
        self.side_tabs.addTab(cluster_tab, "Clusters")
        return self.side_tabs

    def _configure_plot_widget(self, plot: pg.PlotWidget) -> None:
        plot.setBackground("transparent")
        plot.setMenuEnabled(False)
        plot.setMouseEnabled(x=False, y=False)
        item = plot.getPlotItem()
        item.showGrid(x=False, y=True, alpha=0.15)
        for axis_name in ("left", "bottom"):
            axis = item.getAxis(axis_name)
            axis.setPen(pg.mkPen(color="#c9d1dd"))
            axis.setTextPen(pg.mkPen("#3e4a5e"))
        item.getViewBox().setBorder(pg.mkPen(None))

    def _plot_clusters(self, model: RenderModel, df: pd.DataFrame) -> None:
        title = "Cluster Sizes"
        self.cluster_plot.clear()
        item = self.cluster_plot.getPlotItem()
        item.setTitle(f"<span style='color:#3e4a5e;font-size:11pt;'>{title}</span>")
        item.setLabel("left", "Members")

        if df.empty:
            item.setTitle(
                f"<span style='color:#3e4a5e;font-size:11pt;'>{title}</span>"
                "<br><span style='color:#8a93a6;font-size:9pt;'>No contacts to group.</span>"
            )
            return

        positions = list(range(len(df.index)))
        brushes = [pg.mkBrush(model.clusters[int(cid)].color) for cid in df["cluster"]]
        bar = pg.BarGraphItem(
            x=positions, height=df["members"].astype(float).values, width=0.7, brushes=brushes, pen=pg.mkPen("#ffffff")
        )
        self.cluster_plot.addItem(bar)
        ticks = [(pos, str(label)[:12]) for pos, label in zip(positions, df["label"])]
        item.getAxis("bottom").setTicks([ticks])
        self.cluster_plot.setYRange(0, float(df["members"].max()) * 1.2)

    def _build_detail_tab(self) -> QtWidgets.QWidget:
        widget = QtWidgets.QWidget()
        layout = QtWidgets.QVBoxLayout(widget)
        layout.setAlignment(QtCore.Qt.AlignmentFlag.AlignTop)

        self.detail_name = QtWidgets.QLabel("Select a node to see its details.")
        self.detail_name.setObjectName("DetailName")
        self.detail_name.setWordWrap(True)
        layout.addWidget(self.detail_name)

        self.detail_form = QtWidgets.QFormLayout()
        layout.addLayout(self.detail_form)

        override_group = QtWidgets.QGroupBox("Classification override")
        override_layout = QtWidgets.QHBoxLayout(override_group)
        self.override_combo = QtWidgets.QComboBox()
        self.override_button = QtWidgets.QPushButton("Apply")
        self.override_button.clicked.connect(self._on_override_clicked)
        override_layout.addWidget(self.override_combo, stretch=1)
        override_layout.addWidget(self.override_button)
        layout.addWidget(override_group)
        self.override_group = override_group

        self.factor_model = PandasTableModel()
        factor_table = QtWidgets.QTableView()
        factor_table.setModel(self.factor_model)
        factor_table.horizontalHeader().setStretchLastSection(True)
        factor_table.setMaximumHeight(180)
        layout.addWidget(QtWidgets.QLabel("Strength factors"))
        layout.addWidget(factor_table)

        self.view_record_button = QtWidgets.QPushButton("View Record")
        self.view_record_button.clicked.connect(lambda: self.session.navigate())
        layout.addWidget(self.view_record_button)

        self._update_detail_panel()
        return widget

    # Worker plumbing -----------------------------------------------------
    def _start_worker(
        self,
        token: Any,
        call: Callable[[], Any],
        on_finished: Callable[[Any, Any], None],
        on_failed: Callable[[Any, Any], None],
    ) -> None:
        thread = QtCore.QThread()
        worker = ProviderWorker(token, call)
        worker.moveToThread(thread)
        thread.started.connect(worker.run)
        worker.finished.connect(on_finished)
        worker.failed.connect(on_failed)
        worker.finished.connect(thread.quit)
        worker.failed.connect(thread.quit)
        entry = (thread, worker)
        thread.finished.connect(lambda: self._threads.remove(entry) if entry in self._threads else None)
        self._threads.append(entry)
        thread.start()

    def start_config_load(self) -> None:
        self._start_worker("config", self.session.provider.get_config, self._on_config_loaded, self._on_config_failed)

    def reload(self) -> None:
        self._start_load(refresh=False)

    def refresh(self) -> None:
        self._start_load(refresh=True)

    def _start_load(self, refresh: bool) -> None:
        ticket = self.session.begin_load(refresh=refresh)
        self.statusBar().showMessage("Refreshing graph..." if refresh else "Loading graph...")
        self._start_worker(
            ticket, functools.partial(self.session.fetch, ticket), self._on_graph_loaded, self._on_graph_failed
        )

    # Provider callbacks (GUI thread) -------------------------------------
    def _on_config_loaded(self, _token: Any, payload: Any) -> None:
        self.session.apply_config(payload)
        self._after_config()

    def _on_config_failed(self, _token: Any, error: Any) -> None:
        self.session.config_failed(error)
        self._after_config()

    def _after_config(self) -> None:
        self._populate_filter_badges()
        self.override_combo.clear()
        self.override_combo.addItems(self.session.config.classifications)
        self._sync_toggle_controls()
        self.reload()

    def _on_graph_loaded(self, ticket: LoadTicket, payload: Any) -> None:
        model = self.session.complete(ticket, payload)
        if model is None:
            return
        if self.canvas is not None:
            self.canvas.set_model(model, min_interactions=self.session.toggles.min_interactions)
        self.subtitle_label.setText(self._describe_model(model))
        self.risk_model.set_dataframe(risk_alert_table(model))
        clusters = cluster_summary_table(model)
        self.cluster_model.set_dataframe(clusters)
        self._plot_clusters(model, clusters)
        self._update_detail_panel()
        self.statusBar().showMessage(
            f"{len(model.nodes)} nodes, {len(model.edges)} edges, {len(model.clusters)} clusters.", 5000
        )

    def _on_graph_failed(self, ticket: LoadTicket, error: Any) -> None:
        self.session.fail(ticket, error)

    def _on_override_finished(self, token: Tuple[str, str], _result: Any) -> None:
        node_id, classification = token
        self.session.override_succeeded(node_id, classification)
        if self.canvas is not None:
            self.canvas.update()
        self._update_detail_panel()

    def _on_override_failed(self, _token: Any, error: Any) -> None:
        self.session.override_failed(error)

    # UI callbacks --------------------------------------------------------
    def _on_hide_passive_clicked(self) -> None:
        self.session.toggle_hide_passive()
        self._sync_toggle_controls()
        self.reload()

    def _on_external_clicked(self) -> None:
        self.session.toggle_external_nodes()
        self._sync_toggle_controls()
        self.reload()

    def _on_hierarchy_clicked(self) -> None:
        self.session.toggle_hierarchy()
        self._sync_toggle_controls()
        self.reload()

    def _on_threshold_changed(self, value: int) -> None:
        if value == self.session.toggles.min_interactions:
            return
        if self.canvas is not None:
            self.canvas.set_threshold(value)
        else:
            self._on_threshold_committed(value)
            self.reload()

    def _on_threshold_committed(self, value: int) -> None:
        self.session.set_min_interactions(value)

    def _on_filter_clicked(self, classification: str) -> None:
        if self.canvas is not None:
            self.canvas.toggle_filter(classification)

    def _on_filters_changed(self, filters: Any) -> None:
        self.session.set_filters(filters)
        for classification, button in self._filter_buttons.items():
            button.setChecked(classification in self.session.active_filters)

    def _on_selection_changed(self, node_id: Optional[str]) -> None:
        self.session.select(node_id)
        self._update_detail_panel()
        if node_id is not None:
            self.side_tabs.setCurrentIndex(0)

    def _on_navigation_requested(self, node_id: str) -> None:
        self.session.navigate(node_id)

    def _on_risk_alert_clicked(self, index: QtCore.QModelIndex) -> None:
        subject_id = self.risk_model.row_value(index.row(), "subject_id")
        if not subject_id or self.canvas is None:
            return
        self.canvas.focus_node(str(subject_id))

    def _on_override_clicked(self) -> None:
        node = self.session.selected_node
        classification = self.override_combo.currentText()
        if node is None or not classification or not self.session.can_override:
            return
        call = functools.partial(
            self.session.provider.override_classification, node.id, self.session.root_id, classification
        )
        self._start_worker((node.id, classification), call, self._on_override_finished, self._on_override_failed)

    # View helpers --------------------------------------------------------
    def _sync_toggle_controls(self) -> None:
        toggles = self.session.toggles
        self.hide_passive_button.setChecked(toggles.hide_passive_nodes)
        self.hide_passive_button.setText("Show All" if toggles.hide_passive_nodes else "Hide Passive")
        self.external_button.setChecked(toggles.show_external_nodes)
        self.hierarchy_button.setChecked(toggles.show_hierarchy)
        self.threshold_spin.blockSignals(True)
        self.threshold_spin.setValue(toggles.min_interactions)
        self.threshold_spin.blockSignals(False)

    @staticmethod
    def _describe_model(model: RenderModel) -> str:
        parts = [model.root_name or "Unnamed account"]
        if model.external_count:
            parts.append(f"{model.external_count} external")
        if model.hierarchy_count:
            parts.append(f"{model.hierarchy_count} hierarchy accounts")
        if model.moved_count:
            parts.append(f"{model.moved_count} moved")
        if model.is_truncated:
            parts.append(f"truncated ({model.total_count}+ contacts)")
        return " · ".join(parts)

    def _update_detail_panel(self) -> None:
        while self.detail_form.rowCount():
            self.detail_form.removeRow(0)
        node = self.session.selected_node
        self.override_group.setVisible(self.session.can_override)
        self.view_record_button.setEnabled(node is not None and bool(node.navigation_id))
        if node is None:
            self.detail_name.setText("Select a node to see its details.")
            self.factor_model.set_dataframe(pd.DataFrame())
            return

        self.detail_name.setText(node.name)
        for label, value in self._detail_rows(node):
            self.detail_form.addRow(label, QtWidgets.QLabel(value))
        if node.classification and self.override_combo.findText(node.classification) >= 0:
            self.override_combo.setCurrentText(node.classification)
        self.factor_model.set_dataframe(strength_factor_table(node))

    @staticmethod
    def _detail_rows(node: Node) -> List[Tuple[str, str]]:
        rows = [("Type", node.node_type.name.replace("_", " ").title())]
        if node.title:
            rows.append(("Title", node.title))
        if node.email:
            rows.append(("Email", node.email))
        if node.classification:
            label = "Stage" if node.node_type is NodeType.DEAL else "Classification"
            rows.append((label, node.classification))
        if node.confidence:
            rows.append(("Confidence", f"{round(node.confidence * 100)}%"))
        if node.interaction_count:
            rows.append(("Interactions", str(node.interaction_count)))
        if node.account_name:
            rows.append(("Account", node.account_name))
        if node.amount is not None:
            rows.append(("Amount", f"${node.amount:,.0f}"))
        if node.close_date:
            rows.append(("Close date", node.close_date))
        if node.is_hierarchy_member:
            rows.append(("Hierarchy", "Parent Account" if node.hierarchy_level == "parent" else "Child Account"))
        if node.has_moved:
            rows.append(("Status", f"Moved to {node.destination_name}" if node.destination_name else "Left company"))
        return rows

    # Messaging ------------------------------------------------------------
    def show_notice(self, level: str, title: str, message: str) -> None:
        if level == "error":
            self._show_error(message)
        elif level == "warning":
            self._show_warning(message, title)
        else:
            self.logger.info("%s: %s", title, message)
            self.statusBar().showMessage(message, 5000)

    def _show_error(self, message: str) -> None:
        self.logger.error(message)
        QtWidgets.QMessageBox.critical(self, "Error", message)

    def _show_warning(self, message: str, title: str = "Warning") -> None:
        self.logger.warning(message)
        QtWidgets.QMessageBox.warning(self, title, message)

    # Teardown -------------------------------------------------------------
    def shutdown(self) -> None:
        if self.canvas is not None:
            self.canvas.shutdown()
        for thread, _worker in list(self._threads):
            thread.quit()
            thread.wait()
        self._threads.clear()

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:  # type: ignore[override]
        self.shutdown()
        super().closeEvent(event)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Interactive relationship graph explorer.")
    parser.add_argument("--payload", type=pathlib.Path, default=SAMPLE_PAYLOAD_PATH, help="Graph payload JSON file.")
    parser.add_argument("--root-id", default=SAMPLE_ROOT_ID, help="Id of the account the graph is centred on.")
    parser.add_argument("--record-url", default=None, help="URL template with {record_id} for opening records.")
    parser.add_argument("--toggle-store", type=pathlib.Path, default=TOGGLE_STORE_PATH)
    return parser.parse_args(argv)


def main() -> None:
    args = parse_args(sys.argv[1:])
    logger = BASE_LOGGER.getChild("runtime")
    logger.info("Starting QApplication event loop.")
    app = QtWidgets.QApplication(sys.argv[:1])
    window = RelationshipGraphApp(
        JsonFileProvider(args.payload),
        args.root_id,
        toggle_store=JsonToggleStore(args.toggle_store),
        record_url=args.record_url,
    )
    window.show()
    exit_code = app.exec()
    logger.info("Application closed with exit code %s", exit_code)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
