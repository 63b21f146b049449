from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple, Union

from PyQt6 import QtCore, QtGui

from .geometry import (
    HULL_PADDING,
    Point,
    arrowhead,
    convex_hull,
    diamond_points,
    expand_hull,
    hexagon_points,
    midpoint,
    polygon_centroid,
    top_point,
)
from .interaction import InteractionState
from .layout import PositionStore
from .model import Edge, EdgeType, Node, NodeType, RenderModel, Severity
from .styles import (
    ALERT_RED,
    EDGE_STYLES,
    HIGHLIGHT_BLUE,
    HULL_FILL_ALPHA,
    HULL_STROKE_ALPHA,
    MOVED_COLOR,
    NODE_SHAPES,
    SEVERITY_RING_COLORS,
    legend_items,
    tooltip_lines,
    truncate_label,
)

ColorSpec = Union[str, Tuple[int, int, int, float]]

BACKGROUND = "#ffffff"
TEXT_COLOR = "#333333"
MOVED_TEXT_COLOR = "#999999"
HIERARCHY_PARENT_BORDER = "#003d73"
HIERARCHY_ALPHA = 0.7
FONT_FAMILY = "Segoe UI"

TOOLTIP_PADDING = 8
TOOLTIP_LINE_HEIGHT = 16
LEGEND_X = 12
LEGEND_Y = 12
LEGEND_WIDTH = 210
LEGEND_LINE_HEIGHT = 18
LEGEND_PADDING = 8


def qcolor(value: ColorSpec, alpha: Optional[float] = None) -> QtGui.QColor:
    """QColor from a hex string or an ``(r, g, b, alpha)`` tuple; ``alpha`` overrides the opacity."""
    if isinstance(value, str):
        colour = QtGui.QColor(value)
    else:
        r, g, b, a = value
        colour = QtGui.QColor(int(r), int(g), int(b))
        colour.setAlphaF(float(a))
    if alpha is not None:
        colour.setAlphaF(float(alpha))
    return colour


def _polygon(points: Iterable[Point]) -> QtGui.QPolygonF:
    return QtGui.QPolygonF([QtCore.QPointF(x, y) for x, y in points])


def _font(size: int, bold: bool = False) -> QtGui.QFont:
    font = QtGui.QFont(FONT_FAMILY)
    font.setPixelSize(size)
    font.setBold(bold)
    return font


def _pen(colour: QtGui.QColor, width: float, dash: Sequence[float] = ()) -> QtGui.QPen:
    pen = QtGui.QPen(colour, width)
    if dash:
        # Qt dash lengths are in units of the pen width
        pen.setDashPattern([segment / max(width, 0.1) for segment in dash])
    return pen


def _draw_centered_text(painter: QtGui.QPainter, text: str, x: float, baseline: float) -> None:
    width = QtGui.QFontMetricsF(painter.font()).horizontalAdvance(text)
    painter.drawText(QtCore.QPointF(x - width / 2, baseline), text)


class GraphRenderer:
    """
    Immediate-mode painter for one frame of the graph.

    Nothing is retained between frames: every call clears the surface and redraws
    hulls, edges, nodes, the hover overlay and the legend from the model and the
    current positions.
    """

    def paint(
        self,
        painter: QtGui.QPainter,
        model: RenderModel,
        store: PositionStore,
        state: InteractionState,
        width: float,
        height: float,
    ) -> None:
        painter.setRenderHints(QtGui.QPainter.RenderHint.Antialiasing | QtGui.QPainter.RenderHint.TextAntialiasing)
        painter.fillRect(QtCore.QRectF(0, 0, width, height), qcolor(BACKGROUND))
        if model.is_empty or len(store) != len(model.nodes):
            return

        transform = state.transform
        painter.save()
        painter.translate(transform.x, transform.y)
        painter.scale(transform.k, transform.k)

        self._draw_hulls(painter, model, store)
        for edge in model.edges:
            self._draw_edge(painter, model, store, edge)
        for idx, node in enumerate(model.nodes):
            self._draw_node(painter, model, node, store.position(idx))

        hovered = model.node(state.hovered_id)
        if hovered is not None:
            position = store.position(model.index_of(hovered.id))
            self._draw_highlight(painter, hovered, position)
            self._draw_tooltip(painter, hovered, position)
        painter.restore()

        self._draw_legend(painter, model)

    # hulls -----------------------------------------------------------

    def _draw_hulls(self, painter: QtGui.QPainter, model: RenderModel, store: PositionStore) -> None:
        if len(model.clusters) <= 1:
            return
        for cluster in model.clusters.values():
            if cluster.size < 2:
                continue
            points = [store.position(model.index_of(node.id)) for node in cluster.members]
            hull = convex_hull(points)
            if len(hull) < 3:
                continue
            painter.setBrush(qcolor(cluster.color, HULL_FILL_ALPHA))
            painter.setPen(_pen(qcolor(cluster.color, HULL_STROKE_ALPHA), 1))
            painter.drawPolygon(_polygon(expand_hull(hull)))

            cx, _ = polygon_centroid(hull)
            _, top_y = top_point(hull)
            painter.setFont(_font(11, bold=True))
            painter.setPen(qcolor((0, 0, 0, 0.35)))
            _draw_centered_text(painter, cluster.label, cx, top_y - HULL_PADDING - 5)

    # edges -----------------------------------------------------------

    def _draw_edge(self, painter: QtGui.QPainter, model: RenderModel, store: PositionStore, edge: Edge) -> None:
        source = store.position(model.index_of(edge.source.id))
        target = store.position(model.index_of(edge.target.id))
        style = EDGE_STYLES[edge.edge_type]
        colour = qcolor(style.color)

        painter.setPen(_pen(colour, style.line_width(edge.strength), style.dash))
        painter.setBrush(QtCore.Qt.BrushStyle.NoBrush)
        painter.drawLine(QtCore.QPointF(*source), QtCore.QPointF(*target))

        if edge.edge_type is EdgeType.MOVED_TO:
            painter.setPen(QtCore.Qt.PenStyle.NoPen)
            painter.setBrush(colour)
            painter.drawPolygon(_polygon(arrowhead(source, target, edge.target.radius)))

            mid_x, mid_y = midpoint(source, target)
            painter.setFont(_font(9, bold=True))
            painter.setPen(qcolor(ALERT_RED))
            _draw_centered_text(painter, "moved to", mid_x, mid_y - 5)

    # nodes -----------------------------------------------------------

    def _node_path(self, node: Node, x: float, y: float) -> QtGui.QPainterPath:
        r = node.radius
        path = QtGui.QPainterPath()
        shape = NODE_SHAPES.get(node.node_type, "circle")
        if shape == "diamond":
            path.addPolygon(_polygon(diamond_points(x, y, r)))
            path.closeSubpath()
        elif shape == "square":
            path.addRect(QtCore.QRectF(x - r, y - r, r * 2, r * 2))
        elif shape == "hexagon":
            path.addPolygon(_polygon(hexagon_points(x, y, r)))
            path.closeSubpath()
        else:
            path.addEllipse(QtCore.QPointF(x, y), r, r)
        return path

    def _border_pen(self, node: Node) -> QtGui.QPen:
        if node.has_moved:
            return _pen(qcolor(ALERT_RED), 3)
        if node.node_type is NodeType.SYNTHETIC_DESTINATION:
            return _pen(qcolor(ALERT_RED), 2, (4, 3))
        if node.is_hierarchy_member and node.hierarchy_level == "parent":
            return _pen(qcolor(HIERARCHY_PARENT_BORDER), 3)
        return _pen(qcolor("#ffffff"), 2)

    def _draw_node(self, painter: QtGui.QPainter, model: RenderModel, node: Node, position: Point) -> None:
        x, y = position
        r = node.radius
        painter.save()
        if node.is_hierarchy_member:
            painter.setOpacity(HIERARCHY_ALPHA)

        painter.setBrush(qcolor(node.color))
        painter.setPen(self._border_pen(node))
        painter.drawPath(self._node_path(node, x, y))

        if node.has_moved:
            painter.setPen(_pen(qcolor(ALERT_RED), 3))
            painter.drawLine(QtCore.QPointF(x - r * 0.7, y - r * 0.7), QtCore.QPointF(x + r * 0.7, y + r * 0.7))

        severity: Optional[Severity] = model.risk_index.get(node.id)
        if node.node_type is NodeType.PERSON and severity is not None:
            painter.setOpacity(1.0)
            painter.setBrush(QtCore.Qt.BrushStyle.NoBrush)
            painter.setPen(_pen(qcolor(SEVERITY_RING_COLORS[severity]), 2.5, (4, 3)))
            painter.drawEllipse(QtCore.QPointF(x, y), r + 5, r + 5)
        painter.restore()

        self._draw_label(painter, node, x, y)

    def _draw_label(self, painter: QtGui.QPainter, node: Node, x: float, y: float) -> None:
        is_org_like = node.node_type in (NodeType.ORGANIZATION, NodeType.SYNTHETIC_DESTINATION)
        if is_org_like:
            painter.setFont(_font(12, bold=True))
            colour = ALERT_RED if node.node_type is NodeType.SYNTHETIC_DESTINATION else TEXT_COLOR
        else:
            painter.setFont(_font(10))
            colour = MOVED_TEXT_COLOR if node.has_moved else TEXT_COLOR
        painter.setPen(qcolor(colour))
        label_y = y + node.radius + 14
        _draw_centered_text(painter, truncate_label(node.name), x, label_y)

        if node.has_moved:
            self._draw_left_badge(painter, x, label_y + 12)

    def _draw_left_badge(self, painter: QtGui.QPainter, x: float, baseline: float) -> None:
        painter.setFont(_font(9, bold=True))
        text_width = QtGui.QFontMetricsF(painter.font()).horizontalAdvance("LEFT")
        badge = QtCore.QRectF(x - (text_width + 8) / 2, baseline - 10, text_width + 8, 14)
        painter.setPen(QtCore.Qt.PenStyle.NoPen)
        painter.setBrush(qcolor(ALERT_RED))
        painter.drawRoundedRect(badge, 3, 3)
        painter.setPen(qcolor("#ffffff"))
        _draw_centered_text(painter, "LEFT", x, baseline)

    # hover -----------------------------------------------------------

    def _draw_highlight(self, painter: QtGui.QPainter, node: Node, position: Point) -> None:
        painter.setBrush(QtCore.Qt.BrushStyle.NoBrush)
        painter.setPen(_pen(qcolor(HIGHLIGHT_BLUE), 3))
        painter.drawEllipse(QtCore.QPointF(*position), node.radius + 4, node.radius + 4)

    def _draw_tooltip(self, painter: QtGui.QPainter, node: Node, position: Point) -> None:
        lines = tooltip_lines(node)
        painter.setFont(_font(11))
        metrics = QtGui.QFontMetricsF(painter.font())
        box_width = max(metrics.horizontalAdvance(line) for line in lines) + TOOLTIP_PADDING * 2
        box_height = len(lines) * TOOLTIP_LINE_HEIGHT + TOOLTIP_PADDING * 2
        left = position[0] + node.radius + 10
        top = position[1] - box_height / 2

        painter.setBrush(qcolor((255, 255, 255, 0.95)))
        painter.setPen(_pen(qcolor("#dddddd"), 1))
        painter.drawRoundedRect(QtCore.QRectF(left, top, box_width, box_height), 4, 4)

        painter.setPen(qcolor(TEXT_COLOR))
        for i, line in enumerate(lines):
            baseline = top + TOOLTIP_PADDING + (i + 1) * TOOLTIP_LINE_HEIGHT - 4
            painter.drawText(QtCore.QPointF(left + TOOLTIP_PADDING, baseline), line)

    # legend ----------------------------------------------------------

    def _draw_legend(self, painter: QtGui.QPainter, model: RenderModel) -> None:
        items = legend_items(model)
        if not items:
            return
        height = len(items) * LEGEND_LINE_HEIGHT + LEGEND_PADDING * 2
        painter.setBrush(qcolor((255, 255, 255, 0.92)))
        painter.setPen(_pen(qcolor("#dddddd"), 1))
        painter.drawRoundedRect(QtCore.QRectF(LEGEND_X, LEGEND_Y, LEGEND_WIDTH, height), 6, 6)

        painter.setFont(_font(10))
        red = qcolor(ALERT_RED)
        for i, (kind, label) in enumerate(items):
            y = LEGEND_Y + LEGEND_PADDING + i * LEGEND_LINE_HEIGHT + 10
            icon_x = LEGEND_X + LEGEND_PADDING
            centre = QtCore.QPointF(icon_x + 14, y)
            if kind == "ring":
                painter.setBrush(QtCore.Qt.BrushStyle.NoBrush)
                painter.setPen(_pen(red, 2, (3, 2)))
                painter.drawEllipse(centre, 7, 7)
            elif kind == "moved":
                painter.setBrush(qcolor(MOVED_COLOR))
                painter.setPen(_pen(red, 2))
                painter.drawEllipse(centre, 7, 7)
                painter.drawLine(QtCore.QPointF(icon_x + 9, y - 5), QtCore.QPointF(icon_x + 19, y + 5))
            elif kind == "arrow":
                painter.setPen(_pen(red, 2))
                painter.drawLine(QtCore.QPointF(icon_x, y), QtCore.QPointF(icon_x + 22, y))
                painter.setPen(QtCore.Qt.PenStyle.NoPen)
                painter.setBrush(red)
                painter.drawPolygon(_polygon([(icon_x + 28, y), (icon_x + 20, y - 5), (icon_x + 20, y + 5)]))
            painter.setPen(qcolor("#555555"))
            painter.drawText(QtCore.QPointF(icon_x + 36, y + 3), label)
