from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import FrozenSet, List, Optional, Protocol, Tuple, Union

from .config import DEFAULT_MIN_INTERACTIONS, THRESHOLD_DEBOUNCE_MS
from .model import Node, ViewTransform

WHEEL_ZOOM_FACTOR = 1.05
BUTTON_ZOOM_FACTOR = 1.2
DRAG_ALPHA_TARGET = 0.3


class SceneView(Protocol):
    def node_at(self, wx: float, wy: float) -> Optional[Node]:
        ...

    def position_of(self, node_id: str) -> Optional[Tuple[float, float]]:
        ...


@dataclass(frozen=True)
class InteractionState:
    transform: ViewTransform = field(default_factory=ViewTransform)
    hovered_id: Optional[str] = None
    dragged_id: Optional[str] = None
    is_panning: bool = False
    drag_moved: bool = False
    suppress_click: bool = False
    selected_id: Optional[str] = None
    active_filters: FrozenSet[str] = frozenset()
    min_interactions: int = DEFAULT_MIN_INTERACTIONS
    width: float = 800.0
    height: float = 600.0


# Events

@dataclass(frozen=True)
class PointerMove:
    x: float
    y: float
    dx: float = 0.0
    dy: float = 0.0


@dataclass(frozen=True)
class PointerDown:
    x: float
    y: float


@dataclass(frozen=True)
class PointerUp:
    x: float
    y: float


@dataclass(frozen=True)
class PointerLeave:
    pass


@dataclass(frozen=True)
class Click:
    x: float
    y: float


@dataclass(frozen=True)
class DoubleClick:
    x: float
    y: float


@dataclass(frozen=True)
class Wheel:
    x: float
    y: float
    delta: float


@dataclass(frozen=True)
class ZoomIn:
    pass


@dataclass(frozen=True)
class ZoomOut:
    pass


@dataclass(frozen=True)
class ZoomReset:
    pass


@dataclass(frozen=True)
class ToggleFilter:
    classification: str


@dataclass(frozen=True)
class ThresholdChanged:
    value: int


@dataclass(frozen=True)
class Resize:
    width: float
    height: float


@dataclass(frozen=True)
class FocusNode:
    node_id: str


Event = Union[
    PointerMove, PointerDown, PointerUp, PointerLeave, Click, DoubleClick, Wheel,
    ZoomIn, ZoomOut, ZoomReset, ToggleFilter, ThresholdChanged, Resize, FocusNode,
]


# Effects

@dataclass(frozen=True)
class Redraw:
    pass


@dataclass(frozen=True)
class PinNode:
    node_id: str
    x: float
    y: float


@dataclass(frozen=True)
class ReleaseNode:
    node_id: str


@dataclass(frozen=True)
class SetAlphaTarget:
    value: float


@dataclass(frozen=True)
class Select:
    node_id: Optional[str]


@dataclass(frozen=True)
class Navigate:
    node_id: str


@dataclass(frozen=True)
class Recolor:
    filters: FrozenSet[str]


@dataclass(frozen=True)
class ScheduleReload:
    delay_ms: int = THRESHOLD_DEBOUNCE_MS


@dataclass(frozen=True)
class SetThreshold:
    value: int


@dataclass(frozen=True)
class SetCursor:
    shape: str


Effect = Union[
    Redraw, PinNode, ReleaseNode, SetAlphaTarget, Select, Navigate, Recolor,
    ScheduleReload, SetThreshold, SetCursor,
]

Result = Tuple[InteractionState, List[Effect]]


def _pointer_down(state: InteractionState, event: PointerDown, scene: SceneView) -> Result:
    wx, wy = state.transform.to_world(event.x, event.y)
    node = scene.node_at(wx, wy)
    state = replace(state, drag_moved=False, suppress_click=False)
    if node is None:
        return replace(state, is_panning=True), [SetCursor("grabbing")]
    x, y = scene.position_of(node.id) or (wx, wy)
    return replace(state, dragged_id=node.id), [
        PinNode(node.id, x, y),
        SetAlphaTarget(DRAG_ALPHA_TARGET),
        SetCursor("grabbing"),
    ]


def _pointer_move(state: InteractionState, event: PointerMove, scene: SceneView) -> Result:
    if state.dragged_id is not None:
        wx, wy = state.transform.to_world(event.x, event.y)
        return replace(state, drag_moved=True), [PinNode(state.dragged_id, wx, wy), Redraw()]
    if state.is_panning:
        # screen-space delta, not divided by the scale
        transform = state.transform.panned(event.dx, event.dy)
        return replace(state, transform=transform, drag_moved=True), [Redraw()]

    wx, wy = state.transform.to_world(event.x, event.y)
    node = scene.node_at(wx, wy)
    hovered_id = node.id if node is not None else None
    if hovered_id == state.hovered_id:
        return state, []
    cursor = SetCursor("pointer" if node is not None else "default")
    return replace(state, hovered_id=hovered_id), [cursor, Redraw()]


def _pointer_up(state: InteractionState, event: PointerUp, scene: SceneView) -> Result:
    effects: List[Effect] = []
    if state.dragged_id is not None:
        effects += [ReleaseNode(state.dragged_id), SetAlphaTarget(0.0)]
    elif not state.is_panning:
        return state, []
    wx, wy = state.transform.to_world(event.x, event.y)
    cursor = "pointer" if scene.node_at(wx, wy) is not None else "default"
    effects.append(SetCursor(cursor))
    state = replace(
        state,
        dragged_id=None,
        is_panning=False,
        suppress_click=state.drag_moved,
        drag_moved=False,
    )
    return state, effects


def _click(state: InteractionState, event: Click, scene: SceneView) -> Result:
    if state.suppress_click:
        return replace(state, suppress_click=False), []
    wx, wy = state.transform.to_world(event.x, event.y)
    node = scene.node_at(wx, wy)
    selected_id = node.id if node is not None else None
    return replace(state, selected_id=selected_id), [Select(selected_id), Redraw()]


def _double_click(state: InteractionState, event: DoubleClick, scene: SceneView) -> Result:
    wx, wy = state.transform.to_world(event.x, event.y)
    node = scene.node_at(wx, wy)
    if node is None:
        return state, []
    return state, [Navigate(node.id)]


def _zoom(state: InteractionState, factor: float, pivot_x: float, pivot_y: float) -> Result:
    transform = state.transform.zoomed(factor, pivot_x, pivot_y)
    return replace(state, transform=transform), [Redraw()]


def _focus(state: InteractionState, event: FocusNode, scene: SceneView) -> Result:
    position = scene.position_of(event.node_id)
    if position is None:
        return state, []
    k = state.transform.k
    transform = ViewTransform(
        x=state.width / 2 - position[0] * k,
        y=state.height / 2 - position[1] * k,
        k=k,
    )
    state = replace(state, transform=transform, selected_id=event.node_id)
    return state, [Select(event.node_id), Redraw()]


def reduce(state: InteractionState, event: Event, scene: SceneView) -> Result:
    """
    Apply one input event to the interaction state.

    Returns the new state plus the side effects the host must carry out (layout pins,
    solver temperature, selection, navigation, reloads). Nothing here touches a
    drawing surface or the solver directly, so every gesture can be replayed in tests.
    """
    if isinstance(event, PointerMove):
        return _pointer_move(state, event, scene)
    if isinstance(event, PointerDown):
        return _pointer_down(state, event, scene)
    if isinstance(event, PointerUp):
        return _pointer_up(state, event, scene)
    if isinstance(event, PointerLeave):
        if state.hovered_id is None:
            return state, []
        return replace(state, hovered_id=None), [SetCursor("default"), Redraw()]
    if isinstance(event, Click):
        return _click(state, event, scene)
    if isinstance(event, DoubleClick):
        return _double_click(state, event, scene)
    if isinstance(event, Wheel):
        if event.delta == 0:
            return state, []
        factor = WHEEL_ZOOM_FACTOR if event.delta > 0 else 1 / WHEEL_ZOOM_FACTOR
        return _zoom(state, factor, event.x, event.y)
    if isinstance(event, ZoomIn):
        return _zoom(state, BUTTON_ZOOM_FACTOR, state.width / 2, state.height / 2)
    if isinstance(event, ZoomOut):
        return _zoom(state, 1 / BUTTON_ZOOM_FACTOR, state.width / 2, state.height / 2)
    if isinstance(event, ZoomReset):
        return replace(state, transform=ViewTransform()), [Redraw()]
    if isinstance(event, ToggleFilter):
        filters = set(state.active_filters)
        filters.symmetric_difference_update({event.classification})
        active = frozenset(filters)
        return replace(state, active_filters=active), [Recolor(active), Redraw()]
    if isinstance(event, ThresholdChanged):
        value = max(0, int(event.value))
        return replace(state, min_interactions=value), [SetThreshold(value), ScheduleReload()]
    if isinstance(event, Resize):
        return replace(state, width=float(event.width), height=float(event.height)), [Redraw()]
    if isinstance(event, FocusNode):
        return _focus(state, event, scene)
    raise TypeError(f"Unsupported interaction event: {event!r}")
