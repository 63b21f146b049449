import pytest

from relgraph.interaction import (
    BUTTON_ZOOM_FACTOR,
    DRAG_ALPHA_TARGET,
    WHEEL_ZOOM_FACTOR,
    Click,
    DoubleClick,
    FocusNode,
    InteractionState,
    Navigate,
    PinNode,
    PointerDown,
    PointerLeave,
    PointerMove,
    PointerUp,
    Recolor,
    Redraw,
    ReleaseNode,
    Resize,
    ScheduleReload,
    Select,
    SetAlphaTarget,
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
from relgraph.model import MAX_SCALE, MIN_SCALE, Node, NodeType, ViewTransform


class FakeScene:
    """Circular nodes at fixed world positions."""

    def __init__(self, positions, radius=10.0):
        self.nodes = {node_id: Node(id=node_id, name=node_id, node_type=NodeType.PERSON) for node_id in positions}
        self.positions = dict(positions)
        self.radius = radius

    def node_at(self, wx, wy):
        hit = None
        for node_id, (x, y) in self.positions.items():
            if (x - wx) ** 2 + (y - wy) ** 2 < self.radius ** 2:
                hit = self.nodes[node_id]
        return hit

    def position_of(self, node_id):
        return self.positions.get(node_id)


@pytest.fixture
def scene():
    return FakeScene({"a": (100.0, 100.0), "b": (300.0, 200.0)})


def run(state, events, scene):
    effects = []
    for event in events:
        state, produced = reduce(state, event, scene)
        effects.extend(produced)
    return state, effects


class TestZoom:

    def test_wheel_zoom_clamps_at_max_scale(self, scene):
        state = InteractionState()
        for _ in range(200):
            state, _ = reduce(state, Wheel(400, 300, 120), scene)

        assert state.transform.k == MAX_SCALE

    def test_wheel_zoom_out_clamps_at_min_scale(self, scene):
        state = InteractionState()
        for _ in range(200):
            state, _ = reduce(state, Wheel(400, 300, -120), scene)

        assert state.transform.k == MIN_SCALE

    def test_wheel_keeps_pointer_anchored(self, scene):
        state = InteractionState()
        before = state.transform.to_world(250, 130)
        state, effects = reduce(state, Wheel(250, 130, 120), scene)

        assert state.transform.k == pytest.approx(WHEEL_ZOOM_FACTOR)
        assert state.transform.to_world(250, 130) == pytest.approx(before)
        assert effects == [Redraw()]

    def test_zero_delta_is_ignored(self, scene):
        state = InteractionState()
        assert reduce(state, Wheel(0, 0, 0), scene) == (state, [])

    def test_buttons_zoom_around_view_centre(self, scene):
        state = InteractionState(width=800, height=600)
        centre = state.transform.to_world(400, 300)
        state, _ = reduce(state, ZoomIn(), scene)

        assert state.transform.k == pytest.approx(BUTTON_ZOOM_FACTOR)
        assert state.transform.to_world(400, 300) == pytest.approx(centre)

        state, _ = reduce(state, ZoomOut(), scene)
        assert state.transform.k == pytest.approx(1.0)

    def test_reset_returns_to_identity(self, scene):
        state = InteractionState(transform=ViewTransform(x=40, y=-10, k=2.5))
        state, effects = reduce(state, ZoomReset(), scene)

        assert state.transform == ViewTransform()
        assert effects == [Redraw()]


class TestDrag:

    def test_drag_pins_follows_and_releases(self, scene):
        state = InteractionState()
        state, effects = reduce(state, PointerDown(100, 100), scene)

        assert state.dragged_id == "a"
        assert effects == [PinNode("a", 100.0, 100.0), SetAlphaTarget(DRAG_ALPHA_TARGET), SetCursor("grabbing")]

        state, effects = reduce(state, PointerMove(150, 120, 50, 20), scene)
        assert PinNode("a", 150.0, 120.0) in effects

        state, effects = reduce(state, PointerUp(150, 120), scene)
        assert effects[:2] == [ReleaseNode("a"), SetAlphaTarget(0.0)]
        assert state.dragged_id is None

    def test_drag_position_uses_world_coordinates(self, scene):
        state = InteractionState(transform=ViewTransform(x=100, y=50, k=2.0))
        # node "a" at world (100, 100) is drawn at screen (300, 250)
        state, _ = reduce(state, PointerDown(300, 250), scene)
        state, effects = reduce(state, PointerMove(320, 270, 20, 20), scene)

        assert effects[0] == PinNode("a", 110.0, 110.0)

    def test_click_after_drag_is_suppressed_once(self, scene):
        state = InteractionState()
        state, effects = run(
            state,
            [PointerDown(100, 100), PointerMove(140, 100, 40, 0), PointerUp(140, 100), Click(140, 100)],
            scene,
        )

        assert not any(isinstance(e, Select) for e in effects)
        state, effects = reduce(state, Click(300, 200), scene)
        assert Select("b") in effects

    def test_press_and_release_without_moving_selects(self, scene):
        state, effects = run(InteractionState(), [PointerDown(100, 100), PointerUp(100, 100), Click(100, 100)], scene)

        assert Select("a") in effects
        assert state.selected_id == "a"


class TestPan:

    def test_pan_applies_raw_screen_delta(self, scene):
        state = InteractionState(transform=ViewTransform(k=2.0))
        state, effects = reduce(state, PointerDown(600, 500), scene)
        assert state.is_panning
        assert effects == [SetCursor("grabbing")]

        state, _ = reduce(state, PointerMove(630, 480, 30, -20), scene)
        assert (state.transform.x, state.transform.y, state.transform.k) == (30, -20, 2.0)

    def test_click_after_pan_does_not_clear_selection(self, scene):
        state = InteractionState(selected_id="a")
        state, effects = run(
            state, [PointerDown(600, 500), PointerMove(610, 500, 10, 0), PointerUp(610, 500), Click(610, 500)], scene
        )

        assert state.selected_id == "a"
        assert not any(isinstance(e, Select) for e in effects)


class TestHoverAndClick:

    def test_hover_sets_pointer_cursor_and_leave_clears(self, scene):
        state, effects = reduce(InteractionState(), PointerMove(300, 200), scene)
        assert state.hovered_id == "b"
        assert SetCursor("pointer") in effects

        state, effects = reduce(state, PointerMove(302, 201), scene)
        assert effects == []

        state, effects = reduce(state, PointerLeave(), scene)
        assert state.hovered_id is None
        assert SetCursor("default") in effects

    def test_click_on_empty_space_clears_selection(self, scene):
        state = InteractionState(selected_id="a")
        state, effects = reduce(state, Click(700, 500), scene)

        assert state.selected_id is None
        assert Select(None) in effects

    def test_double_click_navigates(self, scene):
        state = InteractionState()
        assert reduce(state, DoubleClick(100, 100), scene)[1] == [Navigate("a")]
        assert reduce(state, DoubleClick(700, 500), scene)[1] == []


class TestControls:

    def test_toggle_filter_recolours_without_layout_effects(self, scene):
        state, effects = reduce(InteractionState(), ToggleFilter("Champion"), scene)
        assert state.active_filters == frozenset({"Champion"})
        assert effects == [Recolor(frozenset({"Champion"})), Redraw()]

        state, effects = reduce(state, ToggleFilter("Champion"), scene)
        assert state.active_filters == frozenset()

    def test_threshold_change_schedules_debounced_reload(self, scene):
        state, effects = reduce(InteractionState(), ThresholdChanged(7), scene)

        assert state.min_interactions == 7
        assert effects == [SetThreshold(7), ScheduleReload(500)]

    def test_negative_threshold_is_floored(self, scene):
        state, _ = reduce(InteractionState(), ThresholdChanged(-3), scene)
        assert state.min_interactions == 0

    def test_resize_updates_viewport(self, scene):
        state, _ = reduce(InteractionState(), Resize(1024, 768), scene)
        assert (state.width, state.height) == (1024.0, 768.0)

    def test_focus_centres_node_and_selects(self, scene):
        state = InteractionState(transform=ViewTransform(k=2.0), width=800, height=600)
        state, effects = reduce(state, FocusNode("b"), scene)

        assert state.transform.to_screen(300, 200) == pytest.approx((400, 300))
        assert state.transform.k == 2.0
        assert state.selected_id == "b"
        assert Select("b") in effects

    def test_focus_unknown_node_is_noop(self, scene):
        state = InteractionState()
        assert reduce(state, FocusNode("missing"), scene) == (state, [])

    def test_unknown_event_raises(self, scene):
        with pytest.raises(TypeError):
            reduce(InteractionState(), object(), scene)
