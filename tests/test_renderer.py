import numpy as np
import pytest

from conftest import payload, person

from relgraph.graph_processor import process_payload
from relgraph.interaction import InteractionState
from relgraph.layout import PositionStore
from relgraph.model import NodeType, RenderModel, ViewTransform
from relgraph.styles import CLASSIFICATION_COLORS, NODE_TYPE_COLORS

WIDTH, HEIGHT = 600, 400


@pytest.fixture
def small_model():
    data = payload(
        [
            person("p1", "Dana", classification="Champion"),
            {"id": "d1", "name": "Rollout", "nodeType": "Opportunity", "classification": "Proposal"},
        ]
    )
    return process_payload(data)


def _store(model, positions):
    store = PositionStore(len(model.nodes))
    for idx, (x, y) in enumerate(positions):
        store.x[idx] = x
        store.y[idx] = y
        store.radii[idx] = model.nodes[idx].radius
    return store


def _render(model, store, state=None):
    from PyQt6 import QtGui

    from relgraph.renderer import GraphRenderer

    image = QtGui.QImage(WIDTH, HEIGHT, QtGui.QImage.Format.Format_ARGB32)
    image.fill(0)
    painter = QtGui.QPainter(image)
    try:
        GraphRenderer().paint(painter, model, store, state or InteractionState(), WIDTH, HEIGHT)
    finally:
        painter.end()
    return image


def _rgb(image, x, y):
    colour = image.pixelColor(x, y)
    return colour.red(), colour.green(), colour.blue()


def _hex_rgb(value):
    value = value.lstrip("#")
    return tuple(int(value[i:i + 2], 16) for i in (0, 2, 4))


class TestGraphRenderer:

    def test_empty_model_paints_background_only(self, qapp):
        image = _render(RenderModel(), PositionStore(0))

        assert _rgb(image, 10, 10) == (255, 255, 255)
        assert _rgb(image, WIDTH - 1, HEIGHT - 1) == (255, 255, 255)

    def test_nodes_filled_with_their_colour(self, qapp, small_model):
        image = _render(small_model, _store(small_model, [(200, 150), (420, 260)]))

        assert _rgb(image, 200, 150) == _hex_rgb(CLASSIFICATION_COLORS["Champion"])
        assert _rgb(image, 420, 260) == _hex_rgb(NODE_TYPE_COLORS[NodeType.DEAL])
        assert _rgb(image, 560, 40) == (255, 255, 255)

    def test_view_transform_is_applied(self, qapp, small_model):
        state = InteractionState(transform=ViewTransform(x=100, y=20, k=1.0))
        image = _render(small_model, _store(small_model, [(200, 150), (420, 260)]), state)

        assert _rgb(image, 300, 170) == _hex_rgb(CLASSIFICATION_COLORS["Champion"])

    def test_mismatched_store_is_not_drawn(self, qapp, small_model):
        image = _render(small_model, PositionStore(1))

        assert _rgb(image, 200, 150) == (255, 255, 255)

    def test_full_sample_renders_with_hover(self, qapp, sample_model):
        store = PositionStore.seeded(sample_model, WIDTH, HEIGHT, rng=np.random.default_rng(2))
        state = InteractionState(hovered_id="003SAMPLE0000007")
        image = _render(sample_model, store, state)

        painted = {_rgb(image, x, y) for x in range(0, WIDTH, 4) for y in range(0, HEIGHT, 4)}
        assert len(painted) > 10
