import math

import numpy as np
import pytest

from relgraph.geometry import arrowhead, convex_hull, expand_hull, hexagon_points, hit_test, polygon_centroid, top_point


class TestConvexHull:

    def test_interior_points_are_dropped(self):
        points = [(0, 0), (10, 0), (10, 10), (0, 10), (5, 5), (3, 7)]
        hull = convex_hull(points)

        assert set(hull) == {(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)}

    def test_collinear_and_duplicate_points(self):
        hull = convex_hull([(0, 0), (5, 0), (10, 0), (10, 0), (5, 5)])

        assert set(hull) == {(0.0, 0.0), (10.0, 0.0), (5.0, 5.0)}

    def test_fewer_than_three_points_returned_as_is(self):
        assert convex_hull([(1, 2), (3, 4)]) == [(1, 2), (3, 4)]

    def test_all_collinear_gives_degenerate_hull(self):
        assert len(convex_hull([(0, 0), (1, 1), (2, 2)])) < 3

    def test_every_point_is_inside_or_on_hull(self):
        rng = np.random.default_rng(11)
        points = [tuple(p) for p in rng.uniform(-50, 50, size=(40, 2))]
        hull = convex_hull(points)

        for px, py in points:
            for i, (ax, ay) in enumerate(hull):
                bx, by = hull[(i + 1) % len(hull)]
                assert (bx - ax) * (py - ay) - (by - ay) * (px - ax) >= -1e-9


class TestHullDecoration:

    def test_expand_moves_vertices_outward_by_padding(self):
        square = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)]
        cx, cy = polygon_centroid(square)
        expanded = expand_hull(square, padding=5)

        for (x, y), (ex, ey) in zip(square, expanded):
            before = math.hypot(x - cx, y - cy)
            after = math.hypot(ex - cx, ey - cy)
            assert after == pytest.approx(before + 5)

    def test_top_point_is_smallest_y(self):
        assert top_point([(0, 5), (3, -2), (8, 1)]) == (3, -2)


class TestShapes:

    def test_hexagon_vertices_sit_on_radius(self):
        for x, y in hexagon_points(10, 20, 8):
            assert math.hypot(x - 10, y - 20) == pytest.approx(8)

    def test_arrow_tip_touches_target_outline(self):
        tip = arrowhead((0, 0), (100, 0), target_radius=18)[0]

        assert tip[0] == pytest.approx(80)
        assert tip[1] == pytest.approx(0)


class TestHitTest:

    def test_topmost_node_wins(self):
        xs = np.array([0.0, 5.0])
        ys = np.array([0.0, 0.0])
        radii = np.array([10.0, 10.0])

        assert hit_test(xs, ys, radii, 2, 0) == 1

    def test_miss_and_empty(self):
        xs = np.array([0.0])
        ys = np.array([0.0])
        radii = np.array([10.0])

        assert hit_test(xs, ys, radii, 30, 30) is None
        assert hit_test(np.array([]), np.array([]), np.array([]), 0, 0) is None

    def test_bound_is_circular_for_every_shape(self):
        # the corner of a diamond's bounding square is outside its circle
        assert hit_test(np.array([0.0]), np.array([0.0]), np.array([10.0]), 9, 9) is None
