from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

Point = Tuple[float, float]

HULL_PADDING = 35.0
ARROW_LENGTH = 12.0
ARROW_ANGLE = math.pi / 6


def _cross(o: Point, a: Point, b: Point) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def convex_hull(points: Sequence[Point]) -> List[Point]:
    """
    Monotone-chain convex hull, counter-clockwise in a y-up frame.

    Collinear and duplicate points are dropped from the result. Fewer than three
    points are returned unchanged.
    """
    if len(points) < 3:
        return [tuple(p) for p in points]
    ordered = sorted(set((float(p[0]), float(p[1])) for p in points))
    if len(ordered) < 3:
        return ordered

    lower: List[Point] = []
    for p in ordered:
        while len(lower) >= 2 and _cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)

    upper: List[Point] = []
    for p in reversed(ordered):
        while len(upper) >= 2 and _cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)

    return lower[:-1] + upper[:-1]


def polygon_centroid(points: Sequence[Point]) -> Point:
    """Vertex average, which is what the hull padding expands away from."""
    if not points:
        return 0.0, 0.0
    xs = sum(p[0] for p in points)
    ys = sum(p[1] for p in points)
    return xs / len(points), ys / len(points)


def expand_hull(hull: Sequence[Point], padding: float = HULL_PADDING) -> List[Point]:
    cx, cy = polygon_centroid(hull)
    expanded: List[Point] = []
    for x, y in hull:
        dx, dy = x - cx, y - cy
        dist = math.hypot(dx, dy) or 1.0
        expanded.append((x + dx / dist * padding, y + dy / dist * padding))
    return expanded


def top_point(points: Sequence[Point]) -> Point:
    # smallest y is visually highest on screen
    return min(points, key=lambda p: p[1])


def diamond_points(x: float, y: float, r: float) -> List[Point]:
    return [(x, y - r), (x + r, y), (x, y + r), (x - r, y)]


def hexagon_points(x: float, y: float, r: float) -> List[Point]:
    points = []
    for i in range(6):
        angle = (math.pi / 3) * i - math.pi / 2
        points.append((x + r * math.cos(angle), y + r * math.sin(angle)))
    return points


def arrowhead(
    source: Point,
    target: Point,
    target_radius: float,
    length: float = ARROW_LENGTH,
    spread: float = ARROW_ANGLE,
) -> List[Point]:
    """Triangle whose tip touches the target's outline, pointing from source to target."""
    angle = math.atan2(target[1] - source[1], target[0] - source[0])
    tip_x = target[0] - (target_radius + 2) * math.cos(angle)
    tip_y = target[1] - (target_radius + 2) * math.sin(angle)
    return [
        (tip_x, tip_y),
        (tip_x - length * math.cos(angle - spread), tip_y - length * math.sin(angle - spread)),
        (tip_x - length * math.cos(angle + spread), tip_y - length * math.sin(angle + spread)),
    ]


def midpoint(a: Point, b: Point) -> Point:
    return (a[0] + b[0]) / 2, (a[1] + b[1]) / 2


def hit_test(xs: np.ndarray, ys: np.ndarray, radii: np.ndarray, wx: float, wy: float) -> Optional[int]:
    """
    Index of the topmost node under a world-space point, or None.

    Nodes are treated as circles whatever shape they are drawn with; later nodes are
    drawn on top and therefore win.
    """
    if len(xs) == 0:
        return None
    dist_sq = (xs - wx) ** 2 + (ys - wy) ** 2
    hits = np.nonzero(dist_sq < radii ** 2)[0]
    if hits.size == 0:
        return None
    return int(hits[-1])
