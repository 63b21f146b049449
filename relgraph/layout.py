from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from .config import LOG_NAME
from .geometry import hit_test
from .graph_processor import MOVED_OFFSET
from .interaction import DRAG_ALPHA_TARGET, PinNode, ReleaseNode, SetAlphaTarget
from .model import Node, NodeType, RenderModel
from .styles import LINK_DISTANCES

logger = logging.getLogger(LOG_NAME).getChild("layout")

SEED_SPREAD = 300.0
DEFAULT_LINK_STRENGTH = 0.3
CHARGE_STRENGTH = -300.0
CHARGE_DISTANCE_MAX = 400.0
COLLISION_MARGIN = 5.0
CLUSTER_STRENGTH = 0.15
BOUNDARY_PADDING = 50.0
BOUNDARY_NUDGE = 1.0


class PositionStore:
    """Mutable per-node physics state, indexed by node order in the render model."""

    def __init__(self, size: int):
        self.x = np.zeros(size, dtype=float)
        self.y = np.zeros(size, dtype=float)
        self.vx = np.zeros(size, dtype=float)
        self.vy = np.zeros(size, dtype=float)
        self.fx = np.full(size, np.nan)
        self.fy = np.full(size, np.nan)
        self.radii = np.full(size, 10.0)

    def __len__(self) -> int:
        return len(self.x)

    @property
    def pinned(self) -> np.ndarray:
        return ~np.isnan(self.fx)

    def position(self, idx: int) -> Tuple[float, float]:
        return float(self.x[idx]), float(self.y[idx])

    @classmethod
    def seeded(
        cls,
        model: RenderModel,
        width: float,
        height: float,
        rng: Optional[np.random.Generator] = None,
    ) -> "PositionStore":
        """Random start positions around the viewport centre; destinations sit beside their source."""
        rng = rng or np.random.default_rng()
        store = cls(len(model.nodes))
        cx, cy = width / 2, height / 2
        store.x[:] = cx + (rng.random(len(store)) - 0.5) * SEED_SPREAD
        store.y[:] = cy + (rng.random(len(store)) - 0.5) * SEED_SPREAD
        for idx, node in enumerate(model.nodes):
            store.radii[idx] = node.radius
            if node.node_type is NodeType.SYNTHETIC_DESTINATION and node.origin_id:
                origin = model.index_of(node.origin_id)
                if origin is not None:
                    store.x[idx] = store.x[origin] + MOVED_OFFSET[0]
                    store.y[idx] = store.y[origin] + MOVED_OFFSET[1]
        return store


class Force(Protocol):
    def apply(self, store: PositionStore, alpha: float) -> None:
        ...


class LinkForce:
    def __init__(self, sources: np.ndarray, targets: np.ndarray, distances: np.ndarray, strengths: np.ndarray, size: int):
        self.sources = sources
        self.targets = targets
        self.distances = distances
        self.strengths = strengths
        degree = np.bincount(np.concatenate([sources, targets]), minlength=size).astype(float)
        total = degree[sources] + degree[targets]
        self.bias = np.divide(degree[sources], total, out=np.full(len(sources), 0.5), where=total > 0)

    @classmethod
    def from_model(cls, model: RenderModel) -> "LinkForce":
        sources, targets, distances, strengths = [], [], [], []
        for edge in model.edges:
            src = model.index_of(edge.source.id)
            dst = model.index_of(edge.target.id)
            if src is None or dst is None:
                continue
            sources.append(src)
            targets.append(dst)
            distances.append(LINK_DISTANCES.get(edge.edge_type, 120.0))
            strengths.append(edge.strength or DEFAULT_LINK_STRENGTH)
        return cls(
            np.array(sources, dtype=int),
            np.array(targets, dtype=int),
            np.array(distances, dtype=float),
            np.array(strengths, dtype=float),
            len(model.nodes),
        )

    def apply(self, store: PositionStore, alpha: float) -> None:
        if len(self.sources) == 0:
            return
        s, t = self.sources, self.targets
        dx = store.x[t] + store.vx[t] - store.x[s] - store.vx[s]
        dy = store.y[t] + store.vy[t] - store.y[s] - store.vy[s]
        length = np.hypot(dx, dy)
        length[length == 0] = 1e-6
        scale = (length - self.distances) / length * alpha * self.strengths
        dx *= scale
        dy *= scale
        np.add.at(store.vx, t, -dx * self.bias)
        np.add.at(store.vy, t, -dy * self.bias)
        np.add.at(store.vx, s, dx * (1 - self.bias))
        np.add.at(store.vy, s, dy * (1 - self.bias))


class ManyBodyForce:
    def __init__(self, strength: float = CHARGE_STRENGTH, distance_max: float = CHARGE_DISTANCE_MAX):
        self.strength = strength
        self.distance_max_sq = distance_max ** 2

    def apply(self, store: PositionStore, alpha: float) -> None:
        if len(store) < 2:
            return
        dx = store.x[None, :] - store.x[:, None]
        dy = store.y[None, :] - store.y[:, None]
        dist_sq = dx ** 2 + dy ** 2
        active = (dist_sq > 0) & (dist_sq < self.distance_max_sq)
        # soften very close pairs the way a minimum interaction distance of 1 would
        dist_sq = np.where(dist_sq < 1, np.sqrt(dist_sq), dist_sq)
        weight = np.zeros_like(dist_sq)
        np.divide(self.strength * alpha, dist_sq, out=weight, where=active)
        store.vx += (dx * weight).sum(axis=1)
        store.vy += (dy * weight).sum(axis=1)


class CenterForce:
    def __init__(self, cx: float, cy: float, strength: float = 1.0):
        self.cx = cx
        self.cy = cy
        self.strength = strength

    def apply(self, store: PositionStore, alpha: float) -> None:
        if len(store) == 0:
            return
        store.x -= (store.x.mean() - self.cx) * self.strength
        store.y -= (store.y.mean() - self.cy) * self.strength


class CollisionForce:
    def __init__(self, margin: float = COLLISION_MARGIN, strength: float = 1.0):
        self.margin = margin
        self.strength = strength

    def apply(self, store: PositionStore, alpha: float) -> None:
        n = len(store)
        if n < 2:
            return
        radii = store.radii + self.margin
        px = store.x + store.vx
        py = store.y + store.vy
        dx = px[:, None] - px[None, :]
        dy = py[:, None] - py[None, :]
        dist = np.hypot(dx, dy)
        reach = radii[:, None] + radii[None, :]
        upper = np.triu(np.ones((n, n), dtype=bool), k=1)
        overlap = upper & (dist < reach) & (dist > 0)
        if not overlap.any():
            return
        i, j = np.nonzero(overlap)
        d = dist[i, j]
        push = (reach[i, j] - d) / d * self.strength
        ox = dx[i, j] * push
        oy = dy[i, j] * push
        ri_sq = radii[i] ** 2
        rj_sq = radii[j] ** 2
        share = rj_sq / (ri_sq + rj_sq)
        np.add.at(store.vx, i, ox * share)
        np.add.at(store.vy, i, oy * share)
        np.add.at(store.vx, j, -ox * (1 - share))
        np.add.at(store.vy, j, -oy * (1 - share))


class ClusterCohesionForce:
    """Pulls unpinned cluster members toward their cluster's live centroid."""

    def __init__(self, cluster_ids: np.ndarray, strength: float = CLUSTER_STRENGTH):
        self.cluster_ids = cluster_ids
        self.strength = strength
        self.cluster_count = len(np.unique(cluster_ids[cluster_ids >= 0]))

    def apply(self, store: PositionStore, alpha: float) -> None:
        if self.cluster_count <= 1:
            return
        members = self.cluster_ids >= 0
        ids = self.cluster_ids[members]
        size = int(ids.max()) + 1
        counts = np.bincount(ids, minlength=size)
        counts[counts == 0] = 1
        cx = np.bincount(ids, weights=store.x[members], minlength=size) / counts
        cy = np.bincount(ids, weights=store.y[members], minlength=size) / counts
        movable = members & ~store.pinned
        target = self.cluster_ids[movable]
        k = self.strength * alpha
        store.vx[movable] += (cx[target] - store.x[movable]) * k
        store.vy[movable] += (cy[target] - store.y[movable]) * k


class BoundaryForce:
    def __init__(self, width: float, height: float, padding: float = BOUNDARY_PADDING, nudge: float = BOUNDARY_NUDGE):
        self.width = width
        self.height = height
        self.padding = padding
        self.nudge = nudge

    def apply(self, store: PositionStore, alpha: float) -> None:
        free = ~store.pinned
        store.vx[free & (store.x < self.padding)] += self.nudge
        store.vx[free & (store.x > self.width - self.padding)] -= self.nudge
        store.vy[free & (store.y < self.padding)] += self.nudge
        store.vy[free & (store.y > self.height - self.padding)] -= self.nudge


class ForceSolver(Protocol):
    alpha: float
    running: bool

    def set_forces(self, forces: Sequence[Force]) -> None:
        ...

    def step(self) -> float:
        ...

    def pin(self, idx: int, x: float, y: float) -> None:
        ...

    def unpin(self, idx: int) -> None:
        ...

    def reheat(self, alpha_target: float) -> None:
        ...

    def restart(self, alpha: Optional[float] = None) -> None:
        ...

    def stop(self) -> None:
        ...


class NumpySolver:
    """
    Velocity-based force simulation with an alpha "temperature" that cools toward
    ``alpha_target``. Stops reporting ``running`` once alpha falls below ``alpha_min``.
    """

    def __init__(
        self,
        store: PositionStore,
        *,
        alpha: float = 1.0,
        alpha_min: float = 0.001,
        alpha_decay: float = 0.02,
        velocity_decay: float = 0.4,
    ):
        self.store = store
        self.alpha = alpha
        self.alpha_min = alpha_min
        self.alpha_decay = alpha_decay
        self.alpha_target = 0.0
        self.velocity_decay = velocity_decay
        self.forces: List[Force] = []
        self.running = True

    def set_forces(self, forces: Sequence[Force]) -> None:
        self.forces = list(forces)

    def step(self) -> float:
        store = self.store
        self.alpha += (self.alpha_target - self.alpha) * self.alpha_decay
        for force in self.forces:
            force.apply(store, self.alpha)

        pinned = store.pinned
        free = ~pinned
        store.vx[free] *= 1 - self.velocity_decay
        store.vy[free] *= 1 - self.velocity_decay
        store.x[free] += store.vx[free]
        store.y[free] += store.vy[free]
        store.x[pinned] = store.fx[pinned]
        store.y[pinned] = store.fy[pinned]
        store.vx[pinned] = 0.0
        store.vy[pinned] = 0.0

        if self.alpha < self.alpha_min:
            self.running = False
        return self.alpha

    def pin(self, idx: int, x: float, y: float) -> None:
        self.store.fx[idx] = x
        self.store.fy[idx] = y

    def unpin(self, idx: int) -> None:
        self.store.fx[idx] = np.nan
        self.store.fy[idx] = np.nan

    def reheat(self, alpha_target: float) -> None:
        self.alpha_target = alpha_target
        if alpha_target > 0:
            self.running = True

    def restart(self, alpha: Optional[float] = None) -> None:
        if alpha is not None:
            self.alpha = alpha
        self.running = True

    def stop(self) -> None:
        self.running = False


def build_forces(model: RenderModel, width: float, height: float) -> List[Force]:
    cluster_ids = np.array([node.cluster_id for node in model.nodes], dtype=int)
    return [
        LinkForce.from_model(model),
        ManyBodyForce(),
        CenterForce(width / 2, height / 2),
        CollisionForce(),
        ClusterCohesionForce(cluster_ids),
        BoundaryForce(width, height),
    ]


SolverFactory = Callable[[PositionStore], ForceSolver]


class LayoutEngine:
    """
    Owns the position store and the solver for one render model.

    Each tick steps the solver while it is hot and then calls ``on_tick`` so the view
    can repaint; the engine itself never draws.
    """

    def __init__(self, solver_factory: SolverFactory = NumpySolver, on_tick: Optional[Callable[[], None]] = None):
        self._solver_factory = solver_factory
        self.on_tick = on_tick
        self.model: Optional[RenderModel] = None
        self.store = PositionStore(0)
        self.solver: Optional[ForceSolver] = None
        self.width = 800.0
        self.height = 600.0

    def start(
        self,
        model: RenderModel,
        width: float,
        height: float,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.stop()
        self.model = model
        self.width = float(width)
        self.height = float(height)
        self.store = PositionStore.seeded(model, self.width, self.height, rng=rng)
        solver = self._solver_factory(self.store)
        solver.set_forces(build_forces(model, self.width, self.height))
        anchor = model.anchor
        if anchor is not None:
            idx = model.index_of(anchor.id)
            solver.pin(idx, self.width / 2, self.height / 2)
            self.store.x[idx] = self.width / 2
            self.store.y[idx] = self.height / 2
        self.solver = solver
        logger.info("Layout started for %d nodes (%sx%s).", len(model.nodes), int(width), int(height))

    @property
    def running(self) -> bool:
        return self.solver is not None and self.solver.running

    def tick(self) -> bool:
        if not self.running:
            return False
        self.solver.step()
        if self.on_tick is not None:
            self.on_tick()
        return True

    def run(self, ticks: int) -> int:
        done = 0
        while done < ticks and self.tick():
            done += 1
        return done

    def stop(self) -> None:
        if self.solver is not None:
            self.solver.stop()

    def resize(self, width: float, height: float) -> None:
        # positions and solver state are kept as they are
        self.width = float(width)
        self.height = float(height)

    def _index(self, node_id: str) -> Optional[int]:
        if self.model is None:
            return None
        return self.model.index_of(node_id)

    def pin_node(self, node_id: str, x: float, y: float) -> None:
        """Fix a node at a world position and keep the layout warm around it."""
        idx = self._index(node_id)
        if idx is None or self.solver is None:
            return
        self.solver.pin(idx, x, y)
        self.store.x[idx] = x
        self.store.y[idx] = y
        self.solver.restart(alpha=max(self.solver.alpha, DRAG_ALPHA_TARGET))

    def release_node(self, node_id: str) -> None:
        idx = self._index(node_id)
        if idx is None or self.solver is None:
            return
        self.solver.unpin(idx)
        anchor = self.model.anchor if self.model else None
        if anchor is not None and anchor.id == node_id:
            # the hierarchy anchor stays fixed wherever it was dropped
            self.solver.pin(idx, *self.store.position(idx))

    def set_alpha_target(self, alpha_target: float) -> None:
        if self.solver is None:
            return
        self.solver.reheat(alpha_target)
        if alpha_target > 0:
            self.solver.restart()

    def apply_effect(self, effect) -> bool:
        """Carry out a layout-related reducer effect; returns False for anything else."""
        if isinstance(effect, PinNode):
            self.pin_node(effect.node_id, effect.x, effect.y)
        elif isinstance(effect, ReleaseNode):
            self.release_node(effect.node_id)
        elif isinstance(effect, SetAlphaTarget):
            self.set_alpha_target(effect.value)
        else:
            return False
        return True

    def is_pinned(self, node_id: str) -> bool:
        idx = self._index(node_id)
        return idx is not None and bool(self.store.pinned[idx])

    def scene(self) -> "GraphScene":
        return GraphScene(self.model, self.store)


class GraphScene:
    """Read-only view of current node positions used for hit testing."""

    def __init__(self, model: Optional[RenderModel], store: PositionStore):
        self.model = model
        self.store = store

    def node_at(self, wx: float, wy: float) -> Optional[Node]:
        if self.model is None or len(self.store) != len(self.model.nodes):
            return None
        idx = hit_test(self.store.x, self.store.y, self.store.radii, wx, wy)
        return self.model.nodes[idx] if idx is not None else None

    def position_of(self, node_id: str) -> Optional[Tuple[float, float]]:
        if self.model is None:
            return None
        idx = self.model.index_of(node_id)
        if idx is None or idx >= len(self.store):
            return None
        return self.store.position(idx)

    def positions(self) -> Dict[str, Tuple[float, float]]:
        if self.model is None:
            return {}
        return {node.id: self.store.position(idx) for idx, node in enumerate(self.model.nodes)}
