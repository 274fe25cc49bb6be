from __future__ import annotations

import asyncio
import heapq
import math
from dataclasses import dataclass

import numpy as np

from .errors import PathNotFound
from .geo import Coordinate, haversine_m, to_coordinate
from .models import CandidatePath
from .risk_surface import RiskSurface

# Keep the lattice non-degenerate when origin and destination share a lon or lat.
_MIN_SPAN_DEG = 0.002

_NEIGHBOUR_STEPS: tuple[tuple[int, int], ...] = (
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1), (0, 1),
    (1, -1), (1, 0), (1, 1),
)


@dataclass(frozen=True)
class Lattice:
    """Regular lon/lat grid covering the padded origin/destination bounding box."""

    lons: np.ndarray
    lats: np.ndarray

    @property
    def size(self) -> int:
        return int(self.lons.size)

    def point(self, row: int, col: int) -> Coordinate:
        return (float(self.lons[col]), float(self.lats[row]))

    def nearest(self, coordinate: Coordinate) -> tuple[int, int]:
        col = int(np.abs(self.lons - coordinate[0]).argmin())
        row = int(np.abs(self.lats - coordinate[1]).argmin())
        return row, col

    def points(self) -> list[Coordinate]:
        return [self.point(r, c) for r in range(self.size) for c in range(self.size)]


def build_lattice(origin: Coordinate, destination: Coordinate, *, grid_size: int, padding_ratio: float) -> Lattice:
    lon_lo, lon_hi = sorted((origin[0], destination[0]))
    lat_lo, lat_hi = sorted((origin[1], destination[1]))
    span = max(lon_hi - lon_lo, lat_hi - lat_lo, _MIN_SPAN_DEG)
    pad = span * padding_ratio
    lon_mid = (lon_lo + lon_hi) / 2.0
    lat_mid = (lat_lo + lat_hi) / 2.0
    half = span / 2.0 + pad
    lons = np.linspace(max(-180.0, lon_mid - half), min(180.0, lon_mid + half), grid_size)
    lats = np.linspace(max(-90.0, lat_mid - half), min(90.0, lat_mid + half), grid_size)
    return Lattice(lons=lons, lats=lats)


def _lattice_shortest_path(
    *,
    lattice: Lattice,
    node_risk: np.ndarray,
    start: tuple[int, int],
    goal: tuple[int, int],
    risk_weight: float,
) -> tuple[list[tuple[int, int]], float]:
    """Dijkstra over the 8-connected lattice.

    Edge cost is distance scaled by (1 + weight * mean endpoint risk), so a larger
    weight pushes the path further from risky cells.
    """
    n = lattice.size
    weight = max(0.0, float(risk_weight))
    heap: list[tuple[float, int, tuple[int, int]]] = [(0.0, 0, start)]
    best_cost: dict[tuple[int, int], float] = {start: 0.0}
    previous: dict[tuple[int, int], tuple[int, int]] = {}

    while heap:
        cost, hops, node = heapq.heappop(heap)
        if node == goal:
            steps = [node]
            while steps[-1] in previous:
                steps.append(previous[steps[-1]])
            steps.reverse()
            return steps, cost
        if cost > best_cost.get(node, math.inf):
            continue
        row, col = node
        here = lattice.point(row, col)
        for dr, dc in _NEIGHBOUR_STEPS:
            nr, nc = row + dr, col + dc
            if not (0 <= nr < n and 0 <= nc < n):
                continue
            nxt = (nr, nc)
            risk = 0.5 * (float(node_risk[row, col]) + float(node_risk[nr, nc]))
            edge_cost = haversine_m(here, lattice.point(nr, nc)) * (1.0 + weight * risk)
            new_cost = cost + max(0.001, edge_cost)
            if new_cost >= best_cost.get(nxt, math.inf):
                continue
            best_cost[nxt] = new_cost
            previous[nxt] = node
            heapq.heappush(heap, (new_cost, hops + 1, nxt))
    raise PathNotFound("No path found between origin and destination")


class GridPathfinder:
    """Risk-biased search over a lattice laid across the trip's bounding box.

    The returned path runs origin -> lattice nodes -> destination. It is an abstract
    corridor; the trip service snaps it to a real network.
    """

    def __init__(self, surface: RiskSurface, *, grid_size: int = 24, padding_ratio: float = 0.25) -> None:
        if grid_size < 2:
            raise ValueError("grid_size must be at least 2")
        self.surface = surface
        self.grid_size = int(grid_size)
        self.padding_ratio = float(padding_ratio)

    async def search(self, origin: Coordinate, destination: Coordinate, risk_weight: float) -> CandidatePath:
        return await asyncio.to_thread(self.search_sync, origin, destination, risk_weight)

    def search_sync(self, origin: Coordinate, destination: Coordinate, risk_weight: float) -> CandidatePath:
        origin = to_coordinate(origin)
        destination = to_coordinate(destination)
        lattice = build_lattice(
            origin,
            destination,
            grid_size=self.grid_size,
            padding_ratio=self.padding_ratio,
        )
        node_risk = self.surface.score_many(lattice.points()).reshape(lattice.size, lattice.size)

        start = lattice.nearest(origin)
        goal = lattice.nearest(destination)
        steps, cost = _lattice_shortest_path(
            lattice=lattice,
            node_risk=node_risk,
            start=start,
            goal=goal,
            risk_weight=risk_weight,
        )

        path: list[Coordinate] = [origin]
        for row, col in steps:
            pt = lattice.point(row, col)
            if pt != path[-1]:
                path.append(pt)
        if path[-1] != destination:
            path.append(destination)
        if len(path) == 1:
            # origin == destination
            path.append(destination)
        return CandidatePath(path=path, risk_weight=float(risk_weight), cost=round(cost, 3))
