"""Grid routing for belts.

A* over the 4-neighbourhood with a Manhattan heuristic.  Open nodes are
ranked by ``(f, h, discovery order)`` so equal-cost searches always return
the same path for the same inputs.
"""
from __future__ import annotations

import heapq
import itertools
from typing import Dict, Iterable, List, Optional, Set, Tuple

from config import BELT_COST
from game.entities import GameState, Position

DIRECTIONS: Tuple[Tuple[int, int], ...] = ((0, -1), (1, 0), (0, 1), (-1, 0))


def manhattan(a: Position, b: Position) -> int:
    return abs(a.x - b.x) + abs(a.y - b.y)


def belt_cost(path: List[Position]) -> int:
    return max(0, len(path) - 2) * BELT_COST


def build_obstacle_set(state: GameState, extra: Iterable[Position] = ()) -> Set[Position]:
    """Building cells plus every belt interior, plus ``extra``."""
    obstacles = {building.position for building in state.buildings}
    obstacles.update(state.belt_interior_cells())
    obstacles.update(extra)
    return obstacles


def find_path(
    start: Position,
    goal: Position,
    obstacles: Set[Position],
    width: int,
    height: int,
) -> Optional[List[Position]]:
    """Shortest 4-connected path from ``start`` to ``goal`` inclusive.

    Returns None when the endpoints are adjacent or identical (no room for
    a belt interior) or when no route exists inside the map.  The goal is
    always passable; the start is never tested against ``obstacles``.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"map size must be positive, got {width}x{height}")
    if manhattan(start, goal) <= 1:
        return None

    discovery = itertools.count()
    pushes = itertools.count()
    first_seen: Dict[Position, int] = {start: next(discovery)}
    g_score: Dict[Position, int] = {start: 0}
    came_from: Dict[Position, Position] = {}
    closed: Set[Position] = set()

    h0 = manhattan(start, goal)
    heap: List[Tuple[int, int, int, int, Position]] = [(h0, h0, first_seen[start], next(pushes), start)]

    while heap:
        f, h, _, _, current = heapq.heappop(heap)
        if current in closed or f - h != g_score[current]:
            continue
        if current == goal:
            return _reconstruct(came_from, current)
        closed.add(current)

        for dx, dy in DIRECTIONS:
            neighbour = current.offset(dx, dy)
            if not (0 <= neighbour.x < width and 0 <= neighbour.y < height):
                continue
            if neighbour in closed:
                continue
            if neighbour in obstacles and neighbour != goal:
                continue

            tentative = g_score[current] + 1
            if neighbour in g_score and tentative >= g_score[neighbour]:
                continue
            g_score[neighbour] = tentative
            came_from[neighbour] = current
            if neighbour not in first_seen:
                first_seen[neighbour] = next(discovery)
            nh = manhattan(neighbour, goal)
            heapq.heappush(heap, (tentative + nh, nh, first_seen[neighbour], next(pushes), neighbour))

    return None


def _reconstruct(came_from: Dict[Position, Position], current: Position) -> List[Position]:
    path = [current]
    while current in came_from:
        current = came_from[current]
        path.append(current)
    path.reverse()
    return path
