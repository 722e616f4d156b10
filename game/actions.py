"""Player actions.

Every action validates completely before it mutates anything and returns
an :class:`~game.entities.ActionResult`; a failed action carries an error
string and leaves the state untouched.
"""
from __future__ import annotations

import math
from typing import List, Optional, Set, Tuple

from config import (
    BASE_LAND_COST,
    BUILDING_COSTS,
    BUILDING_UPGRADE_COSTS,
    DEFAULT_RECIPE,
    DEFAULT_SORTER_FILTER,
    DEMOLISH_REFUND_RATE,
    FORGER,
    GEOLOGIST,
    GEOLOGIST_MAX_COUNT,
    ITEM_CATEGORIES,
    LAND_COST_MULTIPLIER,
    LAND_SIDES,
    MAX_UPGRADE_LEVEL,
    MIN_BELT_PATH_CELLS,
    MINER,
    RECIPES,
    SORTER,
)
from game.entities import ActionResult, Belt, Building, GameState, Position
from game.pathfinding import belt_cost, build_obstacle_set, find_path


def land_cost(state: GameState) -> int:
    return int(math.floor(BASE_LAND_COST * LAND_COST_MULTIPLIER ** state.tiles_purchased))


def demolish_refund(building_type: str) -> int:
    return int(math.floor(BUILDING_COSTS[building_type] * DEMOLISH_REFUND_RATE))


def building_placement_error(state: GameState, building_type: str, position: Position) -> Optional[str]:
    if building_type not in BUILDING_COSTS:
        return "Unknown building type"
    if state.currency < BUILDING_COSTS[building_type]:
        return "Not enough currency"
    if not state.in_bounds(position):
        return "Out of bounds"
    if state.building_at(position) is not None or position in set(state.belt_interior_cells()):
        return "Cell already occupied"
    if building_type == MINER and state.ore_at(position) is None:
        return "Must place miner on ore node"
    if building_type == GEOLOGIST and len(state.buildings_of(GEOLOGIST)) >= GEOLOGIST_MAX_COUNT:
        return "Only one geologist building allowed"
    return None


def place_building(
    state: GameState,
    building_type: str,
    position: Position,
    *,
    recipe: Optional[str] = None,
) -> ActionResult:
    error = building_placement_error(state, building_type, position)
    if error is None and recipe is not None and recipe not in RECIPES:
        error = "Unknown recipe"
    if error is not None:
        return ActionResult(state, error)

    state.currency -= BUILDING_COSTS[building_type]
    state.buildings.append(
        Building(
            id=state.new_id("building"),
            type=building_type,
            position=position,
            recipe=recipe or DEFAULT_RECIPE,
            sorter_filter=DEFAULT_SORTER_FILTER if building_type == SORTER else None,
        )
    )
    return ActionResult(state)


def route_belt(
    state: GameState,
    start: Position,
    goal: Position,
    obstacles: Optional[Set[Position]] = None,
) -> Tuple[Optional[List[Position]], Optional[str]]:
    """Validate and route a belt without touching currency or state.

    Endpoint buildings are not checked here so planners can route to a
    cell they are about to build on.
    """
    if not state.in_bounds(start) or not state.in_bounds(goal):
        return None, "Out of bounds"
    if start == goal:
        return None, "Cannot belt to same cell"
    if any(belt.source == start and belt.destination == goal for belt in state.belts):
        return None, "Belt already exists"

    if obstacles is None:
        obstacles = build_obstacle_set(state)
    path = find_path(start, goal, obstacles, state.map_width, state.map_height)
    if path is None:
        return None, "No valid path"
    if len(path) < MIN_BELT_PATH_CELLS:
        return None, "Belts require at least 1 space between buildings"
    return path, None


def place_belt(
    state: GameState,
    start: Position,
    goal: Position,
    *,
    obstacles: Optional[Set[Position]] = None,
) -> ActionResult:
    if not state.in_bounds(start) or not state.in_bounds(goal):
        return ActionResult(state, "Out of bounds")
    if start == goal:
        return ActionResult(state, "Cannot belt to same cell")
    if state.building_at(start) is None:
        return ActionResult(state, "Source must have a building")
    if state.building_at(goal) is None:
        return ActionResult(state, "Destination must have a building")

    path, error = route_belt(state, start, goal, obstacles)
    if path is None:
        return ActionResult(state, error)

    cost = belt_cost(path)
    if state.currency < cost:
        return ActionResult(state, "Not enough currency")

    state.currency -= cost
    state.belts.append(Belt(id=state.new_id("belt"), path=path))
    return ActionResult(state)


def set_recipe(state: GameState, building_id: str, recipe: str) -> ActionResult:
    building = state.building_by_id(building_id)
    if building is None:
        return ActionResult(state, "Building not found")
    if building.type != FORGER:
        return ActionResult(state, "Only forgers have recipes")
    if recipe not in RECIPES:
        return ActionResult(state, "Unknown recipe")

    building.recipe = recipe
    building.progress = 0.0
    return ActionResult(state)


def demolish_building(state: GameState, building_id: str) -> ActionResult:
    building = state.building_by_id(building_id)
    if building is None:
        return ActionResult(state, "Building not found")

    state.belts = [belt for belt in state.belts if not belt.touches(building.position)]
    state.buildings = [b for b in state.buildings if b.id != building_id]
    state.currency += demolish_refund(building.type)
    return ActionResult(state)


def upgrade_building(state: GameState, building_id: str) -> ActionResult:
    building = state.building_by_id(building_id)
    if building is None:
        return ActionResult(state, "Building not found")
    if not building.is_operational:
        return ActionResult(state, "Cannot upgrade building under construction")
    if building.upgrade_level >= MAX_UPGRADE_LEVEL:
        return ActionResult(state, "Building already at max level")

    cost = BUILDING_UPGRADE_COSTS[building.upgrade_level]
    if state.currency < cost:
        return ActionResult(state, "Not enough currency")

    state.currency -= cost
    building.upgrade_level += 1
    return ActionResult(state)


def purchase_land(state: GameState, side: str) -> ActionResult:
    if side not in LAND_SIDES:
        return ActionResult(state, "Invalid side")
    cost = land_cost(state)
    if state.currency < cost:
        return ActionResult(state, "Not enough currency")

    state.currency -= cost
    state.tiles_purchased += 1
    if side == "right":
        state.map_width += 1
    else:
        state.map_height += 1
    return ActionResult(state)


def set_sorter_filter(state: GameState, building_id: str, sorter_filter: str) -> ActionResult:
    building = state.building_by_id(building_id)
    if building is None:
        return ActionResult(state, "Building not found")
    if building.type != SORTER:
        return ActionResult(state, "Only sorters have filters")
    if sorter_filter not in ITEM_CATEGORIES:
        return ActionResult(state, "Invalid filter")

    building.sorter_filter = sorter_filter
    return ActionResult(state)
