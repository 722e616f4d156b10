"""Forgeworks tick engine.

:func:`tick` advances one simulated second over an explicit
:class:`~game.entities.GameState`.  Phases always run in this order:
construction, production, transport, shop economy, wholesale,
exploration, automation.

:class:`FactorySim` is the reference host: it owns one save bundle, one
seeded ``random.Random`` and a wall clock, and wraps the action,
progression, offline and persistence functions around them.
"""
from __future__ import annotations

import math
import random
import time
from pathlib import Path
from typing import Callable, List, Optional

from config import (
    ALL_ITEMS,
    BAR_ITEM,
    CONSTRUCTION_TICKS,
    DEFAULT_PLAYER_ID,
    DEFAULT_SORTER_FILTER,
    DISCOVERY_MAX_RADIUS,
    DISCOVERY_RING_SAMPLES,
    EXPLORER_MOVE_SPEED,
    FINISHED_GOODS,
    FORGER,
    GEOLOGIST,
    GEOLOGIST_DISCOVERY_TICKS_MAX,
    GEOLOGIST_DISCOVERY_TICKS_MIN,
    GEOLOGIST_SEARCH_PROGRESS_SPAN,
    GEOLOGIST_UPKEEP,
    ITEM_CATEGORIES,
    JUNCTION,
    MIN_BELT_PATH_CELLS,
    MINER,
    ORE_ITEM,
    ORE_KINDS,
    ORE_TICKS,
    PRODUCTION_EPSILON,
    RECIPES,
    SALES_BUILDINGS,
    SAVE_FILE,
    SMELT_ORE_COST,
    SMELT_TICKS,
    SMELTER,
    SORTER,
    UPGRADE_SPEED_BONUS,
    WAREHOUSE,
    WHOLESALE_MULTIPLIER,
    WHOLESALE_THRESHOLD,
)
from game import actions, progression
from game.automation import run_automation
from game.customers import run_shops
from game.entities import (
    ActionResult,
    AutomationSettings,
    BeltItem,
    Building,
    GameMeta,
    GameSave,
    GameState,
    GeologistExplorer,
    InvariantViolation,
    OfflineProgress,
    OreNode,
    Position,
    PrestigeData,
    TickResult,
    UpgradeState,
)
from game.modifiers import Modifiers, get_modifiers
from game.offline import apply_offline_progress, calculate_offline_progress
from game.persistence import PersistResult, create_new_save, load_from_disk, save_to_disk


def upgrade_multiplier(level: int) -> float:
    return UPGRADE_SPEED_BONUS ** level


def tick(
    state: GameState,
    upgrades: UpgradeState,
    prestige: PrestigeData,
    automation: AutomationSettings,
    meta: GameMeta,
    rng: random.Random,
) -> TickResult:
    state.tick += 1
    if state.king_penalty_ticks_left > 0:
        state.king_penalty_ticks_left -= 1

    modifiers = get_modifiers(upgrades, prestige, state)
    result = TickResult()

    _advance_construction(state)
    result.items_produced += _run_production(state, modifiers)
    _run_transport(state, modifiers)
    result.currency_earned += run_shops(state, modifiers, rng)
    result.currency_earned += _run_wholesale(state, modifiers)
    _run_exploration(state, rng)

    if automation.enabled:
        run_automation(state, upgrades, automation)

    meta.total_currency_earned += result.currency_earned
    meta.total_items_produced += result.items_produced
    return result


# ----------------------------------------------------------------------
# Construction / production
# ----------------------------------------------------------------------


def _advance_construction(state: GameState) -> None:
    for building in state.buildings:
        if building.construction_progress < 1.0:
            progress = building.construction_progress + 1.0 / CONSTRUCTION_TICKS[building.type]
            building.construction_progress = 1.0 if progress >= 1.0 - PRODUCTION_EPSILON else progress


def _advance(building: Building, base_ticks: float, speed: float) -> bool:
    """Add one tick of work; returns True when a cycle completes."""
    ticks_needed = base_ticks / (speed * upgrade_multiplier(building.upgrade_level))
    building.progress += 1.0 / ticks_needed
    if building.progress >= 1.0 - PRODUCTION_EPSILON:
        building.progress = 0.0
        return True
    return False


def _run_production(state: GameState, modifiers: Modifiers) -> int:
    produced = 0
    for building in state.buildings:
        if not building.is_operational:
            continue

        if building.type == MINER:
            node = state.ore_at(building.position)
            if node is None:
                continue
            if _advance(building, ORE_TICKS[node.kind], modifiers.mining_speed):
                building.storage[ORE_ITEM[node.kind]] += 1
                produced += 1

        elif building.type == SMELTER:
            # Iron is smelted before copper when both are stocked.
            for kind in ORE_KINDS:
                ore = ORE_ITEM[kind]
                if building.storage[ore] < SMELT_ORE_COST:
                    continue
                if _advance(building, SMELT_TICKS[kind], modifiers.smelting_speed):
                    building.storage[ore] -= SMELT_ORE_COST
                    building.storage[BAR_ITEM[kind]] += 1
                    produced += 1
                break

        elif building.type == FORGER:
            recipe = RECIPES.get(building.recipe)
            if recipe is None or building.storage[recipe["bar_type"]] < recipe["bars_cost"]:
                continue
            if _advance(building, recipe["ticks"], modifiers.forging_speed):
                building.storage[recipe["bar_type"]] -= recipe["bars_cost"]
                building.storage[building.recipe] += 1
                produced += 1
    return produced


# ----------------------------------------------------------------------
# Transport
# ----------------------------------------------------------------------


def transferable_item(src: Building, dst: Building) -> Optional[str]:
    """First item in ``src`` storage that ``dst`` accepts, or None."""
    if dst.type == SMELTER:
        candidates: List[str] = [ORE_ITEM[kind] for kind in ORE_KINDS]
    elif dst.type == FORGER:
        recipe = RECIPES.get(dst.recipe)
        candidates = [recipe["bar_type"]] if recipe else []
    elif dst.type in SALES_BUILDINGS:
        candidates = FINISHED_GOODS
    elif dst.type == JUNCTION:
        candidates = ALL_ITEMS
    elif dst.type == SORTER:
        candidates = ITEM_CATEGORIES.get(dst.sorter_filter or DEFAULT_SORTER_FILTER, [])
    else:
        candidates = ALL_ITEMS
    for item in candidates:
        if src.storage.get(item, 0) > 0:
            return item
    return None


def _run_transport(state: GameState, modifiers: Modifiers) -> None:
    for belt in state.belts:
        if len(belt.path) < MIN_BELT_PATH_CELLS:
            raise InvariantViolation(f"belt {belt.id} has only {len(belt.path)} path cells")
        src = state.building_at(belt.source)
        dst = state.building_at(belt.destination)
        if src is None or dst is None or not src.is_operational or not dst.is_operational:
            continue

        interior = belt.interior_length
        in_transit: List[BeltItem] = []
        for item in belt.items_in_transit:
            item.cell_index += modifiers.belt_speed
            if item.cell_index >= interior:
                dst.storage[item.item_type] = dst.storage.get(item.item_type, 0) + 1
            else:
                in_transit.append(item)
        belt.items_in_transit = in_transit

        if len(in_transit) < interior:
            item_type = transferable_item(src, dst)
            if item_type is not None:
                src.storage[item_type] -= 1
                in_transit.append(BeltItem(item_type, 0.0))


# ----------------------------------------------------------------------
# Wholesale / exploration
# ----------------------------------------------------------------------


def _run_wholesale(state: GameState, modifiers: Modifiers) -> int:
    earned = 0
    for warehouse in state.buildings_of(WAREHOUSE):
        for item in FINISHED_GOODS:
            count = warehouse.storage[item]
            if count < WHOLESALE_THRESHOLD:
                continue
            price = int(math.floor(RECIPES[item]["sell_price"] * WHOLESALE_MULTIPLIER * modifiers.sell_price))
            earned += price * count
            warehouse.storage[item] = 0
    state.currency += earned
    return earned


def _random_target(state: GameState, rng: random.Random) -> Position:
    return Position(rng.randrange(state.map_width), rng.randrange(state.map_height))


def _roll_discovery_ticks(rng: random.Random) -> int:
    return rng.randint(GEOLOGIST_DISCOVERY_TICKS_MIN, GEOLOGIST_DISCOVERY_TICKS_MAX)


def _discover_ore(state: GameState, explorer: GeologistExplorer, rng: random.Random) -> Optional[OreNode]:
    occupied = {node.position for node in state.ore_nodes}
    occupied.update(building.position for building in state.buildings)
    occupied.update(state.belt_interior_cells())

    for radius in range(DISCOVERY_MAX_RADIUS + 1):
        for attempt in range(DISCOVERY_RING_SAMPLES):
            angle = attempt / DISCOVERY_RING_SAMPLES * math.pi * 2
            cell = Position(
                int(math.floor(explorer.x + math.cos(angle) * radius + 0.5)),
                int(math.floor(explorer.y + math.sin(angle) * radius + 0.5)),
            )
            if not state.in_bounds(cell) or cell in occupied:
                continue
            node = OreNode(state.new_id("ore"), cell, rng.choice(ORE_KINDS))
            state.ore_nodes.append(node)
            return node
    return None


def _run_exploration(state: GameState, rng: random.Random) -> None:
    geologist = next((b for b in state.buildings if b.type == GEOLOGIST and b.is_operational), None)
    if geologist is None or state.currency < GEOLOGIST_UPKEEP:
        state.geologist_explorer = None
        return

    state.currency -= GEOLOGIST_UPKEEP
    explorer = state.geologist_explorer
    if explorer is None:
        explorer = GeologistExplorer(
            x=float(geologist.position.x),
            y=float(geologist.position.y),
            target=_random_target(state, rng),
            ticks_until_discovery=_roll_discovery_ticks(rng),
        )
        state.geologist_explorer = explorer

    dx = explorer.target.x - explorer.x
    dy = explorer.target.y - explorer.y
    dist = math.hypot(dx, dy)
    if dist > EXPLORER_MOVE_SPEED:
        explorer.x += dx / dist * EXPLORER_MOVE_SPEED
        explorer.y += dy / dist * EXPLORER_MOVE_SPEED
    else:
        explorer.x = float(explorer.target.x)
        explorer.y = float(explorer.target.y)
        explorer.target = _random_target(state, rng)

    explorer.ticks_until_discovery -= 1
    if explorer.ticks_until_discovery <= 0:
        node = _discover_ore(state, explorer, rng)
        if node is not None:
            state.log_event(f"Geologist found {node.kind} ore at ({node.position.x},{node.position.y})")
        explorer.ticks_until_discovery = _roll_discovery_ticks(rng)
    explorer.search_progress = 1.0 - explorer.ticks_until_discovery / GEOLOGIST_SEARCH_PROGRESS_SPAN


# ----------------------------------------------------------------------
# Host
# ----------------------------------------------------------------------


class FactorySim:
    """Reference host around one save bundle.

    All state mutations go through :meth:`tick` or the action wrappers.
    ``clock`` returns epoch seconds and is injectable for tests.
    """

    def __init__(
        self,
        seed: int = 7,
        *,
        save: Optional[GameSave] = None,
        player_id: str = DEFAULT_PLAYER_ID,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.rng = random.Random(seed)
        self.clock = clock
        self.save = save if save is not None else create_new_save(player_id, self.rng, now=clock())

    @property
    def state(self) -> GameState:
        return self.save.state

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def tick(self) -> TickResult:
        save = self.save
        result = tick(save.state, save.upgrades, save.prestige, save.automation, save.meta, self.rng)
        save.meta.last_tick_at = self.clock()
        return result

    def run(self, ticks: int) -> TickResult:
        total = TickResult()
        for _ in range(ticks):
            result = self.tick()
            total.currency_earned += result.currency_earned
            total.items_produced += result.items_produced
        return total

    def catch_up(self) -> OfflineProgress:
        """Apply offline earnings for the time since the last recorded tick."""
        now = self.clock()
        save = self.save
        progress = calculate_offline_progress(save.state, save.meta, save.upgrades, save.prestige, now)
        if progress.ticks_simulated > 0:
            apply_offline_progress(save.state, progress)
            save.meta.total_currency_earned += progress.currency_earned
            save.state.log_event(
                f"Offline for {progress.ticks_simulated} ticks: earned {progress.currency_earned}"
            )
        save.meta.last_tick_at = now
        return progress

    # ------------------------------------------------------------------
    # Player actions
    # ------------------------------------------------------------------

    def place_building(self, building_type: str, x: int, y: int) -> ActionResult:
        return actions.place_building(self.state, building_type, Position(x, y))

    def place_belt(self, from_xy: tuple[int, int], to_xy: tuple[int, int]) -> ActionResult:
        return actions.place_belt(self.state, Position(*from_xy), Position(*to_xy))

    def set_recipe(self, building_id: str, recipe: str) -> ActionResult:
        return actions.set_recipe(self.state, building_id, recipe)

    def demolish_building(self, building_id: str) -> ActionResult:
        return actions.demolish_building(self.state, building_id)

    def upgrade_building(self, building_id: str) -> ActionResult:
        return actions.upgrade_building(self.state, building_id)

    def purchase_land(self, side: str) -> ActionResult:
        return actions.purchase_land(self.state, side)

    def set_sorter_filter(self, building_id: str, sorter_filter: str) -> ActionResult:
        return actions.set_sorter_filter(self.state, building_id, sorter_filter)

    # ------------------------------------------------------------------
    # Progression
    # ------------------------------------------------------------------

    def purchase_upgrade(self, upgrade_id: str) -> Optional[str]:
        return progression.purchase_upgrade(self.state, self.save.upgrades, upgrade_id)

    def purchase_prestige_upgrade(self, upgrade_id: str) -> Optional[str]:
        return progression.purchase_prestige_upgrade(self.save.prestige, upgrade_id)

    def prestige(self) -> Optional[str]:
        error, new_save = progression.perform_prestige(self.save, self.rng, now=self.clock())
        if new_save is not None:
            self.save = new_save
        return error

    # ------------------------------------------------------------------
    # Save / Load helpers
    # ------------------------------------------------------------------

    def save_to(self, path: Path = SAVE_FILE) -> PersistResult:
        self.save.saved_at = self.clock()
        return save_to_disk(self.save, path)

    @classmethod
    def load(
        cls,
        path: Path = SAVE_FILE,
        *,
        seed: int = 7,
        player_id: str = DEFAULT_PLAYER_ID,
        clock: Callable[[], float] = time.time,
    ) -> "FactorySim":
        """Load ``path``; any I/O or format failure yields a fresh game."""
        result = load_from_disk(path)
        if not result.success or result.save is None:
            sim = cls(seed, player_id=player_id, clock=clock)
            if result.error:
                sim.state.log_event(f"Save could not be loaded, started fresh: {result.error}")
            return sim
        return cls(seed, save=result.save, clock=clock)
