"""Autonomous build planner.

:func:`run_automation` is called once per tick, after every other phase.
It takes at most one build action per call and only ever spends currency
above ``settings.reserve_currency``.  Two strategies are available:

* bottleneck mode, a fixed priority ladder driven by storage backlogs;
* ROI mode (``use_roi_calculations``), which prices every viable action as
  ``cost / profit_per_tick`` and executes the cheapest one.

Placements go through :mod:`game.actions`, so the planner is bound by the
same occupancy, duplicate-belt and routing checks as the player.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional, Set

from config import (
    BAR_BACKLOG_THRESHOLD,
    BAR_ITEM,
    BAR_ITEMS,
    BELT_CONNECT_PROFIT,
    BELT_COST,
    BUILDING_COSTS,
    CHAIN_CANDIDATE_NODES,
    DEMOLISH_REFUND_RATE,
    FINISHED_GOODS,
    FORGER,
    FOUNDATION_WAIT_FRACTION,
    GEOLOGIST,
    GEOLOGIST_BOTTLENECK_UNMINED_THRESHOLD,
    GEOLOGIST_ESTIMATED_PROFIT,
    GEOLOGIST_ROI_CURRENCY_THRESHOLD,
    GEOLOGIST_ROI_UNMINED_THRESHOLD,
    GOODS_BACKLOG_THRESHOLD,
    HUB_MIN_FORGERS,
    HUB_PROFIT_PER_FORGER,
    HUB_ROI_MIN_FORGERS,
    IDLE_FORGER_PROGRESS,
    JUNCTION,
    MINER,
    MINERS_PER_SMELTER_TARGET,
    ORE_BACKLOG_THRESHOLD,
    ORE_ITEMS,
    ORE_KINDS,
    PLACEMENT_SEARCH_MAX_RADIUS,
    PLACEMENT_SEARCH_MIN_RADIUS,
    RECIPES,
    RESTRUCTURE_COOLDOWN,
    RESTRUCTURE_EVAL_INTERVAL,
    RESTRUCTURE_FORGER_VALUE,
    RESTRUCTURE_MIN_TICK,
    RESTRUCTURE_OVERSATURATION_MINERS,
    RESTRUCTURE_PAYBACK_WINDOW,
    RESTRUCTURE_SMELTER_VALUE,
    SAVE_FOR_BETTER_BUDGET_MULTIPLE,
    SAVE_FOR_BETTER_MAX_WAIT_TICKS,
    SAVE_FOR_BETTER_MIN_ROI_GAIN,
    SAVE_FOR_BETTER_ROI_RATIO,
    SHOP,
    SMART_DEFAULT_RESERVE,
    SMELTER,
    SMELTER_BAR_SURPLUS,
    SORTER,
    URGENCY_WEIGHT,
    WAREHOUSE,
    WAREHOUSE_BACKLOG_THRESHOLD,
    WAREHOUSE_MIN_FORGERS,
)
from game import actions
from game.customers import price_multiplier, round_half_up
from game.entities import AutomationSettings, Building, GameState, Npc, OreNode, Position, UpgradeState
from game.modifiers import is_automation_unlocked
from game.pathfinding import belt_cost, build_obstacle_set, manhattan
from game.throughput import chain_profit_per_tick, miner_addition_profit, recipes_for_ore, warehouse_profit

# Eight compass directions probed at each search radius.
SEARCH_DIRECTIONS = ((1, 0), (-1, 0), (0, 1), (0, -1), (1, 1), (-1, 1), (1, -1), (-1, -1))

# When a smelter is fed several ore kinds, the first match here names its bar.
BAR_TRACE_PRIORITY = ("copper", "iron")

# Buildings that pass items through without transforming them.
PASS_THROUGH = (JUNCTION, SORTER)


# ----------------------------------------------------------------------
# Topology helpers
# ----------------------------------------------------------------------


def feeding_miners(state: GameState, building: Building) -> List[Building]:
    miners = []
    for belt in state.belts_into(building.position):
        source = state.building_at(belt.source)
        if source is not None and source.type == MINER:
            miners.append(source)
    return miners


def feeding_ore_kinds(state: GameState, building: Building) -> Set[str]:
    kinds = set()
    for miner in feeding_miners(state, building):
        node = state.ore_at(miner.position)
        if node is not None:
            kinds.add(node.kind)
    return kinds


def dominant_kind(kinds: Iterable[str]) -> Optional[str]:
    kinds = set(kinds)
    for kind in BAR_TRACE_PRIORITY:
        if kind in kinds:
            return kind
    return None


def has_output(state: GameState, building: Building) -> bool:
    return bool(state.belts_out_of(building.position))


def has_input(state: GameState, building: Building) -> bool:
    return bool(state.belts_into(building.position))


def trace_bar_type(state: GameState, forger_position: Position) -> Optional[str]:
    """Bar item the smelter upstream of a forger produces, or None.

    Junctions and sorters are walked through; the first smelter found wins.
    """
    visited: Set[Position] = set()

    def upstream_smelter(position: Position) -> Optional[Building]:
        if position in visited:
            return None
        visited.add(position)
        for belt in state.belts_into(position):
            building = state.building_at(belt.source)
            if building is None:
                continue
            if building.type == SMELTER:
                return building
            if building.type in PASS_THROUGH:
                found = upstream_smelter(building.position)
                if found is not None:
                    return found
        return None

    smelter = upstream_smelter(forger_position)
    if smelter is None:
        return None
    kind = dominant_kind(feeding_ore_kinds(state, smelter))
    return BAR_ITEM[kind] if kind else None


# ----------------------------------------------------------------------
# Demand and bottleneck analysis
# ----------------------------------------------------------------------


def _urgency(npc: Npc) -> float:
    if npc.max_patience <= 0:
        return 0.0
    return 1.0 - npc.patience_left / npc.max_patience


def analyze_demand(state: GameState) -> Dict[str, float]:
    """Urgency-weighted value of every finished good currently queued for."""
    demand = {item: 0.0 for item in FINISHED_GOODS}
    for shop in state.buildings_of(SHOP):
        for npc in shop.npc_queue:
            weight = 1.0 + _urgency(npc) * URGENCY_WEIGHT
            if npc.demand is not None:
                for item, qty in npc.demand.items.items():
                    value = RECIPES[item]["sell_price"] * npc.demand.bonus_multiplier * qty * weight
                    demand[item] = demand.get(item, 0.0) + value
            else:
                value = RECIPES[npc.wanted_item]["sell_price"] * price_multiplier(npc.archetype, npc.wanted_item)
                demand[npc.wanted_item] = demand.get(npc.wanted_item, 0.0) + value * weight
    return demand


@dataclass
class Bottlenecks:
    need_more_miners: bool
    need_more_smelters: bool
    goods_backlog: bool
    ore_kind_needed: Optional[str]


def analyze_bottlenecks(state: GameState) -> Bottlenecks:
    miners = [b for b in state.buildings_of(MINER) if b.is_operational]
    smelters = [b for b in state.buildings_of(SMELTER) if b.is_operational]
    forgers = [b for b in state.buildings_of(FORGER) if b.is_operational]

    ore_in_smelters = sum(s.storage[item] for s in smelters for item in ORE_ITEMS)
    bars_in_forgers = sum(f.storage[item] for f in forgers for item in BAR_ITEMS)
    goods_in_forgers = sum(f.storage[item] for f in forgers for item in FINISHED_GOODS)

    demand = analyze_demand(state)
    by_kind = {kind: sum(demand[r] for r in recipes_for_ore(kind)) for kind in ORE_KINDS}
    ranked = sorted(by_kind.items(), key=lambda kv: kv[1], reverse=True)
    ore_kind_needed = None
    if len(ranked) == 1 or (len(ranked) > 1 and ranked[0][1] > ranked[1][1]):
        ore_kind_needed = ranked[0][0]

    return Bottlenecks(
        need_more_miners=ore_in_smelters < ORE_BACKLOG_THRESHOLD
        and len(miners) < len(smelters) * MINERS_PER_SMELTER_TARGET,
        need_more_smelters=bars_in_forgers < BAR_BACKLOG_THRESHOLD and len(smelters) < len(forgers),
        goods_backlog=goods_in_forgers > GOODS_BACKLOG_THRESHOLD,
        ore_kind_needed=ore_kind_needed,
    )


def pick_recipe_for_ore(state: GameState, ore_kind: str) -> str:
    """Most demanded recipe forgeable from ``ore_kind``; earliest recipe on ties."""
    candidates = recipes_for_ore(ore_kind)
    if not candidates:
        return FINISHED_GOODS[0]
    demand = analyze_demand(state)
    best = candidates[0]
    for recipe in candidates[1:]:
        if demand[recipe] > demand[best]:
            best = recipe
    return best


# ----------------------------------------------------------------------
# Recipe optimisation
# ----------------------------------------------------------------------


def ensure_compatible_recipes(state: GameState) -> None:
    for forger in state.buildings_of(FORGER):
        if not forger.is_operational:
            continue
        bar = trace_bar_type(state, forger.position)
        if bar is None or RECIPES[forger.recipe]["bar_type"] == bar:
            continue
        valid = [key for key, recipe in RECIPES.items() if recipe["bar_type"] == bar]
        if valid:
            actions.set_recipe(state, forger.id, valid[0])


def _basic_optimize(state: GameState) -> None:
    forgers = [f for f in state.buildings_of(FORGER) if f.is_operational]
    if not forgers:
        return
    ranked = sorted(analyze_demand(state).items(), key=lambda kv: kv[1], reverse=True)
    for forger in forgers:
        if forger.progress > IDLE_FORGER_PROGRESS:
            continue
        bar = trace_bar_type(state, forger.position)
        if bar is None:
            continue
        for item, _ in ranked:
            if RECIPES[item]["bar_type"] != bar:
                continue
            if forger.recipe != item:
                actions.set_recipe(state, forger.id, item)
            break


def _advanced_optimize(state: GameState) -> None:
    shops = state.buildings_of(SHOP)
    forgers = state.buildings_of(FORGER)
    if not shops or not forgers:
        return

    wants = []
    for shop in shops:
        for npc in shop.npc_queue:
            base = RECIPES[npc.wanted_item]["sell_price"]
            profit = round_half_up(base * price_multiplier(npc.archetype, npc.wanted_item))
            wants.append((npc.wanted_item, profit * (1.0 + _urgency(npc) * URGENCY_WEIGHT)))
    if not wants:
        return
    wants.sort(key=lambda want: want[1], reverse=True)

    supply = {item: sum(shop.storage[item] for shop in shops) for item in FINISHED_GOODS}
    unserved = []
    for item, score in wants:
        if supply[item] > 0:
            supply[item] -= 1
        else:
            unserved.append((item, score))

    for item, score in unserved:
        needed_bar = RECIPES[item]["bar_type"]
        for forger in forgers:
            if forger.recipe == item or forger.progress > IDLE_FORGER_PROGRESS:
                continue
            if trace_bar_type(state, forger.position) != needed_bar:
                continue
            current_value = sum(s for i, s in unserved if i == forger.recipe)
            if score > current_value:
                actions.set_recipe(state, forger.id, item)
                return


def optimize_recipes(state: GameState, settings: AutomationSettings, upgrades: UpgradeState) -> None:
    """Retarget idle forgers at unmet demand.

    Needs both the ``auto_recipe_switch`` setting and the auto-recipe
    upgrade.  Forgers are first made compatible with the bar their supply
    chain actually produces.
    """
    if not settings.auto_recipe_switch or not is_automation_unlocked(upgrades, "auto_recipe"):
        return
    ensure_compatible_recipes(state)
    if settings.use_advanced_recipe_logic:
        _advanced_optimize(state)
    else:
        _basic_optimize(state)


# ----------------------------------------------------------------------
# Planner
# ----------------------------------------------------------------------


@dataclass
class BuildAction:
    kind: str
    description: str
    cost: float
    profit_per_tick: float
    execute: Callable[[], bool]
    foundation: bool = False

    @property
    def roi(self) -> float:
        if self.profit_per_tick <= 0:
            return math.inf
        return self.cost / self.profit_per_tick


class AutomationPlanner:
    """One planning pass over a snapshot of the factory.

    Building lists are captured at construction; a pass takes at most one
    action so they never need refreshing.
    """

    def __init__(self, state: GameState, upgrades: UpgradeState, settings: AutomationSettings) -> None:
        self.state = state
        self.upgrades = upgrades
        self.settings = settings
        self.can_auto_belt = settings.auto_place_belt

        self.miners = state.buildings_of(MINER)
        self.smelters = state.buildings_of(SMELTER)
        self.forgers = state.buildings_of(FORGER)
        self.shops = state.buildings_of(SHOP)
        self.warehouses = state.buildings_of(WAREHOUSE)
        self.geologists = state.buildings_of(GEOLOGIST)
        self.junctions = state.buildings_of(JUNCTION)
        self.sales = self.shops + self.warehouses

        self.reserved: Set[Position] = {b.position for b in state.buildings}
        self.unmined = self._unmined_nodes()

    @property
    def budget(self) -> int:
        return self.state.currency - self.settings.reserve_currency

    def _unmined_nodes(self) -> List[OreNode]:
        mined = {miner.position for miner in self.miners}
        unmined = [node for node in self.state.ore_nodes if node.position not in mined]
        priority = self.settings.priority_ore_type
        if priority != "balanced":
            preferred = [node for node in unmined if node.kind == priority]
            if preferred:
                return preferred
        return unmined

    # ------------------------------------------------------------------
    # Placement primitives
    # ------------------------------------------------------------------

    def obstacles(self) -> Set[Position]:
        """Routing obstacles; ore cells stay free for future miners."""
        return build_obstacle_set(self.state, (node.position for node in self.state.ore_nodes))

    def can_place_belt(
        self,
        start: Position,
        goal: Position,
        obstacles: Optional[Set[Position]] = None,
    ) -> Optional[List[Position]]:
        if obstacles is None:
            obstacles = self.obstacles()
        path, _ = actions.route_belt(self.state, start, goal, obstacles)
        return path

    def find_empty_near(
        self,
        target: Position,
        reserved: Set[Position],
        require_belt_path: bool = True,
    ) -> Optional[Position]:
        """Closest free cell on the innermost ring that has one."""
        obstacles = self.obstacles()
        for radius in range(PLACEMENT_SEARCH_MIN_RADIUS, PLACEMENT_SEARCH_MAX_RADIUS + 1):
            candidates = []
            for dx, dy in SEARCH_DIRECTIONS:
                position = target.offset(dx * radius, dy * radius)
                if not self.state.in_bounds(position):
                    continue
                if position in reserved or position in obstacles:
                    continue
                if require_belt_path:
                    trial = obstacles - {target, position}
                    if self.can_place_belt(target, position, trial) is None:
                        continue
                candidates.append(position)
            if candidates:
                return min(candidates, key=lambda p: manhattan(p, target))
        return None

    def place_building(self, building_type: str, position: Position, recipe: Optional[str] = None) -> bool:
        if self.budget < BUILDING_COSTS[building_type]:
            return False
        result = actions.place_building(self.state, building_type, position, recipe=recipe)
        if not result.ok:
            return False
        self.reserved.add(position)
        self.state.log_event(f"Automation built a {building_type} at ({position.x},{position.y})")
        return True

    def place_belt(self, start: Position, goal: Position) -> bool:
        path = self.can_place_belt(start, goal)
        if path is None or self.budget < belt_cost(path):
            return False
        return actions.place_belt(self.state, start, goal, obstacles=self.obstacles()).ok

    def place_belt_with_fallback(self, start: Position, targets: List[Position]) -> bool:
        for target in targets:
            if self.place_belt(start, target):
                return True
        return False

    def find_output_hub(self) -> Optional[Position]:
        """A junction already feeding a shop or warehouse, if hub routing is on."""
        if not self.settings.use_hub_routing:
            return None
        sales_cells = {b.position for b in self.sales}
        for junction in self.junctions:
            if any(belt.destination in sales_cells for belt in self.state.belts_out_of(junction.position)):
                return junction.position
        return None

    def _sorted_by_distance(self, buildings: List[Building], origin: Position) -> List[Position]:
        return [b.position for b in sorted(buildings, key=lambda b: manhattan(b.position, origin))]

    def _has_orphaned_miner(self) -> bool:
        return any(not has_output(self.state, miner) for miner in self.miners)

    def _forger_backlog(self) -> int:
        return sum(forger.storage[item] for forger in self.forgers for item in FINISHED_GOODS)

    def _forger_ore_kind(self, smelter: Building) -> str:
        return dominant_kind(feeding_ore_kinds(self.state, smelter)) or "iron"

    # ------------------------------------------------------------------
    # Compound builds
    # ------------------------------------------------------------------

    def _build_fed(self, building_type: str, position: Position, feeder: Position,
                   recipe: Optional[str] = None) -> bool:
        if not self.place_building(building_type, position, recipe):
            return False
        if self.can_auto_belt:
            self.place_belt(feeder, position)
        return True

    def _connect_new_miner(self, ore_position: Position, smelter_position: Position) -> bool:
        if self.can_auto_belt and self.can_place_belt(ore_position, smelter_position) is None:
            return False
        if not self.place_building(MINER, ore_position):
            return False
        if self.can_auto_belt:
            self.place_belt(ore_position, smelter_position)
        return True

    def _build_warehouse(self, position: Position) -> bool:
        if not self.place_building(WAREHOUSE, position):
            return False
        if self.can_auto_belt:
            for forger in self.forgers:
                self.place_belt(forger.position, position)
        return True

    def _build_chain(self, miner_position: Position, smelter_position: Position, forger_position: Position,
                     output: Position, recipe: str) -> bool:
        """All or nothing: a failed step undoes every earlier one."""
        state = self.state
        snapshot = (
            list(state.buildings), list(state.belts), state.currency,
            state.next_id, list(state.event_log), set(self.reserved),
        )
        built = (
            self.place_building(MINER, miner_position)
            and self.place_building(SMELTER, smelter_position)
            and self.place_building(FORGER, forger_position, recipe)
        )
        if built and self.can_auto_belt:
            built = (
                self.place_belt(miner_position, smelter_position)
                and self.place_belt(smelter_position, forger_position)
                and self.place_belt(forger_position, output)
            )
        if not built:
            (state.buildings, state.belts, state.currency,
             state.next_id, state.event_log, self.reserved) = snapshot
        return built

    def _build_hub(self, hub_position: Position, sales_position: Position, connect_forgers: bool) -> bool:
        if not self.place_building(JUNCTION, hub_position):
            return False
        self.place_belt(hub_position, sales_position)
        if connect_forgers:
            for forger in self.forgers:
                if not has_output(self.state, forger):
                    self.place_belt(forger.position, hub_position)
        return True

    # ------------------------------------------------------------------
    # ROI mode
    # ------------------------------------------------------------------

    def collect_actions(self) -> List[BuildAction]:
        """Every action viable right now, in a fixed enumeration order."""
        found: List[BuildAction] = []
        found.extend(self._foundation_actions())
        found.extend(self._miner_actions())
        found.extend(self._warehouse_actions())
        found.extend(self._chain_actions())
        found.extend(self._hub_actions())
        found.extend(self._forger_belt_actions())
        found.extend(self._geologist_actions())
        return found

    def _foundation_actions(self) -> List[BuildAction]:
        settings = self.settings
        belt_extra = BELT_COST if self.can_auto_belt else 0
        found = []

        if settings.auto_place_miner and not self.miners and self.unmined:
            found.append(BuildAction(
                MINER, "First miner", BUILDING_COSTS[MINER], 0.0,
                partial(self.place_building, MINER, self.unmined[0].position), foundation=True,
            ))

        if settings.auto_place_smelter and self.miners and not self.smelters:
            miner = self.miners[0]
            position = self.find_empty_near(miner.position, self.reserved)
            if position is not None:
                found.append(BuildAction(
                    SMELTER, "First smelter", BUILDING_COSTS[SMELTER] + belt_extra, 0.0,
                    partial(self._build_fed, SMELTER, position, miner.position), foundation=True,
                ))

        if settings.auto_place_forger and self.smelters and not self.forgers:
            smelter = self.smelters[0]
            position = self.find_empty_near(smelter.position, self.reserved)
            if position is not None:
                recipe = pick_recipe_for_ore(self.state, self._forger_ore_kind(smelter))
                found.append(BuildAction(
                    FORGER, "First forger", BUILDING_COSTS[FORGER] + belt_extra, 0.0,
                    partial(self._build_fed, FORGER, position, smelter.position, recipe), foundation=True,
                ))

        if settings.auto_place_shop and self.forgers and not self.shops:
            forger = self.forgers[0]
            position = self.find_empty_near(forger.position, self.reserved)
            if position is not None:
                mined = {miner.position for miner in self.miners}
                first_kind = next((n.kind for n in self.state.ore_nodes if n.position in mined), "iron")
                found.append(BuildAction(
                    SHOP, "First shop", BUILDING_COSTS[SHOP] + belt_extra, chain_profit_per_tick(first_kind),
                    partial(self._build_fed, SHOP, position, forger.position), foundation=True,
                ))
        return found

    def _miner_actions(self) -> List[BuildAction]:
        if not (self.settings.auto_place_miner and self.sales and self.unmined):
            return []
        if self._has_orphaned_miner():
            return []

        found = []
        for smelter in self.smelters:
            if not has_output(self.state, smelter):
                continue
            feeding = self.state.belts_into(smelter.position)
            kind = dominant_kind(feeding_ore_kinds(self.state, smelter))
            if kind is None or len(feeding) >= MINERS_PER_SMELTER_TARGET:
                continue

            candidates = []
            for node in self.unmined:
                if node.kind != kind:
                    continue
                path = self.can_place_belt(node.position, smelter.position)
                if self.can_auto_belt and path is None:
                    continue
                candidates.append((manhattan(node.position, smelter.position), node, path))
            if not candidates:
                continue

            _, node, path = min(candidates, key=lambda c: c[0])
            extra = belt_cost(path) if self.can_auto_belt and path else 0
            found.append(BuildAction(
                MINER, f"Add {kind} miner", BUILDING_COSTS[MINER] + extra,
                miner_addition_profit(kind, len(feeding)),
                partial(self._connect_new_miner, node.position, smelter.position),
            ))
        return found

    def _warehouse_actions(self) -> List[BuildAction]:
        if not (self.settings.auto_place_warehouse and self.shops and not self.warehouses):
            return []
        if len(self.forgers) < WAREHOUSE_MIN_FORGERS:
            return []
        position = self.find_empty_near(self.shops[0].position, self.reserved)
        if position is None:
            return []

        cost = BUILDING_COSTS[WAREHOUSE] + (BELT_COST * len(self.forgers) if self.can_auto_belt else 0)
        profit = warehouse_profit(len(self.forgers))
        if self._forger_backlog() > WAREHOUSE_BACKLOG_THRESHOLD:
            profit *= 2
        return [BuildAction(WAREHOUSE, "Build warehouse", cost, profit, partial(self._build_warehouse, position))]

    def _chain_actions(self) -> List[BuildAction]:
        if not (self.settings.build_complete_chains and self.sales and self.unmined):
            return []

        sales_position = self.sales[0].position
        output = self.find_output_hub() or sales_position
        nodes = sorted(self.unmined, key=lambda n: manhattan(n.position, sales_position))
        for node in nodes[:CHAIN_CANDIDATE_NODES]:
            action = self._chain_action_for(node, output)
            if action is not None:
                return [action]
        return []

    def _chain_action_for(self, node: OreNode, output: Position) -> Optional[BuildAction]:
        trial = set(self.reserved) | {node.position}
        smelter_position = self.find_empty_near(node.position, trial)
        if smelter_position is None:
            return None
        trial.add(smelter_position)
        forger_position = self.find_empty_near(smelter_position, trial)
        if forger_position is None:
            return None

        extra = 0
        if self.can_auto_belt:
            # Legs are routed in build order, each around the cells planned before it.
            planned = self.obstacles() | {smelter_position, forger_position}
            legs = [(node.position, smelter_position), (smelter_position, forger_position), (forger_position, output)]
            for start, goal in legs:
                path = self.can_place_belt(start, goal, planned - {start, goal})
                if path is None:
                    return None
                planned.update(path[1:-1])
                extra += belt_cost(path)

        cost = BUILDING_COSTS[MINER] + BUILDING_COSTS[SMELTER] + BUILDING_COSTS[FORGER] + extra
        recipe = pick_recipe_for_ore(self.state, node.kind)
        return BuildAction(
            "chain", f"New {node.kind} chain", cost, chain_profit_per_tick(node.kind),
            partial(self._build_chain, node.position, smelter_position, forger_position, output, recipe),
        )

    def _hub_actions(self) -> List[BuildAction]:
        settings = self.settings
        if not (settings.auto_place_junction and settings.use_hub_routing):
            return []
        if len(self.forgers) < HUB_ROI_MIN_FORGERS or not self.sales or self.junctions:
            return []
        sales_position = self.sales[0].position
        position = self.find_empty_near(sales_position, self.reserved)
        if position is None:
            return []

        cost = BUILDING_COSTS[JUNCTION] + BELT_COST * (len(self.forgers) + 1)
        profit = len(self.forgers) * HUB_PROFIT_PER_FORGER
        return [BuildAction(
            JUNCTION, "Create output hub", cost, profit,
            partial(self._build_hub, position, sales_position, True),
        )]

    def _forger_belt_actions(self) -> List[BuildAction]:
        if not (self.can_auto_belt and self.sales):
            return []
        hub = self.find_output_hub()
        found = []
        for forger in self.forgers:
            if has_output(self.state, forger):
                continue
            targets = ([hub] if hub else []) + self._sorted_by_distance(self.sales, forger.position)
            found.append(BuildAction(
                "belt", "Connect forger to hub" if hub else "Connect forger to shop",
                BELT_COST, BELT_CONNECT_PROFIT,
                partial(self.place_belt_with_fallback, forger.position, targets),
            ))
        return found

    def _geologist_actions(self) -> List[BuildAction]:
        if not (self.settings.auto_place_geologist and not self.geologists and self.shops):
            return []
        if len(self.forgers) < WAREHOUSE_MIN_FORGERS:
            return []
        position = self.find_empty_near(self.shops[0].position, self.reserved)
        if position is None:
            return []
        if len(self.unmined) > GEOLOGIST_ROI_UNMINED_THRESHOLD and self.state.currency < GEOLOGIST_ROI_CURRENCY_THRESHOLD:
            return []
        return [BuildAction(
            GEOLOGIST, "Build geologist", BUILDING_COSTS[GEOLOGIST], GEOLOGIST_ESTIMATED_PROFIT,
            partial(self.place_building, GEOLOGIST, position),
        )]

    def run_roi(self) -> Optional[BuildAction]:
        """Pick and execute at most one action; returns the one executed."""
        candidates = self.collect_actions()
        if not candidates:
            return None

        currency = self.state.currency
        reserve = self.settings.reserve_currency

        foundation = next((a for a in candidates if a.foundation), None)
        if foundation is not None:
            if currency >= foundation.cost + reserve:
                return foundation if foundation.execute() else None
            if currency >= foundation.cost * FOUNDATION_WAIT_FRACTION + reserve:
                return None

        profitable = sorted(
            (a for a in candidates if not a.foundation and 0 < a.roi < math.inf),
            key=lambda a: a.roi,
        )
        if not profitable:
            return None

        best = profitable[0]
        available = currency - reserve
        can_afford_best = available >= best.cost

        if self.settings.save_for_better_options:
            target = next(
                (
                    a for a in profitable
                    if available < a.cost <= available * SAVE_FOR_BETTER_BUDGET_MULTIPLE
                    and a.roi < best.roi * SAVE_FOR_BETTER_ROI_RATIO
                ),
                None,
            )
            if target is not None:
                if not can_afford_best:
                    return None
                ticks_to_save = (target.cost - available) / (best.profit_per_tick or 1)
                if ticks_to_save < SAVE_FOR_BETTER_MAX_WAIT_TICKS and best.roi - target.roi > SAVE_FOR_BETTER_MIN_ROI_GAIN:
                    return None

        if can_afford_best and best.execute():
            return best
        return None

    # ------------------------------------------------------------------
    # Bottleneck mode
    # ------------------------------------------------------------------

    def run_bottleneck(self) -> bool:
        """Walk the priority ladder; returns True once something was built."""
        state = self.state
        settings = self.settings
        belt_extra = BELT_COST if self.can_auto_belt else 0

        if settings.auto_place_miner and not self.miners and self.unmined:
            if self.place_building(MINER, self.unmined[0].position):
                return True

        if settings.auto_place_smelter and self.miners and not self.smelters:
            if self.budget >= BUILDING_COSTS[SMELTER] + belt_extra:
                miner = self.miners[0]
                position = self.find_empty_near(miner.position, self.reserved)
                if position is not None and self._build_fed(SMELTER, position, miner.position):
                    return True

        if settings.auto_place_forger and self.smelters and not self.forgers:
            if self.budget >= BUILDING_COSTS[FORGER] + belt_extra:
                smelter = self.smelters[0]
                position = self.find_empty_near(smelter.position, self.reserved)
                if position is not None:
                    recipe = pick_recipe_for_ore(state, self._forger_ore_kind(smelter))
                    if self._build_fed(FORGER, position, smelter.position, recipe):
                        return True

        if settings.auto_place_shop and self.forgers and not self.shops:
            if self.budget >= BUILDING_COSTS[SHOP] + belt_extra:
                forger = self.forgers[0]
                position = self.find_empty_near(forger.position, self.reserved)
                if position is not None and self._build_fed(SHOP, position, forger.position):
                    return True

        bottlenecks = analyze_bottlenecks(state)

        if self.can_auto_belt and (self._repair_inputs() or self._connect_outputs()):
            return True

        if (
            settings.auto_place_junction
            and settings.use_hub_routing
            and len(self.forgers) >= HUB_MIN_FORGERS
            and self.shops
            and not self.junctions
            and self.budget >= BUILDING_COSTS[JUNCTION] + BELT_COST
        ):
            shop_position = self.shops[0].position
            position = self.find_empty_near(shop_position, self.reserved)
            if position is not None and self._build_hub(position, shop_position, False):
                return True

        if (
            settings.auto_place_miner
            and self.unmined
            and bottlenecks.need_more_miners
            and self.smelters
            and not self._has_orphaned_miner()
        ):
            if self._add_miner_for(bottlenecks.ore_kind_needed or settings.priority_ore_type):
                return True

        if settings.auto_place_smelter and bottlenecks.need_more_smelters and self.miners:
            if self.budget >= BUILDING_COSTS[SMELTER] + belt_extra:
                for miner in self.miners:
                    if has_output(state, miner):
                        continue
                    position = self.find_empty_near(miner.position, self.reserved)
                    if position is not None and self._build_fed(SMELTER, position, miner.position):
                        return True

        if settings.auto_place_forger and self.smelters and self.shops and not bottlenecks.goods_backlog:
            if self._add_forger_for_surplus():
                return True

        if (
            settings.auto_place_warehouse
            and self.shops
            and not self.warehouses
            and len(self.forgers) >= WAREHOUSE_MIN_FORGERS
            and self._forger_backlog() > WAREHOUSE_BACKLOG_THRESHOLD
        ):
            cost = BUILDING_COSTS[WAREHOUSE] + (BELT_COST * len(self.forgers) if self.can_auto_belt else 0)
            if self.budget >= cost:
                position = self.find_empty_near(self.shops[0].position, self.reserved)
                if position is not None and self._build_warehouse(position):
                    return True

        if (
            settings.auto_place_geologist
            and not self.geologists
            and self.shops
            and len(self.unmined) <= GEOLOGIST_BOTTLENECK_UNMINED_THRESHOLD
            and self.budget >= BUILDING_COSTS[GEOLOGIST]
        ):
            position = self.find_empty_near(self.shops[0].position, self.reserved)
            if position is not None and self.place_building(GEOLOGIST, position):
                return True

        return False

    def _repair_inputs(self) -> bool:
        state = self.state
        for smelter in self.smelters:
            if has_input(state, smelter):
                continue
            idle = [m for m in self.miners if not has_output(state, m)]
            for source in self._sorted_by_distance(idle, smelter.position):
                if self.place_belt(source, smelter.position):
                    return True

        for forger in self.forgers:
            if has_input(state, forger):
                continue
            idle = [s for s in self.smelters if not has_output(state, s)]
            for source in self._sorted_by_distance(idle, forger.position):
                if self.place_belt(source, forger.position):
                    return True
        return False

    def _connect_outputs(self) -> bool:
        state = self.state
        if not self.shops:
            return False

        for miner in self.miners:
            if not has_output(state, miner) and self.smelters:
                if self.place_belt_with_fallback(miner.position, self._sorted_by_distance(self.smelters, miner.position)):
                    return True

        for smelter in self.smelters:
            if not has_output(state, smelter) and self.forgers:
                if self.place_belt_with_fallback(smelter.position, self._sorted_by_distance(self.forgers, smelter.position)):
                    return True

        hub = self.find_output_hub()
        for forger in self.forgers:
            if has_output(state, forger):
                continue
            targets = ([hub] if hub else []) + self._sorted_by_distance(self.sales, forger.position)
            if self.place_belt_with_fallback(forger.position, targets):
                return True
        return False

    def _add_miner_for(self, preferred_kind: str) -> bool:
        preferred = self.unmined
        if preferred_kind != "balanced":
            preferred = [n for n in self.unmined if n.kind == preferred_kind] or self.unmined

        for node in preferred:
            for smelter in self.smelters:
                extra = 0
                if self.can_auto_belt:
                    path = self.can_place_belt(node.position, smelter.position)
                    if path is None:
                        continue
                    extra = belt_cost(path)
                if self.budget < BUILDING_COSTS[MINER] + extra:
                    return False
                self._connect_new_miner(node.position, smelter.position)
                return True
        return False

    def _add_forger_for_surplus(self) -> bool:
        smelter = next(
            (s for s in self.smelters if any(s.storage[bar] > SMELTER_BAR_SURPLUS for bar in BAR_ITEMS)),
            None,
        )
        if smelter is None:
            return False
        cost = BUILDING_COSTS[FORGER] + (BELT_COST * 2 if self.can_auto_belt else 0)
        if self.budget < cost:
            return False
        position = self.find_empty_near(smelter.position, self.reserved)
        if position is None:
            return False

        kind = "copper" if smelter.storage[BAR_ITEM["copper"]] > smelter.storage[BAR_ITEM["iron"]] else "iron"
        if not self.place_building(FORGER, position, pick_recipe_for_ore(self.state, kind)):
            return False
        if self.can_auto_belt:
            self.place_belt(smelter.position, position)
            self.place_belt(position, self.shops[0].position)
        return True


# ----------------------------------------------------------------------
# Restructuring
# ----------------------------------------------------------------------


@dataclass
class RestructureCandidate:
    building: Building
    reason: str
    net_benefit: float = 0.0


def identify_inefficient_buildings(state: GameState) -> List[RestructureCandidate]:
    candidates: List[RestructureCandidate] = []
    for building in state.buildings:
        if not building.is_operational or building.type not in (MINER, SMELTER, FORGER):
            continue
        connected_in = has_input(state, building)
        connected_out = has_output(state, building)

        if building.type == MINER:
            if not connected_out:
                candidates.append(RestructureCandidate(building, "orphaned_miner"))
        elif building.type == SMELTER:
            if not connected_in or not connected_out:
                candidates.append(RestructureCandidate(building, "disconnected_smelter"))
                continue
            miners = feeding_miners(state, building)
            if len(miners) >= RESTRUCTURE_OVERSATURATION_MINERS:
                furthest = max(miners, key=lambda m: manhattan(m.position, building.position))
                candidates.append(RestructureCandidate(furthest, "oversaturated_miner"))
        else:
            if not connected_in or not connected_out:
                candidates.append(RestructureCandidate(building, "disconnected_forger"))
                continue
            bar = RECIPES[building.recipe]["bar_type"]
            held = building.storage[bar] + sum(building.storage[item] for item in FINISHED_GOODS)
            if building.progress <= 0 and held == 0:
                candidates.append(RestructureCandidate(building, "idle_forger"))
    return candidates


def restructure_benefit(state: GameState, building: Building) -> float:
    """Payback-window gain of rebuilding elsewhere minus what demolition loses."""
    loss = math.ceil(BUILDING_COSTS[building.type] * (1 - DEMOLISH_REFUND_RATE))
    for belt in state.belts:
        if belt.touches(building.position):
            loss += belt.interior_length * BELT_COST

    if building.type == MINER:
        node = state.ore_at(building.position)
        gain = chain_profit_per_tick(node.kind) if node else 0.0
    elif building.type == SMELTER:
        gain = RESTRUCTURE_SMELTER_VALUE
    else:
        gain = RESTRUCTURE_FORGER_VALUE
    return gain * RESTRUCTURE_PAYBACK_WINDOW - loss


def evaluate_and_restructure(state: GameState, settings: AutomationSettings) -> Optional[RestructureCandidate]:
    """Demolish the single most wasteful building, at most once per interval."""
    if not settings.enable_restructuring:
        return None
    if state.tick < RESTRUCTURE_MIN_TICK:
        return None
    if state.tick - settings.last_restructure_tick < RESTRUCTURE_COOLDOWN:
        return None
    if state.tick % RESTRUCTURE_EVAL_INTERVAL != 0:
        return None

    scored = []
    for candidate in identify_inefficient_buildings(state):
        candidate.net_benefit = restructure_benefit(state, candidate.building)
        if candidate.net_benefit > 0:
            scored.append(candidate)
    if not scored:
        return None

    best = max(scored, key=lambda c: c.net_benefit)
    building = best.building
    cost = BUILDING_COSTS[building.type]
    if state.currency + actions.demolish_refund(building.type) - cost < settings.reserve_currency:
        return None

    actions.demolish_building(state, building.id)
    settings.last_restructure_tick = state.tick
    state.log_event(
        f"Automation removed a {building.type} at ({building.position.x},{building.position.y}): {best.reason}"
    )
    return best


# ----------------------------------------------------------------------
# Entry points
# ----------------------------------------------------------------------


def run_automation(state: GameState, upgrades: UpgradeState, settings: AutomationSettings) -> None:
    if not settings.enabled:
        return
    evaluate_and_restructure(state, settings)
    if state.currency <= settings.reserve_currency:
        return

    planner = AutomationPlanner(state, upgrades, settings)
    if settings.use_roi_calculations:
        planner.run_roi()
    else:
        planner.run_bottleneck()
    optimize_recipes(state, settings, upgrades)


def apply_smart_defaults() -> AutomationSettings:
    """Recommended planner configuration: everything on except the geologist."""
    return AutomationSettings(
        enabled=True,
        auto_place_miner=True,
        auto_place_smelter=True,
        auto_place_forger=True,
        auto_place_shop=True,
        auto_place_belt=True,
        auto_place_warehouse=True,
        auto_place_geologist=False,
        auto_place_junction=True,
        auto_place_sorter=True,
        auto_recipe_switch=True,
        use_advanced_recipe_logic=True,
        build_complete_chains=True,
        use_roi_calculations=True,
        save_for_better_options=True,
        use_hub_routing=True,
        enable_restructuring=True,
        priority_ore_type="balanced",
        reserve_currency=SMART_DEFAULT_RESERVE,
        last_restructure_tick=0,
    )
