"""Analytical catch-up for time spent away.

Nothing is simulated tick by tick.  Each complete ``miner -> smelter ->
forger`` chain is valued at its steady-state rate (see
:mod:`game.throughput`) for the effective offline tick count.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional

from config import (
    BAR_ITEM,
    BASE_OFFLINE_EFFICIENCY,
    FINISHED_GOODS,
    FORGER,
    MAX_OFFLINE_HOURS,
    MINER,
    OFFLINE_WAREHOUSE_PRICE_FACTOR,
    RECIPES,
    SHOP,
    SMELTER,
    WAREHOUSE,
)
from game.entities import Building, GameMeta, GameState, OfflineProgress, Position, PrestigeData, UpgradeState
from game.modifiers import Modifiers, get_modifiers
from game.throughput import bars_per_tick, items_per_tick


@dataclass
class ProductionChain:
    ore_kind: str
    miner_count: int
    recipe: str
    outlet: Optional[str] = None  # SHOP, WAREHOUSE or None


def _ore_kind_for_bar(bar_item: str) -> Optional[str]:
    return next((kind for kind, bar in BAR_ITEM.items() if bar == bar_item), None)


def _operational_at(state: GameState, position: Position, building_type: Optional[str] = None) -> Optional[Building]:
    building = state.building_at(position)
    if building is None or not building.is_operational:
        return None
    if building_type is not None and building.type != building_type:
        return None
    return building


def analyze_production_chains(state: GameState) -> List[ProductionChain]:
    """One chain per operational forger with a working supply line.

    Only the first belt into a forger is followed.  Every operational miner
    feeding that smelter with ore of the forger's material is counted.
    """
    chains: List[ProductionChain] = []
    for forger in state.buildings_of(FORGER):
        if not forger.is_operational or forger.recipe not in RECIPES:
            continue
        inputs = state.belts_into(forger.position)
        if not inputs:
            continue
        smelter = _operational_at(state, inputs[0].source, SMELTER)
        if smelter is None:
            continue

        ore_kind = _ore_kind_for_bar(RECIPES[forger.recipe]["bar_type"])
        miner_count = 0
        for belt in state.belts_into(smelter.position):
            miner = _operational_at(state, belt.source, MINER)
            if miner is None:
                continue
            node = state.ore_at(miner.position)
            if node is not None and node.kind == ore_kind:
                miner_count += 1
        if miner_count == 0:
            continue

        outlet = None
        outputs = state.belts_out_of(forger.position)
        if outputs:
            target = _operational_at(state, outputs[0].destination)
            if target is not None and target.type in (SHOP, WAREHOUSE):
                outlet = target.type

        chains.append(ProductionChain(ore_kind, miner_count, forger.recipe, outlet))
    return chains


def chain_output(chain: ProductionChain, ticks: int, modifiers: Modifiers) -> int:
    speed = modifiers.production_speed
    bar_rate = bars_per_tick(chain.ore_kind, chain.miner_count, mining_speed=speed, smelting_speed=speed)
    rate = items_per_tick(chain.recipe, bar_rate, forging_speed=speed)
    return int(math.floor(rate * ticks))


def calculate_offline_progress(
    state: GameState,
    meta: GameMeta,
    upgrades: UpgradeState,
    prestige: PrestigeData,
    now: float,
) -> OfflineProgress:
    """Estimate what the factory earned between ``meta.last_tick_at`` and ``now``.

    Pure: ``state`` and ``meta`` are only read.
    """
    elapsed = max(0, int(math.floor(now - meta.last_tick_at)))
    elapsed = min(elapsed, MAX_OFFLINE_HOURS * 3600)

    modifiers = get_modifiers(upgrades, prestige)
    efficiency = BASE_OFFLINE_EFFICIENCY * modifiers.offline_efficiency
    ticks = int(math.floor(elapsed * efficiency))

    produced: Dict[str, int] = {item: 0 for item in FINISHED_GOODS}
    if ticks <= 0:
        return OfflineProgress(0, 0, produced, efficiency)

    earned = 0
    for chain in analyze_production_chains(state):
        count = chain_output(chain, ticks, modifiers)
        if count <= 0:
            continue
        produced[chain.recipe] += count
        if chain.outlet is None:
            continue
        factor = OFFLINE_WAREHOUSE_PRICE_FACTOR if chain.outlet == WAREHOUSE else 1.0
        price = int(math.floor(RECIPES[chain.recipe]["sell_price"] * factor * modifiers.sell_price))
        earned += count * price

    return OfflineProgress(ticks, earned, produced, efficiency)


def apply_offline_progress(state: GameState, progress: OfflineProgress) -> None:
    state.currency += progress.currency_earned
    for item, count in progress.items_produced.items():
        state.inventory[item] = state.inventory.get(item, 0) + count
    state.tick += progress.ticks_simulated
