"""Shop economy: NPC arrivals, sales and patience."""
from __future__ import annotations

import math
import random
from typing import Dict, List

from config import (
    CUSTOMERS,
    FINISHED_GOODS,
    KING_COOLDOWN_TICKS,
    KING_LATE_GAME_TICK,
    KING_MIN_TICK,
    KING_PENALTY_DURATION,
    KING_PRICE_MULTIPLIER,
    KING_SPAWN_CHANCE,
    MULTI_ITEM_BONUS,
    MULTI_ITEM_SPAWN_CHANCE,
    NPC_MAX_QUEUE,
    NPC_SPAWN_CHANCE,
    RECIPES,
    SHOP,
)
from game.entities import Building, Demand, GameState, Npc
from game.modifiers import Modifiers


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def archetypes_with_role(role: str) -> List[str]:
    return [key for key, entry in CUSTOMERS.items() if entry["role"] == role]


def price_multiplier(archetype: str, item: str) -> float:
    material = RECIPES[item]["material"]
    return CUSTOMERS[archetype]["price_multipliers"].get(material, 1.0)


def _roll_patience(archetype: str, patience_multiplier: float, rng: random.Random) -> int:
    entry = CUSTOMERS[archetype]
    return int(math.floor(rng.randint(entry["patience_min"], entry["patience_max"]) * patience_multiplier))


def spawn_npc(state: GameState, patience_multiplier: float, rng: random.Random) -> Npc:
    archetype = rng.choice(archetypes_with_role("common"))
    wanted = rng.choice(FINISHED_GOODS)
    patience = _roll_patience(archetype, patience_multiplier, rng)
    return Npc(state.new_id("npc"), archetype, wanted, patience, patience)


def generate_king_demand(tick: int, rng: random.Random) -> Demand:
    late_game = tick > KING_LATE_GAME_TICK
    kinds = rng.randint(3, 4) if late_game else rng.randint(2, 3)
    kinds = min(kinds, len(FINISHED_GOODS))
    items: Dict[str, int] = {}
    for item in rng.sample(FINISHED_GOODS, kinds):
        items[item] = rng.randint(2, 3) if late_game else rng.randint(1, 2)
    total = sum(RECIPES[item]["sell_price"] * qty * KING_PRICE_MULTIPLIER for item, qty in items.items())
    return Demand("king", items, float(total), KING_PRICE_MULTIPLIER)


def try_spawn_king(state: GameState, shop: Building, patience_multiplier: float, rng: random.Random) -> bool:
    if state.tick < KING_MIN_TICK:
        return False
    if state.tick - state.last_king_tick < KING_COOLDOWN_TICKS:
        return False
    if state.king_penalty_ticks_left > 0:
        return False
    if len(shop.npc_queue) >= NPC_MAX_QUEUE or any(npc.is_king for npc in shop.npc_queue):
        return False
    if rng.random() >= KING_SPAWN_CHANCE:
        return False

    kings = archetypes_with_role("king")
    demand = generate_king_demand(state.tick, rng)
    patience = _roll_patience(kings[0], patience_multiplier, rng)
    wanted = next(iter(demand.items))
    shop.npc_queue.append(Npc(state.new_id("king"), kings[0], wanted, patience, patience, demand))
    state.last_king_tick = state.tick
    state.log_event(f"A king arrived at the shop at ({shop.position.x},{shop.position.y})")
    return True


def try_spawn_bundle_npc(state: GameState, shop: Building, patience_multiplier: float, rng: random.Random) -> bool:
    if len(shop.npc_queue) >= NPC_MAX_QUEUE:
        return False
    if rng.random() >= MULTI_ITEM_SPAWN_CHANCE:
        return False

    candidates = [
        key for key in archetypes_with_role("bundle") if all(item in RECIPES for item in CUSTOMERS[key]["bundle"])
    ]
    if not candidates:
        return False
    archetype = rng.choice(candidates)
    items = {item: 1 for item in CUSTOMERS[archetype]["bundle"]}
    total = sum(RECIPES[item]["sell_price"] * qty for item, qty in items.items()) * MULTI_ITEM_BONUS
    patience = _roll_patience(archetype, patience_multiplier, rng)
    demand = Demand("multi", items, float(total), MULTI_ITEM_BONUS)
    shop.npc_queue.append(Npc(state.new_id("npc"), archetype, next(iter(items)), patience, patience, demand))
    return True


def _can_fulfil(storage: Dict[str, int], demand: Demand) -> bool:
    return all(storage.get(item, 0) >= qty for item, qty in demand.items.items())


def _serve(shop: Building, npc: Npc, sell_price: float) -> int:
    """Sell to ``npc`` if stock allows; returns currency earned or -1 if unserved."""
    if npc.demand is not None:
        if not _can_fulfil(shop.storage, npc.demand):
            return -1
        for item, qty in npc.demand.items.items():
            shop.storage[item] -= qty
        return round_half_up(npc.demand.total_value * sell_price)

    if shop.storage.get(npc.wanted_item, 0) <= 0:
        return -1
    shop.storage[npc.wanted_item] -= 1
    base = RECIPES[npc.wanted_item]["sell_price"]
    return round_half_up(base * price_multiplier(npc.archetype, npc.wanted_item) * sell_price)


def run_shops(state: GameState, modifiers: Modifiers, rng: random.Random) -> int:
    """Shop phase of a tick; returns currency earned."""
    earned_total = 0
    for shop in state.buildings:
        if shop.type != SHOP:
            continue

        try_spawn_king(state, shop, modifiers.npc_patience, rng)
        try_spawn_bundle_npc(state, shop, modifiers.npc_patience, rng)
        if len(shop.npc_queue) < NPC_MAX_QUEUE and rng.random() < NPC_SPAWN_CHANCE * modifiers.npc_spawn_chance:
            shop.npc_queue.append(spawn_npc(state, modifiers.npc_patience, rng))

        waiting: List[Npc] = []
        for npc in shop.npc_queue:
            earned = _serve(shop, npc, modifiers.sell_price)
            if earned < 0:
                waiting.append(npc)
                continue
            state.currency += earned
            earned_total += earned

        remaining: List[Npc] = []
        for npc in waiting:
            npc.patience_left -= 1
            if npc.patience_left > 0:
                remaining.append(npc)
            elif npc.is_king:
                state.king_penalty_ticks_left = KING_PENALTY_DURATION
                state.log_event("The king left unhappy; customers are wary")
        shop.npc_queue = remaining

    return earned_total
