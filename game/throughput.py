"""Steady-state production rates shared by the planner and offline estimator.

All rates are items per tick.  A chain is ``miners -> smelter(s) ->
forger(s)``; each stage is capped by its own capacity and by what the
previous stage can feed it.
"""
from __future__ import annotations

from typing import List

from config import (
    BAR_ITEM,
    CHAIN_PROFIT_MINERS,
    ORE_TICKS,
    RECIPES,
    SMELT_ORE_COST,
    SMELT_TICKS,
    WAREHOUSE_AVERAGE_ITEM_PRICE,
    WAREHOUSE_FORGER_OUTPUT_PER_TICK,
    WAREHOUSE_SHOP_SALES_PER_TICK,
    WHOLESALE_MULTIPLIER,
)


def recipes_for_ore(ore_kind: str) -> List[str]:
    bar = BAR_ITEM[ore_kind]
    return [key for key, recipe in RECIPES.items() if recipe["bar_type"] == bar]


def bars_per_tick(ore_kind: str, miners: int, *, smelters: int = 1, mining_speed: float = 1.0,
                  smelting_speed: float = 1.0) -> float:
    ore_rate = miners * mining_speed / ORE_TICKS[ore_kind]
    smelter_capacity = smelters * smelting_speed / SMELT_TICKS[ore_kind]
    return min(ore_rate / SMELT_ORE_COST, smelter_capacity)


def items_per_tick(recipe_key: str, bar_rate: float, *, forgers: int = 1, forging_speed: float = 1.0) -> float:
    recipe = RECIPES[recipe_key]
    forger_capacity = forgers * forging_speed / recipe["ticks"]
    return min(bar_rate / recipe["bars_cost"], forger_capacity)


def chain_items_per_tick(
    ore_kind: str,
    recipe_key: str,
    miners: int,
    *,
    mining_speed: float = 1.0,
    smelting_speed: float = 1.0,
    forging_speed: float = 1.0,
) -> float:
    bar_rate = bars_per_tick(ore_kind, miners, mining_speed=mining_speed, smelting_speed=smelting_speed)
    return items_per_tick(recipe_key, bar_rate, forging_speed=forging_speed)


def chain_profit_per_tick(ore_kind: str, miners: int = CHAIN_PROFIT_MINERS) -> float:
    """Base-price revenue of the best recipe a fresh chain could forge."""
    best = 0.0
    bar_rate = bars_per_tick(ore_kind, miners)
    for recipe_key in recipes_for_ore(ore_kind):
        profit = items_per_tick(recipe_key, bar_rate) * RECIPES[recipe_key]["sell_price"]
        best = max(best, profit)
    return best


def miner_addition_profit(ore_kind: str, current_miners: int) -> float:
    """Marginal revenue of one more miner feeding a single smelter."""
    recipes = recipes_for_ore(ore_kind)
    if not recipes:
        return 0.0
    recipe = RECIPES[recipes[0]]
    marginal_bars = bars_per_tick(ore_kind, current_miners + 1) - bars_per_tick(ore_kind, current_miners)
    marginal_items = min(marginal_bars / recipe["bars_cost"], 1 / recipe["ticks"])
    return marginal_items * recipe["sell_price"]


def warehouse_profit(forger_count: int) -> float:
    """Wholesale revenue from output a single shop cannot absorb."""
    production = forger_count * WAREHOUSE_FORGER_OUTPUT_PER_TICK
    shop_sales = min(production, WAREHOUSE_SHOP_SALES_PER_TICK)
    return (production - shop_sales) * WAREHOUSE_AVERAGE_ITEM_PRICE * WHOLESALE_MULTIPLIER
