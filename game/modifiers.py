"""Fold permanent upgrades and prestige bonuses into one multiplier bundle."""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Dict, Optional

from config import KING_PENALTY_MULTIPLIER, UPGRADES
from game.entities import GameState, PrestigeData, UpgradeState

AUTOMATION_FEATURES: Dict[str, str] = {
    "auto_recipe": "auto_recipe",
    "full_auto": "automation_mastery",
}


@dataclass(frozen=True)
class Modifiers:
    production_speed: float = 1.0
    mining_speed: float = 1.0
    smelting_speed: float = 1.0
    forging_speed: float = 1.0
    belt_speed: float = 1.0
    sell_price: float = 1.0
    npc_patience: float = 1.0
    npc_spawn_chance: float = 1.0
    offline_efficiency: float = 1.0
    storage_capacity: float = 0.0
    starting_currency: float = 0.0
    map_expansion: float = 0.0


def get_modifiers(
    upgrades: UpgradeState,
    prestige: PrestigeData,
    state: Optional[GameState] = None,
) -> Modifiers:
    """Resolve the active modifiers; inputs are never mutated."""
    values: Dict[str, float] = {f.name: f.default for f in fields(Modifiers)}

    bonuses = prestige.bonuses
    values["production_speed"] *= bonuses.production_speed
    values["sell_price"] *= bonuses.sell_price
    values["starting_currency"] += bonuses.starting_currency
    values["offline_efficiency"] *= bonuses.offline_efficiency
    values["belt_speed"] *= bonuses.belt_speed

    for upgrade_id in upgrades.purchased:
        definition = UPGRADES.get(upgrade_id)
        if definition is None:
            continue
        for field_name, op, amount in definition["effects"]:
            if op == "mul":
                values[field_name] *= amount
            else:
                values[field_name] += amount

    for stage in ("mining_speed", "smelting_speed", "forging_speed"):
        values[stage] *= values["production_speed"]

    if state is not None and state.king_penalty_ticks_left > 0:
        values["npc_spawn_chance"] *= KING_PENALTY_MULTIPLIER

    return Modifiers(**values)


def is_automation_unlocked(upgrades: UpgradeState, feature: str) -> bool:
    upgrade_id = AUTOMATION_FEATURES.get(feature)
    return upgrade_id is not None and upgrade_id in upgrades.purchased
