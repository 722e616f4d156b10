"""Permanent upgrades and the prestige reset.

Like the player actions these report failure as an error string and leave
their inputs untouched when they fail.
"""
from __future__ import annotations

import math
import random
from typing import Optional, Tuple

from config import MIN_PRESTIGE_CURRENCY, PRESTIGE_UPGRADES, STAR_ESSENCE_DIVISOR, UPGRADES
from game.entities import GameMeta, GameSave, GameState, PrestigeData, UpgradeState
from game.persistence import create_new_save
from prestige_catalog import LEVEL_MATCH_TOLERANCE


def upgrade_purchase_error(state: GameState, upgrades: UpgradeState, upgrade_id: str) -> Optional[str]:
    definition = UPGRADES.get(upgrade_id)
    if definition is None:
        return "Unknown upgrade"
    if upgrade_id in upgrades.purchased:
        return "Already purchased"
    for requirement in definition["requires"]:
        if requirement not in upgrades.purchased:
            name = UPGRADES.get(requirement, {}).get("display_name", requirement)
            return f"Requires: {name}"
    if state.currency < definition["cost"]:
        return "Not enough currency"
    return None


def purchase_upgrade(state: GameState, upgrades: UpgradeState, upgrade_id: str) -> Optional[str]:
    error = upgrade_purchase_error(state, upgrades, upgrade_id)
    if error is not None:
        return error

    definition = UPGRADES[upgrade_id]
    state.currency -= definition["cost"]
    upgrades.purchased.append(upgrade_id)
    growth = definition["map_growth"]
    if growth:
        state.map_width += growth
        state.map_height += growth
    state.log_event(f"Purchased upgrade: {definition['display_name']}")
    return None


def _prestige_effect(upgrade_id: str, level: int) -> float:
    definition = PRESTIGE_UPGRADES[upgrade_id]
    return definition["base"] + definition["per_level"] * level


def prestige_upgrade_level(prestige: PrestigeData, upgrade_id: str) -> int:
    """Level implied by the stored bonus; 0 if it matches no level."""
    definition = PRESTIGE_UPGRADES[upgrade_id]
    current = getattr(prestige.bonuses, definition["bonus_field"])
    for level in range(definition["max_level"] + 1):
        if abs(_prestige_effect(upgrade_id, level) - current) < LEVEL_MATCH_TOLERANCE:
            return level
    return 0


def purchase_prestige_upgrade(prestige: PrestigeData, upgrade_id: str) -> Optional[str]:
    definition = PRESTIGE_UPGRADES.get(upgrade_id)
    if definition is None:
        return "Unknown prestige upgrade"

    level = prestige_upgrade_level(prestige, upgrade_id)
    if level >= definition["max_level"]:
        return "Already at max level"
    cost = definition["cost_per_level"]
    if prestige.star_essence < cost:
        return "Not enough Star Essence"

    prestige.star_essence -= cost
    setattr(prestige.bonuses, definition["bonus_field"], _prestige_effect(upgrade_id, level + 1))
    return None


def calculate_star_essence(total_currency_earned: int) -> int:
    if total_currency_earned < MIN_PRESTIGE_CURRENCY:
        return 0
    return int(math.floor(math.sqrt(total_currency_earned / STAR_ESSENCE_DIVISOR)))


def can_prestige(meta: GameMeta) -> bool:
    return meta.total_currency_earned >= MIN_PRESTIGE_CURRENCY and calculate_star_essence(meta.total_currency_earned) > 0


def perform_prestige(save: GameSave, rng: random.Random, now: float = 0.0) -> Tuple[Optional[str], Optional[GameSave]]:
    """Trade lifetime earnings for Star Essence and start over.

    Returns ``(error, new_save)``.  Only the prestige record survives;
    upgrades and automation settings start from their defaults.
    """
    if not can_prestige(save.meta):
        return f"Need at least {MIN_PRESTIGE_CURRENCY} total currency earned to prestige", None

    prestige = save.prestige
    prestige.star_essence += calculate_star_essence(save.meta.total_currency_earned)
    prestige.prestige_count += 1

    fresh = create_new_save(
        save.player_id,
        rng,
        starting_currency_bonus=int(prestige.bonuses.starting_currency),
        now=now,
    )
    fresh.prestige = prestige
    fresh.state.log_event(f"Prestige #{prestige.prestige_count}: {prestige.star_essence} Star Essence available")
    return None, fresh
