from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

UPGRADES_FILE = Path("data/upgrades.json")
UPGRADE_ID_RE = re.compile(r"^[a-z][a-z0-9_]*$")
VALID_CATEGORIES = {"production", "logistics", "commerce", "automation"}

# Each modifier field accepts exactly one operation, so any purchase order
# folds to the same bundle.
EFFECT_FIELD_OPS: Dict[str, str] = {
    "production_speed": "mul",
    "mining_speed": "mul",
    "smelting_speed": "mul",
    "forging_speed": "mul",
    "belt_speed": "mul",
    "sell_price": "mul",
    "npc_patience": "mul",
    "npc_spawn_chance": "mul",
    "offline_efficiency": "mul",
    "storage_capacity": "add",
    "starting_currency": "add",
    "map_expansion": "add",
}

Effect = Tuple[str, str, float]


@dataclass(frozen=True)
class UpgradeDefinition:
    key: str
    display_name: str
    category: str
    tier: int
    cost: int
    requires: Tuple[str, ...] = ()
    effects: Tuple[Effect, ...] = ()
    map_growth: int = 0

    def to_runtime_dict(self) -> Dict[str, str | int | List[str] | List[List[str | float]]]:
        return {
            "display_name": self.display_name,
            "category": self.category,
            "tier": self.tier,
            "cost": self.cost,
            "requires": list(self.requires),
            "effects": [[field, op, value] for field, op, value in self.effects],
            "map_growth": self.map_growth,
        }


def _mul(field: str, value: float) -> Effect:
    return (field, "mul", value)


DEFAULT_UPGRADES: Dict[str, UpgradeDefinition] = {
    "mining_efficiency_1": UpgradeDefinition(
        "mining_efficiency_1", "Mining Efficiency I", "production", 1, 100, (), (_mul("mining_speed", 1.10),)
    ),
    "smelting_efficiency_1": UpgradeDefinition(
        "smelting_efficiency_1", "Smelting Efficiency I", "production", 1, 150, (), (_mul("smelting_speed", 1.10),)
    ),
    "belt_maintenance_1": UpgradeDefinition(
        "belt_maintenance_1", "Belt Maintenance", "logistics", 1, 200, (), (_mul("belt_speed", 1.10),)
    ),
    "mining_efficiency_2": UpgradeDefinition(
        "mining_efficiency_2",
        "Mining Efficiency II",
        "production",
        2,
        400,
        ("mining_efficiency_1",),
        (_mul("mining_speed", 1.15),),
    ),
    "smelting_efficiency_2": UpgradeDefinition(
        "smelting_efficiency_2",
        "Smelting Efficiency II",
        "production",
        2,
        500,
        ("smelting_efficiency_1",),
        (_mul("smelting_speed", 1.15),),
    ),
    "extended_storage": UpgradeDefinition(
        "extended_storage", "Extended Storage", "logistics", 2, 300, (), (("storage_capacity", "add", 2.0),)
    ),
    "patient_customers": UpgradeDefinition(
        "patient_customers", "Patient Customers", "commerce", 2, 400, (), (_mul("npc_patience", 1.20),)
    ),
    "auto_belt": UpgradeDefinition("auto_belt", "Auto-Belt Basics", "automation", 2, 600),
    "mining_efficiency_3": UpgradeDefinition(
        "mining_efficiency_3",
        "Mining Efficiency III",
        "production",
        3,
        1500,
        ("mining_efficiency_2",),
        (_mul("mining_speed", 1.20),),
    ),
    "forging_efficiency_1": UpgradeDefinition(
        "forging_efficiency_1",
        "Forging Efficiency I",
        "production",
        3,
        1800,
        ("smelting_efficiency_2",),
        (_mul("forging_speed", 1.10),),
    ),
    "express_belts": UpgradeDefinition(
        "express_belts", "Express Belts", "logistics", 3, 2000, ("belt_maintenance_1",), (_mul("belt_speed", 1.25),)
    ),
    "premium_pricing": UpgradeDefinition(
        "premium_pricing", "Premium Pricing", "commerce", 3, 2500, ("patient_customers",), (_mul("sell_price", 1.15),)
    ),
    "auto_recipe": UpgradeDefinition("auto_recipe", "Recipe Optimizer", "automation", 3, 2000, ("auto_belt",)),
    "forging_efficiency_2": UpgradeDefinition(
        "forging_efficiency_2",
        "Forging Efficiency II",
        "production",
        4,
        6000,
        ("forging_efficiency_1",),
        (_mul("forging_speed", 1.15),),
    ),
    "warehouse_efficiency": UpgradeDefinition(
        "warehouse_efficiency",
        "Warehouse Efficiency",
        "commerce",
        4,
        8000,
        ("premium_pricing",),
        (_mul("sell_price", 1.10),),
    ),
    "map_expansion": UpgradeDefinition(
        "map_expansion",
        "Map Expansion",
        "logistics",
        5,
        50000,
        ("express_belts",),
        (("map_expansion", "add", 10.0),),
        map_growth=10,
    ),
    "automation_mastery": UpgradeDefinition(
        "automation_mastery", "Automation Mastery", "automation", 5, 100000, ("auto_recipe",)
    ),
}


def _is_positive_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def _is_valid_upgrade_id(value: str) -> bool:
    return bool(UPGRADE_ID_RE.fullmatch(value))


def _parse_effect(value: Any) -> Effect | None:
    if not isinstance(value, list) or len(value) != 3:
        return None
    field, op, amount = value
    if not isinstance(field, str) or EFFECT_FIELD_OPS.get(field) != op:
        return None
    if not _is_positive_number(amount):
        return None
    return (field, op, float(amount))


def _parse_upgrade_entry(key: str, entry: Dict[str, Any]) -> UpgradeDefinition | None:
    if not _is_valid_upgrade_id(key):
        return None

    display_name = entry.get("display_name")
    category = entry.get("category", "production")
    tier = entry.get("tier", 1)
    cost = entry.get("cost")
    requires = entry.get("requires", [])
    effects = entry.get("effects", [])
    map_growth = entry.get("map_growth", 0)

    if not isinstance(display_name, str) or not display_name.strip():
        return None
    if category not in VALID_CATEGORIES:
        return None
    if isinstance(tier, bool) or not isinstance(tier, int) or tier < 1:
        return None
    if isinstance(cost, bool) or not isinstance(cost, int) or cost < 1:
        return None
    if isinstance(map_growth, bool) or not isinstance(map_growth, int) or map_growth < 0:
        return None

    if not isinstance(requires, list) or not all(isinstance(req, str) for req in requires):
        return None
    if any(not _is_valid_upgrade_id(req) for req in requires) or key in requires:
        return None
    if len(set(requires)) != len(requires):
        return None

    if not isinstance(effects, list):
        return None
    parsed_effects: List[Effect] = []
    for raw_effect in effects:
        effect = _parse_effect(raw_effect)
        if effect is None:
            return None
        parsed_effects.append(effect)

    return UpgradeDefinition(
        key=key,
        display_name=display_name.strip(),
        category=category,
        tier=tier,
        cost=cost,
        requires=tuple(requires),
        effects=tuple(parsed_effects),
        map_growth=map_growth,
    )


def _ordered_runtime_catalog(upgrades: Iterable[UpgradeDefinition]) -> Dict[str, Dict[str, Any]]:
    ordered = sorted(upgrades, key=lambda upgrade: (upgrade.tier, upgrade.cost, upgrade.key))
    return {upgrade.key: upgrade.to_runtime_dict() for upgrade in ordered}


def _has_missing_requirements(upgrades: Dict[str, UpgradeDefinition]) -> bool:
    available = set(upgrades)
    return any(req not in available for upgrade in upgrades.values() for req in upgrade.requires)


def load_upgrade_catalog(path: Path = UPGRADES_FILE) -> Dict[str, Dict[str, Any]]:
    defaults = _ordered_runtime_catalog(DEFAULT_UPGRADES.values())
    if not path.exists():
        return defaults

    try:
        raw = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        return defaults

    if not isinstance(raw, dict):
        return defaults

    upgrades: Dict[str, UpgradeDefinition] = {}
    for key, entry in raw.items():
        if not isinstance(key, str) or not isinstance(entry, dict):
            continue
        upgrade = _parse_upgrade_entry(key, entry)
        if upgrade is None:
            continue
        upgrades[key] = upgrade

    if not upgrades or _has_missing_requirements(upgrades):
        return defaults

    return _ordered_runtime_catalog(upgrades.values())
