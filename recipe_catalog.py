from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable

RECIPES_FILE = Path("data/recipes.json")
ITEM_ID_RE = re.compile(r"^[a-z][a-z0-9_]*$")
BAR_MATERIALS: Dict[str, str] = {"iron_bar": "iron", "copper_bar": "copper"}
MAX_BARS_COST = 20


@dataclass(frozen=True)
class RecipeDefinition:
    """A finished good a forger can produce from one bar kind."""

    key: str
    display_name: str
    bar_type: str
    bars_cost: int
    ticks: int
    sell_price: int

    @property
    def material(self) -> str:
        return BAR_MATERIALS[self.bar_type]

    def to_runtime_dict(self) -> Dict[str, str | int]:
        return {
            "display_name": self.display_name,
            "bar_type": self.bar_type,
            "bars_cost": self.bars_cost,
            "ticks": self.ticks,
            "sell_price": self.sell_price,
            "material": self.material,
        }


DEFAULT_RECIPE_DEFINITIONS: Dict[str, RecipeDefinition] = {
    "dagger": RecipeDefinition("dagger", "Dagger", "iron_bar", 2, 5, 35),
    "armour": RecipeDefinition("armour", "Armour", "iron_bar", 3, 8, 60),
    "wand": RecipeDefinition("wand", "Wand", "copper_bar", 2, 6, 40),
    "magic_powder": RecipeDefinition("magic_powder", "Magic Powder", "copper_bar", 4, 10, 65),
}


def _is_valid_item_id(value: str) -> bool:
    return bool(ITEM_ID_RE.fullmatch(value))


def _coerce_int(value: Any, *, minimum: int | None = None) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        result = value
    elif isinstance(value, float) and value.is_integer():
        result = int(value)
    else:
        return None

    if minimum is not None and result < minimum:
        return None
    return result


def _parse_recipe_entry(key: str, entry: Dict[str, Any]) -> RecipeDefinition | None:
    if not _is_valid_item_id(key):
        return None
    if key in BAR_MATERIALS or key.endswith("_ore"):
        return None

    display_name = entry.get("display_name")
    bar_type = entry.get("bar_type")
    bars_cost = _coerce_int(entry.get("bars_cost"), minimum=1)
    ticks = _coerce_int(entry.get("ticks"), minimum=1)
    sell_price = _coerce_int(entry.get("sell_price"), minimum=1)

    if not isinstance(display_name, str) or not display_name.strip():
        return None
    if not isinstance(bar_type, str) or bar_type not in BAR_MATERIALS:
        return None
    if bars_cost is None or bars_cost > MAX_BARS_COST:
        return None
    if ticks is None or sell_price is None:
        return None

    return RecipeDefinition(
        key=key,
        display_name=display_name.strip(),
        bar_type=bar_type,
        bars_cost=bars_cost,
        ticks=ticks,
        sell_price=sell_price,
    )


def _ordered_runtime_catalog(recipes: Iterable[RecipeDefinition]) -> Dict[str, Dict[str, str | int]]:
    # Iron goods first, then by price; the first entry is the default forger recipe.
    ordered = sorted(recipes, key=lambda recipe: (recipe.bar_type != "iron_bar", recipe.sell_price, recipe.key))
    return {recipe.key: recipe.to_runtime_dict() for recipe in ordered}


def load_recipe_catalog(path: Path = RECIPES_FILE) -> Dict[str, Dict[str, str | int]]:
    defaults = _ordered_runtime_catalog(DEFAULT_RECIPE_DEFINITIONS.values())
    if not path.exists():
        return defaults

    try:
        raw = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        return defaults

    if not isinstance(raw, dict):
        return defaults

    recipes: Dict[str, RecipeDefinition] = {}
    for key, entry in raw.items():
        if not isinstance(key, str) or not isinstance(entry, dict):
            continue
        recipe = _parse_recipe_entry(key, entry)
        if recipe is None:
            continue
        recipes[key] = recipe

    if not recipes:
        return defaults

    return _ordered_runtime_catalog(recipes.values())
