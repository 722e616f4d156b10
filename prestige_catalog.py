from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable

PRESTIGE_FILE = Path("data/prestige.json")
BONUS_FIELDS = ("production_speed", "sell_price", "starting_currency", "offline_efficiency", "belt_speed")
LEVEL_MATCH_TOLERANCE = 0.001


@dataclass(frozen=True)
class PrestigeUpgradeDefinition:
    """A star-essence upgrade; its level is encoded in ``PrestigeBonuses``.

    The bonus at ``level`` is ``base + per_level * level``.
    """

    key: str
    display_name: str
    bonus_field: str
    base: float
    per_level: float
    max_level: int
    cost_per_level: int

    def effect(self, level: int) -> float:
        return self.base + self.per_level * level

    def to_runtime_dict(self) -> Dict[str, str | int | float]:
        return {
            "display_name": self.display_name,
            "bonus_field": self.bonus_field,
            "base": self.base,
            "per_level": self.per_level,
            "max_level": self.max_level,
            "cost_per_level": self.cost_per_level,
        }


DEFAULT_PRESTIGE_UPGRADES: Dict[str, PrestigeUpgradeDefinition] = {
    "swift_production": PrestigeUpgradeDefinition(
        key="swift_production",
        display_name="Swift Production",
        bonus_field="production_speed",
        base=1.0,
        per_level=0.05,
        max_level=10,
        cost_per_level=5,
    ),
    "merchant_favor": PrestigeUpgradeDefinition(
        key="merchant_favor",
        display_name="Merchant Favor",
        bonus_field="sell_price",
        base=1.0,
        per_level=0.05,
        max_level=10,
        cost_per_level=5,
    ),
    "inheritance": PrestigeUpgradeDefinition(
        key="inheritance",
        display_name="Inheritance",
        bonus_field="starting_currency",
        base=0.0,
        per_level=500.0,
        max_level=5,
        cost_per_level=10,
    ),
    "tireless_workers": PrestigeUpgradeDefinition(
        key="tireless_workers",
        display_name="Tireless Workers",
        bonus_field="offline_efficiency",
        base=1.0,
        per_level=0.10,
        max_level=5,
        cost_per_level=8,
    ),
    "express_belts_prestige": PrestigeUpgradeDefinition(
        key="express_belts_prestige",
        display_name="Express Belts",
        bonus_field="belt_speed",
        base=1.0,
        per_level=0.10,
        max_level=5,
        cost_per_level=6,
    ),
}


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float)) and math.isfinite(value)


def _coerce_positive_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        return None
    return value


def _parse_prestige_entry(key: str, entry: Dict[str, Any]) -> PrestigeUpgradeDefinition | None:
    if not isinstance(key, str) or not key:
        return None

    display_name = entry.get("display_name")
    bonus_field = entry.get("bonus_field")
    base = entry.get("base", 1.0)
    per_level = entry.get("per_level")
    max_level = _coerce_positive_int(entry.get("max_level"))
    cost_per_level = _coerce_positive_int(entry.get("cost_per_level"))

    if not isinstance(display_name, str) or not display_name.strip():
        return None
    if bonus_field not in BONUS_FIELDS:
        return None
    if not _is_finite_number(base) or base < 0:
        return None
    if not _is_finite_number(per_level) or per_level <= 0:
        return None
    if max_level is None or cost_per_level is None:
        return None

    return PrestigeUpgradeDefinition(
        key=key,
        display_name=display_name.strip(),
        bonus_field=bonus_field,
        base=float(base),
        per_level=float(per_level),
        max_level=max_level,
        cost_per_level=cost_per_level,
    )


def _ordered_runtime_catalog(entries: Iterable[PrestigeUpgradeDefinition]) -> Dict[str, Dict[str, str | int | float]]:
    ordered = sorted(entries, key=lambda entry: (BONUS_FIELDS.index(entry.bonus_field), entry.key))
    return {entry.key: entry.to_runtime_dict() for entry in ordered}


def _has_duplicate_fields(entries: Dict[str, PrestigeUpgradeDefinition]) -> bool:
    fields = [entry.bonus_field for entry in entries.values()]
    return len(set(fields)) != len(fields)


def load_prestige_catalog(path: Path = PRESTIGE_FILE) -> Dict[str, Dict[str, str | int | float]]:
    defaults = _ordered_runtime_catalog(DEFAULT_PRESTIGE_UPGRADES.values())
    if not path.exists():
        return defaults

    try:
        raw = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        return defaults

    if not isinstance(raw, dict):
        return defaults

    entries: Dict[str, PrestigeUpgradeDefinition] = {}
    for key, entry in raw.items():
        if not isinstance(entry, dict):
            continue
        parsed = _parse_prestige_entry(key, entry)
        if parsed is None:
            continue
        entries[key] = parsed

    # A bonus field owned by two upgrades would make levels ambiguous.
    if not entries or _has_duplicate_fields(entries):
        return defaults

    return _ordered_runtime_catalog(entries.values())
