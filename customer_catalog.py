from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List

CUSTOMERS_FILE = Path("data/customers.json")
VALID_ROLES = ("common", "bundle", "king")
VALID_MATERIALS = ("iron", "copper")


@dataclass(frozen=True)
class CustomerDefinition:
    """An NPC archetype visiting shops.

    ``common`` customers want one random finished good, ``bundle`` customers
    want every item in ``bundle`` at once and ``king`` customers carry a
    generated multi-item demand.  ``price_multipliers`` scale the base price
    of a single sale by the material the good is forged from.
    """

    key: str
    display_name: str
    role: str
    patience_min: int
    patience_max: int
    price_multipliers: tuple[tuple[str, float], ...] = (("iron", 1.0), ("copper", 1.0))
    bundle: tuple[str, ...] = ()

    def to_runtime_dict(self) -> Dict[str, str | int | Dict[str, float] | List[str]]:
        return {
            "display_name": self.display_name,
            "role": self.role,
            "patience_min": self.patience_min,
            "patience_max": self.patience_max,
            "price_multipliers": dict(self.price_multipliers),
            "bundle": list(self.bundle),
        }


def _multipliers(iron: float, copper: float) -> tuple[tuple[str, float], ...]:
    return (("iron", iron), ("copper", copper))


DEFAULT_CUSTOMERS: Dict[str, CustomerDefinition] = {
    "warrior": CustomerDefinition("warrior", "Warrior", "common", 15, 25, _multipliers(1.5, 0.75)),
    "mage": CustomerDefinition("mage", "Mage", "common", 15, 25, _multipliers(0.75, 1.5)),
    "collector": CustomerDefinition("collector", "Collector", "common", 20, 30, _multipliers(1.25, 1.25)),
    "merchant": CustomerDefinition("merchant", "Merchant", "common", 30, 45, _multipliers(1.0, 1.0)),
    "noble": CustomerDefinition(
        "noble", "Noble", "bundle", 25, 35, _multipliers(1.75, 1.0), bundle=("dagger", "armour")
    ),
    "adventurer": CustomerDefinition(
        "adventurer", "Adventurer", "bundle", 20, 30, _multipliers(1.0, 1.75), bundle=("wand", "magic_powder")
    ),
    "king": CustomerDefinition("king", "King", "king", 40, 60, _multipliers(4.0, 4.0)),
}


def _is_positive_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def _coerce_multipliers(value: Any) -> tuple[tuple[str, float], ...] | None:
    if not isinstance(value, dict):
        return None
    parsed: List[tuple[str, float]] = []
    for material in VALID_MATERIALS:
        multiplier = value.get(material, 1.0)
        if not _is_positive_number(multiplier):
            return None
        parsed.append((material, float(multiplier)))
    return tuple(parsed)


def _parse_customer_entry(key: str, entry: Dict[str, Any]) -> CustomerDefinition | None:
    if not isinstance(key, str) or not key:
        return None

    display_name = entry.get("display_name")
    role = entry.get("role", "common")
    patience_min = entry.get("patience_min")
    patience_max = entry.get("patience_max")
    price_multipliers = entry.get("price_multipliers", {})
    bundle = entry.get("bundle", [])

    if not isinstance(display_name, str) or not display_name.strip():
        return None
    if role not in VALID_ROLES:
        return None
    if isinstance(patience_min, bool) or not isinstance(patience_min, int):
        return None
    if isinstance(patience_max, bool) or not isinstance(patience_max, int):
        return None
    if patience_min < 1 or patience_max < patience_min:
        return None

    parsed_multipliers = _coerce_multipliers(price_multipliers)
    if parsed_multipliers is None:
        return None

    if not isinstance(bundle, list) or not all(isinstance(item, str) and item for item in bundle):
        return None
    if role == "bundle" and len(set(bundle)) < 2:
        return None
    if role != "bundle" and bundle:
        return None

    return CustomerDefinition(
        key=key,
        display_name=display_name.strip(),
        role=role,
        patience_min=patience_min,
        patience_max=patience_max,
        price_multipliers=parsed_multipliers,
        bundle=tuple(dict.fromkeys(bundle)),
    )


def _ordered_runtime_catalog(
    customers: Iterable[CustomerDefinition],
) -> Dict[str, Dict[str, str | int | Dict[str, float] | List[str]]]:
    ordered = sorted(customers, key=lambda customer: (VALID_ROLES.index(customer.role), customer.key))
    return {customer.key: customer.to_runtime_dict() for customer in ordered}


def _has_required_roles(customers: Dict[str, CustomerDefinition]) -> bool:
    roles = {customer.role for customer in customers.values()}
    return "common" in roles and "king" in roles


def load_customer_catalog(
    path: Path = CUSTOMERS_FILE,
) -> Dict[str, Dict[str, str | int | Dict[str, float] | List[str]]]:
    defaults = _ordered_runtime_catalog(DEFAULT_CUSTOMERS.values())
    if not path.exists():
        return defaults

    try:
        raw = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        return defaults

    if not isinstance(raw, dict):
        return defaults

    customers: Dict[str, CustomerDefinition] = {}
    for key, entry in raw.items():
        if not isinstance(entry, dict):
            continue
        customer = _parse_customer_entry(key, entry)
        if customer is None:
            continue
        customers[key] = customer

    if not customers or not _has_required_roles(customers):
        return defaults

    return _ordered_runtime_catalog(customers.values())
