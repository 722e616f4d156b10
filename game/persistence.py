"""Save bundles: creation, JSON codec, migrations and disk I/O.

A save is the plain dict produced by :func:`save_to_dict`.  Older saves
are brought up to :data:`config.SAVE_VERSION` by :func:`migrate_save`
before decoding, so nothing downstream branches on legacy shapes.
"""
from __future__ import annotations

import copy
import json
import logging
import math
import random
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from config import (
    ALL_ITEMS,
    DEFAULT_RECIPE,
    EVENT_LOG_LIMIT,
    MAP_HEIGHT,
    MAP_WIDTH,
    MIN_BELT_PATH_CELLS,
    ORE_KINDS,
    ORE_NODE_COUNT_MAX,
    ORE_NODE_COUNT_MIN,
    SAVE_VERSION,
    STARTING_CURRENCY,
)
from game.entities import (
    AutomationSettings,
    Belt,
    BeltItem,
    Building,
    Demand,
    GameMeta,
    GameSave,
    GameState,
    GeologistExplorer,
    Npc,
    OreNode,
    Position,
    PrestigeBonuses,
    PrestigeData,
    UpgradeState,
    empty_inventory,
)
from game.pathfinding import find_path

logger = logging.getLogger(__name__)

# Flags switched on for saves that had the old all-or-nothing AI mode.
LEGACY_AI_MODE_FLAGS = (
    "enabled",
    "auto_place_miner",
    "auto_place_smelter",
    "auto_place_forger",
    "auto_place_shop",
    "auto_place_belt",
    "auto_place_warehouse",
    "auto_place_geologist",
    "build_complete_chains",
    "auto_recipe_switch",
    "use_advanced_recipe_logic",
    "use_roi_calculations",
    "save_for_better_options",
)

RETIRED_BUILDING_TYPES = ("explorer",)


@dataclass
class PersistResult:
    success: bool
    error: Optional[str] = None
    save: Optional[GameSave] = None


# ----------------------------------------------------------------------
# New games
# ----------------------------------------------------------------------


def generate_ore_nodes(rng: random.Random, width: int = MAP_WIDTH, height: int = MAP_HEIGHT) -> List[OreNode]:
    count = min(rng.randint(ORE_NODE_COUNT_MIN, ORE_NODE_COUNT_MAX), width * height)
    taken: Set[Position] = set()
    nodes: List[OreNode] = []
    while len(nodes) < count:
        position = Position(rng.randrange(width), rng.randrange(height))
        if position in taken:
            continue
        taken.add(position)
        nodes.append(OreNode(f"ore-{len(nodes)}", position, rng.choice(ORE_KINDS)))
    return nodes


def create_initial_state(rng: random.Random) -> GameState:
    return GameState(ore_nodes=generate_ore_nodes(rng))


def create_new_save(
    player_id: str,
    rng: random.Random,
    *,
    starting_currency_bonus: int = 0,
    now: float = 0.0,
) -> GameSave:
    state = create_initial_state(rng)
    state.currency += starting_currency_bonus
    return GameSave(player_id=player_id, state=state, meta=GameMeta(last_tick_at=now), saved_at=now)


# ----------------------------------------------------------------------
# Migrations
# ----------------------------------------------------------------------


def _raw_position(raw: Dict) -> Position:
    return Position(int(raw["x"]), int(raw["y"]))


def _position_dict(position: Position) -> Dict[str, int]:
    return {"x": position.x, "y": position.y}


def _mapping(value: Any, what: str) -> Dict:
    if not isinstance(value, dict):
        raise TypeError(f"{what} must be an object, not {type(value).__name__}")
    return value


def _records(value: Any, what: str) -> List[Dict]:
    if not isinstance(value, list):
        raise TypeError(f"{what} must be a list, not {type(value).__name__}")
    for entry in value:
        _mapping(entry, f"{what} entry")
    return value


def _transit_from_progress(item: Dict, interior: int) -> Dict:
    return {
        "item_type": item["item_type"],
        "cell_index": math.floor(float(item.get("progress", 0.0)) * interior),
    }


def _migrate_transit(raw_items: Any, interior: int) -> List[Dict]:
    """Canonical transit items; entries without an item type are dropped."""
    items = []
    for item in _records(raw_items, "belt items"):
        if not isinstance(item.get("item_type"), str):
            continue
        items.append(item if "cell_index" in item else _transit_from_progress(item, interior))
    return items


def _migrate_belts(state: Dict) -> None:
    """Re-route ``{from, to}`` belts and normalise legacy transit items.

    Legacy belts are routed in save order against the buildings and every
    belt already carrying a path; a belt with no route is dropped.
    """
    belts = _records(state.get("belts", []), "belts")
    width = int(state.get("map_width", MAP_WIDTH))
    height = int(state.get("map_height", MAP_HEIGHT))

    obstacles: Set[Position] = {_raw_position(b["position"]) for b in state["buildings"]}
    for belt in belts:
        if "path" in belt:
            obstacles.update(_raw_position(cell) for cell in belt["path"][1:-1])

    migrated = []
    for belt in belts:
        if "path" in belt:
            interior = max(1, len(belt["path"]) - 2)
            belt["items_in_transit"] = _migrate_transit(belt.get("items_in_transit", []), interior)
            migrated.append(belt)
            continue

        start = _raw_position(belt["from"])
        goal = _raw_position(belt["to"])
        path = find_path(start, goal, obstacles, width, height)
        if path is None:
            logger.warning(
                "Dropping belt %s: no route from (%d,%d) to (%d,%d)",
                belt.get("id"), start.x, start.y, goal.x, goal.y,
            )
            continue
        obstacles.update(path[1:-1])
        interior = max(1, len(path) - 2)
        migrated.append({
            "id": belt.get("id"),
            "path": [_position_dict(cell) for cell in path],
            "items_in_transit": _migrate_transit(belt.get("items_in_transit", []), interior),
        })
    state["belts"] = migrated


def _remove_retired_buildings(state: Dict) -> None:
    retired = [b for b in state.get("buildings", []) if b.get("type") in RETIRED_BUILDING_TYPES]
    if not retired:
        return
    cells = [b["position"] for b in retired]
    state["buildings"] = [b for b in state["buildings"] if b.get("type") not in RETIRED_BUILDING_TYPES]

    kept = []
    for belt in state.get("belts", []):
        ends = [belt["path"][0], belt["path"][-1]] if "path" in belt else [belt.get("from"), belt.get("to")]
        if any(end in cells for end in ends):
            logger.warning("Dropping belt %s attached to a retired building", belt.get("id"))
            continue
        kept.append(belt)
    state["belts"] = kept


def migrate_save(raw: Dict) -> Dict:
    """Return a copy of ``raw`` upgraded to the current save version.

    Every step only fills what is missing, so migrating twice is the same
    as migrating once.
    """
    data = copy.deepcopy(_mapping(raw, "save"))
    version = int(data.get("version", 1))
    state = _mapping(data.setdefault("state", {}), "state")
    automation = _mapping(data.setdefault("automation", {}), "automation")
    state["buildings"] = _records(state.get("buildings", []), "buildings")
    state["belts"] = _records(state.get("belts", []), "belts")
    for belt in state["belts"]:
        path = belt.get("path")
        if path is not None and (not isinstance(path, list) or len(path) < MIN_BELT_PATH_CELLS):
            raise ValueError(f"belt {belt.get('id')} has a malformed path")

    if version < 2:
        if state.pop("ai_mode", False):
            automation.update({flag: True for flag in LEGACY_AI_MODE_FLAGS})
        automation.pop("auto_place_explorer", None)
        for name, value in AutomationSettings().to_dict().items():
            automation.setdefault(name, value)

    if version < 3:
        state.setdefault("king_penalty_ticks_left", 0)
        state.setdefault("last_king_tick", 0)

    _remove_retired_buildings(state)
    _migrate_belts(state)

    state.pop("explorer_character", None)
    state.setdefault("tiles_purchased", 0)
    for building in state.get("buildings", []):
        building.setdefault("upgrade_level", 0)

    data["version"] = SAVE_VERSION
    return data


# ----------------------------------------------------------------------
# Codec
# ----------------------------------------------------------------------


def save_to_dict(save: GameSave) -> Dict:
    return asdict(save)


def _inventory(raw: Any) -> Dict[str, int]:
    _mapping(raw, "inventory")
    inventory = empty_inventory()
    for item in ALL_ITEMS:
        inventory[item] = int(raw.get(item, 0))
    return inventory


def _npc_from_dict(raw: Dict) -> Npc:
    _mapping(raw, "npc")
    demand = None
    raw_demand = raw.get("demand")
    if isinstance(raw_demand, dict):
        demand = Demand(
            kind=str(raw_demand["kind"]),
            items={str(k): int(v) for k, v in _mapping(raw_demand.get("items", {}), "demand items").items()},
            total_value=float(raw_demand.get("total_value", 0.0)),
            bonus_multiplier=float(raw_demand.get("bonus_multiplier", 1.0)),
        )
    return Npc(
        id=str(raw["id"]),
        archetype=str(raw["archetype"]),
        wanted_item=str(raw["wanted_item"]),
        patience_left=int(raw["patience_left"]),
        max_patience=int(raw["max_patience"]),
        demand=demand,
    )


def _building_from_dict(raw: Dict) -> Building:
    return Building(
        id=str(raw["id"]),
        type=str(raw["type"]),
        position=_raw_position(raw["position"]),
        progress=float(raw.get("progress", 0.0)),
        construction_progress=float(raw.get("construction_progress", 1.0)),
        storage=_inventory(raw.get("storage", {})),
        recipe=str(raw.get("recipe", DEFAULT_RECIPE)),
        npc_queue=[_npc_from_dict(npc) for npc in _records(raw.get("npc_queue", []), "npc queue")],
        upgrade_level=int(raw.get("upgrade_level", 0)),
        sorter_filter=raw.get("sorter_filter"),
    )


def _belt_from_dict(raw: Dict) -> Belt:
    return Belt(
        id=str(raw["id"]),
        path=[_raw_position(cell) for cell in raw["path"]],
        items_in_transit=[
            BeltItem(str(item["item_type"]), float(item.get("cell_index", 0.0)))
            for item in raw.get("items_in_transit", [])
        ],
    )


def _state_from_dict(raw: Dict) -> GameState:
    explorer = None
    raw_explorer = raw.get("geologist_explorer")
    if isinstance(raw_explorer, dict):
        explorer = GeologistExplorer(
            x=float(raw_explorer["x"]),
            y=float(raw_explorer["y"]),
            target=_raw_position(raw_explorer["target"]),
            search_progress=float(raw_explorer.get("search_progress", 0.0)),
            ticks_until_discovery=int(raw_explorer.get("ticks_until_discovery", 0)),
        )

    raw_events = raw.get("event_log", [])
    return GameState(
        tick=int(raw.get("tick", 0)),
        currency=int(raw.get("currency", STARTING_CURRENCY)),
        inventory=_inventory(raw.get("inventory", {})),
        buildings=[_building_from_dict(b) for b in raw.get("buildings", [])],
        belts=[_belt_from_dict(b) for b in raw.get("belts", [])],
        ore_nodes=[
            OreNode(str(n["id"]), _raw_position(n["position"]), str(n["kind"]))
            for n in _records(raw.get("ore_nodes", []), "ore nodes")
        ],
        map_width=int(raw.get("map_width", MAP_WIDTH)),
        map_height=int(raw.get("map_height", MAP_HEIGHT)),
        geologist_explorer=explorer,
        king_penalty_ticks_left=int(raw.get("king_penalty_ticks_left", 0)),
        last_king_tick=int(raw.get("last_king_tick", 0)),
        tiles_purchased=int(raw.get("tiles_purchased", 0)),
        next_id=int(raw.get("next_id", 0)),
        event_log=[str(event) for event in raw_events if isinstance(event, str)][-EVENT_LOG_LIMIT:],
    )


def save_from_dict(raw: Dict) -> GameSave:
    """Decode a save dict of any supported version.

    Raises ``KeyError``, ``TypeError`` or ``ValueError`` on malformed data.
    """
    data = migrate_save(raw)

    raw_meta = _mapping(data.get("meta", {}), "meta")
    raw_prestige = _mapping(data.get("prestige", {}), "prestige")
    raw_upgrades = _mapping(data.get("upgrades", {}), "upgrades")
    bonuses = PrestigeBonuses()
    for name, value in _mapping(raw_prestige.get("bonuses", {}), "prestige bonuses").items():
        if hasattr(bonuses, name):
            setattr(bonuses, name, float(value))

    return GameSave(
        player_id=str(data.get("player_id", "default")),
        state=_state_from_dict(data["state"]),
        meta=GameMeta(
            last_tick_at=float(raw_meta.get("last_tick_at", 0.0)),
            total_currency_earned=int(raw_meta.get("total_currency_earned", 0)),
            total_items_produced=int(raw_meta.get("total_items_produced", 0)),
        ),
        prestige=PrestigeData(
            star_essence=int(raw_prestige.get("star_essence", 0)),
            prestige_count=int(raw_prestige.get("prestige_count", 0)),
            bonuses=bonuses,
        ),
        upgrades=UpgradeState(purchased=[str(u) for u in raw_upgrades.get("purchased", [])]),
        automation=AutomationSettings.from_dict(data.get("automation", {})),
        version=int(data["version"]),
        saved_at=float(data.get("saved_at", 0.0)),
    )


# ----------------------------------------------------------------------
# Disk I/O
# ----------------------------------------------------------------------


def save_to_disk(save: GameSave, path: Path) -> PersistResult:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(save_to_dict(save), indent=2))
    except (OSError, TypeError, ValueError) as exc:
        logger.error("Could not write save to %s: %s", path, exc)
        return PersistResult(False, str(exc))
    return PersistResult(True, save=save)


def load_from_disk(path: Path) -> PersistResult:
    """Read a save; a missing file is a success with no save."""
    if not path.exists():
        return PersistResult(True)
    try:
        save = save_from_dict(json.loads(path.read_text()))
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        logger.error("Could not load save from %s: %s", path, exc)
        return PersistResult(False, f"{type(exc).__name__}: {exc}")
    return PersistResult(True, save=save)
