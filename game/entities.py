"""Core dataclasses for the Forgeworks simulation."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Dict, Iterator, List, Optional

from config import (
    ALL_ITEMS,
    AUTOMATION_DEFAULT_RESERVE,
    DEFAULT_RECIPE,
    EVENT_LOG_LIMIT,
    MAP_HEIGHT,
    MAP_WIDTH,
    SAVE_VERSION,
    STARTING_CURRENCY,
)


class InvariantViolation(RuntimeError):
    """Raised when engine state breaks a structural invariant."""


def empty_inventory() -> Dict[str, int]:
    return {item: 0 for item in ALL_ITEMS}


@dataclass(frozen=True)
class Position:
    """Integer grid cell; hashable so it can key obstacle sets."""

    x: int
    y: int

    def offset(self, dx: int, dy: int) -> "Position":
        return Position(self.x + dx, self.y + dy)


@dataclass
class OreNode:
    id: str
    position: Position
    kind: str


@dataclass
class Demand:
    """A multi-item request; ``kind`` is ``"multi"`` or ``"king"``.

    ``total_value`` is the payout before the global sell-price modifier.
    """

    kind: str
    items: Dict[str, int]
    total_value: float
    bonus_multiplier: float = 1.0


@dataclass
class Npc:
    """A customer waiting in a shop queue."""

    id: str
    archetype: str
    wanted_item: str
    patience_left: int
    max_patience: int
    demand: Optional[Demand] = None

    @property
    def is_king(self) -> bool:
        return self.demand is not None and self.demand.kind == "king"


@dataclass
class Building:
    id: str
    type: str
    position: Position
    progress: float = 0.0
    construction_progress: float = 0.0
    storage: Dict[str, int] = field(default_factory=empty_inventory)
    recipe: str = DEFAULT_RECIPE
    npc_queue: List[Npc] = field(default_factory=list)
    upgrade_level: int = 0
    sorter_filter: Optional[str] = None

    @property
    def is_operational(self) -> bool:
        return self.construction_progress >= 1.0


@dataclass
class BeltItem:
    """An item on a belt; ``cell_index`` counts interior cells travelled."""

    item_type: str
    cell_index: float = 0.0


@dataclass
class Belt:
    """A conveyor route; ``path[0]`` and ``path[-1]`` are building cells."""

    id: str
    path: List[Position]
    items_in_transit: List[BeltItem] = field(default_factory=list)

    @property
    def source(self) -> Position:
        return self.path[0]

    @property
    def destination(self) -> Position:
        return self.path[-1]

    @property
    def interior(self) -> List[Position]:
        return self.path[1:-1]

    @property
    def interior_length(self) -> int:
        return max(1, len(self.path) - 2)

    def touches(self, position: Position) -> bool:
        return self.source == position or self.destination == position


@dataclass
class GeologistExplorer:
    x: float
    y: float
    target: Position
    search_progress: float = 0.0
    ticks_until_discovery: int = 0


@dataclass
class GameState:
    """Everything the tick engine mutates."""

    tick: int = 0
    currency: int = STARTING_CURRENCY
    inventory: Dict[str, int] = field(default_factory=empty_inventory)
    buildings: List[Building] = field(default_factory=list)
    belts: List[Belt] = field(default_factory=list)
    ore_nodes: List[OreNode] = field(default_factory=list)
    map_width: int = MAP_WIDTH
    map_height: int = MAP_HEIGHT
    geologist_explorer: Optional[GeologistExplorer] = None
    king_penalty_ticks_left: int = 0
    last_king_tick: int = 0
    tiles_purchased: int = 0
    next_id: int = 0
    event_log: List[str] = field(default_factory=list)

    def new_id(self, prefix: str) -> str:
        self.next_id += 1
        return f"{prefix}-{self.next_id}"

    def log_event(self, message: str) -> None:
        self.event_log.append(message)
        self.event_log = self.event_log[-EVENT_LOG_LIMIT:]

    def in_bounds(self, position: Position) -> bool:
        return 0 <= position.x < self.map_width and 0 <= position.y < self.map_height

    def building_at(self, position: Position) -> Optional[Building]:
        for building in self.buildings:
            if building.position == position:
                return building
        return None

    def building_by_id(self, building_id: str) -> Optional[Building]:
        for building in self.buildings:
            if building.id == building_id:
                return building
        return None

    def buildings_of(self, building_type: str) -> List[Building]:
        return [b for b in self.buildings if b.type == building_type]

    def ore_at(self, position: Position) -> Optional[OreNode]:
        for node in self.ore_nodes:
            if node.position == position:
                return node
        return None

    def belts_into(self, position: Position) -> List[Belt]:
        return [belt for belt in self.belts if belt.destination == position]

    def belts_out_of(self, position: Position) -> List[Belt]:
        return [belt for belt in self.belts if belt.source == position]

    def belt_interior_cells(self) -> Iterator[Position]:
        for belt in self.belts:
            yield from belt.interior


@dataclass
class UpgradeState:
    purchased: List[str] = field(default_factory=list)


@dataclass
class PrestigeBonuses:
    production_speed: float = 1.0
    sell_price: float = 1.0
    starting_currency: float = 0.0
    offline_efficiency: float = 1.0
    belt_speed: float = 1.0


@dataclass
class PrestigeData:
    star_essence: int = 0
    prestige_count: int = 0
    bonuses: PrestigeBonuses = field(default_factory=PrestigeBonuses)


@dataclass
class AutomationSettings:
    """Flat planner configuration, read and written wholesale."""

    enabled: bool = False
    auto_place_miner: bool = False
    auto_place_smelter: bool = False
    auto_place_forger: bool = False
    auto_place_shop: bool = False
    auto_place_belt: bool = False
    auto_place_warehouse: bool = False
    auto_place_geologist: bool = False
    auto_place_junction: bool = False
    auto_place_sorter: bool = False
    auto_recipe_switch: bool = False
    use_advanced_recipe_logic: bool = False
    build_complete_chains: bool = False
    use_roi_calculations: bool = False
    save_for_better_options: bool = False
    use_hub_routing: bool = False
    enable_restructuring: bool = False
    priority_ore_type: str = "balanced"
    reserve_currency: int = AUTOMATION_DEFAULT_RESERVE
    last_restructure_tick: int = 0

    def to_dict(self) -> Dict[str, bool | int | str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "AutomationSettings":
        """Known keys are cast to their default's type; unknown keys are ignored."""
        settings = cls()
        for option in fields(cls):
            if option.name in data:
                setattr(settings, option.name, type(option.default)(data[option.name]))
        return settings


@dataclass
class GameMeta:
    last_tick_at: float = 0.0
    total_currency_earned: int = 0
    total_items_produced: int = 0


@dataclass
class GameSave:
    player_id: str
    state: GameState = field(default_factory=GameState)
    meta: GameMeta = field(default_factory=GameMeta)
    prestige: PrestigeData = field(default_factory=PrestigeData)
    upgrades: UpgradeState = field(default_factory=UpgradeState)
    automation: AutomationSettings = field(default_factory=AutomationSettings)
    version: int = SAVE_VERSION
    saved_at: float = 0.0


@dataclass
class TickResult:
    currency_earned: int = 0
    items_produced: int = 0


@dataclass
class ActionResult:
    """Outcome of a player action; ``error`` is None on success."""

    state: GameState
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class OfflineProgress:
    ticks_simulated: int = 0
    currency_earned: int = 0
    items_produced: Dict[str, int] = field(default_factory=dict)
    efficiency: float = 0.0
