"""Centralised configuration constants for Forgeworks."""
from __future__ import annotations

from pathlib import Path

from customer_catalog import load_customer_catalog
from prestige_catalog import load_prestige_catalog
from recipe_catalog import load_recipe_catalog
from upgrade_catalog import load_upgrade_catalog

# ---------------------------------------------------------------------------
# Grid / world generation
# ---------------------------------------------------------------------------
MAP_WIDTH: int = 30
MAP_HEIGHT: int = 20
ORE_NODE_COUNT_MIN: int = 25
ORE_NODE_COUNT_MAX: int = 35
STARTING_CURRENCY: int = 400

# ---------------------------------------------------------------------------
# File paths / persistence
# ---------------------------------------------------------------------------
SAVE_FILE: Path = Path("forgeworks_save.json")
SAVE_VERSION: int = 4
DEFAULT_PLAYER_ID: str = "default"
EVENT_LOG_LIMIT: int = 12

# ---------------------------------------------------------------------------
# Data catalogs (data-driven with safe defaults)
# ---------------------------------------------------------------------------
RECIPES: dict[str, dict] = load_recipe_catalog()
CUSTOMERS: dict[str, dict] = load_customer_catalog()
UPGRADES: dict[str, dict] = load_upgrade_catalog()
PRESTIGE_UPGRADES: dict[str, dict] = load_prestige_catalog()

# ---------------------------------------------------------------------------
# Building type constants
# ---------------------------------------------------------------------------
MINER: str = "miner"
SMELTER: str = "smelter"
FORGER: str = "forger"
SHOP: str = "shop"
WAREHOUSE: str = "warehouse"
GEOLOGIST: str = "geologist"
JUNCTION: str = "junction"
SORTER: str = "sorter"

BUILDING_COSTS: dict[str, int] = {
    MINER: 10,
    SMELTER: 25,
    FORGER: 50,
    SHOP: 75,
    WAREHOUSE: 100,
    GEOLOGIST: 200,
    JUNCTION: 15,
    SORTER: 30,
}

CONSTRUCTION_TICKS: dict[str, int] = {
    MINER: 3,
    SMELTER: 5,
    FORGER: 6,
    SHOP: 8,
    WAREHOUSE: 10,
    GEOLOGIST: 12,
    JUNCTION: 2,
    SORTER: 3,
}

SALES_BUILDINGS: tuple[str, ...] = (SHOP, WAREHOUSE)
DEMOLISH_REFUND_RATE: float = 0.75

# ---------------------------------------------------------------------------
# Belts
# ---------------------------------------------------------------------------
BELT_COST: int = 5                    # per interior cell
MIN_BELT_PATH_CELLS: int = 3

# ---------------------------------------------------------------------------
# Land / building upgrades
# ---------------------------------------------------------------------------
BASE_LAND_COST: int = 100
LAND_COST_MULTIPLIER: float = 1.15
LAND_SIDES: tuple[str, ...] = ("right", "bottom")
BUILDING_UPGRADE_COSTS: list[int] = [500, 2000, 10000]
MAX_UPGRADE_LEVEL: int = 3
UPGRADE_SPEED_BONUS: float = 1.25     # production speed factor per building level

# ---------------------------------------------------------------------------
# Items: ores, bars and finished goods
# ---------------------------------------------------------------------------
ORE_KINDS: list[str] = ["iron", "copper"]
ORE_ITEM: dict[str, str] = {"iron": "iron_ore", "copper": "copper_ore"}
BAR_ITEM: dict[str, str] = {"iron": "iron_bar", "copper": "copper_bar"}
ORE_TICKS: dict[str, int] = {"iron": 3, "copper": 4}
SMELT_TICKS: dict[str, int] = {"iron": 5, "copper": 4}
SMELT_ORE_COST: int = 3
PRODUCTION_EPSILON: float = 1e-9

ORE_ITEMS: list[str] = [ORE_ITEM[kind] for kind in ORE_KINDS]
BAR_ITEMS: list[str] = [BAR_ITEM[kind] for kind in ORE_KINDS]
FINISHED_GOODS: list[str] = list(RECIPES)
ALL_ITEMS: list[str] = ORE_ITEMS + BAR_ITEMS + FINISHED_GOODS
DEFAULT_RECIPE: str = FINISHED_GOODS[0]

# Sorter filters: a category name or any single item.
ITEM_CATEGORIES: dict[str, list[str]] = {
    "ore": ORE_ITEMS,
    "bar": BAR_ITEMS,
    "finished": FINISHED_GOODS,
    "all": ALL_ITEMS,
    **{item: [item] for item in ALL_ITEMS},
}
DEFAULT_SORTER_FILTER: str = "all"

# ---------------------------------------------------------------------------
# Shop economy / NPCs
# ---------------------------------------------------------------------------
NPC_SPAWN_CHANCE: float = 0.15
NPC_MAX_QUEUE: int = 4
MULTI_ITEM_SPAWN_CHANCE: float = 0.03
MULTI_ITEM_BONUS: float = 1.75

# ---------------------------------------------------------------------------
# King visits
# ---------------------------------------------------------------------------
KING_SPAWN_CHANCE: float = 0.02
KING_MIN_TICK: int = 100
KING_COOLDOWN_TICKS: int = 50
KING_PRICE_MULTIPLIER: float = 4.0
KING_PENALTY_DURATION: int = 30
KING_PENALTY_MULTIPLIER: float = 0.25
KING_LATE_GAME_TICK: int = 500

# ---------------------------------------------------------------------------
# Wholesale
# ---------------------------------------------------------------------------
WHOLESALE_THRESHOLD: int = 10
WHOLESALE_MULTIPLIER: float = 0.7

# ---------------------------------------------------------------------------
# Geologist exploration
# ---------------------------------------------------------------------------
GEOLOGIST_UPKEEP: int = 2
GEOLOGIST_MAX_COUNT: int = 1
GEOLOGIST_DISCOVERY_TICKS_MIN: int = 10
GEOLOGIST_DISCOVERY_TICKS_MAX: int = 20
GEOLOGIST_SEARCH_PROGRESS_SPAN: float = 15.0
EXPLORER_MOVE_SPEED: float = 0.5
DISCOVERY_MAX_RADIUS: int = 5
DISCOVERY_RING_SAMPLES: int = 8

# ---------------------------------------------------------------------------
# Offline progress / prestige
# ---------------------------------------------------------------------------
MAX_OFFLINE_HOURS: int = 24
BASE_OFFLINE_EFFICIENCY: float = 0.5
OFFLINE_WAREHOUSE_PRICE_FACTOR: float = 0.5
MIN_PRESTIGE_CURRENCY: int = 5000
STAR_ESSENCE_DIVISOR: int = 10000

# ---------------------------------------------------------------------------
# Automation heuristics
# ---------------------------------------------------------------------------
AUTOMATION_DEFAULT_RESERVE: int = 100
SMART_DEFAULT_RESERVE: int = 50
PLACEMENT_SEARCH_MIN_RADIUS: int = 2
PLACEMENT_SEARCH_MAX_RADIUS: int = 15
CHAIN_PROFIT_MINERS: int = 2           # miners assumed when valuing a fresh chain
CHAIN_CANDIDATE_NODES: int = 5         # nearest unmined nodes tried for a new chain
MINERS_PER_SMELTER_TARGET: int = 2
URGENCY_WEIGHT: float = 2.0
IDLE_FORGER_PROGRESS: float = 0.3      # recipe switches only below this progress
FOUNDATION_WAIT_FRACTION: float = 0.5
SAVE_FOR_BETTER_BUDGET_MULTIPLE: float = 2.0
SAVE_FOR_BETTER_ROI_RATIO: float = 0.7
SAVE_FOR_BETTER_MAX_WAIT_TICKS: float = 50.0
SAVE_FOR_BETTER_MIN_ROI_GAIN: float = 20.0
BELT_CONNECT_PROFIT: float = 5.0
HUB_PROFIT_PER_FORGER: float = 2.0
HUB_MIN_FORGERS: int = 3             # bottleneck mode
HUB_ROI_MIN_FORGERS: int = 2
GEOLOGIST_ESTIMATED_PROFIT: float = 100 / 30
GEOLOGIST_ROI_UNMINED_THRESHOLD: int = 5
GEOLOGIST_ROI_CURRENCY_THRESHOLD: int = 500
GEOLOGIST_BOTTLENECK_UNMINED_THRESHOLD: int = 3
WAREHOUSE_MIN_FORGERS: int = 2
WAREHOUSE_FORGER_OUTPUT_PER_TICK: float = 0.15
WAREHOUSE_SHOP_SALES_PER_TICK: float = 0.16
WAREHOUSE_AVERAGE_ITEM_PRICE: float = 25.0
WAREHOUSE_BACKLOG_THRESHOLD: int = 3
ORE_BACKLOG_THRESHOLD: int = 4         # ore waiting in smelters before more miners stop paying
BAR_BACKLOG_THRESHOLD: int = 3
GOODS_BACKLOG_THRESHOLD: int = 5
SMELTER_BAR_SURPLUS: int = 3

# ---------------------------------------------------------------------------
# Restructuring
# ---------------------------------------------------------------------------
RESTRUCTURE_EVAL_INTERVAL: int = 60
RESTRUCTURE_COOLDOWN: int = 30
RESTRUCTURE_MIN_TICK: int = 150            # no restructuring before the factory settles
RESTRUCTURE_PAYBACK_WINDOW: int = 100
RESTRUCTURE_OVERSATURATION_MINERS: int = 3
RESTRUCTURE_SMELTER_VALUE: float = 3.0
RESTRUCTURE_FORGER_VALUE: float = 4.0
