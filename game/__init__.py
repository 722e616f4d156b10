"""Forgeworks game package.

Public API:
    from game import FactorySim, tick, find_path, get_modifiers
    from game import run_automation, calculate_offline_progress
"""
from game.automation import apply_smart_defaults, run_automation
from game.entities import (
    AutomationSettings,
    Belt,
    Building,
    GameSave,
    GameState,
    InvariantViolation,
    Position,
)
from game.modifiers import get_modifiers
from game.offline import apply_offline_progress, calculate_offline_progress
from game.pathfinding import find_path
from game.simulation import FactorySim, tick

__all__ = [
    "AutomationSettings",
    "Belt",
    "Building",
    "FactorySim",
    "GameSave",
    "GameState",
    "InvariantViolation",
    "Position",
    "apply_offline_progress",
    "apply_smart_defaults",
    "calculate_offline_progress",
    "find_path",
    "get_modifiers",
    "run_automation",
    "tick",
]
