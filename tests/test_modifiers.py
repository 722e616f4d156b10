import itertools
import unittest
from dataclasses import fields

from config import KING_PENALTY_MULTIPLIER
from game.entities import GameState, PrestigeBonuses, PrestigeData, UpgradeState
from game.modifiers import Modifiers, get_modifiers, is_automation_unlocked


class ModifierTests(unittest.TestCase):
    def test_no_upgrades_is_neutral(self):
        self.assertEqual(Modifiers(), get_modifiers(UpgradeState(), PrestigeData()))

    def test_upgrade_multiplies_its_field(self):
        modifiers = get_modifiers(UpgradeState(["mining_efficiency_1"]), PrestigeData())

        self.assertAlmostEqual(1.10, modifiers.mining_speed)
        self.assertEqual(1.0, modifiers.smelting_speed)

    def test_prestige_production_speed_scales_every_stage(self):
        prestige = PrestigeData(bonuses=PrestigeBonuses(production_speed=1.2))
        modifiers = get_modifiers(UpgradeState(["mining_efficiency_1"]), prestige)

        self.assertAlmostEqual(1.2, modifiers.production_speed)
        self.assertAlmostEqual(1.32, modifiers.mining_speed)
        self.assertAlmostEqual(1.2, modifiers.smelting_speed)
        self.assertAlmostEqual(1.2, modifiers.forging_speed)

    def test_prestige_fields_carry_through(self):
        prestige = PrestigeData(
            bonuses=PrestigeBonuses(sell_price=1.1, starting_currency=500.0, offline_efficiency=1.2, belt_speed=1.3)
        )
        modifiers = get_modifiers(UpgradeState(), prestige)

        self.assertAlmostEqual(1.1, modifiers.sell_price)
        self.assertAlmostEqual(500.0, modifiers.starting_currency)
        self.assertAlmostEqual(1.2, modifiers.offline_efficiency)
        self.assertAlmostEqual(1.3, modifiers.belt_speed)

    def test_additive_effects_add(self):
        modifiers = get_modifiers(UpgradeState(["extended_storage", "map_expansion"]), PrestigeData())

        self.assertEqual(2.0, modifiers.storage_capacity)
        self.assertEqual(10.0, modifiers.map_expansion)

    def test_unknown_upgrade_is_ignored(self):
        self.assertEqual(Modifiers(), get_modifiers(UpgradeState(["retired_upgrade"]), PrestigeData()))

    def test_purchase_order_does_not_matter(self):
        purchased = ["mining_efficiency_1", "mining_efficiency_2", "express_belts", "belt_maintenance_1", "extended_storage"]
        prestige = PrestigeData(bonuses=PrestigeBonuses(production_speed=1.05, belt_speed=1.1))
        expected = get_modifiers(UpgradeState(list(purchased)), prestige)

        for order in itertools.permutations(purchased):
            modifiers = get_modifiers(UpgradeState(list(order)), prestige)
            for field in fields(Modifiers):
                self.assertAlmostEqual(getattr(expected, field.name), getattr(modifiers, field.name), places=12)

    def test_king_penalty_reduces_spawn_chance(self):
        state = GameState(king_penalty_ticks_left=5)
        modifiers = get_modifiers(UpgradeState(), PrestigeData(), state)
        self.assertAlmostEqual(KING_PENALTY_MULTIPLIER, modifiers.npc_spawn_chance)

        state.king_penalty_ticks_left = 0
        self.assertEqual(1.0, get_modifiers(UpgradeState(), PrestigeData(), state).npc_spawn_chance)

    def test_inputs_are_not_mutated(self):
        upgrades = UpgradeState(["mining_efficiency_1", "patient_customers"])
        prestige = PrestigeData(bonuses=PrestigeBonuses(production_speed=1.5))
        state = GameState(king_penalty_ticks_left=3)

        get_modifiers(upgrades, prestige, state)

        self.assertEqual(["mining_efficiency_1", "patient_customers"], upgrades.purchased)
        self.assertEqual(1.5, prestige.bonuses.production_speed)
        self.assertEqual(3, state.king_penalty_ticks_left)

    def test_automation_features_follow_upgrades(self):
        upgrades = UpgradeState(["auto_belt", "auto_recipe"])

        self.assertTrue(is_automation_unlocked(upgrades, "auto_recipe"))
        self.assertFalse(is_automation_unlocked(upgrades, "full_auto"))
        self.assertFalse(is_automation_unlocked(upgrades, "teleporters"))


if __name__ == "__main__":
    unittest.main()
