import random
import unittest

from config import STARTING_CURRENCY
from game.entities import (
    AutomationSettings,
    GameMeta,
    GameSave,
    GameState,
    PrestigeBonuses,
    PrestigeData,
    UpgradeState,
)
from game.progression import (
    calculate_star_essence,
    can_prestige,
    perform_prestige,
    prestige_upgrade_level,
    purchase_prestige_upgrade,
    purchase_upgrade,
)


class UpgradePurchaseTests(unittest.TestCase):
    def setUp(self):
        self.state = GameState(currency=1000)
        self.upgrades = UpgradeState()

    def test_purchase_debits_and_records(self):
        self.assertIsNone(purchase_upgrade(self.state, self.upgrades, "mining_efficiency_1"))

        self.assertEqual(900, self.state.currency)
        self.assertEqual(["mining_efficiency_1"], self.upgrades.purchased)
        self.assertEqual("Purchased upgrade: Mining Efficiency I", self.state.event_log[-1])

    def test_errors_leave_state_alone(self):
        self.assertEqual("Unknown upgrade", purchase_upgrade(self.state, self.upgrades, "teleporters"))
        self.assertEqual(
            "Requires: Mining Efficiency I", purchase_upgrade(self.state, self.upgrades, "mining_efficiency_2")
        )

        self.assertEqual(1000, self.state.currency)
        self.assertEqual([], self.upgrades.purchased)

    def test_prerequisite_is_checked_before_price(self):
        self.assertEqual("Requires: Belt Maintenance", purchase_upgrade(self.state, self.upgrades, "express_belts"))

    def test_unaffordable_upgrade(self):
        self.state.currency = 50

        self.assertEqual("Not enough currency", purchase_upgrade(self.state, self.upgrades, "mining_efficiency_1"))
        self.assertEqual(50, self.state.currency)
        self.assertEqual([], self.upgrades.purchased)

    def test_unaffordable_upgrade_with_prerequisite_met(self):
        self.upgrades.purchased.append("belt_maintenance_1")

        self.assertEqual("Not enough currency", purchase_upgrade(self.state, self.upgrades, "express_belts"))
        self.assertEqual(1000, self.state.currency)

    def test_cannot_buy_twice(self):
        purchase_upgrade(self.state, self.upgrades, "mining_efficiency_1")
        self.assertEqual("Already purchased", purchase_upgrade(self.state, self.upgrades, "mining_efficiency_1"))
        self.assertEqual(900, self.state.currency)

    def test_map_expansion_grows_the_map(self):
        state = GameState(currency=50_000, map_width=30, map_height=20)
        upgrades = UpgradeState(["belt_maintenance_1", "express_belts"])

        self.assertIsNone(purchase_upgrade(state, upgrades, "map_expansion"))
        self.assertEqual((40, 30), (state.map_width, state.map_height))
        self.assertEqual(0, state.currency)


class PrestigeUpgradeTests(unittest.TestCase):
    def test_purchase_raises_bonus_one_level(self):
        prestige = PrestigeData(star_essence=12)

        self.assertIsNone(purchase_prestige_upgrade(prestige, "swift_production"))
        self.assertAlmostEqual(1.05, prestige.bonuses.production_speed)
        self.assertEqual(7, prestige.star_essence)
        self.assertEqual(1, prestige_upgrade_level(prestige, "swift_production"))

    def test_not_enough_essence(self):
        prestige = PrestigeData(star_essence=4)
        self.assertEqual("Not enough Star Essence", purchase_prestige_upgrade(prestige, "merchant_favor"))
        self.assertEqual(1.0, prestige.bonuses.sell_price)

    def test_max_level_stops_purchases(self):
        prestige = PrestigeData(star_essence=100, bonuses=PrestigeBonuses(offline_efficiency=1.5))

        self.assertEqual(5, prestige_upgrade_level(prestige, "tireless_workers"))
        self.assertEqual("Already at max level", purchase_prestige_upgrade(prestige, "tireless_workers"))
        self.assertEqual(100, prestige.star_essence)

    def test_level_is_read_back_from_bonus(self):
        prestige = PrestigeData(bonuses=PrestigeBonuses(starting_currency=1000.0))
        self.assertEqual(2, prestige_upgrade_level(prestige, "inheritance"))

    def test_unknown_prestige_upgrade(self):
        self.assertEqual("Unknown prestige upgrade", purchase_prestige_upgrade(PrestigeData(), "time_travel"))


class PrestigeResetTests(unittest.TestCase):
    def test_star_essence_curve(self):
        self.assertEqual(0, calculate_star_essence(4999))
        self.assertEqual(0, calculate_star_essence(5000))
        self.assertEqual(1, calculate_star_essence(10_000))
        self.assertEqual(2, calculate_star_essence(40_000))

    def test_can_prestige_needs_essence(self):
        self.assertFalse(can_prestige(GameMeta(total_currency_earned=5000)))
        self.assertTrue(can_prestige(GameMeta(total_currency_earned=10_000)))

    def test_prestige_refused_below_threshold(self):
        save = GameSave("p1", meta=GameMeta(total_currency_earned=4000))
        error, fresh = perform_prestige(save, random.Random(1))

        self.assertIn("5000", error)
        self.assertIsNone(fresh)
        self.assertEqual(0, save.prestige.prestige_count)

    def test_prestige_starts_over_with_bonuses(self):
        save = GameSave(
            "p1",
            state=GameState(currency=12_345, tick=900),
            meta=GameMeta(total_currency_earned=40_000),
            prestige=PrestigeData(star_essence=3, bonuses=PrestigeBonuses(starting_currency=500.0)),
            upgrades=UpgradeState(["mining_efficiency_1"]),
            automation=AutomationSettings(enabled=True, use_roi_calculations=True),
        )

        error, fresh = perform_prestige(save, random.Random(1), now=50.0)

        self.assertIsNone(error)
        self.assertEqual("p1", fresh.player_id)
        self.assertEqual(STARTING_CURRENCY + 500, fresh.state.currency)
        self.assertEqual(0, fresh.state.tick)
        self.assertEqual([], fresh.upgrades.purchased)
        self.assertEqual(AutomationSettings(), fresh.automation)
        self.assertEqual(5, fresh.prestige.star_essence)
        self.assertEqual(1, fresh.prestige.prestige_count)
        self.assertEqual(0, fresh.meta.total_currency_earned)
        self.assertEqual(50.0, fresh.meta.last_tick_at)
        self.assertIn("Prestige #1", fresh.state.event_log[-1])


if __name__ == "__main__":
    unittest.main()
