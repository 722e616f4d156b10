import copy
import math
import unittest

from config import STARTING_CURRENCY
from game.entities import (
    Belt,
    Building,
    GameMeta,
    GameState,
    OfflineProgress,
    OreNode,
    Position,
    PrestigeBonuses,
    PrestigeData,
    UpgradeState,
)
from game.offline import analyze_production_chains, apply_offline_progress, calculate_offline_progress
from game.throughput import chain_items_per_tick

HOUR = 3600


class OfflineHarness:
    def setUp(self):
        self.state = GameState()
        self.meta = GameMeta(last_tick_at=10_000.0)
        self.upgrades = UpgradeState()
        self.prestige = PrestigeData()

    def build(self, building_type, x, y, **kwargs):
        building = Building(f"{building_type}-{x}-{y}", building_type, Position(x, y), construction_progress=1.0, **kwargs)
        self.state.buildings.append(building)
        return building

    def connect(self, a, b):
        path = [Position(a.position.x, y) for y in range(a.position.y, b.position.y + 1)]
        self.state.belts.append(Belt(f"belt-{len(self.state.belts)}", path))

    def chain(self, outlet="shop", ore_kind="iron", recipe="dagger", x=0):
        self.state.ore_nodes.append(OreNode(f"ore-{x}", Position(x, 0), ore_kind))
        miner = self.build("miner", x, 0)
        smelter = self.build("smelter", x, 3)
        forger = self.build("forger", x, 6, recipe=recipe)
        self.connect(miner, smelter)
        self.connect(smelter, forger)
        if outlet:
            self.connect(forger, self.build(outlet, x, 9))
        return miner, smelter, forger

    def estimate(self, seconds):
        return calculate_offline_progress(
            self.state, self.meta, self.upgrades, self.prestige, self.meta.last_tick_at + seconds
        )


class TestChainAnalysis(OfflineHarness, unittest.TestCase):
    def test_complete_chain_is_found(self):
        self.chain()
        chains = analyze_production_chains(self.state)

        self.assertEqual(1, len(chains))
        self.assertEqual(("iron", 1, "dagger", "shop"), (chains[0].ore_kind, chains[0].miner_count, chains[0].recipe, chains[0].outlet))

    def test_miner_of_other_ore_is_not_counted(self):
        self.chain(ore_kind="copper", recipe="dagger")
        self.assertEqual([], analyze_production_chains(self.state))

    def test_unbuilt_stage_breaks_chain(self):
        _, smelter, _ = self.chain()
        smelter.construction_progress = 0.5
        self.assertEqual([], analyze_production_chains(self.state))

    def test_forger_without_outlet_still_counts(self):
        self.chain(outlet=None)
        self.assertIsNone(analyze_production_chains(self.state)[0].outlet)


class TestOfflineProgress(OfflineHarness, unittest.TestCase):
    def test_zero_elapsed_is_a_no_op(self):
        self.chain()
        progress = self.estimate(0)

        self.assertEqual(0, progress.ticks_simulated)
        self.assertEqual(0, progress.currency_earned)
        self.assertEqual(0, sum(progress.items_produced.values()))

    def test_clock_going_backwards_is_a_no_op(self):
        self.chain()
        self.assertEqual(0, self.estimate(-500).ticks_simulated)

    def test_shop_chain_earns_full_price(self):
        self.chain()
        progress = self.estimate(HOUR)

        expected = int(math.floor(chain_items_per_tick("iron", "dagger", 1) * (HOUR // 2)))
        self.assertEqual(HOUR // 2, progress.ticks_simulated)
        self.assertEqual(0.5, progress.efficiency)
        self.assertEqual(expected, progress.items_produced["dagger"])
        self.assertEqual(expected * 35, progress.currency_earned)

    def test_warehouse_chain_earns_half_price(self):
        self.chain(outlet="warehouse")
        progress = self.estimate(HOUR)

        self.assertEqual(progress.items_produced["dagger"] * 17, progress.currency_earned)

    def test_unsold_goods_earn_nothing(self):
        self.chain(outlet=None)
        progress = self.estimate(HOUR)

        self.assertGreater(progress.items_produced["dagger"], 0)
        self.assertEqual(0, progress.currency_earned)

    def test_elapsed_time_is_capped_at_a_day(self):
        self.chain()
        self.assertEqual(24 * HOUR // 2, self.estimate(48 * HOUR).ticks_simulated)

    def test_prestige_offline_bonus_raises_efficiency(self):
        self.prestige = PrestigeData(bonuses=PrestigeBonuses(offline_efficiency=1.2))
        progress = self.estimate(1000)

        self.assertAlmostEqual(0.6, progress.efficiency)
        self.assertEqual(600, progress.ticks_simulated)

    def test_chains_add_up(self):
        self.chain(x=0)
        self.chain(x=4, ore_kind="copper", recipe="wand")
        progress = self.estimate(HOUR)

        self.assertGreater(progress.items_produced["dagger"], 0)
        self.assertGreater(progress.items_produced["wand"], 0)

    def test_estimate_does_not_touch_state(self):
        self.chain()
        before = copy.deepcopy(self.state)
        self.estimate(HOUR)
        self.assertEqual(before, self.state)

    def test_apply_credits_state(self):
        progress = OfflineProgress(100, 250, {"dagger": 3}, 0.5)
        apply_offline_progress(self.state, progress)

        self.assertEqual(STARTING_CURRENCY + 250, self.state.currency)
        self.assertEqual(3, self.state.inventory["dagger"])
        self.assertEqual(100, self.state.tick)


if __name__ == "__main__":
    unittest.main()
