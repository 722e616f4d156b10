"""Save codec, migrations and disk round-trips."""
from __future__ import annotations

import copy
import json
import logging
import random
import unittest

import pytest

from config import ORE_NODE_COUNT_MAX, ORE_NODE_COUNT_MIN, SAVE_VERSION, STARTING_CURRENCY
from game import FactorySim
from game.entities import (
    Belt,
    BeltItem,
    Building,
    Demand,
    GeologistExplorer,
    Npc,
    Position,
)
from game.persistence import (
    create_new_save,
    generate_ore_nodes,
    load_from_disk,
    migrate_save,
    save_from_dict,
    save_to_dict,
    save_to_disk,
)


def legacy_save():
    return {
        "player_id": "p1",
        "version": 1,
        "state": {
            "tick": 50,
            "currency": 300,
            "ai_mode": True,
            "buildings": [
                {"id": "b1", "type": "miner", "position": {"x": 0, "y": 0}},
                {"id": "b2", "type": "smelter", "position": {"x": 0, "y": 4}},
                {"id": "b3", "type": "explorer", "position": {"x": 5, "y": 5}},
                {"id": "b4", "type": "shop", "position": {"x": 9, "y": 5}},
            ],
            "belts": [
                {
                    "id": "belt-1",
                    "from": {"x": 0, "y": 0},
                    "to": {"x": 0, "y": 4},
                    "items_in_transit": [{"item_type": "iron_ore", "progress": 0.5}],
                },
                {"id": "belt-2", "from": {"x": 5, "y": 5}, "to": {"x": 9, "y": 5}},
            ],
            "ore_nodes": [{"id": "ore-0", "position": {"x": 0, "y": 0}, "kind": "iron"}],
            "explorer_character": {"x": 1, "y": 1},
        },
        "automation": {"auto_place_explorer": True},
    }


class TestNewSave(unittest.TestCase):
    def test_ore_nodes_are_unique_and_in_range(self):
        nodes = generate_ore_nodes(random.Random(4), 30, 20)

        self.assertGreaterEqual(len(nodes), ORE_NODE_COUNT_MIN)
        self.assertLessEqual(len(nodes), ORE_NODE_COUNT_MAX)
        positions = [node.position for node in nodes]
        self.assertEqual(len(positions), len(set(positions)))
        self.assertTrue(all(0 <= p.x < 30 and 0 <= p.y < 20 for p in positions))

    def test_tiny_map_gets_at_most_one_node_per_cell(self):
        self.assertEqual(4, len(generate_ore_nodes(random.Random(4), 2, 2)))

    def test_new_save_applies_starting_bonus(self):
        save = create_new_save("p1", random.Random(1), starting_currency_bonus=500, now=123.0)

        self.assertEqual(STARTING_CURRENCY + 500, save.state.currency)
        self.assertEqual(123.0, save.meta.last_tick_at)
        self.assertEqual(SAVE_VERSION, save.version)


class TestCodec(unittest.TestCase):
    def setUp(self):
        sim = FactorySim(seed=5, clock=lambda: 42.0)
        state = sim.state
        shop = Building("building-90", "shop", Position(3, 3), construction_progress=1.0)
        shop.storage["dagger"] = 2
        shop.npc_queue.append(Npc("npc-1", "warrior", "dagger", 5, 20))
        shop.npc_queue.append(Npc("king-1", "king", "armour", 30, 40, Demand("king", {"armour": 2}, 480.0, 4.0)))
        state.buildings.append(shop)
        state.buildings.append(Building("building-91", "sorter", Position(3, 7), sorter_filter="bar", upgrade_level=2))
        state.belts.append(
            Belt("belt-1", [Position(3, y) for y in range(3, 8)], [BeltItem("dagger", 1.5)])
        )
        state.geologist_explorer = GeologistExplorer(1.5, 2.5, Position(9, 9), 0.4, 7)
        state.log_event("hello")
        sim.save.upgrades.purchased.append("mining_efficiency_1")
        sim.save.prestige.bonuses.sell_price = 1.1
        sim.save.automation.enabled = True
        sim.save.automation.priority_ore_type = "copper"
        self.save = sim.save

    def test_round_trip_through_json(self):
        raw = json.loads(json.dumps(save_to_dict(self.save)))
        self.assertEqual(self.save, save_from_dict(raw))

    def test_positions_encode_as_objects(self):
        raw = save_to_dict(self.save)
        self.assertEqual({"x": 3, "y": 3}, raw["state"]["buildings"][-2]["position"])

    def test_missing_optional_fields_use_defaults(self):
        save = save_from_dict({"version": SAVE_VERSION, "state": {}})

        self.assertEqual("default", save.player_id)
        self.assertEqual(STARTING_CURRENCY, save.state.currency)
        self.assertFalse(save.automation.enabled)

    def test_malformed_building_raises(self):
        with self.assertRaises(KeyError):
            save_from_dict({"version": SAVE_VERSION, "state": {"buildings": [{"id": "x"}]}})

    def test_event_log_is_trimmed(self):
        raw = save_to_dict(self.save)
        raw["state"]["event_log"] = [f"event {i}" for i in range(30)]

        save = save_from_dict(raw)
        self.assertEqual(12, len(save.state.event_log))
        self.assertEqual("event 29", save.state.event_log[-1])


class TestMigrations(unittest.TestCase):
    def test_legacy_ai_mode_turns_on_automation(self):
        migrated = migrate_save(legacy_save())
        automation = migrated["automation"]

        self.assertTrue(automation["enabled"])
        self.assertTrue(automation["use_roi_calculations"])
        self.assertFalse(automation["auto_place_junction"])
        self.assertNotIn("auto_place_explorer", automation)
        self.assertNotIn("ai_mode", migrated["state"])

    def test_legacy_fields_are_filled(self):
        state = migrate_save(legacy_save())["state"]

        self.assertEqual(0, state["king_penalty_ticks_left"])
        self.assertEqual(0, state["last_king_tick"])
        self.assertEqual(0, state["tiles_purchased"])
        self.assertNotIn("explorer_character", state)
        self.assertTrue(all(b["upgrade_level"] == 0 for b in state["buildings"]))

    def test_explorer_buildings_and_their_belts_are_removed(self):
        with self.assertLogs("game.persistence", level="WARNING") as logs:
            state = migrate_save(legacy_save())["state"]

        self.assertEqual(["miner", "smelter", "shop"], [b["type"] for b in state["buildings"]])
        self.assertEqual(["belt-1"], [b["id"] for b in state["belts"]])
        self.assertIn("belt-2", "\n".join(logs.output))

    def test_endpoint_belts_are_rerouted(self):
        save = save_from_dict(legacy_save())
        belt = save.state.belts[0]

        self.assertEqual([Position(0, y) for y in range(5)], belt.path)
        self.assertEqual([BeltItem("iron_ore", 1)], belt.items_in_transit)
        self.assertEqual(SAVE_VERSION, save.version)
        self.assertTrue(all(b.is_operational for b in save.state.buildings))

    def test_unroutable_belt_is_dropped(self):
        raw = {
            "version": 3,
            "state": {
                "map_width": 3,
                "map_height": 1,
                "buildings": [
                    {"id": "a", "type": "junction", "position": {"x": 0, "y": 0}},
                    {"id": "b", "type": "junction", "position": {"x": 1, "y": 0}},
                    {"id": "c", "type": "junction", "position": {"x": 2, "y": 0}},
                ],
                "belts": [{"id": "stuck", "from": {"x": 0, "y": 0}, "to": {"x": 2, "y": 0}}],
            },
        }
        with self.assertLogs("game.persistence", level=logging.WARNING):
            migrated = migrate_save(raw)
        self.assertEqual([], migrated["state"]["belts"])

    def test_progress_items_on_path_belts_become_cell_indexes(self):
        raw = {
            "version": 3,
            "state": {
                "belts": [
                    {
                        "id": "b",
                        "path": [{"x": 0, "y": y} for y in range(6)],
                        "items_in_transit": [{"item_type": "iron_bar", "progress": 0.99}],
                    }
                ]
            },
        }
        belt = migrate_save(raw)["state"]["belts"][0]
        self.assertEqual([{"item_type": "iron_bar", "cell_index": 3}], belt["items_in_transit"])

    def test_transit_items_without_type_are_dropped(self):
        raw = legacy_save()
        raw["state"]["belts"][0]["items_in_transit"].append({"progress": 0.2})

        save = save_from_dict(raw)
        self.assertEqual([BeltItem("iron_ore", 1)], save.state.belts[0].items_in_transit)

    def test_wrong_shapes_raise_type_or_value_errors(self):
        shapes = [
            [1, 2, 3],
            {"version": 4, "state": []},
            {"version": 4, "state": {"buildings": ["miner"]}},
            {"version": 4, "state": {"belts": {"id": "b"}}},
            {"version": 4, "state": {"belts": [{"id": "b", "path": []}]}},
            {"version": 4, "state": {"inventory": [1]}},
            {"version": 4, "state": {}, "prestige": {"bonuses": []}},
            {"version": 4, "state": {}, "upgrades": "all"},
        ]
        for raw in shapes:
            with self.subTest(raw=raw):
                with self.assertRaises((TypeError, ValueError)):
                    save_from_dict(raw)

    def test_migration_is_idempotent_and_pure(self):
        raw = legacy_save()
        original = copy.deepcopy(raw)

        once = migrate_save(raw)
        self.assertEqual(once, migrate_save(once))
        self.assertEqual(original, raw)


def test_disk_round_trip(tmp_path):
    sim = FactorySim(seed=8, clock=lambda: 99.0)
    sim.run(3)
    path = tmp_path / "nested" / "save.json"

    assert sim.save_to(path).success
    result = load_from_disk(path)

    assert result.success
    assert result.save == sim.save
    assert result.save.saved_at == 99.0


def test_missing_file_is_not_an_error(tmp_path):
    result = load_from_disk(tmp_path / "absent.json")

    assert result.success
    assert result.save is None
    assert result.error is None


def test_corrupt_file_reports_error(tmp_path, caplog):
    path = tmp_path / "save.json"
    path.write_text("{broken")

    with caplog.at_level(logging.ERROR, logger="game.persistence"):
        result = load_from_disk(path)

    assert not result.success
    assert "JSONDecodeError" in result.error
    assert "Could not load save" in caplog.text


def test_unwritable_path_reports_error(tmp_path):
    result = save_to_disk(create_new_save("p1", random.Random(1)), tmp_path)

    assert not result.success
    assert result.error


@pytest.mark.parametrize(
    "content",
    [[1, 2, 3], {"version": SAVE_VERSION, "state": {"buildings": ["miner"]}}],
)
def test_wrongly_shaped_save_starts_fresh(tmp_path, content):
    path = tmp_path / "save.json"
    path.write_text(json.dumps(content))

    result = load_from_disk(path)
    sim = FactorySim.load(path, seed=3)

    assert not result.success
    assert "TypeError" in result.error
    assert sim.state.buildings == []
    assert sim.state.tick == 0
    assert "started fresh" in sim.state.event_log[-1]


def test_host_starts_fresh_on_bad_save(tmp_path):
    path = tmp_path / "save.json"
    path.write_text(json.dumps({"version": SAVE_VERSION, "state": {"buildings": [{"id": "x"}]}}))

    sim = FactorySim.load(path, seed=3)

    assert sim.state.buildings == []
    assert "started fresh" in sim.state.event_log[-1]


if __name__ == "__main__":
    unittest.main()
