import json
import tempfile
import unittest
from pathlib import Path

from recipe_catalog import load_recipe_catalog


def _recipe(**overrides):
    entry = {
        "display_name": "Sword",
        "bar_type": "iron_bar",
        "bars_cost": 3,
        "ticks": 7,
        "sell_price": 50,
    }
    entry.update(overrides)
    return entry


class RecipeCatalogTests(unittest.TestCase):
    def _load(self, payload):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "recipes.json"
            path.write_text(json.dumps(payload))
            return load_recipe_catalog(path)

    def test_loads_defaults_when_file_missing(self):
        catalog = load_recipe_catalog(Path("does_not_exist.json"))

        self.assertEqual({"dagger", "armour", "wand", "magic_powder"}, set(catalog))
        self.assertEqual("iron_bar", catalog["dagger"]["bar_type"])
        self.assertEqual(2, catalog["dagger"]["bars_cost"])
        self.assertEqual(5, catalog["dagger"]["ticks"])
        self.assertEqual(35, catalog["dagger"]["sell_price"])
        self.assertEqual("copper", catalog["wand"]["material"])

    def test_default_recipe_is_first_and_iron(self):
        catalog = load_recipe_catalog(Path("does_not_exist.json"))

        self.assertEqual("dagger", next(iter(catalog)))
        self.assertEqual(["dagger", "armour", "wand", "magic_powder"], list(catalog))

    def test_falls_back_on_malformed_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "recipes.json"
            path.write_text("{not json")
            catalog = load_recipe_catalog(path)

        self.assertIn("dagger", catalog)

    def test_falls_back_when_top_level_is_not_an_object(self):
        catalog = self._load([_recipe()])
        self.assertIn("dagger", catalog)

    def test_filters_invalid_entries(self):
        catalog = self._load(
            {
                "sword": _recipe(),
                "negative_price": _recipe(sell_price=-1),
                "unknown_bar": _recipe(bar_type="gold_bar"),
                "blank_name": _recipe(display_name="   "),
                "zero_ticks": _recipe(ticks=0),
                "too_expensive": _recipe(bars_cost=99),
            }
        )

        self.assertEqual(["sword"], list(catalog))

    def test_rejects_boolean_and_fractional_numbers(self):
        catalog = self._load(
            {
                "bool_cost": _recipe(bars_cost=True),
                "fractional_price": _recipe(sell_price=10.5),
                "integral_float": _recipe(ticks=4.0),
            }
        )

        self.assertEqual(["integral_float"], list(catalog))
        self.assertEqual(4, catalog["integral_float"]["ticks"])

    def test_rejects_keys_that_clash_with_raw_items(self):
        catalog = self._load(
            {
                "iron_bar": _recipe(),
                "copper_ore": _recipe(),
                "Bad-Key": _recipe(),
            }
        )

        self.assertIn("dagger", catalog)
        self.assertNotIn("iron_bar", catalog)
        self.assertNotIn("copper_ore", catalog)

    def test_catalog_order_is_iron_first_then_price(self):
        catalog = self._load(
            {
                "cheap_copper": _recipe(bar_type="copper_bar", sell_price=5),
                "dear_iron": _recipe(sell_price=90),
                "cheap_iron": _recipe(sell_price=20),
            }
        )

        self.assertEqual(["cheap_iron", "dear_iron", "cheap_copper"], list(catalog))


if __name__ == "__main__":
    unittest.main()
