import unittest

from config import BELT_COST
from game.entities import Belt, Building, GameState, Position
from game.pathfinding import belt_cost, build_obstacle_set, find_path


def cells(*pairs):
    return [Position(x, y) for x, y in pairs]


class FindPathTests(unittest.TestCase):
    def test_adjacent_and_identical_cells_have_no_route(self):
        self.assertIsNone(find_path(Position(0, 0), Position(1, 0), set(), 5, 5))
        self.assertIsNone(find_path(Position(0, 0), Position(0, 1), set(), 5, 5))
        self.assertIsNone(find_path(Position(2, 2), Position(2, 2), set(), 5, 5))

    def test_straight_route_includes_both_endpoints(self):
        path = find_path(Position(0, 0), Position(3, 0), set(), 5, 5)
        self.assertEqual(cells((0, 0), (1, 0), (2, 0), (3, 0)), path)

    def test_route_is_shortest_and_four_connected(self):
        path = find_path(Position(0, 0), Position(3, 4), set(), 6, 6)

        self.assertEqual(8, len(path))
        for a, b in zip(path, path[1:]):
            self.assertEqual(1, abs(a.x - b.x) + abs(a.y - b.y))

    def test_detours_around_wall(self):
        wall = set(cells((2, 0), (2, 1), (2, 2)))
        path = find_path(Position(0, 0), Position(4, 0), wall, 5, 5)

        self.assertEqual(11, len(path))
        self.assertFalse(wall.intersection(path))
        self.assertEqual(Position(0, 0), path[0])
        self.assertEqual(Position(4, 0), path[-1])

    def test_blocked_map_returns_none(self):
        wall = set(cells((1, 0), (1, 1), (1, 2)))
        self.assertIsNone(find_path(Position(0, 0), Position(2, 0), wall, 3, 3))

    def test_goal_is_passable_even_when_listed_as_obstacle(self):
        path = find_path(Position(0, 0), Position(2, 0), {Position(2, 0), Position(0, 0)}, 3, 3)
        self.assertEqual(cells((0, 0), (1, 0), (2, 0)), path)

    def test_route_stays_inside_map(self):
        path = find_path(Position(0, 0), Position(0, 2), {Position(0, 1)}, 2, 3)

        self.assertEqual(cells((0, 0), (1, 0), (1, 1), (1, 2), (0, 2)), path)

    def test_identical_inputs_give_identical_routes(self):
        obstacles = set(cells((3, 3), (4, 2), (2, 5)))
        first = find_path(Position(1, 1), Position(6, 6), obstacles, 8, 8)
        second = find_path(Position(1, 1), Position(6, 6), set(obstacles), 8, 8)
        self.assertEqual(first, second)

    def test_rejects_empty_map(self):
        with self.assertRaises(ValueError):
            find_path(Position(0, 0), Position(2, 0), set(), 0, 3)


class ObstacleTests(unittest.TestCase):
    def test_obstacles_are_buildings_and_belt_interiors(self):
        state = GameState()
        state.buildings.append(Building("a", "junction", Position(0, 0)))
        state.buildings.append(Building("b", "junction", Position(3, 0)))
        state.belts.append(Belt("belt", cells((0, 0), (1, 0), (2, 0), (3, 0))))

        obstacles = build_obstacle_set(state, extra=[Position(9, 9)])
        self.assertEqual(set(cells((0, 0), (3, 0), (1, 0), (2, 0), (9, 9))), obstacles)

    def test_cost_counts_interior_cells_only(self):
        self.assertEqual(3 * BELT_COST, belt_cost(cells((0, 0), (1, 0), (2, 0), (3, 0), (4, 0))))
        self.assertEqual(0, belt_cost(cells((0, 0), (1, 0))))


if __name__ == "__main__":
    unittest.main()
