import random

import numpy as np
import pytest

import core_game as cg
from adapter import CoreGameAdapter
from .conftest import grid_from_rows


class TestPieces:
    @pytest.mark.parametrize("name", sorted(cg.tetrominoes))
    def test_four_rotations_restore_shape(self, name):
        shape = cg.tetrominoes[name]
        rotated = shape
        for _ in range(4):
            rotated = cg.rotate(rotated)
        assert rotated.shape == shape.shape
        assert np.array_equal(rotated, shape)

    def test_rotate_is_clockwise(self):
        t = cg.tetrominoes["T"]
        assert cg.rotate(t).tolist() == [[0, 1], [1, 1], [0, 1]]

    def test_rotate_does_not_mutate_input(self):
        s = cg.tetrominoes["S"].copy()
        cg.rotate(s, 3)
        assert np.array_equal(s, cg.tetrominoes["S"])

    def test_rotate_works_on_plain_lists(self):
        assert cg.rotate([[1, 2, 3]]).tolist() == [[1], [2], [3]]

    def test_rotations_returns_four_states(self):
        states = cg.rotations(cg.tetrominoes["I"])
        assert len(states) == 4
        assert states[0].shape == (1, 4)
        assert states[1].shape == (4, 1)

    def test_color_ids_are_distinct(self):
        for name, shape in cg.tetrominoes.items():
            assert set(np.unique(shape).tolist()) == {0, cg.TETROMINO_COLORS[name]}
        assert sorted(cg.TETROMINO_COLORS.values()) == list(range(1, 8))


class TestCollision:
    def test_inside_empty_board(self, empty_grid):
        assert not cg.check_collision(empty_grid, cg.tetrominoes["O"], 0, 0)
        assert not cg.check_collision(empty_grid, cg.tetrominoes["O"], 10, 18)

    @pytest.mark.parametrize("x,y", [(-1, 0), (11, 0), (0, 19), (0, -1)])
    def test_out_of_bounds(self, empty_grid, x, y):
        assert cg.check_collision(empty_grid, cg.tetrominoes["O"], x, y)

    def test_overlap(self, empty_grid):
        empty_grid[19, 3] = 4
        assert cg.check_collision(empty_grid, cg.tetrominoes["O"], 2, 18)
        assert not cg.check_collision(empty_grid, cg.tetrominoes["O"], 4, 18)

    def test_empty_piece_cells_never_collide(self, empty_grid):
        # S has an empty bottom-right cell
        empty_grid[19, 2] = 1
        assert not cg.check_collision(empty_grid, cg.tetrominoes["S"], 0, 18)


class TestPlacement:
    def test_lock_writes_color_ids(self, empty_grid):
        cg.lock_piece(empty_grid, cg.tetrominoes["T"], 4, 18)
        assert empty_grid[18, 4:7].tolist() == [1, 1, 1]
        assert empty_grid[19, 4:7].tolist() == [0, 1, 0]
        assert np.count_nonzero(empty_grid) == 4

    def test_lock_skips_cells_outside(self, empty_grid):
        cg.lock_piece(empty_grid, cg.tetrominoes["I"], 10, 19)
        assert empty_grid[19, 10:].tolist() == [5, 5]
        assert np.count_nonzero(empty_grid) == 2

    def test_drop_on_empty_board(self, empty_grid):
        assert cg.get_drop_y(empty_grid, cg.tetrominoes["I"], 0) == 19
        assert cg.get_drop_y(empty_grid, cg.rotate(cg.tetrominoes["I"]), 0) == 16

    def test_drop_blocked_at_top(self, empty_grid):
        empty_grid[0, 0] = 1
        assert cg.get_drop_y(empty_grid, cg.tetrominoes["O"], 0) == -1


class TestSweep:
    def test_single_bottom_row(self):
        grid = grid_from_rows(
            "..##........",
            "############",
        )
        before = grid.copy()
        assert cg.clear_lines(grid) == 1
        expected = np.vstack([np.zeros((1, cg.COLS), dtype=np.int8), before[:-1]])
        assert np.array_equal(grid, expected)

    def test_no_full_rows(self):
        grid = grid_from_rows("###########.")
        before = grid.copy()
        assert cg.clear_lines(grid) == 0
        assert np.array_equal(grid, before)

    def test_keeps_order_of_remaining_rows(self):
        grid = grid_from_rows(
            "#...........",
            "############",
            ".#..........",
            "############",
        )
        assert cg.clear_lines(grid) == 2
        assert grid[19].tolist()[:2] == [0, 1]
        assert grid[18].tolist()[:2] == [1, 0]
        assert np.count_nonzero(grid[:18]) == 0

    def test_sweep_is_in_place(self):
        grid = grid_from_rows("############")
        same = grid
        cg.clear_lines(grid)
        assert same is grid
        assert grid.shape == (cg.ROWS, cg.COLS)

    def test_four_lines_score_950(self):
        grid = grid_from_rows(*["############"] * 4)
        lines = cg.clear_lines(grid)
        assert lines == 4
        assert cg.sweep_score(lines) == 10 + 20 + 40 + 80 + 800
        assert not grid.any()

    @pytest.mark.parametrize("lines,score", [(0, 0), (1, 10), (2, 30), (3, 70)])
    def test_cascading_score(self, lines, score):
        assert cg.sweep_score(lines) == score


class TestBoardQueries:
    def test_column_heights(self):
        grid = grid_from_rows(
            "#...........",
            "#.#.........",
            "###........#",
        )
        heights = cg.column_heights(grid).tolist()
        assert heights == [3, 1, 2] + [0] * 8 + [1]

    def test_game_over_on_top_row(self, empty_grid):
        assert not cg.is_game_over(empty_grid)
        empty_grid[0, 5] = 3
        assert cg.is_game_over(empty_grid)

    def test_spawn_column_is_centered(self):
        assert cg.spawn_x(cg.tetrominoes["I"]) == 4
        assert cg.spawn_x(cg.tetrominoes["O"]) == 5


class TestAdapter:
    def test_grid_matches_board_size(self):
        grid = CoreGameAdapter().create_grid()
        assert grid.shape == (cg.ROWS, cg.COLS)
        assert not grid.any()

    def test_seeded_pieces_repeat(self):
        a = CoreGameAdapter(random.Random(9))
        b = CoreGameAdapter(random.Random(9))
        assert [a.new_tetromino()[0] for _ in range(20)] == [b.new_tetromino()[0] for _ in range(20)]

    def test_piece_is_a_copy(self):
        name, piece = CoreGameAdapter(random.Random(1)).new_tetromino()
        piece[:] = 0
        assert cg.tetrominoes[name].any()
