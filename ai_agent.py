# ai_agent.py
import math
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import core_game as game  # expects: check_collision, lock_piece, rotations, get_drop_y

FEATURE_KEYS = (
    "aggregate_height",
    "complete_lines",
    "holes",
    "bumpiness",
    "wall_proximity",
)

DEFAULT_WEIGHTS: Dict[str, float] = {
    "aggregate_height": -0.510066,
    "complete_lines": 0.760666,
    "holes": -0.35663,
    "bumpiness": -0.184483,
    "wall_proximity": 0.25,
}

# Weight-independent adjustments
NEAR_LINE_BONUS = 3.0
NEAR_LINE_MAX_GAPS = 2
TOWER_THRESHOLD = 3
TOWER_FACTOR = 2.0
SEALED_PENALTY = 5.0


def validate_weights(weights: Dict[str, float]) -> Dict[str, float]:
    """Return a float copy of weights, or raise ValueError if it is not a full, finite weight vector."""
    if not isinstance(weights, dict):
        raise ValueError(f"weights must be a dict, got {type(weights).__name__}")
    missing = set(FEATURE_KEYS) - set(weights)
    extra = set(weights) - set(FEATURE_KEYS)
    if missing or extra:
        raise ValueError(f"weight keys mismatch: missing={sorted(missing)} extra={sorted(extra)}")
    clean = {}
    for k in FEATURE_KEYS:
        v = weights[k]
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError(f"weight {k!r} must be a finite number, got {v!r}")
        try:
            v = float(v)
        except OverflowError as e:
            raise ValueError(f"weight {k!r} is out of float range") from e
        if not math.isfinite(v):
            raise ValueError(f"weight {k!r} must be a finite number, got {v!r}")
        clean[k] = v
    return clean


@dataclass
class Move:
    rotation: int
    shape: np.ndarray
    x: int
    y: int

    def __eq__(self, other):
        if not isinstance(other, Move):
            return NotImplemented
        return (self.rotation == other.rotation and self.x == other.x and self.y == other.y
                and np.array_equal(self.shape, other.shape))


class AIAgent:
    def __init__(self, weights: Optional[Dict[str, float]] = None):
        self.weights: Dict[str, float] = validate_weights(weights if weights is not None else DEFAULT_WEIGHTS)

    # ----------------------------
    # Feature extraction (vectorized)
    # ----------------------------
    def extract_features(self, grid: np.ndarray) -> Dict[str, float]:
        occ = grid != 0

        heights = game.column_heights(grid)

        # Holes: empty cells below the topmost occupied in each column
        covered = np.logical_or.accumulate(occ, axis=0)
        holes = float(np.count_nonzero(covered & ~occ))

        return {
            "aggregate_height": float(np.sum(heights)),
            "complete_lines": float(np.count_nonzero(np.all(occ, axis=1))),
            "holes": holes,
            "bumpiness": float(np.sum(np.abs(np.diff(heights)))),
            "wall_proximity": float(heights[0] + heights[-1]),
        }

    def get_features(self, grid: np.ndarray) -> Dict[str, float]:
        return self.extract_features(grid)

    @staticmethod
    def near_complete_lines(grid: np.ndarray) -> int:
        filled = np.count_nonzero(grid != 0, axis=1)
        return int(np.count_nonzero(filled >= grid.shape[1] - NEAR_LINE_MAX_GAPS))

    @staticmethod
    def tower_penalty(grid: np.ndarray) -> float:
        diffs = np.abs(np.diff(game.column_heights(grid)))
        return float(TOWER_FACTOR * np.sum(diffs[diffs > TOWER_THRESHOLD]))

    @staticmethod
    def sealed_spaces(grid: np.ndarray) -> int:
        occ = grid != 0
        covered = np.logical_or.accumulate(occ, axis=0)
        holes = covered & ~occ
        # board edges count as blocked
        padded = np.pad(occ, ((0, 0), (1, 1)), constant_values=True)
        return int(np.count_nonzero(holes & padded[:, :-2] & padded[:, 2:]))

    def score_breakdown(self, grid: np.ndarray) -> Dict[str, float]:
        feats = self.extract_features(grid)
        linear = 0.0
        for k in FEATURE_KEYS:
            linear += self.weights[k] * feats[k]
        return {
            "linear": linear,
            "near_lines": NEAR_LINE_BONUS * self.near_complete_lines(grid),
            "towers": -self.tower_penalty(grid),
            "sealed": -SEALED_PENALTY * self.sealed_spaces(grid),
        }

    def evaluate_board(self, grid: np.ndarray) -> float:
        parts = self.score_breakdown(grid)
        return parts["linear"] + parts["near_lines"] + parts["towers"] + parts["sealed"]

    # ----------------------------
    # Simulation & decision
    # ----------------------------
    def generate_moves(self, grid: np.ndarray, piece: np.ndarray) -> List[Move]:
        """All legal drops of piece, in rotation-then-column order."""
        _, cols = grid.shape
        moves = []
        for rotation, shape in enumerate(game.rotations(piece)):
            w = shape.shape[1]
            for x in range(cols - w + 1):
                y = game.get_drop_y(grid, shape, x)
                if 0 <= y < grid.shape[0]:
                    moves.append(Move(rotation, shape, x, y))
        return moves

    def simulate_move(self, grid: np.ndarray, move: Move) -> np.ndarray:
        """Place the move on a copy of grid; full rows are left in place."""
        test_grid = grid.copy()
        game.lock_piece(test_grid, move.shape, move.x, move.y)
        return test_grid

    def choose_action(self, grid: np.ndarray, piece: np.ndarray) -> Optional[Move]:
        """
        Best move by evaluated score; the first enumerated move wins ties.
        Returns None when no legal placement exists (game over).
        """
        best_score = -math.inf
        best_move = None
        for move in self.generate_moves(grid, piece):
            score = self.evaluate_board(self.simulate_move(grid, move))
            if score > best_score:
                best_score = score
                best_move = move
        return best_move
