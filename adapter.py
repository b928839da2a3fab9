# adapter.py
import random
from typing import Optional, Tuple

import numpy as np
import core_game as cg


class CoreGameAdapter:
    # expose the board size AIAgent/trainer expect
    cols = cg.cols
    rows = cg.rows

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()
        self._names = sorted(cg.tetrominoes.keys())

    def create_grid(self) -> np.ndarray:
        return cg.create_grid(self.cols, self.rows)

    def new_tetromino(self) -> Tuple[str, np.ndarray]:
        """Uniform pick among the 7 shapes; returns (name, fresh matrix copy)."""
        name = self.rng.choice(self._names)
        return name, cg.tetrominoes[name].copy()
