import numpy as np
import pytest

import core_game as cg
from ai_agent import AIAgent, FEATURE_KEYS
from weight_store import WeightStore, WeightStoreError


def grid_from_rows(*rows, width=cg.COLS, height=cg.ROWS):
    """Build a grid whose bottom rows are given as strings, '#' filled and '.' empty."""
    grid = cg.create_grid(width, height)
    for offset, row in enumerate(reversed(rows)):
        assert len(row) == width
        grid[height - 1 - offset] = [1 if c == "#" else 0 for c in row]
    return grid


class FailingStore(WeightStore):
    def __init__(self):
        self.calls = 0

    def get_weights(self):
        self.calls += 1
        raise WeightStoreError("service unavailable")

    def set_weights(self, weights, generation):
        self.calls += 1
        raise WeightStoreError("service unavailable")


@pytest.fixture
def empty_grid():
    return cg.create_grid()


@pytest.fixture
def agent():
    return AIAgent()


@pytest.fixture
def lines_only_weights():
    weights = {k: 0.0 for k in FEATURE_KEYS}
    weights["complete_lines"] = 1.0
    return weights


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def no_sleep():
    delays = []
    return delays, delays.append
