import logging
import random
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import core_game as cg
from adapter import CoreGameAdapter
from ai_agent import AIAgent, DEFAULT_WEIGHTS, validate_weights
from weight_store import WeightStore, save_weights

logger = logging.getLogger(__name__)

DEFAULT_GAMES = 1000
MAX_MOVES = 1000
LINE_REWARD = 100

# Applied after a game beats the best score so far
NUDGE = {
    "complete_lines": 1.1,
    "aggregate_height": 0.95,
    "holes": 0.9,
    "bumpiness": 0.95,
}
PERTURBATION = 0.1  # total width of the jitter, i.e. +/-5%


class TrainerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"


@dataclass
class GameResult:
    index: int
    score: int
    lines: int
    moves: int
    best_score: int


@dataclass
class TrainingResult:
    weights: Dict[str, float]
    generation: int
    best_score: int
    games_played: int
    cancelled: bool = False
    save_error: Optional[str] = None
    history: List[GameResult] = field(default_factory=list)

    @property
    def average_score(self) -> float:
        if not self.history:
            return 0.0
        return sum(g.score for g in self.history) / len(self.history)


class WeightTrainer:
    """
    Single-chain hill climber over the evaluator's weight vector.

    Each game is played greedily with the current weights. A game that beats the
    best score becomes the incumbent and the weights get a fixed nudge; any other
    game sends the weights back to the incumbent with a small random jitter.
    """

    def __init__(self,
                 weights: Optional[Dict[str, float]] = None,
                 generation: int = 0,
                 games: int = DEFAULT_GAMES,
                 max_moves: int = MAX_MOVES,
                 seed: Optional[int] = None,
                 store: Optional[WeightStore] = None,
                 save_retries: int = 2,
                 save_backoff: float = 0.5):
        if games < 0:
            raise ValueError("games must be >= 0")
        if max_moves <= 0:
            raise ValueError("max_moves must be > 0")
        self.weights = validate_weights(weights if weights is not None else DEFAULT_WEIGHTS)
        self.generation = generation
        self.games = games
        self.max_moves = max_moves
        self.rng = random.Random(seed)
        self.store = store
        self.save_retries = save_retries
        self.save_backoff = save_backoff

        self.state = TrainerState.IDLE
        self.game_index = 0
        self.best_weights = dict(self.weights)
        self.best_score = 0
        self.history: List[GameResult] = []
        self._cancel = threading.Event()

    def cancel(self):
        """Stop before the next game starts."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def play_game(self, weights: Dict[str, float]) -> GameResult:
        """One self-play game from an empty board; scores 100 per cleared line."""
        game = CoreGameAdapter(self.rng)
        grid = game.create_grid()
        ai = AIAgent(weights)

        score = 0
        lines_total = 0
        moves = 0
        while not cg.is_game_over(grid) and moves < self.max_moves:
            _, piece = game.new_tetromino()
            move = ai.choose_action(grid, piece)
            if move is None:
                break
            cg.lock_piece(grid, move.shape, move.x, move.y)
            lines = cg.clear_lines(grid)
            lines_total += lines
            score += LINE_REWARD * lines
            moves += 1

        return GameResult(self.game_index, score, lines_total, moves, self.best_score)

    def nudge(self):
        for k, factor in NUDGE.items():
            self.weights[k] *= factor

    def perturb(self):
        for k in self.weights:
            self.weights[k] *= 1 + (self.rng.random() - 0.5) * PERTURBATION

    def update(self, result: GameResult):
        if result.score > self.best_score:
            self.best_score = result.score
            self.best_weights = dict(self.weights)
            self.nudge()
        else:
            self.weights = dict(self.best_weights)
            self.perturb()
        result.best_score = self.best_score

    def run(self) -> TrainingResult:
        if self.state is TrainerState.RUNNING:
            raise RuntimeError("trainer is already running")
        if self.state is TrainerState.DONE:
            raise RuntimeError("trainer has already run; make a new one")
        self.state = TrainerState.RUNNING
        logger.info("[Train] Starting %d games from generation %d with weights %s",
                    self.games, self.generation, self.weights)

        for game_index in range(self.games):
            if self.cancelled:
                logger.info("[Train] Cancelled after %d games", game_index)
                break
            self.game_index = game_index
            result = self.play_game(dict(self.weights))
            self.update(result)
            self.history.append(result)
            logger.info("[Train] Game %d/%d: score=%d lines=%d moves=%d best=%d",
                        game_index + 1, self.games, result.score, result.lines,
                        result.moves, self.best_score)

        self.weights = dict(self.best_weights)
        outcome = TrainingResult(
            weights=dict(self.weights),
            generation=self.generation,
            best_score=self.best_score,
            games_played=len(self.history),
            cancelled=self.cancelled,
            history=list(self.history),
        )

        if not self.cancelled:
            self.generation += 1
            outcome.generation = self.generation
            if self.store is not None:
                saved = save_weights(self.store, self.weights, self.generation,
                                     retries=self.save_retries, backoff=self.save_backoff)
                if not saved.ok:
                    outcome.save_error = saved.reason
                    logger.error("[Train] Could not save generation %d: %s", self.generation, saved.reason)

        self.state = TrainerState.DONE
        logger.info("[Train] Done: games=%d avg=%.1f best=%d generation=%d",
                    outcome.games_played, outcome.average_score, self.best_score, self.generation)
        return outcome
