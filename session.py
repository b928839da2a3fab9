"""
Game session state plus the cooperative tasks that drive it.

Play and training are modal: a session is either idle, playing on its own board,
or lending its weights to a trainer that plays on boards of its own.
"""
import asyncio
import logging
import random
import time
from enum import Enum
from typing import Dict, Optional

import numpy as np

import core_game as cg
from adapter import CoreGameAdapter
from ai_agent import AIAgent, DEFAULT_WEIGHTS, Move, validate_weights
from hill_climb import TrainingResult, WeightTrainer
from weight_store import Err, WeightRecord, WeightStore, fetch_weights, with_default

logger = logging.getLogger(__name__)

SYNC_INTERVAL = 1.0
SYNC_TIMEOUT = 5.0
TICK_INTERVAL = 0.05


class Mode(Enum):
    IDLE = "idle"
    PLAYING = "playing"
    TRAINING = "training"


class SessionBusyError(RuntimeError):
    """Raised when play and training would overlap on one session."""


class GameSession:
    def __init__(self,
                 weights: Optional[Dict[str, float]] = None,
                 generation: int = 0,
                 rng: Optional[random.Random] = None):
        self.game = CoreGameAdapter(rng)
        self.grid: np.ndarray = self.game.create_grid()
        self.weights = validate_weights(weights if weights is not None else DEFAULT_WEIGHTS)
        self.generation = generation
        self.agent = AIAgent(self.weights)

        self.mode = Mode.IDLE
        self.ai_enabled = False
        self.sync: Optional["WeightSync"] = None

        self.piece_name: Optional[str] = None
        self.piece: Optional[np.ndarray] = None
        self.position = (0, 0)
        self.score = 0
        self.lines = 0
        self.moves = 0
        self.games_over = 0
        # across every game since the session started; reset() leaves these alone
        self.total_lines = 0
        self.total_moves = 0
        self.best_score = 0

    # ----------------------------
    # Weights
    # ----------------------------
    def set_weights(self, record: WeightRecord):
        weights = validate_weights(record.weights)
        self.weights = weights
        self.generation = record.generation
        self.agent = AIAgent(weights)

    def replace_weights(self, record: WeightRecord) -> bool:
        """Swap in record only while playing and only when the weights differ."""
        if self.mode is not Mode.PLAYING:
            return False
        if record.weights == self.weights:
            return False
        self.set_weights(record)
        logger.info("[Sync] Weights updated during play (generation %d): %s", self.generation, self.weights)
        return True

    # ----------------------------
    # Modes
    # ----------------------------
    def start_playing(self):
        if self.mode is Mode.TRAINING:
            raise SessionBusyError("cannot play while training")
        self.mode = Mode.PLAYING

    def stop_playing(self):
        if self.mode is Mode.PLAYING:
            self.mode = Mode.IDLE
        self._cancel_sync()

    def set_ai(self, enabled: bool):
        self.ai_enabled = enabled
        if not enabled:
            self._cancel_sync()

    def attach_sync(self, sync: "WeightSync"):
        self._cancel_sync()
        self.sync = sync

    def _cancel_sync(self):
        if self.sync is not None:
            self.sync.cancel()
            self.sync = None

    def begin_training(self):
        if self.mode is Mode.PLAYING:
            raise SessionBusyError("stop play before training")
        if self.mode is Mode.TRAINING:
            raise SessionBusyError("already training")
        self.mode = Mode.TRAINING

    def end_training(self):
        if self.mode is Mode.TRAINING:
            self.mode = Mode.IDLE

    # ----------------------------
    # Board
    # ----------------------------
    def reset(self):
        self.grid[:] = 0
        self.score = 0
        self.lines = 0
        self.moves = 0
        self.piece = None
        self.piece_name = None

    def spawn(self) -> bool:
        """Bring in the next piece at the top; False means it collided (game over)."""
        self.piece_name, self.piece = self.game.new_tetromino()
        self.position = (cg.spawn_x(self.piece, self.grid.shape[1]), 0)
        return not cg.check_collision(self.grid, self.piece, *self.position)

    def game_over(self):
        self.games_over += 1
        logger.info("[Play] Game over: score=%d lines=%d moves=%d", self.score, self.lines, self.moves)
        self.reset()

    def apply_move(self, move: Move) -> int:
        """Lock move into the board, sweep, and add the sweep score. Returns lines cleared."""
        cg.lock_piece(self.grid, move.shape, move.x, move.y)
        cleared = cg.clear_lines(self.grid)
        self.score += cg.sweep_score(cleared)
        self.lines += cleared
        self.moves += 1
        self.total_lines += cleared
        self.total_moves += 1
        self.best_score = max(self.best_score, self.score)
        self.piece = None
        self.piece_name = None
        return cleared

    def tick(self) -> Optional[Move]:
        """One step of interactive play. With AI assist on, picks and applies the best move."""
        if self.mode is not Mode.PLAYING:
            raise SessionBusyError(f"session is {self.mode.value}, not playing")
        if self.piece is None and not self.spawn():
            self.game_over()
            return None
        if not self.ai_enabled:
            return None
        move = self.agent.choose_action(self.grid, self.piece)
        if move is None:
            self.game_over()
            return None
        self.apply_move(move)
        return move


class WeightSync:
    """Periodically re-reads persisted weights into a playing session."""

    def __init__(self, session: GameSession, store: WeightStore,
                 interval: float = SYNC_INTERVAL, timeout: float = SYNC_TIMEOUT):
        self.session = session
        self.store = store
        self.interval = interval
        self.timeout = timeout
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    def cancel(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            await self.sync_once()

    async def sync_once(self) -> bool:
        if self.session.mode is not Mode.PLAYING:
            return False
        result = await fetch_with_timeout(self.store, self.timeout, retries=0)
        if isinstance(result, Err):
            logger.warning("[Sync] Skipping update: %s", result.reason)
            return False
        return self.session.replace_weights(result.value)


class PlayLoop:
    """Drives session.tick() on a fixed interval until play stops or the task is cancelled."""

    def __init__(self, session: GameSession, interval: float = TICK_INTERVAL,
                 max_ticks: Optional[int] = None):
        self.session = session
        self.interval = interval
        self.max_ticks = max_ticks
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    def cancel(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self):
        while self.session.mode is Mode.PLAYING:
            if self.max_ticks is not None and self.ticks >= self.max_ticks:
                break
            self.session.tick()
            self.ticks += 1
            await asyncio.sleep(self.interval)


async def fetch_with_timeout(store: WeightStore, timeout: float, retries: int = 2):
    """
    fetch_weights in a worker thread. Retries stop at the same deadline, so the
    thread outlives the timeout by at most one in-flight attempt.
    """
    deadline = time.monotonic() + timeout

    def fetch():
        return fetch_weights(store, retries, deadline=deadline)

    try:
        return await asyncio.wait_for(asyncio.to_thread(fetch), timeout)
    except asyncio.TimeoutError:
        return Err(f"no answer within {timeout}s")


async def load_weights(session: GameSession, store: WeightStore, timeout: float = SYNC_TIMEOUT) -> WeightRecord:
    """Startup load; any failure leaves the session on the built-in defaults."""
    record = with_default(await fetch_with_timeout(store, timeout))
    session.set_weights(record)
    logger.info("[Store] Loaded generation %d: %s", record.generation, record.weights)
    return record


async def train_session(session: GameSession, trainer: WeightTrainer) -> TrainingResult:
    """
    Run trainer in a worker thread while the session is locked in training mode,
    then adopt the weights it settles on. Cancelling this coroutine stops the
    trainer after its current game.
    """
    session.begin_training()
    try:
        task = asyncio.ensure_future(asyncio.to_thread(trainer.run))
        try:
            result = await asyncio.shield(task)
        except asyncio.CancelledError:
            trainer.cancel()
            result = await task
            session.set_weights(WeightRecord(result.weights, result.generation))
            raise
        session.set_weights(WeightRecord(result.weights, result.generation))
        return result
    finally:
        session.end_training()


def make_trainer(session: GameSession, **kwargs) -> WeightTrainer:
    return WeightTrainer(weights=session.weights, generation=session.generation, **kwargs)
