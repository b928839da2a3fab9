#!/usr/bin/env python3
"""
Headless Tetris AI: watch the agent play, or tune its weights by self-play.
"""
import argparse
import asyncio
import logging
import os
import random
import sys
import time
from typing import Optional

import core_game as cg
from hill_climb import MAX_MOVES
from session import GameSession, PlayLoop, WeightSync, load_weights, make_trainer, train_session
from weight_store import WEIGHTS_FILE, HttpWeightStore, JsonWeightStore, WeightStore, fetch_weights


def make_store(args) -> WeightStore:
    url = args.url or os.environ.get("TETRIS_WEIGHTS_URL")
    if url:
        return HttpWeightStore(url, timeout=args.timeout)
    return JsonWeightStore(args.store)


def print_weights(weights, generation: Optional[int] = None):
    if generation is not None:
        print(f"Generation: {generation}")
    for key, value in weights.items():
        print(f"  {key:20s}: {value:8.4f}")


async def run_play(args) -> GameSession:
    store = make_store(args)
    session = GameSession(rng=random.Random(args.seed))
    await load_weights(session, store, timeout=args.timeout)

    session.start_playing()
    session.set_ai(True)
    if args.sync:
        sync = WeightSync(session, store, interval=args.sync, timeout=args.timeout)
        session.attach_sync(sync)
        sync.start()

    loop = PlayLoop(session, interval=args.interval, max_ticks=args.moves)
    try:
        await loop.start()
    finally:
        session.stop_playing()
    return session


async def run_train(args):
    store = make_store(args)
    session = GameSession()
    await load_weights(session, store, timeout=args.timeout)
    trainer = make_trainer(session, games=args.games, max_moves=args.max_moves, seed=args.seed, store=store)
    return await train_session(session, trainer)


def cmd_play(args):
    start_time = time.time()
    session = asyncio.run(run_play(args))
    duration = time.time() - start_time

    print("\nDemo Results:")
    print(f"Pieces: {session.total_moves}")
    print(f"Lines: {session.total_lines}")
    print(f"Best score: {session.best_score}")
    print(f"Games over: {session.games_over}")
    print(f"Current game: score={session.score} lines={session.lines} pieces={session.moves}")
    print(f"Duration: {duration:.1f}s")
    if args.show_board:
        print(cg.render(session.grid))
    return 0


def cmd_train(args):
    result = asyncio.run(run_train(args))

    print("\n" + "=" * 50)
    print("TRAINING COMPLETE" if not result.cancelled else "TRAINING CANCELLED")
    print("=" * 50)
    print(f"Games: {result.games_played}")
    print(f"Average score: {result.average_score:.1f}")
    print(f"Best score: {result.best_score}")
    print_weights(result.weights, result.generation)
    if result.save_error:
        print(f"[Warning] Weights were not saved: {result.save_error}")
        return 1
    return 0


def cmd_weights(args):
    result = fetch_weights(make_store(args))
    if not result.ok:
        print(f"Could not load weights: {result.reason}")
        return 1
    print_weights(result.value.weights, result.value.generation)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Headless Tetris AI")
    parser.add_argument("--store", default=WEIGHTS_FILE, help="JSON weights file")
    parser.add_argument("--url", default=None, help="weights service base URL (overrides --store)")
    parser.add_argument("--timeout", type=float, default=5.0, help="seconds to wait for the weights store")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    play = sub.add_parser("play", help="let the AI play")
    play.add_argument("--moves", type=int, default=500)
    play.add_argument("--seed", type=int, default=None)
    play.add_argument("--interval", type=float, default=0.0, help="seconds between ticks")
    play.add_argument("--sync", type=float, default=0.0, help="weight sync interval, 0 to disable")
    play.add_argument("--show-board", action="store_true")
    play.set_defaults(func=cmd_play)

    train = sub.add_parser("train", help="tune weights by self-play")
    train.add_argument("--games", type=int, default=100)
    train.add_argument("--max-moves", type=int, default=MAX_MOVES)
    train.add_argument("--seed", type=int, default=None)
    train.set_defaults(func=cmd_train)

    weights = sub.add_parser("weights", help="show stored weights")
    weights.set_defaults(func=cmd_weights)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(name)s %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
