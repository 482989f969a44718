"""Command-line entry point: run one mini-game loop against recorded telemetry."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Mapping, Sequence

from agent.difficulty import StaticConfigProvider
from agent.episode import EpisodeState
from games.registry import GAMES, create_game
from runner.config import LoopConfig, load_loop_config
from runner.policy_client import PolicyClient
from runner.replay import ReplayError, load_records, replay
from runner.transport import HttpTransport

LOGGER = logging.getLogger(__name__)
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run an adaptive-difficulty loop for one mini-game.")
    parser.add_argument("game", choices=sorted(GAMES), help="Mini-game to drive")
    parser.add_argument("--telemetry", type=Path, help="JSONL telemetry recording to replay")
    parser.add_argument("--speed", type=float, default=1.0, help="Replay speed multiplier")
    parser.add_argument("--base-url", help="Override POLICY_BASE_URL")
    parser.add_argument("--interval", type=float, help="Override the seconds between policy queries")
    parser.add_argument("--difficulty-config", type=Path, help="JSON file with a gameConfigs object")
    parser.add_argument("--no-training", action="store_true", help="Never send training batches")
    parser.add_argument("--no-session-log", action="store_true", help="Skip session-log posts")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def apply_cli_overrides(config: LoopConfig, args: argparse.Namespace) -> LoopConfig:
    if args.base_url:
        config.policy_base_url = args.base_url.rstrip("/")
    if args.interval is not None:
        if args.interval > 0:
            config.update_interval_seconds = args.interval
        else:
            LOGGER.warning("--interval must be positive; ignoring %s", args.interval)
    if args.difficulty_config is not None:
        config.difficulty_config_path = args.difficulty_config
    if args.no_training:
        config.training_mode = False
    if args.no_session_log:
        config.session_logging = False
    if args.debug:
        config.debug = True
    return config


def _configure_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)


async def run_session(client: PolicyClient, records: List[dict], speed: float) -> EpisodeState:
    feeder = asyncio.create_task(replay(client.game, records, speed=speed)) if records else None
    try:
        return await client.run()
    finally:
        if feeder is not None and not feeder.done():
            feeder.cancel()
            await asyncio.gather(feeder, return_exceptions=True)


def main(argv: Sequence[str] | None = None, env: Mapping[str, str] | None = None) -> int:
    args = parse_args(argv)
    config = apply_cli_overrides(load_loop_config(env if env is not None else os.environ), args)
    _configure_logging(config.debug)

    records: List[dict] = []
    if args.telemetry is not None:
        try:
            records = load_records(args.telemetry)
        except ReplayError as exc:
            LOGGER.error("%s", exc)
            return 1

    provider = None
    if config.difficulty_config_path is not None:
        provider = StaticConfigProvider.from_file(config.difficulty_config_path)
    game = create_game(args.game, provider)
    if provider is None:
        LOGGER.info("No difficulty config supplied; %s uses built-in bounds", game.name)

    transport = HttpTransport(config.policy_base_url, timeout_seconds=config.timeout_seconds)
    client = PolicyClient(
        game,
        transport,
        training_mode=config.training_mode,
        batch_trigger=config.batch_trigger,
        session_logging=config.session_logging,
        interval=config.update_interval_seconds,
    )
    try:
        state = asyncio.run(run_session(client, records, args.speed))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted; %s loop stopped", game.name)
        return 130
    LOGGER.info(
        "Session summary: outcome=%s cycles=%d failed=%d buffered=%d",
        state.outcome or state.value,
        client.cycles,
        client.failed_cycles,
        len(client.buffer),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
