"""Name -> mini-game lookup used by the CLI and the dev policy service."""
from __future__ import annotations

from typing import Dict, Type

from agent.difficulty import DifficultyConfigProvider
from games.base import MiniGame
from games.bubbles import BubbleGame
from games.lanterns import LanternGame
from games.mirror import MirrorGame

GAMES: Dict[str, Type[MiniGame]] = {
    BubbleGame.name: BubbleGame,
    MirrorGame.name: MirrorGame,
    LanternGame.name: LanternGame,
}


def create_game(name: str, provider: DifficultyConfigProvider | None = None) -> MiniGame:
    try:
        game_cls = GAMES[name]
    except KeyError:
        raise ValueError(f"Unknown game '{name}'; expected one of: {', '.join(sorted(GAMES))}") from None
    config = provider.get(name) if provider is not None else None
    return game_cls(config)
