"""Win/lose/timeout tracking for one mini-game episode."""
from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)


class EpisodeState(enum.Enum):
    RUNNING = "running"
    WON = "won"
    LOST = "lost"

    @property
    def terminal(self) -> bool:
        return self is not EpisodeState.RUNNING

    @property
    def outcome(self) -> str | None:
        if self is EpisodeState.WON:
            return "win"
        if self is EpisodeState.LOST:
            return "lose"
        return None


@dataclass(frozen=True)
class EpisodeRules:
    win_score: float
    time_limit: float
    lose_score: float | None = None


class EpisodeStateMachine:
    """Latches the first terminal result and reports it exactly once."""

    def __init__(
        self,
        rules: EpisodeRules,
        on_terminal: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rules = rules
        self.on_terminal = on_terminal
        self._clock = clock
        self.state = EpisodeState.RUNNING
        self.started_at = clock()
        self._reported = False

    @property
    def done(self) -> bool:
        return self.state.terminal

    def elapsed(self, now: float | None = None) -> float:
        current = self._clock() if now is None else now
        return max(0.0, current - self.started_at)

    def evaluate(self, score: float, now: float | None = None) -> EpisodeState:
        if self.state.terminal:
            return self.state

        elapsed = self.elapsed(now)
        if score >= self.rules.win_score:
            self.state = EpisodeState.WON
        elif elapsed >= self.rules.time_limit:
            self.state = EpisodeState.LOST
        elif self.rules.lose_score is not None and score <= self.rules.lose_score:
            self.state = EpisodeState.LOST

        if self.state.terminal:
            LOGGER.info(
                "Episode finished: %s (score=%s, elapsed=%.1fs)",
                self.state.value,
                score,
                elapsed,
            )
            self._report()
        return self.state

    def _report(self) -> None:
        if self._reported:
            return
        self._reported = True
        if self.on_terminal is None:
            return
        outcome = self.state.outcome
        try:
            self.on_terminal(outcome)
        except Exception:  # result display must not break the loop
            LOGGER.exception("Result hook failed for outcome %s", outcome)

    def reset(self) -> None:
        self.state = EpisodeState.RUNNING
        self.started_at = self._clock()
        self._reported = False
