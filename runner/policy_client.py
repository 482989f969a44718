"""Asyncio driver for one mini-game's adaptive-difficulty loop."""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Coroutine, Dict, Optional, Set, Tuple

from agent.actions import Action, PolicyError, Transition
from agent.buffer import DEFAULT_BATCH_TRIGGER, ExperienceBuffer, FlushBatch
from agent.episode import EpisodeState, EpisodeStateMachine
from agent.state import StateVector
from games.base import MiniGame
from runner.transport import PostResult, Transport

LOGGER = logging.getLogger(__name__)

ResultSink = Callable[[str], None]


class Phase(enum.Enum):
    IDLE = "idle"
    AWAITING_ACTION = "awaiting_action"
    APPLYING = "applying"
    AWAITING_TRAIN_ACK = "awaiting_train_ack"


@dataclass
class CycleOutcome:
    applied: bool = False
    recorded: bool = False
    reward: float | None = None
    error: str | None = None
    episode_state: EpisodeState = EpisodeState.RUNNING


class PolicyClient:
    """Runs sample -> query -> apply -> reward -> record for one game.

    Network failures and malformed responses only skip the current cycle.
    The loop ends when the episode reaches a terminal state or ``stop()`` is
    called. Training and session-log posts run as tracked background tasks.
    """

    def __init__(
        self,
        game: MiniGame,
        transport: Transport,
        *,
        training_mode: bool = True,
        batch_trigger: int = DEFAULT_BATCH_TRIGGER,
        session_logging: bool = True,
        result_sink: Optional[ResultSink] = None,
        interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.game = game
        self.transport = transport
        self.training_mode = training_mode
        self.session_logging = session_logging
        self.result_sink = result_sink
        self.interval_override = interval
        self.buffer = ExperienceBuffer(batch_trigger)
        self.episode = EpisodeStateMachine(game.episode_rules(), on_terminal=self._show_result, clock=clock)
        self.phase = Phase.IDLE
        self.last_score = game.score()
        self.cycles = 0
        self.failed_cycles = 0
        self._sleep = sleep
        self._previous: Optional[Tuple[StateVector, Action]] = None
        self._background: Set[asyncio.Task] = set()
        self._flush_task: Optional[asyncio.Task] = None
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def interval(self) -> float:
        if self.interval_override is not None:
            return self.interval_override
        return self.game.update_interval

    async def run(self) -> EpisodeState:
        """Loop until the episode ends; waits for background posts before returning."""
        self._task = asyncio.current_task()
        self._stopped = False
        LOGGER.info("Starting %s loop (interval %.1fs, training=%s)", self.game.name, self.interval, self.training_mode)
        while not self._stopped and not self.episode.done:
            await self._sleep(self.interval)
            if self._stopped:
                break
            try:
                await self.run_cycle()
            except Exception:
                LOGGER.exception("Unexpected error in %s cycle", self.game.name)
                self.failed_cycles += 1
                self.phase = Phase.IDLE
                await self._check_episode()
        if self.episode.done:
            await self.wait_background()
        self.phase = Phase.IDLE
        LOGGER.info("%s loop finished: %s after %d cycles", self.game.name, self.episode.state.value, self.cycles)
        return self.episode.state

    async def run_cycle(self) -> CycleOutcome:
        game = self.game
        self.cycles += 1
        elapsed = self.episode.elapsed()
        game.update_metrics(elapsed)
        state = game.sample()
        if self.session_logging:
            self._log_session(state, elapsed)

        outcome = CycleOutcome()
        try:
            self.phase = Phase.AWAITING_ACTION
            result = await self._post(game.action_path, game.policy_request(state, self.training_mode))
            if not result.success:
                raise PolicyError(result.error or result.skip_reason or "policy request failed")
            action = game.decode_action(result.response)
            self.phase = Phase.APPLYING
            game.apply(action)
        except PolicyError as exc:
            LOGGER.warning("Skipping %s cycle %d: %s", game.name, self.cycles, exc)
            self.failed_cycles += 1
            outcome.error = str(exc)
            outcome.episode_state = await self._check_episode()
            self.last_score = game.score()
            self.phase = Phase.IDLE
            return outcome

        outcome.applied = True
        next_state = game.sample()
        score = game.score()
        context = game.reward_context(score - self.last_score, elapsed)
        outcome.reward = game.reward(state, action, next_state, context)
        episode_state = self.episode.evaluate(score)

        if self._previous is not None:
            prev_state, prev_action = self._previous
            self.buffer.append(
                Transition(
                    state=prev_state,
                    action=prev_action,
                    reward=outcome.reward,
                    next_state=state,
                    done=episode_state.terminal,
                    log_prob=game.transition_log_prob(prev_action),
                )
            )
            outcome.recorded = True
            if not episode_state.terminal:
                self._maybe_flush()

        self._previous = (state, action)
        self.last_score = score
        outcome.episode_state = episode_state
        if episode_state.terminal:
            await self._finish_episode()
        self.phase = Phase.IDLE
        return outcome

    def stop(self) -> None:
        """Cancel the loop and any background posts without further side effects."""
        self._stopped = True
        current = asyncio.current_task()
        if self._task is not None and self._task is not current and not self._task.done():
            self._task.cancel()
        for task in list(self._background):
            if task is not current:
                task.cancel()

    def reset(self) -> None:
        """Prepare a fresh episode on the same game instance."""
        self.game.reset()
        self.buffer.clear()
        self.episode.reset()
        self._previous = None
        self.last_score = self.game.score()
        self._stopped = False

    async def wait_background(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _check_episode(self) -> EpisodeState:
        state = self.episode.evaluate(self.game.score())
        if state.terminal:
            await self._finish_episode()
        return state

    async def _finish_episode(self) -> None:
        self._stopped = True
        if self._flush_task is not None and not self._flush_task.done():
            await asyncio.gather(self._flush_task, return_exceptions=True)
        if self.training_mode and len(self.buffer) and not self.buffer.flush_in_flight:
            self.phase = Phase.AWAITING_TRAIN_ACK
            await self._send_batch(self.buffer.begin_flush())

    def _maybe_flush(self) -> None:
        if not self.training_mode or not self.buffer.ready():
            return
        batch = self.buffer.begin_flush()
        self._flush_task = self._spawn(self._send_batch(batch))

    async def _send_batch(self, batch: FlushBatch) -> bool:
        """Post one batch; the batch is always released, even when cancelled."""
        success = False
        reason: str | None = None
        try:
            payload = self.game.train_payload(batch.transitions)
            result = await self._post(self.game.train_path, payload)
            success = result.success
            reason = result.error or result.skip_reason
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
        finally:
            self.buffer.complete_flush(batch, success)
        if success:
            LOGGER.info("Trained %s on %d transitions", self.game.name, len(batch.transitions))
        else:
            LOGGER.warning(
                "Training request for %s failed; keeping %d transitions: %s",
                self.game.name,
                len(self.buffer),
                reason,
            )
        return success

    def _log_session(self, state: StateVector, elapsed: float) -> None:
        path = self.game.session_log_path
        if path is None:
            return
        payload = self.game.session_log(state, elapsed)
        if payload is None:
            return
        self._spawn(self._post_session_log(path, payload))

    async def _post_session_log(self, path: str, payload: Dict[str, Any]) -> None:
        result = await self._post(path, payload)
        if not result.success:
            LOGGER.warning("Session log for %s not stored: %s", self.game.name, result.error or result.skip_reason)

    async def _post(self, path: str, payload: Dict[str, Any]) -> PostResult:
        return await asyncio.to_thread(self.transport.post_json, path, payload)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Background request for %s failed", self.game.name, exc_info=exc)

    def _show_result(self, outcome: str) -> None:
        LOGGER.info("%s episode result: %s", self.game.name, outcome)
        if self.result_sink is not None:
            self.result_sink(outcome)
