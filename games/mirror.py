"""Move copy: match a reference animation, scored on sustained similarity."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Mapping, Sequence, Tuple

from agent.actions import Action, ContinuousAction, MirrorAdjustments, PolicyError, Transition, decode_mirror_action
from agent.difficulty import Bounds, DifficultyConfig, resolve_bounds
from agent.episode import EpisodeRules
from agent.metrics import Counters, MetricWeights, clamp01
from agent.reward import RewardContext, mirror_reward
from agent.state import StateSampler, StateVector
from games.base import MiniGame

LOGGER = logging.getLogger(__name__)

STATE_SIZE = 7
HISTORY_SIZE = 5
SESSION_TIME = 180.0
WIN_SCORE = 30
SCORE_SCALE = 50.0
MAX_DIFFICULTY = 2

TRAIN_BATCH_SIZE = 64
TRAIN_EPOCHS = 10

# seconds a similarity must be held before the score moves
HOLD_ABOVE_SECONDS = 1.0
HOLD_BELOW_SECONDS = 2.0

UPPER_BOUNDS = Bounds(70.0, 95.0)
LOWER_BOUNDS = Bounds(50.0, 80.0)
GAP_BOUNDS = Bounds(2.0, 10.0)
THRESHOLD_MARGIN = 5.0
DIFFICULTY_STEP_THRESHOLD = 0.3

DIFFICULTY_NAMES = ("Easy", "Medium", "Hard")

WEIGHTS = MetricWeights(
    fatigue_error=0.0,
    fatigue_velocity=0.5,
    fatigue_time=0.5,
    engagement_task=0.3,
    engagement_active=0.5,
    engagement_rest=0.2,
    max_session_time=SESSION_TIME,
    success_mode="attempts",
)


@dataclass
class AnimationSet:
    name: str
    animations: Tuple[str, ...] = ()


@dataclass
class MirrorParameters:
    upper_threshold: float = 80.0
    lower_threshold: float = 70.0
    gap_between_actions: float = 5.0
    difficulty: int = 0
    animation_sets: List[AnimationSet] = field(
        default_factory=lambda: [AnimationSet(name) for name in DIFFICULTY_NAMES]
    )
    active_animations: Tuple[str, ...] = ()

    @property
    def difficulty_name(self) -> str:
        return self.animation_sets[self.difficulty].name


class MirrorScorer:
    """Turns a per-frame similarity stream into score and attempt counts.

    Similarity arrives in [0, 1]; thresholds are percentages. The score goes
    up once per second held at or above the upper threshold and down once
    per two seconds held at or below the lower one, never below zero.
    """

    def __init__(self, params: MirrorParameters):
        self.params = params
        self.history: Deque[float] = deque(maxlen=HISTORY_SIZE)
        self.reset()

    def reset(self) -> None:
        self.score = 0
        self.successful_attempts = 0
        self.total_attempts = 0
        self.time_above = 0.0
        self.time_below = 0.0
        self.current = 0.0
        self._above_latched = False
        self._below_latched = False
        self.history.clear()

    def observe(self, similarity: float, dt: float) -> None:
        self.current = similarity
        self.history.append(similarity)
        percent = similarity * 100.0

        if percent >= self.params.upper_threshold:
            self.time_above += dt
            self.time_below = 0.0
            if self.time_above >= HOLD_ABOVE_SECONDS and not self._above_latched:
                self.score += 1
                self.successful_attempts += 1
                self._above_latched = True
                self._below_latched = False
                LOGGER.debug("Score increased to %d (similarity %.1f%%)", self.score, percent)
        elif self._above_latched:
            self._above_latched = False
            self.time_above = 0.0

        if percent <= self.params.lower_threshold:
            self.time_below += dt
            self.time_above = 0.0
            if self.time_below >= HOLD_BELOW_SECONDS and not self._below_latched:
                self.score = max(0, self.score - 1)
                self.total_attempts += 1
                self._below_latched = True
                self._above_latched = False
                LOGGER.debug("Score decreased to %d (similarity %.1f%%)", self.score, percent)
        elif self._below_latched:
            self._below_latched = False
            self.time_below = 0.0

    def mean_similarity(self) -> float:
        if not self.history:
            return 0.0
        return sum(self.history) / len(self.history)


class MirrorEnvironment:
    def __init__(self, params: MirrorParameters, config: DifficultyConfig | None = None):
        self.params = params
        self.config = config

    def apply(self, adjustments: MirrorAdjustments) -> None:
        p = self.params
        upper = resolve_bounds(self.config, "upper_threshold", UPPER_BOUNDS)
        lower = resolve_bounds(self.config, "lower_threshold", LOWER_BOUNDS)
        gap = resolve_bounds(self.config, "gap_between_actions", GAP_BOUNDS)

        p.upper_threshold = upper.clamp(p.upper_threshold + adjustments.upper_threshold_change)
        p.lower_threshold = lower.clamp(p.lower_threshold + adjustments.lower_threshold_change)
        if p.lower_threshold >= p.upper_threshold:
            p.lower_threshold = p.upper_threshold - THRESHOLD_MARGIN
        p.gap_between_actions = gap.clamp(p.gap_between_actions + adjustments.gap_change)

        level = p.difficulty
        if adjustments.difficulty_change > DIFFICULTY_STEP_THRESHOLD:
            level = min(MAX_DIFFICULTY, level + 1)
        elif adjustments.difficulty_change < -DIFFICULTY_STEP_THRESHOLD:
            level = max(0, level - 1)
        if level != p.difficulty:
            p.difficulty = level
            animations = p.animation_sets[level].animations
            if animations:
                p.active_animations = tuple(animations)
                LOGGER.info("Switched to %s animations", p.difficulty_name)

        LOGGER.info(
            "Thresholds: upper=%.1f lower=%.1f gap=%.1fs difficulty=%s",
            p.upper_threshold,
            p.lower_threshold,
            p.gap_between_actions,
            p.difficulty_name,
        )


class MirrorSampler(StateSampler):
    length = STATE_SIZE

    def __init__(self, scorer: MirrorScorer, params: MirrorParameters):
        self.scorer = scorer
        self.params = params

    def features(self) -> Sequence[float]:
        history = list(self.scorer.history)
        history.extend([0.0] * (HISTORY_SIZE - len(history)))
        return history + [
            clamp01(self.scorer.score / SCORE_SCALE),
            self.params.difficulty / MAX_DIFFICULTY,
        ]


class MirrorGame(MiniGame):
    name = "mirror"
    state_size = STATE_SIZE
    action_path = "/mc_action"
    train_path = "/mc_train"
    session_log_path = "/store_mc_session"
    default_interval = 5.0
    weights = WEIGHTS

    def __init__(
        self,
        config: DifficultyConfig | None = None,
        params: MirrorParameters | None = None,
    ):
        super().__init__(config)
        self.params = params or MirrorParameters()
        self.scorer = MirrorScorer(self.params)
        self.environment = MirrorEnvironment(self.params, config)
        self.sampler = MirrorSampler(self.scorer, self.params)
        self.current_animation = ""

    def observe(self, similarity: float, dt: float) -> None:
        self.scorer.observe(similarity, dt)

    def score(self) -> float:
        return self.scorer.score

    def ingest(self, record: Mapping[str, Any]) -> None:
        if "animation" in record:
            self.current_animation = str(record["animation"])
        if "similarity" in record:
            self.observe(float(record["similarity"]), float(record.get("dt", 0.0)))

    def counters(self, elapsed: float) -> Counters:
        mean = self.scorer.mean_similarity()
        return Counters(
            elapsed=elapsed,
            velocity_score=mean,
            task_ratio=self.scorer.score / WIN_SCORE,
            active_ratio=mean,
            successful_attempts=self.scorer.successful_attempts,
            total_attempts=self.scorer.total_attempts,
        )

    def episode_rules(self) -> EpisodeRules:
        return EpisodeRules(win_score=WIN_SCORE, time_limit=SESSION_TIME)

    def sample(self) -> StateVector:
        return self.sampler.sample()

    def decode_action(self, payload: Any) -> ContinuousAction:
        return decode_mirror_action(payload)

    def apply(self, action: Action) -> None:
        if not isinstance(action, ContinuousAction) or not isinstance(action.adjustments, MirrorAdjustments):
            raise PolicyError(f"Mirror game cannot apply {type(action).__name__}")
        LOGGER.debug("Mirror action received, log_prob=%.3f", action.log_prob or 0.0)
        self.environment.apply(action.adjustments)

    def reward_context(self, score_delta: float, elapsed: float) -> RewardContext:
        return RewardContext(
            score_delta=score_delta,
            metrics=self.metrics,
            elapsed=elapsed,
            mean_similarity=self.scorer.mean_similarity(),
        )

    def reward(self, prev_state, action, next_state, context: RewardContext) -> float:
        return mirror_reward(context)

    def transition_log_prob(self, action: Action) -> float | None:
        if isinstance(action, ContinuousAction):
            return action.log_prob if action.log_prob is not None else 0.0
        return None

    def train_payload(self, transitions: List[Transition]) -> Dict[str, Any]:
        payload = super().train_payload(transitions)
        payload["batch_size"] = TRAIN_BATCH_SIZE
        payload["epochs"] = TRAIN_EPOCHS
        return payload

    def session_log(self, state: StateVector, elapsed: float) -> Dict[str, Any]:
        metrics = self.metrics
        return {
            "time": elapsed,
            "similarity_current": self.scorer.current,
            "similarity_avg_5s": self.scorer.mean_similarity(),
            "score": self.scorer.score,
            "difficulty_level": self.params.difficulty,
            "upper_threshold": self.params.upper_threshold,
            "lower_threshold": self.params.lower_threshold,
            "gap_between_actions": self.params.gap_between_actions,
            "current_animation": self.current_animation,
            "fatigue": metrics.fatigue,
            "engagement": metrics.engagement,
            "success_rate": metrics.success_rate,
            "time_above_threshold": self.scorer.time_above,
            "time_below_threshold": self.scorer.time_below,
        }

    def reset(self) -> None:
        super().reset()
        self.scorer.reset()
