"""Bubble popping: continuous-action PPO variant."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence, Tuple

from agent.actions import Action, BubbleAdjustments, ContinuousAction, PolicyError, decode_bubble_action
from agent.difficulty import Bounds, DifficultyConfig, resolve_bounds
from agent.episode import EpisodeRules
from agent.metrics import Counters, MetricWeights
from agent.reward import RewardContext, bubble_reward
from agent.state import StateSampler, Vector3, distance
from games.base import MiniGame, read_vector

LOGGER = logging.getLogger(__name__)

ACTION_SIZE = 7
STATE_SIZE = 13
SESSION_TIME = 180.0
DEFAULT_WIN_SCORE = 30

# order of the first six entries of the action vector
ACTION_PARAMETERS = (
    "spawn_area_size",
    "bubble_speed",
    "bubble_lifetime",
    "spawn_height",
    "num_bubbles",
    "bubble_size",
)

# reward range checks against the therapist's maxima
ACTION_RANGE_FALLBACKS = {
    "spawn_area_size": Bounds(0.0, 5.0),
    "bubble_speed": Bounds(0.0, 1.0),
    "bubble_lifetime": Bounds(1.0, 10.0),
    "spawn_height": Bounds(0.0, 3.0),
    "num_bubbles": Bounds(1.0, 5.0),
    "bubble_size": Bounds(0.0, 1.0),
}

# (fallback range, floor for a configured maximum)
ADJUSTMENT_LIMITS: Dict[str, Tuple[Bounds, float]] = {
    "bubble_size": (Bounds(0.2, 1.0), 0.2),
    "bubble_speed": (Bounds(0.3, 1.0), 1.0),
    "bubble_lifetime": (Bounds(1.0, 10.0), 10.0),
    "num_bubbles": (Bounds(1.0, 5.0), 5.0),
}
PROBABILITY_BOUNDS = Bounds(0.0, 1.0)
SPAWN_RATE_BOUNDS = Bounds(0.0, 1.0)
SPEED_PER_SPAWN_RATE = 0.1

VECTOR_FIELDS = ("left_hand", "right_hand", "left_shoulder", "right_shoulder", "hip", "target_bubble")
NUMBER_FIELDS = ("left_hand_velocity", "right_hand_velocity", "step_length")

WEIGHTS = MetricWeights(
    fatigue_error=0.5,
    fatigue_velocity=0.3,
    fatigue_time=0.2,
    engagement_task=0.5,
    engagement_active=0.3,
    engagement_rest=0.0,
    engagement_reaction=0.2,
    success_accuracy=0.6,
    success_smoothness=0.4,
    max_session_time=SESSION_TIME,
    max_reaction_time=3.0,
)


@dataclass
class BubbleTelemetry:
    """Live values written by the game engine each frame."""

    left_hand: Vector3 | None = None
    right_hand: Vector3 | None = None
    left_shoulder: Vector3 | None = None
    right_shoulder: Vector3 | None = None
    hip: Vector3 | None = None
    left_hand_velocity: float = 0.0
    right_hand_velocity: float = 0.0
    step_length: float = 0.0
    target_bubble: Vector3 | None = None
    score: int = 0
    total_bubbles: int = 0
    active_bubbles: int = 0

    def on_bubble_spawned(self) -> None:
        self.total_bubbles += 1
        self.active_bubbles += 1

    def on_bubble_popped(self) -> None:
        self.active_bubbles = max(0, self.active_bubbles - 1)


@dataclass
class BubbleParameters:
    spawn_area_size: float = 3.0
    bubble_speed: float = 1.0
    bubble_lifetime: float = 5.0
    spawn_height: float = 2.0
    num_bubbles: int = 5
    bubble_size: float = 0.5
    guidance_on: bool = False
    positive_prob: float = 0.5
    negative_prob: float = 0.5
    spawn_rate: float = 0.5


def hand_kinematics(telemetry: BubbleTelemetry) -> Tuple[float, float]:
    """Return (mean hand speed, smoothness)."""
    left = max(0.0, telemetry.left_hand_velocity)
    right = max(0.0, telemetry.right_hand_velocity)
    jerk = abs(left - right)
    return (left + right) * 0.5, 1.0 / (1.0 + jerk)


class BubbleEnvironment:
    """Applies bubble adjustments within configured limits."""

    def __init__(self, params: BubbleParameters, config: DifficultyConfig | None = None):
        self.params = params
        self.config = config

    def limit(self, name: str) -> Bounds:
        fallback, floor = ADJUSTMENT_LIMITS[name]
        return resolve_bounds(self.config, name, fallback, floor)

    def apply(self, adjustments: BubbleAdjustments) -> None:
        p = self.params
        if adjustments.bubble_size != 0.0:
            p.bubble_size = self.limit("bubble_size").clamp(p.bubble_size + adjustments.bubble_size)

        p.positive_prob = PROBABILITY_BOUNDS.clamp(p.positive_prob + adjustments.positive_prob)
        p.negative_prob = PROBABILITY_BOUNDS.clamp(p.negative_prob + adjustments.negative_prob)

        if adjustments.spawn_rate != 0.0:
            p.bubble_speed = self.limit("bubble_speed").clamp(
                p.bubble_speed + adjustments.spawn_rate * SPEED_PER_SPAWN_RATE
            )
            p.spawn_rate = SPAWN_RATE_BOUNDS.clamp(p.spawn_rate + adjustments.spawn_rate)

        # keep lifetime and count usable even without an adjustment
        p.bubble_lifetime = self.limit("bubble_lifetime").clamp(p.bubble_lifetime)
        count = self.limit("num_bubbles")
        p.num_bubbles = int(max(count.minimum, min(count.maximum, p.num_bubbles)))

        LOGGER.debug(
            "Environment updated: speed=%.2f size=%.2f lifetime=%.2f bubbles=%d pos=%.2f neg=%.2f",
            p.bubble_speed,
            p.bubble_size,
            p.bubble_lifetime,
            p.num_bubbles,
            p.positive_prob,
            p.negative_prob,
        )


class BubbleSampler(StateSampler):
    length = STATE_SIZE

    def __init__(self, game: "BubbleGame"):
        self.game = game

    def features(self) -> Sequence[float]:
        t = self.game.telemetry
        params = self.game.params
        metrics = self.game.metrics

        if t.left_hand is not None and t.right_hand is not None and t.hip is not None:
            max_hand_height = max(t.left_hand[1], t.right_hand[1]) - t.hip[1]
        else:
            max_hand_height = 0.0
        arm_extension = distance(t.left_hand, t.left_shoulder)
        hand_speed, smoothness = hand_kinematics(t)
        bubble = t.target_bubble or (0.0, 0.0, 0.0)

        level = self.game.config.difficulty_level() if self.game.config else 1.0
        return [
            max_hand_height,
            arm_extension,
            t.step_length,
            hand_speed,
            smoothness,
            bubble[0],
            bubble[1],
            bubble[2],
            params.bubble_speed,
            params.spawn_area_size,
            metrics.success_rate,
            metrics.fatigue,
            level,
        ]


class BubbleGame(MiniGame):
    name = "bubbles"
    state_size = STATE_SIZE
    action_path = "/ppo_action"
    train_path = "/ppo_train"
    default_interval = 25.0
    weights = WEIGHTS

    def __init__(
        self,
        config: DifficultyConfig | None = None,
        telemetry: BubbleTelemetry | None = None,
        params: BubbleParameters | None = None,
    ):
        super().__init__(config)
        self.telemetry = telemetry or BubbleTelemetry()
        self.params = params or BubbleParameters()
        if config is not None:
            self.params.guidance_on = config.guidance_enabled
        self.environment = BubbleEnvironment(self.params, config)
        self.sampler = BubbleSampler(self)

    def score(self) -> float:
        return self.telemetry.score

    def ingest(self, record: Mapping[str, Any]) -> None:
        t = self.telemetry
        for name in VECTOR_FIELDS:
            if name in record:
                setattr(t, name, read_vector(record[name]))
        for name in NUMBER_FIELDS:
            if name in record:
                setattr(t, name, float(record[name]))
        if "score" in record:
            t.score = int(record["score"])
        for event in record.get("events", ()):
            if event == "bubble_spawned":
                t.on_bubble_spawned()
            elif event == "bubble_popped":
                t.on_bubble_popped()
            else:
                LOGGER.debug("Ignoring unknown bubble event %s", event)

    def counters(self, elapsed: float) -> Counters:
        t = self.telemetry
        score = max(0, t.score)
        total = max(0, t.total_bubbles)
        _, smoothness = hand_kinematics(t)
        return Counters(
            errors=max(0, total - score),
            total=total,
            elapsed=elapsed,
            velocities=(t.left_hand_velocity, t.right_hand_velocity),
            task_ratio=score / max(1, total),
            active_ratio=elapsed / max(1.0, SESSION_TIME),
            reaction_time=elapsed / max(1, score),
            accuracy=score / max(1, total),
            smoothness=smoothness,
        )

    def episode_rules(self) -> EpisodeRules:
        win = DEFAULT_WIN_SCORE
        limit = SESSION_TIME
        if self.config is not None:
            win = self.config.target_score or win
            limit = self.config.time_limit or limit
        return EpisodeRules(win_score=win, time_limit=limit)

    def sample(self):
        return self.sampler.sample()

    def decode_action(self, payload: Any) -> ContinuousAction:
        return decode_bubble_action(payload, min_length=ACTION_SIZE)

    def apply(self, action: Action) -> None:
        if not isinstance(action, ContinuousAction) or not isinstance(action.adjustments, BubbleAdjustments):
            raise PolicyError(f"Bubble game cannot apply {type(action).__name__}")
        LOGGER.info("PPO actions received: %s", ",".join(f"{v:.3f}" for v in action.values))
        self.environment.apply(action.adjustments)

    def action_bounds(self) -> Dict[str, Bounds]:
        return {
            name: resolve_bounds(self.config, name, fallback)
            for name, fallback in ACTION_RANGE_FALLBACKS.items()
        }

    def reward(self, prev_state, action, next_state, context: RewardContext) -> float:
        values = action.values if isinstance(action, ContinuousAction) else ()
        return bubble_reward(values, next_state, self.action_bounds(), ACTION_PARAMETERS)

    def reset(self) -> None:
        super().reset()
        self.telemetry.score = 0
        self.telemetry.total_bubbles = 0
        self.telemetry.active_bubbles = 0
