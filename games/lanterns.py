"""Lantern toss under red/orange/green lights: discrete-action DQN variant."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

from agent.actions import Action, DiscreteAction, LanternAdjustments, PolicyError, Transition, decode_lantern_action
from agent.difficulty import Bounds, DifficultyConfig, resolve_bounds
from agent.episode import EpisodeRules
from agent.metrics import Counters, MetricWeights, clamp01
from agent.reward import RewardContext, lantern_reward
from agent.state import StateSampler, StateVector, Vector3
from games.base import MiniGame, read_vector

LOGGER = logging.getLogger(__name__)

STATE_SIZE = 10
LIGHT_COUNT = 4
# state vector order
LIMBS = ("left_hand", "left_leg", "right_leg", "right_hand")

WIN_SCORE = 20
LOSE_SCORE = -10
SESSION_TIME = 120.0
MAX_ACTIVE_LANTERNS = 5.0

TRAIN_NUM_UPDATES = 5
TARGET_UPDATE_FREQUENCY = 10

NO_CHANGE = -1
CHANGE_EPSILON = 0.01
LIGHT_MIN_BOUNDS = Bounds(0.5, 5.0)
LIGHT_MAX_BOUNDS = Bounds(1.0, 8.0)
SPAWN_RATE_BOUNDS = Bounds(0.5, 5.0)

WEIGHTS = MetricWeights(
    fatigue_error=0.6,
    fatigue_velocity=0.0,
    fatigue_time=0.4,
    engagement_task=0.5,
    engagement_active=0.3,
    engagement_rest=0.2,
    max_session_time=SESSION_TIME,
    success_mode="none",
)


class LightState(enum.IntEnum):
    RED = 0
    ORANGE = 1
    GREEN = 2


@dataclass
class Limb:
    position: Vector3 = (0.0, 0.0, 0.0)
    active: bool = False


@dataclass
class LanternTelemetry:
    limbs: Dict[str, Limb] = field(default_factory=lambda: {name: Limb() for name in LIMBS})
    active_lanterns: int = 0
    score: int = 0

    def active_limbs(self) -> int:
        return sum(1 for name in LIMBS if self.limbs.get(name, Limb()).active)

    def set_attached(self, attached: Sequence[str]) -> None:
        """Mark exactly the limbs currently holding a lantern as active."""
        for name in LIMBS:
            self.limbs.setdefault(name, Limb()).active = name in attached


@dataclass
class LanternParameters:
    light_states: List[LightState] = field(default_factory=lambda: [LightState.RED] * LIGHT_COUNT)
    light_min_time: float = 1.0
    light_max_time: float = 3.0
    spawn_rate: float = 2.0


class LanternEnvironment:
    def __init__(self, params: LanternParameters, config: DifficultyConfig | None = None):
        self.params = params
        self.config = config

    def apply(self, adjustments: LanternAdjustments) -> float | None:
        """Apply the adjustment; returns the new query interval if light timing moved."""
        p = self.params
        for index, code in enumerate(adjustments.light_states[:LIGHT_COUNT]):
            if code == NO_CHANGE:
                continue
            try:
                p.light_states[index] = LightState(code)
            except ValueError:
                LOGGER.warning("Ignoring invalid light state %s for light %d", code, index)

        interval = None
        change = adjustments.light_speed_change
        if abs(change) > CHANGE_EPSILON:
            low = resolve_bounds(self.config, "light_min_time", LIGHT_MIN_BOUNDS)
            high = resolve_bounds(self.config, "light_max_time", LIGHT_MAX_BOUNDS)
            p.light_min_time = low.clamp(p.light_min_time + change)
            p.light_max_time = high.clamp(p.light_max_time + change)
            interval = (p.light_min_time + p.light_max_time) / 2.0
            LOGGER.info("Light speed adjusted: min=%.2f max=%.2f", p.light_min_time, p.light_max_time)

        if abs(adjustments.spawn_rate_change) > CHANGE_EPSILON:
            bounds = resolve_bounds(self.config, "spawn_rate", SPAWN_RATE_BOUNDS)
            p.spawn_rate = bounds.clamp(p.spawn_rate + adjustments.spawn_rate_change)
            LOGGER.info("Spawn rate adjusted: %.2f", p.spawn_rate)
        return interval


class LanternSampler(StateSampler):
    length = STATE_SIZE

    def __init__(self, telemetry: LanternTelemetry, params: LanternParameters):
        self.telemetry = telemetry
        self.params = params

    def features(self) -> Sequence[float]:
        t = self.telemetry
        limbs = [1.0 if t.limbs.get(name, Limb()).active else 0.0 for name in LIMBS]
        lights = [float(state) for state in self.params.light_states[:LIGHT_COUNT]]
        return limbs + lights + [
            clamp01(t.active_lanterns / MAX_ACTIVE_LANTERNS),
            max(-1.0, min(1.0, t.score / WIN_SCORE)),
        ]


class LanternGame(MiniGame):
    name = "lanterns"
    state_size = STATE_SIZE
    action_path = "/dqn_action"
    train_path = "/dqn_train"
    session_log_path = "/store_rogl_session"
    default_interval = 5.0
    weights = WEIGHTS

    def __init__(
        self,
        config: DifficultyConfig | None = None,
        telemetry: LanternTelemetry | None = None,
        params: LanternParameters | None = None,
    ):
        super().__init__(config)
        self.telemetry = telemetry or LanternTelemetry()
        self.params = params or LanternParameters()
        self.environment = LanternEnvironment(self.params, config)
        self.sampler = LanternSampler(self.telemetry, self.params)

    def score(self) -> float:
        return self.telemetry.score

    def ingest(self, record: Mapping[str, Any]) -> None:
        t = self.telemetry
        if "attached" in record:
            t.set_attached([str(name) for name in record["attached"]])
        positions = record.get("positions")
        if isinstance(positions, Mapping):
            for name, raw in positions.items():
                position = read_vector(raw)
                if name in t.limbs and position is not None:
                    t.limbs[name].position = position
        if "active_lanterns" in record:
            t.active_lanterns = max(0, int(record["active_lanterns"]))
        if "score" in record:
            t.score = int(record["score"])

    def counters(self, elapsed: float) -> Counters:
        t = self.telemetry
        return Counters(
            errors=max(0, -t.score),
            total=max(1, t.active_lanterns + abs(t.score)),
            elapsed=elapsed,
            task_ratio=t.score / WIN_SCORE,
            active_ratio=t.active_limbs() / len(LIMBS),
        )

    def episode_rules(self) -> EpisodeRules:
        return EpisodeRules(win_score=WIN_SCORE, time_limit=SESSION_TIME, lose_score=LOSE_SCORE)

    def sample(self) -> StateVector:
        return self.sampler.sample()

    def policy_request(self, state: StateVector, training: bool) -> Dict[str, Any]:
        metrics = self.metrics
        return {
            "state": list(state),
            "fatigue": metrics.fatigue,
            "engagement": metrics.engagement,
            "training": training,
        }

    def decode_action(self, payload: Any) -> DiscreteAction:
        return decode_lantern_action(payload, LIGHT_COUNT)

    def apply(self, action: Action) -> None:
        if not isinstance(action, DiscreteAction) or not isinstance(action.adjustments, LanternAdjustments):
            raise PolicyError(f"Lantern game cannot apply {type(action).__name__}")
        LOGGER.info(
            "DQN action %d, q=%s, epsilon=%s",
            action.index,
            "n/a" if action.q_value is None else f"{action.q_value:.3f}",
            "n/a" if action.epsilon is None else f"{action.epsilon:.3f}",
        )
        interval = self.environment.apply(action.adjustments)
        if interval is not None:
            self.update_interval = interval

    def reward_context(self, score_delta: float, elapsed: float) -> RewardContext:
        return RewardContext(
            score_delta=score_delta,
            metrics=self.metrics,
            elapsed=elapsed,
            active_objects=self.telemetry.active_lanterns,
            active_limbs=self.telemetry.active_limbs(),
        )

    def reward(self, prev_state, action, next_state, context: RewardContext) -> float:
        return lantern_reward(context)

    def train_payload(self, transitions: List[Transition]) -> Dict[str, Any]:
        payload = super().train_payload(transitions)
        payload["num_updates"] = TRAIN_NUM_UPDATES
        payload["update_target"] = self._train_requests % TARGET_UPDATE_FREQUENCY == 0
        return payload

    def session_log(self, state: StateVector, elapsed: float) -> Dict[str, Any]:
        metrics = self.metrics
        log: Dict[str, Any] = {"time": elapsed, "state": list(state)}
        for name in LIMBS:
            limb = self.telemetry.limbs.get(name, Limb())
            x, y, z = limb.position
            key = "".join(part.capitalize() if i else part for i, part in enumerate(name.split("_")))
            log[key] = {"x": x, "y": y, "z": z, "active": 1 if limb.active else 0}
        for index, light in enumerate(self.params.light_states[:LIGHT_COUNT]):
            log[f"light{index}_state"] = int(light)
        log.update(
            active_lanterns=self.telemetry.active_lanterns,
            score=self.telemetry.score,
            fatigue=metrics.fatigue,
            engagement=metrics.engagement,
        )
        return log

    def reset(self) -> None:
        super().reset()
        self.telemetry.score = 0
        self.telemetry.active_lanterns = 0
        self.telemetry.set_attached(())
