"""Contract every adaptive mini-game exposes to the policy loop."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from agent.actions import Action, Transition
from agent.difficulty import DifficultyConfig
from agent.episode import EpisodeRules
from agent.metrics import Counters, Metrics, MetricsEngine, MetricWeights
from agent.reward import RewardContext
from agent.state import StateVector, Vector3


class MiniGame:
    """One mini-game instance: telemetry, sampler, adapter and protocol.

    Subclasses set the class attributes and implement the hooks. The policy
    loop owns the game instance; nothing here performs network I/O.
    """

    name: str = ""
    state_size: int = 0
    action_path: str = ""
    train_path: str = ""
    session_log_path: Optional[str] = None
    default_interval: float = 5.0
    weights: MetricWeights

    def __init__(self, config: DifficultyConfig | None = None):
        self.config = config
        self.update_interval = self.default_interval
        self.metrics_engine = MetricsEngine(self.weights)
        self._train_requests = 0

    @property
    def metrics(self) -> Metrics:
        return self.metrics_engine.current

    def score(self) -> float:
        raise NotImplementedError

    def counters(self, elapsed: float) -> Counters:
        raise NotImplementedError

    def ingest(self, record: Mapping[str, Any]) -> None:
        """Write one recorded telemetry frame into the live telemetry."""
        raise NotImplementedError

    def update_metrics(self, elapsed: float) -> Metrics:
        return self.metrics_engine.update(self.counters(elapsed))

    def episode_rules(self) -> EpisodeRules:
        raise NotImplementedError

    def sample(self) -> StateVector:
        raise NotImplementedError

    def decode_action(self, payload: Any) -> Action:
        raise NotImplementedError

    def apply(self, action: Action) -> None:
        raise NotImplementedError

    def reward_context(self, score_delta: float, elapsed: float) -> RewardContext:
        return RewardContext(score_delta=score_delta, metrics=self.metrics, elapsed=elapsed)

    def reward(
        self,
        prev_state: Sequence[float],
        action: Action,
        next_state: Sequence[float],
        context: RewardContext,
    ) -> float:
        raise NotImplementedError

    def policy_request(self, state: StateVector, training: bool) -> Dict[str, Any]:
        metrics = self.metrics
        return {
            "state": list(state),
            "fatigue": metrics.fatigue,
            "engagement": metrics.engagement,
            "success": metrics.success_rate,
        }

    def transition_log_prob(self, action: Action) -> float | None:
        return None

    def train_payload(self, transitions: List[Transition]) -> Dict[str, Any]:
        self._train_requests += 1
        return {"transitions": [t.to_payload() for t in transitions]}

    def session_log(self, state: StateVector, elapsed: float) -> Dict[str, Any] | None:
        return None

    def reset(self) -> None:
        """Clear per-episode counters; adapted difficulty parameters persist."""
        self.metrics_engine.reset()


def read_vector(raw: Any) -> Vector3 | None:
    """Parse a recorded ``[x, y, z]`` position; anything else is treated as missing."""
    if not isinstance(raw, (list, tuple)) or len(raw) != 3:
        return None
    try:
        x, y, z = (float(v) for v in raw)
    except (TypeError, ValueError):
        return None
    return (x, y, z)
