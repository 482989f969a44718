"""Fatigue, engagement and success metrics derived from gameplay counters."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

EPSILON = 1e-4
NEUTRAL_SUCCESS = 0.5


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def _finite(value: float | int | None) -> float:
    if value is None:
        return 0.0
    value = float(value)
    if not math.isfinite(value):
        return 0.0
    return value


@dataclass(frozen=True)
class Metrics:
    fatigue: float = 0.0
    engagement: float = 0.0
    success_rate: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return {
            "fatigue": self.fatigue,
            "engagement": self.engagement,
            "success_rate": self.success_rate,
        }


@dataclass(frozen=True)
class MetricWeights:
    """Per-game weight table. Each group is expected to sum to 1."""

    fatigue_error: float
    fatigue_velocity: float
    fatigue_time: float
    engagement_task: float
    engagement_active: float
    engagement_rest: float
    engagement_reaction: float = 0.0
    success_accuracy: float = 0.0
    success_smoothness: float = 0.0
    max_session_time: float = 180.0
    max_reaction_time: float = 3.0
    success_mode: str = "weighted"  # "weighted", "attempts" or "none"


@dataclass
class Counters:
    """Raw per-tick counters sampled from a mini-game."""

    errors: float = 0.0
    total: float = 0.0
    elapsed: float = 0.0
    velocities: Sequence[float] = field(default_factory=tuple)
    velocity_score: float | None = None
    task_ratio: float = 0.0
    active_ratio: float = 0.0
    reaction_time: float = 0.0
    accuracy: float = 0.0
    smoothness: float = 0.0
    successful_attempts: int = 0
    total_attempts: int = 0


def velocity_score(velocities: Sequence[float]) -> float:
    """Mean over peak velocity; 1.0 (no fatigue signal) without samples."""
    values = [_finite(v) for v in velocities]
    if not values:
        return 1.0
    peak = max(values)
    mean = sum(values) / len(values)
    return clamp01(mean / max(EPSILON, peak))


def compute_fatigue(counters: Counters, weights: MetricWeights) -> float:
    error_rate = max(0.0, _finite(counters.errors)) / max(1.0, _finite(counters.total))
    if counters.velocity_score is not None:
        velocity = clamp01(_finite(counters.velocity_score))
    else:
        velocity = velocity_score(counters.velocities)
    time_ratio = max(0.0, _finite(counters.elapsed)) / max(EPSILON, weights.max_session_time)
    return clamp01(
        weights.fatigue_error * error_rate
        + weights.fatigue_velocity * (1.0 - velocity)
        + weights.fatigue_time * time_ratio
    )


def compute_engagement(counters: Counters, fatigue: float, weights: MetricWeights) -> float:
    reaction_ratio = max(0.0, _finite(counters.reaction_time)) / max(1.0, weights.max_reaction_time)
    return clamp01(
        weights.engagement_task * clamp01(_finite(counters.task_ratio))
        + weights.engagement_active * clamp01(_finite(counters.active_ratio))
        + weights.engagement_rest * (1.0 - fatigue)
        + weights.engagement_reaction * reaction_ratio
    )


def compute_success(counters: Counters, weights: MetricWeights) -> float:
    if weights.success_mode == "none":
        return 0.0
    if weights.success_mode == "attempts":
        attempts = counters.total_attempts
        if attempts <= 0:
            return NEUTRAL_SUCCESS
        return clamp01(counters.successful_attempts / attempts)
    return clamp01(
        weights.success_accuracy * clamp01(_finite(counters.accuracy))
        + weights.success_smoothness * clamp01(_finite(counters.smoothness))
    )


class MetricsEngine:
    """Recomputes the three bounded metrics from fresh counters each cycle."""

    def __init__(self, weights: MetricWeights):
        self.weights = weights
        self.current = Metrics()
        self.previous = Metrics()

    def update(self, counters: Counters) -> Metrics:
        fatigue = compute_fatigue(counters, self.weights)
        metrics = Metrics(
            fatigue=fatigue,
            engagement=compute_engagement(counters, fatigue, self.weights),
            success_rate=compute_success(counters, self.weights),
        )
        self.previous = self.current
        self.current = metrics
        return metrics

    def reset(self) -> None:
        self.current = Metrics()
        self.previous = Metrics()
