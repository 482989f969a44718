"""Reward shaping for the adaptive-difficulty loop.

Each mini-game keeps its own weight table; the functions here are pure so a
reward can be recomputed from a stored transition and its context.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from agent.difficulty import Bounds
from agent.metrics import Metrics

# bubbles
BUBBLE_RANGE_WEIGHT = 1.0
BUBBLE_SUCCESS_WEIGHT = 2.0
BUBBLE_HAND_SPEED_WEIGHT = 0.5
BUBBLE_FATIGUE_WEIGHT = 1.0

# mirror
MIRROR_SCORE_WEIGHT = 3.0
MIRROR_FATIGUE_WEIGHT = 2.0
MIRROR_ENGAGEMENT_WEIGHT = 1.5
MIRROR_SUCCESS_WEIGHT = 1.0
MIRROR_SIMILARITY_BANDS = ((0.8, 2.0), (0.7, 1.0))
MIRROR_LOW_SIMILARITY = 0.5
MIRROR_LOW_SIMILARITY_PENALTY = 1.0

# lanterns
LANTERN_SCORE_WEIGHT = 2.0
LANTERN_OVERWHELM_LIMIT = 3
LANTERN_OVERWHELM_PENALTY = 0.5
LANTERN_LIMB_SWEET_SPOT = (2, 3)
LANTERN_LIMB_BONUS = 1.0
LANTERN_FATIGUE_WEIGHT = 1.5
LANTERN_ENGAGEMENT_WEIGHT = 1.0
LANTERN_TIME_PENALTY = 0.01


@dataclass(frozen=True)
class RewardContext:
    score_delta: float = 0.0
    metrics: Metrics = field(default_factory=Metrics)
    elapsed: float = 0.0
    mean_similarity: float = 0.0
    active_objects: int = 0
    active_limbs: int = 0


def check_range(value: float, bounds: Bounds, weight: float = 1.0) -> float:
    if bounds.minimum <= value <= bounds.maximum:
        return weight
    return -weight


def bubble_reward(
    action_values: Sequence[float],
    next_state: Sequence[float],
    bounds: Mapping[str, Bounds],
    parameter_order: Sequence[str],
) -> float:
    """Range checks over the proposed parameters plus performance terms."""
    reward = 0.0
    for index, name in enumerate(parameter_order):
        value = float(action_values[index]) if index < len(action_values) else 0.0
        if name == "num_bubbles":
            value = float(round(value))
        reward += check_range(value, bounds[name], BUBBLE_RANGE_WEIGHT)

    hand_speed = next_state[3]
    success_rate = next_state[10]
    fatigue = next_state[11]
    reward += success_rate * BUBBLE_SUCCESS_WEIGHT
    reward += hand_speed * BUBBLE_HAND_SPEED_WEIGHT
    reward -= fatigue * BUBBLE_FATIGUE_WEIGHT
    return reward


def mirror_reward(context: RewardContext) -> float:
    reward = context.score_delta * MIRROR_SCORE_WEIGHT

    similarity = context.mean_similarity
    for threshold, bonus in MIRROR_SIMILARITY_BANDS:
        if similarity > threshold:
            reward += bonus
            break
    else:
        if similarity < MIRROR_LOW_SIMILARITY:
            reward -= MIRROR_LOW_SIMILARITY_PENALTY

    reward -= context.metrics.fatigue * MIRROR_FATIGUE_WEIGHT
    reward += context.metrics.engagement * MIRROR_ENGAGEMENT_WEIGHT
    reward += context.metrics.success_rate * MIRROR_SUCCESS_WEIGHT
    return reward


def lantern_reward(context: RewardContext) -> float:
    reward = context.score_delta * LANTERN_SCORE_WEIGHT

    # overwhelmed
    if context.active_objects > LANTERN_OVERWHELM_LIMIT:
        reward -= (context.active_objects - LANTERN_OVERWHELM_LIMIT) * LANTERN_OVERWHELM_PENALTY

    low, high = LANTERN_LIMB_SWEET_SPOT
    if low <= context.active_limbs <= high:
        reward += LANTERN_LIMB_BONUS

    reward -= context.metrics.fatigue * LANTERN_FATIGUE_WEIGHT
    reward += context.metrics.engagement * LANTERN_ENGAGEMENT_WEIGHT
    reward -= context.elapsed * LANTERN_TIME_PENALTY
    return reward
